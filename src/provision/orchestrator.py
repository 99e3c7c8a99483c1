"""Sequential, fail-fast execution of a build plan."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from common import BuildError, CommandExecutor, FileSystemError
from config import BuildConfig
from manifest import BuildManifest
from provision.plan import BuildStep, plan_steps
from reporting import BuildReport
from resolver import RootfsResolver

logger = logging.getLogger(__name__)


@dataclass
class StepFailure:
    """The step that aborted a build and why."""
    step: str
    kind: str
    message: str
    error: Optional[BuildError] = None

    def __str__(self) -> str:
        return f"Step '{self.step}' failed: {self.message}"


class ProvisioningOrchestrator:
    """Runs the steps of one build.

    Each step blocks until its external action completes. The first failing
    step ends the build; remaining steps are recorded as skipped and nothing
    already applied is undone.
    """

    def __init__(
        self,
        manifest: BuildManifest,
        config: BuildConfig,
        executor: CommandExecutor,
        dry_run: bool = False
    ):
        self.manifest = manifest
        self.config = config
        self.executor = executor
        self.dry_run = dry_run
        self.resolver = RootfsResolver(executor, config.global_options())
        self.steps: list[BuildStep] = plan_steps(manifest, config, self.resolver)
        self.report = BuildReport(container=manifest.name, report_dir=config.report_dir)
        self.failure: Optional[StepFailure] = None

    def preview(self) -> bool:
        """Show what would be executed without running. Returns True."""
        print("")
        print("═══════════════════════════════════════════════════════════════")
        print(f"  DRY-RUN BUILD: {self.manifest.name}")
        if self.manifest.source_path:
            print(f"  Manifest: {self.manifest.source_path}")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        for index, step in enumerate(self.steps, 1):
            print(f"  {index:>2}. [{step.kind.value}] {step.name}: {step.description}")
            for line in step.action.render(self.config):
                print(f"         {line}")

        print("")
        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {len(self.steps)} steps")
        print("  Mode: DRY-RUN (no changes made)")
        print("═══════════════════════════════════════════════════════════════")
        print("")
        return True

    def run(self) -> bool:
        """Run all steps. Returns True if every step succeeded.

        Raises:
            FileSystemError: If the report directory cannot be created; no
                step has run at that point
        """
        if self.dry_run:
            return self.preview()

        logger.info(f"Starting build of '{self.manifest.name}' ({len(self.steps)} steps)")
        self.report.start()
        start_time = time.time()
        all_passed = False

        try:
            for index, step in enumerate(self.steps):
                logger.info(f"Running step: {step.name} - {step.description}")
                step_start = time.time()
                try:
                    result = step.action.run(self.config, self.executor)
                except BuildError as e:
                    self._fail(step, str(e), time.time() - step_start, e)
                    self._skip_remaining(index + 1)
                    break

                if not result.success:
                    self._fail(step, result.message, result.duration)
                    self._skip_remaining(index + 1)
                    break

                logger.debug(f"Step {step.name} passed")
                self.report.pass_step(step.name, step.kind.value, step.description,
                                      result.message, result.duration)
            else:
                all_passed = True
        finally:
            total_time = time.time() - start_time
            if all_passed:
                logger.info(f"Build of '{self.manifest.name}' completed in {total_time:.1f}s")
            try:
                self.report.finish(all_passed)
            except FileSystemError as e:
                logger.error(f"Build report not written: {e}")

        return all_passed

    def _fail(self, step: BuildStep, message: str, duration: float,
              error: Optional[BuildError] = None) -> None:
        logger.error(f"Step {step.name} failed: {message}")
        self.failure = StepFailure(step=step.name, kind=step.kind.value, message=message, error=error)
        self.report.fail_step(step.name, step.kind.value, step.description, message, duration)

    def _skip_remaining(self, first: int) -> None:
        for step in self.steps[first:]:
            self.report.skip_step(step.name, step.kind.value, step.description)
