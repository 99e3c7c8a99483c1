"""Build plan: the ordered steps that realize a manifest."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from actions import (
    AppendMountEntryAction,
    AttachRunAction,
    CopyAction,
    CreateContainerAction,
    RestartContainerAction,
    SetLimitAction,
    StartContainerAction,
    WriteEntrypointAction,
)
from actions.file import entrypoint_path
from commands import limit_key
from common import ActionResult, CommandExecutor
from config import BuildConfig
from manifest import BuildManifest
from resolver import RootfsResolver


class StepKind(str, Enum):
    CREATE = 'create'
    ENTRYPOINT = 'entrypoint'
    START = 'start'
    COPY = 'copy'
    MOUNT = 'mount'
    RESTART = 'restart'
    RUN = 'run'
    LIMIT = 'limit'


class StepAction(Protocol):
    """Protocol for step actions."""

    def render(self, config: BuildConfig) -> list[str]:
        """Describe what run() would do, one line per external effect."""

    def run(self, config: BuildConfig, executor: CommandExecutor) -> ActionResult:
        """Execute the step."""


@dataclass
class BuildStep:
    """One unit of work in a build.

    Attributes:
        kind: Step tag
        name: Unique step name (used in logs and reports)
        action: Action that performs the step
        description: Human-readable summary
    """
    kind: StepKind
    name: str
    action: StepAction
    description: str


def plan_steps(manifest: BuildManifest, config: BuildConfig, resolver: RootfsResolver) -> list[BuildStep]:
    """Build the ordered step list for a manifest.

    Order: create, entrypoint (if declared), start, copies, mounts,
    restart (only after mounts), run commands, limits (sorted by key),
    restart.
    """
    name = manifest.name
    steps = [
        BuildStep(StepKind.CREATE, 'create',
                  CreateContainerAction(name='create', container=name, image=manifest.image),
                  f"Create {name}"),
    ]

    if manifest.entrypoint is not None:
        rootfs = Path(manifest.image.dir) if manifest.image.dir else config.default_rootfs(name)
        steps.append(BuildStep(
            StepKind.ENTRYPOINT, 'entrypoint',
            WriteEntrypointAction(name='entrypoint', path=entrypoint_path(rootfs), body=manifest.entrypoint),
            "Install entrypoint script",
        ))

    steps.append(BuildStep(StepKind.START, 'start',
                           StartContainerAction(name='start', container=name),
                           f"Start {name}"))

    for i, spec in enumerate(manifest.copy, 1):
        step_name = f'copy-{i}'
        steps.append(BuildStep(
            StepKind.COPY, step_name,
            CopyAction(name=step_name, spec=spec, resolver=resolver),
            f"Copy {spec.host} to {spec.container}",
        ))

    for i, mount in enumerate(manifest.shared, 1):
        step_name = f'mount-{i}'
        steps.append(BuildStep(
            StepKind.MOUNT, step_name,
            AppendMountEntryAction(name=step_name, config_path=config.config_path(name),
                                   host=mount.host, container=mount.container),
            f"Share {mount.host} at {mount.container}",
        ))

    if manifest.shared:
        steps.append(BuildStep(StepKind.RESTART, 'restart-mounts',
                               RestartContainerAction(name='restart-mounts', container=name),
                               "Restart to apply config changes"))

    for i, run in enumerate(manifest.run, 1):
        step_name = f'run-{i}'
        steps.append(BuildStep(
            StepKind.RUN, step_name,
            AttachRunAction(name=step_name, container=name, command=run.cmd),
            f"Run: {run.cmd}",
        ))

    for key, value in manifest.sorted_limits():
        step_name = f'limit-{limit_key(key)}'
        steps.append(BuildStep(
            StepKind.LIMIT, step_name,
            SetLimitAction(name=step_name, container=name, key=key, value=value),
            f"Set {limit_key(key)}={value}",
        ))

    steps.append(BuildStep(StepKind.RESTART, 'restart',
                           RestartContainerAction(name='restart', container=name),
                           "Restart to apply mounts and limits"))
    return steps
