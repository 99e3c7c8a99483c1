"""LXC lifecycle actions.

Each action renders one or more command lines with the translators in
commands.py and runs them through the executor. A non-zero exit status is
reported as a failed ActionResult; errors that prevent a command from
running at all (ExecutionError, ResolverError) propagate.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Union

import commands
from common import ActionResult, CommandExecutor
from config import BuildConfig
from manifest import CopySpec, ImageSpec
from resolver import RootfsResolver

logger = logging.getLogger(__name__)


def _run(step: str, executor: CommandExecutor, cmdline: str, start: float) -> ActionResult:
    """Run one command line and wrap its exit status."""
    rc = executor.run(cmdline)
    if rc != 0:
        return ActionResult(
            success=False,
            message=f"Command failed with exit status {rc}: {cmdline}",
            duration=time.time() - start
        )
    return ActionResult(
        success=True,
        message=f"[{step}] ok",
        duration=time.time() - start
    )


@dataclass
class CreateContainerAction:
    """Create a container from an image."""
    name: str
    container: str
    image: ImageSpec

    def render(self, config: BuildConfig) -> list[str]:
        return [commands.create(
            self.container,
            self.image,
            config=self.image.config,
            rootfs_dir=self.image.dir,
            network=self.image.network,
            global_opts=config.global_options(),
        )]

    def run(self, config: BuildConfig, executor: CommandExecutor) -> ActionResult:
        start = time.time()
        image = f"{self.image.distro}/{self.image.release}/{self.image.arch}"
        logger.info(f"[{self.name}] Creating {self.container} from {image}...")
        return _run(self.name, executor, self.render(config)[0], start)


@dataclass
class StartContainerAction:
    """Start a container."""
    name: str
    container: str

    def render(self, config: BuildConfig) -> list[str]:
        return [commands.start(self.container, config.global_options())]

    def run(self, config: BuildConfig, executor: CommandExecutor) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Starting {self.container}...")
        return _run(self.name, executor, self.render(config)[0], start)


@dataclass
class StopContainerAction:
    """Stop a container."""
    name: str
    container: str
    kill: bool = False
    timeout: Optional[int] = None
    nowait: bool = False
    reboot: bool = False

    def render(self, config: BuildConfig) -> list[str]:
        return [commands.stop(
            self.container, config.global_options(),
            reboot=self.reboot, nowait=self.nowait, timeout=self.timeout, kill=self.kill,
        )]

    def run(self, config: BuildConfig, executor: CommandExecutor) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Stopping {self.container}...")
        return _run(self.name, executor, self.render(config)[0], start)


@dataclass
class RestartContainerAction:
    """Stop then start a container so config file changes take effect."""
    name: str
    container: str

    def render(self, config: BuildConfig) -> list[str]:
        opts = config.global_options()
        return [commands.stop(self.container, opts), commands.start(self.container, opts)]

    def run(self, config: BuildConfig, executor: CommandExecutor) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Restarting {self.container}...")
        for cmdline in self.render(config):
            result = _run(self.name, executor, cmdline, start)
            if not result.success:
                return result
        return ActionResult(
            success=True,
            message=f"{self.container} restarted",
            duration=time.time() - start
        )


@dataclass
class AttachRunAction:
    """Run a shell command inside a running container."""
    name: str
    container: str
    command: str

    def render(self, config: BuildConfig) -> list[str]:
        return [commands.attach(self.container, self.command, config.global_options())]

    def run(self, config: BuildConfig, executor: CommandExecutor) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Running in {self.container}: {self.command}")
        return _run(self.name, executor, self.render(config)[0], start)


@dataclass
class SetLimitAction:
    """Apply one resource limit; key uses '_' in place of '.'."""
    name: str
    container: str
    key: str
    value: Union[str, int, float, bool]

    def render(self, config: BuildConfig) -> list[str]:
        return [commands.set_limit(
            self.container, commands.limit_key(self.key), self.value, config.global_options()
        )]

    def run(self, config: BuildConfig, executor: CommandExecutor) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Setting {commands.limit_key(self.key)}={self.value} on {self.container}")
        return _run(self.name, executor, self.render(config)[0], start)


@dataclass
class CopyAction:
    """Copy between host and container locations.

    Locations are resolved when the action runs, since container rootfs
    lookups need the container to be running.
    """
    name: str
    spec: CopySpec
    resolver: RootfsResolver

    def render(self, _config: BuildConfig) -> list[str]:
        return [commands.copy(
            self.spec.host, self.spec.container,
            archive=self.spec.archive, follow_link=self.spec.follow_link,
        )]

    def run(self, _config: BuildConfig, executor: CommandExecutor) -> ActionResult:
        start = time.time()
        source = self.resolver.resolve_location(self.spec.host)
        destination = self.resolver.resolve_location(self.spec.container)
        logger.info(f"[{self.name}] Copying {source} -> {destination}")
        cmdline = commands.copy(
            source, destination,
            archive=self.spec.archive, follow_link=self.spec.follow_link,
        )
        return _run(self.name, executor, cmdline, start)
