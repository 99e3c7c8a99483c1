"""Host filesystem actions against a container's rootfs and config."""

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

from common import ActionResult, CommandExecutor, FileSystemError
from config import BuildConfig

logger = logging.getLogger(__name__)

ENTRYPOINT_NAME = 'lxcbuild-entrypoint.sh'
ENTRYPOINT_SHEBANG = '#!/bin/sh\n'
# r-x for owner, group and other
ENTRYPOINT_MODE = 0o555


def entrypoint_path(rootfs: Path) -> Path:
    """Location of the entrypoint script inside a rootfs."""
    return rootfs / 'etc' / 'profile.d' / ENTRYPOINT_NAME


def mount_entry(host: str, container: str) -> str:
    """Render a bind-mount line for the container config.

    The container path is written as declared; lxc resolves it against
    the rootfs.
    """
    return f"lxc.mount.entry = {host} {container} none bind,create=dir 0 0"


@dataclass
class WriteEntrypointAction:
    """Install the entrypoint script into the rootfs.

    Never overwrites: an existing script fails the step.
    """
    name: str
    path: Path
    body: str

    def render(self, _config: BuildConfig) -> list[str]:
        return [f"write {self.path} (mode {ENTRYPOINT_MODE:o})"]

    def run(self, _config: BuildConfig, _executor: CommandExecutor) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Writing entrypoint {self.path}")
        try:
            with open(self.path, 'x', encoding='utf-8') as f:
                f.write(ENTRYPOINT_SHEBANG)
                f.write(self.body)
            os.chmod(self.path, ENTRYPOINT_MODE)
        except FileExistsError as e:
            raise FileSystemError(f"Entrypoint already exists: {self.path}") from e
        except OSError as e:
            raise FileSystemError(f"Cannot write entrypoint {self.path}: {e}") from e

        return ActionResult(
            success=True,
            message=f"Wrote {self.path}",
            duration=time.time() - start
        )


@dataclass
class AppendMountEntryAction:
    """Declare a shared bind mount in the container config.

    Creates the host directory when missing. The config line is appended
    without checking for an existing identical line, so repeated builds
    against the same container accumulate duplicate entries.
    """
    name: str
    config_path: Path
    host: str
    container: str

    def render(self, _config: BuildConfig) -> list[str]:
        return [
            f"mkdir -p {self.host}",
            f"append to {self.config_path}: {mount_entry(self.host, self.container)}",
        ]

    def run(self, _config: BuildConfig, _executor: CommandExecutor) -> ActionResult:
        start = time.time()
        host_dir = Path(self.host)
        try:
            if not host_dir.exists():
                logger.info(f"[{self.name}] Creating host directory {host_dir}")
                host_dir.mkdir(parents=True)
        except OSError as e:
            raise FileSystemError(f"Cannot create mount directory {host_dir}: {e}") from e

        line = mount_entry(self.host, self.container)
        logger.info(f"[{self.name}] Appending to {self.config_path}: {line}")
        try:
            with open(self.config_path, 'a', encoding='utf-8') as f:
                f.write(line + '\n')
        except OSError as e:
            raise FileSystemError(f"Cannot update {self.config_path}: {e}") from e

        return ActionResult(
            success=True,
            message=f"Mounted {self.host} at {self.container}",
            duration=time.time() - start
        )
