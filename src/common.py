"""Common utilities and types for container provisioning."""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Base class for errors that abort a build."""


class ExecutionError(BuildError):
    """External command could not be started."""


class FileSystemError(BuildError):
    """Host filesystem operation failed."""


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0


@dataclass(frozen=True)
class Verbosity:
    """Visibility of subprocess output for the duration of one build.

    Attributes:
        show_stdout: Inherit stdout from the parent instead of discarding it
        show_stderr: Inherit stderr from the parent instead of discarding it
    """
    show_stdout: bool = True
    show_stderr: bool = True

    @classmethod
    def from_quiet(cls, quiet: bool) -> 'Verbosity':
        return cls(show_stdout=not quiet, show_stderr=not quiet)


@runtime_checkable
class CommandExecutor(Protocol):
    """Protocol for things that run command lines."""

    def run(self, cmdline: str) -> int:
        """Run cmdline to completion and return its exit status."""

    def capture(self, cmdline: str) -> tuple[int, str, str]:
        """Run cmdline and return (returncode, stdout, stderr)."""


def split_command(cmdline: str) -> list[str]:
    """Split a command line into argv, rejecting empty input."""
    try:
        argv = shlex.split(cmdline)
    except ValueError as e:
        raise ExecutionError(f"Cannot parse command line {cmdline!r}: {e}")
    if not argv:
        raise ExecutionError("Empty command line")
    return argv


class SubprocessExecutor:
    """Spawn-and-wait executor backed by subprocess.

    One process per call, no timeout and no retry. Output of run() is
    inherited or discarded according to the verbosity; capture() always
    collects it.
    """

    def __init__(self, verbosity: Verbosity = Verbosity()):
        self.verbosity = verbosity

    def run(self, cmdline: str) -> int:
        argv = split_command(cmdline)
        logger.debug(f"Running: {cmdline}")
        stdout = None if self.verbosity.show_stdout else subprocess.DEVNULL
        stderr = None if self.verbosity.show_stderr else subprocess.DEVNULL
        try:
            result = subprocess.run(
                argv,
                stdout=stdout,
                stderr=stderr,
                check=False  # We handle return codes explicitly
            )
        except OSError as e:
            raise ExecutionError(f"Failed to start {argv[0]}: {e}") from e
        return result.returncode

    def capture(self, cmdline: str) -> tuple[int, str, str]:
        argv = split_command(cmdline)
        logger.debug(f"Querying: {cmdline}")
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                check=False
            )
        except OSError as e:
            raise ExecutionError(f"Failed to start {argv[0]}: {e}") from e
        return result.returncode, result.stdout, result.stderr
