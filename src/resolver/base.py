"""Resolver errors and location parsing.

A location is either a bare host path or "<container>:<path>", where path
is taken relative to the container's rootfs.
"""

from typing import Optional

from common import BuildError

LOCATION_SEPARATOR = ':'


class ResolverError(BuildError):
    """Base exception for resolver errors."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class ContainerNotFoundError(ResolverError):
    """Container does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__("E101", f"Container not found: {name}")


class ContainerNotRunningError(ResolverError):
    """Container exists but is not running."""

    def __init__(self, name: str, state: str):
        self.name = name
        self.state = state
        super().__init__("E102", f"Container {name} is not running (state: {state})")


class RootfsQueryError(ResolverError):
    """Rootfs query output could not be understood."""

    def __init__(self, name: str, detail: str):
        self.name = name
        super().__init__("E103", f"Cannot determine rootfs of {name}: {detail}")


def split_location(location: str) -> tuple[Optional[str], str]:
    """Split "<container>:<path>" into (container, path).

    Bare locations (no separator, or an empty container part) return
    (None, location) so they are used verbatim as host paths.
    """
    name, sep, path = location.partition(LOCATION_SEPARATOR)
    if not sep or not name:
        return None, location
    return name, path
