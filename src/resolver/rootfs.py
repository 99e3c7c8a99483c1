"""Rootfs resolution for running containers."""

import logging
from typing import Optional

import commands
from common import CommandExecutor
from resolver.base import (
    ContainerNotFoundError,
    ContainerNotRunningError,
    RootfsQueryError,
    split_location,
)

logger = logging.getLogger(__name__)

RUNNING = 'RUNNING'


def _parse_state(output: str) -> Optional[str]:
    """Extract the value of "State: RUNNING" style output."""
    for line in output.splitlines():
        key, sep, value = line.partition(':')
        if sep and key.strip().lower() == 'state':
            return value.strip().upper()
    return None


def _parse_config_value(output: str, key: str) -> Optional[str]:
    """Extract the value of a "key = value" line."""
    for line in output.splitlines():
        k, sep, value = line.partition('=')
        if sep and k.strip() == key:
            return value.strip()
    return None


def _strip_backend(rootfs: str) -> str:
    """Drop a storage backend prefix such as "dir:" from a rootfs value."""
    backend, sep, path = rootfs.partition(':')
    if sep and not backend.startswith('/'):
        return path
    return rootfs


class RootfsResolver:
    """Resolves container rootfs paths by querying the runtime.

    Results are cached for the lifetime of the resolver, which is one build.
    """

    def __init__(self, executor: CommandExecutor, global_opts: str = ''):
        self.executor = executor
        self.global_opts = global_opts
        self._cache: dict[str, str] = {}

    def resolve(self, name: str) -> str:
        """Return the absolute rootfs path of a running container.

        Raises:
            ContainerNotFoundError: If the container does not exist
            ContainerNotRunningError: If the container is not running
            RootfsQueryError: If the runtime output has no rootfs value
        """
        if name in self._cache:
            return self._cache[name]

        rc, out, err = self.executor.capture(commands.state_query(name, self.global_opts))
        if rc != 0:
            logger.debug(f"State query for {name} failed: {err.strip()}")
            raise ContainerNotFoundError(name)
        state = _parse_state(out)
        if state != RUNNING:
            raise ContainerNotRunningError(name, state or 'unknown')

        query = commands.config_query(name, commands.ROOTFS_CONFIG_KEY, self.global_opts)
        rc, out, err = self.executor.capture(query)
        if rc != 0:
            raise RootfsQueryError(name, err.strip() or f"exit status {rc}")
        value = _parse_config_value(out, commands.ROOTFS_CONFIG_KEY)
        if not value:
            raise RootfsQueryError(name, f"no {commands.ROOTFS_CONFIG_KEY} in output")

        rootfs = _strip_backend(value)
        logger.debug(f"Resolved rootfs of {name}: {rootfs}")
        self._cache[name] = rootfs
        return rootfs

    def resolve_location(self, location: str) -> str:
        """Turn a location into a host path.

        "<container>:<path>" becomes resolve(container) + path; anything else
        is returned unchanged.
        """
        name, path = split_location(location)
        if name is None:
            return location
        return self.resolve(name) + path
