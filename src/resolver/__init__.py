"""Resolver package for container rootfs and location resolution."""

from resolver.base import (
    ResolverError,
    ContainerNotFoundError,
    ContainerNotRunningError,
    RootfsQueryError,
    split_location,
)
from resolver.rootfs import RootfsResolver

__all__ = [
    "ResolverError",
    "ContainerNotFoundError",
    "ContainerNotRunningError",
    "RootfsQueryError",
    "split_location",
    "RootfsResolver",
]
