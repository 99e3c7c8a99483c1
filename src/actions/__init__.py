"""Provisioning step actions."""

from actions.lxc import (
    CreateContainerAction,
    StartContainerAction,
    StopContainerAction,
    RestartContainerAction,
    AttachRunAction,
    SetLimitAction,
    CopyAction,
)
from actions.file import WriteEntrypointAction, AppendMountEntryAction

__all__ = [
    'CreateContainerAction',
    'StartContainerAction',
    'StopContainerAction',
    'RestartContainerAction',
    'AttachRunAction',
    'SetLimitAction',
    'CopyAction',
    'WriteEntrypointAction',
    'AppendMountEntryAction',
]
