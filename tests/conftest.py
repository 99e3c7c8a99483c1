"""Shared pytest fixtures for lxcbuild tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


class FakeExecutor:
    """Records command lines instead of spawning processes.

    Attributes:
        commands: Every command line passed to run(), in order
        queries: Every command line passed to capture(), in order
        fail_on: Substrings; a run() command containing one exits 1
        rootfs: Container name -> rootfs path answered by lxc-info queries
        states: Container name -> state; missing names are unknown containers
    """

    def __init__(self, fail_on=(), rootfs=None, states=None):
        self.commands: list[str] = []
        self.queries: list[str] = []
        self.fail_on = list(fail_on)
        self.rootfs = dict(rootfs or {})
        self.states = dict(states) if states is not None else {n: 'RUNNING' for n in self.rootfs}

    def run(self, cmdline: str) -> int:
        self.commands.append(cmdline)
        if any(marker in cmdline for marker in self.fail_on):
            return 1
        return 0

    def capture(self, cmdline: str) -> tuple[int, str, str]:
        self.queries.append(cmdline)
        name = cmdline.split('--name=', 1)[1].split()[0] if '--name=' in cmdline else ''
        if cmdline.endswith('--state'):
            if name not in self.states:
                return 1, '', f"{name} doesn't exist\n"
            return 0, f"State:          {self.states[name]}\n", ''
        if '--config=lxc.rootfs.path' in cmdline:
            return 0, f"lxc.rootfs.path = dir:{self.rootfs[name]}\n", ''
        return 0, '', ''

    def verbs(self) -> list[str]:
        """First word of every command line run, e.g. ['lxc-create', 'lxc-start']."""
        return [c.split()[0] for c in self.commands]


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def build_config(tmp_path):
    """BuildConfig rooted in a temporary lxcpath with one container dir."""
    from config import BuildConfig

    lxcpath = tmp_path / 'lxc'
    (lxcpath / 'web' / 'rootfs' / 'etc' / 'profile.d').mkdir(parents=True)
    (lxcpath / 'web' / 'config').write_text("lxc.uts.name = web\n")
    return BuildConfig(lxcpath=str(lxcpath))


@pytest.fixture
def web_manifest_data():
    return {
        'name': 'web',
        'image': {'distro': 'alpine', 'release': '3.19', 'arch': 'amd64'},
    }
