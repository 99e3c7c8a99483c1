"""Command-line translators for LXC lifecycle verbs.

Each function maps typed options to the exact command line for one verb.
They are pure: no I/O, and flags always come out in the same order. Values
are quoted with shlex so that SubprocessExecutor's shlex.split recovers the
intended argv. global_opts is the string from BuildConfig.global_options()
and is placed right after the name flag.
"""

import shlex
from typing import Optional, Union

from manifest import ImageSpec

DEFAULT_TEMPLATE = 'download'
ROOTFS_CONFIG_KEY = 'lxc.rootfs.path'


def limit_key(key: str) -> str:
    """Translate a manifest limit key to the runtime's dotted form."""
    return key.replace('_', '.')


def _value(value: Union[str, int, float, bool]) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def create(
    name: str,
    image: ImageSpec,
    config: Optional[str] = None,
    rootfs_dir: Optional[str] = None,
    network: Optional[str] = None,
    global_opts: str = ''
) -> str:
    """lxc-create from the download template; template options follow '--'."""
    options = ''
    if config:
        options += f' --config={shlex.quote(config)}'
    if rootfs_dir:
        options += f' --dir={shlex.quote(rootfs_dir)}'
    if network:
        options += f' --network={shlex.quote(network)}'
    return (
        f"lxc-create --name={shlex.quote(name)}{global_opts}"
        f" --template={DEFAULT_TEMPLATE}{options}"
        f" -- --dist {shlex.quote(image.distro)}"
        f" --release {shlex.quote(image.release)}"
        f" --arch {shlex.quote(image.arch)}"
    )


def destroy(
    name: str,
    force: bool = False,
    snapshots: bool = False,
    global_opts: str = '',
    rcfile: Optional[str] = None
) -> str:
    options = ''
    if force:
        options += ' --force'
    if snapshots:
        options += ' --snapshots'
    if rcfile:
        options += f' --rcfile={shlex.quote(rcfile)}'
    return f"lxc-destroy --name={shlex.quote(name)}{global_opts}{options}"


def start(name: str, global_opts: str = '') -> str:
    return f"lxc-start --name={shlex.quote(name)}{global_opts}"


def stop(
    name: str,
    global_opts: str = '',
    reboot: bool = False,
    nowait: bool = False,
    timeout: Optional[int] = None,
    kill: bool = False
) -> str:
    """Clean shutdown by default; kill skips it, timeout bounds the wait."""
    options = ''
    if reboot:
        options += ' --reboot'
    if nowait:
        options += ' --nowait'
    if timeout is not None:
        options += f' --timeout={timeout}'
    if kill:
        options += ' --kill'
    return f"lxc-stop --name={shlex.quote(name)}{global_opts}{options}"


def attach(name: str, command: str, global_opts: str = '') -> str:
    """Run a shell command inside the container."""
    return f"lxc-attach --name={shlex.quote(name)}{global_opts} -- sh -c {shlex.quote(command)}"


def copy(source: str, destination: str, archive: bool = False, follow_link: bool = False) -> str:
    """Host-side recursive copy between resolved paths."""
    options = ' --recursive'
    if archive:
        options += ' --archive'
    if follow_link:
        options += ' --dereference'
    return f"cp{options} {shlex.quote(source)} {shlex.quote(destination)}"


def set_limit(name: str, key: str, value: Union[str, int, float, bool], global_opts: str = '') -> str:
    """Write a state object (e.g. cpuset.cpus) for a running container."""
    return (
        f"lxc-cgroup --name={shlex.quote(name)}{global_opts}"
        f" {shlex.quote(key)} {shlex.quote(_value(value))}"
    )


def config_query(name: str, key: str, global_opts: str = '') -> str:
    """Show configuration variable key of a container."""
    return f"lxc-info --name={shlex.quote(name)}{global_opts} --config={shlex.quote(key)}"


def info(
    name: str,
    ips: bool = False,
    pid: bool = False,
    stats: bool = False,
    no_humanize: bool = False,
    state: bool = False,
    global_opts: str = ''
) -> str:
    """Query runtime information about a container."""
    options = ''
    if ips:
        options += ' --ips'
    if pid:
        options += ' --pid'
    if stats:
        options += ' --stats'
    if no_humanize:
        options += ' --no-humanize'
    if state:
        options += ' --state'
    return f"lxc-info --name={shlex.quote(name)}{global_opts}{options}"


def state_query(name: str, global_opts: str = '') -> str:
    return info(name, state=True, global_opts=global_opts)


def list_containers(
    fancy: bool = False,
    active: bool = False,
    running: bool = False,
    stopped: bool = False,
    global_opts: str = '',
    frozen: bool = False,
    defined: bool = False,
    name_filter: Optional[str] = None
) -> str:
    options = ''
    if fancy:
        options += ' --fancy'
    if active:
        options += ' --active'
    if running:
        options += ' --running'
    if frozen:
        options += ' --frozen'
    if stopped:
        options += ' --stopped'
    if defined:
        options += ' --defined'
    if name_filter:
        options += f' --filter={shlex.quote(name_filter)}'
    return f"lxc-ls{global_opts}{options}"
