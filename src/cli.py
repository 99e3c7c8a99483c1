#!/usr/bin/env python3
"""CLI entry point for lxcbuild.

Usage:
    lxcbuild build web.toml [--dry-run] [--report-dir DIR] [--json-output]
    lxcbuild validate web.toml
    lxcbuild create web -i alpine:3.19:amd64
    lxcbuild exec web 'apk add nginx'
    lxcbuild copy ./site web:/srv/site --archive
    lxcbuild config web --state-object cpuset.cpus:0,3
    lxcbuild config web --ips --pid
    lxcbuild start|stop web
    lxcbuild stop web --timeout 10
    lxcbuild list --fancy
    lxcbuild delete web,db --force

Global options (-q, -v, -o, -l, -P, --config) may be given before or
after the subcommand.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import commands
from actions import (
    AttachRunAction,
    CopyAction,
    CreateContainerAction,
    StartContainerAction,
    StopContainerAction,
)
from common import BuildError, CommandExecutor, SubprocessExecutor
from config import BuildConfig, load_build_config
from manifest import CopySpec, ImageSpec, ManifestError, load_manifest
from provision import ProvisioningOrchestrator
from resolver import RootfsResolver

DEFAULT_IMAGE = 'alpine:3.19:amd64'

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def _global_options(parser: argparse.ArgumentParser, suppress: bool) -> None:
    """Add options accepted both before and after the subcommand.

    Subcommand copies use SUPPRESS defaults so they do not clobber values
    given before the subcommand.
    """
    def default(value):
        return argparse.SUPPRESS if suppress else value

    parser.add_argument('--logfile', '-o', metavar='FILE', default=default(None),
                        help='Runtime log file passed to lxc commands')
    parser.add_argument('--logpriority', '-l', metavar='LEVEL', default=default(None),
                        help='Runtime log priority passed to lxc commands')
    parser.add_argument('--lxcpath', '-P', metavar='PATH', default=default(None),
                        help='Use specified container path')
    parser.add_argument('--quiet', '-q', action='store_true', default=default(False),
                        help="Don't show progress information or command output")
    parser.add_argument('--verbose', '-v', action='store_true', default=default(False),
                        help='Enable verbose logging')
    parser.add_argument('--config', dest='config_file', metavar='FILE', default=default(None),
                        help='Load configuration file FILE')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lxcbuild',
        description='Build and manage LXC containers from declarative manifests',
    )
    _global_options(parser, suppress=False)
    sub = parser.add_subparsers(dest='command', metavar='<command>')

    def add(name, help_text, aliases=()):
        p = sub.add_parser(name, help=help_text, aliases=list(aliases))
        _global_options(p, suppress=True)
        p.set_defaults(command=name)
        return p

    p = add('build', 'Provision a container from a manifest')
    p.add_argument('manifest', type=Path, help='Manifest file (.toml, .yaml or .json)')
    p.add_argument('--dry-run', action='store_true', help='Show the steps without running them')
    p.add_argument('--report-dir', '-r', type=Path, help='Write JSON/markdown build reports to DIR')
    p.add_argument('--json-output', action='store_true',
                   help='Output structured JSON to stdout (logs go to stderr)')

    p = add('validate', 'Check a manifest without building')
    p.add_argument('manifest', type=Path, help='Manifest file')

    p = add('create', 'Create a container from an image', aliases=('init', 'new'))
    p.add_argument('name', help='Name for the new container')
    p.add_argument('--image', '-i', default=DEFAULT_IMAGE, metavar='DISTRO:RELEASE:ARCH',
                   help=f'Image to use to setup container (default: {DEFAULT_IMAGE})')
    p.add_argument('--create-config', '-c', metavar='FILE', help='Config file for the new container')
    p.add_argument('--dir', '-d', metavar='DIR', help='Place rootfs directory under DIR')
    p.add_argument('--network', help='Network name')

    p = add('delete', 'Delete containers', aliases=('rm', 'destroy'))
    p.add_argument('names', metavar='NAME[,NAME...]', help='Containers to delete')
    p.add_argument('--force', '-f', action='store_true', help='Force the removal of running instances')
    p.add_argument('--snapshots', '-s', action='store_true', help='Destroy including all snapshots')
    p.add_argument('--rcfile', metavar='FILE', help='Load configuration file FILE')

    p = add('exec', 'Execute a command in a container', aliases=('execute',))
    p.add_argument('name', help='Name of the container')
    p.add_argument('cmd', metavar='COMMAND', help='Shell command to execute')

    p = add('start', 'Start a container', aliases=('up', 'boot'))
    p.add_argument('name', help='Name of the container')

    p = add('stop', 'Stop a container', aliases=('halt', 'terminate'))
    p.add_argument('name', help='Name of the container')
    p.add_argument('--reboot', '-r', action='store_true', help='Reboot the container')
    p.add_argument('--nowait', '-W', action='store_true', help="Don't wait for shutdown or reboot to complete")
    p.add_argument('--timeout', '-t', type=int, metavar='T', help='Wait T seconds before hard-stopping')
    p.add_argument('--kill', '-k', action='store_true', help='Kill container rather than request clean shutdown')

    p = add('list', 'List containers', aliases=('ls',))
    p.add_argument('--fancy', '-f', action='store_true', help='Use a column-based output')
    p.add_argument('--active', action='store_true', help='List only active containers')
    p.add_argument('--running', action='store_true', help='List only running containers')
    p.add_argument('--frozen', action='store_true', help='List only frozen containers')
    p.add_argument('--stopped', action='store_true', help='List only stopped containers')
    p.add_argument('--defined', action='store_true', help='List only defined containers')
    p.add_argument('--filter', dest='name_filter', metavar='REGEX', help='Filter container names by regular expression')

    p = add('copy', 'Copy files between the host and containers', aliases=('cp',))
    p.add_argument('source', metavar='[CONTAINER:]SRC_PATH')
    p.add_argument('destination', metavar='[CONTAINER:]DEST_PATH')
    p.add_argument('--archive', '-a', action='store_true', help='Archive mode (copy all uid/gid information)')
    p.add_argument('--follow-link', '-L', action='store_true', help='Always follow symbol links in SRC_PATH')

    p = add('config', 'Get or set configuration of a container', aliases=('cf',))
    p.add_argument('name', help='Name of the container')
    p.add_argument('--state-object', metavar='KEY:VALUE',
                   help="Set a state object (for example 'cpuset.cpus:0,3')")
    p.add_argument('--key', '-c', metavar='KEY', help='Show configuration variable KEY')
    p.add_argument('--ips', '-i', action='store_true', help='Show the IP addresses')
    p.add_argument('--pid', '-p', action='store_true', help='Show the process id of the init container')
    p.add_argument('--stats', '-S', action='store_true', help='Show usage stats')
    p.add_argument('--no-humanize', '-H', action='store_true', help='Show stats as raw numbers, not humanized')
    p.add_argument('--state', '-s', action='store_true', help='Show the state of the container (default)')

    return parser


def _setup_logging(verbose: bool, quiet: bool, json_output: bool) -> None:
    """Configure logging based on flags."""
    root_logger = logging.getLogger()
    if json_output:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        root_logger.addHandler(stderr_handler)

    if verbose:
        root_logger.setLevel(logging.DEBUG)
    elif quiet:
        root_logger.setLevel(logging.WARNING)
    else:
        root_logger.setLevel(logging.INFO)


def _parse_image(value: str) -> ImageSpec:
    """Parse DISTRO:RELEASE:ARCH."""
    parts = value.split(':')
    if len(parts) != 3 or not all(parts):
        raise ManifestError(f"Image must be DISTRO:RELEASE:ARCH, got '{value}'")
    return ImageSpec(distro=parts[0], release=parts[1], arch=parts[2])


def _report(result, what: str) -> int:
    if not result.success:
        print(f"Error: {what}: {result.message}", file=sys.stderr)
        return 1
    return 0


def cmd_build(args, config: BuildConfig, executor: CommandExecutor) -> int:
    manifest = load_manifest(args.manifest)
    if args.report_dir:
        config.report_dir = args.report_dir

    orchestrator = ProvisioningOrchestrator(manifest, config, executor, dry_run=args.dry_run)
    success = orchestrator.run()

    if args.json_output and not args.dry_run:
        print(json.dumps(orchestrator.report.to_dict(), indent=2))

    if not success:
        print(f"Error: build of '{manifest.name}' aborted. {orchestrator.failure}", file=sys.stderr)
        return 1
    return 0


def cmd_validate(args, config: BuildConfig, _executor: CommandExecutor) -> int:
    manifest = load_manifest(args.manifest)
    image = manifest.image
    print(f"Manifest '{manifest.name}' is valid")
    print(f"  image:      {image.distro}/{image.release}/{image.arch}")
    print(f"  entrypoint: {'yes' if manifest.entrypoint is not None else 'no'}")
    print(f"  copy:       {len(manifest.copy)}")
    print(f"  shared:     {len(manifest.shared)}")
    print(f"  run:        {len(manifest.run)}")
    print(f"  limits:     {', '.join(commands.limit_key(k) for k, _ in manifest.sorted_limits()) or 'none'}")
    return 0


def cmd_create(args, config: BuildConfig, executor: CommandExecutor) -> int:
    image = _parse_image(args.image)
    image = ImageSpec(
        distro=image.distro, release=image.release, arch=image.arch,
        config=args.create_config, dir=args.dir, network=args.network,
    )
    action = CreateContainerAction(name='create', container=args.name, image=image)
    return _report(action.run(config, executor), f"create {args.name}")


def cmd_delete(args, config: BuildConfig, executor: CommandExecutor) -> int:
    names = [n for n in args.names.split(',') if n]
    for name in names:
        logger.info(f"Deleting {name}...")
        cmdline = commands.destroy(name, force=args.force, snapshots=args.snapshots,
                                   global_opts=config.global_options(), rcfile=args.rcfile)
        rc = executor.run(cmdline)
        if rc != 0:
            print(f"Error: delete {name}: exit status {rc}", file=sys.stderr)
            return 1
    return 0


def cmd_exec(args, config: BuildConfig, executor: CommandExecutor) -> int:
    action = AttachRunAction(name='exec', container=args.name, command=args.cmd)
    return _report(action.run(config, executor), f"exec in {args.name}")


def cmd_start(args, config: BuildConfig, executor: CommandExecutor) -> int:
    action = StartContainerAction(name='start', container=args.name)
    return _report(action.run(config, executor), f"start {args.name}")


def cmd_stop(args, config: BuildConfig, executor: CommandExecutor) -> int:
    action = StopContainerAction(name='stop', container=args.name, kill=args.kill,
                                 timeout=args.timeout, nowait=args.nowait, reboot=args.reboot)
    return _report(action.run(config, executor), f"stop {args.name}")


def cmd_list(args, config: BuildConfig, executor: CommandExecutor) -> int:
    cmdline = commands.list_containers(
        fancy=args.fancy, active=args.active, running=args.running, stopped=args.stopped,
        frozen=args.frozen, defined=args.defined, name_filter=args.name_filter,
        global_opts=config.global_options(),
    )
    rc, out, err = executor.capture(cmdline)
    if rc != 0:
        print(f"Error: list: {err.strip() or f'exit status {rc}'}", file=sys.stderr)
        return 1
    print(out, end='')
    return 0


def cmd_copy(args, config: BuildConfig, executor: CommandExecutor) -> int:
    spec = CopySpec(host=args.source, container=args.destination,
                    archive=args.archive, follow_link=args.follow_link)
    action = CopyAction(name='copy', spec=spec,
                        resolver=RootfsResolver(executor, config.global_options()))
    return _report(action.run(config, executor), "copy")


def cmd_config(args, config: BuildConfig, executor: CommandExecutor) -> int:
    if args.state_object:
        key, sep, value = args.state_object.partition(':')
        if not sep or not key:
            print("Error: --state-object must be KEY:VALUE", file=sys.stderr)
            return 1
        # Keys are already in dotted runtime form, e.g. memory.oom_control
        cmdline = commands.set_limit(args.name, key, value, config.global_options())
        logger.info(f"Setting {key}={value} on {args.name}")
        rc = executor.run(cmdline)
        if rc != 0:
            print(f"Error: set {key} on {args.name}: exit status {rc}", file=sys.stderr)
            return 1
        return 0

    if args.key:
        cmdline = commands.config_query(args.name, args.key, config.global_options())
    else:
        show_state = args.state or not (args.ips or args.pid or args.stats)
        cmdline = commands.info(
            args.name, ips=args.ips, pid=args.pid, stats=args.stats,
            no_humanize=args.no_humanize, state=show_state,
            global_opts=config.global_options(),
        )
    rc, out, err = executor.capture(cmdline)
    if rc != 0:
        print(f"Error: config {args.name}: {err.strip() or f'exit status {rc}'}", file=sys.stderr)
        return 1
    print(out, end='')
    return 0


HANDLERS = {
    'build': cmd_build,
    'validate': cmd_validate,
    'create': cmd_create,
    'delete': cmd_delete,
    'exec': cmd_exec,
    'start': cmd_start,
    'stop': cmd_stop,
    'list': cmd_list,
    'copy': cmd_copy,
    'config': cmd_config,
}


def main(argv: Optional[list] = None, executor: Optional[CommandExecutor] = None) -> int:
    """CLI entry point.

    Args:
        argv: Arguments (default: sys.argv[1:])
        executor: Executor override; a SubprocessExecutor is created otherwise
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    _setup_logging(args.verbose, args.quiet, getattr(args, 'json_output', False))

    try:
        config = load_build_config(
            args.config_file,
            lxcpath=args.lxcpath,
            logfile=args.logfile,
            logpriority=args.logpriority,
        )
        if executor is None:
            executor = SubprocessExecutor(config.verbosity(args.quiet))
        return HANDLERS[args.command](args, config, executor)
    except BuildError as e:
        # Terminal errors are shown even in quiet mode
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
