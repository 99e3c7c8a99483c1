#!/usr/bin/env python3
"""Tests for provision/ - build planning and fail-fast execution.

All tests run against a recording executor; nothing is spawned.
"""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from common import FileSystemError
from conftest import FakeExecutor
from manifest import BuildManifest
from provision import ProvisioningOrchestrator, StepKind, plan_steps
from resolver import ContainerNotFoundError, RootfsResolver

CREATE_WEB = 'lxc-create --name=web --template=download -- --dist alpine --release 3.19 --arch amd64'


def _manifest(data, **sections):
    return BuildManifest.from_dict({**data, **sections})


class TestPlanSteps:
    """Test step list construction."""

    def test_empty_manifest(self, web_manifest_data, build_config, executor):
        steps = plan_steps(_manifest(web_manifest_data), build_config, RootfsResolver(executor))

        assert [s.name for s in steps] == ['create', 'start', 'restart']

    def test_full_manifest_order(self, web_manifest_data, build_config, executor):
        manifest = _manifest(
            web_manifest_data,
            entrypoint='echo up',
            copy=[{'host': './a', 'container': 'web:/a'}, {'host': './b', 'container': 'web:/b'}],
            shared=[{'host': '/data', 'container': '/mnt/data'}],
            run=[{'cmd': 'echo hi'}],
            limits={'memory_limit_in_bytes': '512M', 'cpuset_cpus': '0,3'},
        )

        steps = plan_steps(manifest, build_config, RootfsResolver(executor))

        assert [s.name for s in steps] == [
            'create', 'entrypoint', 'start', 'copy-1', 'copy-2', 'mount-1',
            'restart-mounts', 'run-1', 'limit-cpuset.cpus', 'limit-memory.limit.in.bytes',
            'restart',
        ]
        assert steps[1].kind is StepKind.ENTRYPOINT
        assert steps[-1].kind is StepKind.RESTART

    def test_entrypoint_path_follows_rootfs_override(self, web_manifest_data, build_config, executor):
        data = dict(web_manifest_data, entrypoint='true')
        data['image'] = dict(data['image'], dir='/srv/rootfs/web')

        steps = plan_steps(BuildManifest.from_dict(data), build_config, RootfsResolver(executor))

        assert steps[1].action.path == Path('/srv/rootfs/web/etc/profile.d/lxcbuild-entrypoint.sh')

    def test_entrypoint_default_rootfs(self, web_manifest_data, build_config, executor):
        manifest = _manifest(web_manifest_data, entrypoint='true')
        steps = plan_steps(manifest, build_config, RootfsResolver(executor))

        expected = build_config.default_rootfs('web') / 'etc' / 'profile.d' / 'lxcbuild-entrypoint.sh'
        assert steps[1].action.path == expected


class TestBuildSequence:
    """Test command sequences produced by a build."""

    def test_empty_manifest(self, web_manifest_data, build_config, executor):
        orchestrator = ProvisioningOrchestrator(_manifest(web_manifest_data), build_config, executor)

        assert orchestrator.run() is True
        assert executor.commands == [
            CREATE_WEB,
            'lxc-start --name=web',
            'lxc-stop --name=web',
            'lxc-start --name=web',
        ]

    def test_web_scenario(self, web_manifest_data, build_config, executor):
        manifest = _manifest(web_manifest_data, run=[{'cmd': 'echo hi'}])

        assert ProvisioningOrchestrator(manifest, build_config, executor).run() is True
        assert executor.commands == [
            CREATE_WEB,
            'lxc-start --name=web',
            "lxc-attach --name=web -- sh -c 'echo hi'",
            'lxc-stop --name=web',
            'lxc-start --name=web',
        ]
        assert 'cp' not in executor.verbs()
        assert 'lxc-cgroup' not in executor.verbs()

    def test_copies_in_declared_order(self, web_manifest_data, build_config):
        executor = FakeExecutor(rootfs={'web': '/var/lib/lxc/web/rootfs'})
        manifest = _manifest(web_manifest_data, copy=[
            {'host': './site', 'container': 'web:/srv/site'},
            {'host': '/etc/resolv.conf', 'container': 'web:/etc/resolv.conf', 'follow_link': True},
            {'host': 'web:/etc/hostname', 'container': '/tmp/hostname'},
        ])

        assert ProvisioningOrchestrator(manifest, build_config, executor).run() is True
        assert [c for c in executor.commands if c.startswith('cp ')] == [
            'cp --recursive ./site /var/lib/lxc/web/rootfs/srv/site',
            'cp --recursive --dereference /etc/resolv.conf /var/lib/lxc/web/rootfs/etc/resolv.conf',
            'cp --recursive /var/lib/lxc/web/rootfs/etc/hostname /tmp/hostname',
        ]

    def test_rootfs_looked_up_once_per_build(self, web_manifest_data, build_config):
        executor = FakeExecutor(rootfs={'web': '/r'})
        manifest = _manifest(web_manifest_data, copy=[
            {'host': './a', 'container': 'web:/a'},
            {'host': './b', 'container': 'web:/b'},
        ])

        ProvisioningOrchestrator(manifest, build_config, executor).run()

        assert len(executor.queries) == 2

    def test_limits_sorted_and_dotted(self, web_manifest_data, build_config, executor):
        manifest = _manifest(web_manifest_data,
                             limits={'memory_limit_in_bytes': '512M', 'cpuset_cpus': '0,3'})

        ProvisioningOrchestrator(manifest, build_config, executor).run()

        assert [c for c in executor.commands if c.startswith('lxc-cgroup')] == [
            'lxc-cgroup --name=web cpuset.cpus 0,3',
            'lxc-cgroup --name=web memory.limit.in.bytes 512M',
        ]
        assert executor.verbs()[-2:] == ['lxc-stop', 'lxc-start']

    def test_global_options_on_every_lxc_command(self, web_manifest_data, build_config, executor):
        build_config.logpriority = 'DEBUG'
        manifest = _manifest(web_manifest_data, run=[{'cmd': 'true'}], limits={'cpu_shares': 512})

        ProvisioningOrchestrator(manifest, build_config, executor).run()

        assert all('--logpriority=DEBUG' in c for c in executor.commands)


class TestEntrypoint:
    """Test entrypoint materialization within a build."""

    def test_written_before_start(self, web_manifest_data, build_config, executor):
        manifest = _manifest(web_manifest_data, entrypoint='exec nginx\n')

        assert ProvisioningOrchestrator(manifest, build_config, executor).run() is True

        script = build_config.default_rootfs('web') / 'etc' / 'profile.d' / 'lxcbuild-entrypoint.sh'
        assert script.read_text() == '#!/bin/sh\nexec nginx\n'

    def test_existing_script_aborts_build(self, web_manifest_data, build_config, executor):
        script = build_config.default_rootfs('web') / 'etc' / 'profile.d' / 'lxcbuild-entrypoint.sh'
        script.write_text('keep me')
        manifest = _manifest(web_manifest_data, entrypoint='echo new', run=[{'cmd': 'true'}])
        orchestrator = ProvisioningOrchestrator(manifest, build_config, executor)

        assert orchestrator.run() is False
        assert script.read_text() == 'keep me'
        assert executor.commands == [CREATE_WEB]
        assert orchestrator.failure.step == 'entrypoint'
        assert isinstance(orchestrator.failure.error, FileSystemError)


class TestFailFast:
    """Test that the first failure stops the build."""

    def test_failing_create_runs_nothing_else(self, web_manifest_data, build_config, tmp_path):
        executor = FakeExecutor(fail_on=['lxc-create'], rootfs={'web': '/r'})
        manifest = _manifest(
            web_manifest_data,
            copy=[{'host': './a', 'container': 'web:/a'}],
            shared=[{'host': str(tmp_path / 'data'), 'container': '/mnt/data'}],
            run=[{'cmd': 'echo hi'}],
            limits={'cpuset_cpus': '0,3'},
        )
        orchestrator = ProvisioningOrchestrator(manifest, build_config, executor)

        assert orchestrator.run() is False
        assert executor.commands == [CREATE_WEB]
        assert executor.queries == []
        assert not (tmp_path / 'data').exists()
        assert orchestrator.failure.step == 'create'
        assert 'exit status 1' in str(orchestrator.failure)

    def test_failing_run_command_stops_remaining(self, web_manifest_data, build_config):
        executor = FakeExecutor(fail_on=['exit 3'])
        manifest = _manifest(web_manifest_data, run=[
            {'cmd': 'echo one'}, {'cmd': 'exit 3'}, {'cmd': 'echo three'},
        ], limits={'cpuset_cpus': '0'})
        orchestrator = ProvisioningOrchestrator(manifest, build_config, executor)

        assert orchestrator.run() is False
        assert executor.verbs() == ['lxc-create', 'lxc-start', 'lxc-attach', 'lxc-attach']
        assert orchestrator.failure.step == 'run-2'

    def test_report_marks_remaining_skipped(self, web_manifest_data, build_config):
        executor = FakeExecutor(fail_on=['lxc-start'])
        orchestrator = ProvisioningOrchestrator(
            _manifest(web_manifest_data, run=[{'cmd': 'true'}]), build_config, executor
        )

        orchestrator.run()

        statuses = [(s.name, s.status) for s in orchestrator.report.steps]
        assert statuses == [
            ('create', 'passed'),
            ('start', 'failed'),
            ('run-1', 'skipped'),
            ('restart', 'skipped'),
        ]

    def test_unknown_container_in_copy(self, web_manifest_data, build_config, executor):
        manifest = _manifest(web_manifest_data, copy=[{'host': './a', 'container': 'db:/a'}])
        orchestrator = ProvisioningOrchestrator(manifest, build_config, executor)

        assert orchestrator.run() is False
        assert orchestrator.failure.step == 'copy-1'
        assert isinstance(orchestrator.failure.error, ContainerNotFoundError)
        assert executor.verbs() == ['lxc-create', 'lxc-start']


class TestSharedMounts:
    """Test shared mount declaration."""

    def test_restart_follows_mounts(self, web_manifest_data, build_config, executor, tmp_path):
        manifest = _manifest(web_manifest_data,
                             shared=[{'host': str(tmp_path / 'data'), 'container': '/mnt/data'}])

        assert ProvisioningOrchestrator(manifest, build_config, executor).run() is True
        assert executor.verbs() == [
            'lxc-create', 'lxc-start', 'lxc-stop', 'lxc-start', 'lxc-stop', 'lxc-start',
        ]
        assert (tmp_path / 'data').is_dir()

    def test_two_builds_append_two_lines(self, web_manifest_data, build_config, tmp_path):
        host = str(tmp_path / 'data')
        manifest = _manifest(web_manifest_data, shared=[{'host': host, 'container': '/mnt/data'}])

        for _ in range(2):
            assert ProvisioningOrchestrator(manifest, build_config, FakeExecutor()).run() is True

        lines = build_config.config_path('web').read_text().splitlines()
        entry = f'lxc.mount.entry = {host} /mnt/data none bind,create=dir 0 0'
        assert lines.count(entry) == 2


class TestDryRun:
    """Test preview mode."""

    def test_nothing_executed(self, web_manifest_data, build_config, executor, capsys):
        manifest = _manifest(web_manifest_data, entrypoint='true',
                             copy=[{'host': './a', 'container': 'web:/a'}])
        orchestrator = ProvisioningOrchestrator(manifest, build_config, executor, dry_run=True)

        assert orchestrator.run() is True

        assert executor.commands == []
        assert executor.queries == []
        out = capsys.readouterr().out
        assert 'DRY-RUN BUILD: web' in out
        assert CREATE_WEB in out
        assert 'cp --recursive ./a web:/a' in out
        assert 'Summary: 5 steps' in out
        assert not (build_config.default_rootfs('web') / 'etc' / 'profile.d' / 'lxcbuild-entrypoint.sh').exists()


class TestReports:
    """Test report files written by a build."""

    def test_passed_report_written(self, web_manifest_data, build_config, executor, tmp_path):
        build_config.report_dir = tmp_path / 'reports'

        ProvisioningOrchestrator(_manifest(web_manifest_data), build_config, executor).run()

        (json_file,) = (tmp_path / 'reports').glob('*.web.passed.json')
        data = json.loads(json_file.read_text())
        assert data['success'] is True
        assert [s['name'] for s in data['steps']] == ['create', 'start', 'restart']
        assert list((tmp_path / 'reports').glob('*.web.passed.md'))

    def test_failed_report_carries_error(self, web_manifest_data, build_config, tmp_path):
        build_config.report_dir = tmp_path / 'reports'
        executor = FakeExecutor(fail_on=['lxc-create'])

        ProvisioningOrchestrator(_manifest(web_manifest_data), build_config, executor).run()

        (json_file,) = (tmp_path / 'reports').glob('*.web.failed.json')
        assert 'exit status 1' in json.loads(json_file.read_text())['error']

    def test_dry_run_writes_no_report(self, web_manifest_data, build_config, executor, tmp_path):
        build_config.report_dir = tmp_path / 'reports'

        ProvisioningOrchestrator(_manifest(web_manifest_data), build_config, executor, dry_run=True).run()

        assert not (tmp_path / 'reports').exists()

    def test_uncreatable_report_dir_stops_before_first_step(self, web_manifest_data, build_config,
                                                             executor, tmp_path):
        blocker = tmp_path / 'reports'
        blocker.write_text('not a directory')
        build_config.report_dir = blocker / 'web'

        orchestrator = ProvisioningOrchestrator(_manifest(web_manifest_data), build_config, executor)
        with pytest.raises(FileSystemError, match='Cannot create report directory'):
            orchestrator.run()

        assert executor.commands == []

    def test_unwritable_report_keeps_build_result(self, web_manifest_data, build_config,
                                                  tmp_path, caplog):
        reports = tmp_path / 'reports'
        build_config.report_dir = reports

        class _Executor(FakeExecutor):
            """Replaces the report directory with a file once the build is under way."""

            def run(self, cmdline):
                if reports.is_dir():
                    reports.rmdir()
                    reports.write_text('not a directory')
                return super().run(cmdline)

        executor = _Executor()
        orchestrator = ProvisioningOrchestrator(_manifest(web_manifest_data), build_config, executor)

        assert orchestrator.run() is True
        assert len(executor.commands) == 4
        assert 'Build report not written' in caplog.text
