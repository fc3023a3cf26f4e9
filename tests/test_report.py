"""Tests for run reports."""

import json
from pathlib import Path

from common import ActionResult
from reporting import RunReport, SessionOutcome


def _report(tmp_path):
    report = RunReport(scenario='arch-install', disk_image=Path('/srv/vm.img'),
                       report_dir=tmp_path / 'reports')
    report.start()
    return report


def _timed_out_run(tmp_path):
    report = _report(tmp_path)
    report.record('ensure_disk', 'Ensure raw disk image exists',
                  ActionResult(success=True, message='Created 20G disk image vm.img', duration=0.5))
    report.skip('ensure_media', 'Ensure installation ISO exists')
    report.record('install', 'Run console install session',
                  ActionResult(success=False, message="Timed out at step 12 waiting for '*]# '", duration=30.0))
    context = {
        'disk_path': '/srv/vm.img',
        'session_log': '/srv/vm.img.log',
        'session_result': 'TimedOut',
        'session_step': 12,
        '_ssh_private_key': 'SECRET',
        'unserializable': object(),
    }
    paths = report.finish(False, context)
    return report, context, paths


class TestSessionOutcome:
    """Session fields lifted out of the run context."""

    def test_from_context(self):
        outcome = SessionOutcome.from_context(
            {'session_result': 'ProcessExited', 'session_step': 4, 'session_log': '/x.log'})
        assert outcome == SessionOutcome(result='ProcessExited', log_path='/x.log', step_index=4)
        assert outcome.describe() == 'ProcessExited at step 4'

    def test_completed_has_no_step(self):
        outcome = SessionOutcome.from_context({'session_result': 'Completed', 'session_log': '/x.log'})
        assert outcome.describe() == 'Completed'

    def test_absent_before_install(self):
        assert SessionOutcome.from_context({'disk_path': '/x.img'}) is None


class TestRunReport:
    """Report files and dict output."""

    def test_files_named_by_scenario_and_outcome(self, tmp_path):
        _, _, (json_path, md_path) = _timed_out_run(tmp_path)
        assert json_path.name.endswith('.arch-install.failed.json')
        assert md_path.name.endswith('.arch-install.failed.md')
        assert sorted(p.name for p in (tmp_path / 'reports').iterdir()) == sorted([json_path.name, md_path.name])

    def test_session_recorded_as_typed_fields(self, tmp_path):
        _, _, (json_path, _) = _timed_out_run(tmp_path)
        data = json.loads(json_path.read_text())
        assert data['session'] == {'result': 'TimedOut', 'step_index': 12, 'log': '/srv/vm.img.log'}
        assert data['disk_image'] == '/srv/vm.img'
        assert data['error'].startswith('Timed out at step 12')
        assert [p['status'] for p in data['phases']] == ['passed', 'skipped', 'failed']

    def test_context_keeps_only_public_entries(self, tmp_path):
        report, context, _ = _timed_out_run(tmp_path)
        assert report.to_dict(context)['context'] == {'disk_path': '/srv/vm.img'}

    def test_secrets_never_written(self, tmp_path):
        _timed_out_run(tmp_path)
        for path in (tmp_path / 'reports').iterdir():
            assert 'SECRET' not in path.read_text()

    def test_markdown_summarizes_session(self, tmp_path):
        _, _, (_, md_path) = _timed_out_run(tmp_path)
        content = md_path.read_text()
        assert content.startswith('# arch-install FAILED')
        assert '- Console session: TimedOut at step 12, log `/srv/vm.img.log`' in content
        assert '| ensure_media | ⏭️ skipped | 0.0s |  |' in content

    def test_markdown_escapes_pipes(self, tmp_path):
        report = _report(tmp_path)
        report.record('x', 'X', ActionResult(success=False, message="sed -i 's|a|b|'"))
        _, md_path = report.finish(False)
        assert "s\\|a\\|b\\|" in md_path.read_text()

    def test_prepare_run_has_no_session(self, tmp_path):
        report = _report(tmp_path)
        report.record('ensure_disk', 'Ensure raw disk image exists', ActionResult(success=True))
        json_path, md_path = report.finish(True, {'disk_path': '/srv/vm.img'})
        assert json_path.name.endswith('.arch-install.passed.json')
        assert json.loads(json_path.read_text())['session'] is None
        assert 'error' not in report.to_dict()
        assert 'Console session' not in md_path.read_text()
