"""Tests for CLI module."""

import json
from unittest.mock import patch, MagicMock

import pytest

import cli


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """No install.yaml or $ARCHVM_CONFIG leaks in from the environment."""
    monkeypatch.delenv('ARCHVM_CONFIG', raising=False)
    monkeypatch.chdir(tmp_path)


def _config_args(tmp_path, ssh_dir=None):
    args = ['--output', str(tmp_path / 'vm.img'), '--no-input']
    if ssh_dir is not None:
        args += ['--ssh-key', str(ssh_dir / 'id_ed25519')]
    return args


class TestMain:
    """Top-level dispatch."""

    def test_no_args_prints_usage(self, capsys):
        assert cli.main([]) == 0
        out = capsys.readouterr().out
        assert 'Usage: archvm-driver <noun>' in out
        for noun in cli.NOUN_COMMANDS:
            assert noun in out

    def test_unknown_command(self, capsys):
        assert cli.main(['frobnicate']) == 1
        assert "Unknown command 'frobnicate'" in capsys.readouterr().out

    def test_version(self, capsys):
        assert cli.main(['--version']) == 0
        assert capsys.readouterr().out.startswith('archvm-driver ')

    def test_get_version_falls_back_to_dev(self):
        with patch('cli.subprocess.run', side_effect=OSError('no git')):
            assert cli.get_version() == 'dev'


class TestScenarioNoun:
    """scenario run/list."""

    def test_list(self, capsys):
        assert cli.main(['scenario', 'list']) == 0
        out = capsys.readouterr().out
        assert 'arch-install' in out
        assert 'arch-prepare' in out

    def test_bare_scenario_shows_usage(self, capsys):
        assert cli.main(['scenario']) == 1
        assert 'scenario run <name>' in capsys.readouterr().out

    def test_unknown_action(self, capsys):
        assert cli.main(['scenario', 'destroy']) == 1

    def test_unknown_scenario_rejected(self):
        with pytest.raises(SystemExit):
            cli.main(['scenario', 'run', 'nested-pve'])

    def test_list_phases(self, tmp_path, capsys):
        assert cli.main(['scenario', 'run', 'arch-prepare', '--list-phases'] + _config_args(tmp_path)) == 0
        out = capsys.readouterr().out
        assert "Phases for scenario 'arch-prepare'" in out
        assert 'install:' not in out


class TestInstallNoun:
    """install = arch-install scenario."""

    def test_list_phases(self, tmp_path, capsys):
        assert cli.main(['install', '--list-phases'] + _config_args(tmp_path)) == 0
        out = capsys.readouterr().out
        assert 'locate_keys:' in out
        assert 'install:' in out

    def test_dry_run(self, tmp_path, capsys):
        assert cli.main(['install', '--dry-run'] + _config_args(tmp_path)) == 0
        out = capsys.readouterr().out
        assert 'DRY-RUN: arch-install' in out
        assert not (tmp_path / 'vm.img').exists()

    def test_preflight_failure_blocks_install(self, tmp_path, capsys):
        with patch('cli.validate_readiness', return_value=['qemu-img not found on PATH\n  Install it']), \
                patch('cli.Orchestrator') as mock_orchestrator:
            assert cli.main(['install'] + _config_args(tmp_path)) == 1

        mock_orchestrator.assert_not_called()
        out = capsys.readouterr().out
        assert '✗ qemu-img not found on PATH' in out
        assert '--skip-preflight' in out

    def test_runs_orchestrator(self, tmp_path):
        with patch('cli.validate_readiness', return_value=[]), \
                patch('cli.Orchestrator') as mock_orchestrator:
            mock_orchestrator.return_value.run.return_value = True
            mock_orchestrator.return_value.context = {}
            rc = cli.main(['install', '--skip', 'ensure_media', '--attempts', '2',
                           '--hostname', 'box1'] + _config_args(tmp_path))

        assert rc == 0
        kwargs = mock_orchestrator.call_args.kwargs
        assert kwargs['skip_phases'] == ['ensure_media']
        assert kwargs['config'].hostname == 'box1'
        assert kwargs['scenario'].attempts == 2

    def test_failed_run_exit_code(self, tmp_path):
        with patch('cli.Orchestrator') as mock_orchestrator:
            mock_orchestrator.return_value.run.return_value = False
            rc = cli.main(['install', '--skip-preflight'] + _config_args(tmp_path))
        assert rc == 1

    def test_json_output(self, tmp_path, capsys):
        with patch('cli.Orchestrator') as mock_orchestrator, \
                patch('cli._configure_logging'):
            mock_orchestrator.return_value.run.return_value = True
            mock_orchestrator.return_value.context = {}
            mock_orchestrator.return_value.report.to_dict.return_value = {'success': True}
            rc = cli.main(['install', '--skip-preflight', '--json-output'] + _config_args(tmp_path))

        assert rc == 0
        assert json.loads(capsys.readouterr().out) == {'success': True}

    def test_config_error(self, tmp_path, capsys):
        rc = cli.main(['install', '--config', str(tmp_path / 'missing.yaml'), '--no-input'])
        assert rc == 1
        assert 'Error:' in capsys.readouterr().out

    def test_passwords_prompted(self, tmp_path):
        with patch('cli.prompt_for_missing') as mock_prompt, \
                patch('cli.Orchestrator') as mock_orchestrator:
            mock_orchestrator.return_value.run.return_value = True
            mock_orchestrator.return_value.context = {}
            cli.main(['install', '--skip-preflight', '--output', str(tmp_path / 'vm.img')])
        mock_prompt.assert_called_once()

    def test_no_input_skips_prompt(self, tmp_path):
        with patch('cli.prompt_for_missing') as mock_prompt, \
                patch('cli.Orchestrator') as mock_orchestrator:
            mock_orchestrator.return_value.run.return_value = True
            mock_orchestrator.return_value.context = {}
            cli.main(['install', '--skip-preflight'] + _config_args(tmp_path))
        mock_prompt.assert_not_called()


class TestScriptNoun:
    """script show."""

    def test_show_lists_masked_steps(self, tmp_path, ssh_dir, capsys):
        rc = cli.main(['script', 'show', '--hostname', 'box1', '--disable-keyring-checks']
                      + _config_args(tmp_path, ssh_dir))
        assert rc == 0
        out = capsys.readouterr().out
        assert "expect '*install medium*'" in out
        assert 'SigLevel = Never' in out
        assert 'pacman-key' not in out
        assert 'PRIVATE KEY' not in out
        assert '********' in out

    def test_show_without_key_fails(self, tmp_path, capsys):
        rc = cli.main(['script', 'show', '--ssh-key', str(tmp_path / 'nokey')] + _config_args(tmp_path))
        assert rc == 1
        assert 'Error:' in capsys.readouterr().out

    def test_script_without_action(self, capsys):
        assert cli.main(['script']) == 1


class TestPreflightNoun:
    """preflight."""

    def test_passes(self, tmp_path, capsys):
        results = {'qemu': {'passed': ['qemu-system-x86_64 and qemu-img found'], 'failed': []}}
        with patch('cli.run_preflight_checks', return_value=(True, results)) as mock_checks:
            assert cli.main(['preflight', '--no-mirror'] + _config_args(tmp_path)) == 0
        assert mock_checks.call_args.kwargs['check_mirror'] is False
        assert '✓ qemu-system-x86_64 and qemu-img found' in capsys.readouterr().out

    def test_fails(self, tmp_path):
        results = {'hardware': {'passed': [], 'failed': ['/dev/kvm does not exist']}}
        with patch('cli.run_preflight_checks', return_value=(False, results)):
            assert cli.main(['preflight'] + _config_args(tmp_path)) == 1
