import pytest
from click.testing import CliRunner

from nebula_tools import cli as cli_module
from nebula_tools.cli import cli, main


@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    return CliRunner()


@pytest.fixture
def version_checks(monkeypatch):
    checks = []
    monkeypatch.setattr(cli_module, "check_version", lambda: checks.append(True) or True)
    return checks


def _record_sync(monkeypatch, result=True):
    calls = []

    def fake_sync(database, urls, uploads, verbose):
        calls.append({"database": database, "urls": urls, "uploads": uploads, "verbose": verbose})
        return result

    monkeypatch.setattr(cli_module, "sync_environment", fake_sync)
    return calls


def test_sync_without_options_runs_everything(runner, monkeypatch, version_checks):
    calls = _record_sync(monkeypatch)

    result = runner.invoke(cli, ["sync"])

    assert result.exit_code == 0
    assert calls == [{"database": True, "urls": True, "uploads": True, "verbose": False}]
    assert version_checks == [True]


def test_sync_options_select_operations(runner, monkeypatch, version_checks):
    calls = _record_sync(monkeypatch)

    result = runner.invoke(cli, ["--verbose", "sync", "--uploads"])

    assert result.exit_code == 0
    assert calls == [{"database": False, "urls": False, "uploads": True, "verbose": True}]


def test_failed_command_exits_non_zero(runner, monkeypatch, version_checks):
    _record_sync(monkeypatch, result=False)

    assert runner.invoke(cli, ["sync"]).exit_code == 1


def test_outdated_install_blocks_commands(runner, monkeypatch):
    calls = _record_sync(monkeypatch)
    monkeypatch.setattr(cli_module, "check_version", lambda: False)

    result = runner.invoke(cli, ["sync"])

    assert result.exit_code == 1
    assert calls == []


def test_version_check_can_be_skipped(runner, monkeypatch):
    calls = _record_sync(monkeypatch)
    monkeypatch.setattr(cli_module, "check_version", lambda: pytest.fail("version check must be skipped"))

    assert runner.invoke(cli, ["--skip-version-check", "sync"]).exit_code == 0

    monkeypatch.setenv("NEBULA_SKIP_VERSION_CHECK", "1")
    assert runner.invoke(cli, ["sync"]).exit_code == 0
    assert len(calls) == 2


def test_version_command_checks_once(runner, version_checks):
    result = runner.invoke(cli, ["version"])

    assert result.exit_code == 0
    assert "nebula-tools 1.4.0" in result.output
    assert version_checks == [True]


def test_create_site_passes_options(runner, monkeypatch, version_checks):
    calls = []
    monkeypatch.setattr(cli_module, "create_site", lambda name, **options: calls.append((name, options)) or True)

    result = runner.invoke(cli, ["create-site", "foobar", "--woocommerce", "--nebula-branch", "develop", "--yes"])

    assert result.exit_code == 0
    assert calls == [("foobar", {
        "woocommerce": True,
        "multisite": False,
        "nebula_branch": "develop",
        "assume_yes": True,
    })]


def test_just_launched_passes_domains(runner, monkeypatch, version_checks):
    calls = []
    monkeypatch.setattr(cli_module, "just_launched", lambda old_domain, new_domain: calls.append((old_domain, new_domain)) or True)

    result = runner.invoke(cli, ["just-launched", "--old-domain=a.test,b.test", "--new-domain=c.com"])

    assert result.exit_code == 0
    assert calls == [("a.test,b.test", "c.com")]


def test_style_guide_force(runner, monkeypatch, version_checks):
    calls = []
    monkeypatch.setattr(cli_module, "seed_style_guide", lambda force: calls.append(force) or True)

    assert runner.invoke(cli, ["style-guide", "--force"]).exit_code == 0
    assert calls == [True]


def test_config_show(runner, tmp_path, version_checks):
    (tmp_path / "nebula-tools.yml").write_text("ssh:\n  host: example.kinsta.cloud\n")

    result = runner.invoke(cli, ["config", "--show"])

    assert result.exit_code == 0
    assert "NEBULA_SSH_HOST: example.kinsta.cloud" in result.output


def test_main_reports_unexpected_errors(monkeypatch, capsys):
    def broken_cli():
        raise ValueError("'NEBULA_SSH_HOST' is not configured")

    monkeypatch.setattr(cli_module, "cli", broken_cli)

    with pytest.raises(SystemExit) as excinfo:
        main()

    assert excinfo.value.code == 1
    assert "❌ Error: 'NEBULA_SSH_HOST' is not configured" in capsys.readouterr().err


def test_check_reports_missing_tools(runner, monkeypatch, version_checks):
    monkeypatch.setattr(cli_module, "command_exists", lambda name: name != "rsync")

    result = runner.invoke(cli, ["check"])

    assert result.exit_code == 0
    assert "✅ wp: Installed" in result.output
    assert "⚠️ rsync: Not found" in result.output
    assert "⚠️ NEBULA_SSH_HOST: Not configured" in result.output
