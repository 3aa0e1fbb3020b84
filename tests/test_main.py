"""Tests for the command line entry point."""

import json
from unittest.mock import patch

import pytest

import main
from config import AppConfig, ConfigError, JailSettings
from database import create_db_engine
from fakes import FakeRunner, running_runner
from services.factory import build_services
from services.runner import CommandResult


def output(capsys):
    """Captured stdout with Rich's line wrapping undone."""
    return " ".join(capsys.readouterr().out.split())


@pytest.fixture
def runner():
    return running_runner()


@pytest.fixture
def services(runner, jail_config):
    config = AppConfig(jail=JailSettings(config_path=str(jail_config)))
    return build_services(config, runner=runner, engine=create_db_engine("sqlite://"), actor="alice")


@pytest.fixture
def cli(services, tmp_path):
    """Run main() against the fake services; returns the exit code."""
    config_file = str(tmp_path / "absent.yaml")

    def run(*argv):
        with patch("main.build_services", return_value=services), \
                patch("main.setup_logging"), patch("main.setup_exception_logging"):
            return main.main(["-c", config_file, *argv])

    return run


class TestStatus:

    def test_table(self, cli, capsys):
        assert cli("status") == main.EXIT_OK
        out = capsys.readouterr().out
        assert "opensips-brute-force" in out
        assert "203.0.113.5" in out

    def test_json(self, cli, capsys):
        assert cli("status", "--json") == main.EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["banned_ips"] == ["203.0.113.5", "198.51.100.7"]
        assert data["currently_banned"] == 2

    def test_service_down(self, cli, runner, capsys):
        runner.respond(["systemctl", "is-active"], 3, "inactive\n")
        assert cli("status") == main.EXIT_FAILED
        assert "not running" in output(capsys)

    def test_client_error(self, cli, runner):
        runner.respond(["fail2ban-client", "status"], 255, "", "Sorry but the jail does not exist")
        assert cli("status") == main.EXIT_FAILED


class TestBanCommands:

    def test_ban(self, cli, runner):
        assert cli("ban", "203.0.113.9") == main.EXIT_OK
        assert ["fail2ban-client", "set", "opensips-brute-force", "banip", "203.0.113.9"] in runner.commands()

    def test_invalid_ip_not_sent(self, cli, runner):
        assert cli("unban", "not-an-ip") == main.EXIT_USAGE
        assert runner.calls == []

    def test_unban_failure(self, cli, runner):
        runner.respond(["fail2ban-client", "set"], 1, "", "IP is not banned")
        assert cli("unban", "203.0.113.5") == main.EXIT_FAILED

    def test_unban_with_whitelist(self, cli, services, runner, jail_config):
        assert cli("unban", "203.0.113.5", "--whitelist", "carrier") == main.EXIT_OK
        assert services.repository.get("203.0.113.5").comment == "carrier"
        assert "ignoreip = 203.0.113.5" in jail_config.read_text()

    def test_unban_all_needs_yes(self, cli, runner):
        assert cli("unban-all") == main.EXIT_USAGE
        assert runner.calls == []
        assert cli("unban-all", "--yes") == main.EXIT_OK
        assert ["fail2ban-client", "set", "opensips-brute-force", "unban", "--all"] in runner.commands()


class TestWhitelistCommands:

    def test_add_list_remove(self, cli, services, jail_config, capsys):
        assert cli("whitelist", "add", "10.0.0.0/24", "-m", "office") == main.EXIT_OK
        assert "ignoreip = 10.0.0.0/24" in jail_config.read_text()

        capsys.readouterr()
        assert cli("whitelist", "list") == main.EXIT_OK
        assert "10.0.0.0/24" in capsys.readouterr().out

        assert cli("whitelist", "remove", "10.0.0.0/24") == main.EXIT_OK
        assert services.repository.count() == 0

    def test_update(self, cli, services):
        cli("whitelist", "add", "10.0.0.1", "-m", "office")
        assert cli("whitelist", "update", "10.0.0.1", "--new", "10.0.0.2") == main.EXIT_OK
        assert services.repository.get("10.0.0.2").comment == "office"

    def test_update_needs_a_change(self, cli):
        cli("whitelist", "add", "10.0.0.1")
        assert cli("whitelist", "update", "10.0.0.1") == main.EXIT_USAGE

    def test_invalid_entry(self, cli, services):
        assert cli("whitelist", "add", "10.0.0.0/99") == main.EXIT_USAGE
        assert services.repository.count() == 0

    def test_saved_but_not_synced(self, cli, services, runner, capsys):
        runner.respond(["systemctl", "restart"], 1, "", "Job failed")
        assert cli("whitelist", "add", "10.0.0.1") == main.EXIT_FAILED
        assert services.repository.get("10.0.0.1") is not None
        assert "out of sync" in output(capsys)

    def test_sync_and_drift(self, cli, services, jail_config):
        services.repository.add("10.0.0.1")
        assert cli("drift") == main.EXIT_FAILED
        assert cli("sync") == main.EXIT_OK
        assert cli("drift") == main.EXIT_OK


class TestMain:

    def test_invalid_config(self, tmp_path, capsys):
        with patch("main.load_config", side_effect=ConfigError("sync.strategy must be one of")), \
                patch("main.setup_logging"), patch("main.setup_exception_logging"):
            assert main.main(["-c", str(tmp_path / "x.yaml"), "status"]) == main.EXIT_USAGE
        assert "Invalid configuration" in output(capsys)

    def test_unexpected_error(self, tmp_path):
        with patch("main.build_services", side_effect=RuntimeError("database locked")), \
                patch("main.setup_logging"), patch("main.setup_exception_logging"):
            assert main.main(["-c", str(tmp_path / "x.yaml"), "sync"]) == main.EXIT_FAILED

    def test_defaults_to_dashboard(self, tmp_path):
        with patch("main.build_services", return_value=object()), \
                patch("main.setup_logging"), patch("main.setup_exception_logging"), \
                patch.dict(main.COMMANDS, {"dashboard": lambda services, args: 42}):
            assert main.main(["-c", str(tmp_path / "x.yaml")]) == 42

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main.build_parser().parse_args(["--version"])
        assert exc.value.code == 0
        assert main.APP_VERSION in capsys.readouterr().out

    def test_ban_failure(self, tmp_path):
        services = build_services(
            AppConfig(), runner=FakeRunner(default=CommandResult(1, "", "boom")),
            engine=create_db_engine("sqlite://"), actor="alice",
        )
        with patch("main.build_services", return_value=services), \
                patch("main.setup_logging"), patch("main.setup_exception_logging"):
            assert main.main(["-c", str(tmp_path / "x.yaml"), "ban", "203.0.113.5"]) == main.EXIT_FAILED
