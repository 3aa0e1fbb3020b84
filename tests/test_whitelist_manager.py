"""Tests for WhitelistManager: validation, persistence and sync reporting."""

import pytest

from config import JailSettings
from database import DuplicateEntryError, EntryNotFoundError
from fakes import FakeRunner
from services.fail2ban_service import Fail2banService
from services.whitelist_manager import InvalidEntryError, WhitelistManager
from services.whitelist_sync import ConfigPatchReconciler


class StubReconciler:
    """Reconciler double that records calls and returns a fixed result."""

    def __init__(self, result=True, error=None):
        self.result = result
        self.last_error = error
        self.calls = 0

    def sync(self):
        self.calls += 1
        return self.result


@pytest.fixture
def reconciler():
    return StubReconciler()


@pytest.fixture
def manager(repository, reconciler):
    return WhitelistManager(repository, reconciler, actor="alice")


class TestAdd:

    def test_add_saves_and_syncs(self, manager, repository, reconciler):
        outcome = manager.add(" 10.0.0.1 ", "  office  ")

        assert outcome.ok
        assert reconciler.calls == 1
        entry = repository.get("10.0.0.1")
        assert entry.comment == "office"
        assert entry.created_by == "alice"

    def test_blank_comment_stored_as_none(self, manager, repository):
        manager.add("10.0.0.0/24", "   ")
        assert repository.get("10.0.0.0/24").comment is None

    @pytest.mark.parametrize("bad", ["", "not-an-ip", "10.0.0.256", "10.0.0.0/33", "10.0.0.1 10.0.0.2"])
    def test_invalid_address_rejected(self, manager, repository, reconciler, bad):
        with pytest.raises(InvalidEntryError):
            manager.add(bad)
        assert repository.count() == 0
        assert reconciler.calls == 0

    def test_overlong_comment_rejected(self, manager):
        with pytest.raises(InvalidEntryError):
            manager.add("10.0.0.1", "x" * 256)

    def test_duplicate(self, manager, reconciler):
        manager.add("10.0.0.1")
        with pytest.raises(DuplicateEntryError):
            manager.add("10.0.0.1")
        assert reconciler.calls == 1

    def test_sync_failure_keeps_row(self, repository):
        manager = WhitelistManager(repository, StubReconciler(result=False, error="restart failed"))

        outcome = manager.add("10.0.0.1")

        assert outcome.saved
        assert not outcome.synced
        assert not outcome.ok
        assert "out of sync" in outcome.message
        assert repository.get("10.0.0.1") is not None


class TestUpdateRemove:

    def test_update(self, manager, repository, reconciler):
        manager.add("10.0.0.1", "office")
        outcome = manager.update("10.0.0.1", new_ip_or_cidr="10.0.0.0/24", comment="office LAN")

        assert outcome.ok
        assert reconciler.calls == 2
        assert repository.get("10.0.0.0/24").comment == "office LAN"

    def test_update_comment_untouched_by_default(self, manager, repository):
        manager.add("10.0.0.1", "office")
        manager.update("10.0.0.1", new_ip_or_cidr="10.0.0.2")
        assert repository.get("10.0.0.2").comment == "office"

    def test_update_invalid_new_address(self, manager):
        manager.add("10.0.0.1")
        with pytest.raises(InvalidEntryError):
            manager.update("10.0.0.1", new_ip_or_cidr="bogus")

    def test_update_missing(self, manager):
        with pytest.raises(EntryNotFoundError):
            manager.update("10.0.0.1", comment="x")

    def test_remove(self, manager, repository, reconciler):
        manager.add("10.0.0.1")
        outcome = manager.remove("10.0.0.1")
        assert outcome.ok
        assert repository.count() == 0
        assert reconciler.calls == 2

    def test_remove_missing(self, manager, reconciler):
        with pytest.raises(EntryNotFoundError):
            manager.remove("10.0.0.1")
        assert reconciler.calls == 0

    def test_sync_now(self, repository):
        assert WhitelistManager(repository, StubReconciler()).sync_now().ok
        failed = WhitelistManager(repository, StubReconciler(result=False, error="script missing")).sync_now()
        assert not failed.synced
        assert "script missing" in failed.message


class TestUnbanAndWhitelist:

    def _service(self, runner):
        return Fail2banService(JailSettings(), runner, actor="alice")

    def test_unban_then_whitelist(self, manager, repository):
        runner = FakeRunner()

        outcome = manager.unban_and_whitelist(self._service(runner), "203.0.113.5")

        assert outcome.ok
        assert runner.commands() == [["fail2ban-client", "set", "opensips-brute-force", "unbanip", "203.0.113.5"]]
        assert repository.get("203.0.113.5").comment == "Auto-whitelisted after unban"

    def test_unban_failure_writes_nothing(self, manager, repository, reconciler):
        runner = FakeRunner()
        runner.respond(["fail2ban-client", "set"], 1, "", "IP is not banned")

        outcome = manager.unban_and_whitelist(self._service(runner), "203.0.113.5")

        assert not outcome.saved
        assert repository.count() == 0
        assert reconciler.calls == 0


def test_end_to_end_with_config_patch(repository, jail, jail_config):
    """Add, update and remove against a real config file."""
    runner = FakeRunner()
    manager = WhitelistManager(repository, ConfigPatchReconciler(repository, jail, runner), actor="alice")

    manager.add("10.0.0.1", "office")
    manager.add("10.0.0.0/24")
    assert "ignoreip = 10.0.0.1 10.0.0.0/24" in jail_config.read_text()

    manager.update("10.0.0.1", new_ip_or_cidr="10.0.0.2")
    manager.remove("10.0.0.0/24")

    text = jail_config.read_text()
    assert "ignoreip = 10.0.0.2\n# whitelist: 10.0.0.2 - office\n" in text
    assert runner.commands().count(["systemctl", "restart", "fail2ban"]) == 4
