"""Whitelist mutations that always end with a reconciliation attempt."""

from typing import List, Optional

from database.whitelist import UNSET, WhitelistEntry, WhitelistError, WhitelistRepository
from models.fail2ban import SyncOutcome
from services.fail2ban_service import Fail2banService
from services.whitelist_sync import WhitelistReconciler
from utils.logger import audit, get_logger
from utils.validators import validate_comment, validate_ip_or_cidr

logger = get_logger("whitelist_manager")

OUT_OF_SYNC_HINT = (
    "The database was updated but Fail2Ban may now be out of sync; "
    "run a manual sync or check the logs."
)


class InvalidEntryError(WhitelistError):
    """The IP/CIDR or comment failed validation."""


class WhitelistManager:
    """
    Operator-facing whitelist operations.

    Each change is written to the table first; a failed sync afterwards does
    not roll the change back but is reported in the returned SyncOutcome.

    Usage:
        manager = WhitelistManager(repo, reconciler, actor="alice")
        outcome = manager.add("10.0.0.0/24", "office LAN")
        if not outcome.synced:
            print(outcome.message)
    """

    def __init__(self, repository: WhitelistRepository, reconciler: WhitelistReconciler, actor: Optional[str] = None):
        self.repository = repository
        self.reconciler = reconciler
        self.actor = actor

    def entries(self) -> List[WhitelistEntry]:
        return self.repository.all()

    def _sync_after(self, what: str) -> SyncOutcome:
        if self.reconciler.sync():
            return SyncOutcome(saved=True, synced=True, message=f"{what} and synced to Fail2Ban.")
        logger.warning(f"{what} but sync failed: {self.reconciler.last_error}")
        return SyncOutcome(saved=True, synced=False, message=f"{what}. {OUT_OF_SYNC_HINT}")

    @staticmethod
    def _validate(ip_or_cidr: str, comment: Optional[str]):
        try:
            return validate_ip_or_cidr(ip_or_cidr), validate_comment(comment)
        except ValueError as e:
            raise InvalidEntryError(str(e)) from None

    def add(self, ip_or_cidr: str, comment: Optional[str] = None) -> SyncOutcome:
        """
        Whitelist an IP or CIDR and sync.

        Raises:
            InvalidEntryError: Bad address or comment.
            DuplicateEntryError: Already whitelisted.
        """
        ip_or_cidr, comment = self._validate(ip_or_cidr, comment)
        self.repository.add(ip_or_cidr, comment, created_by=self.actor)
        audit(logger, "Whitelist add", user=self.actor, ip=ip_or_cidr)
        return self._sync_after(f"Whitelist entry {ip_or_cidr} created")

    def update(self, ip_or_cidr: str, new_ip_or_cidr: Optional[str] = None, comment=UNSET) -> SyncOutcome:
        """
        Change an entry and sync.

        Raises:
            InvalidEntryError, EntryNotFoundError, DuplicateEntryError
        """
        if new_ip_or_cidr is not None:
            new_ip_or_cidr, _ = self._validate(new_ip_or_cidr, None)
        if comment is not UNSET:
            try:
                comment = validate_comment(comment)
            except ValueError as e:
                raise InvalidEntryError(str(e)) from None
        self.repository.update(ip_or_cidr, new_ip_or_cidr, comment)
        audit(logger, "Whitelist update", user=self.actor, ip=ip_or_cidr,
              detail=f"new_ip={new_ip_or_cidr}" if new_ip_or_cidr else None)
        return self._sync_after(f"Whitelist entry {new_ip_or_cidr or ip_or_cidr} updated")

    def remove(self, ip_or_cidr: str) -> SyncOutcome:
        """
        Delete an entry and sync. Existing bans for the IP are left alone.

        Raises:
            EntryNotFoundError
        """
        self.repository.remove(ip_or_cidr.strip())
        audit(logger, "Whitelist remove", user=self.actor, ip=ip_or_cidr.strip())
        return self._sync_after(f"Whitelist entry {ip_or_cidr.strip()} deleted")

    def sync_now(self) -> SyncOutcome:
        """Manual sync without a table change."""
        if self.reconciler.sync():
            return SyncOutcome(saved=True, synced=True, message="Whitelist synced to Fail2Ban.")
        return SyncOutcome(
            saved=True,
            synced=False,
            message=f"Failed to sync whitelist to Fail2Ban: {self.reconciler.last_error or 'see logs'}.",
        )

    def unban_and_whitelist(
        self, service: Fail2banService, ip: str, comment: str = "Auto-whitelisted after unban"
    ) -> SyncOutcome:
        """
        Unban an IP, then whitelist it so it is not banned again.

        Returns saved=False if the unban failed; nothing is written then.
        Raises the same errors as add().
        """
        if not service.unban_ip(ip):
            return SyncOutcome(saved=False, synced=False, message=f"Could not unban IP {ip}. Check logs for details.")
        return self.add(ip, comment)
