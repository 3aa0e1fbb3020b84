"""Whitelist table and repository."""

from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import Column, DateTime, Integer, String, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from const import COMMENT_MAX_LEN, IP_OR_CIDR_MAX_LEN
from utils.logger import get_logger

from .session import Base

logger = get_logger("whitelist_db")

UNSET = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WhitelistError(Exception):
    """Base class for whitelist persistence errors."""


class DuplicateEntryError(WhitelistError):
    """The IP or CIDR is already whitelisted."""


class EntryNotFoundError(WhitelistError):
    """No whitelist row for the given IP or CIDR."""


class WhitelistEntry(Base):
    """An IP or CIDR range that fail2ban must never ban."""
    __tablename__ = "fail2ban_whitelist"

    id = Column(Integer, primary_key=True)
    ip_or_cidr = Column(String(IP_OR_CIDR_MAX_LEN), unique=True, nullable=False, index=True)
    comment = Column(String(COMMENT_MAX_LEN), nullable=True)
    created_by = Column(String(64), nullable=True)  # operator name, attribution only
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<WhitelistEntry {self.ip_or_cidr!r}>"


class WhitelistRepository:
    """
    CRUD access to the whitelist table.

    Each call runs in its own short transaction; returned entries are
    detached and safe to read after the session closes.

    Usage:
        repo = WhitelistRepository(session_factory(engine))
        repo.add("10.0.0.1", "office", created_by="alice")
        entries = repo.all()
    """

    def __init__(self, session_maker: Callable[[], Session]):
        self._session_maker = session_maker

    def all(self) -> List[WhitelistEntry]:
        """All entries in insertion order."""
        with self._session_maker() as session:
            return list(session.scalars(select(WhitelistEntry).order_by(WhitelistEntry.id)))

    def count(self) -> int:
        with self._session_maker() as session:
            return session.scalar(select(func.count()).select_from(WhitelistEntry)) or 0

    def get(self, ip_or_cidr: str) -> Optional[WhitelistEntry]:
        with self._session_maker() as session:
            return session.scalar(select(WhitelistEntry).where(WhitelistEntry.ip_or_cidr == ip_or_cidr))

    def add(self, ip_or_cidr: str, comment: Optional[str] = None, created_by: Optional[str] = None) -> WhitelistEntry:
        """
        Insert a new entry.

        Raises:
            DuplicateEntryError: If the IP or CIDR already exists.
        """
        entry = WhitelistEntry(ip_or_cidr=ip_or_cidr, comment=comment, created_by=created_by)
        try:
            with self._session_maker() as session, session.begin():
                session.add(entry)
        except IntegrityError:
            raise DuplicateEntryError(f"{ip_or_cidr} is already whitelisted") from None
        logger.debug(f"Whitelist entry added: ip={ip_or_cidr} user={created_by}")
        return entry

    def update(self, ip_or_cidr: str, new_ip_or_cidr: Optional[str] = None, comment=UNSET) -> WhitelistEntry:
        """
        Change an entry's address and/or comment.

        Raises:
            EntryNotFoundError: If no entry matches ``ip_or_cidr``.
            DuplicateEntryError: If ``new_ip_or_cidr`` is taken by another entry.
        """
        try:
            with self._session_maker() as session, session.begin():
                entry = session.scalar(select(WhitelistEntry).where(WhitelistEntry.ip_or_cidr == ip_or_cidr))
                if entry is None:
                    raise EntryNotFoundError(f"{ip_or_cidr} is not whitelisted")
                if new_ip_or_cidr is not None:
                    entry.ip_or_cidr = new_ip_or_cidr
                if comment is not UNSET:
                    entry.comment = comment
        except IntegrityError:
            raise DuplicateEntryError(f"{new_ip_or_cidr} is already whitelisted") from None
        logger.debug(f"Whitelist entry updated: ip={ip_or_cidr} new_ip={new_ip_or_cidr or ip_or_cidr}")
        return entry

    def remove(self, ip_or_cidr: str) -> None:
        """
        Delete an entry. IPs already banned by the jail stay banned.

        Raises:
            EntryNotFoundError: If no entry matches.
        """
        with self._session_maker() as session, session.begin():
            entry = session.scalar(select(WhitelistEntry).where(WhitelistEntry.ip_or_cidr == ip_or_cidr))
            if entry is None:
                raise EntryNotFoundError(f"{ip_or_cidr} is not whitelisted")
            session.delete(entry)
        logger.debug(f"Whitelist entry removed: ip={ip_or_cidr}")
