"""
Database module for SBC Guard.

Holds the whitelist table, the authoritative source for the jail's ignoreip.
"""

from .session import Base, create_db_engine, init_db, session_factory
from .whitelist import (
    DuplicateEntryError,
    EntryNotFoundError,
    WhitelistEntry,
    WhitelistError,
    WhitelistRepository,
)

__all__ = [
    "Base",
    "DuplicateEntryError",
    "EntryNotFoundError",
    "WhitelistEntry",
    "WhitelistError",
    "WhitelistRepository",
    "create_db_engine",
    "init_db",
    "session_factory",
]
