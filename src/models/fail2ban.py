"""Data models for the Fail2ban module."""

from dataclasses import asdict, dataclass, field
from typing import Optional, Tuple

SERVICE_DOWN_MESSAGE = "Fail2ban service is not running. Start it with: sudo systemctl start fail2ban"


@dataclass(frozen=True)
class JailStatus:
    """Snapshot of one jail, parsed from ``fail2ban-client status <jail>``."""

    jail_name: str
    enabled: bool = False
    service_running: bool = False
    currently_failed: int = 0
    total_failed: int = 0
    currently_banned: int = 0
    total_banned: int = 0
    banned_ips: Tuple[str, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    @classmethod
    def unavailable(cls, jail_name: str, error: str = SERVICE_DOWN_MESSAGE) -> "JailStatus":
        """Degraded status returned when the jail cannot be reached."""
        return cls(jail_name=jail_name, enabled=False, service_running=False, error=error)

    @property
    def available(self) -> bool:
        return self.service_running and self.error is None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["banned_ips"] = list(self.banned_ips)
        return data


@dataclass(frozen=True)
class SyncOutcome:
    """Result of a whitelist change followed by a reconciliation attempt."""

    saved: bool
    synced: bool
    message: str

    @property
    def ok(self) -> bool:
        return self.saved and self.synced
