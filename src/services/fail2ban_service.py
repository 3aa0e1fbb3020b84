"""
Fail2ban Service - status and ban control for a single jail.

Wraps ``fail2ban-client`` and ``systemctl`` calls made through a
CommandRunner and turns the free-text status output into a JailStatus.
"""

import getpass
import logging
import os
import re
from typing import List, Optional

from config import JailSettings
from models.fail2ban import SERVICE_DOWN_MESSAGE, JailStatus
from services.runner import CommandResult, CommandRunner
from utils.logger import audit, get_logger
from utils.validators import is_valid_ip

logger = get_logger("fail2ban_service")

# Phrases fail2ban-client prints on stderr when its socket is unreachable
SOCKET_ERROR_PHRASES = (
    "Failed to access socket",
    "Is fail2ban running",
    "Unable to contact server",
)

# Any of these in the status output means the jail answered
STATUS_MARKERS = (
    "status for the jail",
    "filter",
    "actions",
    "currently failed",
    "currently banned",
)

_COUNTERS = {
    "currently_failed": re.compile(r"Currently failed:\s*(\d+)"),
    "total_failed": re.compile(r"Total failed:\s*(\d+)"),
    "currently_banned": re.compile(r"Currently banned:\s*(\d+)"),
    "total_banned": re.compile(r"Total banned:\s*(\d+)"),
}
_BANNED_LIST = re.compile(r"Banned IP list:[ \t]*(.*)$", re.MULTILINE)


class Fail2banError(RuntimeError):
    """fail2ban-client failed in a way that is not 'service down'."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


def is_socket_error(stderr: str) -> bool:
    """Return True if stderr says the fail2ban server socket is unreachable."""
    if not stderr:
        return False
    return any(phrase in stderr for phrase in SOCKET_ERROR_PHRASES)


def parse_status(output: str, jail_name: str) -> JailStatus:
    """
    Parse ``fail2ban-client status <jail>`` output.

    Expected format (tabs or spaces, tree prefixes optional):

        Status for the jail: opensips-brute-force
        |- Filter
        |  |- Currently failed: 2
        |  |- Total failed:     40
        |  `- File list:        /var/log/opensips.log
        `- Actions
           |- Currently banned: 2
           |- Total banned:     7
           `- Banned IP list:   203.0.113.5 198.51.100.7

    Missing counters default to 0 and a missing or empty banned list gives
    no IPs. ``enabled`` is inferred from the presence of any status marker;
    fail2ban-client has no explicit enabled flag for a running jail.
    """
    counters = {}
    for key, pattern in _COUNTERS.items():
        match = pattern.search(output)
        counters[key] = int(match.group(1)) if match else 0

    banned_ips: tuple = ()
    match = _BANNED_LIST.search(output)
    if match:
        banned_ips = tuple(match.group(1).split())

    lowered = output.lower()
    has_marker = any(marker in lowered for marker in STATUS_MARKERS)

    return JailStatus(
        jail_name=jail_name,
        enabled=has_marker or bool(output.strip()),
        service_running=True,
        banned_ips=banned_ips,
        **counters,
    )


def default_actor() -> str:
    """Operator name for audit log lines."""
    sudo_user = os.getenv("SUDO_USER")
    if sudo_user:
        return sudo_user
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class Fail2banService:
    """
    Reads and mutates the state of one jail.

    Usage:
        service = Fail2banService(config.jail, SudoCommandRunner())
        status = service.get_status()
        service.unban_ip("203.0.113.5")
    """

    def __init__(self, settings: JailSettings, runner: CommandRunner, actor: Optional[str] = None):
        self.settings = settings
        self.runner = runner
        self.actor = actor or default_actor()

    @property
    def jail_name(self) -> str:
        return self.settings.name

    def _client(self, *args: str, timeout: Optional[float] = None) -> CommandResult:
        command = [self.settings.client, *args]
        return self.runner.run(command, timeout=timeout or self.settings.command_timeout)

    def is_service_running(self) -> bool:
        """Check that systemd reports the fail2ban service as active."""
        try:
            result = self.runner.run(
                [self.settings.systemctl, "is-active", self.settings.service],
                timeout=self.settings.status_timeout,
            )
        except Exception as e:
            logger.warning(f"Service liveness check failed: {e}")
            return False
        return result.successful and result.stdout.strip() == "active"

    def get_status(self) -> JailStatus:
        """
        Get the current jail status.

        Returns:
            JailStatus. When the service or its socket is down a degraded
            status with ``error`` set is returned instead of raising.

        Raises:
            Fail2banError: fail2ban-client failed for any other reason.
        """
        if not self.is_service_running():
            logger.warning("Fail2ban service is not running")
            return JailStatus.unavailable(self.jail_name)

        result = self._client("status", self.jail_name, timeout=self.settings.status_timeout)

        if not result.successful:
            logger.error(
                f"Fail2ban status command failed: exit_code={result.exit_code} "
                f"stderr={result.stderr.strip()!r} stdout={result.stdout.strip()!r}"
            )
            if is_socket_error(result.stderr):
                return JailStatus.unavailable(self.jail_name, SERVICE_DOWN_MESSAGE)
            raise Fail2banError(
                f"Failed to get Fail2Ban status: {result.stderr.strip()}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        status = parse_status(result.stdout, self.jail_name)
        logger.debug(
            f"Parsed status for {self.jail_name}: enabled={status.enabled} "
            f"currently_banned={status.currently_banned} total_banned={status.total_banned}"
        )
        return status

    def get_banned_ips(self) -> List[str]:
        """Get the list of IPs currently banned in the jail."""
        return list(self.get_status().banned_ips)

    def _mutate(self, action: str, args: List[str], ip: Optional[str] = None) -> bool:
        try:
            result = self._client("set", self.jail_name, *args)
        except Exception as e:
            audit(logger, action, user=self.actor, ip=ip, jail=self.jail_name, ok=False, detail=f"error={e}")
            logger.debug("Runner raised", exc_info=True)
            return False

        if not result.successful:
            audit(
                logger, action, user=self.actor, ip=ip, jail=self.jail_name, ok=False,
                detail=f"exit_code={result.exit_code} error={result.stderr.strip()!r}",
            )
            return False

        # Bulk unban is irreversible
        audit(
            logger, action, user=self.actor, ip=ip, jail=self.jail_name,
            level=logging.WARNING if ip is None else logging.INFO,
        )
        return True

    def _checked_ip(self, action: str, ip: str) -> Optional[str]:
        """Return the stripped address, or None after logging if it is not a single IP."""
        value = (ip or "").strip()
        if not is_valid_ip(value):
            audit(logger, action, user=self.actor, ip=repr(ip), jail=self.jail_name, ok=False, detail="error='not an IP address'")
            return None
        return value

    def unban_ip(self, ip: str) -> bool:
        """Remove one IP from the jail. Returns False on failure or if ``ip`` is not an address."""
        value = self._checked_ip("Unban", ip)
        if value is None:
            return False
        return self._mutate("Unban", ["unbanip", value], value)

    def unban_all(self) -> bool:
        """
        Remove every ban from the jail. Returns False on failure.

        Irreversible; callers must get explicit confirmation first.
        """
        return self._mutate("Unban all", ["unban", "--all"])

    def ban_ip(self, ip: str) -> bool:
        """Ban one IP manually, outside the jail's own detection."""
        value = self._checked_ip("Ban", ip)
        if value is None:
            return False
        return self._mutate("Ban", ["banip", value], value)
