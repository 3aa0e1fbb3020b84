"""Services: fail2ban control, whitelist reconciliation and the command runner."""

from .fail2ban_service import Fail2banError, Fail2banService, is_socket_error, parse_status
from .runner import CommandResult, CommandRunner, SudoCommandRunner
from .whitelist_manager import InvalidEntryError, WhitelistManager
from .whitelist_sync import (
    ConfigPatchReconciler,
    ScriptReconciler,
    WhitelistReconciler,
    build_reconciler,
)

__all__ = [
    'CommandResult',
    'CommandRunner',
    'ConfigPatchReconciler',
    'Fail2banError',
    'Fail2banService',
    'InvalidEntryError',
    'ScriptReconciler',
    'SudoCommandRunner',
    'WhitelistManager',
    'WhitelistReconciler',
    'build_reconciler',
    'is_socket_error',
    'parse_status',
]
