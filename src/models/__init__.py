"""Data models for the application."""

from models.fail2ban import (
    SERVICE_DOWN_MESSAGE,
    JailStatus,
    SyncOutcome,
)

__all__ = [
    'SERVICE_DOWN_MESSAGE',
    'JailStatus',
    'SyncOutcome',
]
