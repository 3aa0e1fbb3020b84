"""Terminal dashboard."""

from dashboard.app import SBCGuardDashboard

__all__ = ["SBCGuardDashboard"]
