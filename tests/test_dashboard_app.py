"""Tests for SBCGuardDashboard - main application class."""

import asyncio
import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.dirname(__file__))

from textual.app import App

from config import AppConfig
from dashboard.app import SBCGuardDashboard
from dashboard.widgets.jail_panel import JailStatusPanel
from database import create_db_engine
from fakes import running_runner
from services.factory import build_services


def make_services():
    return build_services(AppConfig(), runner=running_runner(), engine=create_db_engine("sqlite://"), actor="alice")


class TestDashboardApp(unittest.TestCase):
    """Tests for the Textual application."""

    def test_is_textual_app(self):
        self.assertTrue(issubclass(SBCGuardDashboard, App))

    def test_sub_title_names_jail(self):
        app = SBCGuardDashboard(make_services())
        self.assertEqual(app.sub_title, "jail: opensips-brute-force | whitelist sync: patch")

    def test_mount_loads_status(self):
        """The panel should fetch status through the shared cache on mount."""
        services = make_services()
        app = SBCGuardDashboard(services)

        async def run():
            async with app.run_test() as pilot:
                panel = app.query_one(JailStatusPanel)
                await app.workers.wait_for_complete()
                await pilot.pause()
                return panel._status

        status = asyncio.run(run())

        self.assertIsNotNone(status)
        self.assertEqual(status.banned_ips, ("203.0.113.5", "198.51.100.7"))
        self.assertIs(services.status_cache.get(lambda: None), status)


if __name__ == '__main__':
    unittest.main()
