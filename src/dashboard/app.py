"""Main dashboard application using Textual."""

import platform

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import Footer, Header

from const import APP_NAME
from dashboard.widgets.jail_panel import JailStatusPanel
from services.factory import Services
from utils.logger import get_logger

logger = get_logger("dashboard")


class SBCGuardDashboard(App):
    """Single-screen dashboard for one fail2ban jail."""

    CSS = """
    Screen {
        layout: vertical;
    }
    #jail_container {
        height: 1fr;
        padding: 0 1;
    }
    DataTable {
        border: solid $accent;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("q", "quit", "Quit", show=False),
    ]

    def __init__(self, services: Services):
        super().__init__()
        self.services = services
        config = services.config
        self.title = f"{APP_NAME} @ {platform.node()}"
        self.sub_title = f"jail: {config.jail.name} | whitelist sync: {config.sync.strategy}"

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Container(id="jail_container"):
            yield JailStatusPanel(self.services, refresh_interval=self.services.config.dashboard.refresh_interval)
        yield Footer()

    def on_mount(self) -> None:
        logger.info(f"Dashboard started for jail {self.services.config.jail.name}")
        self.query_one("#jail_table").focus()
