"""Jail status panel: header, banned IP table and ban controls."""

from datetime import datetime
from typing import Optional

from textual import work
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import DataTable, Label, Static

from dashboard.widgets.confirm_modal import ConfirmModal
from dashboard.widgets.ip_input_modal import IPInputModal
from dashboard.widgets.whitelist_modal import WhitelistAction, WhitelistModal
from database import WhitelistError
from models.fail2ban import JailStatus, SyncOutcome
from services.factory import Services
from utils.logger import get_logger

logger = get_logger("jail_panel")


class JailStatusPanel(Vertical):
    """Shows one jail and lets the operator ban, unban and manage the whitelist."""

    BINDINGS = [
        Binding("b", "ban_ip", "Ban IP"),
        Binding("u", "unban_ip", "Unban"),
        Binding("U", "unban_all", "Unban All"),
        Binding("w", "whitelist", "Whitelist"),
        Binding("s", "sync", "Sync"),
        Binding("r", "refresh", "Refresh"),
    ]

    DEFAULT_CSS = """
    JailStatusPanel {
        height: 1fr;
        padding: 0;
    }
    #jail_header_container {
        height: 3;
        padding: 0 1;
        border: round $success;
    }
    #jail_header {
        width: 100%;
    }
    #jail_table {
        height: 1fr;
    }
    """

    def __init__(self, services: Services, refresh_interval: float = 10.0):
        super().__init__()
        self.services = services
        self.refresh_interval = refresh_interval
        self._status: Optional[JailStatus] = None
        self._error: Optional[str] = None
        self._last_update: Optional[datetime] = None

    def compose(self):
        with Static(id="jail_header_container"):
            yield Label("[bold cyan]Loading Fail2ban status...[/bold cyan]", id="jail_header")
        yield DataTable(id="jail_table", cursor_type="row", zebra_stripes=True)

    def on_mount(self) -> None:
        table = self.query_one("#jail_table", DataTable)
        table.add_columns("#", "Banned IP")
        self.update_data()
        self.set_interval(self.refresh_interval, self.update_data)

    # === Data fetching ===

    @work(exclusive=True, thread=True)
    def update_data(self) -> None:
        """Fetch status in background through the shared cache."""
        try:
            self._status = self.services.cached_status()
            self._error = None
        except Exception as e:
            logger.error(f"Failed to load Fail2ban status: {e}", exc_info=True)
            self._status = None
            self._error = str(e)
        self._last_update = datetime.now()
        self.app.call_from_thread(self._update_view)

    def _update_view(self) -> None:
        header = self.query_one("#jail_header", Label)
        table = self.query_one("#jail_table", DataTable)
        header.update(self._header_text())

        table.clear()
        status = self._status
        if status is None or not status.available:
            table.add_row("", "[dim]unavailable[/dim]")
            return
        if not status.banned_ips:
            table.add_row("", "[dim]No active bans[/dim]")
            return
        for idx, ip in enumerate(status.banned_ips, 1):
            table.add_row(str(idx), ip, key=ip)

    def _header_text(self) -> str:
        update_time = ""
        if self._last_update:
            update_time = f" │ [dim]Updated: {self._last_update.strftime('%H:%M:%S')}[/dim]"

        if self._error:
            return f"[bold red]Failed to load Fail2Ban status:[/bold red] {self._error}{update_time}"

        status = self._status
        if status is None:
            return "[bold cyan]Loading Fail2ban status...[/bold cyan]"
        if not status.available:
            return f"[bold red]{status.jail_name}:[/bold red] {status.error or 'unavailable'}{update_time}"

        state = "[green]Enabled[/green]" if status.enabled else "[red]Disabled[/red]"
        return (
            f"[bold cyan]{status.jail_name}:[/bold cyan] {state} │ "
            f"[red]{status.currently_banned}[/red] banned ({status.total_banned} total) │ "
            f"[yellow]{status.currently_failed}[/yellow] failing ({status.total_failed} total){update_time}"
        )

    # === Actions ===

    def action_refresh(self) -> None:
        self.services.status_cache.invalidate()
        self.notify("Refreshing Fail2ban status...")
        self.update_data()

    def _selected_ip(self) -> Optional[str]:
        table = self.query_one("#jail_table", DataTable)
        if table.row_count == 0 or not self._status or not self._status.banned_ips:
            return None
        try:
            row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        except Exception:
            return None
        return row_key.value

    def action_ban_ip(self) -> None:
        self.app.push_screen(
            IPInputModal("Ban IP manually", confirm_label="Ban"),
            callback=lambda ip: self._do_ban_ip(ip) if ip else None,
        )

    @work(thread=True)
    def _do_ban_ip(self, ip: str) -> None:
        if self.services.fail2ban.ban_ip(ip):
            self._notify(f"IP {ip} has been banned.")
            self._schedule_refresh()
        else:
            self._notify(f"Could not ban IP {ip}. Check logs for details.", "error")

    def action_unban_ip(self) -> None:
        ip = self._selected_ip()
        if not ip:
            self.notify("No banned IP selected", severity="warning")
            return
        self.app.push_screen(
            ConfirmModal(
                title="Unban IP",
                message=f"Unban [bold cyan]{ip}[/bold cyan] from {self.services.fail2ban.jail_name}?",
                confirm_label="Unban",
                option_label="Also add to whitelist",
            ),
            callback=lambda result: self._do_unban_ip(ip, result.option) if result else None,
        )

    @work(thread=True)
    def _do_unban_ip(self, ip: str, whitelist: bool) -> None:
        if not whitelist:
            if self.services.fail2ban.unban_ip(ip):
                self._notify(f"IP {ip} has been unbanned.")
                self._schedule_refresh()
            else:
                self._notify(f"Could not unban IP {ip}. Check logs for details.", "error")
            return

        try:
            outcome = self.services.whitelist.unban_and_whitelist(self.services.fail2ban, ip)
        except WhitelistError as e:
            self._notify(f"IP {ip} unbanned, but not whitelisted: {e}", "warning")
            self._schedule_refresh()
            return
        self._report(outcome)
        if outcome.saved:
            self._schedule_refresh()

    def action_unban_all(self) -> None:
        count = self._status.currently_banned if self._status else 0
        self.app.push_screen(
            ConfirmModal(
                title="Unban ALL IPs",
                message=f"Remove all {count} bans from {self.services.fail2ban.jail_name}? This cannot be undone.",
                confirm_label="Unban All",
            ),
            callback=lambda result: self._do_unban_all() if result else None,
        )

    @work(thread=True)
    def _do_unban_all(self) -> None:
        if self.services.fail2ban.unban_all():
            self._notify("All banned IPs have been unbanned.", "warning")
            self._schedule_refresh()
        else:
            self._notify("Failed to unban all IPs. Check logs for details.", "error")

    def action_whitelist(self) -> None:
        entries = [(e.ip_or_cidr, e.comment) for e in self.services.whitelist.entries()]
        self.app.push_screen(
            WhitelistModal(entries, selected_ip=self._selected_ip()),
            callback=lambda action: self._do_whitelist(action) if action else None,
        )

    def action_sync(self) -> None:
        self._do_whitelist(("sync", None, None))

    @work(thread=True)
    def _do_whitelist(self, action: WhitelistAction) -> None:
        kind, ip, comment = action
        manager = self.services.whitelist
        try:
            if kind == "add":
                outcome = manager.add(ip, comment)
            elif kind == "update":
                outcome = manager.update(ip, comment=comment)
            elif kind == "remove":
                outcome = manager.remove(ip)
            else:
                outcome = manager.sync_now()
        except WhitelistError as e:
            self._notify(str(e), "warning")
            return
        self._report(outcome)

    # === Helpers ===

    def _report(self, outcome: SyncOutcome) -> None:
        if outcome.ok:
            self._notify(outcome.message)
        elif outcome.saved:
            self._notify(outcome.message, "warning")
        else:
            self._notify(outcome.message, "error")

    def _notify(self, message: str, severity: str = "information") -> None:
        if severity == "error":
            logger.error(message)
        elif severity == "warning":
            logger.warning(message)
        self.app.call_from_thread(self.notify, message, severity=severity)

    def _schedule_refresh(self) -> None:
        """Drop the cached status and refresh after a short delay."""
        self.services.status_cache.invalidate()
        self.app.call_from_thread(lambda: self.set_timer(0.5, self.update_data))
