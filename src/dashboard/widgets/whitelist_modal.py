"""Whitelist editor modal."""

from typing import Dict, List, Optional, Tuple

from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, ListItem, ListView

from utils.validators import validate_comment, validate_ip_or_cidr

# ("add" | "update", ip, comment), ("remove", ip, None) or ("sync", None, None)
WhitelistAction = Tuple[str, Optional[str], Optional[str]]


class WhitelistModal(ModalScreen[Optional[WhitelistAction]]):
    """
    Lists whitelist entries and returns the operator's choice.

    Highlighting an entry loads it into the form; saving an address that
    is already listed updates its comment instead of adding a duplicate.
    """

    DEFAULT_CSS = """
    WhitelistModal {
        align: center middle;
        background: $background 60%;
    }
    #wl_dialog {
        width: 70;
        height: 28;
        border: round $success;
        background: $surface;
        padding: 1 2;
    }
    #wl_title {
        width: 100%;
        text-align: center;
    }
    #wl_entries {
        height: 1fr;
        margin: 1 0;
        border: solid $success;
    }
    #wl_error {
        height: 1;
        color: $error;
    }
    #wl_actions {
        height: 3;
        align: center middle;
    }
    #wl_actions Button {
        margin: 0 1;
    }
    """

    def __init__(self, entries: List[Tuple[str, Optional[str]]], selected_ip: Optional[str] = None):
        super().__init__()
        self._entries = list(entries)
        self._comments: Dict[str, Optional[str]] = dict(self._entries)
        self._selected_ip = selected_ip

    def compose(self):
        with Vertical(id="wl_dialog"):
            yield Label(f"[bold]Fail2Ban Whitelist[/bold] [dim]({len(self._entries)} entries)[/dim]", id="wl_title")
            yield ListView(
                *[ListItem(Label(f"{ip}  [dim]{comment or ''}[/dim]"), name=ip) for ip, comment in self._entries],
                id="wl_entries",
            )
            yield Input(placeholder="IP or CIDR, e.g. 10.0.0.0/24", id="wl_ip", value=self._selected_ip or "")
            yield Input(placeholder="Comment (optional)", id="wl_comment")
            yield Label("", id="wl_error")
            with Horizontal(id="wl_actions"):
                yield Button("Save", id="save", variant="success")
                yield Button("Remove", id="remove", variant="error")
                yield Button("Sync now", id="sync", variant="warning")
                yield Button("Close", id="close")

    def on_mount(self) -> None:
        self.query_one("#wl_ip", Input).focus()

    def on_list_view_highlighted(self, event: ListView.Highlighted) -> None:
        if event.item is None or event.item.name is None:
            return
        self.query_one("#wl_ip", Input).value = event.item.name
        self.query_one("#wl_comment", Input).value = self._comments.get(event.item.name) or ""

    def _error(self, message: str) -> None:
        self.query_one("#wl_error", Label).update(message)

    def _save(self) -> None:
        try:
            ip = validate_ip_or_cidr(self.query_one("#wl_ip", Input).value)
            comment = validate_comment(self.query_one("#wl_comment", Input).value)
        except ValueError as e:
            self._error(str(e))
            return
        if ip in self._comments:
            if comment == self._comments[ip]:
                self._error("Nothing changed")
                return
            self.dismiss(("update", ip, comment))
        else:
            self.dismiss(("add", ip, comment))

    def _remove(self) -> None:
        ip = self.query_one("#wl_ip", Input).value.strip()
        if ip not in self._comments:
            self._error("Select a whitelisted entry to remove")
            return
        self.dismiss(("remove", ip, None))

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button = event.button.id
        if button == "save":
            self._save()
        elif button == "remove":
            self._remove()
        elif button == "sync":
            self.dismiss(("sync", None, None))
        else:
            self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._save()

    def on_key(self, event) -> None:
        if event.key == "escape":
            self.dismiss(None)
