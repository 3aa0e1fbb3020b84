"""Prompt for a single IP address."""

from typing import Optional

from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from utils.validators import is_valid_ip


class IPInputModal(ModalScreen[Optional[str]]):
    """Ask the operator for an IP; dismisses with the IP or None."""

    DEFAULT_CSS = """
    IPInputModal {
        align: center middle;
        background: $background 60%;
    }
    #ip_dialog {
        width: 50;
        height: 11;
        border: round $primary;
        background: $surface;
        padding: 1 2;
    }
    #ip_title {
        text-align: center;
        width: 100%;
        margin-bottom: 1;
    }
    #ip_buttons {
        align: center middle;
        height: 3;
        margin-top: 1;
    }
    #ip_buttons Button {
        margin: 0 1;
    }
    """

    def __init__(self, title: str, confirm_label: str = "OK"):
        super().__init__()
        self.title_text = title
        self.confirm_label = confirm_label

    def compose(self):
        with Vertical(id="ip_dialog"):
            yield Label(f"[bold]{self.title_text}[/bold]", id="ip_title")
            yield Input(placeholder="e.g. 203.0.113.5", id="ip_input")
            with Horizontal(id="ip_buttons"):
                yield Button("Cancel", id="cancel")
                yield Button(self.confirm_label, id="ok", variant="error")

    def on_mount(self) -> None:
        self.query_one("#ip_input", Input).focus()

    def _submit(self) -> None:
        ip = self.query_one("#ip_input", Input).value.strip()
        if not is_valid_ip(ip):
            self.notify("Enter a valid IPv4 or IPv6 address", severity="warning")
            return
        self.dismiss(ip)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "ok":
            self._submit()
        else:
            self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()

    def on_key(self, event) -> None:
        if event.key == "escape":
            self.dismiss(None)
