"""Yes/no dialog for ban, unban and bulk unban."""

from dataclasses import dataclass
from typing import Optional

from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Checkbox, Label, Static


@dataclass(frozen=True)
class ConfirmResult:
    """Operator's answer. Truthy only when confirmed."""

    confirmed: bool
    option: bool = False

    def __bool__(self) -> bool:
        return self.confirmed


class ConfirmModal(ModalScreen[ConfirmResult]):
    """
    Ask before an irreversible jail action.

    ``option_label`` adds a checkbox whose state comes back as
    ``ConfirmResult.option`` (used for "also whitelist after unban").
    """

    BINDINGS = [
        ("escape", "answer(False)", "Cancel"),
        ("y", "answer(True)", "Confirm"),
    ]

    DEFAULT_CSS = """
    ConfirmModal {
        align: center middle;
        background: $background 60%;
    }
    #confirm_box {
        width: 56;
        height: auto;
        border: thick $error;
        background: $surface;
        padding: 1 2;
    }
    #confirm_box > * {
        margin-bottom: 1;
    }
    #confirm_heading {
        width: 100%;
        text-align: center;
    }
    #confirm_buttons {
        height: 3;
        align: center middle;
        margin-bottom: 0;
    }
    #confirm_buttons Button {
        margin: 0 2;
    }
    """

    def __init__(self, title: str, message: str, confirm_label: str = "Confirm", option_label: Optional[str] = None):
        super().__init__()
        self.heading = title
        self.message = message
        self.confirm_label = confirm_label
        self.option_label = option_label

    def compose(self):
        with Vertical(id="confirm_box"):
            yield Label(f"[bold red]{self.heading}[/bold red]", id="confirm_heading")
            yield Static(self.message)
            if self.option_label:
                yield Checkbox(self.option_label, id="confirm_option")
            with Horizontal(id="confirm_buttons"):
                yield Button("Cancel", id="cancel")
                yield Button(self.confirm_label, id="confirm", variant="error")

    def on_mount(self) -> None:
        self.query_one("#cancel", Button).focus()

    def action_answer(self, confirmed: bool) -> None:
        option = False
        if confirmed and self.option_label:
            option = self.query_one("#confirm_option", Checkbox).value
        self.dismiss(ConfirmResult(confirmed, option))

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.action_answer(event.button.id == "confirm")
