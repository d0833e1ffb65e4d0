"""Yes/no confirmation for install, uninstall, use and exit."""

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label


class ConfirmActionModal(ModalScreen[bool]):
    """Dismisses with True when the user confirms, False otherwise."""

    BINDINGS = [
        ("y", "answer(True)", "Yes"),
        ("n", "answer(False)", "No"),
        ("escape", "answer(False)", "No"),
    ]

    CSS = """
    ConfirmActionModal {
        align: center middle;
    }

    #confirm-dialog {
        width: 64;
        height: auto;
        padding: 1 2;
        border: thick $warning;
        background: $panel;
    }

    #confirm-heading {
        width: 100%;
        content-align: center middle;
        text-style: bold;
    }

    #confirm-message {
        width: 100%;
        margin: 1 0;
        content-align: center middle;
    }

    #confirm-buttons {
        width: 100%;
        height: auto;
        align-horizontal: center;
    }

    #confirm-buttons Button {
        margin: 0 2;
    }
    """

    def __init__(self, heading: str, message: str):
        super().__init__()
        self.heading = heading
        self.message = message

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-dialog"):
            yield Label(self.heading, id="confirm-heading")
            yield Label(self.message, id="confirm-message")
            with Horizontal(id="confirm-buttons"):
                yield Button("Yes (y)", id="yes", variant="warning")
                yield Button("No (n)", id="no")

    def on_mount(self) -> None:
        self.query_one("#no", Button).focus()

    @on(Button.Pressed, "#yes")
    def on_yes(self) -> None:
        self.dismiss(True)

    @on(Button.Pressed, "#no")
    def on_no(self) -> None:
        self.dismiss(False)

    def action_answer(self, confirmed: bool) -> None:
        self.dismiss(confirmed)
