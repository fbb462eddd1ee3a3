"""Modal dialogs and the future-based request helper."""

from __future__ import annotations

import asyncio
from typing import TypeVar

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.events import Key
from textual.screen import ModalScreen
from textual.widgets import Static

ResultT = TypeVar("ResultT")


def request_dialog(app: App, screen: ModalScreen[ResultT]) -> asyncio.Future[ResultT]:
    """Push `screen` and return a future resolved once with its dismiss value.

    Each call gets its own future, so several dialogs may be requested before
    the first one is answered. Await the future from a worker, never from a
    message handler: the handler would block the keys that answer it.
    """
    future: asyncio.Future[ResultT] = asyncio.get_running_loop().create_future()

    def _resolve(result: ResultT) -> None:
        if not future.done():
            future.set_result(result)

    app.push_screen(screen, callback=_resolve)
    return future


class ConfirmModal(ModalScreen[bool]):
    """Yes/no question."""

    CSS = """
    ConfirmModal {
        align: center middle;
        background: $background 60%;
    }

    #confirm-dialog {
        width: 64;
        height: auto;
        border: round $secondary;
        background: $panel;
        padding: 1 2;
    }

    #confirm-dialog.destructive {
        border: round $error;
    }

    #confirm-title {
        text-style: bold;
        margin-bottom: 1;
        color: white;
    }

    #confirm-help {
        margin-top: 1;
        color: #dddddd;
    }
    """

    BINDINGS = [
        ("y", "answer(True)", "Confirm"),
        ("enter", "answer(True)", "Confirm"),
        ("n", "answer(False)", "Cancel"),
        ("escape", "answer(False)", "Cancel"),
        ("q", "answer(False)", "Cancel"),
    ]

    def __init__(
        self,
        message: str,
        title: str = "Confirm",
        confirm_text: str = "Confirm",
        cancel_text: str = "Cancel",
        destructive: bool = False,
    ) -> None:
        super().__init__()
        self.message = message
        self.title_text = title
        self.confirm_text = confirm_text
        self.cancel_text = cancel_text
        self.destructive = destructive

    def compose(self) -> ComposeResult:
        classes = "destructive" if self.destructive else ""
        with Container(id="confirm-dialog", classes=classes):
            yield Static(self.title_text, id="confirm-title")
            yield Static(self.message, id="confirm-body")
            yield Static(f"Y/Enter {self.confirm_text}. N/Esc {self.cancel_text}.", id="confirm-help")

    def action_answer(self, confirmed: bool) -> None:
        self.dismiss(confirmed)


class AlertModal(ModalScreen[None]):
    """Message with a single acknowledge key."""

    CSS = """
    AlertModal {
        align: center middle;
        background: $background 60%;
    }

    #alert-dialog {
        width: 64;
        height: auto;
        border: round $secondary;
        background: $panel;
        padding: 1 2;
    }

    #alert-title {
        text-style: bold;
        margin-bottom: 1;
        color: white;
    }

    #alert-help {
        margin-top: 1;
        color: #dddddd;
    }
    """

    BINDINGS = [
        ("enter", "close", "OK"),
        ("escape", "close", "OK"),
        ("q", "close", "OK"),
    ]

    def __init__(self, message: str, title: str = "Alert", button_text: str = "OK") -> None:
        super().__init__()
        self.message = message
        self.title_text = title
        self.button_text = button_text

    def compose(self) -> ComposeResult:
        with Container(id="alert-dialog"):
            yield Static(self.title_text, id="alert-title")
            yield Static(self.message, id="alert-body")
            yield Static(f"Enter/Esc {self.button_text}", id="alert-help")

    def action_close(self) -> None:
        self.dismiss(None)


class NameModal(ModalScreen[str | None]):
    """Single-line name entry for new or renamed groups and types."""

    CSS = """
    NameModal {
        align: center middle;
        background: $background 60%;
    }

    #name-dialog {
        width: 56;
        height: auto;
        border: round $secondary;
        background: $panel;
        padding: 1 2;
    }

    #name-title {
        text-style: bold;
        margin-bottom: 1;
        color: white;
    }

    #name-value {
        border: heavy $secondary;
        padding: 0 1;
        color: white;
        margin-bottom: 1;
    }

    #name-error {
        color: #ffb3b3;
        margin-bottom: 1;
    }

    #name-help {
        color: #dddddd;
    }
    """

    MAX_LENGTH = 80

    def __init__(self, title: str, initial: str = "") -> None:
        super().__init__()
        self.title_text = title
        self.value = initial
        self.error = ""

    def compose(self) -> ComposeResult:
        with Container(id="name-dialog"):
            yield Static(self.title_text, id="name-title")
            yield Static(id="name-value")
            yield Static(id="name-error")
            yield Static("Type a name. Enter confirm. Backspace delete. Esc/Ctrl+C cancel.", id="name-help")

    def on_mount(self) -> None:
        self._refresh_content()

    def on_key(self, event: Key) -> None:
        if event.key in {"escape", "ctrl+c"}:
            self.dismiss(None)
            event.stop()
            return

        if event.key == "enter":
            self._confirm()
            event.stop()
            return

        if event.key == "backspace":
            if self.value:
                self.value = self.value[:-1]
                self.error = ""
                self._refresh_content()
            event.stop()
            return

        if event.is_printable and event.character:
            if len(self.value) < self.MAX_LENGTH:
                self.value += event.character
            self.error = ""
            self._refresh_content()
            event.stop()

    def _confirm(self) -> None:
        cleaned = self.value.strip()
        if not cleaned:
            self.error = "Name is required."
            self._refresh_content()
            return
        self.dismiss(cleaned)

    def _refresh_content(self) -> None:
        self.query_one("#name-value", Static).update(f"{self.value}|")
        self.query_one("#name-error", Static).update(self.error or "")
