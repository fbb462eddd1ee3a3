"""Main Textual app class."""

from __future__ import annotations

import logging

from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.events import Key
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Header, Static

from receipt_types.backend import TaxonomyBackend
from receipt_types.dialogs import AlertModal, ConfirmModal, NameModal, request_dialog
from receipt_types.drag import DragSessionController, DragState
from receipt_types.errors import DragSessionError, ValidationError
from receipt_types.models import group_id_for
from receipt_types.ordering import DragSubject, DropTarget, TargetKind
from receipt_types.reconciler import BatchReconciler
from receipt_types.rendering import container_of_row, format_errors, render_rows, row_targets, window_bounds
from receipt_types.store import TaxonomyStore

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "J/K move. M pick up, Enter drop, Esc cancel.\n"
    "G group, A type, R rename, D delete.\n"
    "Ctrl+S save, U discard, Z revert, Ctrl+R defaults."
)


class ReceiptTypesApp(App):
    """A Textual app for grouping and ordering receipt types."""

    TITLE = "Receipt Types"
    SUB_TITLE = "Groups / Types"

    CSS = """
    Screen {
        layout: vertical;
    }

    #main-layout {
        height: 1fr;
    }

    #taxonomy-pane {
        width: 3fr;
        border: round $primary;
        padding: 1;
    }

    #status-pane {
        width: 2fr;
        border: round $secondary;
        padding: 1;
    }

    #status-bar {
        border: heavy $secondary;
        padding: 0 1;
        margin-bottom: 1;
        height: auto;
    }

    #errors {
        height: 1fr;
        border: tall $surface;
        padding: 0 1;
    }

    #taxonomy-list {
        height: 1fr;
        border: tall $surface;
        padding: 0 1;
    }

    .pane-title {
        text-style: bold;
        margin-bottom: 1;
    }
    """

    cursor_index = reactive(0)

    BINDINGS = [
        ("up", "move_cursor(-1)", "Previous row"),
        ("down", "move_cursor(1)", "Next row"),
        ("enter", "drop", "Drop"),
        Binding("ctrl+s", "save", "Save", priority=True),
        ("ctrl+r", "reset_defaults", "Reset to defaults"),
        ("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, backend: TaxonomyBackend) -> None:
        super().__init__()
        self.backend = backend
        self.store = TaxonomyStore()
        self.reconciler = BatchReconciler(self.store, backend)
        self.drag = DragSessionController(self.store)
        self.system_status = ""
        self.store.subscribe(lambda previous, snapshot: self._refresh_all())

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-layout"):
            with Vertical(id="taxonomy-pane"):
                yield Static("Receipt Types", classes="pane-title")
                yield Static("(loading)", id="taxonomy-list")
            with Vertical(id="status-pane"):
                yield Static(id="status-bar")
                yield Static(id="errors")

    def on_mount(self) -> None:
        self._refresh_all()
        self.load_taxonomy()

    @work(exclusive=True, group="load")
    async def load_taxonomy(self) -> None:
        try:
            await self.reconciler.load()
        except Exception as exc:
            logger.exception("initial load failed")
            self.system_status = f"Load failed: {exc}"
        else:
            self.system_status = "Loaded"
        self._refresh_all()

    def on_key(self, event: Key) -> None:
        if self._modal_open():
            return

        if event.key == "escape":
            self.action_cancel_drag()
            event.stop()
            return

        if not event.is_printable or not event.character or len(event.character) != 1:
            return

        handlers = {
            "j": lambda: self.action_move_cursor(1),
            "k": lambda: self.action_move_cursor(-1),
            "m": self.action_pick_up,
            "g": self.action_new_group,
            "a": self.action_new_type,
            "r": self.action_rename,
            "d": self.action_delete,
            "u": self.action_discard,
            "z": self.action_revert,
        }
        handler = handlers.get(event.character.lower())
        if handler is None:
            return
        handler()
        event.stop()

    # Drag gesture

    def action_move_cursor(self, delta: int) -> None:
        if self._modal_open():
            return
        rows = self._rows()
        if not rows:
            return
        self.cursor_index = (self.cursor_index + delta) % len(rows)
        if self.drag.is_dragging:
            self.drag.hover(rows[self.cursor_index])
        self._refresh_all()

    def action_pick_up(self) -> None:
        if self._modal_open() or self.drag.is_dragging:
            return
        target = self._cursor_target()
        if target is None or target.kind not in (TargetKind.GROUP, TargetKind.TYPE):
            self._set_status("Only groups and receipt types can be moved")
            return
        if target.kind is TargetKind.GROUP:
            subject = DragSubject.group(target.id)
        else:
            subject = DragSubject.receipt_type(target.id)
        try:
            self.drag.start(subject)
        except DragSessionError as exc:
            self._set_status(str(exc))
            return
        self.drag.hover(target)
        self._set_status(f"Moving {self._label(target)}: J/K choose target, Enter drop, Esc cancel")

    def action_drop(self) -> None:
        if self._modal_open() or not self.drag.is_dragging:
            return
        outcome = self.drag.drop(self._cursor_target())
        if outcome.state is DragState.CANCELLED:
            self._set_status("Not a valid drop target; move cancelled")
        elif outcome.changed:
            self.system_status = "Moved (unsaved)"
        else:
            self.system_status = "Nothing changed"
        self._focus_token(outcome.subject.token)
        self._refresh_all()

    def action_cancel_drag(self) -> None:
        if not self.drag.is_dragging:
            return
        outcome = self.drag.cancel()
        self._focus_token(outcome.subject.token)
        self._set_status("Move cancelled")

    # Edits

    def action_new_group(self) -> None:
        if not self._blocked():
            self._new_group_flow()

    def action_new_type(self) -> None:
        if not self._blocked():
            self._new_type_flow()

    def action_rename(self) -> None:
        if not self._blocked():
            self._rename_flow()

    def action_delete(self) -> None:
        if not self._blocked():
            self._delete_flow()

    @work(group="dialogs")
    async def _new_group_flow(self) -> None:
        name = await request_dialog(self, NameModal("New group"))
        if name is None:
            return
        try:
            group = self.store.create_group(name)
        except ValidationError as exc:
            self._set_status(str(exc))
            return
        self._focus_token(DropTarget.group(group.id).token)
        self._set_status(f"Added group {group.name!r} (unsaved)")

    @work(group="dialogs")
    async def _new_type_flow(self) -> None:
        target = self._cursor_target()
        container = container_of_row(self.store.view(), target) if target is not None else None
        group_id = group_id_for(container) if container is not None else None
        name = await request_dialog(self, NameModal("New receipt type"))
        if name is None:
            return
        if group_id is not None and self.store.snapshot.group(group_id) is None:
            group_id = None
        try:
            receipt_type = self.store.create_type(name, group_id)
        except ValidationError as exc:
            self._set_status(str(exc))
            return
        self._focus_token(DropTarget.receipt_type(receipt_type.id).token)
        self._set_status(f"Added receipt type {receipt_type.name!r} (unsaved)")

    @work(group="dialogs")
    async def _rename_flow(self) -> None:
        target = self._cursor_target()
        if target is None or target.kind not in (TargetKind.GROUP, TargetKind.TYPE):
            self._set_status("Nothing to rename here")
            return
        name = await request_dialog(self, NameModal("Rename", initial=self._label(target)))
        if name is None:
            return
        try:
            if target.kind is TargetKind.GROUP:
                self.store.rename_group(target.id, name)
            else:
                self.store.rename_type(target.id, name)
        except (ValidationError, KeyError) as exc:
            self._set_status(str(exc))
            return
        self._set_status(f"Renamed to {name!r} (unsaved)")

    @work(group="dialogs")
    async def _delete_flow(self) -> None:
        target = self._cursor_target()
        if target is None or target.kind not in (TargetKind.GROUP, TargetKind.TYPE):
            self._set_status("Nothing to delete here")
            return
        label = self._label(target)
        if target.kind is TargetKind.GROUP:
            message = f'Delete group "{label}"? All types in this group will be ungrouped.'
        else:
            message = f'Delete receipt type "{label}"?'
        confirmed = await request_dialog(self, ConfirmModal(message, title="Delete", confirm_text="Delete", destructive=True))
        if not confirmed:
            return
        try:
            if target.kind is TargetKind.GROUP:
                self.store.delete_group(target.id)
            else:
                self.store.delete_type(target.id)
        except KeyError as exc:
            self._set_status(str(exc))
            return
        self._set_status(f"Deleted {label!r} (unsaved)")

    # Persistence

    def action_save(self) -> None:
        if self._modal_open():
            return
        if self.reconciler.is_saving:
            self._set_status("Save already in progress")
            return
        self._save_flow()

    @work(group="save")
    async def _save_flow(self) -> None:
        self._set_status("Saving...")
        result = await self.reconciler.save()
        if result.ok:
            self._set_status("Saved")
            return
        self._set_status(f"Save finished with {len(result.errors)} error(s)")
        message = "\n".join(
            f"#{error.entity_id}: {error.message}" if error.entity_id is not None else error.message
            for error in result.errors
        )
        await request_dialog(self, AlertModal(message, title="Some changes were not saved"))

    def action_discard(self) -> None:
        if not self._blocked():
            self._discard_flow()

    @work(group="dialogs")
    async def _discard_flow(self) -> None:
        if self.reconciler.is_dirty:
            confirmed = await request_dialog(
                self,
                ConfirmModal("Discard all unsaved changes and reload?", title="Discard", confirm_text="Discard"),
            )
            if not confirmed:
                return
        await self.reconciler.discard()
        self._set_status("Reloaded saved receipt types")

    def action_revert(self) -> None:
        if self._blocked():
            return
        if not self.reconciler.is_dirty:
            self._set_status("No unsaved changes")
            return
        self.reconciler.revert()
        self._set_status("Reverted unsaved changes")

    def action_reset_defaults(self) -> None:
        if not self._blocked():
            self._reset_flow()

    @work(group="dialogs")
    async def _reset_flow(self) -> None:
        confirmed = await request_dialog(
            self,
            ConfirmModal(
                "Reset all receipt types and groups to defaults? This deletes every existing type and group.",
                title="Reset to defaults",
                confirm_text="Reset",
                destructive=True,
            ),
        )
        if not confirmed:
            return
        await self.reconciler.reset_to_defaults()
        self.cursor_index = 0
        self._set_status("Reset to defaults")

    # Helpers

    def _modal_open(self) -> bool:
        return isinstance(self.screen, ModalScreen)

    def _blocked(self) -> bool:
        if self._modal_open():
            return True
        if self.drag.is_dragging:
            self._set_status("Finish or cancel the move first (Enter / Esc)")
            return True
        return False

    def _rows(self) -> list[DropTarget]:
        return row_targets(self.store.view())

    def _cursor_target(self) -> DropTarget | None:
        rows = self._rows()
        if not rows:
            return None
        if self.cursor_index >= len(rows):
            self.cursor_index = len(rows) - 1
        return rows[self.cursor_index]

    def _focus_token(self, token: str) -> None:
        for idx, row in enumerate(self._rows()):
            if row.token == token:
                self.cursor_index = idx
                return

    def _label(self, target: DropTarget) -> str:
        snapshot = self.store.snapshot
        if target.kind is TargetKind.GROUP and target.id is not None:
            group = snapshot.group(target.id)
            return group.name if group is not None else target.token
        if target.kind is TargetKind.TYPE and target.id is not None:
            receipt_type = snapshot.receipt_type(target.id)
            return receipt_type.name if receipt_type is not None else target.token
        return "Ungrouped"

    def _set_status(self, message: str) -> None:
        self.system_status = message
        self._refresh_all()

    def _refresh_all(self) -> None:
        self._refresh_taxonomy()
        self._refresh_status()

    def _visible_rows(self, widget: Static, total: int) -> int:
        height = widget.size.height
        if height <= 0:
            return 12
        # Overflowing lists give up two lines to the scroll markers.
        return height if total <= height else max(1, height - 2)

    def _refresh_taxonomy(self) -> None:
        try:
            list_widget = self.query_one("#taxonomy-list", Static)
        except NoMatches:
            return

        view = self.store.view()
        lines = render_rows(
            view,
            cursor=self._cursor_target(),
            subject=self.drag.subject,
            highlight=self.drag.highlight,
            changed=self.reconciler.changed_containers(),
        )
        rows = row_targets(view)
        start, end = window_bounds(rows, self._visible_rows(list_widget, len(rows)), self.cursor_index)

        text = Text()
        if start > 0:
            text.append("⋮\n", style="dim")
        for idx in range(start, end):
            if idx > start:
                text.append("\n")
            text.append_text(lines[idx])
        if end < len(lines):
            text.append("\n⋮", style="dim")
        list_widget.update(text)

    def _refresh_status(self) -> None:
        try:
            bar = self.query_one("#status-bar", Static)
            errors_widget = self.query_one("#errors", Static)
        except NoMatches:
            return

        text = Text()
        if self.drag.is_dragging:
            text.append("MOVING", style="bold #ffffff on #b23a48")
        else:
            text.append("NORMAL", style="bold #0b1f0f on #5fbf72")
        if self.reconciler.is_saving:
            text.append("  saving…", style="italic")
        elif self.reconciler.is_dirty:
            text.append("  ● unsaved changes", style="bold #e5c07b")
        else:
            text.append(f"  {self.reconciler.phase.value}", style="dim")
        text.append(f"\n{self.system_status or 'Ready'}\n\n")
        text.append(HELP_TEXT, style="dim")
        bar.update(text)

        if self.reconciler.last_errors:
            errors_widget.update(format_errors(self.reconciler.last_errors))
        else:
            errors_widget.update("")
