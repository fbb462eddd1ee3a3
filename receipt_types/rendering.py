"""Rendering helpers for the taxonomy pane."""

from __future__ import annotations

from typing import Iterable, Sequence

from rich.text import Text

from receipt_types.errors import EntityError
from receipt_types.models import UNGROUPED, ContainerKey, ReceiptType
from receipt_types.ordering import DragSubject, DropTarget, SubjectKind, TargetKind
from receipt_types.store import ContainersView

HIGHLIGHT_STYLE = "on #1f3a5f"
DRAGGED_STYLE = "dim italic"


def badge_style(container: ContainerKey) -> str:
    """Return a consistent badge style for container headers."""
    if container is UNGROUPED:
        return "bold #ffffff on #6b6b6b"
    return "bold #0b1f0f on #5fbf72"


def row_targets(view: ContainersView) -> list[DropTarget]:
    """Every selectable row, top to bottom.

    Groups list their header then their types; an empty group shows a drop
    zone row instead. Ungrouped comes last and its header doubles as its
    drop zone.
    """
    rows: list[DropTarget] = []
    for group in view.groups:
        rows.append(DropTarget.group(group.id))
        members = view.types_in(group.id)
        if members:
            rows.extend(DropTarget.receipt_type(member.id) for member in members)
        else:
            rows.append(DropTarget.zone(group.id))
    rows.append(DropTarget.ungrouped())
    rows.extend(DropTarget.receipt_type(member.id) for member in view.types_in(UNGROUPED))
    return rows


def window_bounds(rows: Sequence[DropTarget], height: int, selected: int | None) -> tuple[int, int]:
    """Slice of `rows` shown in `height` lines, centred on `selected`.

    When it fits, the header of the selected row's container stays on screen
    so a type is never shown without the group it belongs to.
    """
    total = len(rows)
    if total <= 0:
        return (0, 0)

    height = max(1, height)
    if total <= height:
        return (0, total)
    if selected is None:
        return (0, height)

    selected = max(0, min(selected, total - 1))
    start = selected - height // 2
    header = _header_index(rows, selected)
    if header < start and selected - header < height:
        start = header
    start = max(0, min(start, total - height))
    return (start, start + height)


def _header_index(rows: Sequence[DropTarget], idx: int) -> int:
    for pos in range(idx, -1, -1):
        if rows[pos].kind in (TargetKind.GROUP, TargetKind.UNGROUPED):
            return pos
    return 0


def container_of_row(view: ContainersView, target: DropTarget) -> ContainerKey:
    """The container a row visually belongs to."""
    if target.kind in (TargetKind.GROUP, TargetKind.GROUP_ZONE) and target.id is not None:
        return target.id
    if target.kind is TargetKind.TYPE:
        for container in view.container_keys():
            if any(member.id == target.id for member in view.types_in(container)):
                return container
    return UNGROUPED


def format_type_label(receipt_type: ReceiptType, dragged: bool = False) -> Text:
    text = Text()
    text.append(receipt_type.name, style=DRAGGED_STYLE if dragged else "")
    return text


def render_rows(
    view: ContainersView,
    cursor: DropTarget | None = None,
    subject: DragSubject | None = None,
    highlight: ContainerKey | None = None,
    changed: Iterable[ContainerKey] = (),
) -> list[Text]:
    """One line of styled text per entry of `row_targets(view)`."""
    changed_keys = set(changed)
    names = {group.id: group.name for group in view.groups}
    types = {member.id: member for container in view.container_keys() for member in view.types_in(container)}

    lines: list[Text] = []
    for target in row_targets(view):
        line = Text()
        line.append("➤ " if target == cursor else "  ")
        container = container_of_row(view, target)
        dragged = subject is not None and target.is_subject(subject)
        # A dragged group drags its whole block.
        if subject is not None and subject.kind is SubjectKind.GROUP and container == subject.id:
            dragged = True

        if target.kind is TargetKind.GROUP:
            line.append("G", style=badge_style(container))
            line.append(f" {names[target.id]}", style=DRAGGED_STYLE if dragged else "bold")
            if container in changed_keys:
                line.append(" *", style="bold #e5c07b")
        elif target.kind is TargetKind.UNGROUPED:
            line.append("U", style=badge_style(UNGROUPED))
            line.append(" Ungrouped", style="bold")
            if UNGROUPED in changed_keys:
                line.append(" *", style="bold #e5c07b")
        elif target.kind is TargetKind.GROUP_ZONE:
            line.append("    (drop types here)", style="dim")
        else:
            line.append("    ")
            line.append_text(format_type_label(types[target.id], dragged=dragged))

        if highlight is not None and container == highlight:
            line.stylize(HIGHLIGHT_STYLE)
        lines.append(line)
    return lines


def format_errors(errors: Iterable[EntityError]) -> Text:
    """Render per-entity save errors, one per line."""
    text = Text()
    for idx, error in enumerate(errors):
        if idx > 0:
            text.append("\n")
        label = f"#{error.entity_id}" if error.entity_id is not None else "save"
        text.append(f"{label}: ", style="bold #ffb3b3")
        text.append(error.message)
    return text
