"""Ordering engine: pure functions that turn a drop into a new snapshot.

Three cases are handled, in priority order:

1. group dropped on a group: array-move among groups, then renumber every
   group 0..N-1;
2. type dropped on a type in the same container: array-move inside that
   container, then renumber it;
3. type dropped on a different container (its header, its empty drop zone,
   the Ungrouped region, or a type living there): insert at the target
   position, or append, then renumber the destination. The source list
   closes its gap.

None of these functions mutate their inputs.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, TypeVar

from receipt_types.errors import InvariantViolation, UnknownEntityError
from receipt_types.models import UNGROUPED, ContainerKey, Snapshot
from receipt_types.store import (
    containers_view,
    place_in_container,
    renumber_groups,
    replace_groups,
    replace_types,
)

T = TypeVar("T")


class SubjectKind(Enum):
    GROUP = "group"
    TYPE = "type"


class TargetKind(Enum):
    GROUP = "group"
    TYPE = "type"
    GROUP_ZONE = "group-drop"
    UNGROUPED = "ungrouped"


@dataclass(frozen=True)
class DragSubject:
    """The group or receipt type being dragged."""

    kind: SubjectKind
    id: int

    @classmethod
    def group(cls, group_id: int) -> DragSubject:
        return cls(SubjectKind.GROUP, group_id)

    @classmethod
    def receipt_type(cls, type_id: int) -> DragSubject:
        return cls(SubjectKind.TYPE, type_id)

    @property
    def token(self) -> str:
        return f"{self.kind.value}-{self.id}"


@dataclass(frozen=True)
class DropTarget:
    """A hoverable element: a group header, a type row, a drop zone, or Ungrouped."""

    kind: TargetKind
    id: int | None = None

    @classmethod
    def group(cls, group_id: int) -> DropTarget:
        return cls(TargetKind.GROUP, group_id)

    @classmethod
    def receipt_type(cls, type_id: int) -> DropTarget:
        return cls(TargetKind.TYPE, type_id)

    @classmethod
    def zone(cls, group_id: int) -> DropTarget:
        return cls(TargetKind.GROUP_ZONE, group_id)

    @classmethod
    def ungrouped(cls) -> DropTarget:
        return cls(TargetKind.UNGROUPED)

    @classmethod
    def parse(cls, token: str) -> DropTarget:
        """Parse `group-3`, `type-7`, `group-drop-3` or `ungrouped`."""
        if token == TargetKind.UNGROUPED.value:
            return cls.ungrouped()
        for kind in (TargetKind.GROUP_ZONE, TargetKind.GROUP, TargetKind.TYPE):
            prefix = f"{kind.value}-"
            if token.startswith(prefix):
                raw_id = token[len(prefix) :]
                try:
                    return cls(kind, int(raw_id))
                except ValueError:
                    break
        raise ValueError(f"Not a drop target token: {token!r}")

    @property
    def token(self) -> str:
        if self.kind is TargetKind.UNGROUPED:
            return self.kind.value
        return f"{self.kind.value}-{self.id}"

    def is_subject(self, subject: DragSubject) -> bool:
        """True when this element is the dragged element itself."""
        return self.kind.value == subject.kind.value and self.id == subject.id


@dataclass(frozen=True)
class GroupPlacement:
    index: int


@dataclass(frozen=True)
class TypePlacement:
    container: ContainerKey
    # None appends to the end of the container.
    index: int | None = None


Placement = GroupPlacement | TypePlacement


def array_move(items: Sequence[T], src: int, dst: int) -> list[T]:
    """Remove the element at `src` and reinsert it at `dst`."""
    moved = list(items)
    if not moved:
        return moved
    element = moved.pop(src)
    dst = max(0, min(dst, len(moved)))
    moved.insert(dst, element)
    return moved


def resolve_drop_target(snapshot: Snapshot, subject: DragSubject, hovered: DropTarget) -> Placement | None:
    """Work out where `subject` would land if released over `hovered`.

    Pure; the drag controller calls it on every hover move to drive the
    highlight. Returns None when `hovered` is not a valid target.
    """
    view = containers_view(snapshot)

    if subject.kind is SubjectKind.GROUP:
        if snapshot.group(subject.id) is None:
            return None
        group_id = _group_under(snapshot, hovered)
        if group_id is None:
            return None
        return GroupPlacement(view.group_index(group_id))

    if snapshot.receipt_type(subject.id) is None:
        return None

    if hovered.kind is TargetKind.TYPE:
        target = snapshot.receipt_type(hovered.id) if hovered.id is not None else None
        if target is None:
            return None
        container = snapshot.container_of(target)
        return TypePlacement(container, view.types_in(container).index(target))

    if hovered.kind in (TargetKind.GROUP, TargetKind.GROUP_ZONE):
        if hovered.id is None or snapshot.group(hovered.id) is None:
            # The group went away mid-drag; never leave a dangling group_id.
            return TypePlacement(UNGROUPED)
        return TypePlacement(hovered.id)

    return TypePlacement(UNGROUPED)


def highlight_container(snapshot: Snapshot, subject: DragSubject, hovered: DropTarget | None) -> ContainerKey | None:
    """Container to highlight while a type is dragged over `hovered`."""
    if hovered is None or subject.kind is not SubjectKind.TYPE:
        return None
    placement = resolve_drop_target(snapshot, subject, hovered)
    if isinstance(placement, TypePlacement):
        return placement.container
    return None


def apply_drop(snapshot: Snapshot, subject: DragSubject, hovered: DropTarget) -> Snapshot:
    """Compute the snapshot after releasing `subject` over `hovered`.

    Returns the input object itself for every no-op.
    """
    if hovered.is_subject(subject):
        return snapshot

    placement = resolve_drop_target(snapshot, subject, hovered)
    if placement is None:
        return snapshot

    if isinstance(placement, GroupPlacement):
        result = move_group(snapshot, subject.id, placement.index)
    else:
        dragged = snapshot.receipt_type(subject.id)
        if dragged is None:
            raise UnknownEntityError("receipt type", subject.id)
        if placement.container == snapshot.container_of(dragged) and placement.index is None:
            return snapshot
        result = move_type(snapshot, subject.id, placement.container, placement.index)

    if result == snapshot:
        return snapshot
    return result


def move_group(snapshot: Snapshot, group_id: int, index: int) -> Snapshot:
    """Array-move a group and reassign every group's display_order."""
    view = containers_view(snapshot)
    ordered = array_move(view.groups, view.group_index(group_id), index)
    return replace_groups(snapshot, renumber_groups(ordered))


def move_type(snapshot: Snapshot, type_id: int, container: ContainerKey, index: int | None = None) -> Snapshot:
    """Move a type to `index` of `container` (append when index is None)."""
    dragged = snapshot.receipt_type(type_id)
    if dragged is None:
        raise UnknownEntityError("receipt type", type_id)
    if container is not UNGROUPED and snapshot.group(container) is None:
        raise UnknownEntityError("group", container)

    view = containers_view(snapshot)
    source = snapshot.container_of(dragged)

    if source == container:
        members = list(view.types_in(container))
        dst = len(members) - 1 if index is None else index
        ordered = array_move(members, members.index(dragged), dst)
        return replace_types(snapshot, place_in_container(ordered, container))

    remaining = [member for member in view.types_in(source) if member.id != type_id]
    destination = list(view.types_in(container))
    position = len(destination) if index is None else max(0, min(index, len(destination)))
    destination.insert(position, dragged)

    changed = place_in_container(remaining, source)
    changed.update(place_in_container(destination, container))
    return replace_types(snapshot, changed)


def normalize(snapshot: Snapshot) -> Snapshot:
    """Dense renumber of groups and of every container, in current visual order."""
    view = containers_view(snapshot)
    result = replace_groups(snapshot, renumber_groups(view.groups))
    changed = {}
    for container in view.container_keys():
        changed.update(place_in_container(list(view.types_in(container)), container))
    return replace_types(result, changed)


def check_invariants(snapshot: Snapshot) -> None:
    """Raise InvariantViolation if ids, containment or density are broken."""
    group_ids = Counter(group.id for group in snapshot.groups)
    duplicates = [group_id for group_id, count in group_ids.items() if count > 1]
    if duplicates:
        raise InvariantViolation(f"duplicate group ids: {duplicates}")

    type_ids = Counter(receipt_type.id for receipt_type in snapshot.types)
    duplicates = [type_id for type_id, count in type_ids.items() if count > 1]
    if duplicates:
        raise InvariantViolation(f"duplicate receipt type ids: {duplicates}")

    for receipt_type in snapshot.types:
        if receipt_type.group_id is not None and receipt_type.group_id not in group_ids:
            raise InvariantViolation(f"receipt type {receipt_type.id} points at missing group {receipt_type.group_id}")

    view = containers_view(snapshot)
    claimed = [member.id for container in view.container_keys() for member in view.types_in(container)]
    if sorted(claimed) != sorted(type_ids):
        raise InvariantViolation("containers do not partition the receipt types")

    for container in view.container_keys():
        orders = sorted(member.display_order for member in view.types_in(container))
        if orders != list(range(len(orders))):
            raise InvariantViolation(f"container {container!r} is not densely ordered: {orders}")


def _group_under(snapshot: Snapshot, hovered: DropTarget) -> int | None:
    """The group a group-drag would swap with, given the hovered element."""
    if hovered.kind in (TargetKind.GROUP, TargetKind.GROUP_ZONE):
        if hovered.id is not None and snapshot.group(hovered.id) is not None:
            return hovered.id
        return None
    if hovered.kind is TargetKind.TYPE and hovered.id is not None:
        target = snapshot.receipt_type(hovered.id)
        if target is None:
            return None
        container = snapshot.container_of(target)
        return None if container is UNGROUPED else container
    return None
