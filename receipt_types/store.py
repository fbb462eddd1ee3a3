"""In-memory taxonomy store: the editable snapshot and its grouped views."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from functools import lru_cache
from types import MappingProxyType
from typing import Callable, Mapping, Sequence

from receipt_types.errors import UnknownEntityError, ValidationError
from receipt_types.models import (
    UNGROUPED,
    ContainerKey,
    Group,
    ReceiptType,
    Snapshot,
    container_for,
    group_id_for,
    sort_key,
)

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[Snapshot, Snapshot], None]


@dataclass(frozen=True)
class ContainersView:
    """Groups in presentation order and each container's types in order."""

    groups: tuple[Group, ...]
    by_container: Mapping[ContainerKey, tuple[ReceiptType, ...]]

    def container_keys(self) -> list[ContainerKey]:
        """Group ids in presentation order, then the Ungrouped sentinel."""
        return [group.id for group in self.groups] + [UNGROUPED]

    def types_in(self, container: ContainerKey) -> tuple[ReceiptType, ...]:
        return self.by_container.get(container, ())

    def group_index(self, group_id: int) -> int:
        for idx, group in enumerate(self.groups):
            if group.id == group_id:
                return idx
        raise UnknownEntityError("group", group_id)


@lru_cache(maxsize=64)
def containers_view(snapshot: Snapshot) -> ContainersView:
    """Sort groups and bucket types by container.

    Memoized on the snapshot value. Snapshots are immutable, so a cached view
    always matches the snapshot it was computed from. Types pointing at a
    group that no longer exists land in Ungrouped.
    """
    groups = tuple(sorted(snapshot.groups, key=sort_key))
    known = {group.id for group in groups}

    buckets: dict[ContainerKey, list[ReceiptType]] = {group.id: [] for group in groups}
    buckets[UNGROUPED] = []
    for receipt_type in snapshot.types:
        if receipt_type.group_id is not None and receipt_type.group_id in known:
            buckets[receipt_type.group_id].append(receipt_type)
        else:
            buckets[UNGROUPED].append(receipt_type)

    by_container = {key: tuple(sorted(members, key=sort_key)) for key, members in buckets.items()}
    return ContainersView(groups=groups, by_container=MappingProxyType(by_container))


def replace_types(snapshot: Snapshot, changed: Mapping[int, ReceiptType]) -> Snapshot:
    """Swap changed types in place, keeping the snapshot's tuple order."""
    if not changed:
        return snapshot
    types = tuple(changed.get(receipt_type.id, receipt_type) for receipt_type in snapshot.types)
    return replace(snapshot, types=types)


def replace_groups(snapshot: Snapshot, changed: Mapping[int, Group]) -> Snapshot:
    if not changed:
        return snapshot
    groups = tuple(changed.get(group.id, group) for group in snapshot.groups)
    return replace(snapshot, groups=groups)


def place_in_container(members: list[ReceiptType], container: ContainerKey) -> dict[int, ReceiptType]:
    """Assign dense 0..n-1 display orders to `members` inside `container`."""
    group_id = group_id_for(container)
    placed: dict[int, ReceiptType] = {}
    for idx, receipt_type in enumerate(members):
        if receipt_type.group_id != group_id or receipt_type.display_order != idx:
            receipt_type = replace(receipt_type, group_id=group_id, display_order=idx)
        placed[receipt_type.id] = receipt_type
    return placed


def renumber_groups(ordered: Sequence[Group]) -> dict[int, Group]:
    """Assign dense 0..n-1 display orders to groups in the given order."""
    renumbered: dict[int, Group] = {}
    for idx, group in enumerate(ordered):
        if group.display_order != idx:
            group = replace(group, display_order=idx)
        renumbered[group.id] = group
    return renumbered


def clean_name(name: str, kind: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{kind} name is required")
    return cleaned


class TaxonomyStore:
    """Owns the editable snapshot for one editing session.

    Every mutation builds a fresh `Snapshot`; snapshots and views handed out
    earlier are never modified, so they can be diffed against later state.
    """

    def __init__(self, snapshot: Snapshot | None = None) -> None:
        self._snapshot = snapshot if snapshot is not None else Snapshot()
        self._listeners: list[SnapshotListener] = []
        self._provisional_ids = itertools.count(-1, -1)
        self.revision = 0

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def view(self) -> ContainersView:
        return containers_view(self._snapshot)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a mutation listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def commit(self, snapshot: Snapshot) -> bool:
        """Install a locally mutated snapshot. Returns False for a no-op."""
        previous = self._snapshot
        if snapshot == previous:
            return False
        self._snapshot = snapshot
        self.revision += 1
        for listener in list(self._listeners):
            listener(previous, snapshot)
        return True

    def load(self, snapshot: Snapshot) -> None:
        """Install authoritative state from the backing store without notifying."""
        self._snapshot = snapshot
        self.revision += 1

    def next_provisional_id(self) -> int:
        """Ids for unsaved entities are negative and never collide with stored rows."""
        return next(self._provisional_ids)

    # Groups

    def create_group(self, name: str) -> Group:
        cleaned = clean_name(name, "Group")
        self._check_group_name(cleaned)
        existing = self.view().groups
        group = Group(id=self.next_provisional_id(), name=cleaned, display_order=len(existing))
        snapshot = replace_groups(self._snapshot, renumber_groups(existing))
        self.commit(replace(snapshot, groups=snapshot.groups + (group,)))
        logger.info("group_created id=%s name=%r", group.id, group.name)
        return group

    def rename_group(self, group_id: int, name: str) -> Group:
        group = self._require_group(group_id)
        cleaned = clean_name(name, "Group")
        self._check_group_name(cleaned, exclude_id=group_id)
        renamed = replace(group, name=cleaned)
        self.commit(replace_groups(self._snapshot, {group_id: renamed}))
        return renamed

    def delete_group(self, group_id: int) -> list[ReceiptType]:
        """Remove a group; its types move to the end of Ungrouped in order.

        Returns the cascaded types as they now appear in Ungrouped.
        """
        self._require_group(group_id)
        view = self.view()
        orphans = list(view.types_in(group_id))
        ungrouped = list(view.types_in(UNGROUPED)) + orphans

        placed = place_in_container(ungrouped, UNGROUPED)
        remaining = [group for group in view.groups if group.id != group_id]
        snapshot = replace(self._snapshot, groups=tuple(renumber_groups(remaining).values()))
        snapshot = replace_types(snapshot, placed)
        self.commit(snapshot)
        logger.info("group_deleted id=%s cascaded=%d", group_id, len(orphans))
        return [placed[receipt_type.id] for receipt_type in orphans]

    # Receipt types

    def create_type(self, name: str, group_id: int | None = None) -> ReceiptType:
        cleaned = clean_name(name, "Receipt type")
        self._check_type_name(cleaned)
        if group_id is not None:
            self._require_group(group_id)
        container = container_for(group_id)

        members = list(self.view().types_in(container))
        placed = place_in_container(members, container)
        receipt_type = ReceiptType(
            id=self.next_provisional_id(),
            name=cleaned,
            group_id=group_id,
            display_order=len(members),
        )
        snapshot = replace_types(self._snapshot, placed)
        self.commit(replace(snapshot, types=snapshot.types + (receipt_type,)))
        logger.info("type_created id=%s name=%r container=%r", receipt_type.id, cleaned, container)
        return receipt_type

    def rename_type(self, type_id: int, name: str) -> ReceiptType:
        receipt_type = self._require_type(type_id)
        cleaned = clean_name(name, "Receipt type")
        self._check_type_name(cleaned, exclude_id=type_id)
        renamed = replace(receipt_type, name=cleaned)
        self.commit(replace_types(self._snapshot, {type_id: renamed}))
        return renamed

    def delete_type(self, type_id: int) -> None:
        receipt_type = self._require_type(type_id)
        container = self._snapshot.container_of(receipt_type)
        members = [member for member in self.view().types_in(container) if member.id != type_id]
        placed = place_in_container(members, container)
        remaining = tuple(member for member in self._snapshot.types if member.id != type_id)
        self.commit(replace_types(replace(self._snapshot, types=remaining), placed))
        logger.info("type_deleted id=%s", type_id)

    def _require_group(self, group_id: int) -> Group:
        group = self._snapshot.group(group_id)
        if group is None:
            raise UnknownEntityError("group", group_id)
        return group

    def _require_type(self, type_id: int) -> ReceiptType:
        receipt_type = self._snapshot.receipt_type(type_id)
        if receipt_type is None:
            raise UnknownEntityError("receipt type", type_id)
        return receipt_type

    def _check_group_name(self, name: str, exclude_id: int | None = None) -> None:
        for group in self._snapshot.groups:
            if group.name == name and group.id != exclude_id:
                raise ValidationError(f"A group named {name!r} already exists")

    def _check_type_name(self, name: str, exclude_id: int | None = None) -> None:
        for receipt_type in self._snapshot.types:
            if receipt_type.name == name and receipt_type.id != exclude_id:
                raise ValidationError(f"A receipt type named {name!r} already exists")
