"""Batch reconciler: diff local edits against the last load and persist them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable

from receipt_types.backend import TaxonomyBackend
from receipt_types.data import DEFAULT_GROUPS, UNGROUPED_DEFAULTS
from receipt_types.errors import BulkUpdateError, EntityError, PersistenceError
from receipt_types.models import ContainerKey, Group, ReceiptType, Snapshot, TypeUpdate
from receipt_types.ordering import check_invariants, normalize
from receipt_types.store import TaxonomyStore, containers_view

logger = logging.getLogger(__name__)


class SyncPhase(Enum):
    """Who is authoritative right now.

    LOCAL: the in-memory snapshot, while edits are pending.
    SYNCED: the backing store, right after a load or a save reload.
    """

    LOCAL = "local"
    SYNCED = "synced"


@dataclass(frozen=True)
class GroupChange:
    group_id: int
    name: str | None = None
    display_order: int | None = None


@dataclass(frozen=True)
class SavePlan:
    """Requests needed to bring the backing store in line with local state."""

    normalized: Snapshot
    new_groups: tuple[Group, ...] = ()
    new_types: tuple[ReceiptType, ...] = ()
    group_changes: tuple[GroupChange, ...] = ()
    renamed_types: tuple[ReceiptType, ...] = ()
    placements: tuple[TypeUpdate, ...] = ()
    deleted_groups: tuple[int, ...] = ()
    deleted_types: tuple[int, ...] = ()
    # Renamed entities whose stored name another rename wants; they move to a
    # placeholder name before any final rename is sent.
    parked_groups: tuple[int, ...] = ()
    parked_types: tuple[int, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (
            self.new_groups
            or self.new_types
            or self.group_changes
            or self.renamed_types
            or self.placements
            or self.deleted_groups
            or self.deleted_types
        )


@dataclass(frozen=True)
class SaveResult:
    errors: tuple[EntityError, ...] = ()
    reloaded: bool = False
    succeeded: int = 0
    failed: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


def plan_save(baseline: Snapshot, current: Snapshot) -> SavePlan:
    """Diff `current` (after a dense renumber) against `baseline`.

    Entities with negative (provisional) ids have never been stored and are
    planned as creates.
    """
    normalized = normalize(current)
    check_invariants(normalized)

    old_groups = {group.id: group for group in baseline.groups}
    old_types = {receipt_type.id: receipt_type for receipt_type in baseline.types}
    new_group_ids = {group.id for group in normalized.groups}
    new_type_ids = {receipt_type.id for receipt_type in normalized.types}

    view = containers_view(normalized)
    new_groups: list[Group] = []
    group_changes: list[GroupChange] = []
    for group in view.groups:
        previous = old_groups.get(group.id)
        if previous is None:
            new_groups.append(group)
            continue
        name = group.name if group.name != previous.name else None
        order = group.display_order if group.display_order != previous.display_order else None
        if name is not None or order is not None:
            group_changes.append(GroupChange(group.id, name=name, display_order=order))

    new_types: list[ReceiptType] = []
    renamed: list[ReceiptType] = []
    placements: list[TypeUpdate] = []
    for container in view.container_keys():
        for receipt_type in view.types_in(container):
            previous = old_types.get(receipt_type.id)
            if previous is None:
                new_types.append(receipt_type)
                continue
            if receipt_type.name != previous.name:
                renamed.append(receipt_type)
            if (receipt_type.group_id, receipt_type.display_order) != (previous.group_id, previous.display_order):
                placements.append(TypeUpdate(receipt_type.id, receipt_type.group_id, receipt_type.display_order))

    group_targets = {change.name for change in group_changes if change.name is not None}
    type_targets = {receipt_type.name for receipt_type in renamed}
    return SavePlan(
        normalized=normalized,
        new_groups=tuple(new_groups),
        new_types=tuple(new_types),
        group_changes=tuple(group_changes),
        renamed_types=tuple(renamed),
        placements=tuple(placements),
        deleted_groups=tuple(group_id for group_id in old_groups if group_id not in new_group_ids),
        deleted_types=tuple(type_id for type_id in old_types if type_id not in new_type_ids),
        parked_groups=tuple(
            change.group_id
            for change in group_changes
            if change.name is not None and old_groups[change.group_id].name in group_targets
        ),
        parked_types=tuple(
            receipt_type.id for receipt_type in renamed if old_types[receipt_type.id].name in type_targets
        ),
    )


def _parked_name(kind: str, entity_id: int) -> str:
    return f"__renaming_{kind}_{entity_id}__"


def changed_containers(baseline: Snapshot, current: Snapshot) -> set[ContainerKey]:
    """Containers whose contents, name or position differ from the baseline.

    A moved type marks both its old and new container. Deleted groups are
    reported by their old id.
    """
    changed: set[ContainerKey] = set()
    old_groups = {group.id: group for group in baseline.groups}
    new_groups = {group.id: group for group in current.groups}

    for group_id, group in new_groups.items():
        if old_groups.get(group_id) != group:
            changed.add(group_id)
    changed.update(group_id for group_id in old_groups if group_id not in new_groups)

    old_types = {receipt_type.id: receipt_type for receipt_type in baseline.types}
    new_types = {receipt_type.id: receipt_type for receipt_type in current.types}
    for type_id, receipt_type in new_types.items():
        previous = old_types.get(type_id)
        if previous == receipt_type:
            continue
        changed.add(current.container_of(receipt_type))
        if previous is not None:
            changed.add(baseline.container_of(previous))
    for type_id, previous in old_types.items():
        if type_id not in new_types:
            changed.add(baseline.container_of(previous))
    return changed


class BatchReconciler:
    """Tracks the dirty flag and persists the store's snapshot on demand.

    Local state is authoritative while editing. After a save with at least
    one successful request, or after `discard()`, the backing store's copy
    replaces it wholesale. A save that completes while the user keeps
    editing may overwrite those newer local edits; this race is accepted.
    """

    def __init__(self, store: TaxonomyStore, backend: TaxonomyBackend) -> None:
        self.store = store
        self.backend = backend
        self.baseline = store.snapshot
        self.phase = SyncPhase.SYNCED
        self.last_errors: tuple[EntityError, ...] = ()
        self._dirty = False
        self._save_lock = asyncio.Lock()
        store.subscribe(self._on_store_commit)

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def is_saving(self) -> bool:
        return self._save_lock.locked()

    def _on_store_commit(self, previous: Snapshot, snapshot: Snapshot) -> None:
        self._dirty = True
        self.phase = SyncPhase.LOCAL

    def changed_containers(self) -> set[ContainerKey]:
        return changed_containers(self.baseline, self.store.snapshot)

    async def load(self) -> Snapshot:
        """Fetch the authoritative taxonomy and make it both baseline and store state."""
        groups, types = await asyncio.gather(self.backend.list_groups(), self.backend.list_types())
        snapshot = Snapshot(groups=tuple(groups), types=tuple(types))
        self.baseline = snapshot
        self.store.load(snapshot)
        self._dirty = False
        self.phase = SyncPhase.SYNCED
        logger.info("loaded groups=%d types=%d", len(groups), len(types))
        return snapshot

    async def discard(self) -> Snapshot:
        """Drop every unsaved local edit by reloading from the backing store."""
        return await self.load()

    def revert(self) -> None:
        """Restore the last loaded snapshot without touching the backing store."""
        self.store.load(self.baseline)
        self._dirty = False
        self.phase = SyncPhase.SYNCED

    async def reset_to_defaults(self) -> Snapshot:
        await self.backend.reset_to_defaults(DEFAULT_GROUPS, UNGROUPED_DEFAULTS)
        return await self.load()

    async def save(self) -> SaveResult:
        """Persist local edits; safe to retry after a failure."""
        async with self._save_lock:
            plan = plan_save(self.baseline, self.store.snapshot)
            run = _SaveRun(self.backend, plan)
            await run.execute()

            result_errors = list(run.errors)
            reloaded = False
            if run.succeeded > 0 or run.failed == 0:
                try:
                    await self.load()
                    reloaded = True
                except Exception as exc:
                    logger.exception("reload after save failed")
                    result_errors.append(EntityError(None, f"Reload failed: {exc}"))

            result = SaveResult(
                errors=tuple(result_errors),
                reloaded=reloaded,
                succeeded=run.succeeded,
                failed=run.failed,
            )
            self.last_errors = result.errors
            logger.info(
                "save finished succeeded=%d failed=%d reloaded=%s",
                result.succeeded,
                result.failed,
                result.reloaded,
            )
            return result


@dataclass
class _SaveRun:
    """Issues the requests of one SavePlan and tallies their outcomes."""

    backend: TaxonomyBackend
    plan: SavePlan
    errors: list[EntityError] = field(default_factory=list)
    succeeded: int = 0
    failed: int = 0
    group_ids: dict[int, int] = field(default_factory=dict)

    async def execute(self) -> None:
        if self.plan.is_empty:
            return

        # Move surviving types out of deleted groups before anything is deleted.
        settled = [update for update in self.plan.placements if update.group_id is None or update.group_id > 0]
        pending = [update for update in self.plan.placements if update.group_id is not None and update.group_id < 0]
        if settled:
            await self._call(None, self.backend.bulk_update_types(settled))

        # Deletes free their names for the renames and creates below.
        deletes: list[tuple[int, Awaitable[object]]] = []
        deletes.extend((type_id, self.backend.delete_type(type_id)) for type_id in self.plan.deleted_types)
        deletes.extend((group_id, self.backend.delete_group(group_id)) for group_id in self.plan.deleted_groups)
        await self._gather(deletes)

        await self._gather(
            [
                (group_id, self.backend.update_group(group_id, name=_parked_name("group", group_id)))
                for group_id in self.plan.parked_groups
            ]
            + [
                (type_id, self.backend.update_type(type_id, name=_parked_name("type", type_id)))
                for type_id in self.plan.parked_types
            ]
        )

        requests: list[tuple[int | None, Awaitable[object]]] = []
        for change in self.plan.group_changes:
            requests.append(
                (change.group_id, self.backend.update_group(change.group_id, change.name, change.display_order))
            )
        for receipt_type in self.plan.renamed_types:
            requests.append((receipt_type.id, self.backend.update_type(receipt_type.id, name=receipt_type.name)))
        await self._gather(requests)

        # New groups before the types and placements that need their real ids.
        for group in self.plan.new_groups:
            created = await self._call(group.id, self.backend.create_group(group.name, group.display_order))
            if created is not None:
                self.group_ids[group.id] = created.id

        placements = [self._resolve_placement(update) for update in pending]
        placements = [update for update in placements if update is not None]
        new_types = [receipt_type for receipt_type in self.plan.new_types if self._group_ready(receipt_type)]

        requests = []
        if placements:
            requests.append((None, self.backend.bulk_update_types(placements)))
        for receipt_type in new_types:
            group_id = self._real_group_id(receipt_type.group_id)
            requests.append(
                (receipt_type.id, self.backend.create_type(receipt_type.name, group_id, receipt_type.display_order))
            )
        await self._gather(requests)

    async def _gather(self, requests: list[tuple[int | None, Awaitable[object]]]) -> None:
        await asyncio.gather(*(self._call(entity_id, request) for entity_id, request in requests))

    async def _call(self, entity_id: int | None, request: Awaitable[object]) -> object | None:
        try:
            result = await request
        except BulkUpdateError as exc:
            self.failed += 1
            self.errors.extend(exc.failures)
            logger.warning("bulk update rejected failures=%d", len(exc.failures))
            return None
        except PersistenceError as exc:
            self.failed += 1
            error = exc.as_entity_error()
            if error.entity_id is None:
                error = EntityError(entity_id, error.message)
            self.errors.append(error)
            logger.warning("save request failed entity=%s error=%s", entity_id, exc)
            return None
        except Exception as exc:
            # Failures stay per entity.
            self.failed += 1
            self.errors.append(EntityError(entity_id, str(exc) or exc.__class__.__name__))
            logger.exception("save request crashed entity=%s", entity_id)
            return None
        self.succeeded += 1
        return result

    def _real_group_id(self, group_id: int | None) -> int | None:
        if group_id is None or group_id > 0:
            return group_id
        return self.group_ids.get(group_id)

    def _group_ready(self, receipt_type: ReceiptType) -> bool:
        if receipt_type.group_id is None or receipt_type.group_id > 0:
            return True
        if receipt_type.group_id in self.group_ids:
            return True
        self.failed += 1
        self.errors.append(EntityError(receipt_type.id, f"Skipped {receipt_type.name!r}: its group was not saved"))
        return False

    def _resolve_placement(self, update: TypeUpdate) -> TypeUpdate | None:
        if update.group_id is None or update.group_id > 0:
            return update
        real = self.group_ids.get(update.group_id)
        if real is None:
            self.failed += 1
            self.errors.append(EntityError(update.id, "Skipped move: destination group was not saved"))
            return None
        return TypeUpdate(update.id, real, update.display_order)

