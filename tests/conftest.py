from __future__ import annotations

import pytest

from receipt_types.models import Group, ReceiptType, Snapshot
from receipt_types.persistence import SqliteBackend
from receipt_types.store import TaxonomyStore


def build_snapshot(groups: dict[str, list[str]], ungrouped: list[str] | None = None) -> Snapshot:
    """Groups and types with ids 1.. in declaration order, densely ordered."""
    group_rows: list[Group] = []
    type_rows: list[ReceiptType] = []
    next_type_id = 1
    for group_order, (group_name, type_names) in enumerate(groups.items()):
        group_id = group_order + 1
        group_rows.append(Group(id=group_id, name=group_name, display_order=group_order))
        for idx, type_name in enumerate(type_names):
            type_rows.append(ReceiptType(id=next_type_id, name=type_name, group_id=group_id, display_order=idx))
            next_type_id += 1
    for idx, type_name in enumerate(ungrouped or []):
        type_rows.append(ReceiptType(id=next_type_id, name=type_name, group_id=None, display_order=idx))
        next_type_id += 1
    return Snapshot(groups=tuple(group_rows), types=tuple(type_rows))


def type_named(snapshot: Snapshot, name: str) -> ReceiptType:
    for receipt_type in snapshot.types:
        if receipt_type.name == name:
            return receipt_type
    raise AssertionError(f"no receipt type named {name!r}")


def names_in(store_or_snapshot, container) -> list[str]:
    from receipt_types.store import containers_view

    snapshot = store_or_snapshot.snapshot if isinstance(store_or_snapshot, TaxonomyStore) else store_or_snapshot
    return [member.name for member in containers_view(snapshot).types_in(container)]


@pytest.fixture
def xy_snapshot() -> Snapshot:
    # X = [A, B], Y = [C], Ungrouped = [D]
    return build_snapshot({"X": ["A", "B"], "Y": ["C"]}, ungrouped=["D"])


@pytest.fixture
def store(xy_snapshot) -> TaxonomyStore:
    return TaxonomyStore(xy_snapshot)


@pytest.fixture
def backend(tmp_path) -> SqliteBackend:
    backend = SqliteBackend(tmp_path / "receipt_types.db")
    backend.bootstrap_schema(seed_defaults=False)
    x = backend.create_group_sync("X", 0)
    y = backend.create_group_sync("Y", 1)
    backend.create_type_sync("A", x.id, 0)
    backend.create_type_sync("B", x.id, 1)
    backend.create_type_sync("C", y.id, 0)
    backend.create_type_sync("D", None, 0)
    return backend
