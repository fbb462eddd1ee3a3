from __future__ import annotations

import sqlite3

import pytest

from receipt_types.config import LEGACY_DEFAULT_GROUP_NAME
from receipt_types.data import DEFAULT_GROUPS, UNGROUPED_DEFAULTS, default_type_count
from receipt_types.errors import BulkUpdateError, NotFoundError, PersistenceError
from receipt_types.models import TypeUpdate
from receipt_types.persistence import SqliteBackend


def _ids(backend: SqliteBackend) -> dict[str, int]:
    ids = {group.name: group.id for group in backend.list_groups_sync()}
    ids.update({receipt_type.name: receipt_type.id for receipt_type in backend.list_types_sync()})
    return ids


def test_bootstrap_seeds_defaults_once(tmp_path):
    backend = SqliteBackend(tmp_path / "nested" / "types.db")
    backend.bootstrap_schema()
    backend.bootstrap_schema()

    groups = backend.list_groups_sync()
    types = backend.list_types_sync()
    assert [group.name for group in groups] == [group.name for group in DEFAULT_GROUPS]
    assert len(types) == default_type_count()
    ungrouped = sorted((t for t in types if t.group_id is None), key=lambda t: t.display_order)
    assert [t.name for t in ungrouped] == list(UNGROUPED_DEFAULTS)


def test_bootstrap_migrates_pre_grouping_table(tmp_path):
    db_path = tmp_path / "legacy.db"
    conn = sqlite3.connect(db_path)
    conn.execute(
        "CREATE TABLE receipt_types (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE, created_at TEXT NOT NULL)"
    )
    conn.executemany(
        "INSERT INTO receipt_types (name, created_at) VALUES (?, '2024-01-01')",
        [("Parking",), ("Gym",)],
    )
    conn.commit()
    conn.close()

    backend = SqliteBackend(db_path)
    backend.bootstrap_schema()

    groups = backend.list_groups_sync()
    assert [group.name for group in groups] == [LEGACY_DEFAULT_GROUP_NAME]
    types = backend.list_types_sync()
    assert {(t.name, t.group_id, t.display_order) for t in types} == {
        ("Gym", groups[0].id, 0),
        ("Parking", groups[0].id, 1),
    }


def test_delete_group_ungroups_its_types(backend):
    ids = _ids(backend)
    backend.delete_group_sync(ids["X"])
    types = {t.name: t for t in backend.list_types_sync()}
    assert types["A"].group_id is None
    assert types["B"].group_id is None
    assert types["C"].group_id == ids["Y"]


def test_bulk_update_applies_all(backend):
    ids = _ids(backend)
    backend.bulk_update_types_sync(
        [TypeUpdate(ids["A"], ids["Y"], 1), TypeUpdate(ids["B"], ids["X"], 0)]
    )
    types = {t.name: t for t in backend.list_types_sync()}
    assert (types["A"].group_id, types["A"].display_order) == (ids["Y"], 1)
    assert types["B"].display_order == 0


def test_bulk_update_is_all_or_nothing(backend):
    ids = _ids(backend)
    before = backend.list_types_sync()
    with pytest.raises(BulkUpdateError) as excinfo:
        backend.bulk_update_types_sync(
            [
                TypeUpdate(ids["A"], ids["Y"], 1),
                TypeUpdate(9999, None, 0),
                TypeUpdate(ids["B"], 4242, 0),
            ]
        )
    assert [failure.entity_id for failure in excinfo.value.failures] == [9999, ids["B"]]
    assert backend.list_types_sync() == before


def test_duplicate_names_raise_persistence_error(backend):
    with pytest.raises(PersistenceError):
        backend.create_group_sync("X", 5)
    with pytest.raises(PersistenceError):
        backend.create_type_sync("A")


def test_missing_rows_raise_not_found(backend):
    with pytest.raises(NotFoundError) as excinfo:
        backend.update_group_sync(999, name="Nope")
    assert excinfo.value.entity_id == 999
    with pytest.raises(NotFoundError):
        backend.delete_type_sync(999)
    with pytest.raises(NotFoundError):
        backend.create_type_sync("Z", group_id=999)


def test_create_type_defaults_to_end_of_container(backend):
    ids = _ids(backend)
    created = backend.create_type_sync("E", ids["X"])
    assert created.display_order == 2
    loose = backend.create_type_sync("F")
    assert (loose.group_id, loose.display_order) == (None, 1)


def test_update_type_can_clear_group(backend):
    ids = _ids(backend)
    renamed = backend.update_type_sync(ids["A"], name="A2")
    assert (renamed.name, renamed.group_id) == ("A2", ids["X"])
    ungrouped = backend.update_type_sync(ids["A"], group_id=None)
    assert ungrouped.group_id is None


@pytest.mark.asyncio
async def test_async_api_round_trip(backend):
    group = await backend.create_group("Z", 2)
    created = await backend.create_type("E", group.id, 0)
    groups = await backend.list_groups()
    types = await backend.list_types()
    assert groups[-1] == group
    assert created in types


@pytest.mark.asyncio
async def test_reset_to_defaults_replaces_everything(backend):
    await backend.reset_to_defaults(DEFAULT_GROUPS, UNGROUPED_DEFAULTS)
    names = {t.name for t in await backend.list_types()}
    assert "A" not in names
    assert len(names) == default_type_count()
