from __future__ import annotations

import pytest

from receipt_types.errors import UnknownEntityError, ValidationError
from receipt_types.models import UNGROUPED, Group, ReceiptType, Snapshot
from receipt_types.ordering import check_invariants
from receipt_types.store import TaxonomyStore, containers_view

from conftest import build_snapshot, names_in, type_named


def test_view_sorts_by_display_order_then_name():
    snapshot = Snapshot(
        groups=(Group(2, "Zeta", 0), Group(1, "Alpha", 0)),
        types=(
            ReceiptType(1, "b", 1, 0),
            ReceiptType(2, "a", 1, 0),
            ReceiptType(3, "first", 1, -1),
        ),
    )
    view = containers_view(snapshot)
    assert [group.name for group in view.groups] == ["Alpha", "Zeta"]
    assert [member.name for member in view.types_in(1)] == ["first", "a", "b"]
    assert view.types_in(2) == ()
    assert view.types_in(UNGROUPED) == ()


def test_view_treats_dangling_group_as_ungrouped():
    snapshot = Snapshot(groups=(), types=(ReceiptType(1, "Orphan", 99, 0),))
    assert names_in(snapshot, UNGROUPED) == ["Orphan"]


def test_view_is_not_stale_after_commit(store):
    before = store.view()
    store.rename_group(1, "Renamed")
    assert before.groups[0].name == "X"
    assert store.view().groups[0].name == "Renamed"


def test_delete_group_cascades_to_end_of_ungrouped():
    store = TaxonomyStore(build_snapshot({"G": ["A", "B"]}, ungrouped=["C"]))
    cascaded = store.delete_group(1)

    assert [member.name for member in cascaded] == ["A", "B"]
    assert store.snapshot.group(1) is None
    ungrouped = containers_view(store.snapshot).types_in(UNGROUPED)
    assert [member.name for member in ungrouped] == ["C", "A", "B"]
    assert all(member.group_id is None for member in ungrouped)
    assert sorted(member.display_order for member in ungrouped) == [0, 1, 2]
    check_invariants(store.snapshot)


def test_create_group_appends_with_provisional_id(store):
    group = store.create_group("  New  ")
    assert group.name == "New"
    assert group.id < 0
    assert group.display_order == 2
    assert store.view().groups[-1] == group


def test_group_orders_stay_dense_across_delete_and_create(store):
    store.delete_group(1)
    assert [(group.name, group.display_order) for group in store.view().groups] == [("Y", 0)]

    group = store.create_group("Z")
    assert group.display_order == 1
    assert [(g.name, g.display_order) for g in store.view().groups] == [("Y", 0), ("Z", 1)]


def test_create_group_closes_gaps_left_by_storage():
    store = TaxonomyStore(Snapshot(groups=(Group(1, "X", 3), Group(2, "Y", 7))))
    group = store.create_group("Z")
    assert group.display_order == 2
    assert [(g.name, g.display_order) for g in store.view().groups] == [("X", 0), ("Y", 1), ("Z", 2)]


def test_create_type_appends_to_container(store):
    created = store.create_type("E", group_id=1)
    assert created.id < 0
    assert names_in(store, 1) == ["A", "B", "E"]
    assert created.display_order == 2

    loose = store.create_type("F")
    assert loose.group_id is None
    assert names_in(store, UNGROUPED) == ["D", "F"]
    assert store.next_provisional_id() < loose.id


def test_create_type_in_unknown_group_raises(store):
    with pytest.raises(UnknownEntityError):
        store.create_type("E", group_id=42)


@pytest.mark.parametrize("name", ["", "   "])
def test_empty_names_are_rejected(store, name):
    with pytest.raises(ValidationError):
        store.create_group(name)
    with pytest.raises(ValidationError):
        store.create_type(name)


def test_duplicate_names_are_rejected(store):
    with pytest.raises(ValidationError):
        store.create_group("X")
    with pytest.raises(ValidationError):
        store.rename_type(type_named(store.snapshot, "A").id, "B")
    # Renaming to its own name is allowed and a no-op.
    store.rename_group(1, "X")


def test_delete_type_closes_gap(store):
    store.delete_type(type_named(store.snapshot, "A").id)
    b = type_named(store.snapshot, "B")
    assert b.display_order == 0
    check_invariants(store.snapshot)


def test_rename_and_delete_unknown_ids_raise(store):
    with pytest.raises(UnknownEntityError):
        store.rename_group(99, "Nope")
    with pytest.raises(KeyError):
        store.delete_type(99)


def test_subscribers_see_commits_but_not_loads(store, xy_snapshot):
    seen = []
    unsubscribe = store.subscribe(lambda previous, snapshot: seen.append((previous, snapshot)))

    store.rename_group(1, "Renamed")
    assert len(seen) == 1
    assert seen[0][0] == xy_snapshot

    store.load(xy_snapshot)
    assert len(seen) == 1

    # Committing an equal snapshot is a no-op.
    assert store.commit(store.snapshot) is False
    assert len(seen) == 1

    unsubscribe()
    store.rename_group(1, "Again")
    assert len(seen) == 1
