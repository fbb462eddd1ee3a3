from __future__ import annotations

import random

import pytest

from receipt_types.errors import InvariantViolation, UnknownEntityError
from receipt_types.models import UNGROUPED, Group, ReceiptType, Snapshot
from receipt_types.ordering import (
    DragSubject,
    DropTarget,
    GroupPlacement,
    TargetKind,
    TypePlacement,
    apply_drop,
    array_move,
    check_invariants,
    highlight_container,
    move_type,
    normalize,
    resolve_drop_target,
)
from receipt_types.store import containers_view

from conftest import build_snapshot, names_in, type_named


def test_array_move():
    assert array_move(["a", "b", "c"], 0, 2) == ["b", "c", "a"]
    assert array_move(["a", "b", "c"], 2, 0) == ["c", "a", "b"]
    assert array_move([], 0, 0) == []


def test_cross_container_move_to_end(xy_snapshot):
    a = type_named(xy_snapshot, "A")
    result = apply_drop(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.group(2))

    assert names_in(result, 1) == ["B"]
    assert names_in(result, 2) == ["C", "A"]
    assert type_named(result, "B").display_order == 0
    assert type_named(result, "C").display_order == 0
    moved = type_named(result, "A")
    assert (moved.group_id, moved.display_order) == (2, 1)
    check_invariants(result)


def test_cross_container_move_onto_type_inserts_at_its_position(xy_snapshot):
    d = type_named(xy_snapshot, "D")
    b = type_named(xy_snapshot, "B")
    result = apply_drop(xy_snapshot, DragSubject.receipt_type(d.id), DropTarget.receipt_type(b.id))
    assert names_in(result, 1) == ["A", "D", "B"]
    assert names_in(result, UNGROUPED) == []
    check_invariants(result)


def test_move_to_ungrouped_region(xy_snapshot):
    c = type_named(xy_snapshot, "C")
    result = apply_drop(xy_snapshot, DragSubject.receipt_type(c.id), DropTarget.ungrouped())
    assert names_in(result, UNGROUPED) == ["D", "C"]
    assert type_named(result, "C").group_id is None
    assert names_in(result, 2) == []


def test_same_container_reorder(xy_snapshot):
    a = type_named(xy_snapshot, "A")
    b = type_named(xy_snapshot, "B")
    result = apply_drop(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.receipt_type(b.id))
    assert names_in(result, 1) == ["B", "A"]
    assert [member.display_order for member in containers_view(result).types_in(1)] == [0, 1]


def test_group_reorder_renumbers_all_groups():
    snapshot = build_snapshot({"X": [], "Y": [], "Z": []})
    result = apply_drop(snapshot, DragSubject.group(1), DropTarget.group(3))
    view = containers_view(result)
    assert [group.name for group in view.groups] == ["Y", "Z", "X"]
    assert [group.display_order for group in view.groups] == [0, 1, 2]


def test_group_drag_over_member_type_uses_its_group(xy_snapshot):
    c = type_named(xy_snapshot, "C")
    placement = resolve_drop_target(xy_snapshot, DragSubject.group(1), DropTarget.receipt_type(c.id))
    assert placement == GroupPlacement(1)


def test_group_drag_over_ungrouped_is_invalid(xy_snapshot):
    d = type_named(xy_snapshot, "D")
    subject = DragSubject.group(1)
    assert resolve_drop_target(xy_snapshot, subject, DropTarget.ungrouped()) is None
    assert resolve_drop_target(xy_snapshot, subject, DropTarget.receipt_type(d.id)) is None
    assert apply_drop(xy_snapshot, subject, DropTarget.ungrouped()) is xy_snapshot


def test_drop_on_self_is_identity(xy_snapshot):
    a = type_named(xy_snapshot, "A")
    assert apply_drop(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.receipt_type(a.id)) is xy_snapshot
    assert apply_drop(xy_snapshot, DragSubject.group(1), DropTarget.group(1)) is xy_snapshot


def test_drop_on_own_container_header_is_noop(xy_snapshot):
    a = type_named(xy_snapshot, "A")
    d = type_named(xy_snapshot, "D")
    assert apply_drop(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.group(1)) is xy_snapshot
    assert apply_drop(xy_snapshot, DragSubject.receipt_type(d.id), DropTarget.ungrouped()) is xy_snapshot


def test_drop_on_missing_group_goes_to_end_of_ungrouped(xy_snapshot):
    a = type_named(xy_snapshot, "A")
    placement = resolve_drop_target(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.zone(77))
    assert placement == TypePlacement(UNGROUPED)

    result = apply_drop(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.group(77))
    assert names_in(result, UNGROUPED) == ["D", "A"]
    check_invariants(result)


def test_highlight_follows_type_drags_only(xy_snapshot):
    a = type_named(xy_snapshot, "A")
    c = type_named(xy_snapshot, "C")
    assert highlight_container(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.receipt_type(c.id)) == 2
    assert highlight_container(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.ungrouped()) is UNGROUPED
    assert highlight_container(xy_snapshot, DragSubject.group(1), DropTarget.group(2)) is None
    assert highlight_container(xy_snapshot, DragSubject.receipt_type(a.id), None) is None


def test_apply_drop_does_not_mutate_input(xy_snapshot):
    before = Snapshot(groups=tuple(xy_snapshot.groups), types=tuple(xy_snapshot.types))
    a = type_named(xy_snapshot, "A")
    apply_drop(xy_snapshot, DragSubject.receipt_type(a.id), DropTarget.group(2))
    assert xy_snapshot == before


@pytest.mark.parametrize("token", ["group-3", "type-7", "group-drop-3", "ungrouped"])
def test_target_tokens_parse_back(token):
    assert DropTarget.parse(token).token == token


def test_group_zone_token_parses_as_zone():
    target = DropTarget.parse("group-drop-12")
    assert target.kind is TargetKind.GROUP_ZONE
    assert target.id == 12


@pytest.mark.parametrize("token", ["", "group-", "type-x", "folder-1"])
def test_bad_tokens_raise(token):
    with pytest.raises(ValueError):
        DropTarget.parse(token)


def test_normalize_makes_orders_dense():
    snapshot = Snapshot(
        groups=(Group(1, "X", 5), Group(2, "Y", 9)),
        types=(ReceiptType(1, "A", 1, 3), ReceiptType(2, "B", 1, 10), ReceiptType(3, "C", None, 4)),
    )
    with pytest.raises(InvariantViolation):
        check_invariants(snapshot)

    result = normalize(snapshot)
    check_invariants(result)
    assert [group.display_order for group in containers_view(result).groups] == [0, 1]
    assert names_in(result, 1) == ["A", "B"]


def test_check_invariants_rejects_dangling_group_id():
    snapshot = Snapshot(groups=(), types=(ReceiptType(1, "A", 5, 0),))
    with pytest.raises(InvariantViolation):
        check_invariants(snapshot)


def test_random_drops_keep_density_and_partition():
    rng = random.Random(1234)
    snapshot = build_snapshot(
        {"X": ["A", "B", "C"], "Y": ["D"], "Z": []},
        ungrouped=["E", "F"],
    )
    all_ids = sorted(receipt_type.id for receipt_type in snapshot.types)

    for _ in range(200):
        view = containers_view(snapshot)
        if rng.random() < 0.25:
            subject = DragSubject.group(rng.choice(view.groups).id)
        else:
            subject = DragSubject.receipt_type(rng.choice(all_ids))
        targets = [DropTarget.ungrouped()]
        for group in view.groups:
            targets.extend([DropTarget.group(group.id), DropTarget.zone(group.id)])
        targets.extend(DropTarget.receipt_type(type_id) for type_id in all_ids)

        snapshot = apply_drop(snapshot, subject, rng.choice(targets))
        check_invariants(snapshot)
        assert sorted(receipt_type.id for receipt_type in snapshot.types) == all_ids


def test_apply_drop_raises_for_unknown_dragged_type(xy_snapshot, monkeypatch):
    import receipt_types.ordering as ordering

    monkeypatch.setattr(ordering, "resolve_drop_target", lambda snapshot, subject, hovered: TypePlacement(2))
    with pytest.raises(UnknownEntityError):
        apply_drop(xy_snapshot, DragSubject.receipt_type(404), DropTarget.group(2))


def test_move_type_with_explicit_index_clamps(xy_snapshot):
    d = type_named(xy_snapshot, "D")
    result = move_type(xy_snapshot, d.id, 2, index=50)
    assert names_in(result, 2) == ["C", "D"]
