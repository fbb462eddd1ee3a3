"""Typed default catalog data."""

from __future__ import annotations

from dataclasses import dataclass

from receipt_types.constant import (
    DEFAULT_RECEIPT_TYPE_GROUPS as _DEFAULT_GROUPS_RAW,
    DEFAULT_UNGROUPED_TYPES,
)


@dataclass(frozen=True)
class DefaultGroup:
    """A default group and the type names seeded into it."""

    name: str
    display_order: int
    types: tuple[str, ...]


DEFAULT_GROUPS: list[DefaultGroup] = sorted(
    (
        DefaultGroup(
            name=str(raw["name"]),
            display_order=int(raw["display_order"]),  # type: ignore[arg-type]
            types=tuple(raw["types"]),  # type: ignore[arg-type]
        )
        for raw in _DEFAULT_GROUPS_RAW
    ),
    key=lambda group: (group.display_order, group.name),
)

UNGROUPED_DEFAULTS: tuple[str, ...] = tuple(DEFAULT_UNGROUPED_TYPES)


def default_type_count() -> int:
    """Total number of receipt types in the default catalog."""
    return sum(len(group.types) for group in DEFAULT_GROUPS) + len(UNGROUPED_DEFAULTS)
