"""Domain models for the receipt type taxonomy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Ungrouped(Enum):
    """Container key of the implicit Ungrouped bucket."""

    UNGROUPED = "ungrouped"

    def __repr__(self) -> str:
        return "UNGROUPED"


UNGROUPED = Ungrouped.UNGROUPED

ContainerKey = int | Ungrouped


@dataclass(frozen=True)
class Group:
    """A named, ordered top-level taxonomy node."""

    id: int
    name: str
    display_order: int


@dataclass(frozen=True)
class ReceiptType:
    """A receipt type classification living in exactly one container."""

    id: int
    name: str
    group_id: int | None
    display_order: int


@dataclass(frozen=True)
class TypeUpdate:
    """One row of a bulk placement update."""

    id: int
    group_id: int | None
    display_order: int


@dataclass(frozen=True)
class Snapshot:
    """Full taxonomy state at one point in time."""

    groups: tuple[Group, ...] = ()
    types: tuple[ReceiptType, ...] = ()

    def group(self, group_id: int) -> Group | None:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def receipt_type(self, type_id: int) -> ReceiptType | None:
        for receipt_type in self.types:
            if receipt_type.id == type_id:
                return receipt_type
        return None

    def container_of(self, receipt_type: ReceiptType) -> ContainerKey:
        """Resolve a type's container, treating dangling group ids as Ungrouped."""
        if receipt_type.group_id is None or self.group(receipt_type.group_id) is None:
            return UNGROUPED
        return receipt_type.group_id


def group_id_for(container: ContainerKey) -> int | None:
    """Map a container key back to the `group_id` column value."""
    if container is UNGROUPED:
        return None
    return container


def container_for(group_id: int | None) -> ContainerKey:
    return UNGROUPED if group_id is None else group_id


def sort_key(entry: Group | ReceiptType) -> tuple[int, str]:
    """Presentation order: display_order, then ordinal name compare."""
    return (entry.display_order, entry.name)
