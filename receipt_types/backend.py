"""Contract of the persistence collaborator used by the batch reconciler."""

from __future__ import annotations

from typing import Protocol, Sequence

from receipt_types.data import DefaultGroup
from receipt_types.models import Group, ReceiptType, TypeUpdate


class Unset:
    """Marker for 'leave this column alone' where None is a real value."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET = Unset()


class TaxonomyBackend(Protocol):
    """Durable owner of groups and receipt types.

    Implementations raise `PersistenceError` (or a subclass) for failures
    tied to one entity.
    """

    async def list_groups(self) -> list[Group]: ...

    async def list_types(self) -> list[ReceiptType]: ...

    async def create_group(self, name: str, display_order: int) -> Group: ...

    async def update_group(
        self,
        group_id: int,
        name: str | None = None,
        display_order: int | None = None,
    ) -> Group: ...

    async def delete_group(self, group_id: int) -> None: ...

    async def create_type(
        self,
        name: str,
        group_id: int | None = None,
        display_order: int | None = None,
    ) -> ReceiptType: ...

    async def update_type(
        self,
        type_id: int,
        name: str | None = None,
        group_id: int | None | Unset = UNSET,
        display_order: int | None = None,
    ) -> ReceiptType: ...

    async def delete_type(self, type_id: int) -> None: ...

    async def bulk_update_types(self, updates: Sequence[TypeUpdate]) -> list[ReceiptType]: ...

    async def reset_to_defaults(self, groups: Sequence[DefaultGroup], ungrouped: Sequence[str]) -> None: ...
