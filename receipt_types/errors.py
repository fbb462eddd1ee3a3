"""Error types raised by the taxonomy editor."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EntityError:
    """One failed persistence request, reported back to the user."""

    entity_id: int | None
    message: str


class TaxonomyError(Exception):
    """Base class for taxonomy editor errors."""


class ValidationError(TaxonomyError, ValueError):
    """A user-supplied value was rejected (empty or duplicate name)."""


class UnknownEntityError(TaxonomyError, KeyError):
    """A group or receipt type id is not present in the snapshot."""

    def __init__(self, kind: str, entity_id: int) -> None:
        super().__init__(f"Unknown {kind} id: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id

    def __str__(self) -> str:
        return str(self.args[0])


class InvariantViolation(TaxonomyError, AssertionError):
    """Ordering or containment invariant broken. Always a programming error."""


class DragSessionError(TaxonomyError):
    """A drag gesture was started or finished from the wrong state."""


class PersistenceError(TaxonomyError):
    """A persistence request failed for one entity."""

    def __init__(self, message: str, entity_id: int | None = None) -> None:
        super().__init__(message)
        self.entity_id = entity_id

    def as_entity_error(self) -> EntityError:
        return EntityError(entity_id=self.entity_id, message=str(self))


class NotFoundError(PersistenceError):
    """The requested row does not exist in the backing store."""


class BulkUpdateError(PersistenceError):
    """A bulk update was rejected; nothing was applied."""

    def __init__(self, failures: list[EntityError]) -> None:
        super().__init__(f"Bulk update rejected for {len(failures)} receipt type(s)")
        self.failures = failures
