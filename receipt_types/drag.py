"""Drag session controller for one pointer or keyboard drag gesture."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from receipt_types.errors import DragSessionError, UnknownEntityError
from receipt_types.models import ContainerKey
from receipt_types.ordering import (
    DragSubject,
    DropTarget,
    Placement,
    SubjectKind,
    apply_drop,
    highlight_container,
    resolve_drop_target,
)
from receipt_types.store import TaxonomyStore

logger = logging.getLogger(__name__)


class DragState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DragOutcome:
    """How the last gesture ended."""

    state: DragState
    subject: DragSubject
    target: DropTarget | None
    changed: bool = False


class DragSessionController:
    """State machine: IDLE -> DRAGGING -> (DROPPED | CANCELLED) -> IDLE.

    Only `drop()` touches the store. Starting, hovering and cancelling leave
    the snapshot exactly as it was.
    """

    def __init__(self, store: TaxonomyStore) -> None:
        self.store = store
        self.state = DragState.IDLE
        self.subject: DragSubject | None = None
        self.hover_target: DropTarget | None = None
        self.placement: Placement | None = None
        self.highlight: ContainerKey | None = None
        self.last_outcome: DragOutcome | None = None

    @property
    def is_dragging(self) -> bool:
        return self.state is DragState.DRAGGING

    def start(self, subject: DragSubject) -> None:
        if self.state is not DragState.IDLE:
            raise DragSessionError(f"Cannot start a drag while {self.state.value}")

        snapshot = self.store.snapshot
        if subject.kind is SubjectKind.GROUP and snapshot.group(subject.id) is None:
            raise UnknownEntityError("group", subject.id)
        if subject.kind is SubjectKind.TYPE and snapshot.receipt_type(subject.id) is None:
            raise UnknownEntityError("receipt type", subject.id)

        self.state = DragState.DRAGGING
        self.subject = subject
        self.hover_target = None
        self.placement = None
        self.highlight = None
        logger.debug("drag_start subject=%s", subject.token)

    def hover(self, target: DropTarget | None) -> Placement | None:
        """Track the element under the pointer and recompute the highlight."""
        subject = self._require_dragging()
        snapshot = self.store.snapshot
        self.hover_target = target
        if target is None:
            self.placement = None
            self.highlight = None
            return None
        self.placement = resolve_drop_target(snapshot, subject, target)
        self.highlight = highlight_container(snapshot, subject, target)
        return self.placement

    def drop(self, target: DropTarget | None = None) -> DragOutcome:
        """Release over `target` (or the current hover target)."""
        subject = self._require_dragging()
        if target is not None:
            self.hover(target)
        target = self.hover_target

        # Resolve against the store as it is now: it may have changed mid-drag.
        snapshot = self.store.snapshot
        if target is None or (
            not target.is_subject(subject) and resolve_drop_target(snapshot, subject, target) is None
        ):
            return self.cancel()

        self.state = DragState.DROPPED
        changed = self.store.commit(apply_drop(snapshot, subject, target))
        outcome = DragOutcome(DragState.DROPPED, subject, target, changed)
        logger.info("drag_drop subject=%s target=%s changed=%s", subject.token, target.token, changed)
        return self._finish(outcome)

    def cancel(self) -> DragOutcome:
        subject = self._require_dragging()
        self.state = DragState.CANCELLED
        outcome = DragOutcome(DragState.CANCELLED, subject, self.hover_target)
        logger.debug("drag_cancel subject=%s", subject.token)
        return self._finish(outcome)

    def _finish(self, outcome: DragOutcome) -> DragOutcome:
        self.last_outcome = outcome
        self.state = DragState.IDLE
        self.subject = None
        self.hover_target = None
        self.placement = None
        self.highlight = None
        return outcome

    def _require_dragging(self) -> DragSubject:
        if self.state is not DragState.DRAGGING or self.subject is None:
            raise DragSessionError("No drag in progress")
        return self.subject
