"""
Assignment manager - reviewer/item assignment bookkeeping.

Rules:
- at most one pending assignment per item; a second ``assign`` fails
  with AlreadyAssigned unless the caller asks to supersede the current one
- ``complete`` with the outcome an assignment already has is a no-op
- a closed assignment never reopens
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import UUID

from emgurus.domain.entities import (
    AssignmentStatus,
    ContentItem,
    OutboxEvent,
    ReviewAssignment,
)
from emgurus.domain.errors import (
    AlreadyAssigned,
    InvalidStateTransition,
    NotFound,
    ReviewError,
    ReviewValidationError,
)
from emgurus.ports.store import ChangeSet

from .models import AssignmentError, CompleteInput, CompleteOutput, QueueEntry
from .ports import AssignmentStorePort, TimePort

logger = logging.getLogger(__name__)

CLOSED_STATUSES: tuple[AssignmentStatus, ...] = ("completed", "rejected", "superseded")


class AssignmentManager:
    def __init__(self, store: AssignmentStorePort, clock: TimePort) -> None:
        self._store = store
        self._clock = clock

    def assign(
        self,
        item: ContentItem,
        reviewer_id: UUID,
        assigned_by: UUID,
        note: str | None = None,
        *,
        supersede: bool = False,
        item_update: ContentItem | None = None,
        events: Sequence[OutboxEvent] = (),
    ) -> ReviewAssignment:
        """
        Create a pending assignment for ``item``.

        ``item_update`` and ``events`` are committed in the same transaction,
        which is how the lifecycle component records the state change and
        its notification alongside the assignment.
        """
        now = self._clock.now_utc()
        superseded: list[ReviewAssignment] = []

        existing = self._store.get_pending_assignment(item.id)
        if existing is not None:
            if not supersede:
                raise AlreadyAssigned(item.id)
            superseded.append(
                existing.model_copy(update={"status": "superseded", "completed_at": now})
            )

        assignment = ReviewAssignment(
            item_id=item.id,
            reviewer_id=reviewer_id,
            assigned_by=assigned_by,
            note=note,
            assigned_at=now,
        )
        self._store.apply(
            ChangeSet(
                items=[item_update] if item_update is not None else [],
                new_assignments=[assignment],
                assignment_updates=superseded,
                events=list(events),
            )
        )
        logger.info(
            "Assigned item %s to reviewer %s (superseded=%d)",
            item.id,
            reviewer_id,
            len(superseded),
        )
        return assignment

    def close_pending(self, item_id: UUID, outcome: AssignmentStatus) -> list[ReviewAssignment]:
        """Return the item's pending assignment closed with ``outcome``, ready to apply."""
        pending = self._store.get_pending_assignment(item_id)
        if pending is None:
            return []
        return [
            pending.model_copy(update={"status": outcome, "completed_at": self._clock.now_utc()})
        ]

    def complete(self, assignment_id: UUID, outcome: AssignmentStatus) -> ReviewAssignment:
        if outcome not in CLOSED_STATUSES:
            raise ReviewValidationError(f"Unknown outcome '{outcome}'", field="outcome")

        assignment = self._store.get_assignment(assignment_id)
        if assignment is None:
            raise NotFound("Assignment not found", field="assignment_id")

        if assignment.status == outcome:
            return assignment
        if assignment.status != "pending":
            raise InvalidStateTransition(assignment.status, f"complete as {outcome}")

        updated = assignment.model_copy(
            update={"status": outcome, "completed_at": self._clock.now_utc()}
        )
        changes = ChangeSet(assignment_updates=[updated])

        # A completed review leaves the item reviewed; withdrawing the reviewer
        # puts it back in the unassigned queue.
        item = self._store.get_item(assignment.item_id)
        if (
            item is not None
            and item.state == "in_review"
            and item.review_phase == "assigned"
            and item.reviewer_id == assignment.reviewer_id
        ):
            completed = outcome == "completed"
            changes.items.append(
                item.model_copy(
                    update={
                        "review_phase": "reviewed" if completed else "unassigned",
                        "reviewer_id": item.reviewer_id if completed else None,
                        "updated_at": self._clock.now_utc(),
                        "version": item.version + 1,
                    }
                )
            )

        self._store.apply(changes)
        logger.info("Assignment %s closed as %s", assignment_id, outcome)
        return updated

    def run_complete(self, input_data: CompleteInput) -> CompleteOutput:
        try:
            assignment = self.complete(input_data.assignment_id, input_data.outcome)
        except ReviewError as e:
            return CompleteOutput(
                assignment=None,
                errors=[AssignmentError(code=e.code, message=e.message, field=e.field)],
                success=False,
            )
        return CompleteOutput(assignment=assignment, errors=[], success=True)

    def reviewer_queue(self, reviewer_id: UUID, limit: int = 100) -> list[QueueEntry]:
        pending = self._store.list_assignments(
            reviewer_id=reviewer_id, status="pending", limit=limit
        )
        return [QueueEntry(assignment=a, item=self._store.get_item(a.item_id)) for a in pending]

    def history(self, item_id: UUID) -> list[ReviewAssignment]:
        return self._store.list_assignments(item_id=item_id)
