"""
Storage ports shared by the review components.

Implementations: SQLite (adapters.sqlite), in-memory (adapters.memory).

Invariants every implementation must hold:
- ``apply`` is atomic. Item, review notes, assignments, flags and outbox
  events of one ChangeSet are all written or none are.
- At most one ``pending`` ReviewAssignment per item. A ChangeSet that
  would create a second one raises AlreadyAssigned and writes nothing.
- Items are versioned. Writing an item whose ``version`` is not exactly
  one more than the stored row raises ConcurrentModification.
- Storage failures surface as UpstreamServiceError, never as driver
  exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from emgurus.domain.entities import (
    ContentItem,
    Flag,
    Notification,
    OutboxEvent,
    ReviewAssignment,
    User,
)


@dataclass
class ChangeSet:
    """Everything one operation writes, committed in a single transaction."""

    items: list[ContentItem] = field(default_factory=list)
    new_assignments: list[ReviewAssignment] = field(default_factory=list)
    assignment_updates: list[ReviewAssignment] = field(default_factory=list)
    flags: list[Flag] = field(default_factory=list)
    events: list[OutboxEvent] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.items
            or self.new_assignments
            or self.assignment_updates
            or self.flags
            or self.events
        )


class ReviewStorePort(Protocol):
    """Content items, their assignments and flags, plus the atomic writer."""

    def get_item(self, item_id: UUID) -> ContentItem | None: ...

    def list_items(self, filters: dict[str, Any], limit: int = 100) -> list[ContentItem]: ...

    def get_assignment(self, assignment_id: UUID) -> ReviewAssignment | None: ...

    def get_pending_assignment(self, item_id: UUID) -> ReviewAssignment | None: ...

    def list_assignments(
        self,
        item_id: UUID | None = None,
        reviewer_id: UUID | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[ReviewAssignment]: ...

    def get_flag(self, flag_id: UUID) -> Flag | None: ...

    def list_flags(
        self,
        status: str | None = None,
        assigned_to: UUID | None = None,
        limit: int = 100,
    ) -> list[Flag]: ...

    def apply(self, changes: ChangeSet) -> None: ...


class UserRepoPort(Protocol):
    def get_by_id(self, user_id: UUID) -> User | None: ...

    def get_many(self, user_ids: list[UUID]) -> list[User]: ...

    def get_by_email(self, email: str) -> User | None: ...

    def list_ids_by_role(self, role: str) -> list[UUID]: ...

    def save(self, user: User) -> User: ...


class NotificationRepoPort(Protocol):
    def insert_many(self, notifications: list[Notification]) -> int: ...

    def list_for_user(
        self, user_id: UUID, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]: ...

    def mark_read(self, notification_id: UUID, user_id: UUID, read_at: Any) -> bool: ...


class OutboxRepoPort(Protocol):
    def list_due(self, max_attempts: int, limit: int = 50) -> list[OutboxEvent]: ...

    def claim_due(
        self, max_attempts: int, limit: int, now: datetime, lease_seconds: float
    ) -> list[OutboxEvent]: ...

    def save_event(self, event: OutboxEvent) -> OutboxEvent: ...
