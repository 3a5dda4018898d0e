"""
In-memory implementations of the storage ports.

Used by component tests and for running the API without a database file.
A single lock serializes ``apply`` so the pending-assignment check and the
insert behave like one transaction.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from emgurus.domain.entities import (
    ContentItem,
    Flag,
    Notification,
    OutboxEvent,
    ReviewAssignment,
    User,
)
from emgurus.domain.errors import AlreadyAssigned, ConcurrentModification
from emgurus.ports.store import ChangeSet

_ITEM_FILTERS = ("state", "review_phase", "kind", "author_id", "reviewer_id")


class InMemoryReviewStore:
    def __init__(self) -> None:
        self._items: dict[UUID, ContentItem] = {}
        self._assignments: dict[UUID, ReviewAssignment] = {}
        self._flags: dict[UUID, Flag] = {}
        self.events: dict[UUID, OutboxEvent] = {}
        self._lock = threading.Lock()

    # --- reads ---

    def get_item(self, item_id: UUID) -> ContentItem | None:
        return self._items.get(item_id)

    def list_items(self, filters: dict[str, Any], limit: int = 100) -> list[ContentItem]:
        items = list(self._items.values())
        for key in _ITEM_FILTERS:
            if key in filters:
                items = [i for i in items if getattr(i, key) == filters[key]]
        items.sort(key=lambda i: i.submitted_at or i.created_at, reverse=True)
        return items[:limit]

    def get_assignment(self, assignment_id: UUID) -> ReviewAssignment | None:
        return self._assignments.get(assignment_id)

    def get_pending_assignment(self, item_id: UUID) -> ReviewAssignment | None:
        for a in self._assignments.values():
            if a.item_id == item_id and a.status == "pending":
                return a
        return None

    def list_assignments(
        self,
        item_id: UUID | None = None,
        reviewer_id: UUID | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[ReviewAssignment]:
        out = list(self._assignments.values())
        if item_id is not None:
            out = [a for a in out if a.item_id == item_id]
        if reviewer_id is not None:
            out = [a for a in out if a.reviewer_id == reviewer_id]
        if status is not None:
            out = [a for a in out if a.status == status]
        out.sort(key=lambda a: a.assigned_at, reverse=True)
        return out[:limit]

    def get_flag(self, flag_id: UUID) -> Flag | None:
        return self._flags.get(flag_id)

    def list_flags(
        self,
        status: str | None = None,
        assigned_to: UUID | None = None,
        limit: int = 100,
    ) -> list[Flag]:
        flags = list(self._flags.values())
        if status is not None:
            flags = [f for f in flags if f.status == status]
        if assigned_to is not None:
            flags = [f for f in flags if f.assigned_to == assigned_to]
        flags.sort(key=lambda f: f.created_at, reverse=True)
        return flags[:limit]

    # --- writes ---

    def apply(self, changes: ChangeSet) -> None:
        with self._lock:
            assignments = dict(self._assignments)
            for a in changes.assignment_updates:
                assignments[a.id] = a
            for a in changes.new_assignments:
                pending = [
                    x
                    for x in assignments.values()
                    if x.item_id == a.item_id and x.status == "pending" and x.id != a.id
                ]
                if a.status == "pending" and pending:
                    raise AlreadyAssigned(a.item_id)
                assignments[a.id] = a

            for item in changes.items:
                stored = self._items.get(item.id)
                if stored is not None and stored.version != item.version - 1:
                    raise ConcurrentModification(item.id)

            # Nothing is visible until every check above has passed.
            self._assignments = assignments
            for item in changes.items:
                self._items[item.id] = item
            for flag in changes.flags:
                self._flags[flag.id] = flag
            for event in changes.events:
                self.events[event.id] = event

    def add_item(self, item: ContentItem) -> None:
        self._items[item.id] = item

    # --- outbox ---

    def list_due(self, max_attempts: int, limit: int = 50) -> list[OutboxEvent]:
        due = [
            e
            for e in self.events.values()
            if e.status == "pending" or (e.status == "failed" and e.attempts < max_attempts)
        ]
        due.sort(key=lambda e: e.created_at)
        return due[:limit]

    def claim_due(
        self, max_attempts: int, limit: int, now: datetime, lease_seconds: float
    ) -> list[OutboxEvent]:
        stale_before = now - timedelta(seconds=lease_seconds)
        with self._lock:
            due = [
                e
                for e in self.events.values()
                if e.attempts < max_attempts
                and (
                    e.status in ("pending", "failed")
                    or (
                        e.status == "processing"
                        and e.claimed_at is not None
                        and e.claimed_at < stale_before
                    )
                )
            ]
            due.sort(key=lambda e: e.created_at)
            claimed = [
                e.model_copy(update={"status": "processing", "claimed_at": now})
                for e in due[:limit]
            ]
            for event in claimed:
                self.events[event.id] = event
        return claimed

    def save_event(self, event: OutboxEvent) -> OutboxEvent:
        with self._lock:
            self.events[event.id] = event
        return event


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._users: dict[UUID, User] = {}

    def get_by_id(self, user_id: UUID) -> User | None:
        return self._users.get(user_id)

    def get_many(self, user_ids: list[UUID]) -> list[User]:
        return [self._users[uid] for uid in user_ids if uid in self._users]

    def get_by_email(self, email: str) -> User | None:
        for user in self._users.values():
            if user.email.lower() == email.lower():
                return user
        return None

    def list_ids_by_role(self, role: str) -> list[UUID]:
        return [u.id for u in self._users.values() if role in u.roles]

    def save(self, user: User) -> User:
        self._users[user.id] = user
        return user


class InMemoryNotificationRepo:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def insert_many(self, notifications: list[Notification]) -> int:
        self.notifications.extend(notifications)
        return len(notifications)

    def list_for_user(
        self, user_id: UUID, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]:
        out = [n for n in self.notifications if n.user_id == user_id]
        if unread_only:
            out = [n for n in out if n.read_at is None]
        out.sort(key=lambda n: n.created_at, reverse=True)
        return out[:limit]

    def mark_read(self, notification_id: UUID, user_id: UUID, read_at: datetime) -> bool:
        for i, n in enumerate(self.notifications):
            if n.id == notification_id and n.user_id == user_id:
                if n.read_at is None:
                    self.notifications[i] = n.model_copy(update={"read_at": read_at})
                return True
        return False
