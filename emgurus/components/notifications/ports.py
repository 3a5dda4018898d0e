"""Notification component port definitions - protocols for dependencies."""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from emgurus.domain.entities import Notification, OutboxEvent, User
from emgurus.ports.email import EmailMessage, EmailResult


class UserDirectoryPort(Protocol):
    """Recipient lookup."""

    def get_many(self, user_ids: list[UUID]) -> list[User]: ...

    def list_ids_by_role(self, role: str) -> list[UUID]: ...


class NotificationRepoPort(Protocol):
    def insert_many(self, notifications: list[Notification]) -> int: ...

    def list_for_user(
        self, user_id: UUID, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]: ...

    def mark_read(self, notification_id: UUID, user_id: UUID, read_at: datetime) -> bool: ...


class OutboxRepoPort(Protocol):
    def list_due(self, max_attempts: int, limit: int = 50) -> list[OutboxEvent]: ...

    def claim_due(
        self, max_attempts: int, limit: int, now: datetime, lease_seconds: float
    ) -> list[OutboxEvent]: ...

    def save_event(self, event: OutboxEvent) -> OutboxEvent: ...


class EmailSenderPort(Protocol):
    def send(self, message: EmailMessage) -> EmailResult: ...


class TimePort(Protocol):
    def now_utc(self) -> datetime: ...
