"""Notification component models - frozen dataclass inputs and outputs."""

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from emgurus.domain.entities import Notification, NotificationCategory, RoleType


@dataclass(frozen=True)
class NotificationError:
    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class InAppItem:
    """One in-app notification, addressed to a single user or to everyone with a role."""

    type: str
    title: str
    body: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    user_id: UUID | None = None
    to_role: RoleType | None = None
    category: NotificationCategory | None = None


@dataclass(frozen=True)
class DispatchRequest:
    """
    A fan-out request.

    E-mail goes to ``to_emails`` plus the addresses of ``to_user_ids`` and of
    every user holding one of ``to_roles``, deduplicated and filtered by each
    user's channel and category preferences.
    """

    subject: str
    html: str
    to_user_ids: tuple[UUID, ...] = ()
    to_emails: tuple[str, ...] = ()
    to_roles: tuple[RoleType, ...] = ()
    in_app: tuple[InAppItem, ...] = ()
    category: NotificationCategory | None = None


@dataclass(frozen=True)
class DispatchResult:
    recipients: int
    in_app: int
    email_status: str
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class DrainResult:
    processed: int
    delivered: int
    failed: int


@dataclass(frozen=True)
class ListNotificationsInput:
    user_id: UUID
    unread_only: bool = False
    limit: int = 50


@dataclass(frozen=True)
class NotificationListOutput:
    notifications: list[Notification]
    unread: int
    errors: list[NotificationError]
    success: bool


@dataclass(frozen=True)
class MarkReadInput:
    user_id: UUID
    notification_id: UUID


@dataclass(frozen=True)
class MarkReadOutput:
    errors: list[NotificationError]
    success: bool
