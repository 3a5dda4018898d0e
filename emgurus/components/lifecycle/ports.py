"""Lifecycle component port definitions - protocols for dependencies."""

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from emgurus.domain.entities import ContentItem, ReviewAssignment, User
from emgurus.domain.policy import Decision
from emgurus.ports.store import ChangeSet


class ItemStorePort(Protocol):
    """Protocol for reading items and committing change sets."""

    def get_item(self, item_id: UUID) -> ContentItem | None: ...

    def list_items(self, filters: dict[str, Any], limit: int = 100) -> list[ContentItem]: ...

    def get_assignment(self, assignment_id: UUID) -> ReviewAssignment | None: ...

    def get_pending_assignment(self, item_id: UUID) -> ReviewAssignment | None: ...

    def apply(self, changes: ChangeSet) -> None: ...


class UserLookupPort(Protocol):
    def get_by_id(self, user_id: UUID) -> User | None: ...


class GatePort(Protocol):
    """Protocol for the authorization gate."""

    def authorize(self, actor: User | None, action: str, item: Any = None) -> Decision: ...

    def is_reviewer_candidate(self, user: User | None) -> bool: ...


class ClockPort(Protocol):
    def now_utc(self) -> datetime: ...
