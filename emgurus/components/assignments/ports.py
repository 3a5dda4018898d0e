"""Assignment component port definitions - protocols for dependencies."""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from emgurus.domain.entities import ContentItem, ReviewAssignment
from emgurus.ports.store import ChangeSet


class AssignmentStorePort(Protocol):
    """Subset of the review store the assignment manager needs."""

    def get_item(self, item_id: UUID) -> ContentItem | None: ...

    def get_assignment(self, assignment_id: UUID) -> ReviewAssignment | None: ...

    def get_pending_assignment(self, item_id: UUID) -> ReviewAssignment | None: ...

    def list_assignments(
        self,
        item_id: UUID | None = None,
        reviewer_id: UUID | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[ReviewAssignment]: ...

    def apply(self, changes: ChangeSet) -> None: ...


class TimePort(Protocol):
    def now_utc(self) -> datetime: ...
