"""Assignment component models - frozen dataclass inputs and outputs."""

from dataclasses import dataclass
from uuid import UUID

from emgurus.domain.entities import AssignmentStatus, ContentItem, ReviewAssignment


@dataclass(frozen=True)
class AssignmentError:
    """Validation error details for assignment operations."""

    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class CompleteInput:
    """Close an assignment with a final outcome."""

    assignment_id: UUID
    outcome: AssignmentStatus


@dataclass(frozen=True)
class CompleteOutput:
    assignment: ReviewAssignment | None
    errors: list[AssignmentError]
    success: bool


@dataclass(frozen=True)
class QueueEntry:
    """A pending assignment together with the item it points at."""

    assignment: ReviewAssignment
    item: ContentItem | None
