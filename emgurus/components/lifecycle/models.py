"""Lifecycle component models - frozen dataclass inputs and outputs."""

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from emgurus.components.assignments.models import QueueEntry
from emgurus.domain.entities import ContentItem, ContentKind, ReviewAssignment, ReviewPhase


@dataclass(frozen=True)
class LifecycleError:
    """Error details for lifecycle operations."""

    code: str
    message: str
    field: str | None = None


# --- Inputs ---


@dataclass(frozen=True)
class CreateItemInput:
    """Create a draft owned by the actor."""

    actor_id: UUID
    kind: ContentKind
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EditItemInput:
    """Edit a draft. Fields outside the kind's whitelist are ignored."""

    actor_id: UUID
    item_id: UUID
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GetItemInput:
    actor_id: UUID | None
    item_id: UUID


@dataclass(frozen=True)
class TransitionInput:
    """
    A state change that needs nothing beyond an optional note.

    action: submit, request_changes, reject, publish, archive or revise
    """

    actor_id: UUID
    item_id: UUID
    action: str
    note: str | None = None


@dataclass(frozen=True)
class AssignInput:
    actor_id: UUID
    item_id: UUID
    reviewer_id: UUID
    note: str | None = None
    supersede: bool = False


@dataclass(frozen=True)
class AnnotateInput:
    """Reviewer notes plus the featured / editor's pick toggles."""

    actor_id: UUID
    item_id: UUID
    notes: str | None = None
    is_featured: bool | None = None
    is_editors_pick: bool | None = None


@dataclass(frozen=True)
class SaveAndApproveInput:
    """Guru edits an assigned exam question and publishes it in one step."""

    actor_id: UUID
    assignment_id: UUID
    question_id: UUID
    updates: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GuruRejectInput:
    actor_id: UUID
    assignment_id: UUID
    question_id: UUID
    note: str | None = None


@dataclass(frozen=True)
class BulkAssignInput:
    actor_id: UUID
    item_ids: list[UUID]
    reviewer_id: UUID
    note: str | None = None


@dataclass(frozen=True)
class BulkArchiveInput:
    actor_id: UUID
    item_ids: list[UUID]


@dataclass(frozen=True)
class ListQueueInput:
    """Admin queue listing. ``phase`` selects unassigned, assigned or reviewed items."""

    actor_id: UUID
    kind: ContentKind | None = None
    phase: ReviewPhase | None = None
    limit: int | None = None


@dataclass(frozen=True)
class ReviewerQueueInput:
    actor_id: UUID
    kind: ContentKind | None = None


# --- Outputs ---


@dataclass(frozen=True)
class ItemOutput:
    item: ContentItem | None
    errors: list[LifecycleError]
    success: bool


@dataclass(frozen=True)
class AssignOutput:
    item: ContentItem | None
    assignment: ReviewAssignment | None
    errors: list[LifecycleError]
    success: bool


@dataclass(frozen=True)
class BulkOutput:
    """Per-item results of a bulk operation; skipped maps item id to error code."""

    done: list[UUID]
    skipped: dict[UUID, str]
    errors: list[LifecycleError]
    success: bool


@dataclass(frozen=True)
class QueueOutput:
    items: list[ContentItem]
    errors: list[LifecycleError]
    success: bool


@dataclass(frozen=True)
class ReviewerQueueOutput:
    entries: list[QueueEntry]
    errors: list[LifecycleError]
    success: bool
