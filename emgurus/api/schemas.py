from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from emgurus.domain.entities import (
    AssignmentStatus,
    ContentItem,
    ContentKind,
    Notification,
    NotificationCategory,
    ReviewAssignment,
    RoleType,
)
from emgurus.domain.payload import exam_fields

# --- Content items ---


class BlogFields(BaseModel):
    title: str | None = None
    body: str | None = None
    tags: list[str] | None = None
    category: str | None = None
    excerpt: str | None = None
    cover_image_url: str | None = None


class ExamFields(BaseModel):
    question_text: str | None = None
    option_a: str | None = None
    option_b: str | None = None
    option_c: str | None = None
    option_d: str | None = None
    option_e: str | None = None
    correct_answer: Literal["a", "b", "c", "d", "e"] | None = None
    explanation: str | None = None
    exam_type: str | None = None
    difficulty_level: str | None = None
    topic: str | None = None
    subtopic: str | None = None
    keywords: list[str] | None = None


class ReviewNoteModel(BaseModel):
    author_id: UUID
    action: str
    note: str
    created_at: datetime


class ItemResponse(BaseModel):
    id: UUID
    kind: ContentKind
    author_id: UUID
    title: str
    body: str
    status: str
    review_phase: str | None = None
    queue_state: str
    reviewer_id: UUID | None = None
    is_featured: bool
    is_editors_pick: bool
    version: int
    payload: dict[str, Any] = {}
    question_fields: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    published_at: datetime | None = None
    review_notes: list[ReviewNoteModel] = []

    @classmethod
    def from_item(cls, item: ContentItem) -> "ItemResponse":
        return cls(
            id=item.id,
            kind=item.kind,
            author_id=item.author_id,
            title=item.title,
            body=item.body,
            status=item.state,
            review_phase=item.review_phase,
            queue_state=item.queue_state,
            reviewer_id=item.reviewer_id,
            is_featured=item.is_featured,
            is_editors_pick=item.is_editors_pick,
            version=item.version,
            payload=item.payload,
            question_fields=exam_fields(item) if item.kind == "exam_question" else None,
            created_at=item.created_at,
            updated_at=item.updated_at,
            submitted_at=item.submitted_at,
            reviewed_at=item.reviewed_at,
            published_at=item.published_at,
            review_notes=[ReviewNoteModel.model_validate(n.model_dump()) for n in item.review_notes],
        )


# --- Review actions ---


class NoteRequest(BaseModel):
    note: str | None = None


class AssignRequest(BaseModel):
    reviewer_id: UUID
    note: str | None = None
    supersede: bool = False


class ReviewRequest(BaseModel):
    notes: str | None = None
    is_featured: bool | None = None
    is_editors_pick: bool | None = None


class AssignResponse(BaseModel):
    item: ItemResponse
    assignment: ReviewAssignment


class CompleteAssignmentRequest(BaseModel):
    outcome: AssignmentStatus


class QueueEntryResponse(BaseModel):
    assignment: ReviewAssignment
    item: ItemResponse | None = None


# --- Exam review ---


class SaveAndApproveRequest(BaseModel):
    assignment_id: UUID
    question_id: UUID
    updates: dict[str, Any] = {}


class SaveAndApproveResponse(BaseModel):
    question_id: UUID
    status: str


class GuruRejectRequest(BaseModel):
    assignment_id: UUID
    question_id: UUID
    note: str | None = None


class CurateAssignRequest(BaseModel):
    question_ids: list[UUID] = Field(min_length=1)
    reviewer_id: UUID
    note: str | None = None


class CurateArchiveRequest(BaseModel):
    question_ids: list[UUID] = Field(min_length=1)


class BulkResponse(BaseModel):
    done: list[UUID]
    skipped: dict[UUID, str]


# --- Flags ---


class FlagCreateRequest(BaseModel):
    item_id: UUID
    comment: str


class FlagAssignRequest(BaseModel):
    assignee_id: UUID


# --- Notifications ---


class InAppModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    title: str
    body: str | None = None
    data: dict[str, Any] = {}
    user_id: UUID | None = Field(default=None, alias="userId")
    to_role: RoleType | None = Field(default=None, alias="toRole")
    category: NotificationCategory | None = None


class DispatchRequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject: str = Field(min_length=1)
    html: str = Field(min_length=1)
    to_user_ids: list[UUID] = Field(default=[], alias="toUserIds")
    to_emails: list[str] = Field(default=[], alias="toEmails")
    to_role: RoleType | None = Field(default=None, alias="toRole")
    in_app: list[InAppModel] = Field(default=[], alias="inApp")
    category: NotificationCategory | None = None


class DispatchResponse(BaseModel):
    recipients: int
    in_app: int
    email_status: str


class NotificationListResponse(BaseModel):
    notifications: list[Notification]
    unread: int
