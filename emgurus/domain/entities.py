from datetime import UTC, datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

# --- Enums / Literals ---
RoleType = Literal["user", "guru", "admin"]
ContentKind = Literal["blog", "exam_question"]
ContentState = Literal["draft", "in_review", "published", "archived"]
ReviewPhase = Literal["unassigned", "assigned", "reviewed"]
AssignmentStatus = Literal["pending", "completed", "rejected", "superseded"]
FlagStatus = Literal["open", "in_review", "resolved", "dismissed", "archived"]
NotificationCategory = Literal["blogs", "exams", "bookings", "forums"]
OutboxStatus = Literal["pending", "processing", "delivered", "failed"]

ReviewAction = Literal[
    "submit",
    "assign",
    "request_changes",
    "reject",
    "publish",
    "annotate",
    "archive",
    "revise",
    "edit",
]


def utcnow() -> datetime:
    return datetime.now(UTC)


# --- Users ---


class NotificationSettings(BaseModel):
    channels: dict[str, bool] = Field(default_factory=dict)
    categories: dict[str, bool] = Field(default_factory=dict)

    def allows(self, channel: str, category: str | None = None) -> bool:
        # Email and in-app default to on; anything else must be opted in.
        default = channel in ("email", "inapp")
        if not self.channels.get(channel, default):
            return False
        if category and not self.categories.get(category, True):
            return False
        return True


class User(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    email: str
    display_name: str = ""
    roles: list[RoleType] = Field(default_factory=list)
    status: Literal["active", "disabled"] = "active"
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)
    created_at: datetime = Field(default_factory=utcnow)

    def has_role(self, role: RoleType) -> bool:
        return role in self.roles


# --- Content under review ---


class ReviewNote(BaseModel):
    author_id: UUID
    action: ReviewAction
    note: str
    created_at: datetime = Field(default_factory=utcnow)


class ContentItem(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    kind: ContentKind
    author_id: UUID
    title: str = ""
    body: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)

    state: ContentState = "draft"
    review_phase: ReviewPhase | None = None
    reviewer_id: UUID | None = None

    is_featured: bool = False
    is_editors_pick: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    published_at: datetime | None = None

    review_notes: list[ReviewNote] = Field(default_factory=list)
    # Bumped by every write; the store rejects a write based on a stale read.
    version: int = 1

    @property
    def queue_state(self) -> str:
        """Flattened state used by the admin queues, e.g. ``in_review_assigned``."""
        if self.state == "in_review" and self.review_phase:
            return f"in_review_{self.review_phase}"
        return self.state


class ReviewAssignment(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    item_id: UUID
    reviewer_id: UUID
    assigned_by: UUID
    status: AssignmentStatus = "pending"
    note: str | None = None
    assigned_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None


# --- Flags ---


class Flag(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    item_id: UUID
    flagged_by: UUID
    comment: str
    status: FlagStatus = "open"
    assigned_to: UUID | None = None
    resolution_note: str | None = None
    resolved_by: UUID | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    resolved_at: datetime | None = None


# --- Notifications ---


class Notification(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    type: str
    title: str
    body: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    category: NotificationCategory | None = None
    created_at: datetime = Field(default_factory=utcnow)
    read_at: datetime | None = None


class OutboxEvent(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: OutboxStatus = "pending"
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    claimed_at: datetime | None = None
    processed_at: datetime | None = None
