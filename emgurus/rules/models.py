from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class RbacRules(BaseModel):
    roles: dict[str, list[str]]
    public_permissions: list[str]


class AbacRule(BaseModel):
    if_condition: dict[str, Any] = Field(alias="if")
    allow: list[str]

    model_config = ConfigDict(populate_by_name=True)


class AbacRules(BaseModel):
    review_rules: list[AbacRule]
    flag_rules: list[AbacRule]


class BlogCompleteness(BaseModel):
    min_title: int = 1
    min_body: int = 1


class ExamCompleteness(BaseModel):
    min_stem: int = 1
    min_options: int = 2


class ReviewRules(BaseModel):
    blog: BlogCompleteness
    exam_question: ExamCompleteness
    note_required_for: list[str]
    max_note_length: int
    blog_editable_fields: list[str] = Field(default_factory=lambda: ["title", "body"])
    exam_editable_fields: list[str]
    queue_limit: int = 100


class NotificationTemplate(BaseModel):
    to: list[str]
    type: str
    category: str | None = None
    subject: str
    html: str
    in_app_title: str
    in_app_body: str | None = None


class NotificationRules(BaseModel):
    sender: str
    footer_html: str
    outbox_max_attempts: int
    outbox_batch_size: int = 50
    outbox_lease_seconds: float = 300.0
    email_timeout_seconds: float = 10.0
    templates: dict[str, NotificationTemplate]


class CorsRules(BaseModel):
    allowed_origins: list[str]


class OpsRules(BaseModel):
    data_dir_required: bool
    required_env: list[str]


class Rules(BaseModel):
    project: ProjectRules
    rbac: RbacRules
    abac: AbacRules
    review: ReviewRules
    notifications: NotificationRules
    cors: CorsRules
    ops: OpsRules
