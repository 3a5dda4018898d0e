"""
Exam question routes.

Three routers: authoring (``/exams``), the guru review screens
(``/exams-guru-review``) and admin curation (``/exams-admin-curate``).
"""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from emgurus.api.deps import get_context, get_current_user, get_optional_user, raise_for, require_kind
from emgurus.api.schemas import (
    BulkResponse,
    CurateArchiveRequest,
    CurateAssignRequest,
    ExamFields,
    GuruRejectRequest,
    ItemResponse,
    NoteRequest,
    QueueEntryResponse,
    SaveAndApproveRequest,
    SaveAndApproveResponse,
)
from emgurus.app_shell.context import ServiceContext
from emgurus.components.lifecycle import (
    BulkArchiveInput,
    BulkAssignInput,
    BulkOutput,
    CreateItemInput,
    EditItemInput,
    GetItemInput,
    GuruRejectInput,
    ItemOutput,
    ListQueueInput,
    ReviewerQueueInput,
    SaveAndApproveInput,
    TransitionInput,
)
from emgurus.domain.entities import User

router = APIRouter()
guru_router = APIRouter()
curate_router = APIRouter()


def _item_or_raise(result: ItemOutput) -> ItemResponse:
    if not result.success or result.item is None:
        raise_for(result.errors)
    return ItemResponse.from_item(result.item)


def _bulk_or_raise(result: BulkOutput) -> BulkResponse:
    if not result.success:
        raise_for(result.errors)
    return BulkResponse(done=result.done, skipped=result.skipped)


def _transition(
    ctx: ServiceContext,
    background: BackgroundTasks,
    user: User,
    item_id: UUID,
    action: str,
    note: str | None = None,
) -> ItemResponse:
    require_kind(ctx, item_id, "exam_question")
    result = ctx.lifecycle.run(
        TransitionInput(actor_id=user.id, item_id=item_id, action=action, note=note)
    )
    response = _item_or_raise(result)
    background.add_task(ctx.outbox.drain)
    return response


# --- Authoring ---


@router.post("", response_model=ItemResponse, status_code=201)
def create_question(
    req: ExamFields,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    result = ctx.lifecycle.run(
        CreateItemInput(
            actor_id=user.id, kind="exam_question", fields=req.model_dump(exclude_unset=True)
        )
    )
    return _item_or_raise(result)


@router.get("/{item_id}", response_model=ItemResponse)
def get_question(
    item_id: UUID,
    user: User | None = Depends(get_optional_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    require_kind(ctx, item_id, "exam_question")
    result = ctx.lifecycle.run(GetItemInput(actor_id=user.id if user else None, item_id=item_id))
    return _item_or_raise(result)


@router.put("/{item_id}", response_model=ItemResponse)
def edit_question(
    item_id: UUID,
    req: ExamFields,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    require_kind(ctx, item_id, "exam_question")
    result = ctx.lifecycle.run(
        EditItemInput(actor_id=user.id, item_id=item_id, fields=req.model_dump(exclude_unset=True))
    )
    return _item_or_raise(result)


@router.post("/{item_id}/submit", response_model=ItemResponse)
def submit_question(
    item_id: UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "submit")


@router.post("/{item_id}/publish", response_model=ItemResponse)
def publish_question(
    item_id: UUID,
    background: BackgroundTasks,
    req: NoteRequest | None = None,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "publish", req.note if req else None)


@router.post("/{item_id}/request-changes", response_model=ItemResponse)
def request_question_changes(
    item_id: UUID,
    req: NoteRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "request_changes", req.note)


@router.post("/{item_id}/reject", response_model=ItemResponse)
def reject_question(
    item_id: UUID,
    req: NoteRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "reject", req.note)


@router.post("/{item_id}/revise", response_model=ItemResponse)
def revise_question(
    item_id: UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    """Reopen an archived question as a draft."""
    return _transition(ctx, background, user, item_id, "revise")


@router.post("/{item_id}/archive", response_model=ItemResponse)
def archive_question(
    item_id: UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "archive")


# --- Guru review ---


@guru_router.get("/queue", response_model=list[QueueEntryResponse])
def guru_queue(
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> list[QueueEntryResponse]:
    """Exam questions with a pending assignment for the caller."""
    result = ctx.lifecycle.run(ReviewerQueueInput(actor_id=user.id, kind="exam_question"))
    if not result.success:
        raise_for(result.errors)
    return [
        QueueEntryResponse(
            assignment=e.assignment,
            item=ItemResponse.from_item(e.item) if e.item else None,
        )
        for e in result.entries
    ]


@guru_router.get("/item/{item_id}", response_model=ItemResponse)
def guru_item(
    item_id: UUID,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    require_kind(ctx, item_id, "exam_question")
    result = ctx.lifecycle.run(GetItemInput(actor_id=user.id, item_id=item_id))
    return _item_or_raise(result)


@guru_router.post("/save-and-approve", response_model=SaveAndApproveResponse)
def save_and_approve(
    req: SaveAndApproveRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> SaveAndApproveResponse:
    """Apply whitelisted edits and publish the question in one commit."""
    result = ctx.lifecycle.run(
        SaveAndApproveInput(
            actor_id=user.id,
            assignment_id=req.assignment_id,
            question_id=req.question_id,
            updates=req.updates,
        )
    )
    if not result.success or result.item is None:
        raise_for(result.errors)
    background.add_task(ctx.outbox.drain)
    return SaveAndApproveResponse(question_id=result.item.id, status=result.item.state)


@guru_router.post("/reject", response_model=ItemResponse)
def guru_reject(
    req: GuruRejectRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    result = ctx.lifecycle.run(
        GuruRejectInput(
            actor_id=user.id,
            assignment_id=req.assignment_id,
            question_id=req.question_id,
            note=req.note,
        )
    )
    response = _item_or_raise(result)
    background.add_task(ctx.outbox.drain)
    return response


# --- Admin curation ---


@curate_router.get("/queue", response_model=list[ItemResponse])
def curate_queue(
    phase: Literal["unassigned", "assigned", "reviewed"] | None = None,
    limit: int | None = None,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> list[ItemResponse]:
    result = ctx.lifecycle.run(
        ListQueueInput(actor_id=user.id, kind="exam_question", phase=phase, limit=limit)
    )
    if not result.success:
        raise_for(result.errors)
    return [ItemResponse.from_item(i) for i in result.items]


@curate_router.post("/assign", response_model=BulkResponse)
def curate_assign(
    req: CurateAssignRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> BulkResponse:
    """Assign many questions to one guru; items that cannot be assigned are skipped."""
    result = ctx.lifecycle.run(
        BulkAssignInput(
            actor_id=user.id,
            item_ids=req.question_ids,
            reviewer_id=req.reviewer_id,
            note=req.note,
        )
    )
    response = _bulk_or_raise(result)
    background.add_task(ctx.outbox.drain)
    return response


@curate_router.post("/archive", response_model=BulkResponse)
def curate_archive(
    req: CurateArchiveRequest,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> BulkResponse:
    result = ctx.lifecycle.run(BulkArchiveInput(actor_id=user.id, item_ids=req.question_ids))
    return _bulk_or_raise(result)
