from typing import Literal
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from emgurus.api.deps import get_context, get_current_user, get_optional_user, raise_for, require_kind
from emgurus.api.schemas import (
    AssignRequest,
    AssignResponse,
    BlogFields,
    ItemResponse,
    NoteRequest,
    ReviewRequest,
)
from emgurus.app_shell.context import ServiceContext
from emgurus.components.lifecycle import (
    AnnotateInput,
    AssignInput,
    CreateItemInput,
    EditItemInput,
    GetItemInput,
    ItemOutput,
    ListQueueInput,
    TransitionInput,
)
from emgurus.domain.entities import User

router = APIRouter()


def _item_or_raise(result: ItemOutput) -> ItemResponse:
    if not result.success or result.item is None:
        raise_for(result.errors)
    return ItemResponse.from_item(result.item)


def _transition(
    ctx: ServiceContext,
    background: BackgroundTasks,
    user: User,
    item_id: UUID,
    action: str,
    note: str | None = None,
) -> ItemResponse:
    require_kind(ctx, item_id, "blog")
    result = ctx.lifecycle.run(
        TransitionInput(actor_id=user.id, item_id=item_id, action=action, note=note)
    )
    response = _item_or_raise(result)
    background.add_task(ctx.outbox.drain)
    return response


@router.post("", response_model=ItemResponse, status_code=201)
def create_blog(
    req: BlogFields,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    """Create a blog draft owned by the caller."""
    result = ctx.lifecycle.run(
        CreateItemInput(actor_id=user.id, kind="blog", fields=req.model_dump(exclude_unset=True))
    )
    return _item_or_raise(result)


@router.get("/queue", response_model=list[ItemResponse])
def blog_queue(
    phase: Literal["unassigned", "assigned", "reviewed"] | None = None,
    limit: int | None = None,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> list[ItemResponse]:
    """Admin review queue for blogs, optionally filtered by phase."""
    result = ctx.lifecycle.run(ListQueueInput(actor_id=user.id, kind="blog", phase=phase, limit=limit))
    if not result.success:
        raise_for(result.errors)
    return [ItemResponse.from_item(i) for i in result.items]


@router.get("/{item_id}", response_model=ItemResponse)
def get_blog(
    item_id: UUID,
    user: User | None = Depends(get_optional_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    """Published posts are public; anything else needs read access."""
    require_kind(ctx, item_id, "blog")
    result = ctx.lifecycle.run(GetItemInput(actor_id=user.id if user else None, item_id=item_id))
    return _item_or_raise(result)


@router.put("/{item_id}", response_model=ItemResponse)
def edit_blog(
    item_id: UUID,
    req: BlogFields,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    require_kind(ctx, item_id, "blog")
    result = ctx.lifecycle.run(
        EditItemInput(actor_id=user.id, item_id=item_id, fields=req.model_dump(exclude_unset=True))
    )
    return _item_or_raise(result)


@router.post("/{item_id}/submit", response_model=ItemResponse)
def submit_blog(
    item_id: UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "submit")


@router.post("/{item_id}/assign", response_model=AssignResponse)
def assign_blog(
    item_id: UUID,
    req: AssignRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> AssignResponse:
    require_kind(ctx, item_id, "blog")
    result = ctx.lifecycle.run(
        AssignInput(
            actor_id=user.id,
            item_id=item_id,
            reviewer_id=req.reviewer_id,
            note=req.note,
            supersede=req.supersede,
        )
    )
    if not result.success or result.item is None or result.assignment is None:
        raise_for(result.errors)
    background.add_task(ctx.outbox.drain)
    return AssignResponse(item=ItemResponse.from_item(result.item), assignment=result.assignment)


@router.post("/{item_id}/review", response_model=ItemResponse)
def review_blog(
    item_id: UUID,
    req: ReviewRequest,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    """Record reviewer notes and the featured / editor's pick toggles."""
    require_kind(ctx, item_id, "blog")
    result = ctx.lifecycle.run(
        AnnotateInput(
            actor_id=user.id,
            item_id=item_id,
            notes=req.notes,
            is_featured=req.is_featured,
            is_editors_pick=req.is_editors_pick,
        )
    )
    return _item_or_raise(result)


@router.post("/{item_id}/publish", response_model=ItemResponse)
def publish_blog(
    item_id: UUID,
    background: BackgroundTasks,
    req: NoteRequest | None = None,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "publish", req.note if req else None)


@router.post("/{item_id}/request-changes", response_model=ItemResponse)
def request_changes(
    item_id: UUID,
    req: NoteRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "request_changes", req.note)


@router.post("/{item_id}/reject", response_model=ItemResponse)
def reject_blog(
    item_id: UUID,
    req: NoteRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "reject", req.note)


@router.post("/{item_id}/revise", response_model=ItemResponse)
def revise_blog(
    item_id: UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    """Reopen an archived post as a draft."""
    return _transition(ctx, background, user, item_id, "revise")


@router.post("/{item_id}/archive", response_model=ItemResponse)
def archive_blog(
    item_id: UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ItemResponse:
    return _transition(ctx, background, user, item_id, "archive")
