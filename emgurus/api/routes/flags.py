from typing import Literal
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from emgurus.api.deps import get_context, get_current_user, raise_for
from emgurus.api.schemas import FlagAssignRequest, FlagCreateRequest, NoteRequest
from emgurus.app_shell.context import ServiceContext
from emgurus.components.flags import (
    AssignFlagInput,
    CloseFlagInput,
    CreateFlagInput,
    FlagOutput,
    ListFlagsInput,
    run_assign_flag,
    run_close_flag,
    run_create_flag,
    run_list_flags,
)
from emgurus.domain.entities import Flag, FlagStatus, User

router = APIRouter()


def _flag_or_raise(result: FlagOutput) -> Flag:
    if not result.success or result.flag is None:
        raise_for(result.errors)
    return result.flag


@router.post("", response_model=Flag, status_code=201)
def create_flag(
    req: FlagCreateRequest,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> Flag:
    result = run_create_flag(
        CreateFlagInput(actor_id=user.id, item_id=req.item_id, comment=req.comment),
        ctx.store,
        ctx.users,
        ctx.gate,
        ctx.clock,
    )
    return _flag_or_raise(result)


@router.get("", response_model=list[Flag])
def list_flags(
    status: FlagStatus | None = None,
    mine: bool = False,
    limit: int = 100,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> list[Flag]:
    """All flags for admins; ``mine=true`` lists the flags assigned to the caller."""
    result = run_list_flags(
        ListFlagsInput(actor_id=user.id, status=status, mine=mine, limit=min(limit, 500)),
        ctx.store,
        ctx.users,
        ctx.gate,
    )
    if not result.success:
        raise_for(result.errors)
    return result.flags


@router.post("/{flag_id}/assign", response_model=Flag)
def assign_flag(
    flag_id: UUID,
    req: FlagAssignRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> Flag:
    result = run_assign_flag(
        AssignFlagInput(actor_id=user.id, flag_id=flag_id, assignee_id=req.assignee_id),
        ctx.store,
        ctx.users,
        ctx.gate,
        ctx.clock,
    )
    flag = _flag_or_raise(result)
    background.add_task(ctx.outbox.drain)
    return flag


@router.post("/{flag_id}/{action}", response_model=Flag)
def close_flag(
    flag_id: UUID,
    action: Literal["resolve", "dismiss", "archive"],
    background: BackgroundTasks,
    req: NoteRequest | None = None,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> Flag:
    result = run_close_flag(
        CloseFlagInput(
            actor_id=user.id, flag_id=flag_id, action=action, note=req.note if req else None
        ),
        ctx.store,
        ctx.users,
        ctx.gate,
        ctx.clock,
    )
    flag = _flag_or_raise(result)
    background.add_task(ctx.outbox.drain)
    return flag
