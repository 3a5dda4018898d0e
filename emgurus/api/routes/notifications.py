from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from emgurus.api.deps import get_context, get_current_user, raise_for
from emgurus.api.schemas import DispatchRequestModel, DispatchResponse, NotificationListResponse
from emgurus.app_shell.context import ServiceContext
from emgurus.components.notifications import (
    DispatchRequest,
    InAppItem,
    ListNotificationsInput,
    MarkReadInput,
    run_list_notifications,
    run_mark_read,
)
from emgurus.domain.entities import User

router = APIRouter()
dispatch_router = APIRouter()


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> NotificationListResponse:
    result = run_list_notifications(
        ListNotificationsInput(user_id=user.id, unread_only=unread_only, limit=min(limit, 200)),
        ctx.notifications,
    )
    if not result.success:
        raise_for(result.errors)
    return NotificationListResponse(notifications=result.notifications, unread=result.unread)


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> dict[str, bool]:
    result = run_mark_read(
        MarkReadInput(user_id=user.id, notification_id=notification_id),
        ctx.notifications,
        ctx.clock,
    )
    if not result.success:
        raise_for(result.errors)
    return {"success": True}


@dispatch_router.post("", response_model=DispatchResponse)
def dispatch(
    req: DispatchRequestModel,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> DispatchResponse:
    """Ad-hoc fan-out for admins. Delivery problems are reported, not raised."""
    if not ctx.gate.authorize(user, "notifications:dispatch"):
        raise HTTPException(
            status_code=403,
            detail={"error": "not_authorized", "message": "Admins only"},
        )
    if not (req.to_user_ids or req.to_emails or req.to_role or req.in_app):
        raise HTTPException(
            status_code=400,
            detail={"error": "validation_error", "message": "No recipients", "field": "toUserIds"},
        )

    result = ctx.dispatcher.dispatch(
        DispatchRequest(
            subject=req.subject,
            html=req.html,
            to_user_ids=tuple(req.to_user_ids),
            to_emails=tuple(req.to_emails),
            to_roles=(req.to_role,) if req.to_role else (),
            in_app=tuple(
                InAppItem(
                    type=i.type,
                    title=i.title,
                    body=i.body,
                    data=i.data,
                    user_id=i.user_id,
                    to_role=i.to_role,
                    category=i.category,
                )
                for i in req.in_app
            ),
            category=req.category,
        )
    )
    return DispatchResponse(
        recipients=result.recipients, in_app=result.in_app, email_status=result.email_status
    )
