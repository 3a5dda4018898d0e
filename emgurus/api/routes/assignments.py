from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from emgurus.api.deps import get_context, get_current_user, raise_for
from emgurus.api.schemas import CompleteAssignmentRequest, ItemResponse, QueueEntryResponse
from emgurus.app_shell.context import ServiceContext
from emgurus.components.assignments import CompleteInput
from emgurus.components.lifecycle import ReviewerQueueInput
from emgurus.domain.entities import ReviewAssignment, User

router = APIRouter()


@router.get("/mine", response_model=list[QueueEntryResponse])
def my_assignments(
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> list[QueueEntryResponse]:
    """Pending assignments for the caller, blogs and exam questions alike."""
    result = ctx.lifecycle.run(ReviewerQueueInput(actor_id=user.id))
    if not result.success:
        raise_for(result.errors)
    return [
        QueueEntryResponse(
            assignment=e.assignment,
            item=ItemResponse.from_item(e.item) if e.item else None,
        )
        for e in result.entries
    ]


@router.post("/{assignment_id}/complete", response_model=ReviewAssignment)
def complete_assignment(
    assignment_id: UUID,
    req: CompleteAssignmentRequest,
    user: User = Depends(get_current_user),
    ctx: ServiceContext = Depends(get_context),
) -> ReviewAssignment:
    """Close an assignment; any outcome but ``completed`` withdraws the reviewer."""
    decision = ctx.gate.authorize(user, "review:assign")
    if not decision:
        raise HTTPException(
            status_code=403,
            detail={"error": "not_authorized", "message": "Not allowed to manage assignments"},
        )

    result = ctx.assignments.run_complete(
        CompleteInput(assignment_id=assignment_id, outcome=req.outcome)
    )
    if not result.success or result.assignment is None:
        raise_for(result.errors)
    return result.assignment
