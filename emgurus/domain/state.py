from datetime import datetime
from typing import Any
from uuid import UUID

from emgurus.domain.entities import (
    AssignmentStatus,
    ContentItem,
    ContentState,
    ReviewAction,
    ReviewNote,
)
from emgurus.domain.errors import InvalidStateTransition

CONTENT_STATES: tuple[ContentState, ...] = ("draft", "in_review", "published", "archived")

TRANSITIONS: dict[tuple[ContentState, ReviewAction], ContentState] = {
    ("draft", "submit"): "in_review",
    ("draft", "edit"): "draft",
    ("draft", "archive"): "archived",
    ("in_review", "assign"): "in_review",
    ("in_review", "annotate"): "in_review",
    ("in_review", "request_changes"): "draft",
    ("in_review", "reject"): "archived",
    ("in_review", "publish"): "published",
    ("in_review", "archive"): "archived",
    ("published", "archive"): "archived",
    ("archived", "revise"): "draft",
}

# What happens to the item's pending assignment when an action commits.
ASSIGNMENT_OUTCOMES: dict[ReviewAction, AssignmentStatus] = {
    "request_changes": "rejected",
    "reject": "rejected",
    "publish": "completed",
    "annotate": "completed",
    "archive": "rejected",
}

# Outbox event emitted after the action commits.
TRANSITION_EVENTS: dict[ReviewAction, str] = {
    "submit": "item_submitted",
    "assign": "review_assigned",
    "request_changes": "changes_requested",
    "reject": "item_rejected",
    "publish": "item_published",
}


def can_transition(current: ContentState, action: ReviewAction) -> bool:
    return (current, action) in TRANSITIONS


def next_state(current: ContentState, action: ReviewAction) -> ContentState:
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidStateTransition(current, action) from None


def transition(
    item: ContentItem,
    action: ReviewAction,
    actor_id: UUID,
    now: datetime,
    *,
    note: str | None = None,
    reviewer_id: UUID | None = None,
    annotations: dict[str, Any] | None = None,
) -> ContentItem:
    """
    Return a NEW ContentItem with the action applied.

    Raises InvalidStateTransition if the action is not valid from the
    item's current state. Authorization and payload checks happen before
    this is called; this function only encodes the state machine.
    """
    new_state = next_state(item.state, action)

    updates: dict[str, Any] = {"state": new_state, "updated_at": now, "version": item.version + 1}

    if action == "submit":
        # Every submission re-enters the unassigned queue, even a resubmission
        # of a draft that was previously reviewed.
        updates["review_phase"] = "unassigned"
        updates["reviewer_id"] = None
        updates["submitted_at"] = now
        updates["reviewed_at"] = None

    elif action == "assign":
        if reviewer_id is None:
            raise ValueError("assign requires a reviewer_id")
        updates["review_phase"] = "assigned"
        updates["reviewer_id"] = reviewer_id

    elif action == "annotate":
        updates["reviewed_at"] = now
        for key in ("is_featured", "is_editors_pick"):
            value = (annotations or {}).get(key)
            if isinstance(value, bool):
                updates[key] = value

    elif action == "publish":
        updates["review_phase"] = None
        updates["published_at"] = now
        updates["reviewed_at"] = now
        updates["reviewer_id"] = actor_id

    elif action == "reject":
        updates["review_phase"] = None
        updates["reviewed_at"] = now

    elif action == "request_changes":
        updates["review_phase"] = None

    elif action == "archive":
        updates["review_phase"] = None

    elif action == "revise":
        updates["review_phase"] = None
        updates["reviewer_id"] = None
        updates["published_at"] = None

    if note:
        updates["review_notes"] = [
            *item.review_notes,
            ReviewNote(author_id=actor_id, action=action, note=note, created_at=now),
        ]

    return item.model_copy(update=updates)
