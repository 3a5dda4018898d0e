"""
Flags component - quality reports raised against content items.

A flag has its own lifecycle, independent of the item it points at:

    open -> in_review (assigned) -> resolved | dismissed -> archived

A flagged item keeps its state; resolving a flag never unpublishes anything.
"""

from __future__ import annotations

import logging
from uuid import UUID

from emgurus.domain.entities import Flag, FlagStatus, OutboxEvent, User
from emgurus.domain.errors import (
    Forbidden,
    InvalidReviewer,
    InvalidStateTransition,
    NotFound,
    ReviewError,
    ReviewValidationError,
    Unauthenticated,
)
from emgurus.ports.store import ChangeSet

from .models import (
    AssignFlagInput,
    CloseFlagInput,
    CreateFlagInput,
    FlagError,
    FlagListOutput,
    FlagOutput,
    ListFlagsInput,
)
from .ports import FlagStorePort, GatePort, TimePort, UserLookupPort

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000

# action -> (allowed source states, target state)
FLAG_TRANSITIONS: dict[str, tuple[frozenset[str], FlagStatus]] = {
    "assign": (frozenset({"open", "in_review"}), "in_review"),
    "resolve": (frozenset({"open", "in_review"}), "resolved"),
    "dismiss": (frozenset({"open", "in_review"}), "dismissed"),
    "archive": (frozenset({"open", "in_review", "resolved", "dismissed"}), "archived"),
}


def _errors(e: ReviewError) -> list[FlagError]:
    return [FlagError(code=e.code, message=e.message, field=e.field)]


def _actor(users: UserLookupPort, actor_id: UUID) -> User:
    actor = users.get_by_id(actor_id)
    if actor is None:
        raise Unauthenticated("Authentication required")
    return actor


def _authorize(gate: GatePort, actor: User, action: str, flag: Flag | None = None) -> None:
    decision = gate.authorize(actor, f"flags:{action}", flag)
    if not decision:
        raise Forbidden(f"Not allowed to {action} flags")


def _flag(store: FlagStorePort, flag_id: UUID) -> Flag:
    flag = store.get_flag(flag_id)
    if flag is None:
        raise NotFound("Flag not found", field="flag_id")
    return flag


def _move(flag: Flag, action: str) -> FlagStatus:
    sources, target = FLAG_TRANSITIONS[action]
    if flag.status not in sources:
        raise InvalidStateTransition(flag.status, f"{action} flag")
    return target


def _text(value: str | None, field: str, required: bool) -> str | None:
    text = (value or "").strip()
    if not text:
        if required:
            raise ReviewValidationError(f"{field.capitalize()} is required", field=field)
        return None
    if len(text) > MAX_COMMENT_LENGTH:
        raise ReviewValidationError(
            f"{field.capitalize()} exceeds {MAX_COMMENT_LENGTH} characters", field=field
        )
    return text


def _event(
    event_type: str, flag: Flag, store: FlagStorePort, actor: User, time: TimePort
) -> OutboxEvent:
    item = store.get_item(flag.item_id)
    return OutboxEvent(
        event_type=event_type,
        payload={
            "flag_id": str(flag.id),
            "item_id": str(flag.item_id),
            "title": item.title if item else "",
            "flagger_id": str(flag.flagged_by),
            "assignee_id": str(flag.assigned_to) if flag.assigned_to else None,
            "actor_id": str(actor.id),
            "comment": flag.comment,
            "note": flag.resolution_note or "",
        },
        created_at=time.now_utc(),
    )


# --- Entry points ---


def run_create_flag(
    inp: CreateFlagInput,
    store: FlagStorePort,
    users: UserLookupPort,
    gate: GatePort,
    time: TimePort,
) -> FlagOutput:
    try:
        actor = _actor(users, inp.actor_id)
        _authorize(gate, actor, "create")
        if store.get_item(inp.item_id) is None:
            raise NotFound("Item not found", field="item_id")
        comment = _text(inp.comment, "comment", required=True)

        now = time.now_utc()
        flag = Flag(
            item_id=inp.item_id,
            flagged_by=actor.id,
            comment=comment or "",
            created_at=now,
            updated_at=now,
        )
        store.apply(ChangeSet(flags=[flag]))
    except ReviewError as e:
        return FlagOutput(flag=None, errors=_errors(e), success=False)

    logger.info("Flag %s raised on item %s by %s", flag.id, flag.item_id, actor.id)
    return FlagOutput(flag=flag, errors=[], success=True)


def run_assign_flag(
    inp: AssignFlagInput,
    store: FlagStorePort,
    users: UserLookupPort,
    gate: GatePort,
    time: TimePort,
) -> FlagOutput:
    try:
        actor = _actor(users, inp.actor_id)
        flag = _flag(store, inp.flag_id)
        _authorize(gate, actor, "assign", flag)
        target = _move(flag, "assign")

        assignee = users.get_by_id(inp.assignee_id)
        if assignee is None or not gate.is_reviewer_candidate(assignee):
            raise InvalidReviewer("Flags can only be assigned to active gurus", field="assignee_id")

        updated = flag.model_copy(
            update={"status": target, "assigned_to": assignee.id, "updated_at": time.now_utc()}
        )
        store.apply(
            ChangeSet(flags=[updated], events=[_event("flag_assigned", updated, store, actor, time)])
        )
    except ReviewError as e:
        return FlagOutput(flag=None, errors=_errors(e), success=False)

    logger.info("Flag %s assigned to %s", updated.id, assignee.id)
    return FlagOutput(flag=updated, errors=[], success=True)


def run_close_flag(
    inp: CloseFlagInput,
    store: FlagStorePort,
    users: UserLookupPort,
    gate: GatePort,
    time: TimePort,
) -> FlagOutput:
    if inp.action not in ("resolve", "dismiss", "archive"):
        err = ReviewValidationError(f"Unknown action '{inp.action}'", field="action")
        return FlagOutput(flag=None, errors=_errors(err), success=False)

    try:
        actor = _actor(users, inp.actor_id)
        flag = _flag(store, inp.flag_id)
        _authorize(gate, actor, inp.action, flag)
        target = _move(flag, inp.action)
        note = _text(inp.note, "note", required=inp.action == "resolve")

        now = time.now_utc()
        changes: dict[str, object] = {"status": target, "updated_at": now}
        if inp.action != "archive":
            changes.update(resolution_note=note, resolved_by=actor.id, resolved_at=now)
        updated = flag.model_copy(update=changes)

        events: list[OutboxEvent] = []
        if inp.action == "resolve":
            events.append(_event("flag_resolved", updated, store, actor, time))
        store.apply(ChangeSet(flags=[updated], events=events))
    except ReviewError as e:
        return FlagOutput(flag=None, errors=_errors(e), success=False)

    logger.info("Flag %s %s -> %s by %s", updated.id, flag.status, updated.status, actor.id)
    return FlagOutput(flag=updated, errors=[], success=True)


def run_list_flags(
    inp: ListFlagsInput,
    store: FlagStorePort,
    users: UserLookupPort,
    gate: GatePort,
) -> FlagListOutput:
    try:
        actor = _actor(users, inp.actor_id)
        if inp.mine:
            flags = store.list_flags(status=inp.status, assigned_to=actor.id, limit=inp.limit)
        else:
            _authorize(gate, actor, "list")
            flags = store.list_flags(status=inp.status, limit=inp.limit)
    except ReviewError as e:
        return FlagListOutput(flags=[], errors=_errors(e), success=False)
    return FlagListOutput(flags=flags, errors=[], success=True)
