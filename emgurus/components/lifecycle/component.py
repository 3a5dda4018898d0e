"""
Lifecycle component - review and publication state changes for content items.

Every operation runs its checks in the same order: load the item (404),
authorize the actor (403), consult the state machine (409), validate the
input (400). Only then is a single ChangeSet committed, holding the item,
any assignment changes and the outbox events for the notifications.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from emgurus.components.assignments import AssignmentManager
from emgurus.domain.entities import (
    ContentItem,
    ContentKind,
    OutboxEvent,
    ReviewAssignment,
    ReviewPhase,
    User,
)
from emgurus.domain.errors import (
    Forbidden,
    InvalidReviewer,
    InvalidStateTransition,
    NotFound,
    PayloadIncomplete,
    ReviewError,
    ReviewValidationError,
    Unauthenticated,
)
from emgurus.domain.payload import (
    apply_blog_updates,
    apply_exam_updates,
    missing_fields,
    sanitize_exam_updates,
)
from emgurus.domain.state import (
    ASSIGNMENT_OUTCOMES,
    TRANSITION_EVENTS,
    can_transition,
    transition,
)
from emgurus.ports.store import ChangeSet
from emgurus.rules.models import ReviewRules

from .models import (
    AnnotateInput,
    AssignInput,
    AssignOutput,
    BulkArchiveInput,
    BulkAssignInput,
    BulkOutput,
    CreateItemInput,
    EditItemInput,
    GetItemInput,
    GuruRejectInput,
    ItemOutput,
    LifecycleError,
    ListQueueInput,
    QueueOutput,
    ReviewerQueueInput,
    ReviewerQueueOutput,
    SaveAndApproveInput,
    TransitionInput,
)
from .ports import ClockPort, GatePort, ItemStorePort, UserLookupPort

logger = logging.getLogger(__name__)

# Actions that need nothing beyond an optional note.
SIMPLE_ACTIONS = ("submit", "request_changes", "reject", "publish", "archive", "revise")

KIND_LABELS = {"blog": "blog post", "exam_question": "exam question"}

# Type alias for all supported inputs
LifecycleInput = (
    CreateItemInput
    | EditItemInput
    | GetItemInput
    | TransitionInput
    | AssignInput
    | AnnotateInput
    | SaveAndApproveInput
    | GuruRejectInput
    | BulkAssignInput
    | BulkArchiveInput
    | ListQueueInput
    | ReviewerQueueInput
)


def _errors(e: ReviewError) -> list[LifecycleError]:
    return [LifecycleError(code=e.code, message=e.message, field=e.field)]


class LifecycleComponent:
    """Drives content items through draft, review, publication and archive."""

    def __init__(
        self,
        store: ItemStorePort,
        users: UserLookupPort,
        gate: GatePort,
        assignments: AssignmentManager,
        rules: ReviewRules,
        clock: ClockPort,
    ) -> None:
        self._store = store
        self._users = users
        self._gate = gate
        self._assignments = assignments
        self._rules = rules
        self._clock = clock

    def run(self, input_data: LifecycleInput) -> Any:
        """Main dispatcher - routes to the handler for the input type."""
        if isinstance(input_data, CreateItemInput):
            return self.run_create(input_data)
        elif isinstance(input_data, EditItemInput):
            return self.run_edit(input_data)
        elif isinstance(input_data, GetItemInput):
            return self.run_get(input_data)
        elif isinstance(input_data, TransitionInput):
            return self.run_transition(input_data)
        elif isinstance(input_data, AssignInput):
            return self.run_assign(input_data)
        elif isinstance(input_data, AnnotateInput):
            return self.run_annotate(input_data)
        elif isinstance(input_data, SaveAndApproveInput):
            return self.run_save_and_approve(input_data)
        elif isinstance(input_data, GuruRejectInput):
            return self.run_guru_reject(input_data)
        elif isinstance(input_data, BulkAssignInput):
            return self.run_bulk_assign(input_data)
        elif isinstance(input_data, BulkArchiveInput):
            return self.run_bulk_archive(input_data)
        elif isinstance(input_data, ListQueueInput):
            return self.run_list_queue(input_data)
        elif isinstance(input_data, ReviewerQueueInput):
            return self.run_reviewer_queue(input_data)
        raise TypeError(f"Unknown input type: {type(input_data)}")

    # --- run_* entry points ---

    def run_create(self, input_data: CreateItemInput) -> ItemOutput:
        try:
            item = self.create(input_data.actor_id, input_data.kind, input_data.fields)
        except ReviewError as e:
            return ItemOutput(item=None, errors=_errors(e), success=False)
        return ItemOutput(item=item, errors=[], success=True)

    def run_edit(self, input_data: EditItemInput) -> ItemOutput:
        try:
            item = self.edit(input_data.actor_id, input_data.item_id, input_data.fields)
        except ReviewError as e:
            return ItemOutput(item=None, errors=_errors(e), success=False)
        return ItemOutput(item=item, errors=[], success=True)

    def run_get(self, input_data: GetItemInput) -> ItemOutput:
        try:
            item = self.get(input_data.actor_id, input_data.item_id)
        except ReviewError as e:
            return ItemOutput(item=None, errors=_errors(e), success=False)
        return ItemOutput(item=item, errors=[], success=True)

    def run_transition(self, input_data: TransitionInput) -> ItemOutput:
        try:
            item = self.apply_action(
                input_data.actor_id, input_data.item_id, input_data.action, input_data.note
            )
        except ReviewError as e:
            return ItemOutput(item=None, errors=_errors(e), success=False)
        return ItemOutput(item=item, errors=[], success=True)

    def run_assign(self, input_data: AssignInput) -> AssignOutput:
        try:
            item, assignment = self.assign(
                input_data.actor_id,
                input_data.item_id,
                input_data.reviewer_id,
                input_data.note,
                supersede=input_data.supersede,
            )
        except ReviewError as e:
            return AssignOutput(item=None, assignment=None, errors=_errors(e), success=False)
        return AssignOutput(item=item, assignment=assignment, errors=[], success=True)

    def run_annotate(self, input_data: AnnotateInput) -> ItemOutput:
        try:
            item = self.annotate(
                input_data.actor_id,
                input_data.item_id,
                input_data.notes,
                is_featured=input_data.is_featured,
                is_editors_pick=input_data.is_editors_pick,
            )
        except ReviewError as e:
            return ItemOutput(item=None, errors=_errors(e), success=False)
        return ItemOutput(item=item, errors=[], success=True)

    def run_save_and_approve(self, input_data: SaveAndApproveInput) -> ItemOutput:
        try:
            item = self.save_and_approve(
                input_data.actor_id,
                input_data.assignment_id,
                input_data.question_id,
                input_data.updates,
            )
        except ReviewError as e:
            return ItemOutput(item=None, errors=_errors(e), success=False)
        return ItemOutput(item=item, errors=[], success=True)

    def run_guru_reject(self, input_data: GuruRejectInput) -> ItemOutput:
        try:
            item = self.guru_reject(
                input_data.actor_id,
                input_data.assignment_id,
                input_data.question_id,
                input_data.note,
            )
        except ReviewError as e:
            return ItemOutput(item=None, errors=_errors(e), success=False)
        return ItemOutput(item=item, errors=[], success=True)

    def run_bulk_assign(self, input_data: BulkAssignInput) -> BulkOutput:
        try:
            done, skipped = self.bulk_assign(
                input_data.actor_id, input_data.item_ids, input_data.reviewer_id, input_data.note
            )
        except ReviewError as e:
            return BulkOutput(done=[], skipped={}, errors=_errors(e), success=False)
        return BulkOutput(done=done, skipped=skipped, errors=[], success=True)

    def run_bulk_archive(self, input_data: BulkArchiveInput) -> BulkOutput:
        try:
            done, skipped = self.bulk_archive(input_data.actor_id, input_data.item_ids)
        except ReviewError as e:
            return BulkOutput(done=[], skipped={}, errors=_errors(e), success=False)
        return BulkOutput(done=done, skipped=skipped, errors=[], success=True)

    def run_list_queue(self, input_data: ListQueueInput) -> QueueOutput:
        try:
            items = self.list_queue(
                input_data.actor_id,
                kind=input_data.kind,
                phase=input_data.phase,
                limit=input_data.limit,
            )
        except ReviewError as e:
            return QueueOutput(items=[], errors=_errors(e), success=False)
        return QueueOutput(items=items, errors=[], success=True)

    def run_reviewer_queue(self, input_data: ReviewerQueueInput) -> ReviewerQueueOutput:
        try:
            actor = self._actor(input_data.actor_id)
            self._authorize(actor, "read_own_queue")
        except ReviewError as e:
            return ReviewerQueueOutput(entries=[], errors=_errors(e), success=False)

        entries = [
            e
            for e in self._assignments.reviewer_queue(actor.id, limit=self._rules.queue_limit)
            if e.item is not None and (input_data.kind is None or e.item.kind == input_data.kind)
        ]
        return ReviewerQueueOutput(entries=entries, errors=[], success=True)

    # --- operations ---

    def create(self, actor_id: UUID, kind: ContentKind, fields: dict[str, Any]) -> ContentItem:
        actor = self._actor(actor_id)
        self._authorize(actor, "create")
        if kind not in KIND_LABELS:
            raise ReviewValidationError(f"Unknown content kind '{kind}'", field="kind")

        now = self._clock.now_utc()
        item = self._apply_fields(
            ContentItem(kind=kind, author_id=actor.id, created_at=now, updated_at=now), fields
        )
        self._store.apply(ChangeSet(items=[item]))
        logger.info("Created %s draft %s for %s", kind, item.id, actor.id)
        return item

    def edit(self, actor_id: UUID, item_id: UUID, fields: dict[str, Any]) -> ContentItem:
        actor = self._actor(actor_id)
        item = self._item(item_id)
        self._authorize(actor, "edit", item)
        self._require_state(item, "edit")

        edited = self._apply_fields(item, fields)
        updated = transition(edited, "edit", actor.id, self._clock.now_utc())
        self._store.apply(ChangeSet(items=[updated]))
        return updated

    def get(self, actor_id: UUID | None, item_id: UUID) -> ContentItem:
        item = self._item(item_id)
        if item.state == "published":
            return item
        self._authorize(self._actor(actor_id), "read", item)
        return item

    def apply_action(
        self, actor_id: UUID, item_id: UUID, action: str, note: str | None = None
    ) -> ContentItem:
        """Run one of the note-only transitions (submit, publish, reject, ...)."""
        if action not in SIMPLE_ACTIONS:
            raise ReviewValidationError(f"Unknown action '{action}'", field="action")

        actor = self._actor(actor_id)
        item = self._item(item_id)
        self._authorize(actor, action, item)
        self._require_state(item, action)
        clean = self._clean_note(action, note)
        if action == "submit":
            self._require_complete(item)
        elif action == "publish":
            self._require_review(item, actor)

        return self._commit(item, action, actor, note=clean)

    def assign(
        self,
        actor_id: UUID,
        item_id: UUID,
        reviewer_id: UUID,
        note: str | None = None,
        *,
        supersede: bool = False,
    ) -> tuple[ContentItem, ReviewAssignment]:
        actor = self._actor(actor_id)
        item = self._item(item_id)
        self._authorize(actor, "assign", item)
        self._require_state(item, "assign")

        reviewer = self._reviewer(reviewer_id)
        if reviewer.id == item.author_id:
            raise InvalidReviewer("Authors cannot review their own submissions", field="reviewer_id")
        clean = self._clean_note("assign", note)

        updated = transition(item, "assign", actor.id, self._clock.now_utc(), reviewer_id=reviewer.id)
        assignment = self._assignments.assign(
            item,
            reviewer.id,
            actor.id,
            clean,
            supersede=supersede,
            item_update=updated,
            events=self._events("assign", updated, actor, clean),
        )
        return updated, assignment

    def annotate(
        self,
        actor_id: UUID,
        item_id: UUID,
        notes: str | None,
        *,
        is_featured: bool | None = None,
        is_editors_pick: bool | None = None,
    ) -> ContentItem:
        actor = self._actor(actor_id)
        item = self._item(item_id)
        self._authorize(actor, "annotate", item)
        self._require_state(item, "annotate")

        clean = self._clean_note("annotate", notes)
        annotations = {
            key: value
            for key, value in (("is_featured", is_featured), ("is_editors_pick", is_editors_pick))
            if value is not None
        }
        if clean is None and not annotations:
            raise ReviewValidationError("Nothing to record", field="notes")

        # A review only completes the reviewer's own assignment; admins annotating
        # on the side leave it open.
        closed = [
            a
            for a in self._assignments.close_pending(item.id, "completed")
            if a.reviewer_id == actor.id
        ]
        return self._commit(
            item, "annotate", actor, note=clean, annotations=annotations, closed=closed
        )

    def save_and_approve(
        self,
        actor_id: UUID,
        assignment_id: UUID,
        question_id: UUID,
        updates: dict[str, Any],
    ) -> ContentItem:
        actor = self._actor(actor_id)
        item = self._item(question_id)
        self._require_assignment(actor, assignment_id, item)
        if item.kind != "exam_question":
            raise ReviewValidationError("Not an exam question", field="question_id")

        edited = apply_exam_updates(
            item, sanitize_exam_updates(updates, self._rules.exam_editable_fields)
        )
        self._authorize(actor, "publish", edited)
        self._require_state(edited, "publish")
        self._require_review(edited, actor)
        self._require_complete(edited)
        return self._commit(edited, "publish", actor)

    def guru_reject(
        self,
        actor_id: UUID,
        assignment_id: UUID,
        question_id: UUID,
        note: str | None,
    ) -> ContentItem:
        actor = self._actor(actor_id)
        item = self._item(question_id)
        self._require_assignment(actor, assignment_id, item)
        self._authorize(actor, "reject", item)
        self._require_state(item, "reject")
        clean = self._clean_note("reject", note)
        return self._commit(item, "reject", actor, note=clean)

    def bulk_assign(
        self,
        actor_id: UUID,
        item_ids: list[UUID],
        reviewer_id: UUID,
        note: str | None = None,
    ) -> tuple[list[UUID], dict[UUID, str]]:
        actor = self._actor(actor_id)
        self._authorize(actor, "assign")
        self._reviewer(reviewer_id)

        done: list[UUID] = []
        skipped: dict[UUID, str] = {}
        for item_id in dict.fromkeys(item_ids):
            try:
                self.assign(actor_id, item_id, reviewer_id, note)
            except ReviewError as e:
                skipped[item_id] = e.code
            else:
                done.append(item_id)

        logger.info(
            "Bulk assign to %s: %d assigned, %d skipped", reviewer_id, len(done), len(skipped)
        )
        return done, skipped

    def bulk_archive(
        self, actor_id: UUID, item_ids: list[UUID]
    ) -> tuple[list[UUID], dict[UUID, str]]:
        actor = self._actor(actor_id)
        self._authorize(actor, "archive")

        done: list[UUID] = []
        skipped: dict[UUID, str] = {}
        for item_id in dict.fromkeys(item_ids):
            try:
                self.apply_action(actor_id, item_id, "archive")
            except ReviewError as e:
                skipped[item_id] = e.code
            else:
                done.append(item_id)
        return done, skipped

    def list_queue(
        self,
        actor_id: UUID,
        *,
        kind: ContentKind | None = None,
        phase: ReviewPhase | None = None,
        limit: int | None = None,
    ) -> list[ContentItem]:
        actor = self._actor(actor_id)
        self._authorize(actor, "queue")

        filters: dict[str, Any] = {"state": "in_review"}
        if phase is not None:
            filters["review_phase"] = phase
        if kind is not None:
            filters["kind"] = kind
        cap = self._rules.queue_limit
        return self._store.list_items(filters, limit=min(limit or cap, cap))

    # --- helpers ---

    def _actor(self, actor_id: UUID | None) -> User:
        actor = self._users.get_by_id(actor_id) if actor_id is not None else None
        if actor is None:
            raise Unauthenticated("Authentication required")
        return actor

    def _item(self, item_id: UUID) -> ContentItem:
        item = self._store.get_item(item_id)
        if item is None:
            raise NotFound("Item not found", field="item_id")
        return item

    def _reviewer(self, reviewer_id: UUID) -> User:
        reviewer = self._users.get_by_id(reviewer_id)
        if reviewer is None or not self._gate.is_reviewer_candidate(reviewer):
            raise InvalidReviewer("Reviewer must be an active guru", field="reviewer_id")
        return reviewer

    def _authorize(self, actor: User, action: str, item: ContentItem | None = None) -> None:
        decision = self._gate.authorize(actor, f"review:{action}", item)
        if decision:
            return
        if decision.reason == "unauthenticated":
            raise Unauthenticated("Authentication required")
        raise Forbidden(f"Not allowed to {action.replace('_', ' ')} this item")

    def _require_state(self, item: ContentItem, action: str) -> None:
        if not can_transition(item.state, action):  # type: ignore[arg-type]
            raise InvalidStateTransition(item.state, action)

    def _require_complete(self, item: ContentItem) -> None:
        missing = missing_fields(item, self._rules)
        if missing:
            raise PayloadIncomplete(f"Missing or too short: {', '.join(missing)}", field=missing[0])

    def _require_review(self, item: ContentItem, actor: User) -> None:
        """Publishing needs a completed review, or the pending reviewer publishing it."""
        if item.review_phase == "reviewed":
            return
        pending = self._store.get_pending_assignment(item.id)
        if pending is None or pending.reviewer_id != actor.id:
            raise InvalidStateTransition(item.queue_state, "publish")

    def _require_assignment(self, actor: User, assignment_id: UUID, item: ContentItem) -> None:
        assignment = self._store.get_assignment(assignment_id)
        if (
            assignment is None
            or assignment.status != "pending"
            or assignment.reviewer_id != actor.id
            or assignment.item_id != item.id
        ):
            raise Forbidden("Invalid assignment", field="assignment_id")

    def _clean_note(self, action: str, note: str | None) -> str | None:
        text = (note or "").strip()
        if not text:
            if action in self._rules.note_required_for:
                raise ReviewValidationError(
                    f"A note is required to {action.replace('_', ' ')}", field="note"
                )
            return None
        if len(text) > self._rules.max_note_length:
            raise ReviewValidationError(
                f"Note exceeds {self._rules.max_note_length} characters", field="note"
            )
        return text

    def _apply_fields(self, item: ContentItem, fields: dict[str, Any]) -> ContentItem:
        if item.kind == "exam_question":
            return apply_exam_updates(
                item, sanitize_exam_updates(fields, self._rules.exam_editable_fields)
            )
        return apply_blog_updates(item, fields, self._rules.blog_editable_fields)

    def _events(
        self, action: str, item: ContentItem, actor: User, note: str | None
    ) -> list[OutboxEvent]:
        event_type = TRANSITION_EVENTS.get(action)  # type: ignore[call-overload]
        if event_type is None:
            return []
        payload = {
            "item_id": str(item.id),
            "kind": item.kind,
            "kind_label": KIND_LABELS[item.kind],
            "title": item.title,
            "author_id": str(item.author_id),
            "reviewer_id": str(item.reviewer_id) if item.reviewer_id else None,
            "actor_id": str(actor.id),
            "note": note or "",
        }
        return [
            OutboxEvent(event_type=event_type, payload=payload, created_at=self._clock.now_utc())
        ]

    def _commit(
        self,
        item: ContentItem,
        action: str,
        actor: User,
        *,
        note: str | None = None,
        annotations: dict[str, Any] | None = None,
        closed: list[ReviewAssignment] | None = None,
    ) -> ContentItem:
        updated = transition(
            item,
            action,  # type: ignore[arg-type]
            actor.id,
            self._clock.now_utc(),
            note=note,
            annotations=annotations,
        )
        if closed is None:
            outcome = ASSIGNMENT_OUTCOMES.get(action)  # type: ignore[call-overload]
            closed = self._assignments.close_pending(item.id, outcome) if outcome else []
        if updated.state == "in_review" and any(a.status == "completed" for a in closed):
            updated = updated.model_copy(update={"review_phase": "reviewed"})

        self._store.apply(
            ChangeSet(
                items=[updated],
                assignment_updates=closed,
                events=self._events(action, updated, actor, note),
            )
        )
        logger.info(
            "Item %s %s: %s -> %s by %s",
            item.id,
            action,
            item.queue_state,
            updated.queue_state,
            actor.id,
        )
        return updated
