"""
Assignment manager unit tests.

Covers pending-uniqueness, supersede, completion idempotency and the
reviewer queue.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from emgurus.adapters.clock import FixedClock
from emgurus.adapters.memory import InMemoryReviewStore
from emgurus.components.assignments import AssignmentManager, CompleteInput
from emgurus.domain.entities import ContentItem
from emgurus.domain.errors import AlreadyAssigned, InvalidStateTransition, NotFound

# --- Fixtures ---


@pytest.fixture
def store() -> InMemoryReviewStore:
    return InMemoryReviewStore()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def manager(store: InMemoryReviewStore, clock: FixedClock) -> AssignmentManager:
    return AssignmentManager(store, clock)


@pytest.fixture
def item(store: InMemoryReviewStore) -> ContentItem:
    """A submitted blog waiting for a reviewer."""
    it = ContentItem(
        kind="blog",
        author_id=uuid4(),
        title="Sepsis bundles",
        body="Early antibiotics and fluids save lives.",
        state="in_review",
        review_phase="unassigned",
    )
    store.add_item(it)
    return it


def _assigned(item: ContentItem, reviewer_id) -> ContentItem:
    return item.model_copy(
        update={
            "review_phase": "assigned",
            "reviewer_id": reviewer_id,
            "version": item.version + 1,
        }
    )


# --- Assign ---


class TestAssign:
    def test_creates_pending_assignment(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        reviewer = uuid4()
        admin = uuid4()

        assignment = manager.assign(item, reviewer, admin, note="please check dosing")

        assert assignment.status == "pending"
        assert assignment.reviewer_id == reviewer
        assert assignment.assigned_by == admin
        assert store.get_pending_assignment(item.id) == assignment

    def test_item_update_committed_with_assignment(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        reviewer = uuid4()
        manager.assign(item, reviewer, uuid4(), item_update=_assigned(item, reviewer))

        stored = store.get_item(item.id)
        assert stored is not None
        assert stored.review_phase == "assigned"
        assert stored.reviewer_id == reviewer

    def test_second_assign_rejected(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        first = manager.assign(item, uuid4(), uuid4())

        with pytest.raises(AlreadyAssigned):
            manager.assign(item, uuid4(), uuid4())

        pending = store.list_assignments(item_id=item.id, status="pending")
        assert [a.id for a in pending] == [first.id]

    def test_supersede_replaces_pending(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        first = manager.assign(item, uuid4(), uuid4())
        second = manager.assign(item, uuid4(), uuid4(), supersede=True)

        old = store.get_assignment(first.id)
        assert old is not None
        assert old.status == "superseded"
        assert old.completed_at is not None
        assert store.get_pending_assignment(item.id) == second

    def test_rejected_assign_writes_nothing(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        manager.assign(item, uuid4(), uuid4())
        events_before = dict(store.events)

        with pytest.raises(AlreadyAssigned):
            manager.assign(item, uuid4(), uuid4(), item_update=_assigned(item, uuid4()))

        assert store.events == events_before
        assert store.get_item(item.id) == item


# --- Complete ---


class TestComplete:
    def test_complete_closes_assignment(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        assignment = manager.assign(item, uuid4(), uuid4())

        closed = manager.complete(assignment.id, "completed")

        assert closed.status == "completed"
        assert store.get_pending_assignment(item.id) is None

    def test_complete_is_idempotent(
        self, manager: AssignmentManager, item: ContentItem
    ) -> None:
        assignment = manager.assign(item, uuid4(), uuid4())

        first = manager.complete(assignment.id, "completed")
        second = manager.complete(assignment.id, "completed")

        assert first == second

    def test_closed_assignment_does_not_reopen(
        self, manager: AssignmentManager, item: ContentItem
    ) -> None:
        assignment = manager.assign(item, uuid4(), uuid4())
        manager.complete(assignment.id, "completed")

        with pytest.raises(InvalidStateTransition):
            manager.complete(assignment.id, "rejected")

    def test_unknown_assignment(self, manager: AssignmentManager) -> None:
        with pytest.raises(NotFound):
            manager.complete(uuid4(), "completed")

    def test_withdrawal_returns_item_to_unassigned(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        reviewer = uuid4()
        assignment = manager.assign(
            item, reviewer, uuid4(), item_update=_assigned(item, reviewer)
        )

        manager.complete(assignment.id, "rejected")

        stored = store.get_item(item.id)
        assert stored is not None
        assert stored.review_phase == "unassigned"
        assert stored.reviewer_id is None

    def test_completed_review_marks_item_reviewed(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        reviewer = uuid4()
        assignment = manager.assign(
            item, reviewer, uuid4(), item_update=_assigned(item, reviewer)
        )

        manager.complete(assignment.id, "completed")

        stored = store.get_item(item.id)
        assert stored is not None
        assert stored.review_phase == "reviewed"
        assert stored.reviewer_id == reviewer
        assert store.get_pending_assignment(item.id) is None

    def test_run_complete_reports_errors(self, manager: AssignmentManager) -> None:
        result = manager.run_complete(CompleteInput(assignment_id=uuid4(), outcome="completed"))

        assert result.success is False
        assert result.assignment is None
        assert result.errors[0].code == "not_found"

    def test_run_complete_rejects_pending_outcome(
        self, manager: AssignmentManager, item: ContentItem
    ) -> None:
        assignment = manager.assign(item, uuid4(), uuid4())

        result = manager.run_complete(CompleteInput(assignment_id=assignment.id, outcome="pending"))

        assert result.success is False
        assert result.errors[0].field == "outcome"


# --- Close pending ---


class TestClosePending:
    def test_returns_update_without_applying(
        self, manager: AssignmentManager, store: InMemoryReviewStore, item: ContentItem
    ) -> None:
        assignment = manager.assign(item, uuid4(), uuid4())

        closed = manager.close_pending(item.id, "completed")

        assert [a.id for a in closed] == [assignment.id]
        assert closed[0].status == "completed"
        # Caller commits it as part of its own change set.
        assert store.get_pending_assignment(item.id) is not None

    def test_no_pending(self, manager: AssignmentManager, item: ContentItem) -> None:
        assert manager.close_pending(item.id, "completed") == []


# --- Queue ---


class TestReviewerQueue:
    def test_lists_pending_only(
        self,
        manager: AssignmentManager,
        store: InMemoryReviewStore,
        clock: FixedClock,
        item: ContentItem,
    ) -> None:
        reviewer = uuid4()
        other = ContentItem(kind="blog", author_id=uuid4(), state="in_review")
        store.add_item(other)

        done = manager.assign(item, reviewer, uuid4())
        manager.complete(done.id, "completed")
        clock.advance(minutes=5)
        open_ = manager.assign(other, reviewer, uuid4())

        queue = manager.reviewer_queue(reviewer)

        assert [e.assignment.id for e in queue] == [open_.id]
        assert queue[0].item == other

    def test_history_includes_closed(
        self, manager: AssignmentManager, item: ContentItem
    ) -> None:
        first = manager.assign(item, uuid4(), uuid4())
        manager.assign(item, uuid4(), uuid4(), supersede=True)

        history = manager.history(item.id)

        assert len(history) == 2
        assert first.id in {a.id for a in history}
