import threading
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from emgurus.adapters.sqlite.migrator import SQLiteMigrator
from emgurus.adapters.sqlite.repos import (
    SQLiteNotificationRepo,
    SQLiteReviewStore,
    SQLiteUserRepo,
)
from emgurus.domain.entities import (
    ContentItem,
    Flag,
    Notification,
    NotificationSettings,
    OutboxEvent,
    ReviewAssignment,
    ReviewNote,
    User,
)
from emgurus.domain.errors import AlreadyAssigned, ConcurrentModification, UpstreamServiceError
from emgurus.ports.store import ChangeSet


@pytest.fixture
def store(db_path) -> SQLiteReviewStore:
    return SQLiteReviewStore(db_path)


@pytest.fixture
def users(db_path) -> SQLiteUserRepo:
    return SQLiteUserRepo(db_path)


@pytest.fixture
def item(store) -> ContentItem:
    item = ContentItem(
        kind="exam_question",
        author_id=uuid4(),
        title="Which rhythm is shockable?",
        payload={"options": {"a": "VF", "b": "PEA"}, "correct_answer": "a"},
        state="in_review",
        review_phase="unassigned",
    )
    store.add_item(item)
    return item


def test_migrations_are_applied_once(db_path):
    assert SQLiteMigrator(db_path, "migrations").run_migrations() == []


def test_item_round_trip(store, item):
    fetched = store.get_item(item.id)

    assert fetched == item
    assert fetched.payload["options"]["a"] == "VF"


def test_notes_are_appended(store, item):
    admin = uuid4()
    first = item.model_copy(
        update={
            "version": item.version + 1,
            "review_notes": [ReviewNote(author_id=admin, action="annotate", note="check refs")],
        }
    )
    store.apply(ChangeSet(items=[first]))
    second = first.model_copy(
        update={
            "version": first.version + 1,
            "review_notes": [
                *first.review_notes,
                ReviewNote(author_id=admin, action="annotate", note="fine now"),
            ],
        }
    )
    store.apply(ChangeSet(items=[second]))

    notes = store.get_item(item.id).review_notes
    assert [n.note for n in notes] == ["check refs", "fine now"]


def test_stale_write_rejected_and_nothing_written(store, item):
    fresh = item.model_copy(update={"title": "Fresh", "version": item.version + 1})
    store.apply(ChangeSet(items=[fresh]))

    stale = item.model_copy(update={"title": "Stale", "version": item.version + 1})
    event = OutboxEvent(event_type="item_published")
    with pytest.raises(ConcurrentModification):
        store.apply(ChangeSet(items=[stale], events=[event]))

    assert store.get_item(item.id).title == "Fresh"
    assert store.list_due(max_attempts=5) == []


def test_database_enforces_single_pending_assignment(store, item):
    first = ReviewAssignment(item_id=item.id, reviewer_id=uuid4(), assigned_by=uuid4())
    store.apply(ChangeSet(new_assignments=[first]))

    second = ReviewAssignment(item_id=item.id, reviewer_id=uuid4(), assigned_by=uuid4())
    with pytest.raises(AlreadyAssigned):
        store.apply(ChangeSet(new_assignments=[second]))

    assert store.get_pending_assignment(item.id) == first


def test_superseding_in_one_changeset(store, item):
    first = ReviewAssignment(item_id=item.id, reviewer_id=uuid4(), assigned_by=uuid4())
    store.apply(ChangeSet(new_assignments=[first]))

    closed = first.model_copy(update={"status": "superseded"})
    second = ReviewAssignment(item_id=item.id, reviewer_id=uuid4(), assigned_by=uuid4())
    store.apply(ChangeSet(new_assignments=[second], assignment_updates=[closed]))

    history = store.list_assignments(item_id=item.id)
    assert {a.status for a in history} == {"pending", "superseded"}
    assert store.get_pending_assignment(item.id).id == second.id


def test_list_items_filters(store, item):
    blog = ContentItem(kind="blog", author_id=uuid4(), title="Draft")
    store.add_item(blog)

    queue = store.list_items({"state": "in_review", "review_phase": "unassigned"})
    drafts = store.list_items({"kind": "blog", "author_id": blog.author_id})

    assert [i.id for i in queue] == [item.id]
    assert [i.id for i in drafts] == [blog.id]


def test_flags_upsert_and_filter(store, item):
    guru = uuid4()
    flag = Flag(item_id=item.id, flagged_by=uuid4(), comment="Wrong key")
    store.apply(ChangeSet(flags=[flag]))
    store.apply(
        ChangeSet(flags=[flag.model_copy(update={"status": "in_review", "assigned_to": guru})])
    )

    assert store.get_flag(flag.id).status == "in_review"
    assert [f.id for f in store.list_flags(assigned_to=guru)] == [flag.id]
    assert store.list_flags(status="open") == []


def test_outbox_due_and_retry(store):
    event = OutboxEvent(event_type="item_submitted", payload={"title": "X"})
    store.apply(ChangeSet(events=[event]))
    assert [e.id for e in store.list_due(max_attempts=3)] == [event.id]

    store.save_event(event.model_copy(update={"status": "failed", "attempts": 3}))
    assert store.list_due(max_attempts=3) == []

    store.save_event(event.model_copy(update={"status": "failed", "attempts": 1}))
    assert store.list_due(max_attempts=3)[0].attempts == 1


def test_claimed_events_are_not_claimed_twice_until_the_lease_expires(store):
    now = datetime(2025, 1, 15, 9, 0, tzinfo=UTC)
    first, second = (
        OutboxEvent(event_type="item_submitted", created_at=now - timedelta(minutes=2 - i))
        for i in range(2)
    )
    store.apply(ChangeSet(events=[first, second]))

    claimed = store.claim_due(3, 1, now, lease_seconds=60)
    assert [e.id for e in claimed] == [first.id]
    assert claimed[0].status == "processing"
    assert claimed[0].claimed_at == now

    assert [e.id for e in store.claim_due(3, 10, now, lease_seconds=60)] == [second.id]
    assert store.claim_due(3, 10, now + timedelta(seconds=30), lease_seconds=60) == []
    assert store.list_due(max_attempts=3) == []

    later = now + timedelta(seconds=61)
    reclaimed = store.claim_due(3, 10, later, lease_seconds=60)
    assert {e.id for e in reclaimed} == {first.id, second.id}
    assert {e.claimed_at for e in reclaimed} == {later}


class TestUsers:
    def test_roles_and_settings_round_trip(self, users):
        settings = NotificationSettings(channels={"email": False}, categories={"exams": True})
        user = users.save(
            User(email="Guru@Example.com", roles=["user", "guru"], notification_settings=settings)
        )

        fetched = users.get_by_id(user.id)

        assert sorted(fetched.roles) == ["guru", "user"]
        assert fetched.notification_settings == settings

    def test_email_lookup_is_case_insensitive(self, users):
        user = users.save(User(email="Guru@Example.com", roles=["guru"]))
        assert users.get_by_email("guru@example.com").id == user.id

    def test_role_changes_replace(self, users):
        user = users.save(User(email="a@example.com", roles=["guru"]))
        users.save(user.model_copy(update={"roles": ["user"]}))

        assert users.list_ids_by_role("guru") == []
        assert users.list_ids_by_role("user") == [user.id]

    def test_get_many(self, users):
        a = users.save(User(email="a@example.com"))
        b = users.save(User(email="b@example.com"))
        assert {u.id for u in users.get_many([a.id, b.id, uuid4()])} == {a.id, b.id}
        assert users.get_many([]) == []


class TestNotifications:
    def test_mark_read_scoped_to_owner(self, db_path, clock):
        repo = SQLiteNotificationRepo(db_path)
        owner = uuid4()
        note = Notification(user_id=owner, type="review_published", title="Live", data={"x": 1})
        assert repo.insert_many([note]) == 1

        assert repo.mark_read(note.id, uuid4(), clock.now_utc()) is False
        assert repo.mark_read(note.id, owner, clock.now_utc()) is True

        listed = repo.list_for_user(owner)
        assert listed[0].read_at == clock.now_utc()
        assert listed[0].data == {"x": 1}
        assert repo.list_for_user(owner, unread_only=True) == []


def test_unreachable_database_is_upstream_error(tmp_path):
    store = SQLiteReviewStore(str(tmp_path / "missing" / "db.sqlite"))
    with pytest.raises(UpstreamServiceError):
        store.get_item(uuid4())


def test_concurrent_assign_has_one_winner(sqlite_ctx, make_user):
    admin = make_user(sqlite_ctx, "admin@example.com", "admin")
    gurus = [make_user(sqlite_ctx, f"guru{i}@example.com", "guru") for i in range(2)]
    item = ContentItem(
        kind="blog",
        author_id=uuid4(),
        title="Airway",
        body="b" * 40,
        state="in_review",
        review_phase="unassigned",
    )
    sqlite_ctx.store.add_item(item)

    barrier = threading.Barrier(2)
    codes: list[str] = []
    lock = threading.Lock()

    def attempt(reviewer: User) -> None:
        barrier.wait()
        try:
            sqlite_ctx.lifecycle.assign(admin.id, item.id, reviewer.id)
            code = "ok"
        except (AlreadyAssigned, ConcurrentModification) as e:
            code = e.code
        with lock:
            codes.append(code)

    threads = [threading.Thread(target=attempt, args=(g,)) for g in gurus]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(codes) == ["already_assigned", "ok"]
    assert len(sqlite_ctx.store.list_assignments(item_id=item.id, status="pending")) == 1
