"""
HTTP-level tests for the review API.

Runs the real routers against an in-memory ServiceContext; outbox drains
run as background tasks, which TestClient executes before returning.
"""

from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from emgurus.api.auth_utils import create_access_token
from emgurus.api.deps import Settings, get_context, get_settings
from emgurus.api.main import app
from emgurus.app_shell.context import ServiceContext
from emgurus.domain.entities import User

SECRET = "test-secret"


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.setenv("EMG_JWT_SECRET", SECRET)
    monkeypatch.setenv("EMG_DATA_DIR", str(tmp_path))
    return Settings()


@pytest.fixture
def client(mem_ctx: ServiceContext, settings: Settings):
    app.dependency_overrides[get_context] = lambda: mem_ctx
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin(mem_ctx, make_user) -> User:
    return make_user(mem_ctx, "admin@example.com", "admin")


@pytest.fixture
def guru(mem_ctx, make_user) -> User:
    return make_user(mem_ctx, "guru@example.com", "guru")


@pytest.fixture
def author(mem_ctx, make_user) -> User:
    return make_user(mem_ctx, "author@example.com", "user")


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)}, SECRET)}"}


def _submitted_blog(client: TestClient, author: User) -> str:
    created = client.post(
        "/blogs",
        json={"title": "Sepsis in 2025", "body": "Early antibiotics matter. " * 3},
        headers=auth(author),
    )
    assert created.status_code == 201
    item_id = created.json()["id"]
    assert client.post(f"/blogs/{item_id}/submit", headers=auth(author)).status_code == 200
    return item_id


def _submitted_question(client: TestClient, author: User) -> str:
    created = client.post(
        "/exams",
        json={
            "question_text": "First-line treatment for anaphylaxis?",
            "option_a": "IM adrenaline",
            "option_b": "IV hydrocortisone",
            "correct_answer": "a",
            "topic": "Allergy",
        },
        headers=auth(author),
    )
    assert created.status_code == 201
    item_id = created.json()["id"]
    assert client.post(f"/exams/{item_id}/submit", headers=auth(author)).status_code == 200
    return item_id


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


class TestAuth:
    def test_missing_token(self, client):
        response = client.post("/blogs", json={"title": "x"})
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "unauthenticated"

    def test_bad_token(self, client):
        response = client.post("/blogs", json={}, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_unknown_subject(self, client):
        ghost = User(email="ghost@example.com")
        assert client.post("/blogs", json={}, headers=auth(ghost)).status_code == 401

    def test_roles_read_from_store_each_request(self, client, mem_ctx, author):
        assert client.get("/blogs/queue", headers=auth(author)).status_code == 403

        mem_ctx.users.save(author.model_copy(update={"roles": ["user", "admin"]}))

        assert client.get("/blogs/queue", headers=auth(author)).status_code == 200


class TestBlogFlow:
    def test_submit_assign_review_publish(
        self, client, mem_ctx, dev_email, admin, guru, author
    ):
        item_id = _submitted_blog(client, author)
        assert "admin@example.com" in dev_email.get_last_email().recipients

        queue = client.get("/blogs/queue?phase=unassigned", headers=auth(admin)).json()
        assert [i["id"] for i in queue] == [item_id]

        assigned = client.post(
            f"/blogs/{item_id}/assign",
            json={"reviewer_id": str(guru.id), "note": "Please check dosing"},
            headers=auth(admin),
        )
        assert assigned.status_code == 200
        assert assigned.json()["item"]["queue_state"] == "in_review_assigned"
        assert dev_email.get_last_email().recipients == ("guru@example.com",)

        mine = client.get("/assignments/mine", headers=auth(guru)).json()
        assert [e["item"]["id"] for e in mine] == [item_id]

        reviewed = client.post(
            f"/blogs/{item_id}/review",
            json={"notes": "Solid", "is_featured": True},
            headers=auth(guru),
        )
        assert reviewed.status_code == 200
        assert reviewed.json()["is_featured"] is True
        assert reviewed.json()["queue_state"] == "in_review_reviewed"
        ready = client.get("/blogs/queue?phase=reviewed", headers=auth(admin)).json()
        assert [i["id"] for i in ready] == [item_id]

        published = client.post(f"/blogs/{item_id}/publish", headers=auth(admin))
        assert published.status_code == 200
        assert published.json()["status"] == "published"
        assert dev_email.get_last_email().recipients == ("author@example.com",)

        public = client.get(f"/blogs/{item_id}")
        assert public.status_code == 200
        assert public.json()["review_notes"][0]["note"] == "Please check dosing"

    def test_submit_returns_in_review(self, client, author):
        created = client.post(
            "/blogs", json={"title": "Burns", "body": "Parkland formula " * 3}, headers=auth(author)
        ).json()

        response = client.post(f"/blogs/{created['id']}/submit", headers=auth(author))

        assert response.json()["status"] == "in_review"

    def test_incomplete_draft_cannot_submit(self, client, author):
        created = client.post("/blogs", json={"title": "Hi"}, headers=auth(author)).json()

        response = client.post(f"/blogs/{created['id']}/submit", headers=auth(author))

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "payload_incomplete"

    def test_author_cannot_publish(self, client, author):
        item_id = _submitted_blog(client, author)

        response = client.post(f"/blogs/{item_id}/publish", headers=auth(author))

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "not_authorized"

    def test_admin_cannot_publish_unreviewed(self, client, admin, guru, author):
        item_id = _submitted_blog(client, author)

        unassigned = client.post(f"/blogs/{item_id}/publish", headers=auth(admin))
        assert unassigned.status_code == 409
        assert unassigned.json()["detail"]["error"] == "invalid_state"

        client.post(f"/blogs/{item_id}/assign", json={"reviewer_id": str(guru.id)}, headers=auth(admin))
        pending = client.post(f"/blogs/{item_id}/publish", headers=auth(admin))
        assert pending.status_code == 409

        item = client.get(f"/blogs/{item_id}", headers=auth(admin)).json()
        assert item["status"] == "in_review"

    def test_reject_requires_note(self, client, admin, author):
        item_id = _submitted_blog(client, author)

        response = client.post(f"/blogs/{item_id}/reject", json={}, headers=auth(admin))

        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "note"

    def test_request_changes_returns_to_draft(self, client, dev_email, admin, author):
        item_id = _submitted_blog(client, author)

        response = client.post(
            f"/blogs/{item_id}/request-changes", json={"note": "Add refs"}, headers=auth(admin)
        )

        assert response.json()["status"] == "draft"
        assert "Add refs" in dev_email.get_last_email().body_html

    def test_second_assign_conflicts_unless_superseding(self, client, mem_ctx, make_user, admin, guru, author):
        other = make_user(mem_ctx, "guru2@example.com", "guru")
        item_id = _submitted_blog(client, author)
        client.post(f"/blogs/{item_id}/assign", json={"reviewer_id": str(guru.id)}, headers=auth(admin))

        clash = client.post(
            f"/blogs/{item_id}/assign", json={"reviewer_id": str(other.id)}, headers=auth(admin)
        )
        assert clash.status_code == 409
        assert clash.json()["detail"]["error"] == "already_assigned"

        swap = client.post(
            f"/blogs/{item_id}/assign",
            json={"reviewer_id": str(other.id), "supersede": True},
            headers=auth(admin),
        )
        assert swap.status_code == 200
        assert swap.json()["item"]["reviewer_id"] == str(other.id)

    def test_withdraw_returns_item_to_unassigned(self, client, admin, guru, author):
        item_id = _submitted_blog(client, author)
        assignment = client.post(
            f"/blogs/{item_id}/assign", json={"reviewer_id": str(guru.id)}, headers=auth(admin)
        ).json()["assignment"]

        forbidden = client.post(
            f"/assignments/{assignment['id']}/complete",
            json={"outcome": "rejected"},
            headers=auth(guru),
        )
        assert forbidden.status_code == 403

        closed = client.post(
            f"/assignments/{assignment['id']}/complete",
            json={"outcome": "rejected"},
            headers=auth(admin),
        )
        assert closed.status_code == 200
        assert closed.json()["status"] == "rejected"
        item = client.get(f"/blogs/{item_id}", headers=auth(admin)).json()
        assert item["queue_state"] == "in_review_unassigned"

    def test_drafts_are_private(self, client, author, make_user, mem_ctx):
        stranger = make_user(mem_ctx, "stranger@example.com", "user")
        created = client.post("/blogs", json={"title": "Secret"}, headers=auth(author)).json()

        assert client.get(f"/blogs/{created['id']}").status_code == 401
        assert client.get(f"/blogs/{created['id']}", headers=auth(stranger)).status_code == 403

    def test_exam_id_is_not_a_blog(self, client, author):
        question_id = _submitted_question(client, author)
        assert client.get(f"/blogs/{question_id}", headers=auth(author)).status_code == 404

    def test_unknown_item(self, client, author):
        response = client.post(f"/blogs/{uuid4()}/submit", headers=auth(author))
        assert response.status_code == 404


class TestExamReview:
    def test_curate_then_save_and_approve(self, client, dev_email, admin, guru, author):
        question_id = _submitted_question(client, author)

        bulk = client.post(
            "/exams-admin-curate/assign",
            json={"question_ids": [question_id, str(uuid4())], "reviewer_id": str(guru.id)},
            headers=auth(admin),
        ).json()
        assert bulk["done"] == [question_id]
        assert list(bulk["skipped"].values()) == ["not_found"]

        queue = client.get("/exams-guru-review/queue", headers=auth(guru)).json()
        assignment_id = queue[0]["assignment"]["id"]
        detail = client.get(f"/exams-guru-review/item/{question_id}", headers=auth(guru)).json()
        assert detail["question_fields"]["option_a"] == "IM adrenaline"

        approved = client.post(
            "/exams-guru-review/save-and-approve",
            json={
                "assignment_id": assignment_id,
                "question_id": question_id,
                "updates": {"explanation": "Adrenaline first", "status": "draft"},
            },
            headers=auth(guru),
        )
        assert approved.status_code == 200
        assert approved.json() == {"question_id": question_id, "status": "published"}
        assert dev_email.get_last_email().recipients == ("author@example.com",)
        assert client.get("/exams-guru-review/queue", headers=auth(guru)).json() == []

    def test_wrong_assignment_is_forbidden(self, client, admin, guru, author):
        question_id = _submitted_question(client, author)
        client.post(
            "/exams-admin-curate/assign",
            json={"question_ids": [question_id], "reviewer_id": str(guru.id)},
            headers=auth(admin),
        )

        response = client.post(
            "/exams-guru-review/reject",
            json={"assignment_id": str(uuid4()), "question_id": question_id, "note": "no"},
            headers=auth(guru),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["field"] == "assignment_id"

    def test_guru_reject_archives(self, client, admin, guru, author):
        question_id = _submitted_question(client, author)
        client.post(
            "/exams-admin-curate/assign",
            json={"question_ids": [question_id], "reviewer_id": str(guru.id)},
            headers=auth(admin),
        )
        assignment_id = client.get("/exams-guru-review/queue", headers=auth(guru)).json()[0][
            "assignment"
        ]["id"]

        response = client.post(
            "/exams-guru-review/reject",
            json={"assignment_id": assignment_id, "question_id": question_id, "note": "Duplicate"},
            headers=auth(guru),
        )

        assert response.json()["status"] == "archived"

    def test_reject_revise_edit_resubmit(self, client, admin, guru, author):
        question_id = _submitted_question(client, author)
        client.post(
            "/exams-admin-curate/assign",
            json={"question_ids": [question_id], "reviewer_id": str(guru.id)},
            headers=auth(admin),
        )

        rejected = client.post(
            f"/exams/{question_id}/reject", json={"note": "Stem is ambiguous"}, headers=auth(guru)
        )
        assert rejected.status_code == 200
        assert rejected.json()["status"] == "archived"

        revised = client.post(f"/exams/{question_id}/revise", headers=auth(author))
        assert revised.json()["status"] == "draft"
        assert revised.json()["reviewer_id"] is None

        stem = "First-line treatment for adult anaphylaxis?"
        edited = client.put(
            f"/exams/{question_id}", json={"question_text": stem}, headers=auth(author)
        )
        assert edited.status_code == 200
        assert edited.json()["question_fields"]["question_text"] == stem

        resubmitted = client.post(f"/exams/{question_id}/submit", headers=auth(author))
        assert resubmitted.json()["queue_state"] == "in_review_unassigned"
        assert [n["note"] for n in resubmitted.json()["review_notes"]] == ["Stem is ambiguous"]

    def test_admin_question_transitions(self, client, admin, author):
        question_id = _submitted_question(client, author)

        unreviewed = client.post(f"/exams/{question_id}/publish", headers=auth(admin))
        assert unreviewed.status_code == 409
        assert unreviewed.json()["detail"]["error"] == "invalid_state"

        changes = client.post(
            f"/exams/{question_id}/request-changes",
            json={"note": "Add a reference"},
            headers=auth(admin),
        )
        assert changes.json()["status"] == "draft"

        archived = client.post(f"/exams/{question_id}/archive", headers=auth(admin))
        assert archived.json()["status"] == "archived"

    def test_assigned_guru_publishes_question(self, client, admin, guru, author):
        question_id = _submitted_question(client, author)
        client.post(
            "/exams-admin-curate/assign",
            json={"question_ids": [question_id], "reviewer_id": str(guru.id)},
            headers=auth(admin),
        )

        published = client.post(f"/exams/{question_id}/publish", headers=auth(guru))

        assert published.status_code == 200
        assert published.json()["status"] == "published"
        assert client.get("/exams-guru-review/queue", headers=auth(guru)).json() == []

    def test_blog_id_is_not_a_question(self, client, admin, author):
        blog_id = _submitted_blog(client, author)
        assert client.post(f"/exams/{blog_id}/archive", headers=auth(admin)).status_code == 404

    def test_bulk_archive(self, client, admin, author):
        question_id = _submitted_question(client, author)

        response = client.post(
            "/exams-admin-curate/archive", json={"question_ids": [question_id]}, headers=auth(admin)
        )

        assert response.json()["done"] == [question_id]

    def test_curation_is_admin_only(self, client, guru, author):
        question_id = _submitted_question(client, author)

        response = client.post(
            "/exams-admin-curate/archive", json={"question_ids": [question_id]}, headers=auth(guru)
        )

        assert response.status_code == 403


class TestFlags:
    def test_flag_lifecycle(self, client, dev_email, admin, guru, author):
        question_id = _submitted_question(client, author)

        flag = client.post(
            "/flags", json={"item_id": question_id, "comment": "Key is wrong"}, headers=auth(author)
        )
        assert flag.status_code == 201
        flag_id = flag.json()["id"]

        listed = client.get("/flags?status=open", headers=auth(admin)).json()
        assert [f["id"] for f in listed] == [flag_id]
        assert client.get("/flags", headers=auth(author)).status_code == 403

        assigned = client.post(
            f"/flags/{flag_id}/assign", json={"assignee_id": str(guru.id)}, headers=auth(admin)
        )
        assert assigned.json()["status"] == "in_review"
        assert [f["id"] for f in client.get("/flags?mine=true", headers=auth(guru)).json()] == [
            flag_id
        ]

        resolved = client.post(
            f"/flags/{flag_id}/resolve", json={"note": "Key corrected"}, headers=auth(guru)
        )
        assert resolved.json()["status"] == "resolved"
        assert dev_email.get_last_email().recipients == ("author@example.com",)

        archived = client.post(f"/flags/{flag_id}/archive", headers=auth(admin))
        assert archived.json()["status"] == "archived"


class TestNotifications:
    def test_inbox_and_mark_read(self, client, admin, author):
        _submitted_blog(client, author)

        inbox = client.get("/notifications", headers=auth(admin)).json()
        assert inbox["unread"] == 1
        note_id = inbox["notifications"][0]["id"]

        assert client.post(f"/notifications/{note_id}/read", headers=auth(admin)).status_code == 200
        assert client.get("/notifications", headers=auth(admin)).json()["unread"] == 0
        assert client.post(f"/notifications/{note_id}/read", headers=auth(author)).status_code == 404

    def test_dispatch_is_admin_only(self, client, author):
        response = client.post(
            "/notifications-dispatch",
            json={"subject": "Hi", "html": "<p>x</p>", "toRole": "admin"},
            headers=auth(author),
        )
        assert response.status_code == 403

    def test_dispatch_to_role_and_emails(self, client, dev_email, admin, guru):
        response = client.post(
            "/notifications-dispatch",
            json={
                "subject": "Rota",
                "html": "<p>New rota</p>",
                "toRole": "guru",
                "toEmails": ["GURU@example.com", "extra@example.com"],
                "inApp": [{"type": "announcement", "title": "New rota", "toRole": "guru"}],
            },
            headers=auth(admin),
        )

        assert response.status_code == 200
        assert response.json()["recipients"] == 2
        assert response.json()["in_app"] == 1
        assert dev_email.get_last_email().subject == "Rota"

    def test_dispatch_needs_recipients(self, client, admin):
        response = client.post(
            "/notifications-dispatch", json={"subject": "S", "html": "h"}, headers=auth(admin)
        )
        assert response.status_code == 400


class TestSQLiteBacked:
    @pytest.fixture
    def sqlite_client(self, sqlite_ctx: ServiceContext, settings: Settings):
        app.dependency_overrides[get_context] = lambda: sqlite_ctx
        app.dependency_overrides[get_settings] = lambda: settings
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_null_question_text_is_stored_empty(self, sqlite_client, sqlite_ctx, make_user):
        author = make_user(sqlite_ctx, "author@example.com", "user")

        created = sqlite_client.post(
            "/exams",
            json={"question_text": None, "explanation": None, "option_a": "IM adrenaline"},
            headers=auth(author),
        )
        assert created.status_code == 201
        assert created.json()["title"] == ""
        assert created.json()["body"] == ""
        question_id = created.json()["id"]

        edited = sqlite_client.put(
            f"/exams/{question_id}",
            json={"question_text": "First-line treatment for anaphylaxis?", "explanation": None},
            headers=auth(author),
        )
        assert edited.status_code == 200
        assert edited.json()["body"] == ""

        cleared = sqlite_client.put(
            f"/exams/{question_id}", json={"question_text": None}, headers=auth(author)
        )
        assert cleared.status_code == 200
        assert cleared.json()["title"] == ""

        submit = sqlite_client.post(f"/exams/{question_id}/submit", headers=auth(author))
        assert submit.status_code == 400
        assert submit.json()["detail"]["error"] == "payload_incomplete"
