"""
SQLite implementations of the storage ports.

Every public method opens its own connection, so instances are safe to
share between request threads. ``SQLiteReviewStore.apply`` takes the write
lock up front (BEGIN IMMEDIATE) and relies on the partial unique index on
pending assignments, so two racing assignments cannot both commit.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

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

logger = logging.getLogger(__name__)

# Item filters accepted by list_items, mapped to their columns.
_ITEM_FILTERS = {
    "state": "state",
    "review_phase": "review_phase",
    "kind": "kind",
    "author_id": "author_id",
    "reviewer_id": "reviewer_id",
}


# Helper to convert sqlite rows to dicts
def dict_factory(cursor: sqlite3.Cursor, row: Any) -> dict[str, Any]:
    d = {}
    for idx, col in enumerate(cursor.description):
        d[col[0]] = row[idx]
    return d


def parse_dt(s: str | None) -> datetime | None:
    return datetime.fromisoformat(s) if s else None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _id(value: UUID | None) -> str | None:
    return str(value) if value is not None else None


class _SQLiteRepo:
    def __init__(self, db_path: str, timeout: float = 5.0):
        self.db_path = db_path
        self.timeout = timeout

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly where needed.
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            logger.exception("Cannot open database %s", self.db_path)
            raise UpstreamServiceError("Storage unavailable") from e
        try:
            yield conn
        except sqlite3.Error as e:
            logger.exception("SQLite error on %s", self.db_path)
            raise UpstreamServiceError("Storage operation failed") from e
        finally:
            conn.close()


class SQLiteReviewStore(_SQLiteRepo):
    """Content items, review notes, assignments, flags and the outbox."""

    # --- items ---

    def get_item(self, item_id: UUID) -> ContentItem | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM content_items WHERE id = ?", (str(item_id),)
            ).fetchone()
            return self._map_item(conn, row) if row else None

    def list_items(self, filters: dict[str, Any], limit: int = 100) -> list[ContentItem]:
        clauses: list[str] = []
        params: list[Any] = []
        for key, column in _ITEM_FILTERS.items():
            if key in filters:
                value = filters[key]
                if value is None:
                    clauses.append(f"{column} IS NULL")
                else:
                    clauses.append(f"{column} = ?")
                    params.append(str(value) if isinstance(value, UUID) else value)

        sql = "SELECT * FROM content_items"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY COALESCE(submitted_at, created_at) DESC LIMIT ?"
        params.append(limit)

        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._map_item(conn, row) for row in rows]

    # --- assignments ---

    def get_assignment(self, assignment_id: UUID) -> ReviewAssignment | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM review_assignments WHERE id = ?", (str(assignment_id),)
            ).fetchone()
            return self._map_assignment(row) if row else None

    def get_pending_assignment(self, item_id: UUID) -> ReviewAssignment | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM review_assignments WHERE item_id = ? AND status = 'pending'",
                (str(item_id),),
            ).fetchone()
            return self._map_assignment(row) if row else None

    def list_assignments(
        self,
        item_id: UUID | None = None,
        reviewer_id: UUID | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[ReviewAssignment]:
        clauses: list[str] = []
        params: list[Any] = []
        if item_id is not None:
            clauses.append("item_id = ?")
            params.append(str(item_id))
        if reviewer_id is not None:
            clauses.append("reviewer_id = ?")
            params.append(str(reviewer_id))
        if status is not None:
            clauses.append("status = ?")
            params.append(status)

        sql = "SELECT * FROM review_assignments"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY assigned_at DESC LIMIT ?"
        params.append(limit)

        with self._connection() as conn:
            return [self._map_assignment(r) for r in conn.execute(sql, params).fetchall()]

    # --- flags ---

    def get_flag(self, flag_id: UUID) -> Flag | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM flags WHERE id = ?", (str(flag_id),)).fetchone()
            return self._map_flag(row) if row else None

    def list_flags(
        self,
        status: str | None = None,
        assigned_to: UUID | None = None,
        limit: int = 100,
    ) -> list[Flag]:
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if assigned_to is not None:
            clauses.append("assigned_to = ?")
            params.append(str(assigned_to))

        sql = "SELECT * FROM flags"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        with self._connection() as conn:
            return [self._map_flag(r) for r in conn.execute(sql, params).fetchall()]

    # --- atomic writer ---

    def apply(self, changes: ChangeSet) -> None:
        if changes.is_empty():
            return

        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                # Closing the old assignment first frees the pending slot for a new one.
                for a in changes.assignment_updates:
                    self._write_assignment(conn, a)
                for a in changes.new_assignments:
                    try:
                        self._write_assignment(conn, a)
                    except sqlite3.IntegrityError as e:
                        if "review_assignments.item_id" in str(e):
                            raise AlreadyAssigned(a.item_id) from e
                        raise
                for item in changes.items:
                    self._write_item(conn, item)
                for flag in changes.flags:
                    self._write_flag(conn, flag)
                for event in changes.events:
                    self._write_event(conn, event)
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def add_item(self, item: ContentItem) -> None:
        """Insert or overwrite an item without a version check (seeding, tests)."""
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                self._write_item(conn, item, check_version=False)
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    # --- outbox ---

    def list_due(self, max_attempts: int, limit: int = 50) -> list[OutboxEvent]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM outbox_events
                WHERE status = 'pending' OR (status = 'failed' AND attempts < ?)
                ORDER BY created_at ASC
                LIMIT ?
            """,
                (max_attempts, limit),
            ).fetchall()
            return [self._map_event(r) for r in rows]

    def claim_due(
        self, max_attempts: int, limit: int, now: datetime, lease_seconds: float
    ) -> list[OutboxEvent]:
        """
        Mark due events ``processing`` and return them.

        Runs under the write lock, so concurrent drains never claim the same
        event. A ``processing`` event whose lease has run out is due again.
        """
        stale_before = (now - timedelta(seconds=lease_seconds)).isoformat()
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                rows = conn.execute(
                    """
                    SELECT * FROM outbox_events
                    WHERE attempts < ? AND (
                        status = 'pending'
                        OR status = 'failed'
                        OR (status = 'processing' AND claimed_at < ?)
                    )
                    ORDER BY created_at ASC
                    LIMIT ?
                """,
                    (max_attempts, stale_before, limit),
                ).fetchall()
                claim = {"status": "processing", "claimed_at": now}
                claimed = [self._map_event(r).model_copy(update=claim) for r in rows]
                conn.executemany(
                    "UPDATE outbox_events SET status = 'processing', claimed_at = ? WHERE id = ?",
                    [(now.isoformat(), str(e.id)) for e in claimed],
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return claimed

    def save_event(self, event: OutboxEvent) -> OutboxEvent:
        with self._connection() as conn:
            self._write_event(conn, event)
        return event

    # --- write helpers (run inside the caller's transaction) ---

    def _write_item(
        self, conn: sqlite3.Connection, item: ContentItem, check_version: bool = True
    ) -> None:
        row = conn.execute(
            "SELECT version FROM content_items WHERE id = ?", (str(item.id),)
        ).fetchone()
        if row is None:
            self._insert_item(conn, item)
        elif check_version and row["version"] != item.version - 1:
            raise ConcurrentModification(item.id)
        else:
            conn.execute(
                """
                UPDATE content_items SET
                    title = ?, body = ?, payload = ?, state = ?, review_phase = ?,
                    reviewer_id = ?, is_featured = ?, is_editors_pick = ?, version = ?,
                    updated_at = ?, submitted_at = ?, reviewed_at = ?, published_at = ?
                WHERE id = ?
            """,
                (
                    item.title,
                    item.body,
                    json.dumps(item.payload),
                    item.state,
                    item.review_phase,
                    _id(item.reviewer_id),
                    int(item.is_featured),
                    int(item.is_editors_pick),
                    item.version,
                    item.updated_at.isoformat(),
                    _iso(item.submitted_at),
                    _iso(item.reviewed_at),
                    _iso(item.published_at),
                    str(item.id),
                ),
            )
        self._append_notes(conn, item)

    def _insert_item(self, conn: sqlite3.Connection, item: ContentItem) -> None:
        conn.execute(
            """
            INSERT INTO content_items (
                id, kind, author_id, title, body, payload, state, review_phase,
                reviewer_id, is_featured, is_editors_pick, version,
                created_at, updated_at, submitted_at, reviewed_at, published_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                str(item.id),
                item.kind,
                str(item.author_id),
                item.title,
                item.body,
                json.dumps(item.payload),
                item.state,
                item.review_phase,
                _id(item.reviewer_id),
                int(item.is_featured),
                int(item.is_editors_pick),
                item.version,
                item.created_at.isoformat(),
                item.updated_at.isoformat(),
                _iso(item.submitted_at),
                _iso(item.reviewed_at),
                _iso(item.published_at),
            ),
        )

    def _append_notes(self, conn: sqlite3.Connection, item: ContentItem) -> None:
        # Notes are append-only: only positions past the stored ones are new.
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM review_notes WHERE item_id = ?", (str(item.id),)
        ).fetchone()
        stored = row["n"] if row else 0
        for position, note in enumerate(item.review_notes[stored:], start=stored):
            conn.execute(
                """
                INSERT INTO review_notes (item_id, position, author_id, action, note, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (
                    str(item.id),
                    position,
                    str(note.author_id),
                    note.action,
                    note.note,
                    note.created_at.isoformat(),
                ),
            )

    def _write_assignment(self, conn: sqlite3.Connection, a: ReviewAssignment) -> None:
        conn.execute(
            """
            INSERT INTO review_assignments (
                id, item_id, reviewer_id, assigned_by, status, note, assigned_at, completed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status=excluded.status,
                note=excluded.note,
                completed_at=excluded.completed_at
        """,
            (
                str(a.id),
                str(a.item_id),
                str(a.reviewer_id),
                str(a.assigned_by),
                a.status,
                a.note,
                a.assigned_at.isoformat(),
                _iso(a.completed_at),
            ),
        )

    def _write_flag(self, conn: sqlite3.Connection, flag: Flag) -> None:
        conn.execute(
            """
            INSERT INTO flags (
                id, item_id, flagged_by, comment, status, assigned_to, resolution_note,
                resolved_by, created_at, updated_at, resolved_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status=excluded.status,
                assigned_to=excluded.assigned_to,
                resolution_note=excluded.resolution_note,
                resolved_by=excluded.resolved_by,
                updated_at=excluded.updated_at,
                resolved_at=excluded.resolved_at
        """,
            (
                str(flag.id),
                str(flag.item_id),
                str(flag.flagged_by),
                flag.comment,
                flag.status,
                _id(flag.assigned_to),
                flag.resolution_note,
                _id(flag.resolved_by),
                flag.created_at.isoformat(),
                flag.updated_at.isoformat(),
                _iso(flag.resolved_at),
            ),
        )

    def _write_event(self, conn: sqlite3.Connection, event: OutboxEvent) -> None:
        conn.execute(
            """
            INSERT INTO outbox_events (
                id, event_type, payload, status, attempts, last_error, created_at,
                claimed_at, processed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                payload=excluded.payload,
                status=excluded.status,
                attempts=excluded.attempts,
                last_error=excluded.last_error,
                claimed_at=excluded.claimed_at,
                processed_at=excluded.processed_at
        """,
            (
                str(event.id),
                event.event_type,
                json.dumps(event.payload),
                event.status,
                event.attempts,
                event.last_error,
                event.created_at.isoformat(),
                _iso(event.claimed_at),
                _iso(event.processed_at),
            ),
        )

    # --- row mapping ---

    def _map_item(self, conn: sqlite3.Connection, row: dict[str, Any]) -> ContentItem:
        note_rows = conn.execute(
            "SELECT * FROM review_notes WHERE item_id = ? ORDER BY position ASC", (row["id"],)
        ).fetchall()
        notes = [
            ReviewNote(
                author_id=UUID(n["author_id"]),
                action=n["action"],
                note=n["note"],
                created_at=parse_dt(n["created_at"]),
            )
            for n in note_rows
        ]
        return ContentItem(
            id=UUID(row["id"]),
            kind=row["kind"],
            author_id=UUID(row["author_id"]),
            title=row["title"],
            body=row["body"],
            payload=json.loads(row["payload"] or "{}"),
            state=row["state"],
            review_phase=row["review_phase"],
            reviewer_id=UUID(row["reviewer_id"]) if row["reviewer_id"] else None,
            is_featured=bool(row["is_featured"]),
            is_editors_pick=bool(row["is_editors_pick"]),
            version=row["version"],
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
            submitted_at=parse_dt(row["submitted_at"]),
            reviewed_at=parse_dt(row["reviewed_at"]),
            published_at=parse_dt(row["published_at"]),
            review_notes=notes,
        )

    def _map_assignment(self, row: dict[str, Any]) -> ReviewAssignment:
        return ReviewAssignment(
            id=UUID(row["id"]),
            item_id=UUID(row["item_id"]),
            reviewer_id=UUID(row["reviewer_id"]),
            assigned_by=UUID(row["assigned_by"]),
            status=row["status"],
            note=row["note"],
            assigned_at=parse_dt(row["assigned_at"]),
            completed_at=parse_dt(row["completed_at"]),
        )

    def _map_flag(self, row: dict[str, Any]) -> Flag:
        return Flag(
            id=UUID(row["id"]),
            item_id=UUID(row["item_id"]),
            flagged_by=UUID(row["flagged_by"]),
            comment=row["comment"],
            status=row["status"],
            assigned_to=UUID(row["assigned_to"]) if row["assigned_to"] else None,
            resolution_note=row["resolution_note"],
            resolved_by=UUID(row["resolved_by"]) if row["resolved_by"] else None,
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
            resolved_at=parse_dt(row["resolved_at"]),
        )

    def _map_event(self, row: dict[str, Any]) -> OutboxEvent:
        return OutboxEvent(
            id=UUID(row["id"]),
            event_type=row["event_type"],
            payload=json.loads(row["payload"] or "{}"),
            status=row["status"],
            attempts=row["attempts"],
            last_error=row["last_error"],
            created_at=parse_dt(row["created_at"]),
            claimed_at=parse_dt(row["claimed_at"]),
            processed_at=parse_dt(row["processed_at"]),
        )


class SQLiteUserRepo(_SQLiteRepo):
    def save(self, user: User) -> User:
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    INSERT INTO users (
                        id, email, display_name, status, notification_settings, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        email=excluded.email,
                        display_name=excluded.display_name,
                        status=excluded.status,
                        notification_settings=excluded.notification_settings
                """,
                    (
                        str(user.id),
                        user.email,
                        user.display_name,
                        user.status,
                        user.notification_settings.model_dump_json(),
                        user.created_at.isoformat(),
                    ),
                )
                conn.execute("DELETE FROM user_roles WHERE user_id = ?", (str(user.id),))
                for role in dict.fromkeys(user.roles):
                    conn.execute(
                        "INSERT INTO user_roles (user_id, role) VALUES (?, ?)",
                        (str(user.id), role),
                    )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return user

    def get_by_id(self, user_id: UUID) -> User | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (str(user_id),)).fetchone()
            return self._map_row_to_user(conn, row) if row else None

    def get_by_email(self, email: str) -> User | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE lower(email) = lower(?)", (email,)
            ).fetchone()
            return self._map_row_to_user(conn, row) if row else None

    def get_many(self, user_ids: list[UUID]) -> list[User]:
        if not user_ids:
            return []
        placeholders = ", ".join("?" for _ in user_ids)
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM users WHERE id IN ({placeholders})",
                [str(uid) for uid in user_ids],
            ).fetchall()
            return [self._map_row_to_user(conn, row) for row in rows]

    def list_ids_by_role(self, role: str) -> list[UUID]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT user_id FROM user_roles WHERE role = ? ORDER BY user_id", (role,)
            ).fetchall()
            return [UUID(r["user_id"]) for r in rows]

    def _map_row_to_user(self, conn: sqlite3.Connection, row: dict[str, Any]) -> User:
        # Roles are read fresh on every lookup; nothing caches them.
        role_rows = conn.execute(
            "SELECT role FROM user_roles WHERE user_id = ? ORDER BY role", (row["id"],)
        ).fetchall()
        return User(
            id=UUID(row["id"]),
            email=row["email"],
            display_name=row["display_name"],
            roles=[r["role"] for r in role_rows],
            status=row["status"],
            notification_settings=NotificationSettings.model_validate_json(
                row["notification_settings"] or "{}"
            ),
            created_at=parse_dt(row["created_at"]),
        )


class SQLiteNotificationRepo(_SQLiteRepo):
    def insert_many(self, notifications: list[Notification]) -> int:
        if not notifications:
            return 0
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.executemany(
                    """
                    INSERT INTO notifications (
                        id, user_id, type, title, body, data, category, created_at, read_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    [
                        (
                            str(n.id),
                            str(n.user_id),
                            n.type,
                            n.title,
                            n.body,
                            json.dumps(n.data),
                            n.category,
                            n.created_at.isoformat(),
                            _iso(n.read_at),
                        )
                        for n in notifications
                    ],
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return len(notifications)

    def list_for_user(
        self, user_id: UUID, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]:
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            sql += " AND read_at IS NULL"
        sql += " ORDER BY created_at DESC LIMIT ?"
        with self._connection() as conn:
            rows = conn.execute(sql, (str(user_id), limit)).fetchall()
        return [
            Notification(
                id=UUID(r["id"]),
                user_id=UUID(r["user_id"]),
                type=r["type"],
                title=r["title"],
                body=r["body"],
                data=json.loads(r["data"] or "{}"),
                category=r["category"],
                created_at=parse_dt(r["created_at"]),
                read_at=parse_dt(r["read_at"]),
            )
            for r in rows
        ]

    def mark_read(self, notification_id: UUID, user_id: UUID, read_at: datetime) -> bool:
        with self._connection() as conn:
            cur = conn.execute(
                """
                UPDATE notifications SET read_at = COALESCE(read_at, ?)
                WHERE id = ? AND user_id = ?
            """,
                (read_at.isoformat(), str(notification_id), str(user_id)),
            )
            return cur.rowcount > 0
