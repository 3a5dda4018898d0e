"""
Notifications component - in-app and e-mail fan-out.

Delivery is best effort. Nothing here raises to the caller: storage and
provider failures are logged and reported back in the result, so a state
change that already committed is never undone by a notification problem.

Lifecycle and flag operations only write OutboxEvents. OutboxProcessor
turns each event into a DispatchRequest using the templates in rules.yaml
and records whether delivery worked, so failed events can be retried.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Any
from uuid import UUID

from emgurus.domain.entities import Notification, OutboxEvent, User
from emgurus.domain.errors import NotFound, ReviewError
from emgurus.ports.email import EmailMessage, EmailResult, EmailStatus
from emgurus.rules.models import NotificationRules, NotificationTemplate

from .models import (
    DispatchRequest,
    DispatchResult,
    DrainResult,
    InAppItem,
    ListNotificationsInput,
    MarkReadInput,
    MarkReadOutput,
    NotificationError,
    NotificationListOutput,
)
from .ports import (
    EmailSenderPort,
    NotificationRepoPort,
    OutboxRepoPort,
    TimePort,
    UserDirectoryPort,
)

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

# Template recipient keywords -> event payload key holding the user id.
RECIPIENT_KEYS = {
    "author": "author_id",
    "reviewer": "reviewer_id",
    "assignee": "assignee_id",
    "flagger": "flagger_id",
    "actor": "actor_id",
}

CATEGORY_BY_KIND = {"blog": "blogs", "exam_question": "exams"}

IN_APP_DONE = "in_app_delivered"


def render(template: str, values: dict[str, Any], *, escape: bool = False) -> str:
    """Fill ``{{name}}`` placeholders; unknown names render empty."""

    def sub(match: re.Match[str]) -> str:
        value = values.get(match.group(1))
        text = "" if value is None else str(value)
        return html.escape(text) if escape else text

    return PLACEHOLDER.sub(sub, template)


def _as_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


class NotificationDispatcher:
    def __init__(
        self,
        users: UserDirectoryPort,
        notifications: NotificationRepoPort,
        email: EmailSenderPort,
        rules: NotificationRules,
        clock: TimePort,
    ) -> None:
        self._users = users
        self._notifications = notifications
        self._email = email
        self._rules = rules
        self._clock = clock

    def dispatch(self, request: DispatchRequest, *, skip_in_app: bool = False) -> DispatchResult:
        errors: list[str] = []

        in_app = 0
        if not skip_in_app and request.in_app:
            try:
                in_app = self._notifications.insert_many(self._in_app_rows(request))
            except ReviewError as e:
                logger.warning("In-app notification insert failed: %s", e, exc_info=True)
                errors.append(f"in_app: {e.message}")

        try:
            recipients = self._email_recipients(request)
        except ReviewError as e:
            logger.warning("Recipient lookup failed: %s", e, exc_info=True)
            errors.append(f"recipients: {e.message}")
            recipients = []

        email_status = EmailStatus.SKIPPED.value
        if recipients:
            message = EmailMessage(
                recipients=tuple(recipients),
                subject=request.subject,
                body_html=f"{request.html}{self._rules.footer_html}",
                sender=self._rules.sender,
            )
            try:
                result = self._email.send(message)
            except Exception as e:
                # A raising adapter counts as a failed send.
                logger.warning("Email adapter raised for %r", request.subject, exc_info=True)
                result = EmailResult.failed(len(recipients), f"{type(e).__name__}: {e}")
            email_status = result.status.value
            if not result.ok:
                logger.warning("Email %r not delivered: %s", request.subject, result.error)
                errors.append(f"email: {result.error}")

        logger.info(
            "Dispatched %r: %d email recipients, %d in-app", request.subject, len(recipients), in_app
        )
        return DispatchResult(
            recipients=len(recipients), in_app=in_app, email_status=email_status, errors=errors
        )

    def _resolve(self, user_ids: list[UUID], roles: list[str]) -> list[User]:
        ids = list(user_ids)
        for role in roles:
            ids.extend(self._users.list_ids_by_role(role))
        unique = list(dict.fromkeys(ids))
        if not unique:
            return []
        return [u for u in self._users.get_many(unique) if u.status == "active"]

    def _email_recipients(self, request: DispatchRequest) -> list[str]:
        users = self._resolve(list(request.to_user_ids), list(request.to_roles))
        candidates = [e for e in request.to_emails if e]
        candidates += [
            u.email for u in users if u.notification_settings.allows("email", request.category)
        ]

        seen: set[str] = set()
        out: list[str] = []
        for address in candidates:
            address = address.strip()
            if address and address.lower() not in seen:
                seen.add(address.lower())
                out.append(address)
        return out

    def _in_app_rows(self, request: DispatchRequest) -> list[Notification]:
        now = self._clock.now_utc()
        rows: list[Notification] = []
        seen: set[tuple[UUID, str]] = set()

        for item in request.in_app:
            category = item.category or request.category
            if item.to_role:
                targets = self._resolve([], [item.to_role])
            elif item.user_id:
                targets = self._resolve([item.user_id], [])
            else:
                continue

            for user in targets:
                if (user.id, item.type) in seen:
                    continue
                if not user.notification_settings.allows("inapp", category):
                    continue
                seen.add((user.id, item.type))
                rows.append(
                    Notification(
                        user_id=user.id,
                        type=item.type,
                        title=item.title,
                        body=item.body,
                        data={**item.data, "category": category},
                        category=category,
                        created_at=now,
                    )
                )
        return rows


class OutboxProcessor:
    """Delivers pending outbox events through the dispatcher."""

    def __init__(
        self,
        outbox: OutboxRepoPort,
        dispatcher: NotificationDispatcher,
        rules: NotificationRules,
        clock: TimePort,
    ) -> None:
        self._outbox = outbox
        self._dispatcher = dispatcher
        self._rules = rules
        self._clock = clock

    def drain(self, limit: int | None = None) -> DrainResult:
        """Claim due events and deliver them; events claimed by another drain are skipped."""
        events = self._outbox.claim_due(
            self._rules.outbox_max_attempts,
            limit or self._rules.outbox_batch_size,
            self._clock.now_utc(),
            self._rules.outbox_lease_seconds,
        )
        delivered = failed = 0
        for event in events:
            if self._deliver(event):
                delivered += 1
            else:
                failed += 1
        if events:
            logger.info("Outbox drained: %d delivered, %d failed", delivered, failed)
        return DrainResult(processed=len(events), delivered=delivered, failed=failed)

    def build_request(self, event: OutboxEvent, template: NotificationTemplate) -> DispatchRequest:
        values = dict(event.payload)
        values.setdefault("kind_label", "item")
        category = template.category or CATEGORY_BY_KIND.get(str(values.get("kind")))

        user_ids: list[UUID] = []
        roles: list[str] = []
        for target in template.to:
            if target.startswith("role:"):
                roles.append(target.split(":", 1)[1])
                continue
            uid = _as_uuid(values.get(RECIPIENT_KEYS.get(target, "")))
            if uid is not None and uid not in user_ids:
                user_ids.append(uid)

        title = render(template.in_app_title, values)
        body = render(template.in_app_body, values) if template.in_app_body else None
        data = {k: values[k] for k in ("item_id", "flag_id") if values.get(k)}
        in_app = [
            InAppItem(type=template.type, title=title, body=body, data=data, user_id=uid)
            for uid in user_ids
        ]
        in_app += [
            InAppItem(type=template.type, title=title, body=body, data=data, to_role=role)  # type: ignore[arg-type]
            for role in roles
        ]

        return DispatchRequest(
            subject=render(template.subject, values),
            html=render(template.html, values, escape=True),
            to_user_ids=tuple(user_ids),
            to_roles=tuple(roles),  # type: ignore[arg-type]
            in_app=tuple(in_app),
            category=category,  # type: ignore[arg-type]
        )

    def _deliver(self, event: OutboxEvent) -> bool:
        now = self._clock.now_utc()
        template = self._rules.templates.get(event.event_type)
        if template is None:
            # Nothing can ever render this event; park it instead of retrying.
            logger.warning("No notification template for event type %s", event.event_type)
            self._outbox.save_event(
                event.model_copy(
                    update={
                        "status": "failed",
                        "attempts": self._rules.outbox_max_attempts,
                        "last_error": "no template",
                        "processed_at": now,
                    }
                )
            )
            return False

        skip_in_app = bool(event.payload.get(IN_APP_DONE))
        result = self._dispatcher.dispatch(
            self.build_request(event, template), skip_in_app=skip_in_app
        )
        payload = dict(event.payload)
        if not any(e.startswith("in_app") for e in result.errors):
            payload[IN_APP_DONE] = True

        if result.ok:
            update: dict[str, Any] = {
                "status": "delivered",
                "attempts": event.attempts + 1,
                "last_error": None,
                "processed_at": now,
                "payload": payload,
            }
        else:
            update = {
                "status": "failed",
                "attempts": event.attempts + 1,
                "last_error": "; ".join(result.errors)[:1000],
                "processed_at": now,
                "payload": payload,
            }
        self._outbox.save_event(event.model_copy(update=update))
        return result.ok


# --- Inbox ---


def run_list_notifications(
    inp: ListNotificationsInput, repo: NotificationRepoPort
) -> NotificationListOutput:
    try:
        items = repo.list_for_user(inp.user_id, unread_only=inp.unread_only, limit=inp.limit)
    except ReviewError as e:
        return NotificationListOutput(
            notifications=[],
            unread=0,
            errors=[NotificationError(code=e.code, message=e.message, field=e.field)],
            success=False,
        )
    unread = sum(1 for n in items if n.read_at is None)
    return NotificationListOutput(notifications=items, unread=unread, errors=[], success=True)


def run_mark_read(inp: MarkReadInput, repo: NotificationRepoPort, time: TimePort) -> MarkReadOutput:
    try:
        if not repo.mark_read(inp.notification_id, inp.user_id, time.now_utc()):
            raise NotFound("Notification not found", field="notification_id")
    except ReviewError as e:
        return MarkReadOutput(
            errors=[NotificationError(code=e.code, message=e.message, field=e.field)],
            success=False,
        )
    return MarkReadOutput(errors=[], success=True)
