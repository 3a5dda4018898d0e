"""
Dev email adapter.

Logs messages instead of sending them and keeps them in memory so tests
can assert on what would have gone out. Returns SKIPPED, never SENT.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from emgurus.ports.email import EmailMessage, EmailResult, EmailStatus

logger = logging.getLogger(__name__)


@dataclass
class SentEmail:
    """Record of a logged email for test assertions."""

    id: str
    recipients: tuple[str, ...]
    subject: str
    body_html: str
    sender: str | None
    logged_at: datetime


@dataclass
class DevEmailAdapter:
    sent_emails: list[SentEmail] = field(default_factory=list)

    log_level: int = logging.INFO
    log_body: bool = True
    body_preview_length: int = 100

    def send(self, message: EmailMessage) -> EmailResult:
        message_id = f"dev-{uuid4().hex[:12]}"
        self.sent_emails.append(
            SentEmail(
                id=message_id,
                recipients=message.recipients,
                subject=message.subject,
                body_html=message.body_html,
                sender=message.sender,
                logged_at=datetime.now(UTC),
            )
        )

        parts = [
            f"EMAIL (dev): To={', '.join(message.recipients)}",
            f"Subject={message.subject}",
        ]
        if message.sender:
            parts.append(f"From={message.sender}")
        if self.log_body and message.body_html:
            preview = message.body_html[: self.body_preview_length]
            if len(message.body_html) > self.body_preview_length:
                preview += "..."
            parts.append(f"Body={preview}")
        parts.append(f"MessageID={message_id}")
        logger.log(self.log_level, ", ".join(parts))

        return EmailResult(
            status=EmailStatus.SKIPPED,
            message_id=message_id,
            recipients=len(message.recipients),
            error="Dev mode - email logged, not sent",
        )

    # --- Test Helper Methods ---

    def get_last_email(self) -> SentEmail | None:
        return self.sent_emails[-1] if self.sent_emails else None

    def get_emails_to(self, recipient: str) -> list[SentEmail]:
        return [e for e in self.sent_emails if recipient in e.recipients]

    def clear(self) -> None:
        self.sent_emails.clear()

    @property
    def email_count(self) -> int:
        return len(self.sent_emails)
