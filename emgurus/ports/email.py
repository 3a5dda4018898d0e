"""
Email port.

One message may go to several recipients; providers fan it out. Adapters
never raise: a failed send comes back as a FAILED EmailResult so callers
can log it and move on.

Implementations:
- DevEmailAdapter: logs and keeps messages in memory (dev/test)
- ResendEmailAdapter: Resend HTTP API over httpx
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol


class EmailStatus(Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # Dev adapter or nothing to send


@dataclass(frozen=True)
class EmailMessage:
    recipients: tuple[str, ...]
    subject: str
    body_html: str
    sender: str | None = None  # None = adapter default

    def __post_init__(self) -> None:
        if not self.recipients:
            raise ValueError("At least one recipient is required")
        if not self.subject:
            raise ValueError("Subject is required")


@dataclass
class EmailResult:
    status: EmailStatus
    message_id: str | None = None
    error: str | None = None
    sent_at: datetime | None = None
    recipients: int = 0

    @property
    def ok(self) -> bool:
        return self.status != EmailStatus.FAILED

    @classmethod
    def success(cls, recipients: int, message_id: str | None = None) -> EmailResult:
        return cls(
            status=EmailStatus.SENT,
            message_id=message_id,
            recipients=recipients,
            sent_at=datetime.now(UTC),
        )

    @classmethod
    def skipped(cls, recipients: int, reason: str = "Dev mode") -> EmailResult:
        return cls(status=EmailStatus.SKIPPED, recipients=recipients, error=reason)

    @classmethod
    def failed(cls, recipients: int, error: str) -> EmailResult:
        return cls(status=EmailStatus.FAILED, recipients=recipients, error=error)


class EmailPort(Protocol):
    def send(self, message: EmailMessage) -> EmailResult:
        """Send ``message``. Must not raise; report failures in the result."""
        ...
