"""
Resend email adapter.

Posts to the Resend HTTP API with an explicit timeout. Transport errors and
non-2xx answers come back as FAILED results; nothing is raised.
"""

from __future__ import annotations

import logging

import httpx

from emgurus.ports.email import EmailMessage, EmailResult

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class ResendEmailAdapter:
    def __init__(
        self,
        api_key: str,
        default_sender: str,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._default_sender = default_sender
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0))
        )

    def send(self, message: EmailMessage) -> EmailResult:
        payload = {
            "from": message.sender or self._default_sender,
            "to": list(message.recipients),
            "subject": message.subject,
            "html": message.body_html,
        }
        try:
            r = self._client.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.TimeoutException as e:
            logger.warning("Resend timed out for %r: %s", message.subject, e)
            return EmailResult.failed(len(message.recipients), f"timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning("Resend request failed for %r: %s", message.subject, e)
            return EmailResult.failed(len(message.recipients), str(e))

        if r.status_code >= 400:
            logger.warning("Resend error %s: %s", r.status_code, r.text[:500])
            return EmailResult.failed(
                len(message.recipients), f"HTTP {r.status_code}: {r.text[:500]}"
            )

        try:
            message_id = r.json().get("id")
        except ValueError:
            message_id = None
        return EmailResult.success(len(message.recipients), message_id=message_id)

    def close(self) -> None:
        self._client.close()
