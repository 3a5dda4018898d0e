"""
Error taxonomy for the review service.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer maps it to. Notification failures never use these types; they are
logged and swallowed by the notifications component.
"""

from __future__ import annotations


class ReviewError(Exception):
    """Base class for all review service errors."""

    code = "review_error"
    http_status = 500

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


class Unauthenticated(ReviewError):
    code = "unauthenticated"
    http_status = 401


class Forbidden(ReviewError):
    code = "not_authorized"
    http_status = 403


class NotFound(ReviewError):
    code = "not_found"
    http_status = 404


class InvalidStateTransition(ReviewError):
    code = "invalid_state"
    http_status = 409

    def __init__(self, current: str, action: str) -> None:
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} an item in state '{current}'", field="state")


class AlreadyAssigned(ReviewError):
    code = "already_assigned"
    http_status = 409

    def __init__(self, item_id: object) -> None:
        self.item_id = item_id
        super().__init__(
            f"Item {item_id} already has a pending review assignment", field="reviewer_id"
        )


class ReviewValidationError(ReviewError):
    code = "validation_error"
    http_status = 400


class PayloadIncomplete(ReviewValidationError):
    code = "payload_incomplete"


class InvalidReviewer(ReviewValidationError):
    code = "invalid_reviewer"


class UpstreamServiceError(ReviewError):
    code = "upstream_error"
    http_status = 500


class ConcurrentModification(ReviewError):
    code = "concurrent_modification"
    http_status = 409

    def __init__(self, item_id: object) -> None:
        self.item_id = item_id
        super().__init__(f"Item {item_id} was modified by another request; reload and retry")


def http_status_for(code: str) -> int:
    """HTTP status for an error code, 500 for codes outside the taxonomy."""
    pending: list[type[ReviewError]] = [ReviewError]
    while pending:
        cls = pending.pop()
        if cls.code == code:
            return cls.http_status
        pending.extend(cls.__subclasses__())
    return 500
