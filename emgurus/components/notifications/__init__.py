"""
Notifications component - in-app and e-mail fan-out.

Handles recipient resolution, preference filtering, outbox draining and the
per-user inbox.
"""

from .component import (
    NotificationDispatcher,
    OutboxProcessor,
    render,
    run_list_notifications,
    run_mark_read,
)
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

__all__ = [
    # Entry points
    "NotificationDispatcher",
    "OutboxProcessor",
    "render",
    "run_list_notifications",
    "run_mark_read",
    # Models
    "DispatchRequest",
    "DispatchResult",
    "DrainResult",
    "InAppItem",
    "ListNotificationsInput",
    "MarkReadInput",
    "MarkReadOutput",
    "NotificationError",
    "NotificationListOutput",
    # Ports
    "EmailSenderPort",
    "NotificationRepoPort",
    "OutboxRepoPort",
    "TimePort",
    "UserDirectoryPort",
]
