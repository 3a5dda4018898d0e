"""Assignments component - reviewer assignment bookkeeping."""

from emgurus.components.assignments.component import CLOSED_STATUSES, AssignmentManager
from emgurus.components.assignments.models import (
    AssignmentError,
    CompleteInput,
    CompleteOutput,
    QueueEntry,
)
from emgurus.components.assignments.ports import AssignmentStorePort, TimePort

__all__ = [
    "AssignmentManager",
    "CLOSED_STATUSES",
    # Models
    "AssignmentError",
    "CompleteInput",
    "CompleteOutput",
    "QueueEntry",
    # Ports
    "AssignmentStorePort",
    "TimePort",
]
