"""Lifecycle component - review and publication state changes."""

from emgurus.components.lifecycle.component import (
    KIND_LABELS,
    SIMPLE_ACTIONS,
    LifecycleComponent,
    LifecycleInput,
)
from emgurus.components.lifecycle.models import (
    AnnotateInput,
    AssignInput,
    AssignOutput,
    BulkArchiveInput,
    BulkAssignInput,
    BulkOutput,
    CreateItemInput,
    EditItemInput,
    GetItemInput,
    GuruRejectInput,
    ItemOutput,
    LifecycleError,
    ListQueueInput,
    QueueOutput,
    ReviewerQueueInput,
    ReviewerQueueOutput,
    SaveAndApproveInput,
    TransitionInput,
)
from emgurus.components.lifecycle.ports import (
    ClockPort,
    GatePort,
    ItemStorePort,
    UserLookupPort,
)

__all__ = [
    "LifecycleComponent",
    "LifecycleInput",
    "KIND_LABELS",
    "SIMPLE_ACTIONS",
    # Models
    "AnnotateInput",
    "AssignInput",
    "AssignOutput",
    "BulkArchiveInput",
    "BulkAssignInput",
    "BulkOutput",
    "CreateItemInput",
    "EditItemInput",
    "GetItemInput",
    "GuruRejectInput",
    "ItemOutput",
    "LifecycleError",
    "ListQueueInput",
    "QueueOutput",
    "ReviewerQueueInput",
    "ReviewerQueueOutput",
    "SaveAndApproveInput",
    "TransitionInput",
    # Ports
    "ClockPort",
    "GatePort",
    "ItemStorePort",
    "UserLookupPort",
]
