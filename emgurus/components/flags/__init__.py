"""
Flags component - quality reports against content items.

Handles raising, assigning, resolving, dismissing and archiving flags.
"""

from .component import (
    FLAG_TRANSITIONS,
    run_assign_flag,
    run_close_flag,
    run_create_flag,
    run_list_flags,
)
from .models import (
    AssignFlagInput,
    CloseFlagInput,
    CreateFlagInput,
    FlagError,
    FlagListOutput,
    FlagOutput,
    ListFlagsInput,
)
from .ports import FlagStorePort, GatePort, TimePort, UserLookupPort

__all__ = [
    # Entry points
    "run_create_flag",
    "run_assign_flag",
    "run_close_flag",
    "run_list_flags",
    "FLAG_TRANSITIONS",
    # Models
    "AssignFlagInput",
    "CloseFlagInput",
    "CreateFlagInput",
    "FlagError",
    "FlagListOutput",
    "FlagOutput",
    "ListFlagsInput",
    # Ports
    "FlagStorePort",
    "GatePort",
    "TimePort",
    "UserLookupPort",
]
