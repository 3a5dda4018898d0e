"""Flags component models - frozen dataclass inputs and outputs."""

from dataclasses import dataclass
from uuid import UUID

from emgurus.domain.entities import Flag, FlagStatus


@dataclass(frozen=True)
class FlagError:
    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class CreateFlagInput:
    """Report a problem with a content item."""

    actor_id: UUID
    item_id: UUID
    comment: str


@dataclass(frozen=True)
class AssignFlagInput:
    actor_id: UUID
    flag_id: UUID
    assignee_id: UUID


@dataclass(frozen=True)
class CloseFlagInput:
    """
    Close a flag.

    action: resolve, dismiss or archive
    """

    actor_id: UUID
    flag_id: UUID
    action: str
    note: str | None = None


@dataclass(frozen=True)
class ListFlagsInput:
    """Admins list every flag; ``mine`` lists only flags assigned to the actor."""

    actor_id: UUID
    status: FlagStatus | None = None
    mine: bool = False
    limit: int = 100


@dataclass(frozen=True)
class FlagOutput:
    flag: Flag | None
    errors: list[FlagError]
    success: bool


@dataclass(frozen=True)
class FlagListOutput:
    flags: list[Flag]
    errors: list[FlagError]
    success: bool
