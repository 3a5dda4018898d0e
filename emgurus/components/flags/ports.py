"""Flags component port definitions - protocols for dependencies."""

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from emgurus.domain.entities import ContentItem, Flag, User
from emgurus.domain.policy import Decision
from emgurus.ports.store import ChangeSet


class FlagStorePort(Protocol):
    def get_item(self, item_id: UUID) -> ContentItem | None: ...

    def get_flag(self, flag_id: UUID) -> Flag | None: ...

    def list_flags(
        self,
        status: str | None = None,
        assigned_to: UUID | None = None,
        limit: int = 100,
    ) -> list[Flag]: ...

    def apply(self, changes: ChangeSet) -> None: ...


class UserLookupPort(Protocol):
    def get_by_id(self, user_id: UUID) -> User | None: ...


class GatePort(Protocol):
    def authorize(self, actor: User | None, action: str, item: Any = None) -> Decision: ...

    def is_reviewer_candidate(self, user: User | None) -> bool: ...


class TimePort(Protocol):
    def now_utc(self) -> datetime: ...
