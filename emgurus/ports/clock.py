from datetime import datetime
from typing import Protocol


class ClockPort(Protocol):
    """Protocol for time operations."""

    def now_utc(self) -> datetime:
        """Return current UTC time."""
        ...
