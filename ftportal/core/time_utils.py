"""
Run clock utilities.

The run timestamp is taken once per run and passed to every component, so
"today" does not drift between the first and last item of a long run and
tests can pin it.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RunContext:
    """
    Per-run clock.

    Attributes:
        started_at: Aware datetime of the run start
    """
    started_at: datetime

    @classmethod
    def start(cls) -> "RunContext":
        return cls(started_at=now_utc())

    @classmethod
    def fixed(cls, iso: str) -> "RunContext":
        """Build a context pinned to an ISO timestamp (tests, replays)."""
        dt = datetime.fromisoformat(iso)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return cls(started_at=dt)

    @property
    def run_ts(self) -> str:
        """ISO timestamp written to generated_at columns."""
        return self.started_at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @property
    def today(self) -> date:
        return self.started_at.astimezone(timezone.utc).date()

    @property
    def today_iso(self) -> str:
        return self.today.isoformat()


def days_until(iso_date: str, today: date) -> Optional[int]:
    """
    Whole days from today to iso_date, rounded up. Negative for past dates.

    Returns None when iso_date is empty or invalid.
    """
    if not iso_date:
        return None
    try:
        target = date.fromisoformat(iso_date)
    except ValueError:
        return None
    return math.ceil((target - today).days)
