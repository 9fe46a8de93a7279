"""
Derived deadline fields and priority scores.

priority = urgency + secondary, where secondary is the keyword score for
funding topics and the value-band score for tenders. Every score is an int
and defaults to 0 when the inputs are missing.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from ftportal.core.time_utils import days_until


# (max days to deadline, score), checked in order
URGENCY_BANDS: Tuple[Tuple[int, int], ...] = ((14, 3), (30, 2), (45, 1))


@dataclass(frozen=True)
class DeadlineInfo:
    all_deadlines: Tuple[str, ...] = ()
    next_deadline: str = ""
    days_to_deadline: Optional[int] = None

    @property
    def joined(self) -> str:
        return " | ".join(self.all_deadlines)

    @property
    def days_text(self) -> str:
        return "" if self.days_to_deadline is None else str(self.days_to_deadline)


def merge_deadlines(*groups: Iterable[str]) -> List[str]:
    """Union of ISO date lists, sorted ascending without duplicates."""
    merged = set()
    for group in groups:
        merged.update(d for d in group if d)
    return sorted(merged)


def next_deadline(deadlines: Sequence[str], today: date) -> str:
    """
    Earliest deadline on or after today.

    Falls back to the latest past deadline, or "" when there are none.
    """
    if not deadlines:
        return ""
    ordered = sorted(deadlines)
    today_iso = today.isoformat()
    for d in ordered:
        if d >= today_iso:
            return d
    return ordered[-1]


def deadline_info(deadlines: Iterable[str], today: date) -> DeadlineInfo:
    ordered = merge_deadlines(deadlines)
    nxt = next_deadline(ordered, today)
    return DeadlineInfo(
        all_deadlines=tuple(ordered),
        next_deadline=nxt,
        days_to_deadline=days_until(nxt, today),
    )


def urgency_score(days_to_deadline: Optional[int]) -> int:
    """3 within 14 days, 2 within 30, 1 within 45, else 0 (0 without a deadline)."""
    if days_to_deadline is None:
        return 0
    for max_days, score in URGENCY_BANDS:
        if days_to_deadline <= max_days:
            return score
    return 0


def keyword_score(texts: Iterable[str], keywords: Sequence[str], cap: int = 3) -> int:
    """Number of keywords found (case-insensitive substring) in the texts, capped."""
    haystack = " ".join(t for t in texts if t).lower()
    if not haystack:
        return 0
    hits = sum(1 for k in keywords if k and k.lower() in haystack)
    return min(hits, cap)


def value_score(amount: str, bands: Sequence[Tuple[int, int]]) -> int:
    """
    Score an estimated value against (threshold, score) bands.

    The highest threshold the amount reaches wins; unknown amounts score 0.
    """
    if not amount:
        return 0
    try:
        value = float(amount)
    except ValueError:
        return 0
    for threshold, score in sorted(bands, reverse=True):
        if value >= threshold:
            return score
    return 0


def priority_score(urgency: int, secondary: int) -> int:
    return urgency + secondary
