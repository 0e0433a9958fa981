"""
Small shared helpers: result values for external calls, clock and
time-of-day context, and answer parsing.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, Optional, Tuple, TypeVar

T = TypeVar("T")

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass
class Outcome(Generic[T]):
    """Success-or-failure value returned by calls to external collaborators."""

    ok: bool
    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: Exception) -> "Outcome[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        if not self.ok:
            raise self.error if self.error else RuntimeError("Outcome has no value")
        return self.value  # type: ignore[return-value]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def day_of_week(moment: datetime) -> int:
    """Day index with Sunday = 0."""
    return (moment.weekday() + 1) % 7


def time_of_day_stamp(moment: datetime) -> str:
    return moment.strftime("%H:%M:%S")


def time_of_day_label(moment: datetime) -> str:
    """Human label for the part of day, e.g. ``"Morning (08:05)"``."""
    hour = moment.hour
    if hour < 6:
        period = "Late Night"
    elif hour < 12:
        period = "Morning"
    elif hour < 17:
        period = "Afternoon"
    elif hour < 21:
        period = "Evening"
    else:
        period = "Night"
    return f"{period} ({moment.strftime('%H:%M')})"


def current_context_info(moment: datetime) -> Tuple[str, str]:
    """Return (time-of-day label, day name) for ranking prompts."""
    return time_of_day_label(moment), DAY_NAMES[day_of_week(moment)]


_NUMBER_RE = re.compile(r"\d+")


def parse_rating(answer: Optional[str]) -> Optional[int]:
    """Extract a 1-10 rating from an answer like ``"7"`` or ``"7/10"``."""
    if answer is None:
        return None
    match = _NUMBER_RE.search(str(answer))
    if not match:
        return None
    value = int(match.group())
    if 1 <= value <= 10:
        return value
    return None


def parse_yes_no(answer: Optional[str]) -> Optional[bool]:
    if not answer:
        return None
    text = answer.strip().lower()
    if text.startswith(("yes", "y ", "yep", "yeah", "done", "i did")) or text in ("y", "ok", "sure"):
        return True
    if text.startswith(("no", "not", "nope", "didn")) or text == "n":
        return False
    return None
