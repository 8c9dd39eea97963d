"""Time-slot grid for a classification day.

A slot is a wall-clock instant on the target date, keyed ``tHHMM``
(``t0900``, ``t0930``, ...). The same keys are the boolean property names of
the interchange GeoJSON, so the format here is part of the output contract.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date as date_cls
from datetime import datetime as dt
from datetime import time, timedelta

SLOT_KEY_PATTERN = re.compile(r"^t([01]\d|2[0-3])([0-5]\d)$")


@dataclass(frozen=True, order=True)
class TimeSlot:
    """
    One instant of the daily classification schedule.

    Attributes:
        datetime: Naive local wall-clock datetime (in the configured timezone).
    """

    datetime: dt

    @property
    def key(self) -> str:
        """Canonical ``tHHMM`` key."""
        return slot_key(self.datetime.time())

    @property
    def hour_fraction(self) -> float:
        """Local time as fractional hours (09:30 -> 9.5)."""
        return self.datetime.hour + self.datetime.minute / 60.0


def slot_key(t: time) -> str:
    """Format a wall-clock time as a slot key: ``time(9, 30)`` -> ``"t0930"``."""
    return f"t{t.hour:02d}{t.minute:02d}"


def is_slot_key(key: str) -> bool:
    """Return True when ``key`` is a well-formed ``tHHMM`` slot key."""
    return bool(SLOT_KEY_PATTERN.match(key))


def parse_slot_key(key: str) -> time:
    """
    Parse a ``tHHMM`` key back to a time.

    Raises:
        ValueError: If the key is malformed.
    """
    match = SLOT_KEY_PATTERN.match(key)
    if match is None:
        raise ValueError(f"Invalid time slot key '{key}'. Expected format: 'tHHMM'")
    return time(int(match.group(1)), int(match.group(2)))


def parse_clock(value: str) -> time:
    """
    Parse ``HH:MM`` (or a ``tHHMM`` key) into a time.

    Raises:
        ValueError: If the string is not a valid clock time.
    """
    if is_slot_key(value):
        return parse_slot_key(value)
    try:
        return time.fromisoformat(value)
    except ValueError as err:
        raise ValueError(f"Cannot parse time '{value}'. Use 'HH:MM'.") from err


def generate_time_slots(
    day: date_cls | str,
    start: time | str = "09:00",
    end: time | str = "21:00",
    interval_minutes: int = 30,
) -> list[TimeSlot]:
    """
    Build the ordered slot grid for one day, ``end`` inclusive.

    Args:
        day: Target date (``date`` or ISO string).
        start: First slot (``HH:MM``).
        end: Last slot, included when it falls on the grid.
        interval_minutes: Spacing between slots.

    Returns:
        Slots in chronological order, unique by key.

    Example:
        >>> [s.key for s in generate_time_slots("2025-06-21", "09:00", "10:00", 30)]
        ['t0900', 't0930', 't1000']
    """
    if interval_minutes <= 0:
        raise ValueError(f"interval_minutes must be > 0, got {interval_minutes}")
    if isinstance(day, str):
        day = date_cls.fromisoformat(day)
    start_t = parse_clock(start) if isinstance(start, str) else start
    end_t = parse_clock(end) if isinstance(end, str) else end
    if end_t < start_t:
        raise ValueError(f"Slot end {end_t} is before slot start {start_t}")

    current = dt.combine(day, start_t)
    last = dt.combine(day, end_t)
    step = timedelta(minutes=interval_minutes)

    slots = []
    while current <= last:
        slots.append(TimeSlot(current))
        current += step
    return slots
