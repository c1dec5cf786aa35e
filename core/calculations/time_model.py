"""
Shift Time Model

Converts a shift definition (work start/end plus up to three break windows)
into loading time: the seconds a shift is available for production.

Formula:
    Loading time = (work_end - work_start) - (break1 + break2 + break3)

Shifts may cross midnight (e.g. 22:00 -> 06:00). Breaks never do.
"""

import logging
from datetime import datetime, time
from typing import Iterable, Optional, Sequence, Tuple

from core.models import TimeOfDay

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: TimeOfDay) -> int:
    """
    Convert a time of day to minutes since midnight.

    Args:
        value: "HH:MM" / "HH:MM:SS" string, datetime.time or datetime.datetime

    Returns:
        Minutes since midnight (seconds are truncated)

    Raises:
        ValueError: If the value cannot be interpreted as a time of day

    Example:
        >>> time_to_minutes("07:30")
        450
    """
    if isinstance(value, datetime):
        return value.hour * 60 + value.minute
    if isinstance(value, time):
        return value.hour * 60 + value.minute

    if isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) in (2, 3):
            try:
                hours, minutes = int(parts[0]), int(parts[1])
            except ValueError:
                hours, minutes = -1, -1
            if 0 <= hours < 24 and 0 <= minutes < 60:
                return hours * 60 + minutes

    raise ValueError(f"Invalid time of day: {value!r}. Expected 'HH:MM'")


def work_duration_minutes(work_start: TimeOfDay, work_end: TimeOfDay) -> int:
    """Work window length in minutes, wrapping past midnight when end < start."""
    start_min = time_to_minutes(work_start)
    end_min = time_to_minutes(work_end)

    # Overnight shift
    if end_min < start_min:
        end_min += MINUTES_PER_DAY

    return end_min - start_min


def total_break_minutes(
    breaks: Iterable[Tuple[Optional[TimeOfDay], Optional[TimeOfDay]]]
) -> int:
    """
    Sum break window lengths in minutes.

    A pair with only a start or only an end is ignored entirely.
    """
    total = 0
    for break_start, break_end in breaks:
        if not break_start or not break_end:
            continue
        total += time_to_minutes(break_end) - time_to_minutes(break_start)
    return total


def loading_time_seconds(
    work_start: TimeOfDay,
    work_end: TimeOfDay,
    breaks: Sequence[Tuple[Optional[TimeOfDay], Optional[TimeOfDay]]] = ()
) -> int:
    """
    Calculate shift loading time in seconds.

    Args:
        work_start: Shift start time of day
        work_end: Shift end time of day (earlier than start means overnight)
        breaks: Up to three (break_start, break_end) pairs

    Returns:
        Loading time in seconds, never negative

    Example:
        >>> loading_time_seconds("23:00", "07:00")
        28800
        >>> loading_time_seconds("07:00", "16:00", [("12:00", "13:00")])
        28800
    """
    if len(breaks) > 3:
        logger.warning(f"Shift defines {len(breaks)} breaks, only the first 3 are counted")
        breaks = breaks[:3]

    work_min = work_duration_minutes(work_start, work_end)
    break_min = total_break_minutes(breaks)

    return max(0, work_min - break_min) * 60
