"""
Formatting Utilities

Functions for formatting dates and timestamps in the plant time zone and for
parsing report filter dates.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

import pytz
from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

from config import Config

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime]


def get_timezone(timezone: Optional[str] = None):
    """pytz timezone for the given name, or the configured plant time zone"""
    return pytz.timezone(timezone or Config.TIMEZONE)


def local_date(value: Union[date, datetime], timezone: Optional[str] = None) -> date:
    """
    Calendar date of a value in the plant time zone.

    Naive datetimes are taken as already local; aware ones are converted.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(get_timezone(timezone))
        return value.date()
    return value


def format_date_local(value: Union[date, datetime], timezone: Optional[str] = None) -> str:
    """
    Format a date or datetime as YYYY-MM-DD in the plant time zone.

    Example:
        >>> format_date_local(date(2025, 3, 7))
        '2025-03-07'
    """
    return local_date(value, timezone).strftime("%Y-%m-%d")


def parse_date(value: Optional[DateLike]) -> Optional[date]:
    """
    Parse a filter date.

    Args:
        value: date, datetime or string understood by dateutil ("2025-03-07", "7 Mar 2025")

    Returns:
        date, or None for empty input

    Raises:
        ValueError: If the string cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return dateutil_parser.parse(str(value)).date()
    except (ValueError, OverflowError) as e:
        logger.warning(f"Error parsing date: {e} - Input: {value!r}")
        raise ValueError(f"Invalid date: {value!r}") from e


def today(timezone: Optional[str] = None) -> date:
    """Current date in the plant time zone"""
    return datetime.now(get_timezone(timezone)).date()


def month_range(day: date) -> Tuple[date, date]:
    """
    First and last day of the month containing day.

    Example:
        >>> month_range(date(2024, 2, 10))
        (datetime.date(2024, 2, 1), datetime.date(2024, 2, 29))
    """
    start = day.replace(day=1)
    end = start + relativedelta(months=1) - timedelta(days=1)
    return start, end


def seconds_to_minutes(seconds: float) -> int:
    """Round seconds to whole minutes"""
    return int(round(seconds / 60))
