"""
Report Filter Models

The filter vocabulary shared by every report: a plan date range plus optional
plant, line, shift, department (UPDT only) and machine criteria, all
AND-combined.
"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

from utils.formatting import DateLike, month_range, parse_date, today


@dataclass
class ReportFilter:
    """
    Report criteria.

    Dates may be given as strings; they are parsed on creation. Line takes
    precedence over plant when both are set.
    """
    start_date: Optional[DateLike] = None
    end_date: Optional[DateLike] = None
    plant_id: Optional[str] = None
    line_id: Optional[str] = None
    shift_id: Optional[str] = None
    department: Optional[str] = None
    machine_id: Optional[str] = None

    def __post_init__(self):
        """Parse and validate the date range"""
        self.start_date = parse_date(self.start_date)
        self.end_date = parse_date(self.end_date)

        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError(
                f"End date ({self.end_date}) must not be before start date ({self.start_date})"
            )

    def with_default_range(self, default: str = "month", timezone: Optional[str] = None) -> 'ReportFilter':
        """
        Fill in a missing start or end date.

        Args:
            default: "month" for the current month, "today" for today only
            timezone: Plant time zone (defaults to Config.TIMEZONE)

        Returns:
            New ReportFilter with both dates set
        """
        current = today(timezone)
        if default == "month":
            default_start, default_end = month_range(current)
        elif default == "today":
            default_start = default_end = current
        else:
            raise ValueError(f"Unknown default range: '{default}'. Valid options: 'month', 'today'")

        start = self.start_date or default_start
        end = self.end_date or default_end
        if end < start:
            end = start
        return replace(self, start_date=start, end_date=end)

    def contains(self, day: date) -> bool:
        """Check if a date falls within the range (open ends match everything)"""
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True

    def __repr__(self) -> str:
        parts = [f"{self.start_date} → {self.end_date}"]
        for name in ('plant_id', 'line_id', 'shift_id', 'department', 'machine_id'):
            value = getattr(self, name)
            if value:
                parts.append(f"{name}={value}")
        return f"ReportFilter({', '.join(parts)})"
