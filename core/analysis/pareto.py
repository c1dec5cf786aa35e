"""
Pareto Analysis

Ranks loss causes (downtime by category, rejections by criteria category) by
their contribution to the total and tracks the cumulative percentage curve
used to pick out the "vital few" causes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd

from config import Config
from core.models import DowntimeEvent, DowntimeKind, PdtCategory, UpdtCategory

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "Unknown"


def _native(value):
    # numpy scalar -> int/float
    return value.item() if hasattr(value, 'item') else value


@dataclass
class ParetoEntry:
    """One ranked category of a Pareto chart"""
    category: str
    magnitude: float
    count: int
    percentage: float
    cumulative: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for chart data"""
        return {
            'category': self.category,
            'magnitude': self.magnitude,
            'count': self.count,
            'percentage': self.percentage,
            'cumulative': self.cumulative,
        }


def downtime_category_label(event: DowntimeEvent) -> str:
    """
    Pareto label for a downtime event.

    - PDT:  "PDT - {category name}"
    - UPDT: "{department} - {category name}"
    - Unresolvable category: "Unknown"
    """
    category = event.category
    if event.kind == DowntimeKind.PDT and isinstance(category, PdtCategory):
        return f"PDT - {category.name}"
    if event.kind == DowntimeKind.UPDT and isinstance(category, UpdtCategory):
        return f"{category.department} - {category.name}"
    return UNKNOWN_CATEGORY


def _label(category: Any) -> str:
    if category is None or category == "":
        return UNKNOWN_CATEGORY
    return str(category)


def pareto_rank(
    events: Iterable[Any],
    category_of: Callable[[Any], Any],
    magnitude_of: Callable[[Any], float],
    precision: Optional[int] = None
) -> List[ParetoEntry]:
    """
    Group events by category and rank them by summed magnitude.

    Args:
        events: Events to analyze
        category_of: Returns the category label of an event. Labels are
                     compared as strings; None or "" -> "Unknown"
        magnitude_of: Returns the quantity or duration of an event
        precision: Decimal places for percentage and cumulative
                   (defaults to Config.PARETO_PRECISION)

    Returns:
        List of ParetoEntry sorted by magnitude descending, then category
        ascending. The last cumulative value is 100 when the total is > 0;
        every percentage is 0 when the total is 0.

    Example:
        >>> entries = pareto_rank(rejections, lambda r: r.category, lambda r: r.qty)
        >>> print([e.cumulative for e in entries])
        [50.0, 80.0, 100.0]
    """
    if precision is None:
        precision = Config.PARETO_PRECISION

    rows = [
        {
            'category': _label(category_of(event)),
            'magnitude': magnitude_of(event) or 0,
        }
        for event in events
    ]

    if not rows:
        return []

    df = pd.DataFrame(rows)
    grouped = (
        df.groupby('category', sort=False)['magnitude']
        .agg(['sum', 'count'])
        .reset_index()
        .rename(columns={'sum': 'magnitude'})
        .sort_values(['magnitude', 'category'], ascending=[False, True], kind='mergesort')
        .reset_index(drop=True)
    )

    total = grouped['magnitude'].sum()

    if total > 0:
        grouped['percentage'] = (grouped['magnitude'] / total * 100).round(precision)
        # Cumulative from running magnitude so the last entry is exactly 100
        grouped['cumulative'] = (grouped['magnitude'].cumsum() / total * 100).round(precision)
    else:
        grouped['percentage'] = 0.0
        grouped['cumulative'] = 0.0

    logger.info(f"Pareto: {len(df)} events in {len(grouped)} categories, total {total}")

    return [
        ParetoEntry(
            category=row['category'],
            magnitude=_native(row['magnitude']),
            count=int(row['count']),
            percentage=float(row['percentage']),
            cumulative=float(row['cumulative']),
        )
        for row in grouped.to_dict('records')
    ]


def pareto_summary(entries: List[ParetoEntry], event_count: int) -> Dict[str, Any]:
    """Totals shown above a Pareto chart"""
    total = sum(e.magnitude for e in entries)
    return {
        'total_events': event_count,
        'total_magnitude': total,
        'categories_count': len(entries),
    }
