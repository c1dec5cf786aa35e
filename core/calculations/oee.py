"""
OEE Calculator for Production Plans

OEE = Availability × Performance × Quality, all as percentages (0-100):
- Quality      = (actual - NG) / actual × 100
- Availability = actual working / (plan working + PDT + UPDT) × 100
- Performance  = plan working / actual working × 100
- OEE          = A × P × Q / 10000

Availability and Performance come from the plan's loss-time summary. Without
one they are 0 (or an error in strict mode), never estimated.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from core.calculations.loss_time import LossTimeBreakdown
from core.exceptions import MissingLossTimeError
from core.models import LossTimeSummary, OEERecord, ProductionPlan

logger = logging.getLogger(__name__)

LossTime = Union[LossTimeSummary, LossTimeBreakdown]

OEE_COMPONENTS = ['oee', 'availability', 'performance', 'quality']


@dataclass
class OEEMetrics:
    """Container for OEE calculation results"""
    availability: float  # 0 to 100
    performance: float   # 0 to 100
    quality: float       # 0 to 100
    oee: float           # 0 to 100

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary for easy display"""
        return {
            'availability': self.availability,
            'performance': self.performance,
            'quality': self.quality,
            'oee': self.oee
        }

    def to_record(self, plan_id: str) -> OEERecord:
        """Persisted upsert payload for the plan"""
        return OEERecord(plan_id=plan_id, **self.to_dict())


def _percent(value: float) -> float:
    # Bound to [0, 100]
    return float(np.clip(value, 0.0, 100.0))


def calculate_quality(actual_qty: int, ng_qty: int) -> float:
    """
    Calculate quality rate.

    Args:
        actual_qty: Produced quantity
        ng_qty: Rejected quantity

    Returns:
        Quality percentage (0-100), 0 when nothing was produced

    Example:
        >>> calculate_quality(100, 5)
        95.0
    """
    if actual_qty <= 0:
        return 0.0
    return (actual_qty - ng_qty) / actual_qty * 100


def calculate_availability(loss_time: LossTime) -> float:
    """Actual working time over total tracked time, as a percentage."""
    total_time = loss_time.plan_working_sec + loss_time.pdt_sec + loss_time.updt_sec
    if total_time <= 0:
        return 0.0
    return loss_time.actual_working_sec / total_time * 100


def calculate_performance(loss_time: LossTime) -> float:
    """Plan working time over actual working time, as a percentage."""
    if loss_time.actual_working_sec <= 0:
        return 0.0
    return loss_time.plan_working_sec / loss_time.actual_working_sec * 100


def compute_oee(
    planned_qty: int,
    actual_qty: int,
    ng_qty: int,
    loss_time: Optional[LossTime] = None,
    strict: bool = False,
    plan_id: Optional[str] = None
) -> OEEMetrics:
    """
    Calculate OEE for a production plan.

    Args:
        planned_qty: Planned quantity
        actual_qty: Produced quantity
        ng_qty: Rejected quantity
        loss_time: LossTimeSummary or LossTimeBreakdown for the plan
        strict: Raise instead of returning 0 when loss_time is missing
        plan_id: Used in log and error messages

    Returns:
        OEEMetrics with 2-decimal percentages, each within [0, 100]

    Raises:
        MissingLossTimeError: If strict and no loss time is available

    Example:
        >>> metrics = compute_oee(100, 100, 5, summary)
        >>> print(f"OEE: {metrics.oee:.1f}%")
    """
    quality = _percent(calculate_quality(actual_qty, ng_qty))

    if loss_time is None:
        if strict:
            raise MissingLossTimeError(plan_id)
        logger.warning(
            f"No loss time for plan {plan_id}: availability and performance set to 0"
        )
        availability = 0.0
        performance = 0.0
    else:
        availability = _percent(calculate_availability(loss_time))
        performance = _percent(calculate_performance(loss_time))

    oee = availability * performance * quality / 10000

    return OEEMetrics(
        availability=round(availability, 2),
        performance=round(performance, 2),
        quality=round(quality, 2),
        oee=round(oee, 2)
    )


def achievement_percent(planned_qty: int, actual_qty: int) -> float:
    """
    Actual over planned quantity, 1 decimal.

    Example:
        >>> achievement_percent(200, 150)
        75.0
    """
    if planned_qty <= 0:
        return 0.0
    return round(actual_qty / planned_qty * 100, 1)


def daily_performance(
    plans: Iterable[ProductionPlan],
    date_key: Callable[[date], str] = lambda d: d.isoformat()
) -> List[Dict]:
    """
    Aggregate planned vs actual quantity per plan date.

    Args:
        plans: Production plans in the date range
        date_key: Formats plan_date into the output key

    Returns:
        List of {'date', 'planned_qty', 'actual_qty', 'performance'} ordered by date
    """
    df = pd.DataFrame(
        [
            {'plan_date': p.plan_date, 'planned_qty': p.planned_qty, 'actual_qty': p.actual_qty}
            for p in plans
        ],
        columns=['plan_date', 'planned_qty', 'actual_qty']
    )
    if df.empty:
        return []

    df = df.sort_values('plan_date', kind='stable')
    df['date'] = df['plan_date'].map(date_key)

    daily = df.groupby('date', sort=False).agg(
        planned_qty=('planned_qty', 'sum'),
        actual_qty=('actual_qty', 'sum'),
    ).reset_index()

    planned = daily['planned_qty'].where(daily['planned_qty'] > 0)
    daily['performance'] = (daily['actual_qty'] / planned * 100).round(2).fillna(0.0)

    return daily.to_dict('records')


def average_oee_by_date(
    records: Iterable[OEERecord],
    date_of: Callable[[OEERecord], str]
) -> List[Dict]:
    """
    Average every OEE component per date.

    Args:
        records: OEE records to aggregate
        date_of: Returns the date key of a record (usually its plan date)

    Returns:
        List of {'date', 'oee', 'availability', 'performance', 'quality'}
        in first-seen date order
    """
    df = pd.DataFrame(
        [
            {
                'date': date_of(r),
                'oee': float(r.oee),
                'availability': float(r.availability),
                'performance': float(r.performance),
                'quality': float(r.quality),
            }
            for r in records
        ],
        columns=['date'] + OEE_COMPONENTS
    )
    if df.empty:
        return []

    daily = df.groupby('date', sort=False)[OEE_COMPONENTS].mean().round(2).reset_index()
    return daily.to_dict('records')
