"""
Report Filtering Utilities

Functions to filter already-fetched plans and events with a ReportFilter.
The PostgreSQL adapter pushes the same criteria into SQL instead
(see db/queries.py); the in-memory repositories use these.
"""

from typing import Dict, Iterable, List, Optional, TypeVar

from core.models import DowntimeEvent, DowntimeKind, ProductionPlan, RejectionEvent, UpdtCategory
from utils.formatting import local_date

from .models import ReportFilter

T = TypeVar('T')


def active_only(items: Iterable[T]) -> List[T]:
    """Drop soft-deleted records (deleted_at set)"""
    return [item for item in items if getattr(item, 'deleted_at', None) is None]


def plan_matches(plan: ProductionPlan, filters: ReportFilter, check_dates: bool = True) -> bool:
    """
    Check a plan against the filter.

    Args:
        plan: Production plan
        filters: Report criteria
        check_dates: Apply the date range to plan_date

    Returns:
        True if the plan satisfies every criterion
    """
    if check_dates and not filters.contains(plan.plan_date):
        return False

    # Line is more specific than plant
    if filters.line_id:
        if plan.line_id != filters.line_id:
            return False
    elif filters.plant_id and plan.plant_id != filters.plant_id:
        return False

    if filters.shift_id and plan.shift_id != filters.shift_id:
        return False

    return True


def filter_plans(plans: Iterable[ProductionPlan], filters: ReportFilter) -> List[ProductionPlan]:
    """
    Filter plans by date range, line/plant and shift.

    Example:
        >>> selected = filter_plans(plans, ReportFilter(start_date="2025-03-01", line_id="L1"))
    """
    return [p for p in active_only(plans) if plan_matches(p, filters)]


def filter_downtime_events(
    events: Iterable[DowntimeEvent],
    plans_by_id: Dict[str, ProductionPlan],
    filters: ReportFilter
) -> List[DowntimeEvent]:
    """
    Filter downtime events through their plan plus department and machine.

    The department criterion only matches UPDT events whose category belongs
    to that department.
    """
    selected = []

    for event in events:
        plan = plans_by_id.get(event.plan_id)
        if plan is None or not plan_matches(plan, filters):
            continue

        if filters.department:
            category = event.category
            if event.kind != DowntimeKind.UPDT or not isinstance(category, UpdtCategory):
                continue
            if category.department != filters.department:
                continue

        if filters.machine_id and event.machine_id != filters.machine_id:
            continue

        selected.append(event)

    return selected


def filter_rejection_events(
    events: Iterable[RejectionEvent],
    plans_by_id: Dict[str, ProductionPlan],
    filters: ReportFilter,
    timezone: Optional[str] = None
) -> List[RejectionEvent]:
    """
    Filter rejection events by occurrence date and their plan's line/plant/shift.

    The date range applies to occurred_at (in the plant time zone), not to
    the plan date.
    """
    selected = []

    for event in events:
        if not filters.contains(local_date(event.occurred_at, timezone)):
            continue

        plan = plans_by_id.get(event.plan_id)
        if plan is None or not plan_matches(plan, filters, check_dates=False):
            continue

        selected.append(event)

    return selected
