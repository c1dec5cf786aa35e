"""
Loss-Time Decomposition

Splits a plan's shift time into planned and unplanned losses:

1. Shift duration   = shift loading time (break-less work window if not computed)
2. PDT              = Σ planned downtime events + Σ PDT downtime events
3. UPDT             = Σ UPDT downtime events + Σ planned-downtime overruns (overPDT)
4. Small stops      = count of UPDT events shorter than 5 minutes
5. Plan working     = max(0, shift duration - PDT)
6. Actual working   = max(0, plan working - UPDT)

Order matters: each step narrows the previous one, and both floors keep
over-logged downtime from producing negative working time.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from config import Config
from core.calculations.time_model import loading_time_seconds
from core.exceptions import NotFoundError
from core.models import (
    DowntimeEvent,
    DowntimeKind,
    LossTimeSummary,
    PlannedDowntimeEvent,
    ProductionPlan,
    Shift,
)

logger = logging.getLogger(__name__)

SMALL_STOP_THRESHOLD_SEC = Config.SMALL_STOP_THRESHOLD_SEC


@dataclass
class LossTimeBreakdown:
    """Container for loss-time decomposition results (seconds)"""
    shift_duration_sec: int
    plan_working_sec: int
    actual_working_sec: int
    pdt_sec: int
    updt_sec: int
    over_pdt_sec: int
    small_stop_freq: int

    def to_summary(self, plan_id: str) -> LossTimeSummary:
        """Persisted upsert payload for the plan"""
        return LossTimeSummary(
            plan_id=plan_id,
            plan_working_sec=self.plan_working_sec,
            actual_working_sec=self.actual_working_sec,
            pdt_sec=self.pdt_sec,
            updt_sec=self.updt_sec,
        )

    def to_minutes(self) -> Dict[str, int]:
        """Rounded minute view used by the loss time table"""
        updt_min = round(self.updt_sec / 60)
        return {
            'plan_working_min': round(self.plan_working_sec / 60),
            'actual_working_min': round(self.actual_working_sec / 60),
            'pdt_min': round(self.pdt_sec / 60),
            'updt_min': updt_min,
            'over_pdt_min': round(self.over_pdt_sec / 60),
            'small_stop_freq': self.small_stop_freq,
            'loss_time_min': updt_min,  # Loss time = UPDT
        }


def shift_duration_seconds(shift: Shift) -> int:
    """
    Shift time available to a plan.

    Uses the stored loading time; when it was never computed (0) falls back
    to the work window without breaks as a degraded estimate.
    """
    if shift.loading_time_in_sec:
        return shift.loading_time_in_sec

    if shift.work_start and shift.work_end:
        fallback_sec = loading_time_seconds(shift.work_start, shift.work_end, [])
        logger.warning(
            f"Shift {shift.id} has no loading time, "
            f"using work window without breaks ({fallback_sec}s)"
        )
        return fallback_sec

    return 0


def decompose(
    plan: ProductionPlan,
    shift: Optional[Shift],
    downtime_events: Iterable[DowntimeEvent] = (),
    planned_downtime_events: Iterable[PlannedDowntimeEvent] = ()
) -> LossTimeBreakdown:
    """
    Decompose a plan's shift time into working time and losses.

    Args:
        plan: Running or closed production plan
        shift: The plan's shift (None when the lookup failed)
        downtime_events: PDT/UPDT events logged against the plan
        planned_downtime_events: Planned downtime events, possibly overrunning

    Returns:
        LossTimeBreakdown with all values in seconds

    Raises:
        NotFoundError: If the shift does not exist

    Example:
        >>> breakdown = decompose(plan, shift, downtimes, planned_downtimes)
        >>> print(f"Actual working: {breakdown.actual_working_sec / 60:.0f} min")
    """
    if shift is None:
        raise NotFoundError("Shift", plan.shift_id)

    downtime_events = list(downtime_events)
    planned_downtime_events = list(planned_downtime_events)

    # 1. Shift duration
    shift_duration_sec = shift_duration_seconds(shift)

    # 2. PDT
    pdt_events_sec = sum(e.duration_sec for e in planned_downtime_events)
    pdt_downtimes_sec = sum(
        d.duration_sec for d in downtime_events if d.kind == DowntimeKind.PDT
    )
    pdt_sec = pdt_events_sec + pdt_downtimes_sec

    # 3. UPDT, with overruns reclassified from planned to unplanned
    updt_events = [d for d in downtime_events if d.kind == DowntimeKind.UPDT]
    updt_events_sec = sum(d.duration_sec for d in updt_events)
    over_pdt_sec = sum(e.over_pdt_sec for e in planned_downtime_events)
    updt_sec = updt_events_sec + over_pdt_sec

    # 4. Small stops
    small_stop_freq = sum(
        1 for d in updt_events if d.duration_sec < SMALL_STOP_THRESHOLD_SEC
    )

    # 5. Plan working time
    plan_working_sec = max(0, shift_duration_sec - pdt_sec)

    # 6. Actual working time
    actual_working_sec = max(0, plan_working_sec - updt_sec)

    if pdt_sec + updt_sec > shift_duration_sec:
        logger.warning(
            f"Plan {plan.id}: logged downtime ({pdt_sec + updt_sec}s) exceeds "
            f"shift duration ({shift_duration_sec}s)"
        )

    return LossTimeBreakdown(
        shift_duration_sec=int(shift_duration_sec),
        plan_working_sec=int(plan_working_sec),
        actual_working_sec=int(actual_working_sec),
        pdt_sec=int(pdt_sec),
        updt_sec=int(updt_sec),
        over_pdt_sec=int(over_pdt_sec),
        small_stop_freq=small_stop_freq,
    )
