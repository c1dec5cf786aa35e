"""
Capacity Allocation

Allocates a shift's finite loading time across the production plans scheduled
on the same (plan_date, line, shift), strictly in ascending sequence order.

For a target sequence:
    used_time      = Σ planned_qty × cycle_time_sec  (plans with sequence < target)
    available_time = max(0, loading_time - used_time)
    max_planned_qty = floor(available_time / cycle_time_sec)

The allocation is a pure fold over the ordered plan list the caller passes
in. Re-sequencing a plan invalidates every allocation at or after the moved
position; the caller decides when to recompute (see sequences_to_recompute).
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from core.exceptions import DuplicateSequenceError, NotFoundError
from core.models import ProductionPlan, Shift

logger = logging.getLogger(__name__)


@dataclass
class CapacityAllocation:
    """Time budget available to one sequence of a shift"""
    sequence: int
    total_loading_time_sec: int
    used_time_sec: int
    available_time_sec: int
    max_planned_qty: int
    plans: List[Dict] = field(default_factory=list)  # plans counted as used

    def to_dict(self) -> Dict:
        """Convert to dictionary for easy display"""
        return {
            'sequence': self.sequence,
            'total_loading_time_sec': self.total_loading_time_sec,
            'used_time_sec': self.used_time_sec,
            'available_time_sec': self.available_time_sec,
            'max_planned_qty': self.max_planned_qty,
            'plans': list(self.plans),
        }


def _same_slot(plan: ProductionPlan, shift: Shift, plan_date: Optional[date], line_id: Optional[str]) -> bool:
    if plan.shift_id != shift.id:
        return False
    if plan_date is not None and plan.plan_date != plan_date:
        return False
    if line_id is not None and plan.line_id != line_id:
        return False
    return True


def available_time(
    shift: Optional[Shift],
    plans: Iterable[ProductionPlan],
    target_sequence: int,
    cycle_time_sec: int,
    exclude_plan_id: Optional[str] = None,
    shift_id: Optional[str] = None,
    plan_date: Optional[date] = None,
    line_id: Optional[str] = None
) -> CapacityAllocation:
    """
    Calculate available time and maximum planned quantity for a sequence.

    Args:
        shift: Shift the plans run on (None when the lookup failed)
        plans: Plans already scheduled on the shift, ordered by sequence
        target_sequence: Sequence being created or edited
        cycle_time_sec: Cycle time of the plan being created or edited
        exclude_plan_id: Plan being edited, never counted against itself
        shift_id: Id used in the error when shift is None
        plan_date: Optional extra filter on plan_date
        line_id: Optional extra filter on line_id

    Returns:
        CapacityAllocation for target_sequence

    Raises:
        NotFoundError: If the shift does not exist

    Example:
        >>> allocation = available_time(shift, plans, target_sequence=3, cycle_time_sec=60)
        >>> print(allocation.max_planned_qty)
    """
    if shift is None:
        raise NotFoundError("Shift", shift_id)

    total_loading_time_sec = shift.loading_time_in_sec
    used_time_sec = 0
    plan_details = []

    for plan in plans:
        # Skip the plan being edited
        if exclude_plan_id is not None and plan.id == exclude_plan_id:
            continue

        if not _same_slot(plan, shift, plan_date, line_id):
            continue

        if plan.sequence < target_sequence:
            plan_time_sec = plan.planned_time_sec
            used_time_sec += plan_time_sec
            plan_details.append({
                'work_order_no': plan.work_order_no,
                'sequence': plan.sequence,
                'planned_qty': plan.planned_qty,
                'cycle_time_sec': plan.cycle_time_sec,
                'total_time_sec': plan_time_sec,
            })

    available_time_sec = max(0, total_loading_time_sec - used_time_sec)
    max_planned_qty = available_time_sec // cycle_time_sec if cycle_time_sec > 0 else 0

    if used_time_sec > total_loading_time_sec:
        logger.warning(
            f"Shift {shift.id}: sequences before {target_sequence} use {used_time_sec}s, "
            f"more than the {total_loading_time_sec}s loading time"
        )

    return CapacityAllocation(
        sequence=target_sequence,
        total_loading_time_sec=total_loading_time_sec,
        used_time_sec=used_time_sec,
        available_time_sec=available_time_sec,
        max_planned_qty=int(max_planned_qty),
        plans=sorted(plan_details, key=lambda p: p['sequence']),
    )


def allocate_sequence_budget(
    shift: Optional[Shift],
    plans: Iterable[ProductionPlan],
    shift_id: Optional[str] = None
) -> List[CapacityAllocation]:
    """
    Recompute the allocation of every sequence on a shift, in order.

    Used after a re-sequence or a quantity change: each plan gets the budget
    left by the plans before it.

    Args:
        shift: Shift the plans run on
        plans: All plans on the (plan_date, line, shift)
        shift_id: Id used in the error when shift is None

    Returns:
        One CapacityAllocation per plan, ascending by sequence
    """
    if shift is None:
        raise NotFoundError("Shift", shift_id)

    ordered = sorted(plans, key=lambda p: p.sequence)
    return [
        available_time(
            shift,
            ordered,
            plan.sequence,
            plan.cycle_time_sec,
            exclude_plan_id=plan.id,
        )
        for plan in ordered
    ]


def sequences_to_recompute(
    plans: Iterable[ProductionPlan],
    old_sequence: int,
    new_sequence: int
) -> List[int]:
    """
    Sequences whose allocation is invalidated by moving a plan.

    Everything at or after the earlier of the two positions depends on the
    moved plan's time.
    """
    start = min(old_sequence, new_sequence)
    return sorted({p.sequence for p in plans if p.sequence >= start} | {new_sequence})


def next_sequence(plans: Iterable[ProductionPlan]) -> int:
    """Next free sequence number: max(sequence) + 1, or 1 for an empty shift."""
    sequences = [p.sequence for p in plans]
    return max(sequences) + 1 if sequences else 1


def next_work_order_no(plan_date: date, existing_work_order_nos: Iterable[str]) -> str:
    """
    Generate the next work order number for a date.

    Format: WO-YYMMDDNNNN where NNNN is a per-date counter.

    Example:
        >>> next_work_order_no(date(2025, 3, 7), ["WO-2503070001"])
        'WO-2503070002'
    """
    date_prefix = f"WO-{plan_date:%y%m%d}"
    pattern = re.compile(rf"^{date_prefix}(\d{{4}})$")

    max_counter = 0
    for work_order_no in existing_work_order_nos:
        match = pattern.match(work_order_no or "")
        if match:
            max_counter = max(max_counter, int(match.group(1)))

    return f"{date_prefix}{max_counter + 1:04d}"


def ensure_sequence_free(
    plans: Iterable[ProductionPlan],
    plan_date: date,
    line_id: str,
    shift_id: str,
    sequence: int,
    exclude_plan_id: Optional[str] = None
):
    """
    Check that no other live plan holds the sequence on (plan_date, line, shift).

    Raises:
        DuplicateSequenceError: If the sequence is taken
    """
    for plan in plans:
        if plan.id == exclude_plan_id or plan.deleted_at is not None:
            continue
        if (
            plan.plan_date == plan_date
            and plan.line_id == line_id
            and plan.shift_id == shift_id
            and plan.sequence == sequence
        ):
            raise DuplicateSequenceError(plan_date, line_id, shift_id, sequence)

