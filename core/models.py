"""
Production Data Models

Plain records consumed by the analytics core. The relational store owns every
entity here; the core treats them as immutable inputs for one computation and
only produces the two derived records (LossTimeSummary, OEERecord).

Downtime categories are a tagged union:
- PdtCategory: planned stoppage with a default duration
- UpdtCategory: unplanned stoppage owned by a department
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional, Tuple, Union


class PlanStatus(str, Enum):
    OPEN = "OPEN"
    RUNNING = "RUNNING"
    CLOSED = "CLOSED"
    CANCELED = "CANCELED"


class DowntimeKind(str, Enum):
    PDT = "PDT"
    UPDT = "UPDT"


TimeOfDay = Union[str, time, datetime]


# ============================================================
# MASTER DATA
# ============================================================

@dataclass(frozen=True)
class PdtCategory:
    """Planned downtime category (maintenance, changeover, meetings)."""
    name: str
    default_duration_min: int = 0
    id: Optional[str] = None

    @property
    def kind(self) -> DowntimeKind:
        return DowntimeKind.PDT


@dataclass(frozen=True)
class UpdtCategory:
    """Unplanned downtime category, owned by a department."""
    department: str
    name: str
    id: Optional[str] = None

    @property
    def kind(self) -> DowntimeKind:
        return DowntimeKind.UPDT


DowntimeCategory = Union[PdtCategory, UpdtCategory]


@dataclass
class Shift:
    """
    Shift definition for a line.

    Work and break times are times of day ("HH:MM" strings or time objects).
    loading_time_in_sec is derived once when the shift is created or updated
    (see compute_loading_time) and read as-is afterwards.
    """
    id: str
    line_id: str
    number: int
    work_start: TimeOfDay
    work_end: TimeOfDay
    break1_start: Optional[TimeOfDay] = None
    break1_end: Optional[TimeOfDay] = None
    break2_start: Optional[TimeOfDay] = None
    break2_end: Optional[TimeOfDay] = None
    break3_start: Optional[TimeOfDay] = None
    break3_end: Optional[TimeOfDay] = None
    loading_time_in_sec: int = 0
    deleted_at: Optional[datetime] = None

    @property
    def breaks(self) -> List[Tuple[Optional[TimeOfDay], Optional[TimeOfDay]]]:
        """The three break windows as (start, end) pairs, possibly incomplete."""
        return [
            (self.break1_start, self.break1_end),
            (self.break2_start, self.break2_end),
            (self.break3_start, self.break3_end),
        ]

    def compute_loading_time(self) -> int:
        """Recompute and store loading_time_in_sec from work and break times."""
        from core.calculations.time_model import loading_time_seconds

        self.loading_time_in_sec = loading_time_seconds(
            self.work_start, self.work_end, self.breaks
        )
        return self.loading_time_in_sec


# ============================================================
# PRODUCTION PLANS
# ============================================================

_ALLOWED_TRANSITIONS = {
    PlanStatus.OPEN: {PlanStatus.RUNNING, PlanStatus.CANCELED},
    PlanStatus.RUNNING: {PlanStatus.CLOSED, PlanStatus.CANCELED},
    PlanStatus.CLOSED: set(),
    PlanStatus.CANCELED: set(),
}


@dataclass
class ProductionPlan:
    """
    One sequenced production run on a (plan_date, line, shift).

    sequence is unique per (plan_date, line_id, shift_id). actual_qty and
    ng_qty are only meaningful once the plan is RUNNING or CLOSED.
    """
    id: str
    line_id: str
    shift_id: str
    plan_date: date
    sequence: int
    cycle_time_sec: int
    planned_qty: int
    actual_qty: int = 0
    ng_qty: int = 0
    status: PlanStatus = PlanStatus.OPEN
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    work_order_no: str = ""
    plant_id: Optional[str] = None
    line_name: Optional[str] = None
    part_no: Optional[str] = None
    part_name: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @property
    def planned_time_sec(self) -> int:
        """Shift time this plan reserves: planned_qty x cycle_time_sec."""
        return self.planned_qty * self.cycle_time_sec

    def transition_to(self, status: PlanStatus, at: Optional[datetime] = None):
        """
        Move the plan through its lifecycle.

        OPEN -> RUNNING -> CLOSED, with CANCELED reachable from OPEN or
        RUNNING. CLOSED and CANCELED are terminal.

        Raises:
            ValueError: If the transition is not allowed
        """
        status = PlanStatus(status)
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Invalid status transition for plan {self.id}: "
                f"{self.status.value} -> {status.value}"
            )

        if status == PlanStatus.RUNNING:
            self.started_at = at or self.started_at
        elif status in (PlanStatus.CLOSED, PlanStatus.CANCELED):
            self.completed_at = at or self.completed_at

        self.status = status


# ============================================================
# EVENTS
# ============================================================

@dataclass
class DowntimeEvent:
    """A PDT or UPDT stoppage logged against a single plan."""
    plan_id: str
    kind: DowntimeKind
    duration_sec: int
    category: Optional[DowntimeCategory] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    machine_id: Optional[str] = None
    note: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        """Validate kind against category"""
        self.kind = DowntimeKind(self.kind)
        if self.category is not None and self.category.kind != self.kind:
            raise ValueError(
                f"Downtime event kind {self.kind.value} does not match "
                f"category '{self.category.name}' ({self.category.kind.value})"
            )


@dataclass
class PlannedDowntimeEvent:
    """
    A planned stoppage that may overrun its category's default duration.

    The overrun (over_pdt_duration_sec) is reclassified as unplanned loss.
    When it is not recorded it is derived from the category default.
    """
    plan_id: str
    category: PdtCategory
    duration_sec: int
    over_pdt_duration_sec: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def over_pdt_sec(self) -> int:
        if self.over_pdt_duration_sec is not None:
            return self.over_pdt_duration_sec
        allowed_sec = (self.category.default_duration_min or 0) * 60
        return max(0, self.duration_sec - allowed_sec)


@dataclass
class RejectionEvent:
    """Rejected (NG) quantity recorded against a plan."""
    plan_id: str
    occurred_at: datetime
    qty: int
    category: Optional[str] = None
    criteria_id: Optional[str] = None
    criteria: Optional[str] = None
    note: Optional[str] = None
    id: Optional[str] = None


# ============================================================
# DERIVED RECORDS
# ============================================================

@dataclass
class LossTimeSummary:
    """Persisted loss-time decomposition, one per CLOSED plan."""
    plan_id: str
    plan_working_sec: int
    actual_working_sec: int
    pdt_sec: int
    updt_sec: int


@dataclass
class OEERecord:
    """Persisted OEE percentages, one per CLOSED plan."""
    plan_id: str
    availability: float
    performance: float
    quality: float
    oee: float
