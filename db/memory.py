"""
In-Memory Repositories

Dictionary-backed implementations of the repository interfaces, used for
tests, fixtures and offline analysis of exported data.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Iterable, List, Optional

from core.calculations.capacity import ensure_sequence_free
from core.models import (
    DowntimeEvent,
    LossTimeSummary,
    OEERecord,
    PlannedDowntimeEvent,
    ProductionPlan,
    RejectionEvent,
    Shift,
    UpdtCategory,
)
from core.time_windows.filters import active_only, filter_plans
from core.time_windows.models import ReportFilter
from utils.formatting import local_date

from .repositories import (
    DowntimeEventRepository,
    LossTimeSummaryRepository,
    OEERecordRepository,
    PlannedDowntimeEventRepository,
    ProductionPlanRepository,
    RejectionEventRepository,
    Repositories,
    ShiftRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class InMemoryStore:
    """Shared backing data for the in-memory repositories"""
    shifts: Dict[str, Shift] = field(default_factory=dict)
    plans: Dict[str, ProductionPlan] = field(default_factory=dict)
    downtimes: List[DowntimeEvent] = field(default_factory=list)
    planned_downtimes: List[PlannedDowntimeEvent] = field(default_factory=list)
    rejections: List[RejectionEvent] = field(default_factory=list)
    loss_times: Dict[str, LossTimeSummary] = field(default_factory=dict)
    oee_records: Dict[str, OEERecord] = field(default_factory=dict)

    def add_shift(self, shift: Shift) -> Shift:
        self.shifts[shift.id] = shift
        return shift

    def add_plan(self, plan: ProductionPlan) -> ProductionPlan:
        """
        Store a plan, enforcing the (plan_date, line, shift, sequence) uniqueness.

        Raises:
            DuplicateSequenceError: If the sequence is already taken
        """
        ensure_sequence_free(
            self.plans.values(),
            plan.plan_date,
            plan.line_id,
            plan.shift_id,
            plan.sequence,
            exclude_plan_id=plan.id,
        )
        self.plans[plan.id] = plan
        return plan

    def add_downtime(self, event: DowntimeEvent) -> DowntimeEvent:
        self.downtimes.append(event)
        return event

    def add_planned_downtime(self, event: PlannedDowntimeEvent) -> PlannedDowntimeEvent:
        self.planned_downtimes.append(event)
        return event

    def add_rejection(self, event: RejectionEvent) -> RejectionEvent:
        self.rejections.append(event)
        return event


class InMemoryShiftRepository(ShiftRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    def get_by_id(self, shift_id: str) -> Optional[Shift]:
        shift = self.store.shifts.get(shift_id)
        if shift is None or shift.deleted_at is not None:
            return None
        return shift


class InMemoryProductionPlanRepository(ProductionPlanRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    def get_by_id(self, plan_id: str) -> Optional[ProductionPlan]:
        plan = self.store.plans.get(plan_id)
        if plan is None or plan.deleted_at is not None:
            return None
        return plan

    def list_for_slot(self, plan_date: date, line_id: str, shift_id: str) -> List[ProductionPlan]:
        plans = [
            p for p in active_only(self.store.plans.values())
            if p.plan_date == plan_date and p.line_id == line_id and p.shift_id == shift_id
        ]
        return sorted(plans, key=lambda p: p.sequence)

    def list_by_filter(self, filters: ReportFilter) -> List[ProductionPlan]:
        plans = filter_plans(self.store.plans.values(), filters)
        return sorted(plans, key=lambda p: (p.plan_date, p.sequence))

    def list_by_ids(self, plan_ids: Iterable[str]) -> Dict[str, ProductionPlan]:
        plans = {}
        for plan_id in set(plan_ids):
            plan = self.get_by_id(plan_id)
            if plan is not None:
                plans[plan_id] = plan
        return plans


class InMemoryDowntimeEventRepository(DowntimeEventRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    def list_for_plans(
        self,
        plan_ids: Iterable[str],
        department: Optional[str] = None,
        machine_id: Optional[str] = None
    ) -> List[DowntimeEvent]:
        wanted = set(plan_ids)
        events = []
        for event in self.store.downtimes:
            if event.plan_id not in wanted:
                continue
            if department and not (
                isinstance(event.category, UpdtCategory) and event.category.department == department
            ):
                continue
            if machine_id and event.machine_id != machine_id:
                continue
            events.append(event)
        return events


class InMemoryPlannedDowntimeEventRepository(PlannedDowntimeEventRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    def list_for_plans(self, plan_ids: Iterable[str]) -> List[PlannedDowntimeEvent]:
        wanted = set(plan_ids)
        return [e for e in self.store.planned_downtimes if e.plan_id in wanted]


class InMemoryRejectionEventRepository(RejectionEventRepository):

    def __init__(self, store: InMemoryStore, timezone: Optional[str] = None):
        self.store = store
        self.timezone = timezone

    def list_between(
        self,
        start_date: Optional[date],
        end_date: Optional[date],
        timezone: Optional[str] = None
    ) -> List[RejectionEvent]:
        selected = []
        for event in self.store.rejections:
            day = local_date(event.occurred_at, timezone or self.timezone)
            if start_date and day < start_date:
                continue
            if end_date and day > end_date:
                continue
            selected.append(event)
        return sorted(selected, key=lambda e: e.occurred_at)


class InMemoryLossTimeSummaryRepository(LossTimeSummaryRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    def get(self, plan_id: str) -> Optional[LossTimeSummary]:
        return self.store.loss_times.get(plan_id)

    def upsert(self, summary: LossTimeSummary) -> bool:
        # Keyed by plan id: a second write overwrites, never duplicates
        self.store.loss_times[summary.plan_id] = replace(summary)
        logger.debug(f"Upserted loss time summary for plan {summary.plan_id}")
        return True

    def list_for_plans(self, plan_ids: Iterable[str]) -> Dict[str, LossTimeSummary]:
        return {
            plan_id: self.store.loss_times[plan_id]
            for plan_id in plan_ids if plan_id in self.store.loss_times
        }


class InMemoryOEERecordRepository(OEERecordRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    def get(self, plan_id: str) -> Optional[OEERecord]:
        return self.store.oee_records.get(plan_id)

    def upsert(self, record: OEERecord) -> bool:
        self.store.oee_records[record.plan_id] = replace(record)
        logger.debug(f"Upserted OEE record for plan {record.plan_id}")
        return True

    def list_for_plans(self, plan_ids: Iterable[str]) -> Dict[str, OEERecord]:
        return {
            plan_id: self.store.oee_records[plan_id]
            for plan_id in plan_ids if plan_id in self.store.oee_records
        }


def in_memory_repositories(store: Optional[InMemoryStore] = None, timezone: Optional[str] = None) -> Repositories:
    """
    Build a full repository set over one store.

    Example:
        >>> store = InMemoryStore()
        >>> repos = in_memory_repositories(store)
        >>> store.add_shift(shift)
        >>> repos.shifts.get_by_id(shift.id)
    """
    store = store or InMemoryStore()
    return Repositories(
        shifts=InMemoryShiftRepository(store),
        plans=InMemoryProductionPlanRepository(store),
        downtimes=InMemoryDowntimeEventRepository(store),
        planned_downtimes=InMemoryPlannedDowntimeEventRepository(store),
        rejections=InMemoryRejectionEventRepository(store, timezone),
        loss_times=InMemoryLossTimeSummaryRepository(store),
        oee_records=InMemoryOEERecordRepository(store),
    )
