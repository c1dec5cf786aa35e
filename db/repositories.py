"""
Repository Interfaces

Narrow read contracts the report layer needs from the production store, plus
upsert-by-plan-id for the two derived records. Implementations:
- db/memory.py: in-memory (fixtures, tests, demos)
- db/postgres.py: PostgreSQL via psycopg2

Every implementation returns live records only (soft-deleted rows filtered
inside the repository) and plain core.models dataclasses.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional

from core.models import (
    DowntimeEvent,
    LossTimeSummary,
    OEERecord,
    PlannedDowntimeEvent,
    ProductionPlan,
    RejectionEvent,
    Shift,
)
from core.time_windows.models import ReportFilter


class ShiftRepository(ABC):

    @abstractmethod
    def get_by_id(self, shift_id: str) -> Optional[Shift]:
        """Shift by id, None if missing or deleted"""

    def list_by_ids(self, shift_ids: Iterable[str]) -> Dict[str, Shift]:
        shifts = {}
        for shift_id in set(shift_ids):
            shift = self.get_by_id(shift_id)
            if shift is not None:
                shifts[shift_id] = shift
        return shifts


class ProductionPlanRepository(ABC):

    @abstractmethod
    def get_by_id(self, plan_id: str) -> Optional[ProductionPlan]:
        """Plan by id, None if missing or deleted"""

    @abstractmethod
    def list_for_slot(self, plan_date: date, line_id: str, shift_id: str) -> List[ProductionPlan]:
        """Plans on one (plan_date, line, shift), ascending by sequence"""

    @abstractmethod
    def list_by_filter(self, filters: ReportFilter) -> List[ProductionPlan]:
        """Plans matching the date range, line/plant and shift, by plan_date then sequence"""

    @abstractmethod
    def list_by_ids(self, plan_ids: Iterable[str]) -> Dict[str, ProductionPlan]:
        """Plans keyed by id"""


class DowntimeEventRepository(ABC):

    @abstractmethod
    def list_for_plans(
        self,
        plan_ids: Iterable[str],
        department: Optional[str] = None,
        machine_id: Optional[str] = None
    ) -> List[DowntimeEvent]:
        """
        Downtime events of the given plans.

        Args:
            plan_ids: Plan ids
            department: Only UPDT events whose category belongs to this department
            machine_id: Only events on this machine
        """


class PlannedDowntimeEventRepository(ABC):

    @abstractmethod
    def list_for_plans(self, plan_ids: Iterable[str]) -> List[PlannedDowntimeEvent]:
        """Planned downtime events of the given plans"""


class RejectionEventRepository(ABC):

    @abstractmethod
    def list_between(
        self,
        start_date: Optional[date],
        end_date: Optional[date],
        timezone: Optional[str] = None
    ) -> List[RejectionEvent]:
        """
        Rejection events that occurred within the dates (inclusive).

        occurred_at is compared in the given time zone, or the repository's
        own when omitted.
        """


class LossTimeSummaryRepository(ABC):

    @abstractmethod
    def get(self, plan_id: str) -> Optional[LossTimeSummary]:
        """Summary of a plan, None if never computed"""

    @abstractmethod
    def upsert(self, summary: LossTimeSummary) -> bool:
        """
        Insert or overwrite the plan's summary.

        Returns:
            True if the row was written, False if it was already present
            and the write was skipped
        """

    @abstractmethod
    def list_for_plans(self, plan_ids: Iterable[str]) -> Dict[str, LossTimeSummary]:
        """Summaries keyed by plan id"""


class OEERecordRepository(ABC):

    @abstractmethod
    def get(self, plan_id: str) -> Optional[OEERecord]:
        """OEE record of a plan, None if never computed"""

    @abstractmethod
    def upsert(self, record: OEERecord) -> bool:
        """Insert or overwrite the plan's OEE record (see LossTimeSummaryRepository.upsert)"""

    @abstractmethod
    def list_for_plans(self, plan_ids: Iterable[str]) -> Dict[str, OEERecord]:
        """OEE records keyed by plan id"""


@dataclass
class Repositories:
    """All repositories a report service needs"""
    shifts: ShiftRepository
    plans: ProductionPlanRepository
    downtimes: DowntimeEventRepository
    planned_downtimes: PlannedDowntimeEventRepository
    rejections: RejectionEventRepository
    loss_times: LossTimeSummaryRepository
    oee_records: OEERecordRepository
