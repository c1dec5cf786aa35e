"""
PostgreSQL Repositories

Repository implementations backed by the production database. Queries come
from the secure query builder; rows are mapped to core.models dataclasses.
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import psycopg2
from psycopg2 import errors
from psycopg2.extras import RealDictCursor

from config import Config
from core.models import (
    DowntimeEvent,
    DowntimeKind,
    LossTimeSummary,
    OEERecord,
    PdtCategory,
    PlannedDowntimeEvent,
    PlanStatus,
    ProductionPlan,
    RejectionEvent,
    Shift,
    UpdtCategory,
)
from core.time_windows.models import ReportFilter

from .pool import DatabasePool, get_pool
from .queries import Query, secure_query_builder
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


def _as_int(value) -> int:
    """Convert numeric column values (Decimal, None) to int"""
    return int(value) if value is not None else 0


def _as_float(value) -> float:
    return float(value) if value is not None else 0.0


def _text(value) -> Optional[str]:
    return str(value) if value is not None else None


# ============================================================
# ROW MAPPERS
# ============================================================

def shift_from_row(row: Dict[str, Any]) -> Shift:
    return Shift(
        id=str(row["id"]),
        line_id=str(row["line_id"]),
        number=_as_int(row["number"]),
        work_start=row["work_start"],
        work_end=row["work_end"],
        break1_start=row.get("break1_start"),
        break1_end=row.get("break1_end"),
        break2_start=row.get("break2_start"),
        break2_end=row.get("break2_end"),
        break3_start=row.get("break3_start"),
        break3_end=row.get("break3_end"),
        loading_time_in_sec=_as_int(row.get("loading_time_in_sec")),
        deleted_at=row.get("deleted_at"),
    )


def plan_from_row(row: Dict[str, Any]) -> ProductionPlan:
    return ProductionPlan(
        id=str(row["id"]),
        line_id=str(row["line_id"]),
        shift_id=str(row["shift_id"]),
        plan_date=row["plan_date"],
        sequence=_as_int(row["sequence"]),
        cycle_time_sec=_as_int(row["cycle_time_sec"]),
        planned_qty=_as_int(row["planned_qty"]),
        actual_qty=_as_int(row.get("actual_qty")),
        ng_qty=_as_int(row.get("ng_qty")),
        status=PlanStatus(row["status"]),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        work_order_no=row.get("work_order_no") or "",
        plant_id=_text(row.get("plant_id")),
        line_name=row.get("line_name"),
        part_no=row.get("part_no"),
        part_name=row.get("part_name"),
        deleted_at=row.get("deleted_at"),
    )


def downtime_from_row(row: Dict[str, Any]) -> DowntimeEvent:
    kind = DowntimeKind(row["kind"])

    category = None
    if kind == DowntimeKind.PDT and row.get("pdt_category_name") is not None:
        category = PdtCategory(
            name=row["pdt_category_name"],
            default_duration_min=_as_int(row.get("default_duration_min")),
            id=_text(row.get("pdt_category_id")),
        )
    elif kind == DowntimeKind.UPDT and row.get("updt_category_name") is not None:
        category = UpdtCategory(
            department=row.get("department") or "",
            name=row["updt_category_name"],
            id=_text(row.get("updt_category_id")),
        )

    return DowntimeEvent(
        plan_id=str(row["plan_id"]),
        kind=kind,
        duration_sec=_as_int(row["duration_sec"]),
        category=category,
        start_time=row.get("start_time"),
        end_time=row.get("end_time"),
        machine_id=_text(row.get("machine_id")),
        note=row.get("note"),
        id=_text(row.get("id")),
    )


def planned_downtime_from_row(row: Dict[str, Any]) -> PlannedDowntimeEvent:
    over_pdt = row.get("over_pdt_duration_sec")
    return PlannedDowntimeEvent(
        plan_id=str(row["plan_id"]),
        category=PdtCategory(
            name=row["category_name"],
            default_duration_min=_as_int(row.get("default_duration_min")),
            id=_text(row.get("category_id")),
        ),
        duration_sec=_as_int(row["duration_sec"]),
        over_pdt_duration_sec=_as_int(over_pdt) if over_pdt is not None else None,
        start_time=row.get("start_time"),
        end_time=row.get("end_time"),
        id=_text(row.get("id")),
    )


def rejection_from_row(row: Dict[str, Any]) -> RejectionEvent:
    return RejectionEvent(
        plan_id=str(row["plan_id"]),
        occurred_at=row["occurred_at"],
        qty=_as_int(row["qty"]),
        category=row.get("category"),
        criteria_id=_text(row.get("criteria_id")),
        criteria=row.get("criteria"),
        note=row.get("note"),
        id=_text(row.get("id")),
    )


def loss_time_from_row(row: Dict[str, Any]) -> LossTimeSummary:
    return LossTimeSummary(
        plan_id=str(row["plan_id"]),
        plan_working_sec=_as_int(row["plan_working_sec"]),
        actual_working_sec=_as_int(row["actual_working_sec"]),
        pdt_sec=_as_int(row["pdt_sec"]),
        updt_sec=_as_int(row["updt_sec"]),
    )


def oee_from_row(row: Dict[str, Any]) -> OEERecord:
    return OEERecord(
        plan_id=str(row["plan_id"]),
        availability=_as_float(row["availability"]),
        performance=_as_float(row["performance"]),
        quality=_as_float(row["quality"]),
        oee=_as_float(row["oee"]),
    )


# ============================================================
# REPOSITORIES
# ============================================================

class PostgresRepository:
    """Shared query execution for the production database repositories"""

    def __init__(self, db: Optional[DatabasePool] = None):
        self.db = db or get_pool()

    def _fetch(self, query: Query, label: str) -> List[Dict[str, Any]]:
        sql, parameters = query
        try:
            with self.db.get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                    cursor.execute(sql, parameters)
                    rows = cursor.fetchall()
            logger.info(f"Fetched {len(rows)} {label} rows")
            return rows
        except psycopg2.Error as e:
            logger.error(f"Error fetching {label}: {e}", exc_info=True)
            raise

    def _upsert(self, query: Query, label: str, plan_id: str) -> bool:
        sql, parameters = query
        with self.db.get_connection() as conn:
            try:
                with conn.cursor() as cursor:
                    cursor.execute(sql, parameters)
                conn.commit()
                logger.info(f"Stored {label} for plan {plan_id}")
                return True
            except errors.UniqueViolation:
                # A concurrent writer stored the row first
                conn.rollback()
                logger.warning(f"{label} for plan {plan_id} already stored, skipping")
                return False
            except psycopg2.Error as e:
                conn.rollback()
                logger.error(f"Error storing {label} for plan {plan_id}: {e}", exc_info=True)
                raise


class PostgresShiftRepository(PostgresRepository, ShiftRepository):

    def get_by_id(self, shift_id: str) -> Optional[Shift]:
        return self.list_by_ids([shift_id]).get(shift_id)

    def list_by_ids(self, shift_ids: Iterable[str]) -> Dict[str, Shift]:
        rows = self._fetch(secure_query_builder.build_shifts_query(list(set(shift_ids))), "shift")
        shifts = [shift_from_row(row) for row in rows]
        return {shift.id: shift for shift in shifts}


class PostgresProductionPlanRepository(PostgresRepository, ProductionPlanRepository):

    def get_by_id(self, plan_id: str) -> Optional[ProductionPlan]:
        return self.list_by_ids([plan_id]).get(plan_id)

    def list_for_slot(self, plan_date: date, line_id: str, shift_id: str) -> List[ProductionPlan]:
        query = secure_query_builder.build_plans_for_slot_query(plan_date, line_id, shift_id)
        return [plan_from_row(row) for row in self._fetch(query, "production plan")]

    def list_by_filter(self, filters: ReportFilter) -> List[ProductionPlan]:
        query = secure_query_builder.build_plans_by_filter_query(filters)
        return [plan_from_row(row) for row in self._fetch(query, "production plan")]

    def list_by_ids(self, plan_ids: Iterable[str]) -> Dict[str, ProductionPlan]:
        query = secure_query_builder.build_plans_by_id_query(list(set(plan_ids)))
        plans = [plan_from_row(row) for row in self._fetch(query, "production plan")]
        return {plan.id: plan for plan in plans}


class PostgresDowntimeEventRepository(PostgresRepository, DowntimeEventRepository):

    def list_for_plans(
        self,
        plan_ids: Iterable[str],
        department: Optional[str] = None,
        machine_id: Optional[str] = None
    ) -> List[DowntimeEvent]:
        query = secure_query_builder.build_downtime_events_query(
            list(plan_ids), department=department, machine_id=machine_id
        )
        return [downtime_from_row(row) for row in self._fetch(query, "downtime event")]


class PostgresPlannedDowntimeEventRepository(PostgresRepository, PlannedDowntimeEventRepository):

    def list_for_plans(self, plan_ids: Iterable[str]) -> List[PlannedDowntimeEvent]:
        query = secure_query_builder.build_planned_downtime_events_query(list(plan_ids))
        return [planned_downtime_from_row(row) for row in self._fetch(query, "planned downtime event")]


class PostgresRejectionEventRepository(PostgresRepository, RejectionEventRepository):

    def __init__(self, db: Optional[DatabasePool] = None, timezone: Optional[str] = None):
        super().__init__(db)
        self.timezone = timezone or Config.TIMEZONE

    def list_between(
        self,
        start_date: Optional[date],
        end_date: Optional[date],
        timezone: Optional[str] = None
    ) -> List[RejectionEvent]:
        query = secure_query_builder.build_rejection_events_query(
            start_date, end_date, timezone or self.timezone
        )
        return [rejection_from_row(row) for row in self._fetch(query, "rejection event")]


class PostgresLossTimeSummaryRepository(PostgresRepository, LossTimeSummaryRepository):

    def get(self, plan_id: str) -> Optional[LossTimeSummary]:
        return self.list_for_plans([plan_id]).get(plan_id)

    def upsert(self, summary: LossTimeSummary) -> bool:
        query = secure_query_builder.build_loss_time_upsert(summary)
        return self._upsert(query, "Loss time summary", summary.plan_id)

    def list_for_plans(self, plan_ids: Iterable[str]) -> Dict[str, LossTimeSummary]:
        rows = self._fetch(secure_query_builder.build_loss_time_query(list(plan_ids)), "loss time summary")
        summaries = [loss_time_from_row(row) for row in rows]
        return {summary.plan_id: summary for summary in summaries}


class PostgresOEERecordRepository(PostgresRepository, OEERecordRepository):

    def get(self, plan_id: str) -> Optional[OEERecord]:
        return self.list_for_plans([plan_id]).get(plan_id)

    def upsert(self, record: OEERecord) -> bool:
        query = secure_query_builder.build_oee_upsert(record)
        return self._upsert(query, "OEE record", record.plan_id)

    def list_for_plans(self, plan_ids: Iterable[str]) -> Dict[str, OEERecord]:
        rows = self._fetch(secure_query_builder.build_oee_records_query(list(plan_ids)), "OEE record")
        records = [oee_from_row(row) for row in rows]
        return {record.plan_id: record for record in records}


def postgres_repositories(db: Optional[DatabasePool] = None, timezone: Optional[str] = None) -> Repositories:
    """
    Build a full repository set over one production database pool.

    Example:
        >>> repos = postgres_repositories()
        >>> reports = ProductionReports(repos)
    """
    db = db or get_pool()
    return Repositories(
        shifts=PostgresShiftRepository(db),
        plans=PostgresProductionPlanRepository(db),
        downtimes=PostgresDowntimeEventRepository(db),
        planned_downtimes=PostgresPlannedDowntimeEventRepository(db),
        rejections=PostgresRejectionEventRepository(db, timezone),
        loss_times=PostgresLossTimeSummaryRepository(db),
        oee_records=PostgresOEERecordRepository(db),
    )
