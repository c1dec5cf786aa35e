"""
Secure Query Builder Module

Parameterized queries for the production database. Every identifier coming
from a report filter is validated before it reaches a query, and values are
always passed as parameters, never interpolated.

Soft-deleted rows (deleted_at set) are excluded here, in one place, so that
repositories only ever see live records.
"""

import logging
import re
from datetime import date
from typing import Any, Iterable, List, Optional, Tuple

from core.models import LossTimeSummary, OEERecord
from core.time_windows.models import ReportFilter

logger = logging.getLogger(__name__)

Query = Tuple[str, List[Any]]

_IDENTIFIER_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')
_DEPARTMENT_PATTERN = re.compile(r'^[\w &/().-]+$')


# ============================================================
# SELECT LISTS
# ============================================================

SHIFT_COLUMNS = """
    s.id, s.line_id, s.shift_number AS number,
    s.work_start, s.work_end,
    s.break1_start, s.break1_end,
    s.break2_start, s.break2_end,
    s.break3_start, s.break3_end,
    s.loading_time_in_sec, s.deleted_at
"""

PLAN_COLUMNS = """
    p.id, p.line_id, l.plant_id, l.name AS line_name, p.shift_id,
    p.plan_date, p.sequence, p.cycle_time_sec,
    p.planned_qty, p.actual_qty, p.ng_qty, p.status,
    p.started_at, p.completed_at, p.work_order_no,
    pt.part_no, pt.name AS part_name, p.deleted_at
"""

PLAN_FROM = """
    FROM production_plans p
    JOIN lines l ON l.id = p.line_id
    LEFT JOIN parts pt ON pt.id = p.part_id
"""


class SecureQueryBuilder:
    """Secure query builder with parameterized queries and input validation."""

    @staticmethod
    def validate_identifier(value: str) -> bool:
        """
        Validate a record id (uuid or cuid style).

        Args:
            value: Identifier to validate

        Returns:
            bool: True if valid identifier format
        """
        if not value or len(str(value)) > 64:
            return False
        return bool(_IDENTIFIER_PATTERN.match(str(value)))

    @staticmethod
    def validate_department(department: str) -> bool:
        """Validate a department name (letters, digits, spaces and simple punctuation)"""
        if not department or len(department) > 100:
            return False
        return bool(_DEPARTMENT_PATTERN.match(department))

    @staticmethod
    def live(alias: str) -> str:
        """Soft-delete predicate for a table alias"""
        return f"{alias}.deleted_at IS NULL"

    def _validated_ids(self, ids: Iterable[str], label: str) -> List[str]:
        validated = []
        for value in ids:
            if self.validate_identifier(value):
                validated.append(str(value))
            else:
                logger.warning(f"Invalid {label} filtered out: {value}")
        return validated

    def _require_identifier(self, value: str, label: str) -> str:
        if not self.validate_identifier(value):
            raise ValueError(f"Invalid {label}: {value!r}")
        return str(value)

    # ============================================================
    # MASTER DATA AND PLANS
    # ============================================================

    def build_shifts_query(self, shift_ids: Iterable[str]) -> Query:
        """
        Build query for live shifts by id.

        Args:
            shift_ids: Shift ids

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)
        """
        validated = self._validated_ids(shift_ids, "shift_id")
        if not validated:
            return f"SELECT {SHIFT_COLUMNS} FROM shifts s WHERE 1=0;", []

        query = f"""
            SELECT {SHIFT_COLUMNS}
            FROM shifts s
            WHERE s.id = ANY(%s)
            AND {self.live('s')};
        """
        return query, [validated]

    def build_plans_by_id_query(self, plan_ids: Iterable[str]) -> Query:
        """Build query for live plans by id"""
        validated = self._validated_ids(plan_ids, "plan_id")
        if not validated:
            return f"SELECT {PLAN_COLUMNS} {PLAN_FROM} WHERE 1=0;", []

        query = f"""
            SELECT {PLAN_COLUMNS}
            {PLAN_FROM}
            WHERE p.id = ANY(%s)
            AND {self.live('p')};
        """
        return query, [validated]

    def build_plans_for_slot_query(self, plan_date: date, line_id: str, shift_id: str) -> Query:
        """
        Build query for every live plan on one (plan_date, line, shift).

        Plans of every status are returned, ordered by sequence.
        """
        line_id = self._require_identifier(line_id, "line_id")
        shift_id = self._require_identifier(shift_id, "shift_id")

        query = f"""
            SELECT {PLAN_COLUMNS}
            {PLAN_FROM}
            WHERE p.plan_date = %s
            AND p.line_id = %s
            AND p.shift_id = %s
            AND {self.live('p')}
            ORDER BY p.sequence ASC;
        """
        return query, [plan_date, line_id, shift_id]

    def build_plans_by_filter_query(self, filters: ReportFilter) -> Query:
        """
        Build query for live plans matching a report filter.

        Line takes precedence over plant. Department and machine criteria
        apply to downtime events and are not part of this query.

        Args:
            filters: Report criteria

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)

        Raises:
            ValueError: If an id in the filter is malformed
        """
        conditions = [self.live('p')]
        parameters: List[Any] = []

        if filters.start_date:
            conditions.append("p.plan_date >= %s")
            parameters.append(filters.start_date)
        if filters.end_date:
            conditions.append("p.plan_date <= %s")
            parameters.append(filters.end_date)

        if filters.line_id:
            conditions.append("p.line_id = %s")
            parameters.append(self._require_identifier(filters.line_id, "line_id"))
        elif filters.plant_id:
            conditions.append("l.plant_id = %s")
            parameters.append(self._require_identifier(filters.plant_id, "plant_id"))

        if filters.shift_id:
            conditions.append("p.shift_id = %s")
            parameters.append(self._require_identifier(filters.shift_id, "shift_id"))

        query = f"""
            SELECT {PLAN_COLUMNS}
            {PLAN_FROM}
            WHERE {' AND '.join(conditions)}
            ORDER BY p.plan_date ASC, p.sequence ASC;
        """

        logger.info(f"Built secure plan query for {filters!r}")
        return query, parameters

    # ============================================================
    # EVENTS
    # ============================================================

    def build_downtime_events_query(
        self,
        plan_ids: Iterable[str],
        department: Optional[str] = None,
        machine_id: Optional[str] = None
    ) -> Query:
        """
        Build query for downtime events of the given plans with their category.

        Args:
            plan_ids: Plan ids
            department: Only UPDT events of this department
            machine_id: Only events on this machine

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)
        """
        validated = self._validated_ids(plan_ids, "plan_id")

        select = """
            SELECT
                d.id, d.plan_id, d.kind, d.duration_sec,
                d.start_time, d.end_time, d.machine_id, d.note,
                pc.id AS pdt_category_id, pc.name AS pdt_category_name,
                pc.default_duration_min,
                uc.id AS updt_category_id, uc.name AS updt_category_name,
                uc.department
            FROM downtime_events d
            LEFT JOIN pdt_categories pc ON pc.id = d.pdt_category_id
            LEFT JOIN updt_categories uc ON uc.id = d.updt_category_id
        """
        if not validated:
            return f"{select} WHERE 1=0;", []

        conditions = ["d.plan_id = ANY(%s)", self.live('d')]
        parameters: List[Any] = [validated]

        if department:
            if not self.validate_department(department):
                raise ValueError(f"Invalid department: {department!r}")
            conditions.append("d.kind = 'UPDT'")
            conditions.append("uc.department = %s")
            parameters.append(department)

        if machine_id:
            conditions.append("d.machine_id = %s")
            parameters.append(self._require_identifier(machine_id, "machine_id"))

        query = f"""
            {select}
            WHERE {' AND '.join(conditions)}
            ORDER BY d.plan_id, d.start_time NULLS LAST;
        """
        return query, parameters

    def build_planned_downtime_events_query(self, plan_ids: Iterable[str]) -> Query:
        """Build query for planned downtime events of the given plans with their category"""
        validated = self._validated_ids(plan_ids, "plan_id")

        select = """
            SELECT
                e.id, e.plan_id, e.duration_sec, e.over_pdt_duration_sec,
                e.start_time, e.end_time,
                pc.id AS category_id, pc.name AS category_name,
                pc.default_duration_min
            FROM planned_downtime_events e
            JOIN pdt_categories pc ON pc.id = e.pdt_category_id
        """
        if not validated:
            return f"{select} WHERE 1=0;", []

        query = f"""
            {select}
            WHERE e.plan_id = ANY(%s)
            AND {self.live('e')}
            ORDER BY e.plan_id, e.start_time NULLS LAST;
        """
        return query, [validated]

    def build_rejection_events_query(
        self,
        start_date: Optional[date],
        end_date: Optional[date],
        timezone: str
    ) -> Query:
        """
        Build query for rejection events by occurrence date.

        The date range is compared against occurred_at converted to the plant
        time zone.

        Args:
            start_date: First day (inclusive), open when None
            end_date: Last day (inclusive), open when None
            timezone: Plant time zone name

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)
        """
        conditions = [self.live('r')]
        parameters: List[Any] = []

        if start_date:
            conditions.append("(r.occurred_at AT TIME ZONE %s)::date >= %s")
            parameters.extend([timezone, start_date])
        if end_date:
            conditions.append("(r.occurred_at AT TIME ZONE %s)::date <= %s")
            parameters.extend([timezone, end_date])

        query = f"""
            SELECT
                r.id, r.plan_id, r.occurred_at, r.qty, r.category,
                r.criteria_id, rc.name AS criteria, r.note
            FROM rejection_events r
            LEFT JOIN rejection_criteria rc ON rc.id = r.criteria_id
            WHERE {' AND '.join(conditions)}
            ORDER BY r.occurred_at ASC;
        """
        return query, parameters

    # ============================================================
    # DERIVED RECORDS
    # ============================================================

    def build_loss_time_query(self, plan_ids: Iterable[str]) -> Query:
        """Build query for stored loss-time summaries"""
        validated = self._validated_ids(plan_ids, "plan_id")
        select = """
            SELECT plan_id, plan_working_sec, actual_working_sec, pdt_sec, updt_sec
            FROM loss_time_summaries
        """
        if not validated:
            return f"{select} WHERE 1=0;", []
        return f"{select} WHERE plan_id = ANY(%s);", [validated]

    def build_oee_records_query(self, plan_ids: Iterable[str]) -> Query:
        """Build query for stored OEE records"""
        validated = self._validated_ids(plan_ids, "plan_id")
        select = """
            SELECT plan_id, availability, performance, quality, oee
            FROM oee_records
        """
        if not validated:
            return f"{select} WHERE 1=0;", []
        return f"{select} WHERE plan_id = ANY(%s);", [validated]

    def build_loss_time_upsert(self, summary: LossTimeSummary) -> Query:
        """
        Build insert-or-update of one plan's loss-time summary.

        plan_id is the conflict target, so repeated writes keep a single row.
        """
        plan_id = self._require_identifier(summary.plan_id, "plan_id")
        query = """
            INSERT INTO loss_time_summaries
                (plan_id, plan_working_sec, actual_working_sec, pdt_sec, updt_sec, updated_at)
            VALUES (%s, %s, %s, %s, %s, NOW())
            ON CONFLICT (plan_id) DO UPDATE SET
                plan_working_sec = EXCLUDED.plan_working_sec,
                actual_working_sec = EXCLUDED.actual_working_sec,
                pdt_sec = EXCLUDED.pdt_sec,
                updt_sec = EXCLUDED.updt_sec,
                updated_at = NOW();
        """
        parameters = [
            plan_id,
            summary.plan_working_sec,
            summary.actual_working_sec,
            summary.pdt_sec,
            summary.updt_sec,
        ]
        return query, parameters

    def build_oee_upsert(self, record: OEERecord) -> Query:
        """Build insert-or-update of one plan's OEE record"""
        plan_id = self._require_identifier(record.plan_id, "plan_id")
        query = """
            INSERT INTO oee_records
                (plan_id, availability, performance, quality, oee, updated_at)
            VALUES (%s, %s, %s, %s, %s, NOW())
            ON CONFLICT (plan_id) DO UPDATE SET
                availability = EXCLUDED.availability,
                performance = EXCLUDED.performance,
                quality = EXCLUDED.quality,
                oee = EXCLUDED.oee,
                updated_at = NOW();
        """
        parameters = [
            plan_id,
            float(record.availability),
            float(record.performance),
            float(record.quality),
            float(record.oee),
        ]
        return query, parameters


# Global instance for convenience
secure_query_builder = SecureQueryBuilder()
