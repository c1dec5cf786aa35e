"""
Production Reports

Report services over the repositories: achievement, loss time, OEE,
rejection, the two Pareto reports and the dashboard date series, plus the
two write paths (recomputing a closed plan's results, sequence capacity).

Every report returns a ProductionReport: chart data as a list of dicts and
the detail table as a pandas DataFrame.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from config import Config
from core.analysis.buckets import (
    average_by_date_and_shift,
    bucket_by_date_and_shift,
    to_chart_rows,
)
from core.analysis.pareto import downtime_category_label, pareto_rank, pareto_summary
from core.calculations.capacity import (
    CapacityAllocation,
    allocate_sequence_budget,
    available_time,
    next_sequence,
    next_work_order_no,
)
from core.calculations.loss_time import decompose
from core.calculations.oee import (
    OEEMetrics,
    achievement_percent,
    average_oee_by_date,
    compute_oee,
    daily_performance,
)
from core.exceptions import AnalyticsError, NotFoundError
from core.models import DowntimeKind, PdtCategory, PlanStatus, ProductionPlan, Shift, UpdtCategory
from core.time_windows.filters import filter_downtime_events, filter_rejection_events
from core.time_windows.models import ReportFilter
from db.repositories import Repositories
from utils.formatting import format_date_local, seconds_to_minutes

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"

ACHIEVEMENT_COLUMNS = [
    'id', 'date', 'work_order_no', 'line_name', 'shift_number', 'part_no', 'part_name',
    'cycle_time_sec', 'planned_qty', 'actual_qty', 'ng_qty', 'achievement_percent',
]
LOSS_TIME_COLUMNS = [
    'id', 'date', 'work_order_no', 'line_name', 'shift_number', 'part_no', 'part_name',
    'plan_working_min', 'actual_working_min', 'pdt_min', 'updt_min', 'over_pdt_min',
    'small_stop_freq', 'loss_time_min',
]
OEE_COLUMNS = [
    'id', 'date', 'work_order_no', 'line_name', 'shift_number', 'part_no', 'part_name',
    'availability', 'performance', 'quality', 'oee',
]
REJECTION_COLUMNS = [
    'id', 'date', 'occurred_at', 'work_order_no', 'line_name', 'shift_number',
    'part_no', 'part_name', 'category', 'criteria', 'note', 'qty',
]
PARETO_LOSS_TIME_COLUMNS = [
    'id', 'date', 'work_order_no', 'line_name', 'shift_number', 'part_no', 'part_name',
    'department', 'machine_id', 'category', 'detail', 'kind', 'start_time', 'end_time',
    'loss_time_sec', 'loss_time_min',
]


@dataclass
class ProductionReport:
    """Chart data, detail table and optional summary of one report"""
    chart_data: List[Dict[str, Any]]
    table: pd.DataFrame
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to plain dicts and lists (table as records)"""
        return {
            'chart_data': self.chart_data,
            'table': self.table.to_dict('records'),
            'summary': self.summary,
        }


def _table(rows: List[Dict[str, Any]], columns: List[str]) -> pd.DataFrame:
    """Detail table with a fixed column order, also when empty"""
    return pd.DataFrame(rows, columns=columns)


class ProductionReports:
    """
    Report and recomputation services over a repository set.

    Example:
        >>> reports = ProductionReports(in_memory_repositories(store))
        >>> report = reports.oee_report(ReportFilter(start_date="2025-03-01", end_date="2025-03-31"))
        >>> report.table[['work_order_no', 'oee']]
    """

    def __init__(self, repos: Repositories, timezone: Optional[str] = None):
        self.repos = repos
        self.timezone = timezone or Config.TIMEZONE

    # ============================================================
    # HELPERS
    # ============================================================

    def _filters(self, filters: Optional[ReportFilter], default: str) -> ReportFilter:
        return (filters or ReportFilter()).with_default_range(default, self.timezone)

    def _date_key(self, day: date) -> str:
        return format_date_local(day, self.timezone)

    def _shifts_for(self, plans: Iterable[ProductionPlan]) -> Dict[str, Shift]:
        return self.repos.shifts.list_by_ids(p.shift_id for p in plans)

    @staticmethod
    def _shift_number(shifts: Dict[str, Shift], plan: ProductionPlan) -> int:
        shift = shifts.get(plan.shift_id)
        if shift is None:
            logger.warning(f"Shift {plan.shift_id} of plan {plan.id} not found, charting as shift 0")
            return 0
        return shift.number

    def _plan_columns(self, plan: ProductionPlan, shifts: Dict[str, Shift]) -> Dict[str, Any]:
        """Columns every plan-based table shares"""
        return {
            'id': plan.id,
            'date': self._date_key(plan.plan_date),
            'work_order_no': plan.work_order_no,
            'line_name': plan.line_name or NOT_AVAILABLE,
            'shift_number': self._shift_number(shifts, plan),
            'part_no': plan.part_no or NOT_AVAILABLE,
            'part_name': plan.part_name or NOT_AVAILABLE,
        }

    # ============================================================
    # REPORTS
    # ============================================================

    def achievement_report(self, filters: Optional[ReportFilter] = None) -> ProductionReport:
        """
        Actual quantity per date and shift, and planned vs actual per plan.

        Defaults to the current month.
        """
        filters = self._filters(filters, "month")
        plans = self.repos.plans.list_by_filter(filters)
        shifts = self._shifts_for(plans)

        buckets = bucket_by_date_and_shift(
            plans,
            date_of=lambda p: self._date_key(p.plan_date),
            shift_of=lambda p: self._shift_number(shifts, p),
            value_of=lambda p: p.actual_qty,
        )

        rows = []
        for plan in plans:
            row = self._plan_columns(plan, shifts)
            row.update({
                'cycle_time_sec': plan.cycle_time_sec,
                'planned_qty': plan.planned_qty,
                'actual_qty': plan.actual_qty,
                'ng_qty': plan.ng_qty,
                'achievement_percent': achievement_percent(plan.planned_qty, plan.actual_qty),
            })
            rows.append(row)

        logger.info(f"Achievement report: {len(plans)} plans for {filters!r}")
        return ProductionReport(to_chart_rows(buckets), _table(rows, ACHIEVEMENT_COLUMNS))

    def loss_time_report(self, filters: Optional[ReportFilter] = None) -> ProductionReport:
        """
        Loss time (UPDT) minutes per date and shift, and the decomposition of every plan.

        Plans of every status are included. Plans whose shift no longer
        exists are skipped with a warning. Defaults to the current month.
        """
        filters = self._filters(filters, "month")
        plans = self.repos.plans.list_by_filter(filters)
        shifts = self._shifts_for(plans)

        plan_ids = [p.id for p in plans]
        downtimes = self.repos.downtimes.list_for_plans(plan_ids)
        planned_downtimes = self.repos.planned_downtimes.list_for_plans(plan_ids)

        downtimes_by_plan: Dict[str, list] = {}
        for event in downtimes:
            downtimes_by_plan.setdefault(event.plan_id, []).append(event)
        planned_by_plan: Dict[str, list] = {}
        for event in planned_downtimes:
            planned_by_plan.setdefault(event.plan_id, []).append(event)

        rows = []
        for plan in plans:
            shift = shifts.get(plan.shift_id)
            if shift is None:
                logger.warning(f"Skipping plan {plan.id}: shift {plan.shift_id} not found")
                continue

            breakdown = decompose(
                plan,
                shift,
                downtimes_by_plan.get(plan.id, []),
                planned_by_plan.get(plan.id, []),
            )
            row = self._plan_columns(plan, shifts)
            row.update(breakdown.to_minutes())
            rows.append(row)

        buckets = bucket_by_date_and_shift(
            rows,
            date_of=lambda r: r['date'],
            shift_of=lambda r: r['shift_number'],
            value_of=lambda r: r['loss_time_min'],
        )

        logger.info(f"Loss time report: {len(rows)} plans for {filters!r}")
        return ProductionReport(to_chart_rows(buckets), _table(rows, LOSS_TIME_COLUMNS))

    def oee_report(self, filters: Optional[ReportFilter] = None) -> ProductionReport:
        """
        Average OEE per date and shift (1 decimal), and the stored OEE of every plan.

        Only plans with a stored OEE record appear. Defaults to the current month.
        """
        filters = self._filters(filters, "month")
        plans = self.repos.plans.list_by_filter(filters)
        records = self.repos.oee_records.list_for_plans(p.id for p in plans)
        plans = [p for p in plans if p.id in records]
        shifts = self._shifts_for(plans)

        buckets = average_by_date_and_shift(
            plans,
            date_of=lambda p: self._date_key(p.plan_date),
            shift_of=lambda p: self._shift_number(shifts, p),
            value_of=lambda p: records[p.id].oee,
            decimals=1,
        )

        rows = []
        for plan in plans:
            record = records[plan.id]
            row = self._plan_columns(plan, shifts)
            row.update({
                'availability': float(record.availability),
                'performance': float(record.performance),
                'quality': float(record.quality),
                'oee': float(record.oee),
            })
            rows.append(row)

        logger.info(f"OEE report: {len(rows)} records for {filters!r}")
        return ProductionReport(to_chart_rows(buckets), _table(rows, OEE_COLUMNS))

    def rejection_report(self, filters: Optional[ReportFilter] = None) -> ProductionReport:
        """
        Rejected quantity per date and shift, and every rejection event.

        Events are selected by when they occurred; the chart groups them by
        their plan's date. Defaults to the current month.
        """
        filters = self._filters(filters, "month")
        events, plans = self._rejections(filters)
        shifts = self._shifts_for(plans.values())

        buckets = bucket_by_date_and_shift(
            events,
            date_of=lambda e: self._date_key(plans[e.plan_id].plan_date),
            shift_of=lambda e: self._shift_number(shifts, plans[e.plan_id]),
            value_of=lambda e: e.qty,
        )

        rows = []
        for event in events:
            row = self._plan_columns(plans[event.plan_id], shifts)
            row.update({
                'id': event.id,
                'occurred_at': event.occurred_at,
                'category': event.category or NOT_AVAILABLE,
                'criteria': event.criteria or NOT_AVAILABLE,
                'note': event.note or "-",
                'qty': event.qty,
            })
            rows.append(row)

        logger.info(f"Rejection report: {len(events)} events for {filters!r}")
        return ProductionReport(to_chart_rows(buckets), _table(rows, REJECTION_COLUMNS))

    def pareto_loss_time_report(self, filters: Optional[ReportFilter] = None) -> ProductionReport:
        """
        Downtime seconds ranked by category label, with the cumulative curve.

        Labels are "PDT - {name}" or "{department} - {name}". The department
        filter keeps UPDT events of that department only. Percentages have
        2 decimals. Defaults to today.
        """
        filters = self._filters(filters, "today")
        plans = {p.id: p for p in self.repos.plans.list_by_filter(filters)}
        events = self.repos.downtimes.list_for_plans(
            plans.keys(), department=filters.department, machine_id=filters.machine_id
        )
        events = filter_downtime_events(events, plans, filters)
        shifts = self._shifts_for(plans.values())

        entries = pareto_rank(
            events,
            category_of=downtime_category_label,
            magnitude_of=lambda e: e.duration_sec,
            precision=Config.PARETO_PRECISION,
        )

        chart_data = []
        for entry in entries:
            item = entry.to_dict()
            item['loss_time_sec'] = item.pop('magnitude')
            item['loss_time_min'] = seconds_to_minutes(item['loss_time_sec'])
            chart_data.append(item)

        rows = []
        for event in events:
            category = event.category
            if event.kind == DowntimeKind.PDT:
                department = "Planned Downtime"
            elif isinstance(category, UpdtCategory):
                department = category.department
            else:
                department = "Unknown"

            row = self._plan_columns(plans[event.plan_id], shifts)
            row.update({
                'id': event.id,
                'department': department,
                'machine_id': event.machine_id or NOT_AVAILABLE,
                'category': category.name if isinstance(category, (PdtCategory, UpdtCategory)) else "Unknown",
                'detail': event.note or "-",
                'kind': event.kind.value,
                'start_time': event.start_time,
                'end_time': event.end_time,
                'loss_time_sec': event.duration_sec,
                'loss_time_min': seconds_to_minutes(event.duration_sec),
            })
            rows.append(row)

        summary = pareto_summary(entries, len(events))
        summary['total_loss_time_sec'] = summary.pop('total_magnitude')
        summary['total_loss_time_min'] = seconds_to_minutes(summary['total_loss_time_sec'])

        logger.info(f"Pareto loss time report: {len(events)} events for {filters!r}")
        return ProductionReport(chart_data, _table(rows, PARETO_LOSS_TIME_COLUMNS), summary)

    def pareto_ng_report(self, filters: Optional[ReportFilter] = None) -> ProductionReport:
        """
        Rejected quantity ranked by rejection category (1-decimal percentages).

        Events are selected by when they occurred. Defaults to today.
        """
        filters = self._filters(filters, "today")
        events, plans = self._rejections(filters)
        shifts = self._shifts_for(plans.values())

        entries = pareto_rank(
            events,
            category_of=lambda e: e.category,
            magnitude_of=lambda e: e.qty,
            precision=1,
        )

        chart_data = []
        for entry in entries:
            item = entry.to_dict()
            item['qty'] = item.pop('magnitude')
            chart_data.append(item)

        rows = []
        for event in events:
            row = self._plan_columns(plans[event.plan_id], shifts)
            row.update({
                'id': event.id,
                'occurred_at': event.occurred_at,
                'category': event.category or "Unknown",
                'criteria': event.criteria or NOT_AVAILABLE,
                'note': event.note or "-",
                'qty': event.qty,
            })
            rows.append(row)

        summary = pareto_summary(entries, len(events))
        summary['total_qty'] = summary.pop('total_magnitude')

        logger.info(f"Pareto NG report: {len(events)} events for {filters!r}")
        return ProductionReport(chart_data, _table(rows, REJECTION_COLUMNS), summary)

    def _rejections(self, filters: ReportFilter):
        """Rejection events in the range joined with their (filter-matching) plans"""
        events = self.repos.rejections.list_between(
            filters.start_date, filters.end_date, self.timezone
        )
        plans = self.repos.plans.list_by_ids(e.plan_id for e in events)
        events = filter_rejection_events(events, plans, filters, self.timezone)
        return events, {e.plan_id: plans[e.plan_id] for e in events}

    # ============================================================
    # DASHBOARD SERIES
    # ============================================================

    def performance_by_date(self, filters: Optional[ReportFilter] = None) -> List[Dict]:
        """Planned vs actual quantity per plan date (current month by default)"""
        filters = self._filters(filters, "month")
        plans = self.repos.plans.list_by_filter(filters)
        return daily_performance(plans, date_key=self._date_key)

    def oee_by_date(self, filters: Optional[ReportFilter] = None) -> List[Dict]:
        """Average OEE components per plan date (current month by default)"""
        filters = self._filters(filters, "month")
        plans = {p.id: p for p in self.repos.plans.list_by_filter(filters)}
        records = self.repos.oee_records.list_for_plans(plans.keys())

        series = average_oee_by_date(
            records.values(),
            date_of=lambda r: self._date_key(plans[r.plan_id].plan_date),
        )
        return sorted(series, key=lambda item: item['date'])

    # ============================================================
    # CAPACITY
    # ============================================================

    def available_time_for_sequence(
        self,
        plan_date: date,
        line_id: str,
        shift_id: str,
        sequence: int,
        cycle_time_sec: int,
        current_plan_id: Optional[str] = None
    ) -> CapacityAllocation:
        """
        Time left on a shift for a sequence and the largest quantity that fits.

        Args:
            plan_date: Plan date
            line_id: Line
            shift_id: Shift
            sequence: Sequence being created or edited
            cycle_time_sec: Cycle time of that plan
            current_plan_id: Plan being edited (excluded from the used time)

        Raises:
            NotFoundError: If the shift does not exist
        """
        shift = self.repos.shifts.get_by_id(shift_id)
        plans = self.repos.plans.list_for_slot(plan_date, line_id, shift_id)

        return available_time(
            shift,
            plans,
            sequence,
            cycle_time_sec,
            exclude_plan_id=current_plan_id,
            shift_id=shift_id,
            plan_date=plan_date,
            line_id=line_id,
        )

    def sequence_allocations(self, plan_date: date, line_id: str, shift_id: str) -> List[CapacityAllocation]:
        """Allocation of every sequence on a (plan_date, line, shift)"""
        shift = self.repos.shifts.get_by_id(shift_id)
        plans = self.repos.plans.list_for_slot(plan_date, line_id, shift_id)
        return allocate_sequence_budget(shift, plans, shift_id=shift_id)

    def next_sequence(self, plan_date: date, line_id: str, shift_id: str) -> int:
        return next_sequence(self.repos.plans.list_for_slot(plan_date, line_id, shift_id))

    def next_work_order_no(self, plan_date: date) -> str:
        """Next WO-YYMMDDNNNN number, counted over every line and shift of the date"""
        plans = self.repos.plans.list_by_filter(ReportFilter(start_date=plan_date, end_date=plan_date))
        return next_work_order_no(plan_date, (p.work_order_no for p in plans))

    # ============================================================
    # RECOMPUTATION
    # ============================================================

    def recompute_plan_results(self, plan_id: str, strict: bool = False) -> Optional[OEEMetrics]:
        """
        Recompute and store a closed plan's loss time and OEE.

        Decomposes the plan's shift time, upserts its LossTimeSummary, then
        computes OEE from that summary and upserts its OEERecord. Running it
        again leaves one row of each per plan.

        Args:
            plan_id: Plan to recompute
            strict: Raise instead of storing zero availability/performance
                    when no loss time can be produced

        Returns:
            OEEMetrics, or None if the plan is not CLOSED

        Raises:
            NotFoundError: If the plan or its shift does not exist
        """
        plan = self.repos.plans.get_by_id(plan_id)
        if plan is None:
            raise NotFoundError("ProductionPlan", plan_id)

        if plan.status != PlanStatus.CLOSED:
            logger.info(f"Plan {plan_id} is {plan.status.value}, results are only computed for closed plans")
            return None

        shift = self.repos.shifts.get_by_id(plan.shift_id)
        breakdown = decompose(
            plan,
            shift,
            self.repos.downtimes.list_for_plans([plan.id]),
            self.repos.planned_downtimes.list_for_plans([plan.id]),
        )

        summary = breakdown.to_summary(plan.id)
        self.repos.loss_times.upsert(summary)

        metrics = compute_oee(
            plan.planned_qty,
            plan.actual_qty,
            plan.ng_qty,
            loss_time=summary,
            strict=strict,
            plan_id=plan.id,
        )
        self.repos.oee_records.upsert(metrics.to_record(plan.id))

        logger.info(
            f"Plan {plan.work_order_no or plan.id}: A={metrics.availability}% "
            f"P={metrics.performance}% Q={metrics.quality}% OEE={metrics.oee}%"
        )
        return metrics

    def recompute_closed_plans(self, filters: Optional[ReportFilter] = None) -> Dict[str, OEEMetrics]:
        """
        Recompute every closed plan in the filter (current month by default).

        A plan that fails is logged and skipped; the others are still stored.

        Returns:
            OEEMetrics keyed by plan id, for the plans that were recomputed
        """
        filters = self._filters(filters, "month")
        plans = [p for p in self.repos.plans.list_by_filter(filters) if p.status == PlanStatus.CLOSED]

        results = {}
        failed = 0
        for plan in plans:
            try:
                metrics = self.recompute_plan_results(plan.id)
            except AnalyticsError as e:
                failed += 1
                logger.error(f"Could not recompute plan {plan.id}: {e}")
                continue
            if metrics is not None:
                results[plan.id] = metrics

        logger.info(f"Recomputed {len(results)} of {len(plans)} closed plans ({failed} failed)")
        return results
