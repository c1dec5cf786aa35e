"""
Tests for report filters and date helpers.
"""

from datetime import date, datetime

import pytest
import pytz

from core.models import DowntimeEvent, DowntimeKind, RejectionEvent
from core.time_windows.filters import (
    active_only,
    filter_downtime_events,
    filter_plans,
    filter_rejection_events,
    plan_matches,
)
from core.time_windows.models import ReportFilter
from utils.formatting import local_date, month_range, parse_date


class TestReportFilter:

    def test_dates_are_parsed(self):
        filters = ReportFilter(start_date="2025-03-01", end_date="2025-03-31")
        assert filters.start_date == date(2025, 3, 1)
        assert filters.contains(date(2025, 3, 31))
        assert not filters.contains(date(2025, 4, 1))

    def test_end_before_start(self):
        with pytest.raises(ValueError):
            ReportFilter(start_date="2025-03-10", end_date="2025-03-01")

    def test_invalid_date(self):
        with pytest.raises(ValueError):
            ReportFilter(start_date="not a date")

    def test_default_range_keeps_given_dates(self):
        filters = ReportFilter(start_date="2025-03-01", end_date="2025-03-05").with_default_range("month")
        assert (filters.start_date, filters.end_date) == (date(2025, 3, 1), date(2025, 3, 5))

    def test_default_range_fills_missing_dates(self):
        filters = ReportFilter(line_id="L1").with_default_range("today", "Asia/Jakarta")
        assert filters.start_date == filters.end_date
        assert filters.line_id == "L1"

    def test_unknown_default(self):
        with pytest.raises(ValueError):
            ReportFilter().with_default_range("week")


class TestPlanFilters:

    def test_line_takes_precedence_over_plant(self, make_plan):
        plan = make_plan("A", plant_id="PLANT-1")
        assert plan_matches(plan, ReportFilter(plant_id="PLANT-2", line_id="L1"))
        assert not plan_matches(plan, ReportFilter(plant_id="PLANT-2"))

    def test_shift_and_dates(self, make_plan):
        plans = [
            make_plan("A"),
            make_plan("B", shift_id="S2"),
            make_plan("C", plan_date=date(2025, 4, 1)),
        ]
        selected = filter_plans(plans, ReportFilter(start_date="2025-03-01", end_date="2025-03-31", shift_id="S1"))
        assert [p.id for p in selected] == ["A"]

    def test_deleted_plans_are_dropped(self, make_plan):
        plans = [make_plan("A"), make_plan("B", deleted_at=datetime(2025, 3, 1))]
        assert [p.id for p in active_only(plans)] == ["A"]
        assert [p.id for p in filter_plans(plans, ReportFilter())] == ["A"]


class TestEventFilters:

    def test_department_only_matches_updt(self, closed_plan, downtime_events):
        plans = {"P1": closed_plan}
        selected = filter_downtime_events(downtime_events, plans, ReportFilter(department="Maintenance"))
        assert [e.id for e in selected] == ["D1"]

    def test_machine(self, closed_plan, downtime_events):
        selected = filter_downtime_events(downtime_events, {"P1": closed_plan}, ReportFilter(machine_id="M2"))
        assert [e.id for e in selected] == ["D2"]

    def test_events_of_unknown_plans_are_dropped(self, closed_plan):
        events = [DowntimeEvent(plan_id="P9", kind=DowntimeKind.UPDT, duration_sec=60)]
        assert filter_downtime_events(events, {"P1": closed_plan}, ReportFilter()) == []

    def test_rejections_use_occurrence_date(self, make_plan):
        plan = make_plan("A", plan_date=date(2025, 3, 9))
        events = [
            RejectionEvent(plan_id="A", occurred_at=datetime(2025, 3, 10, 1, 0), qty=2),
            RejectionEvent(plan_id="A", occurred_at=datetime(2025, 3, 9, 23, 0), qty=1),
        ]
        filters = ReportFilter(start_date="2025-03-10", end_date="2025-03-10")
        selected = filter_rejection_events(events, {"A": plan}, filters)
        assert [e.qty for e in selected] == [2]


class TestDates:

    def test_local_date_converts_aware_datetimes(self):
        utc_evening = pytz.utc.localize(datetime(2025, 3, 9, 20, 0))
        assert local_date(utc_evening, "Asia/Jakarta") == date(2025, 3, 10)
        assert local_date(datetime(2025, 3, 9, 20, 0), "Asia/Jakarta") == date(2025, 3, 9)

    def test_month_range(self):
        assert month_range(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_range(date(2025, 12, 31)) == (date(2025, 12, 1), date(2025, 12, 31))

    def test_parse_date(self):
        assert parse_date("7 Mar 2025") == date(2025, 3, 7)
        assert parse_date(datetime(2025, 3, 7, 10, 0)) == date(2025, 3, 7)
        assert parse_date("") is None
