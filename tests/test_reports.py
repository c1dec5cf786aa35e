"""
Tests for the report services over the in-memory repositories.
"""

from datetime import date, datetime

import pytest
import pytz

from analysis.reports import ProductionReports
from core.exceptions import DuplicateSequenceError, NotFoundError
from core.models import RejectionEvent
from core.time_windows.models import ReportFilter
from db.memory import InMemoryStore, in_memory_repositories

ONE_DAY = ReportFilter(start_date="2025-03-10", end_date="2025-03-10")
PLAN_DATE = date(2025, 3, 10)
TWO_DAYS = ReportFilter(start_date="2025-03-10", end_date="2025-03-11")


class TestRecompute:

    def test_closed_plan(self, reports, store):
        metrics = reports.recompute_plan_results("P1")

        assert metrics.oee == 79.26
        assert store.loss_times["P1"].actual_working_sec == 25380
        assert store.oee_records["P1"].oee == 79.26

    def test_idempotent(self, reports, store):
        first = reports.recompute_plan_results("P1")
        second = reports.recompute_plan_results("P1")

        assert first == second
        assert list(store.loss_times) == ["P1"]
        assert list(store.oee_records) == ["P1"]

    def test_open_plans_are_not_computed(self, reports, store):
        assert reports.recompute_plan_results("P2") is None
        assert "P2" not in store.oee_records
        assert "P2" not in store.loss_times

    def test_unknown_plan(self, reports):
        with pytest.raises(NotFoundError):
            reports.recompute_plan_results("P404")

    def test_deleted_shift(self, reports, store):
        store.shifts["S1"].deleted_at = datetime(2025, 3, 9)
        with pytest.raises(NotFoundError):
            reports.recompute_plan_results("P1")

    def test_recompute_closed_plans(self, reports, store):
        results = reports.recompute_closed_plans(ONE_DAY)

        assert sorted(results) == ["P1", "P3"]
        assert results["P3"].oee == 100.0
        assert sorted(store.oee_records) == ["P1", "P3"]

    def test_recompute_skips_failures(self, reports, store):
        store.shifts["S2"].deleted_at = datetime(2025, 3, 9)
        results = reports.recompute_closed_plans(ONE_DAY)
        assert sorted(results) == ["P1"]


class TestAchievementReport:

    def test_chart_and_table(self, reports):
        report = reports.achievement_report(ONE_DAY)

        assert report.chart_data == [{'date': '2025-03-10', 'shift1': 530, 'shift2': 300}]
        table = report.table.set_index('id')
        assert table.loc["P1", "achievement_percent"] == 95.0
        assert table.loc["P2", "achievement_percent"] == 75.0
        assert table.loc["P3", "shift_number"] == 2

    def test_empty_range_keeps_columns(self, reports):
        report = reports.achievement_report(ReportFilter(start_date="2025-01-01", end_date="2025-01-02"))
        assert report.chart_data == []
        assert report.table.empty
        assert "achievement_percent" in report.table.columns


class TestLossTimeReport:

    def test_chart_and_table(self, reports):
        report = reports.loss_time_report(ONE_DAY)

        assert report.chart_data == [{'date': '2025-03-10', 'shift1': 27, 'shift2': 0}]
        row = report.table.set_index('id').loc["P1"]
        assert row["plan_working_min"] == 450
        assert row["actual_working_min"] == 423
        assert row["over_pdt_min"] == 5
        assert row["small_stop_freq"] == 1

    def test_plans_without_shift_are_skipped(self, reports, store):
        store.shifts["S2"].deleted_at = datetime(2025, 3, 9)
        report = reports.loss_time_report(ONE_DAY)
        assert sorted(report.table["id"]) == ["P1", "P2"]


class TestOEEReport:

    def test_only_computed_plans(self, reports):
        assert reports.oee_report(ONE_DAY).table.empty

        reports.recompute_closed_plans(ONE_DAY)
        report = reports.oee_report(ONE_DAY)

        assert report.chart_data == [{'date': '2025-03-10', 'shift1': 79.3, 'shift2': 100.0}]
        assert sorted(report.table["id"]) == ["P1", "P3"]

    def test_oee_by_date(self, reports):
        reports.recompute_closed_plans(ONE_DAY)
        series = reports.oee_by_date(ONE_DAY)

        assert len(series) == 1
        assert series[0]['date'] == '2025-03-10'
        assert series[0]['oee'] == pytest.approx(89.63)

    def test_performance_by_date(self, reports):
        assert reports.performance_by_date(ONE_DAY) == [
            {'date': '2025-03-10', 'planned_qty': 900, 'actual_qty': 830, 'performance': 92.22}
        ]


class TestRejectionReports:

    def test_rejections_selected_by_occurrence(self, reports):
        report = reports.rejection_report(ONE_DAY)

        assert report.chart_data == [{'date': '2025-03-10', 'shift1': 19}]
        assert sorted(report.table["id"]) == ["R1", "R2"]

    def test_chart_uses_plan_date(self, reports):
        # R3 occurred on the 11th during the night shift of the 10th
        report = reports.rejection_report(TWO_DAYS)
        assert report.chart_data == [{'date': '2025-03-10', 'shift1': 19, 'shift2': 3}]

    def test_pareto_ng(self, reports):
        report = reports.pareto_ng_report(TWO_DAYS)

        assert [item['category'] for item in report.chart_data] == ["Scratch", "Dent"]
        assert [item['qty'] for item in report.chart_data] == [15, 7]
        assert [item['percentage'] for item in report.chart_data] == [68.2, 31.8]
        assert report.chart_data[-1]['cumulative'] == 100.0
        assert report.summary == {'total_events': 3, 'total_qty': 22, 'categories_count': 2}

    def test_line_filter(self, reports):
        report = reports.pareto_ng_report(ReportFilter(start_date="2025-03-10", end_date="2025-03-11", line_id="L2"))
        assert report.chart_data == []
        assert report.summary['total_events'] == 0

    def test_report_time_zone_decides_the_day(self, day_shift, closed_plan):
        store = InMemoryStore()
        store.add_shift(day_shift)
        store.add_plan(closed_plan)
        # 20:00 UTC on the 10th is 03:00 on the 11th in Jakarta
        store.add_rejection(RejectionEvent(
            plan_id="P1", occurred_at=datetime(2025, 3, 10, 20, 0, tzinfo=pytz.utc),
            qty=4, category="Burr", id="R4",
        ))
        repos = in_memory_repositories(store, timezone="Asia/Jakarta")

        utc = ProductionReports(repos, timezone="UTC").rejection_report(ONE_DAY)
        assert list(utc.table["id"]) == ["R4"]

        jakarta = ProductionReports(repos, timezone="Asia/Jakarta").rejection_report(ONE_DAY)
        assert jakarta.table.empty


class TestParetoLossTimeReport:

    def test_ranked_downtime(self, reports):
        report = reports.pareto_loss_time_report(ONE_DAY)

        assert [item['category'] for item in report.chart_data] == [
            "Maintenance - Machine breakdown",
            "PDT - Meeting",
            "Production - Material shortage",
        ]
        assert [item['percentage'] for item in report.chart_data] == [62.5, 31.25, 6.25]
        assert [item['cumulative'] for item in report.chart_data] == [62.5, 93.75, 100.0]
        assert [item['loss_time_min'] for item in report.chart_data] == [20, 10, 2]
        assert report.summary['total_loss_time_sec'] == 1920
        assert report.summary['total_loss_time_min'] == 32

    def test_department_filter(self, reports):
        filters = ReportFilter(start_date="2025-03-10", end_date="2025-03-10", department="Maintenance")
        report = reports.pareto_loss_time_report(filters)

        assert [item['category'] for item in report.chart_data] == ["Maintenance - Machine breakdown"]
        assert report.chart_data[0]['cumulative'] == 100.0
        assert list(report.table["department"]) == ["Maintenance"]

    def test_table(self, reports):
        table = reports.pareto_loss_time_report(ONE_DAY).table.set_index('id')
        assert table.loc["D3", "department"] == "Planned Downtime"
        assert table.loc["D3", "kind"] == "PDT"
        assert table.loc["D1", "machine_id"] == "M1"

    def test_to_dict(self, reports):
        data = reports.pareto_loss_time_report(ONE_DAY).to_dict()
        assert set(data) == {'chart_data', 'table', 'summary'}
        assert len(data['table']) == 3


class TestCapacity:

    def test_available_time_for_edited_sequence(self, reports):
        allocation = reports.available_time_for_sequence(PLAN_DATE, "L1", "S1", 2, 60, current_plan_id="P2")

        assert allocation.used_time_sec == 24000
        assert allocation.available_time_sec == 4800
        assert allocation.max_planned_qty == 80

    def test_missing_shift(self, reports):
        with pytest.raises(NotFoundError):
            reports.available_time_for_sequence(PLAN_DATE, "L1", "S9", 1, 60)

    def test_sequence_allocations_and_next_sequence(self, reports):
        allocations = reports.sequence_allocations(PLAN_DATE, "L1", "S1")
        assert [a.available_time_sec for a in allocations] == [28800, 4800]
        assert reports.next_sequence(PLAN_DATE, "L1", "S1") == 3

    def test_next_work_order_counts_every_line_and_shift(self, reports, store, make_plan):
        assert reports.next_work_order_no(PLAN_DATE) == "WO-2503100003"

        store.add_plan(make_plan("P9", line_id="L2", work_order_no="WO-2503100007"))
        assert reports.next_work_order_no(PLAN_DATE) == "WO-2503100008"
        assert reports.next_work_order_no(date(2025, 3, 11)) == "WO-2503110001"

    def test_store_rejects_duplicate_sequence(self, store, make_plan):
        with pytest.raises(DuplicateSequenceError):
            store.add_plan(make_plan("P9", sequence=2))
