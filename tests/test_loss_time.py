"""
Tests for the loss-time decomposition of a plan.
"""

import pytest

from core.calculations.loss_time import decompose, shift_duration_seconds
from core.exceptions import NotFoundError
from core.models import DowntimeEvent, DowntimeKind, PlannedDowntimeEvent, Shift


class TestDecompose:

    def test_full_decomposition(self, closed_plan, day_shift, downtime_events, planned_downtime_events):
        breakdown = decompose(closed_plan, day_shift, downtime_events, planned_downtime_events)

        assert breakdown.shift_duration_sec == 28800
        assert breakdown.pdt_sec == 1200 + 600
        assert breakdown.over_pdt_sec == 300
        assert breakdown.updt_sec == 1200 + 120 + 300
        assert breakdown.small_stop_freq == 1
        assert breakdown.plan_working_sec == 27000
        assert breakdown.actual_working_sec == 25380

    def test_working_time_narrows(self, closed_plan, day_shift, downtime_events, planned_downtime_events):
        breakdown = decompose(closed_plan, day_shift, downtime_events, planned_downtime_events)
        assert breakdown.actual_working_sec <= breakdown.plan_working_sec <= breakdown.shift_duration_sec

    def test_no_events(self, closed_plan, day_shift):
        breakdown = decompose(closed_plan, day_shift)
        assert breakdown.plan_working_sec == breakdown.actual_working_sec == 28800
        assert breakdown.pdt_sec == breakdown.updt_sec == 0

    def test_downtime_beyond_shift_floors_at_zero(self, closed_plan, day_shift, breakdown):
        events = [DowntimeEvent(plan_id="P1", kind=DowntimeKind.UPDT, duration_sec=40000, category=breakdown)]
        result = decompose(closed_plan, day_shift, events)

        assert result.plan_working_sec == 28800
        assert result.actual_working_sec == 0

    def test_pdt_beyond_shift_floors_at_zero(self, closed_plan, day_shift, meeting):
        events = [DowntimeEvent(plan_id="P1", kind=DowntimeKind.PDT, duration_sec=30000, category=meeting)]
        result = decompose(closed_plan, day_shift, events)

        assert result.plan_working_sec == 0
        assert result.actual_working_sec == 0

    def test_recorded_overrun_wins(self, closed_plan, day_shift, changeover):
        events = [PlannedDowntimeEvent(
            plan_id="P1", category=changeover, duration_sec=1200, over_pdt_duration_sec=60,
        )]
        result = decompose(closed_plan, day_shift, planned_downtime_events=events)
        assert result.over_pdt_sec == 60
        assert result.updt_sec == 60

    def test_planned_event_within_allowance(self, closed_plan, day_shift, changeover):
        events = [PlannedDowntimeEvent(plan_id="P1", category=changeover, duration_sec=600)]
        result = decompose(closed_plan, day_shift, planned_downtime_events=events)
        assert result.over_pdt_sec == 0
        assert result.pdt_sec == 600

    def test_small_stop_threshold_is_exclusive(self, closed_plan, day_shift, breakdown):
        events = [
            DowntimeEvent(plan_id="P1", kind=DowntimeKind.UPDT, duration_sec=299, category=breakdown),
            DowntimeEvent(plan_id="P1", kind=DowntimeKind.UPDT, duration_sec=300, category=breakdown),
        ]
        assert decompose(closed_plan, day_shift, events).small_stop_freq == 1

    def test_missing_shift(self, closed_plan):
        with pytest.raises(NotFoundError):
            decompose(closed_plan, None)

    def test_minute_view(self, closed_plan, day_shift, downtime_events, planned_downtime_events):
        minutes = decompose(closed_plan, day_shift, downtime_events, planned_downtime_events).to_minutes()
        assert minutes == {
            'plan_working_min': 450,
            'actual_working_min': 423,
            'pdt_min': 30,
            'updt_min': 27,
            'over_pdt_min': 5,
            'small_stop_freq': 1,
            'loss_time_min': 27,
        }

    def test_summary_payload(self, closed_plan, day_shift, downtime_events):
        summary = decompose(closed_plan, day_shift, downtime_events).to_summary("P1")
        assert summary.plan_id == "P1"
        assert summary.pdt_sec == 600
        assert summary.updt_sec == 1320


class TestShiftDuration:

    def test_stored_loading_time(self, day_shift):
        assert shift_duration_seconds(day_shift) == 28800

    def test_fallback_ignores_breaks(self):
        shift = Shift(
            id="S9", line_id="L1", number=3, work_start="22:00", work_end="06:00",
            break1_start="02:00", break1_end="02:30",
        )
        assert shift_duration_seconds(shift) == 28800

    def test_no_times(self):
        shift = Shift(id="S9", line_id="L1", number=3, work_start="", work_end="")
        assert shift_duration_seconds(shift) == 0


class TestDowntimeEvent:

    def test_kind_must_match_category(self, meeting):
        with pytest.raises(ValueError):
            DowntimeEvent(plan_id="P1", kind=DowntimeKind.UPDT, duration_sec=60, category=meeting)

    def test_kind_is_coerced(self):
        event = DowntimeEvent(plan_id="P1", kind="UPDT", duration_sec=60)
        assert event.kind is DowntimeKind.UPDT
