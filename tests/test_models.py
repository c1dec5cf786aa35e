"""
Tests for plan lifecycle and downtime records.
"""

from datetime import datetime

import pytest

from core.models import PdtCategory, PlannedDowntimeEvent, PlanStatus


class TestPlanLifecycle:

    def test_open_running_closed(self, make_plan):
        plan = make_plan("A")
        started, finished = datetime(2025, 3, 10, 7, 0), datetime(2025, 3, 10, 15, 0)

        plan.transition_to(PlanStatus.RUNNING, at=started)
        plan.transition_to("CLOSED", at=finished)

        assert plan.status is PlanStatus.CLOSED
        assert plan.started_at == started
        assert plan.completed_at == finished

    def test_cancel_from_open(self, make_plan):
        plan = make_plan("A")
        plan.transition_to(PlanStatus.CANCELED)
        assert plan.status is PlanStatus.CANCELED

    @pytest.mark.parametrize("start, target", [
        (PlanStatus.OPEN, PlanStatus.CLOSED),
        (PlanStatus.CLOSED, PlanStatus.RUNNING),
        (PlanStatus.CANCELED, PlanStatus.OPEN),
        (PlanStatus.RUNNING, PlanStatus.OPEN),
    ])
    def test_invalid_transitions(self, make_plan, start, target):
        plan = make_plan("A", status=start)
        with pytest.raises(ValueError):
            plan.transition_to(target)
        assert plan.status is start

    def test_planned_time(self, make_plan):
        assert make_plan("A", planned_qty=200, cycle_time_sec=45).planned_time_sec == 9000


class TestPlannedDowntimeOverrun:

    def test_derived_from_category_default(self):
        category = PdtCategory(name="Changeover", default_duration_min=15)
        assert PlannedDowntimeEvent("P1", category, duration_sec=1200).over_pdt_sec == 300
        assert PlannedDowntimeEvent("P1", category, duration_sec=600).over_pdt_sec == 0

    def test_no_default_means_all_overrun(self):
        category = PdtCategory(name="Unplanned meeting")
        assert PlannedDowntimeEvent("P1", category, duration_sec=600).over_pdt_sec == 600
