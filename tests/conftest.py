"""
Shared fixtures: a small production day on one line.

Line L1, 2025-03-10:
- Shift S1 (day, 07:00-16:00, lunch 12:00-13:00): loading time 28800 s
  - P1 seq 1, CLOSED, 400 planned @ 60 s, 380 actual, 19 NG, with downtime
  - P2 seq 2, RUNNING, 200 planned @ 60 s, 150 actual
- Shift S2 (night, 23:00-07:00, no breaks): loading time 28800 s
  - P3 seq 1, CLOSED, 300 planned @ 90 s, 300 actual, 0 NG, no downtime
"""

from datetime import date, datetime

import pytest

from analysis.reports import ProductionReports
from core.models import (
    DowntimeEvent,
    DowntimeKind,
    PdtCategory,
    PlannedDowntimeEvent,
    PlanStatus,
    ProductionPlan,
    RejectionEvent,
    Shift,
    UpdtCategory,
)
from db.memory import InMemoryStore, in_memory_repositories

PLAN_DATE = date(2025, 3, 10)


@pytest.fixture
def day_shift():
    shift = Shift(
        id="S1", line_id="L1", number=1,
        work_start="07:00", work_end="16:00",
        break1_start="12:00", break1_end="13:00",
    )
    shift.compute_loading_time()
    return shift


@pytest.fixture
def night_shift():
    shift = Shift(id="S2", line_id="L1", number=2, work_start="23:00", work_end="07:00")
    shift.compute_loading_time()
    return shift


@pytest.fixture
def meeting():
    return PdtCategory(name="Meeting", default_duration_min=10, id="PDT-1")


@pytest.fixture
def changeover():
    return PdtCategory(name="Changeover", default_duration_min=15, id="PDT-2")


@pytest.fixture
def breakdown():
    return UpdtCategory(department="Maintenance", name="Machine breakdown", id="UPDT-1")


@pytest.fixture
def material_shortage():
    return UpdtCategory(department="Production", name="Material shortage", id="UPDT-2")


@pytest.fixture
def make_plan():
    """Factory for plans on L1 / 2025-03-10 with overridable fields."""
    def _make(plan_id, shift_id="S1", sequence=1, **overrides):
        fields = dict(
            id=plan_id,
            line_id="L1",
            shift_id=shift_id,
            plan_date=PLAN_DATE,
            sequence=sequence,
            cycle_time_sec=60,
            planned_qty=100,
            plant_id="PLANT-1",
            line_name="Assembly 1",
            part_no=f"PN-{plan_id}",
            part_name=f"Part {plan_id}",
            work_order_no=f"WO-25031000{sequence:02d}",
        )
        fields.update(overrides)
        return ProductionPlan(**fields)
    return _make


@pytest.fixture
def closed_plan(make_plan):
    return make_plan(
        "P1", sequence=1, planned_qty=400, actual_qty=380, ng_qty=19,
        status=PlanStatus.CLOSED, work_order_no="WO-2503100001",
    )


@pytest.fixture
def downtime_events(meeting, breakdown, material_shortage):
    return [
        DowntimeEvent(plan_id="P1", kind=DowntimeKind.UPDT, duration_sec=1200,
                      category=breakdown, machine_id="M1", id="D1"),
        DowntimeEvent(plan_id="P1", kind=DowntimeKind.UPDT, duration_sec=120,
                      category=material_shortage, machine_id="M2", id="D2"),
        DowntimeEvent(plan_id="P1", kind=DowntimeKind.PDT, duration_sec=600,
                      category=meeting, id="D3"),
    ]


@pytest.fixture
def planned_downtime_events(changeover):
    # 20 min against a 15 min allowance: 5 min overrun
    return [PlannedDowntimeEvent(plan_id="P1", category=changeover, duration_sec=1200, id="E1")]


@pytest.fixture
def store(day_shift, night_shift, closed_plan, make_plan, downtime_events, planned_downtime_events):
    store = InMemoryStore()
    store.add_shift(day_shift)
    store.add_shift(night_shift)

    store.add_plan(closed_plan)
    store.add_plan(make_plan(
        "P2", sequence=2, planned_qty=200, actual_qty=150, status=PlanStatus.RUNNING,
    ))
    store.add_plan(make_plan(
        "P3", shift_id="S2", sequence=1, cycle_time_sec=90,
        planned_qty=300, actual_qty=300, status=PlanStatus.CLOSED,
    ))

    for event in downtime_events:
        store.add_downtime(event)
    for event in planned_downtime_events:
        store.add_planned_downtime(event)

    store.add_rejection(RejectionEvent(
        plan_id="P1", occurred_at=datetime(2025, 3, 10, 9, 30), qty=12,
        category="Scratch", criteria="Surface", id="R1",
    ))
    store.add_rejection(RejectionEvent(
        plan_id="P1", occurred_at=datetime(2025, 3, 10, 14, 0), qty=7,
        category="Dent", id="R2",
    ))
    store.add_rejection(RejectionEvent(
        plan_id="P3", occurred_at=datetime(2025, 3, 11, 1, 15), qty=3,
        category="Scratch", id="R3",
    ))
    return store


@pytest.fixture
def repos(store):
    return in_memory_repositories(store)


@pytest.fixture
def reports(repos):
    return ProductionReports(repos, timezone="Asia/Jakarta")
