"""
Progress aggregation: Initiative, SubProgram and Program roll-up.
"""

from datetime import date

import pytest

from workplan.core.exceptions import NotFoundError, ValidationError
from workplan.models import db
from workplan.models.hierarchy import Program
from workplan.services import hierarchy_service as hs
from workplan.services import progress_service as ps
from workplan.services.deadline_notifier import run_deadline_sweep
from workplan.services.snapshots import InitiativeSnapshot

TODAY = date(2026, 3, 10)


@pytest.fixture()
def add_tasks(coordinator, support, new_task):
    """Create ``total`` Tasks under an Initiative and complete the first ``completed``."""
    def _add(initiative, total, completed):
        tasks = [new_task(initiative, [support["id"]], name=f"Task {i}") for i in range(total)]
        for t in tasks[:completed]:
            hs.complete_task(t["id"], coordinator["id"], today=TODAY)
        return tasks
    return _add


def _initiative_under_sub(sub_program, coordinator, name):
    snapshot = InitiativeSnapshot(name=name, sub_program_id=sub_program["id"])
    return hs.create_initiative(snapshot, coordinator["id"], today=TODAY)


class TestInitiativeProgress:
    def test_no_tasks_is_zero(self, initiative):
        assert ps.progress_of("initiative", initiative["id"]) == 0.0

    def test_fraction_of_completed_tasks(self, initiative, add_tasks):
        add_tasks(initiative, total=4, completed=1)
        assert ps.progress_of("initiative", initiative["id"]) == pytest.approx(0.25)

    def test_all_completed_is_one(self, initiative, add_tasks):
        add_tasks(initiative, total=2, completed=2)
        assert ps.progress_of("initiative", initiative["id"]) == 1.0

    def test_half_done_initiative_goes_overdue_after_its_deadline(self, initiative, add_tasks):
        add_tasks(initiative, total=4, completed=2)
        assert ps.progress_of("initiative", initiative["id"]) == pytest.approx(0.5)

        hs.recompute_statuses(today=date(2026, 10, 1))
        assert hs.get_initiative(initiative["id"]).status == "overdue"

    def test_task_progress_is_binary(self, task, coordinator):
        assert ps.progress_of("task", task["id"]) == 0.0
        hs.complete_task(task["id"], coordinator["id"], today=TODAY)
        assert ps.progress_of("task", task["id"]) == 1.0


class TestProgramProgress:
    def test_direct_initiatives_are_task_weighted(self, program, initiative, coordinator, add_tasks):
        other = hs.create_initiative(
            InitiativeSnapshot(name="Data centre move", program_id=program["id"]),
            coordinator["id"], today=TODAY,
        )
        add_tasks(initiative, total=1, completed=1)
        add_tasks(other, total=3, completed=0)
        # (1.0 * 1 + 0.0 * 3) / 4
        assert ps.progress_of("program", program["id"]) == pytest.approx(0.25)

    def test_sub_programs_are_averaged(self, program, coordinator, add_tasks):
        sp1 = hs.create_sub_program(program["id"], {"name": "Wave 1"}, coordinator["id"])
        sp2 = hs.create_sub_program(program["id"], {"name": "Wave 2"}, coordinator["id"])
        a = _initiative_under_sub(sp1, coordinator, "A")
        b = _initiative_under_sub(sp1, coordinator, "B")
        c = _initiative_under_sub(sp2, coordinator, "C")
        add_tasks(a, total=2, completed=2)
        add_tasks(b, total=2, completed=0)
        add_tasks(c, total=1, completed=0)

        assert ps.progress_of("sub_program", sp1["id"]) == pytest.approx(0.5)
        assert ps.progress_of("sub_program", sp2["id"]) == 0.0
        assert ps.progress_of("program", program["id"]) == pytest.approx(0.25)

    def test_empty_program_is_zero(self, program):
        assert ps.progress_of("program", program["id"]) == 0.0

    def test_progress_is_recomputed_not_stored(self, program, task, coordinator):
        assert ps.progress_of("program", program["id"]) == 0.0
        hs.complete_task(task["id"], coordinator["id"], today=TODAY)
        assert ps.progress_of("program", program["id"]) == 1.0


class TestProgressErrors:
    def test_unknown_node_type(self):
        with pytest.raises(ValidationError):
            ps.progress_of("portfolio", 1)

    def test_missing_node(self):
        with pytest.raises(NotFoundError):
            ps.progress_of("initiative", 999)


class TestProgramSummary:
    def test_counts_by_task_state(self, program, initiative, support, add_tasks, new_task):
        add_tasks(initiative, total=3, completed=1)
        new_task(initiative, [support["id"]], name="Late", deadline=date(2026, 3, 20))
        run_deadline_sweep(today=date(2026, 3, 21))

        summary = ps.program_summary(program["id"])
        assert summary["initiatives"] == 1
        assert summary["tasks"] == 4
        assert summary["tasks_completed"] == 1
        assert summary["tasks_overdue"] == 1
        assert summary["tasks_in_progress"] == 2
        assert summary["progress"] == pytest.approx(0.25)

    def test_program_completion_stamps_date(self, program, task, coordinator):
        hs.complete_task(task["id"], coordinator["id"], today=TODAY)
        done = hs.complete_program(program["id"], coordinator["id"], today=TODAY)
        assert done["status"] == "completed"
        assert db.session.get(Program, program["id"]).completion_date == TODAY

    def test_program_with_open_work_cannot_complete(self, program, task, coordinator):
        with pytest.raises(ValidationError):
            hs.complete_program(program["id"], coordinator["id"], today=TODAY)


class TestProgressView:
    def test_program_query_re_resolves_status(self, client, program, task, coordinator):
        hs.complete_task(task["id"], coordinator["id"], today=TODAY)
        assert db.session.get(Program, program["id"]).status == "in_progress"

        res = client.get(f"/api/v1/progress/program/{program['id']}?today=2027-01-05")
        assert res.status_code == 200
        body = res.get_json()
        assert body["progress"] == 1.0
        assert body["status"] == "completed"
        db.session.expire_all()
        assert db.session.get(Program, program["id"]).completion_date == date(2027, 1, 5)
