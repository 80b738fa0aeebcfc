"""
Status rules for Programs, SubPrograms, Initiatives and Tasks.

Pure functions; no database access.
"""

from datetime import date

import pytest

from workplan.services.status_resolver import (
    is_completion_eligible,
    resolve_initiative_status,
    resolve_program_status,
    resolve_sub_program_status,
    task_is_past_due,
)

TODAY = date(2026, 3, 10)
YESTERDAY = date(2026, 3, 9)
TOMORROW = date(2026, 3, 11)


class TestProgramStatus:
    def test_deleted_is_terminal(self):
        assert resolve_program_status("deleted", 1.0, YESTERDAY, TODAY) == "deleted"
        assert resolve_program_status("deleted", 0.0, None, TODAY) == "deleted"

    def test_completed_with_full_progress_stays(self):
        assert resolve_program_status("completed", 1.0, YESTERDAY, TODAY) == "completed"

    def test_full_progress_past_deadline_completes(self):
        assert resolve_program_status("in_progress", 1.0, YESTERDAY, TODAY) == "completed"

    def test_partial_progress_past_deadline_is_overdue(self):
        assert resolve_program_status("in_progress", 0.4, YESTERDAY, TODAY) == "overdue"

    def test_deadline_today_is_not_past(self):
        assert resolve_program_status("in_progress", 0.4, TODAY, TODAY) == "in_progress"

    def test_overdue_with_extended_deadline_reopens(self):
        assert resolve_program_status("overdue", 0.5, TOMORROW, TODAY) == "in_progress"
        assert resolve_program_status("overdue", 0.0, TOMORROW, TODAY) == "planned"

    def test_completed_that_gained_work_reopens(self):
        assert resolve_program_status("completed", 0.75, TOMORROW, TODAY) == "in_progress"

    def test_no_progress_is_planned(self):
        assert resolve_program_status("in_progress", 0.0, TOMORROW, TODAY) == "planned"

    def test_full_progress_before_deadline_waits_for_manual_completion(self):
        assert resolve_program_status("in_progress", 1.0, TOMORROW, TODAY) == "in_progress"

    @pytest.mark.parametrize("current", ["planned", "in_progress", "completed", "overdue", "deleted"])
    @pytest.mark.parametrize("progress", [0.0, 0.5, 1.0])
    @pytest.mark.parametrize("deadline", [None, YESTERDAY, TODAY, TOMORROW])
    def test_applying_twice_changes_nothing(self, current, progress, deadline):
        once = resolve_program_status(current, progress, deadline, TODAY)
        assert resolve_program_status(once, progress, deadline, TODAY) == once


class TestSubProgramStatus:
    def test_progress_drives_status(self):
        assert resolve_sub_program_status("planned", 0.0) == "planned"
        assert resolve_sub_program_status("planned", 0.3) == "in_progress"
        assert resolve_sub_program_status("in_progress", 1.0) == "completed"

    def test_completed_reopens_when_work_is_added(self):
        assert resolve_sub_program_status("completed", 0.5) == "in_progress"

    def test_cancelled_is_terminal(self):
        assert resolve_sub_program_status("cancelled", 1.0) == "cancelled"


class TestInitiativeStatus:
    def test_no_tasks_is_planned(self):
        assert resolve_initiative_status(0, 0.0, YESTERDAY, TODAY) == "planned"

    def test_all_tasks_done_is_completed_even_when_late(self):
        assert resolve_initiative_status(3, 1.0, YESTERDAY, TODAY) == "completed"

    def test_open_work_past_deadline_is_overdue(self):
        assert resolve_initiative_status(3, 0.33, YESTERDAY, TODAY) == "overdue"

    def test_open_work_in_time_is_in_progress(self):
        assert resolve_initiative_status(3, 0.0, TOMORROW, TODAY) == "in_progress"
        assert resolve_initiative_status(3, 0.66, None, TODAY) == "in_progress"


class TestTaskRules:
    def test_past_due_only_when_deadline_strictly_before_today(self):
        assert task_is_past_due("pending", YESTERDAY, TODAY)
        assert not task_is_past_due("pending", TODAY, TODAY)
        assert not task_is_past_due("pending", None, TODAY)

    def test_completed_task_is_never_past_due(self):
        assert not task_is_past_due("completed", YESTERDAY, TODAY)

    def test_completion_eligibility(self):
        assert is_completion_eligible(1.0, TODAY, TODAY)
        assert is_completion_eligible(1.0, None, TODAY)
        assert not is_completion_eligible(1.0, YESTERDAY, TODAY)
        assert not is_completion_eligible(0.9, TOMORROW, TODAY)
