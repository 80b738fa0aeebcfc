"""
Approval workflow: submit, decide, materialize, reject in place.

Tests cover:
  - Submit-time validation (kind, snapshot shape, linkage, bounds)
  - Accept → entity created/edited/completed, submitter alerted
  - Reject → no mutation
  - Double decision → ConflictError, nothing materialized twice
  - Materialization failure → full rollback, Request rejected with the reason
  - Pending queue for approvers
"""

from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from workplan.core.exceptions import (
    ConflictError,
    MaterializationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from workplan.models import db
from workplan.models.hierarchy import Initiative, Task
from workplan.models.request import DECISION_KINDS, Request
from workplan.services import approval_service as aps
from workplan.services import hierarchy_service as hs
from workplan.services.notification import NotificationService

TODAY = date(2026, 3, 10)


def _count(model):
    return db.session.execute(select(func.count(model.id))).scalar_one()


def _task_proposal(initiative, assignees, **extra):
    return {
        "name": "Configure firewall",
        "initiative_id": initiative["id"],
        "deadline": "2026-05-31",
        "assignee_ids": [a["id"] for a in assignees],
        **extra,
    }


# ═════════════════════════════════════════════════════════════════════════
# SUBMIT
# ═════════════════════════════════════════════════════════════════════════

class TestSubmit:
    def test_submit_stores_pending_request_without_touching_hierarchy(self, initiative, support):
        before = _count(Task)
        req = aps.submit_request("create_task", _task_proposal(initiative, [support]), support["id"])

        assert req["status"] == "pending"
        assert req["category"] == "decision"
        assert req["submitter_id"] == support["id"]
        assert req["initiative_id"] == initiative["id"]
        assert _count(Task) == before

    def test_snapshot_may_be_json_text(self, initiative, support):
        text = (
            '{"name": "Cable audit", "initiative_id": %d, "assignee_ids": [%d]}'
            % (initiative["id"], support["id"])
        )
        req = aps.submit_request("create_task", text, support["id"])
        assert req["status"] == "pending"

    def test_unknown_kind_is_rejected(self, initiative, support):
        with pytest.raises(ValidationError):
            aps.submit_request("deadline_overdue", _task_proposal(initiative, [support]), support["id"])

    def test_malformed_snapshot_is_rejected(self, support):
        with pytest.raises(ValidationError):
            aps.submit_request("create_task", "{not json", support["id"])
        with pytest.raises(ValidationError):
            aps.submit_request("create_task", {"initiative_id": 1}, support["id"])

    def test_task_deadline_beyond_initiative_is_rejected(self, initiative, support):
        proposal = _task_proposal(initiative, [support], deadline="2026-12-01")
        with pytest.raises(ValidationError):
            aps.submit_request("create_task", proposal, support["id"])

    def test_task_without_assignee_is_rejected(self, initiative, support):
        with pytest.raises(ValidationError):
            aps.submit_request("create_task", _task_proposal(initiative, []), support["id"])

    def test_initiative_needs_exactly_one_parent(self, program, coordinator, support):
        sub = hs.create_sub_program(program["id"], {"name": "Wave 1"}, coordinator["id"])
        both = {"name": "Ambiguous", "program_id": program["id"], "sub_program_id": sub["id"]}
        with pytest.raises(ValidationError):
            aps.submit_request("create_initiative", both, support["id"])
        with pytest.raises(ValidationError):
            aps.submit_request("create_initiative", {"name": "Orphan"}, support["id"])

    def test_program_with_sub_programs_takes_no_direct_initiative(self, program, coordinator,
                                                                  support):
        hs.create_sub_program(program["id"], {"name": "Wave 1"}, coordinator["id"])
        with pytest.raises(ValidationError):
            aps.submit_request("create_initiative",
                               {"name": "Stray", "program_id": program["id"]}, support["id"])

    def test_initiative_deadline_cannot_precede_its_tasks(self, program, initiative, task, support):
        proposal = {"id": initiative["id"], "name": "Network refresh",
                    "program_id": program["id"], "deadline": "2026-05-31"}
        with pytest.raises(ValidationError):
            aps.submit_request("edit_initiative", proposal, support["id"])

    def test_edit_of_missing_task_is_not_found(self, initiative, support):
        proposal = _task_proposal(initiative, [support], id=999)
        with pytest.raises(NotFoundError):
            aps.submit_request("edit_task", proposal, support["id"])

    def test_unknown_submitter(self, initiative, support):
        with pytest.raises(NotFoundError):
            aps.submit_request("create_task", _task_proposal(initiative, [support]), 999)


# ═════════════════════════════════════════════════════════════════════════
# DECIDE
# ═════════════════════════════════════════════════════════════════════════

class TestDecide:
    def test_accept_create_task(self, initiative, coordinator, support, alerts_sent):
        req = aps.submit_request("create_task", _task_proposal(initiative, [support]), support["id"])
        alerts_sent.clear()

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["status"] == "accepted"
        assert decided["approver_id"] == coordinator["id"]
        assert decided["response_message"] == "Request accepted."
        assert decided["result"]["created"] is True
        task = db.session.get(Task, decided["result"]["task_id"])
        assert task.name == "Configure firewall"
        assert task.status == "pending"
        assert task.assignee_id == support["id"]
        assert decided["task_id"] == task.id
        assert ("Request accepted", support["id"]) in [(a.title, a.recipient_id) for a in alerts_sent]

    def test_reject_leaves_hierarchy_untouched(self, initiative, coordinator, support):
        before = _count(Task)
        req = aps.submit_request("create_task", _task_proposal(initiative, [support]), support["id"])

        decided = aps.decide_request(req["id"], coordinator["id"], False, message="Out of scope")

        assert decided["status"] == "rejected"
        assert decided["response_message"] == "Out of scope"
        assert decided["result"] is None
        assert _count(Task) == before

    def test_non_approver_cannot_decide(self, initiative, supervisor, support):
        req = aps.submit_request("create_task", _task_proposal(initiative, [support]), support["id"])
        with pytest.raises(PermissionDeniedError):
            aps.decide_request(req["id"], supervisor["id"], True, today=TODAY)
        assert NotificationService.get(req["id"]).status == "pending"

    def test_second_decision_conflicts(self, initiative, coordinator, support):
        req = aps.submit_request("create_task", _task_proposal(initiative, [support]), support["id"])
        aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)
        tasks_after_first = _count(Task)

        with pytest.raises(ConflictError):
            aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)
        with pytest.raises(ConflictError):
            aps.decide_request(req["id"], coordinator["id"], False)
        assert _count(Task) == tasks_after_first
        assert NotificationService.get(req["id"]).status == "accepted"

    def test_automatic_request_cannot_be_decided(self, task, coordinator):
        notice = db.session.execute(
            select(Request).where(Request.kind == "assignee_added")
        ).scalars().first()
        with pytest.raises(ConflictError):
            aps.decide_request(notice.id, coordinator["id"], True, today=TODAY)

    def test_missing_request(self, coordinator):
        with pytest.raises(NotFoundError):
            aps.decide_request(999, coordinator["id"], True, today=TODAY)

    def test_accept_create_initiative(self, program, coordinator, support):
        proposal = {"name": "Zero trust", "program_id": program["id"], "deadline": "2026-11-30",
                    "assignee_ids": [support["id"]]}
        req = aps.submit_request("create_initiative", proposal, support["id"])

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        initiative = db.session.get(Initiative, decided["result"]["initiative_id"])
        assert initiative.program_id == program["id"]
        assert initiative.status == "planned"
        assert initiative.assignee_ids == [support["id"]]
        assert initiative.creator_id == support["id"]

    def test_accept_edit_initiative_moves_parent(self, initiative, coordinator, support):
        other = hs.create_program({"name": "Cloud move", "deadline": "2026-12-31"}, coordinator["id"])
        sub = hs.create_sub_program(other["id"], {"name": "Wave 2"}, coordinator["id"])
        proposal = {"id": initiative["id"], "name": "Network refresh",
                    "sub_program_id": sub["id"], "deadline": "2026-09-30"}
        req = aps.submit_request("edit_initiative", proposal, support["id"])

        aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        moved = hs.get_initiative(initiative["id"])
        assert moved.sub_program_id == sub["id"]
        assert moved.program_id is None

    def test_accept_edit_task_clearing_assignees(self, task, coordinator, support):
        proposal = hs.snapshot_of_task(hs.get_task(task["id"]))
        proposal["assignee_ids"] = []
        req = aps.submit_request("edit_task", proposal, support["id"])

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["status"] == "accepted"
        edited = hs.get_task(task["id"])
        assert edited.assignee_id is None
        assert edited.assignee_ids == []
        with pytest.raises(ValidationError):
            hs.complete_task(task["id"], coordinator["id"], today=TODAY)

    def test_accept_edit_task_emits_deadline_notice(self, task, coordinator, support):
        proposal = hs.snapshot_of_task(hs.get_task(task["id"]))
        proposal["deadline"] = "2026-07-31"
        req = aps.submit_request("edit_task", proposal, support["id"])

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["result"]["details"]["changed_notices"] == 1
        assert hs.get_task(task["id"]).deadline == date(2026, 7, 31)

    def test_accept_complete_task(self, task, coordinator, support):
        proposal = hs.snapshot_of_task(hs.get_task(task["id"]))
        req = aps.submit_request("complete_task", proposal, support["id"])

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["status"] == "accepted"
        assert hs.get_task(task["id"]).status == "completed"
        assert hs.get_initiative(task["initiative_id"]).status == "completed"


# ═════════════════════════════════════════════════════════════════════════
# REJECT IN PLACE
# ═════════════════════════════════════════════════════════════════════════

class TestRejectInPlace:
    def test_complete_after_deadline_is_rejected(self, task, coordinator, support):
        proposal = hs.snapshot_of_task(hs.get_task(task["id"]))
        req = aps.submit_request("complete_task", proposal, support["id"])

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=date(2026, 7, 1))

        assert decided["status"] == "rejected"
        assert decided["response_message"] == "Task is overdue or has no assignee."
        assert hs.get_task(task["id"]).status != "completed"

    def test_complete_without_task_id_is_rejected(self, initiative, coordinator, support):
        req = aps.submit_request("complete_task", {"name": "Ghost task"}, support["id"])

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["status"] == "rejected"
        assert decided["response_message"] == "Task is overdue or has no assignee."

    def test_stale_bounds_reject_edit(self, program, initiative, coordinator, support):
        proposal = {"id": initiative["id"], "name": "Network refresh",
                    "program_id": program["id"], "deadline": "2026-11-30"}
        req = aps.submit_request("edit_initiative", proposal, support["id"])
        hs.update_program(program["id"], {"deadline": "2026-10-31"}, coordinator["id"], today=TODAY)

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["status"] == "rejected"
        assert "deadline" in decided["response_message"]
        assert hs.get_initiative(initiative["id"]).deadline == date(2026, 9, 30)

    def test_sub_program_added_after_submit_rejects_direct_initiative(self, program, coordinator,
                                                                      support):
        req = aps.submit_request("create_initiative",
                                 {"name": "Late direct", "program_id": program["id"]},
                                 support["id"])
        hs.create_sub_program(program["id"], {"name": "Wave 1"}, coordinator["id"])
        before = _count(Initiative)

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["status"] == "rejected"
        assert "sub-programs" in decided["response_message"]
        assert _count(Initiative) == before

    def test_partial_mutation_is_rolled_back(self, initiative, coordinator, support, alerts_sent):
        req = aps.submit_request("create_task", _task_proposal(initiative, [support]), support["id"])
        before = _count(Task)
        alerts_sent.clear()

        with patch.object(aps.deadline_notifier, "notify_assignee_change",
                          side_effect=MaterializationError("notice store unavailable")):
            decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["status"] == "rejected"
        assert decided["response_message"] == "notice store unavailable"
        assert _count(Task) == before
        assert [a.title for a in alerts_sent] == ["Request rejected"]


# ═════════════════════════════════════════════════════════════════════════
# PENDING QUEUE
# ═════════════════════════════════════════════════════════════════════════

class TestPendingQueue:
    def test_pending_lists_only_undecided_decisions(self, initiative, coordinator, support):
        first = aps.submit_request("create_task", _task_proposal(initiative, [support]), support["id"])
        second = aps.submit_request(
            "create_task", _task_proposal(initiative, [support], name="Second"), support["id"])
        aps.decide_request(first["id"], coordinator["id"], False)

        pending = NotificationService.pending_for_approver()
        assert [r.id for r in pending] == [second["id"]]
        assert NotificationService.pending_count() == 1


class TestAssigneeDelta:
    def test_edit_task_swaps_one_assignee(self, initiative, coordinator, supervisor, support,
                                          new_task):
        a, b, c = support, supervisor, coordinator
        t = new_task(initiative, [a["id"], b["id"]])
        proposal = hs.snapshot_of_task(hs.get_task(t["id"]))
        proposal["assignee_ids"] = [b["id"], c["id"]]
        req = aps.submit_request("edit_task", proposal, support["id"])

        decided = aps.decide_request(req["id"], coordinator["id"], True, today=TODAY)

        assert decided["result"]["details"]["assignees_added"] == 1
        assert decided["result"]["details"]["assignees_removed"] == 1
        added = db.session.execute(
            select(Request.submitter_id).where(Request.task_id == t["id"],
                                               Request.kind == "assignee_added")
        ).scalars().all()
        removed = db.session.execute(
            select(Request.submitter_id).where(Request.task_id == t["id"],
                                               Request.kind == "assignee_removed")
        ).scalars().all()
        # the initial assignment noticed A and B; the edit adds exactly one for C
        assert sorted(added) == sorted([a["id"], b["id"], c["id"]])
        assert removed == [a["id"]]
        assert hs.get_task(t["id"]).assignee_ids == sorted([b["id"], c["id"]])


def test_every_decision_kind_has_a_materializer():
    assert set(aps.get_materializers()) == DECISION_KINDS
