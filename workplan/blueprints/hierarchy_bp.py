"""Work hierarchy blueprint.

REST API for employees, Programs, SubPrograms, Initiatives and Tasks, plus
progress queries and the status/deadline sweeps.

Endpoint groups:
  Employees           GET/POST /api/v1/employees, GET /api/v1/employees/<id>
  Programs            GET/POST /api/v1/programs
                      GET/PUT/DELETE /api/v1/programs/<id>
                      POST /api/v1/programs/<id>/complete
                      GET  /api/v1/programs/<id>/summary
  Sub-programs        POST /api/v1/programs/<id>/sub-programs
                      GET/PUT/DELETE /api/v1/sub-programs/<id>
  Initiatives         POST /api/v1/initiatives, GET/PUT /api/v1/initiatives/<id>
  Tasks               POST /api/v1/tasks, GET/PUT/DELETE /api/v1/tasks/<id>
                      POST /api/v1/tasks/<id>/complete
  Progress            GET  /api/v1/progress/<node_type>/<id>
  Sweeps              POST /api/v1/statuses/recompute, POST /api/v1/deadlines/sweep

Mutations here are the direct (privileged) path: the acting employee,
taken from the X-Employee-ID header, must hold the approver role.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import workplan.services.hierarchy_service as hs
from workplan.blueprints import actor_id, today_arg
from workplan.services import deadline_notifier, progress_service
from workplan.services.snapshots import InitiativeSnapshot, SnapshotError, TaskSnapshot
from workplan.utils.errors import E, api_error, register_error_handlers
from workplan.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

hierarchy_bp = Blueprint("hierarchy", __name__, url_prefix="/api/v1")
register_error_handlers(hierarchy_bp)


def _bad_dates(data: dict, *keys: str):
    """Return a 400 response for the first malformed date field, else None."""
    for key in keys:
        try:
            parse_date_input(data.get(key))
        except ValueError as exc:
            return api_error(E.VALIDATION_INVALID, f"{key}: {exc}")
    return None


# ═════════════════════════════════════════════════════════════════════════
# Employees
# ═════════════════════════════════════════════════════════════════════════


@hierarchy_bp.route("/employees", methods=["GET"])
def list_employees():
    return jsonify({"items": hs.list_employees()}), 200


@hierarchy_bp.route("/employees", methods=["POST"])
def create_employee():
    """Body: {full_name, email, role?}  role ∈ coordinator | manager | support."""
    data = request.get_json(silent=True) or {}
    return jsonify(hs.create_employee(data)), 201


@hierarchy_bp.route("/employees/<int:employee_id>", methods=["GET"])
def get_employee(employee_id):
    return jsonify(hs.get_employee(employee_id).to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Programs
# ═════════════════════════════════════════════════════════════════════════


@hierarchy_bp.route("/programs", methods=["GET"])
def list_programs():
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    return jsonify({"items": hs.list_programs(include_deleted)}), 200


@hierarchy_bp.route("/programs", methods=["POST"])
def create_program():
    """Body: {name, description?, start_date?, deadline?}"""
    data = request.get_json(silent=True) or {}
    err = _bad_dates(data, "start_date", "deadline")
    if err:
        return err
    return jsonify(hs.create_program(data, actor_id())), 201


@hierarchy_bp.route("/programs/<int:program_id>", methods=["GET"])
def get_program(program_id):
    return jsonify(hs.get_program(program_id).to_dict()), 200


@hierarchy_bp.route("/programs/<int:program_id>", methods=["PUT"])
def update_program(program_id):
    data = request.get_json(silent=True) or {}
    err = _bad_dates(data, "start_date", "deadline")
    if err:
        return err
    return jsonify(hs.update_program(program_id, data, actor_id(), today_arg())), 200


@hierarchy_bp.route("/programs/<int:program_id>", methods=["DELETE"])
def delete_program(program_id):
    """Soft delete by default; ``?hard=true`` removes the whole subtree."""
    if request.args.get("hard", "false").lower() == "true":
        hs.hard_delete_program(program_id, actor_id())
        return jsonify({"deleted": program_id}), 200
    return jsonify(hs.soft_delete_program(program_id, actor_id())), 200


@hierarchy_bp.route("/programs/<int:program_id>/complete", methods=["POST"])
def complete_program(program_id):
    return jsonify(hs.complete_program(program_id, actor_id(), today_arg())), 200


@hierarchy_bp.route("/programs/<int:program_id>/summary", methods=["GET"])
def program_summary(program_id):
    return jsonify(progress_service.program_summary(program_id)), 200


# ── Sub-programs ─────────────────────────────────────────────────────────


@hierarchy_bp.route("/programs/<int:program_id>/sub-programs", methods=["POST"])
def create_sub_program(program_id):
    """Body: {name, description?, deadline?}"""
    data = request.get_json(silent=True) or {}
    err = _bad_dates(data, "deadline")
    if err:
        return err
    return jsonify(hs.create_sub_program(program_id, data, actor_id())), 201


@hierarchy_bp.route("/sub-programs/<int:sub_program_id>", methods=["GET"])
def get_sub_program(sub_program_id):
    return jsonify(hs.get_sub_program(sub_program_id).to_dict()), 200


@hierarchy_bp.route("/sub-programs/<int:sub_program_id>", methods=["PUT"])
def update_sub_program(sub_program_id):
    """Body: {name?, description?, deadline?}"""
    data = request.get_json(silent=True) or {}
    err = _bad_dates(data, "deadline")
    if err:
        return err
    return jsonify(hs.update_sub_program(sub_program_id, data, actor_id())), 200


@hierarchy_bp.route("/sub-programs/<int:sub_program_id>", methods=["DELETE"])
def delete_sub_program(sub_program_id):
    hs.delete_sub_program(sub_program_id, actor_id(), today_arg())
    return jsonify({"deleted": sub_program_id}), 200


# ═════════════════════════════════════════════════════════════════════════
# Initiatives & tasks
# ═════════════════════════════════════════════════════════════════════════


@hierarchy_bp.route("/initiatives", methods=["POST"])
def create_initiative():
    """Body: initiative snapshot {name, program_id | sub_program_id, deadline?, ...}"""
    data = request.get_json(silent=True) or {}
    try:
        snapshot = InitiativeSnapshot.from_dict(data)
    except SnapshotError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))
    return jsonify(hs.create_initiative(snapshot, actor_id(), today_arg())), 201


@hierarchy_bp.route("/initiatives/<int:initiative_id>", methods=["GET"])
def get_initiative(initiative_id):
    initiative = hs.get_initiative(initiative_id)
    body = initiative.to_dict()
    body["progress"] = round(progress_service.initiative_progress(initiative), 4)
    return jsonify(body), 200


@hierarchy_bp.route("/initiatives/<int:initiative_id>", methods=["PUT"])
def update_initiative(initiative_id):
    """Partial edit; naming a single parent id moves the initiative there."""
    data = request.get_json(silent=True) or {}
    data.pop("actor_id", None)
    err = _bad_dates(data, "start_date", "deadline")
    if err:
        return err
    return jsonify(hs.update_initiative(initiative_id, data, actor_id(), today_arg())), 200


@hierarchy_bp.route("/tasks", methods=["POST"])
def create_task():
    """Body: task snapshot {name, initiative_id, assignee_ids, deadline?, ...}"""
    data = request.get_json(silent=True) or {}
    try:
        snapshot = TaskSnapshot.from_dict(data)
    except SnapshotError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))
    return jsonify(hs.create_task(snapshot, actor_id(), today_arg())), 201


@hierarchy_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task(task_id):
    return jsonify(hs.get_task(task_id).to_dict()), 200


@hierarchy_bp.route("/tasks/<int:task_id>", methods=["PUT"])
def update_task(task_id):
    """Partial edit; fields left out keep their current values."""
    data = request.get_json(silent=True) or {}
    data.pop("actor_id", None)
    err = _bad_dates(data, "start_date", "deadline")
    if err:
        return err
    return jsonify(hs.update_task(task_id, data, actor_id(), today_arg())), 200


@hierarchy_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(task_id):
    hs.delete_task(task_id, actor_id(), today_arg())
    return jsonify({"deleted": task_id}), 200


@hierarchy_bp.route("/tasks/<int:task_id>/complete", methods=["POST"])
def complete_task(task_id):
    return jsonify(hs.complete_task(task_id, actor_id(), today_arg())), 200


# ═════════════════════════════════════════════════════════════════════════
# Progress & sweeps
# ═════════════════════════════════════════════════════════════════════════


@hierarchy_bp.route("/progress/<node_type>/<int:node_id>", methods=["GET"])
def get_progress(node_type, node_id):
    """Programs are re-resolved on the way; other nodes are read-only."""
    if node_type == "program":
        view = hs.program_progress_view(node_id, today_arg())
        return jsonify({"node_type": node_type, "id": node_id, **view}), 200
    value = progress_service.progress_of(node_type, node_id)
    return jsonify({"node_type": node_type, "id": node_id, "progress": round(value, 4)}), 200


@hierarchy_bp.route("/statuses/recompute", methods=["POST"])
def recompute_statuses():
    return jsonify(hs.recompute_statuses(today_arg())), 200


@hierarchy_bp.route("/deadlines/sweep", methods=["POST"])
def deadline_sweep():
    return jsonify(deadline_notifier.run_deadline_sweep(today_arg())), 200
