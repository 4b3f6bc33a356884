"""
Works blueprint — the rows that feed the progress engine.

Endpoint groups:
  Works               GET/POST       /api/v1/works
                      GET/PUT/DELETE /api/v1/works/<work_id>
  Schedule stages     GET/POST       /api/v1/works/<work_id>/stages
                      POST           /api/v1/works/<work_id>/stages/<stage_id>/cycle
                      DELETE         /api/v1/works/<work_id>/stages/<stage_id>
  Tasks               GET/POST       /api/v1/works/<work_id>/tasks
                      PUT/DELETE     /api/v1/works/<work_id>/tasks/<task_id>
  Financial records   GET/POST       /api/v1/works/<work_id>/financial-records
                      DELETE         /api/v1/works/<work_id>/financial-records/<record_id>
  Weekly planning     GET            /api/v1/works/<work_id>/planning/<week>
                      POST           /api/v1/works/<work_id>/planning/<week>/tasks
                      POST           /api/v1/works/<work_id>/planning/<week>/carry-over
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from app.blueprints import paginate_query, register_error_handlers
from app.models.work import Work
from app.services import budget_repository as repo
from app.services import planning_service, work_service

logger = logging.getLogger(__name__)

work_bp = Blueprint("work", __name__, url_prefix="/api/v1/works")
register_error_handlers(work_bp)


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ═════════════════════════════════════════════════════════════════════════
# Works
# ═════════════════════════════════════════════════════════════════════════


@work_bp.route("", methods=["GET"])
def list_works():
    items, total = paginate_query(Work.query.order_by(Work.id))
    return jsonify({"items": [w.to_dict() for w in items], "total": total}), 200


@work_bp.route("", methods=["POST"])
def create_work():
    data = _json()
    work = work_service.create_work(data, current_app.config.get("DEFAULT_PROGRESS_METHOD", "STAGES"))
    return jsonify(work.to_dict()), 201


@work_bp.route("/<int:work_id>", methods=["GET"])
def get_work(work_id):
    return jsonify(repo.get_work(work_id).to_dict()), 200


@work_bp.route("/<int:work_id>", methods=["PUT"])
def update_work(work_id):
    return jsonify(work_service.update_work(work_id, _json()).to_dict()), 200


@work_bp.route("/<int:work_id>", methods=["DELETE"])
def delete_work(work_id):
    work_service.delete_work(work_id)
    return jsonify({"deleted": work_id}), 200


# ── Schedule stages ──────────────────────────────────────────────────────


@work_bp.route("/<int:work_id>/stages", methods=["GET"])
def list_stages(work_id):
    stages = work_service.list_stages(work_id)
    return jsonify({"items": [s.to_dict() for s in stages], "total": len(stages)}), 200


@work_bp.route("/<int:work_id>/stages", methods=["POST"])
def add_stage(work_id):
    return jsonify(work_service.add_stage(work_id, _json()).to_dict()), 201


@work_bp.route("/<int:work_id>/stages/<int:stage_id>/cycle", methods=["POST"])
def cycle_stage(work_id, stage_id):
    return jsonify(work_service.cycle_stage_status(work_id, stage_id).to_dict()), 200


@work_bp.route("/<int:work_id>/stages/<int:stage_id>", methods=["DELETE"])
def delete_stage(work_id, stage_id):
    work_service.delete_stage(work_id, stage_id)
    return jsonify({"deleted": stage_id}), 200


# ── Tasks ────────────────────────────────────────────────────────────────


@work_bp.route("/<int:work_id>/tasks", methods=["GET"])
def list_tasks(work_id):
    tasks = work_service.list_tasks(work_id)
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)}), 200


@work_bp.route("/<int:work_id>/tasks", methods=["POST"])
def create_task(work_id):
    return jsonify(work_service.create_task(work_id, _json()).to_dict()), 201


@work_bp.route("/<int:work_id>/tasks/<int:task_id>", methods=["PUT"])
def update_task(work_id, task_id):
    return jsonify(work_service.update_task(work_id, task_id, _json()).to_dict()), 200


@work_bp.route("/<int:work_id>/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(work_id, task_id):
    work_service.delete_task(work_id, task_id)
    return jsonify({"deleted": task_id}), 200


# ── Financial records ────────────────────────────────────────────────────


@work_bp.route("/<int:work_id>/financial-records", methods=["GET"])
def list_financial_records(work_id):
    records = work_service.list_financial_records(work_id)
    return jsonify({"items": [r.to_dict() for r in records], "total": len(records)}), 200


@work_bp.route("/<int:work_id>/financial-records", methods=["POST"])
def create_financial_record(work_id):
    return jsonify(work_service.create_financial_record(work_id, _json()).to_dict()), 201


@work_bp.route("/<int:work_id>/financial-records/<int:record_id>", methods=["DELETE"])
def delete_financial_record(work_id, record_id):
    work_service.delete_financial_record(work_id, record_id)
    return jsonify({"deleted": record_id}), 200


# ═════════════════════════════════════════════════════════════════════════
# Weekly planning
# ═════════════════════════════════════════════════════════════════════════


@work_bp.route("/<int:work_id>/planning", methods=["GET"])
@work_bp.route("/<int:work_id>/planning/<week>", methods=["GET"])
def weekly_plan(work_id, week=None):
    """Week view; defaults to the current ISO week."""
    return jsonify(planning_service.weekly_plan(work_id, week)), 200


@work_bp.route("/<int:work_id>/planning/<week>/tasks", methods=["POST"])
def add_weekly_task(work_id, week):
    """Body: {title, stage_id, assigned_to?, priority?, due_date?}."""
    return jsonify(planning_service.add_weekly_task(work_id, week, _json())), 201


@work_bp.route("/<int:work_id>/planning/<week>/carry-over", methods=["POST"])
def carry_over(work_id, week):
    moved = planning_service.carry_over_overdue(work_id, week)
    return jsonify({"moved": moved, "total": len(moved)}), 200
