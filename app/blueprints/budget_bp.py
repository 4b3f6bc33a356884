"""
Budget & progress blueprint.

Endpoint groups (all under /api/v1/works/<work_id>):
  Budget document     GET/PUT   /budget
  Categories          POST      /budget/categories
                      PATCH/DELETE /budget/categories/<category_id>
  Manual progress     PUT       /budget/categories/<category_id>/progress
  Progress ledger     GET       /budget/categories/<category_id>/ledger
  Items               POST      /budget/categories/<category_id>/items
                      PATCH/DELETE /budget/categories/<category_id>/items/<item_id>
  Bulk generation     POST      /budget/generate
  Earned value        GET       /earned-value
  Field reports       GET/POST  /field-reports
                      GET/PUT/DELETE /field-reports/<report_id>
  Measurements        POST      /measurements
  Work progress       GET       /progress
                      PUT       /progress-method

Every budget mutation accepts the ``version`` the client read (JSON body or
query string). A stale version answers 409 and nothing is written.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from app import limiter
from app.blueprints import register_error_handlers, request_version
from app.services import budget_service, field_report_service, progress_service
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

budget_bp = Blueprint("budget", __name__, url_prefix="/api/v1/works/<int:work_id>")
register_error_handlers(budget_bp)


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _generation_limit() -> str:
    return current_app.config.get("BUDGET_GENERATION_RATE_LIMIT", "10 per minute")


# ═════════════════════════════════════════════════════════════════════════
# Budget document
# ═════════════════════════════════════════════════════════════════════════


@budget_bp.route("/budget", methods=["GET"])
def get_budget(work_id):
    """The work's budget; an empty one (version 0) when none was saved."""
    return jsonify(budget_service.get_budget_document(work_id)), 200


@budget_bp.route("/budget", methods=["PUT"])
def save_budget(work_id):
    """Replace the whole document. Body: WorkBudget JSON including ``version``."""
    return jsonify(budget_service.save_document(work_id, _json())), 200


# ── Categories ───────────────────────────────────────────────────────────


@budget_bp.route("/budget/categories", methods=["POST"])
def add_category(work_id):
    data = _json()
    return jsonify(budget_service.add_category(work_id, data, request_version(data))), 201


@budget_bp.route("/budget/categories/<category_id>", methods=["PATCH"])
def update_category(work_id, category_id):
    data = _json()
    return jsonify(budget_service.update_category(work_id, category_id, data, request_version(data))), 200


@budget_bp.route("/budget/categories/<category_id>", methods=["DELETE"])
def remove_category(work_id, category_id):
    return jsonify(budget_service.remove_category(work_id, category_id, request_version())), 200


@budget_bp.route("/budget/categories/<category_id>/progress", methods=["PUT"])
def set_category_progress(work_id, category_id):
    """Manual overwrite. Body: {progress: 0-100, version?}."""
    data = _json()
    if "progress" not in data:
        return api_error(E.VALIDATION_REQUIRED, "progress is required", details={"progress": "required"})
    return jsonify(
        budget_service.set_progress(work_id, category_id, data["progress"], request_version(data))
    ), 200


@budget_bp.route("/budget/categories/<category_id>/ledger", methods=["GET"])
def category_ledger(work_id, category_id):
    entries = field_report_service.category_ledger(work_id, category_id)
    return jsonify({"items": entries, "total": len(entries)}), 200


# ── Items ────────────────────────────────────────────────────────────────


@budget_bp.route("/budget/categories/<category_id>/items", methods=["POST"])
def add_item(work_id, category_id):
    data = _json()
    return jsonify(budget_service.add_item(work_id, category_id, data, request_version(data))), 201


@budget_bp.route("/budget/categories/<category_id>/items/<item_id>", methods=["PATCH"])
def update_item(work_id, category_id, item_id):
    """Body: any of {quantity, unitPrice, description, unit, notes, version}."""
    data = _json()
    return jsonify(
        budget_service.update_item(work_id, category_id, item_id, data, request_version(data))
    ), 200


@budget_bp.route("/budget/categories/<category_id>/items/<item_id>", methods=["DELETE"])
def remove_item(work_id, category_id, item_id):
    return jsonify(budget_service.remove_item(work_id, category_id, item_id, request_version())), 200


# ── Bulk generation ──────────────────────────────────────────────────────


@budget_bp.route("/budget/generate", methods=["POST"])
@limiter.limit(_generation_limit)
def generate_budget(work_id):
    """Draft categories from a scope text. Body: {scope_text, replace?, version?}."""
    data = _json()
    generator = current_app.extensions["budget_generator"]
    result = budget_service.generate_budget(
        work_id,
        data.get("scope_text", ""),
        generator,
        version=request_version(data),
        replace=data.get("replace") is True,
    )
    return jsonify(result), 201


# ═════════════════════════════════════════════════════════════════════════
# Earned value & progress
# ═════════════════════════════════════════════════════════════════════════


@budget_bp.route("/earned-value", methods=["GET"])
def earned_value(work_id):
    return jsonify(budget_service.earned_value(work_id)), 200


@budget_bp.route("/progress", methods=["GET"])
def work_progress(work_id):
    return jsonify(progress_service.get_work_progress(work_id)), 200


@budget_bp.route("/progress-method", methods=["PUT"])
def set_progress_method(work_id):
    """Body: {progress_method: STAGES | TASKS}."""
    data = _json()
    return jsonify(progress_service.set_progress_method(work_id, data.get("progress_method"))), 200


# ═════════════════════════════════════════════════════════════════════════
# Field reports & measurements
# ═════════════════════════════════════════════════════════════════════════


@budget_bp.route("/field-reports", methods=["GET"])
def list_field_reports(work_id):
    reports = field_report_service.list_field_reports(work_id)
    return jsonify({"items": reports, "total": len(reports)}), 200


@budget_bp.route("/field-reports", methods=["POST"])
def create_field_report(work_id):
    """
    Body: {report_type?, report_date?, author?, content?, version?,
           progress_updates: [{taskId, progressDelta, note?}]}
    """
    return jsonify(field_report_service.create_field_report(work_id, _json())), 201


@budget_bp.route("/field-reports/<int:report_id>", methods=["GET"])
def get_field_report(work_id, report_id):
    return jsonify(field_report_service.get_field_report(work_id, report_id)), 200


@budget_bp.route("/field-reports/<int:report_id>", methods=["PUT"])
def update_field_report(work_id, report_id):
    return jsonify(field_report_service.update_field_report(work_id, report_id, _json())), 200


@budget_bp.route("/field-reports/<int:report_id>", methods=["DELETE"])
def delete_field_report(work_id, report_id):
    return jsonify(
        field_report_service.delete_field_report(work_id, report_id, request_version())
    ), 200


@budget_bp.route("/measurements", methods=["POST"])
def record_measurement(work_id):
    """Body: {task_id, progress_delta (0 .. 100 - current), note?, version?}."""
    return jsonify(field_report_service.record_measurement(work_id, _json())), 201
