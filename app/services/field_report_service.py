"""Field report service — applies field progress to the budget, atomically.

Transaction policy: each public function is one unit of work. The budget
document, the progress ledger rows and the task status transitions are
written in the same SQLAlchemy session and committed together; any error
rolls the whole unit back, so no task is ever marked DONE without its
progress being reflected in the category (and vice versa).

Operations:
- create_field_report: fold a report's ProgressUpdates into category progress
- record_measurement: measurement step for one task (delta ≤ 100 − current)
- update_field_report: replace a report's deltas and re-derive progress
- delete_field_report: drop a report's contribution and re-derive progress
- supersede_category_entries: called on manual progress edits
"""
import logging
from collections import defaultdict
from datetime import date

from app.core.exceptions import ConcurrencyConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.budget import REPORT_TYPES, FieldReport, ProgressLedgerEntry
from app.models.work import TASK_DONE
from app.services import budget_repository as repo
from app.services.cost_model import to_version
from app.services.progress_propagation import (
    ProgressUpdate,
    apply_measurement,
    apply_progress_updates,
    rederive_categories,
)
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _parse_updates(data) -> list[ProgressUpdate]:
    raw = data.get("progress_updates", data.get("progressUpdates")) or []
    if not isinstance(raw, list):
        raise ValidationError("progress_updates must be a list", details={"progress_updates": "not a list"})
    if not all(isinstance(u, dict) for u in raw):
        raise ValidationError(
            "progress_updates entries must be objects", details={"progress_updates": "not an object"},
        )
    return [ProgressUpdate.from_dict(u) for u in raw]


def _report_type(value) -> str:
    report_type = (value or "DAILY").upper()
    if report_type not in REPORT_TYPES:
        raise ValidationError(
            f"report_type must be one of {sorted(REPORT_TYPES)}", details={"report_type": value},
        )
    return report_type


def _load_checked(work_id, expected_version):
    """Load the budget; if the caller supplied the version it read, gate on it."""
    expected_version = to_version(expected_version)
    budget = repo.load_or_empty(work_id)
    if expected_version is not None and expected_version != budget.version:
        raise ConcurrencyConflictError(work_id, expected_version, budget.version)
    return budget


def _task_links(work_id) -> dict:
    return {t.id: t.stage_link for t in repo.list_tasks(work_id)}


def _complete_tasks(work_id, task_ids) -> list[int]:
    """Transition the originating tasks to DONE through the task sink."""
    changed = []
    for task_id in task_ids:
        task = repo.get_task(work_id, task_id)
        if task.status != TASK_DONE:
            task.status = TASK_DONE
            task.completed_date = date.today()
            repo.update_task(task)
            changed.append(task_id)
    return changed


def _add_ledger_rows(work_id, report_id, deltas, superseded_categories=frozenset()):
    for d in deltas:
        db.session.add(ProgressLedgerEntry(
            work_id=work_id,
            report_id=report_id,
            category_id=d.category_id,
            task_id=d.task_id,
            delta=d.delta,
            note=d.note,
            superseded=d.category_id in superseded_categories,
        ))
    db.session.flush()


def active_deltas(work_id, category_ids=None) -> dict[str, list[int]]:
    """category_id → deltas still counting toward its progress."""
    q = ProgressLedgerEntry.query.filter_by(work_id=work_id, superseded=False)
    if category_ids is not None:
        q = q.filter(ProgressLedgerEntry.category_id.in_(list(category_ids)))
    out: dict[str, list[int]] = defaultdict(list)
    for entry in q.order_by(ProgressLedgerEntry.id).all():
        out[entry.category_id].append(entry.delta)
    return out


def supersede_category_entries(work_id, category_id) -> int:
    """A manual edit re-anchors progress; earlier deltas stop counting. Flush only."""
    entries = ProgressLedgerEntry.query.filter_by(
        work_id=work_id, category_id=category_id, superseded=False,
    ).all()
    for entry in entries:
        entry.superseded = True
    db.session.flush()
    return len(entries)


def _get_report(work_id, report_id) -> FieldReport:
    report = db.session.get(FieldReport, report_id)
    if report is None or report.work_id != work_id:
        raise NotFoundError(resource="FieldReport", resource_id=report_id, work_id=work_id)
    return report


def _commit():
    db.session.commit()


# ── Create ───────────────────────────────────────────────────────────────────


def create_field_report(work_id, data) -> dict:
    """
    Apply one field report.

    Each ProgressUpdate for a linked task adds its delta to the category
    (clamped at 100) and completes the task; unlinked tasks are skipped.

    Returns:
        {"report", "budget", "propagation"} dicts.

    Raises:
        NotFoundError: unknown work/task/category.
        InvalidRangeError: delta outside [0, 100].
        ConcurrencyConflictError: stale ``version``.
    """
    repo.get_work(work_id)
    try:
        updates = _parse_updates(data)
        budget = _load_checked(work_id, data.get("version"))
        result = apply_progress_updates(budget, updates, _task_links(work_id))

        report = FieldReport(
            work_id=work_id,
            report_type=_report_type(data.get("report_type")),
            report_date=parse_date(data.get("report_date")) or date.today(),
            author=data.get("author", ""),
            content=data.get("content", ""),
        )
        db.session.add(report)
        db.session.flush()

        _add_ledger_rows(work_id, report.id, result.applied)
        _complete_tasks(work_id, result.completed_task_ids)
        if result.applied:
            budget = repo.save_budget(result.budget)
        _commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Field report %s applied work=%s deltas=%d completed=%s skipped=%s",
        report.id, work_id, len(result.applied), result.completed_task_ids, result.skipped_task_ids,
    )
    return {
        "report": report.to_dict(),
        "budget": budget.to_dict(),
        "propagation": result.to_dict(),
    }


def record_measurement(work_id, data) -> dict:
    """
    Measurement step for one task: delta in [0, 100 − current category progress].

    The category write, the ledger row and the task completion commit together.
    """
    repo.get_work(work_id)
    try:
        task_id = data.get("task_id", data.get("taskId"))
        if task_id is None:
            raise ValidationError("task_id is required", details={"task_id": "required"})
        try:
            task_id = int(task_id)
        except (TypeError, ValueError):
            raise ValidationError("task_id must be an integer", details={"task_id": task_id})
        task = repo.get_task(work_id, task_id)
        budget = _load_checked(work_id, data.get("version"))
        note = data.get("note") or ""
        result = apply_measurement(
            budget, task.id, task.stage_link,
            data.get("progress_delta", data.get("progressDelta", 0)), note,
        )

        report = FieldReport(
            work_id=work_id,
            report_type="DAILY",
            report_date=parse_date(data.get("report_date")) or date.today(),
            author=data.get("author", ""),
            content=note,
            related_task_id=task.id,
        )
        db.session.add(report)
        db.session.flush()

        _add_ledger_rows(work_id, report.id, result.applied)
        _complete_tasks(work_id, result.completed_task_ids)
        if result.applied:
            budget = repo.save_budget(result.budget)
        _commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Measurement report %s work=%s task=%s applied=%d",
                report.id, work_id, task.id, len(result.applied))
    return {
        "report": report.to_dict(),
        "budget": budget.to_dict(),
        "propagation": result.to_dict(),
    }


# ── Edit / delete ────────────────────────────────────────────────────────────


def update_field_report(work_id, report_id, data) -> dict:
    """
    Edit a report. When ``progress_updates`` is supplied, the report's ledger
    rows are replaced and the affected categories are re-derived from the
    ledger instead of re-folding deltas onto the current value.

    Deltas of a report that a later manual edit already overrode stay
    overridden for the same category.
    """
    repo.get_work(work_id)
    try:
        report = _get_report(work_id, report_id)
        for field in ("author", "content"):
            if field in data:
                setattr(report, field, data[field] or "")
        if "report_type" in data:
            report.report_type = _report_type(data["report_type"])
        if "report_date" in data:
            report.report_date = parse_date(data["report_date"])

        budget = None
        result = None
        if "progress_updates" in data or "progressUpdates" in data:
            updates = _parse_updates(data)
            budget = _load_checked(work_id, data.get("version"))
            # Validates every entry and tells us which tasks complete.
            result = apply_progress_updates(budget, updates, _task_links(work_id))

            old_entries = list(report.ledger_entries)
            old_active = {e.category_id for e in old_entries if not e.superseded}
            old_superseded = {e.category_id for e in old_entries if e.superseded} - old_active
            for entry in old_entries:
                report.ledger_entries.remove(entry)
            db.session.flush()

            _add_ledger_rows(work_id, report.id, result.applied, old_superseded)
            _complete_tasks(work_id, result.completed_task_ids)

            affected = old_active | {d.category_id for d in result.applied}
            rederived = rederive_categories(budget, active_deltas(work_id, affected), affected)
            if affected:
                budget = repo.save_budget(rederived)
        else:
            db.session.flush()
        _commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Field report %s updated work=%s", report_id, work_id)
    out = {"report": report.to_dict()}
    if budget is not None:
        out["budget"] = budget.to_dict()
        out["propagation"] = result.to_dict()
    return out


def delete_field_report(work_id, report_id, version=None) -> dict:
    """Remove a report and its contribution to category progress."""
    repo.get_work(work_id)
    try:
        report = _get_report(work_id, report_id)
        budget = _load_checked(work_id, version)
        affected = {e.category_id for e in report.ledger_entries if not e.superseded}
        db.session.delete(report)
        db.session.flush()
        if affected:
            budget = repo.save_budget(
                rederive_categories(budget, active_deltas(work_id, affected), affected),
            )
        _commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Field report %s deleted work=%s categories=%s", report_id, work_id, sorted(affected))
    return {"deleted": report_id, "budget": budget.to_dict()}


# ── Reads ────────────────────────────────────────────────────────────────────


def list_field_reports(work_id) -> list[dict]:
    repo.get_work(work_id)
    reports = (
        FieldReport.query.filter_by(work_id=work_id)
        .order_by(FieldReport.report_date.desc(), FieldReport.id.desc())
        .all()
    )
    return [r.to_dict() for r in reports]


def get_field_report(work_id, report_id) -> dict:
    return _get_report(work_id, report_id).to_dict()


def category_ledger(work_id, category_id) -> list[dict]:
    """Every delta ever applied to a category, oldest first."""
    entries = (
        ProgressLedgerEntry.query.filter_by(work_id=work_id, category_id=category_id)
        .order_by(ProgressLedgerEntry.id)
        .all()
    )
    return [e.to_dict() for e in entries]
