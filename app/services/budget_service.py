"""
Budget service — orchestrates cost-model edits against the stored aggregate.

Every mutation follows the same unit of work:

    load (or empty, version 0) → optional version gate → pure transform
    → save_budget (compare-and-set, version + 1) → mirror total on Work → commit

Any failure rolls the session back; the stored aggregate is untouched.

Manual progress edits re-anchor the category (progress_base = progress) and
supersede its earlier field-report deltas, in the same transaction.
"""
import logging
from dataclasses import replace as _replace

from app.core.exceptions import ConcurrencyConflictError, ValidationError
from app.models import db
from app.services import budget_repository as repo
from app.services import cost_model as cm
from app.services.earned_value import build_earned_value_report
from app.services.field_report_service import supersede_category_entries
from app.services.progress_propagation import set_category_progress

logger = logging.getLogger(__name__)


def _check_version(budget, expected_version):
    expected_version = cm.to_version(expected_version)
    if expected_version is not None and expected_version != budget.version:
        raise ConcurrencyConflictError(budget.work_id, expected_version, budget.version)


def _persist(work, budget):
    saved = repo.save_budget(budget)
    work.budget = saved.total_value
    db.session.flush()
    return saved


def _mutate(work_id, expected_version, transform, *, action=""):
    """Run one edit as a unit of work; return the saved budget dict."""
    work = repo.get_work(work_id)
    try:
        budget = repo.load_or_empty(work_id)
        _check_version(budget, expected_version)
        saved = _persist(work, transform(budget))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Budget %s work=%s version=%s total=%s", action or "updated", work_id, saved.version, saved.total_value)
    return saved.to_dict()


# ── Document ─────────────────────────────────────────────────────────────────


def get_budget_document(work_id) -> dict:
    """The stored aggregate, or an empty one with version 0."""
    repo.get_work(work_id)
    return repo.load_or_empty(work_id).to_dict()


def save_document(work_id, data) -> dict:
    """
    Replace the whole aggregate with an edited document.

    ``version`` must be the version the client read. Client-sent totals are
    ignored and recomputed. A category whose progress differs from the stored
    value is treated as a manual edit (re-anchored, ledger superseded).
    """
    if not isinstance(data, dict):
        raise ValidationError("Budget document must be an object")
    if cm.to_version(data.get("version")) is None:
        raise ValidationError("version is required", details={"version": "required"})

    work = repo.get_work(work_id)
    try:
        incoming = cm.WorkBudget.from_dict(data, work_id=work_id)
        stored = repo.load_or_empty(work_id)
        _check_version(stored, data["version"])

        previous = {c.id: c for c in stored.categories}
        categories = []
        for category in incoming.categories:
            before = previous.get(category.id)
            if before is None:
                base = category.progress
            elif before.progress != category.progress:
                base = category.progress
                supersede_category_entries(work_id, category.id)
            else:
                base = before.progress_base
            categories.append(_replace(category, progress_base=base))

        budget = _replace(stored, categories=categories).recalculated()
        saved = _persist(work, budget)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Budget document saved work=%s version=%s categories=%d",
                work_id, saved.version, len(saved.categories))
    return saved.to_dict()


# ── Categories ───────────────────────────────────────────────────────────────


def add_category(work_id, data, version=None) -> dict:
    return _mutate(
        work_id, version,
        lambda b: cm.add_category(
            b, data.get("name"), start_date=data.get("startDate"), end_date=data.get("endDate"),
        ),
        action="category added",
    )


def update_category(work_id, category_id, data, version=None) -> dict:
    """Rename and/or reschedule a category."""
    def _transform(budget):
        if "name" in data:
            budget = cm.rename_category(budget, category_id, data["name"])
        if "startDate" in data or "endDate" in data:
            current = budget.find_category(category_id)
            budget = cm.set_category_schedule(
                budget, category_id,
                data.get("startDate", current.start_date),
                data.get("endDate", current.end_date),
            )
        return budget

    return _mutate(work_id, version, _transform, action="category updated")


def remove_category(work_id, category_id, version=None) -> dict:
    return _mutate(work_id, version, lambda b: cm.remove_category(b, category_id), action="category removed")


def set_progress(work_id, category_id, value, version=None) -> dict:
    """Manual overwrite of a category's progress (may decrease)."""
    def _transform(budget):
        budget = set_category_progress(budget, category_id, value)
        superseded = supersede_category_entries(work_id, category_id)
        if superseded:
            logger.info("Manual progress on %s superseded %d ledger entries", category_id, superseded)
        return budget

    return _mutate(work_id, version, _transform, action="progress set")


# ── Items ────────────────────────────────────────────────────────────────────


def add_item(work_id, category_id, data, version=None) -> dict:
    return _mutate(
        work_id, version,
        lambda b: cm.add_item(
            b, category_id,
            data.get("description", ""),
            data.get("unit") or "un",
            data.get("quantity", 1),
            data.get("unitPrice", 0),
            data.get("notes"),
        ),
        action="item added",
    )


def update_item(work_id, category_id, item_id, data, version=None) -> dict:
    """Edit quantity / unitPrice (totals follow) and the descriptive fields."""
    def _transform(budget):
        for field_name in ("quantity", "unitPrice"):
            if field_name in data:
                budget = cm.set_item_quantity_or_price(budget, category_id, item_id, field_name, data[field_name])
        if any(k in data for k in ("description", "unit", "notes")):
            budget = cm.update_item_details(
                budget, category_id, item_id,
                description=data.get("description"), unit=data.get("unit"), notes=data.get("notes"),
            )
        budget.find_category(category_id).find_item(item_id)
        return budget

    return _mutate(work_id, version, _transform, action="item updated")


def remove_item(work_id, category_id, item_id, version=None) -> dict:
    return _mutate(work_id, version, lambda b: cm.remove_item(b, category_id, item_id), action="item removed")


# ── Bulk generation ──────────────────────────────────────────────────────────


def generate_budget(work_id, scope_text, generator, *, version=None, replace=False) -> dict:
    """
    Replace the category set with a generated draft.

    A budget that already has categories is only overwritten when
    ``replace`` is set.
    """
    if not (scope_text or "").strip():
        raise ValidationError("scope_text is required", details={"scope_text": "required"})
    work = repo.get_work(work_id)
    existing = repo.load_or_empty(work_id)
    if existing.categories and not replace:
        raise ValidationError(
            "Budget already has categories; pass replace=true to overwrite",
            details={"replace": "required"},
        )
    categories = generator.generate_categories(work.name, scope_text)
    return _mutate(
        work_id, version, lambda b: cm.replace_categories(b, categories), action="generated",
    )


# ── Reports ──────────────────────────────────────────────────────────────────


def earned_value(work_id) -> dict:
    repo.get_work(work_id)
    budget = repo.load_or_empty(work_id)
    report = build_earned_value_report(
        budget, repo.list_financial_records(work_id), repo.list_tasks(work_id),
    )
    return report.to_dict()
