"""
Progress service — headline work progress and the per-category breakdown.

Reads only. The headline follows ``Work.progress_method``; switching the
method rewrites that one column and nothing else, so the value is always
re-derived on read.
"""
import logging

from app.models import db
from app.services import budget_repository as repo
from app.services.progress_aggregation import (
    all_methods,
    category_task_progress,
    category_weight,
    round_half_up,
    validate_method,
    weighted_completion,
    work_progress,
)

logger = logging.getLogger(__name__)


def get_work_progress(work_id) -> dict:
    work = repo.get_work(work_id)
    stages = work.stages.all()
    tasks = repo.list_tasks(work_id)
    budget = repo.load_or_empty(work_id)

    return {
        "work_id": work_id,
        "progress_method": work.progress_method,
        "progress": work_progress(work.progress_method, stages=stages, tasks=tasks),
        "by_method": all_methods(stages=stages, tasks=tasks),
        "weighted_progress": float(round_half_up(weighted_completion(budget), 2)),
        "categories": [
            {
                "id": c.id,
                "name": c.name,
                "progress": c.progress,
                "weight": float(round_half_up(category_weight(c, budget), 2)),
                "task_progress": category_task_progress(c.id, tasks),
            }
            for c in budget.categories
        ],
    }


def set_progress_method(work_id, method) -> dict:
    """Select STAGES or TASKS for the headline; no other data changes."""
    work = repo.get_work(work_id)
    work.progress_method = validate_method(method)
    db.session.commit()
    logger.info("Work %s progress method set to %s", work_id, work.progress_method)
    return get_work_progress(work_id)
