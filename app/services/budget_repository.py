"""Budget Repository — load/save of the WorkBudget aggregate by work id.

Transaction policy: functions use flush(), never commit().
Caller (route handler or orchestration service) owns the commit.

Concurrency: whole-aggregate optimistic locking. A save carries the version
it read; the stored row is updated with a compare-and-set on that version.
A mismatch raises ConcurrencyConflictError and nothing is written. A budget
that was never saved has version 0.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConcurrencyConflictError, NotFoundError
from app.models import db
from app.models.budget import BudgetDocument
from app.models.work import FinancialRecord, Task, Work
from app.services.cost_model import WorkBudget, empty_budget, recalculate_totals

logger = logging.getLogger(__name__)


def _row_for(work_id):
    return BudgetDocument.query.filter_by(work_id=work_id).first()


def _from_row(row: BudgetDocument) -> WorkBudget:
    budget = WorkBudget.from_dict(row.document or {}, work_id=row.work_id)
    budget.id = row.id
    budget.version = row.version
    budget.updated_at = row.updated_at
    return budget


def get_budget(work_id) -> WorkBudget | None:
    """Return the stored budget, or None when no plan exists yet."""
    row = _row_for(work_id)
    if row is None:
        return None
    return _from_row(row)


def load_or_empty(work_id) -> WorkBudget:
    """Stored budget, or a fresh empty one (version 0) when absent."""
    return get_budget(work_id) or empty_budget(work_id)


def current_version(work_id) -> int:
    row = _row_for(work_id)
    return row.version if row else 0


def save_budget(budget: WorkBudget) -> WorkBudget:
    """
    Persist the whole aggregate.

    Returns:
        The saved budget with ``version`` incremented by exactly 1.

    Raises:
        ConcurrencyConflictError: ``budget.version`` is not the stored version.
    """
    budget = recalculate_totals(budget)
    now = datetime.now(timezone.utc)
    new_version = budget.version + 1
    document = {**budget.to_dict(), "version": new_version, "updatedAt": now.isoformat()}

    row = _row_for(budget.work_id)
    if row is None:
        if budget.version != 0:
            raise ConcurrencyConflictError(budget.work_id, budget.version, None)
        row = BudgetDocument(
            id=str(budget.id or budget.work_id),
            work_id=budget.work_id,
            document=document,
            version=new_version,
            updated_at=now,
        )
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            logger.info("Rejected concurrent first save work=%s", budget.work_id)
            raise ConcurrencyConflictError(budget.work_id, budget.version, None)
    else:
        result = db.session.execute(
            update(BudgetDocument)
            .where(BudgetDocument.work_id == budget.work_id)
            .where(BudgetDocument.version == budget.version)
            .values(document=document, version=new_version, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.refresh(row)
            logger.info(
                "Rejected stale budget save work=%s supplied=%s stored=%s",
                budget.work_id, budget.version, row.version,
            )
            raise ConcurrencyConflictError(budget.work_id, budget.version, row.version)
        db.session.expire(row)

    logger.debug("Saved budget work=%s version=%s total=%s", budget.work_id, new_version, budget.total_value)
    saved = recalculate_totals(budget)
    saved.version = new_version
    saved.updated_at = now
    return saved


def delete_budget(work_id) -> bool:
    row = _row_for(work_id)
    if row is None:
        return False
    db.session.delete(row)
    db.session.flush()
    return True


# ── Collaborator reads / writes ─────────────────────────────────────────────


def list_financial_records(work_id) -> list[FinancialRecord]:
    """Read-only actual-spend source for the earned-value calculator."""
    return FinancialRecord.query.filter_by(work_id=work_id).order_by(FinancialRecord.id).all()


def list_tasks(work_id) -> list[Task]:
    return Task.query.filter_by(work_id=work_id).order_by(Task.id).all()


def update_task(task: Task) -> Task:
    """Task progress sink: persist a status transition made by the engine."""
    db.session.add(task)
    db.session.flush()
    return task


def get_work(work_id) -> Work:
    """Work row or NotFoundError; every engine operation is scoped to one work."""
    work = db.session.get(Work, work_id)
    if work is None:
        raise NotFoundError(resource="Work", resource_id=work_id)
    return work


def get_task(work_id, task_id) -> Task:
    task = db.session.get(Task, task_id)
    if task is None or task.work_id != work_id:
        raise NotFoundError(resource="Task", resource_id=task_id, work_id=work_id)
    return task
