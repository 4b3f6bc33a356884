"""
Work service — the work, schedule stage, task and financial record rows
that feed the progress engine.

Transaction policy: each public function commits its own change.
"""
import logging
from datetime import date
from decimal import Decimal

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.work import (
    FINANCE_STATUSES,
    FINANCE_TYPES,
    PROGRESS_METHODS,
    TASK_DONE,
    TASK_PRIORITIES,
    TASK_STATUSES,
    FinancialRecord,
    Task,
    Work,
    WorkStage,
    next_stage_status,
)
from app.services import budget_repository as repo
from app.services.cost_model import to_decimal, to_percent
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)


def _required(data, field):
    value = data.get(field)
    if isinstance(value, str):
        value = value.strip()
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value


def _choice(value, allowed, field):
    value = (value or "").upper()
    if value not in allowed:
        raise ValidationError(f"{field} must be one of {sorted(allowed)}", details={field: value})
    return value


def _money(value, field):
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0", details={field: "negative"})
    return amount


# ═════════════════════════════════════════════════════════════════════════════
# Works
# ═════════════════════════════════════════════════════════════════════════════


def create_work(data, default_method="STAGES") -> Work:
    work = Work(
        name=_required(data, "name"),
        client=data.get("client", ""),
        address=data.get("address", ""),
        description=data.get("description", ""),
        status=data.get("status") or "PLANNING",
        progress_method=_choice(data.get("progress_method") or default_method, PROGRESS_METHODS, "progress_method"),
        start_date=parse_date(data.get("start_date")),
        end_date=parse_date(data.get("end_date")),
    )
    db.session.add(work)
    db.session.commit()
    logger.info("Work %s created: %s", work.id, work.name)
    return work


def update_work(work_id, data) -> Work:
    """Edit descriptive fields. ``budget`` mirrors the budget total and is not editable."""
    work = repo.get_work(work_id)
    if "name" in data:
        _required(data, "name")
    for field in ("name", "client", "address", "description", "status"):
        if field in data:
            setattr(work, field, data[field] or "")
    for field in ("start_date", "end_date"):
        if field in data:
            setattr(work, field, parse_date(data[field]))
    db.session.commit()
    return work


def delete_work(work_id) -> None:
    work = repo.get_work(work_id)
    repo.delete_budget(work_id)
    db.session.delete(work)
    db.session.commit()
    logger.info("Work %s deleted", work_id)


# ═════════════════════════════════════════════════════════════════════════════
# Schedule stages (STAGES method)
# ═════════════════════════════════════════════════════════════════════════════


def _get_stage(work_id, stage_id) -> WorkStage:
    stage = db.session.get(WorkStage, stage_id)
    if stage is None or stage.work_id != work_id:
        raise NotFoundError(resource="WorkStage", resource_id=stage_id, work_id=work_id)
    return stage


def list_stages(work_id):
    return repo.get_work(work_id).stages.all()


def add_stage(work_id, data) -> WorkStage:
    work = repo.get_work(work_id)
    stage = WorkStage(
        work_id=work_id,
        name=_required(data, "name"),
        order=data.get("order", work.stages.count()),
    )
    db.session.add(stage)
    db.session.commit()
    return stage


def cycle_stage_status(work_id, stage_id) -> WorkStage:
    """PENDING → IN_PROGRESS → COMPLETED → PENDING."""
    stage = _get_stage(work_id, stage_id)
    stage.status = next_stage_status(stage.status)
    db.session.commit()
    return stage


def delete_stage(work_id, stage_id) -> None:
    db.session.delete(_get_stage(work_id, stage_id))
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


def list_tasks(work_id):
    repo.get_work(work_id)
    return repo.list_tasks(work_id)


def _apply_task_fields(task, data):
    for field in ("title", "description", "assigned_to", "planning_week"):
        if field in data:
            setattr(task, field, data[field])
    if "status" in data:
        task.status = _choice(data["status"], TASK_STATUSES, "status")
        if task.status == TASK_DONE:
            task.completed_date = parse_date(data.get("completed_date")) or task.completed_date or date.today()
        else:
            task.completed_date = None
    if "priority" in data:
        task.priority = _choice(data["priority"], TASK_PRIORITIES, "priority")
    if "due_date" in data:
        task.due_date = parse_date(data["due_date"])
    if "stage_id" in data:
        task.stage_id = data["stage_id"] or None
    if "physical_progress" in data:
        task.physical_progress = to_percent(data["physical_progress"], "physical_progress")
    if "estimated_cost" in data:
        raw = data["estimated_cost"]
        task.estimated_cost = None if raw is None else _money(raw, "estimated_cost")


def create_task(work_id, data) -> Task:
    repo.get_work(work_id)
    task = Task(work_id=work_id, title=_required(data, "title"))
    _apply_task_fields(task, data)
    db.session.add(task)
    db.session.commit()
    return task


def update_task(work_id, task_id, data) -> Task:
    """Plain task edit. Status changes here never touch budget progress."""
    task = repo.get_task(work_id, task_id)
    if "title" in data:
        _required(data, "title")
    _apply_task_fields(task, data)
    repo.update_task(task)
    db.session.commit()
    return task


def delete_task(work_id, task_id) -> None:
    db.session.delete(repo.get_task(work_id, task_id))
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# Financial records (actual-spend source)
# ═════════════════════════════════════════════════════════════════════════════


def list_financial_records(work_id):
    repo.get_work(work_id)
    return repo.list_financial_records(work_id)


def create_financial_record(work_id, data) -> FinancialRecord:
    repo.get_work(work_id)
    record = FinancialRecord(
        work_id=work_id,
        type=_choice(data.get("type") or "EXPENSE", FINANCE_TYPES, "type"),
        description=data.get("description", ""),
        category=data.get("category", ""),
        amount=_money(data.get("amount", Decimal("0")), "amount"),
        status=_choice(data.get("status") or "PENDING", FINANCE_STATUSES, "status"),
        due_date=parse_date(data.get("due_date")),
        paid_date=parse_date(data.get("paid_date")),
        related_budget_category_id=data.get("related_budget_category_id") or None,
    )
    db.session.add(record)
    db.session.commit()
    return record


def delete_financial_record(work_id, record_id) -> None:
    record = db.session.get(FinancialRecord, record_id)
    if record is None or record.work_id != work_id:
        raise NotFoundError(resource="FinancialRecord", resource_id=record_id, work_id=work_id)
    db.session.delete(record)
    db.session.commit()
