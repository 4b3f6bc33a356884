"""
Weekly planning — breaks the budget schedule into weekly task goals.

Weeks are ISO-8601 weeks written ``YYYY-Www`` (``2024-W05``). Zero-padded
week strings sort chronologically, which the overdue check relies on.

Functions:
    - week_bounds / shift_week / current_week: calendar helpers
    - active_categories: categories whose schedule window touches the week
    - week_progress / overdue_tasks: pure views over a task list
    - weekly_plan / add_weekly_task / carry_over_overdue: DB-backed operations
"""
import logging
import re
from datetime import date, timedelta

from app.core.exceptions import ValidationError
from app.models import db
from app.models.work import TASK_DONE, TASK_PRIORITIES, Task
from app.services import budget_repository as repo
from app.services.cost_model import WorkBudget
from app.services.progress_aggregation import category_task_progress, ratio_percent
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")

PLANNED_STATUS = "PLANNING"


# ── Calendar ─────────────────────────────────────────────────────────────────


def week_bounds(iso_week: str) -> tuple[date, date]:
    """Monday and Sunday of ``iso_week``."""
    match = _WEEK_RE.match(iso_week or "")
    if not match:
        raise ValidationError(f"Invalid ISO week: {iso_week!r}", details={"week": "use YYYY-Www"})
    try:
        monday = date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
    except ValueError:
        raise ValidationError(f"Invalid ISO week: {iso_week!r}", details={"week": "no such week"})
    return monday, monday + timedelta(days=6)


def week_of(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def current_week() -> str:
    return week_of(date.today())


def shift_week(iso_week: str, offset: int) -> str:
    """Move ``offset`` weeks forward (negative: back); handles 53-week years."""
    monday, _ = week_bounds(iso_week)
    return week_of(monday + timedelta(weeks=offset))


# ── Pure views ───────────────────────────────────────────────────────────────


def active_categories(budget: WorkBudget, iso_week: str) -> list:
    """Categories scheduled in the week. Unscheduled categories are always active."""
    monday, sunday = week_bounds(iso_week)
    active = []
    for c in budget.categories:
        if c.start_date and c.start_date > sunday:
            continue
        if c.end_date and c.end_date < monday:
            continue
        active.append(c)
    return active


def week_tasks(tasks, iso_week: str) -> list:
    return [t for t in tasks if t.planning_week == iso_week]


def week_progress(tasks, iso_week: str) -> int:
    """Share of the week's planned tasks that are DONE."""
    planned = week_tasks(tasks, iso_week)
    return ratio_percent(sum(1 for t in planned if t.status == TASK_DONE), len(planned))


def overdue_tasks(tasks, iso_week: str) -> list:
    """Unfinished tasks planned for an earlier week."""
    week_bounds(iso_week)
    return [
        t for t in tasks
        if t.planning_week and t.planning_week < iso_week and t.status != TASK_DONE
    ]


# ── DB-backed ────────────────────────────────────────────────────────────────


def weekly_plan(work_id, iso_week=None) -> dict:
    """Everything the weekly view shows for one work."""
    repo.get_work(work_id)
    iso_week = iso_week or current_week()
    monday, sunday = week_bounds(iso_week)
    budget = repo.load_or_empty(work_id)
    tasks = repo.list_tasks(work_id)
    planned = week_tasks(tasks, iso_week)

    return {
        "work_id": work_id,
        "week": iso_week,
        "start": monday.isoformat(),
        "end": sunday.isoformat(),
        "previous_week": shift_week(iso_week, -1),
        "next_week": shift_week(iso_week, 1),
        "progress": week_progress(tasks, iso_week),
        "done": sum(1 for t in planned if t.status == TASK_DONE),
        "total": len(planned),
        "tasks": [t.to_dict() for t in planned],
        "overdue": [t.to_dict() for t in overdue_tasks(tasks, iso_week)],
        "active_categories": [
            {
                "id": c.id,
                "name": c.name,
                "progress": c.progress,
                "task_progress": category_task_progress(c.id, tasks),
            }
            for c in active_categories(budget, iso_week)
        ],
    }


def add_weekly_task(work_id, iso_week, data) -> dict:
    """Plan a task for the week. Weekly tasks must be linked to a budget category."""
    repo.get_work(work_id)
    week_bounds(iso_week)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    stage_id = data.get("stage_id")
    if not stage_id:
        raise ValidationError("Weekly tasks must be linked to a budget category", details={"stage_id": "required"})
    repo.load_or_empty(work_id).find_category(stage_id)
    priority = (data.get("priority") or "MEDIUM").upper()
    if priority not in TASK_PRIORITIES:
        raise ValidationError(f"priority must be one of {sorted(TASK_PRIORITIES)}", details={"priority": priority})

    task = Task(
        work_id=work_id,
        title=title,
        description=data.get("description") or "Weekly planning",
        status=PLANNED_STATUS,
        priority=priority,
        assigned_to=data.get("assigned_to"),
        due_date=parse_date(data.get("due_date")) or date.today(),
        stage_id=stage_id,
        planning_week=iso_week,
    )
    db.session.add(task)
    db.session.commit()
    logger.info("Planned task %s for %s work=%s", task.id, iso_week, work_id)
    return task.to_dict()


def carry_over_overdue(work_id, iso_week) -> list[dict]:
    """Move every overdue task into ``iso_week`` and reset it to PLANNING."""
    repo.get_work(work_id)
    moved = overdue_tasks(repo.list_tasks(work_id), iso_week)
    try:
        for task in moved:
            task.planning_week = iso_week
            task.status = PLANNED_STATUS
            repo.update_task(task)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Carried %d overdue tasks into %s work=%s", len(moved), iso_week, work_id)
    return [t.to_dict() for t in moved]
