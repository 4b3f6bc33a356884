"""
Construction Budget Engine
Tests — Weekly planning.
"""

from datetime import date
from types import SimpleNamespace

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.work import Task
from app.services import budget_service
from app.services import cost_model as cm
from app.services import planning_service as ps


def _task(week, status="PLANNING"):
    return SimpleNamespace(planning_week=week, status=status)


class TestCalendar:
    def test_week_bounds_monday_to_sunday(self):
        assert ps.week_bounds("2024-W05") == (date(2024, 1, 29), date(2024, 2, 4))

    def test_shift_week_crosses_53_week_year(self):
        assert ps.shift_week("2020-W53", 1) == "2021-W01"
        assert ps.shift_week("2021-W01", -1) == "2020-W53"
        assert ps.shift_week("2023-W52", 1) == "2024-W01"

    @pytest.mark.parametrize("week", ["2024-5", "2024-W5", "2023-W53", "", None])
    def test_invalid_week_rejected(self, week):
        with pytest.raises(ValidationError):
            ps.week_bounds(week)

    def test_week_of(self):
        assert ps.week_of(date(2024, 1, 29)) == "2024-W05"


class TestViews:
    def test_week_progress(self):
        tasks = [_task("2024-W05", "DONE"), _task("2024-W05"), _task("2024-W05", "DONE"),
                 _task("2024-W06", "DONE")]
        assert ps.week_progress(tasks, "2024-W05") == 67
        assert ps.week_progress(tasks, "2024-W07") == 0

    def test_overdue_tasks_are_unfinished_from_earlier_weeks(self):
        old_open, old_done, current = _task("2024-W03"), _task("2024-W03", "DONE"), _task("2024-W05")
        unplanned = _task(None)
        assert ps.overdue_tasks([old_open, old_done, current, unplanned], "2024-W05") == [old_open]

    def test_active_categories_by_schedule_window(self):
        budget = cm.add_category(cm.empty_budget(1), "Early", start_date="2024-01-01", end_date="2024-01-20")
        budget = cm.add_category(budget, "Now", start_date="2024-01-25", end_date="2024-02-10")
        budget = cm.add_category(budget, "Later", start_date="2024-03-01")
        budget = cm.add_category(budget, "Unscheduled")
        names = [c.name for c in ps.active_categories(budget, "2024-W05")]
        assert names == ["Now", "Unscheduled"]


class TestWeeklyPlan:
    def test_add_weekly_task_requires_category_link(self, work):
        with pytest.raises(ValidationError):
            ps.add_weekly_task(work.id, "2024-W05", {"title": "Lay bricks"})
        with pytest.raises(NotFoundError):
            ps.add_weekly_task(work.id, "2024-W05", {"title": "Lay bricks", "stage_id": "cat_missing"})

    def test_plan_and_carry_over(self, work):
        doc = budget_service.add_category(work.id, {"name": "Masonry"})
        cid = doc["categories"][0]["id"]

        planned = ps.add_weekly_task(work.id, "2024-W03", {"title": "Lay bricks", "stage_id": cid})
        assert planned["status"] == "PLANNING"
        assert planned["planning_week"] == "2024-W03"

        view = ps.weekly_plan(work.id, "2024-W05")
        assert [t["id"] for t in view["overdue"]] == [planned["id"]]
        assert view["total"] == 0
        assert view["previous_week"] == "2024-W04"
        assert view["active_categories"][0]["id"] == cid

        moved = ps.carry_over_overdue(work.id, "2024-W05")
        assert [t["id"] for t in moved] == [planned["id"]]
        task = db.session.get(Task, planned["id"])
        assert task.planning_week == "2024-W05"
        assert task.status == "PLANNING"

        view = ps.weekly_plan(work.id, "2024-W05")
        assert view["overdue"] == []
        assert view["total"] == 1
        assert view["progress"] == 0
