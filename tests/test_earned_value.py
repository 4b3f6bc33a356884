"""
Construction Budget Engine
Tests — Earned Value Calculator.
"""

from decimal import Decimal
from types import SimpleNamespace

from app.services import cost_model as cm
from app.services.earned_value import (
    actual_spend,
    build_earned_value_report,
    earned,
    task_earned,
    total_earned,
    total_task_earned,
    variance,
)
from app.services.progress_propagation import set_category_progress


def _record(amount, type_="EXPENSE", status="PENDING", category_id=None):
    return SimpleNamespace(
        amount=Decimal(str(amount)), type=type_, status=status,
        related_budget_category_id=category_id,
    )


def _ten_thousand_budget():
    budget = cm.add_category(cm.empty_budget(1), "Structure")
    cid = budget.categories[0].id
    for price in (5000, 3000, 2000):
        budget = cm.add_item(budget, cid, "line", "vb", 1, price)
    return budget, cid


class TestEarned:
    def test_forty_percent_of_ten_thousand(self):
        budget, cid = _ten_thousand_budget()
        budget = set_category_progress(budget, cid, 40)
        assert budget.categories[0].category_total == 10000
        assert earned(budget.categories[0]) == 4000
        assert total_earned(budget) == 4000

    def test_total_earned_matches_weighted_completion(self):
        budget, cid = _ten_thousand_budget()
        budget = cm.add_category(budget, "Finishes")
        other = budget.categories[1].id
        budget = cm.add_item(budget, other, "paint", "vb", 1, 5000)
        budget = set_category_progress(budget, cid, 30)
        budget = set_category_progress(budget, other, 90)
        report = build_earned_value_report(budget)
        assert report.total_earned == 7500
        expected = report.total_earned / budget.total_value * 100
        assert abs(report.weighted_progress - expected) < Decimal("1e-20")
        assert report.to_dict()["weighted_progress"] == 50.0


class TestActualSpend:
    def test_pending_and_paid_count_income_and_other_categories_do_not(self):
        budget, cid = _ten_thousand_budget()
        records = [
            _record(1000, status="PENDING", category_id=cid),
            _record(500, status="PAID", category_id=cid),
            _record(250, status="OVERDUE", category_id=cid),
            _record(9000, type_="INCOME", status="PAID", category_id=cid),
            _record(700, category_id="cat_other"),
            _record(300),
        ]
        assert actual_spend(budget.categories[0], records) == 1750

    def test_variance_positive_when_spend_outpaces_progress(self):
        budget, cid = _ten_thousand_budget()
        budget = set_category_progress(budget, cid, 10)
        records = [_record(1500, category_id=cid)]
        assert variance(budget.categories[0], records) == 500


class TestTaskEarned:
    def test_estimated_cost_times_physical_progress(self):
        tasks = [
            SimpleNamespace(estimated_cost=Decimal("2000"), physical_progress=25),
            SimpleNamespace(estimated_cost=None, physical_progress=80),
        ]
        assert task_earned(tasks[0]) == 500
        assert task_earned(tasks[1]) == 0
        assert total_task_earned(tasks) == 500


class TestReport:
    def test_report_rows_and_unallocated_spend(self):
        budget, cid = _ten_thousand_budget()
        budget = set_category_progress(budget, cid, 40)
        records = [_record(4500, category_id=cid), _record(300), _record(200, category_id="cat_gone")]

        report = build_earned_value_report(budget, records).to_dict()

        row = report["categories"][0]
        assert row["budgeted"] == 10000
        assert row["earned"] == 4000
        assert row["actual"] == 4500
        assert row["variance"] == 500
        assert row["over_budget_pace"] is True
        assert row["weight"] == 100
        assert report["unallocated_spend"] == 500
        assert report["total_variance"] == 500
