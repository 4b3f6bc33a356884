"""
Earned Value Calculator

Translates physical progress into money and compares it against spend.

  earned(category)       = categoryTotal × progress / 100
  total_earned(budget)   = Σ earned(category)
  actual_spend(category) = Σ amount of EXPENSE records linked to the category
                           (PENDING, PAID and OVERDUE all count: committed cost)
  variance(category)     = actual_spend − earned   (> 0 → spending outpaces progress)

Task-level view (independent):
  task_earned(task) = estimated_cost × physical_progress / 100

The category total and the task total are NOT expected to agree — tasks and
categories are only loosely linked. Callers must not reconcile them.

All functions are total over well-formed input; nothing here raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from app.services.cost_model import ZERO, BudgetCategory, WorkBudget, to_decimal
from app.services.progress_aggregation import HUNDRED, category_weight, round_half_up, weighted_completion

EXPENSE = "EXPENSE"


def earned(category: BudgetCategory) -> Decimal:
    return category.category_total * Decimal(category.progress) / HUNDRED


def total_earned(budget: WorkBudget) -> Decimal:
    return sum((earned(c) for c in budget.categories), ZERO)


def actual_spend(category: BudgetCategory, records: Iterable) -> Decimal:
    """Committed cost of a category: every expense linked to it, paid or not."""
    return sum(
        (
            to_decimal(r.amount or 0, "amount")
            for r in records
            if r.type == EXPENSE and r.related_budget_category_id == category.id
        ),
        ZERO,
    )


def variance(category: BudgetCategory, records: Iterable) -> Decimal:
    return actual_spend(category, records) - earned(category)


def task_earned(task) -> Decimal:
    """estimated_cost × physical_progress / 100 (0 for tasks without a cost)."""
    if task.estimated_cost is None:
        return ZERO
    return to_decimal(task.estimated_cost, "estimated_cost") * Decimal(task.physical_progress or 0) / HUNDRED


def total_task_earned(tasks: Iterable) -> Decimal:
    return sum((task_earned(t) for t in tasks), ZERO)


# ═════════════════════════════════════════════════════════════════════════════
# Report
# ═════════════════════════════════════════════════════════════════════════════

def _money(value: Decimal) -> float:
    return float(round_half_up(value, 2))


@dataclass
class CategoryEarnedValue:
    category_id: str
    name: str
    budgeted: Decimal
    weight: Decimal
    progress: int
    earned: Decimal
    actual: Decimal

    @property
    def variance(self) -> Decimal:
        return self.actual - self.earned

    def to_dict(self) -> dict:
        return {
            "category_id": self.category_id,
            "name": self.name,
            "budgeted": _money(self.budgeted),
            "weight": float(round_half_up(self.weight, 2)),
            "progress": self.progress,
            "earned": _money(self.earned),
            "actual": _money(self.actual),
            "variance": _money(self.variance),
            "over_budget_pace": self.variance > ZERO,
        }


@dataclass
class EarnedValueReport:
    work_id: int
    total_budget: Decimal
    weighted_progress: Decimal
    rows: list[CategoryEarnedValue] = field(default_factory=list)
    task_earned: Decimal = ZERO
    unallocated_spend: Decimal = ZERO

    @property
    def total_earned(self) -> Decimal:
        return sum((r.earned for r in self.rows), ZERO)

    @property
    def total_actual(self) -> Decimal:
        return sum((r.actual for r in self.rows), ZERO)

    @property
    def total_variance(self) -> Decimal:
        return self.total_actual - self.total_earned

    def to_dict(self) -> dict:
        return {
            "work_id": self.work_id,
            "total_budget": _money(self.total_budget),
            "weighted_progress": float(round_half_up(self.weighted_progress, 2)),
            "total_earned": _money(self.total_earned),
            "total_actual": _money(self.total_actual),
            "total_variance": _money(self.total_variance),
            "unallocated_spend": _money(self.unallocated_spend),
            "task_earned": _money(self.task_earned),
            "categories": [r.to_dict() for r in self.rows],
        }


def build_earned_value_report(budget: WorkBudget, records: Iterable = (), tasks: Iterable = ()) -> EarnedValueReport:
    """
    Budgeted vs earned vs actual for every category of ``budget``.

    ``unallocated_spend`` collects expenses linked to no category (or to a
    category that no longer exists); they never count toward any row.
    """
    records = list(records)
    rows = [
        CategoryEarnedValue(
            category_id=c.id,
            name=c.name,
            budgeted=c.category_total,
            weight=category_weight(c, budget),
            progress=c.progress,
            earned=earned(c),
            actual=actual_spend(c, records),
        )
        for c in budget.categories
    ]
    known = {c.id for c in budget.categories}
    unallocated = sum(
        (
            to_decimal(r.amount or 0, "amount")
            for r in records
            if r.type == EXPENSE and r.related_budget_category_id not in known
        ),
        ZERO,
    )
    return EarnedValueReport(
        work_id=budget.work_id,
        total_budget=budget.total_value,
        weighted_progress=weighted_completion(budget),
        rows=rows,
        task_earned=total_task_earned(tasks),
        unallocated_spend=unallocated,
    )
