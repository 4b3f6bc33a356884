"""
Progress Aggregator

Produces one work-level percentage from category/stage/task data.

Headline methods (selected per work by ``Work.progress_method``):
  STAGES  round(100 × completed stages / stages)   — WorkStage tri-state list
  TASKS   round(100 × done tasks / tasks)          — every task of the work

Weighted budget roll-up (planning / earned-value view):
  weight(category)   = categoryTotal / totalValue × 100   (0 when totalValue = 0)
  weighted progress  = Σ progress × weight / 100

The two stage representations (WorkStage vs BudgetCategory) are deliberately
not reconciled: each is its own strategy behind ProgressAggregationStrategy.
Nothing here stores state — switching method is a pure re-derivation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from app.core.exceptions import ValidationError
from app.models.work import PROGRESS_METHODS, TASK_DONE
from app.services.cost_model import ZERO, BudgetCategory, WorkBudget

HUNDRED = Decimal("100")


def round_half_up(value: Decimal | float, places: int = 0) -> Decimal:
    """Round like a spreadsheet (0.5 → 1), not banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def ratio_percent(done: int, total: int) -> int:
    if total == 0:
        return 0
    return int(round_half_up(Decimal(done) * HUNDRED / Decimal(total)))


# ═════════════════════════════════════════════════════════════════════════════
# Headline strategies
# ═════════════════════════════════════════════════════════════════════════════

class ProgressAggregationStrategy(ABC):
    """Computes the headline work percentage from one kind of source data."""

    method: str = ""

    @abstractmethod
    def compute(self, *, stages: Sequence = (), tasks: Sequence = ()) -> int:
        """Return the work percentage (0-100)."""
        ...


class StagesStrategy(ProgressAggregationStrategy):
    """Share of schedule stages whose status is COMPLETED."""

    method = "STAGES"

    def compute(self, *, stages: Sequence = (), tasks: Sequence = ()) -> int:
        completed = sum(1 for s in stages if s.status == "COMPLETED")
        return ratio_percent(completed, len(stages))


class TasksStrategy(ProgressAggregationStrategy):
    """Share of the work's tasks that are DONE, budget linkage irrelevant."""

    method = "TASKS"

    def compute(self, *, stages: Sequence = (), tasks: Sequence = ()) -> int:
        done = sum(1 for t in tasks if t.status == TASK_DONE)
        return ratio_percent(done, len(tasks))


_STRATEGIES: dict[str, ProgressAggregationStrategy] = {
    StagesStrategy.method: StagesStrategy(),
    TasksStrategy.method: TasksStrategy(),
}


def validate_method(method: str | None) -> str:
    value = (method or "").strip().upper()
    if value not in PROGRESS_METHODS:
        raise ValidationError(
            f"progress_method must be one of {sorted(PROGRESS_METHODS)}",
            details={"progress_method": method},
        )
    return value


def get_strategy(method: str | None) -> ProgressAggregationStrategy:
    """Strategy for ``method``; an unset method falls back to STAGES."""
    return _STRATEGIES[validate_method(method or StagesStrategy.method)]


def work_progress(method: str | None, *, stages: Sequence = (), tasks: Sequence = ()) -> int:
    """Headline percentage of a work under ``method``."""
    return get_strategy(method).compute(stages=stages, tasks=tasks)


def all_methods(*, stages: Sequence = (), tasks: Sequence = ()) -> dict[str, int]:
    """Headline under every method, for side-by-side display when switching."""
    return {name: s.compute(stages=stages, tasks=tasks) for name, s in _STRATEGIES.items()}


# ═════════════════════════════════════════════════════════════════════════════
# Weighted budget roll-up
# ═════════════════════════════════════════════════════════════════════════════

def category_weight(category: BudgetCategory, budget: WorkBudget) -> Decimal:
    """Share (0-100) of the total budget held by ``category``.

    An unpriced category weighs 0 and cannot move the weighted roll-up.
    """
    if budget.total_value == ZERO:
        return ZERO
    return category.category_total / budget.total_value * HUNDRED


def category_weights(budget: WorkBudget) -> dict[str, Decimal]:
    return {c.id: category_weight(c, budget) for c in budget.categories}


def weighted_completion(budget: WorkBudget) -> Decimal:
    """Σ progress × weight / 100 — agrees with total earned / total value × 100."""
    if budget.total_value == ZERO:
        return ZERO
    return sum(
        (Decimal(c.progress) * category_weight(c, budget) / HUNDRED for c in budget.categories),
        ZERO,
    )


def category_task_progress(category_id: str, tasks: Iterable) -> int:
    """Share of the tasks linked to ``category_id`` that are DONE (0 when none)."""
    linked = [t for t in tasks if t.stage_id == category_id]
    done = sum(1 for t in linked if t.status == TASK_DONE)
    return ratio_percent(done, len(linked))
