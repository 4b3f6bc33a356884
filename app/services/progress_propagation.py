"""
Progress Propagation Engine

Turns field-reported completion into authoritative BudgetCategory.progress
values without double-counting:

  Manual edit       category.progress = value           (overwrite, may decrease)
  Field report      category.progress = min(100, progress + Σ deltas)
  Measurement step  delta ∈ [0, 100 - current], result clamped at 100

Every applied delta is also returned as a LedgerDelta so the caller can store
it as an immutable ledger row. Progress is then derivable from the ledger:

  progress = min(100, progress_base + Σ active deltas)

where progress_base is the value anchored by the last manual edit. Re-deriving
from the ledger is what keeps edited or deleted field reports consistent.

All functions here are pure: they take a WorkBudget snapshot and return a new
one. Persistence, task status writes and the transaction boundary live in
app.services.field_report_service.

Usage:
    from app.services.progress_propagation import (
        ProgressUpdate, apply_progress_updates, set_category_progress,
    )
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Mapping

from app.core.exceptions import InvalidRangeError, NotFoundError
from app.models.work import Linked, Unlinked
from app.services.cost_model import BudgetCategory, WorkBudget, to_percent

MAX_PROGRESS = 100


@dataclass(frozen=True)
class ProgressUpdate:
    """Additional completion reported for one task in a field report."""
    task_id: int
    progress_delta: int
    note: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ProgressUpdate:
        try:
            task_id = int(data["taskId"] if "taskId" in data else data["task_id"])
        except (KeyError, TypeError, ValueError):
            raise InvalidRangeError("taskId", data.get("taskId", data.get("task_id")), low=1)
        raw = data.get("progressDelta", data.get("progress_delta", 0))
        return cls(
            task_id=task_id,
            progress_delta=to_percent(raw, "progressDelta"),
            note=data.get("note") or "",
        )


@dataclass(frozen=True)
class LedgerDelta:
    """One delta that was folded into a category (becomes a ledger row)."""
    category_id: str
    task_id: int | None
    delta: int
    note: str = ""


@dataclass
class PropagationResult:
    """Outcome of applying a set of updates to a budget snapshot."""
    budget: WorkBudget
    applied: list[LedgerDelta]
    completed_task_ids: list[int]
    skipped_task_ids: list[int]

    def to_dict(self) -> dict:
        return {
            "applied": [
                {"category_id": d.category_id, "task_id": d.task_id, "delta": d.delta}
                for d in self.applied
            ],
            "completed_task_ids": self.completed_task_ids,
            "skipped_task_ids": self.skipped_task_ids,
        }


def clamp_progress(value: int) -> int:
    return max(0, min(MAX_PROGRESS, value))


def _replace_category(budget: WorkBudget, category: BudgetCategory) -> WorkBudget:
    categories = [category if c.id == category.id else c for c in budget.categories]
    return replace(budget, categories=categories).recalculated()


# ── Manual edit ─────────────────────────────────────────────────────────────

def set_category_progress(budget: WorkBudget, category_id: str, value) -> WorkBudget:
    """
    Operator overwrite of a category's progress.

    No delta semantics and no monotonic guard: decreasing is a correction.
    The value also becomes the new ledger anchor (progress_base).

    Raises:
        InvalidRangeError: value outside [0, 100] (budget untouched).
        NotFoundError: unknown category.
    """
    progress = to_percent(value, "progress")
    category = budget.find_category(category_id)
    return _replace_category(budget, replace(category, progress=progress, progress_base=progress))


# ── Delta application ───────────────────────────────────────────────────────

def apply_delta(category: BudgetCategory, delta: int) -> BudgetCategory:
    """min(100, progress + delta) — never more, never an error for overshoot."""
    delta = to_percent(delta, "progressDelta")
    return replace(category, progress=clamp_progress(category.progress + delta))


def apply_progress_updates(
    budget: WorkBudget,
    updates: Iterable[ProgressUpdate],
    task_links: Mapping[int, Linked | Unlinked],
) -> PropagationResult:
    """
    Fold the progress updates of one field report into category progress.

    Rules:
      - Unlinked task → no-op (reported in skipped_task_ids, not an error)
      - Linked task   → category.progress = min(100, progress + delta);
                        the task is reported as completed
      - Unknown task id or a link to a category missing from the budget
        → NotFoundError, raised before anything is applied

    Args:
        budget: Snapshot to update.
        updates: ProgressUpdate entries of one report.
        task_links: task_id → Linked/Unlinked for every task of the work.

    Returns:
        PropagationResult with the new budget, the applied ledger deltas and
        the task ids whose status must transition to DONE.
    """
    updates = list(updates)

    # Validate every entry first: all-or-nothing.
    plan: list[tuple[ProgressUpdate, Linked | Unlinked]] = []
    for update in updates:
        to_percent(update.progress_delta, "progressDelta")
        if update.task_id not in task_links:
            raise NotFoundError(resource="Task", resource_id=update.task_id, work_id=budget.work_id)
        link = task_links[update.task_id]
        if isinstance(link, Linked):
            budget.find_category(link.category_id)
        plan.append((update, link))

    categories = {c.id: c for c in budget.categories}
    applied: list[LedgerDelta] = []
    completed: list[int] = []
    skipped: list[int] = []

    for update, link in plan:
        if isinstance(link, Unlinked):
            skipped.append(update.task_id)
            continue
        categories[link.category_id] = apply_delta(categories[link.category_id], update.progress_delta)
        applied.append(LedgerDelta(link.category_id, update.task_id, update.progress_delta, update.note))
        if update.task_id not in completed:
            completed.append(update.task_id)

    new_budget = replace(
        budget, categories=[categories[c.id] for c in budget.categories],
    ).recalculated()
    return PropagationResult(new_budget, applied, completed, skipped)


def measurement_headroom(category: BudgetCategory) -> int:
    """Largest delta a measurement step may offer for this category."""
    return MAX_PROGRESS - category.progress


def apply_measurement(
    budget: WorkBudget,
    task_id: int,
    link: Linked | Unlinked,
    delta,
    note: str = "",
) -> PropagationResult:
    """
    Measurement step: the operator saw the category's current progress and
    picked a delta in [0, 100 - current]. Zero is allowed (labor/support
    without measurable physical advance) and still completes the task.

    Raises:
        InvalidRangeError: delta outside [0, 100 - current].
        NotFoundError: link points at a category missing from the budget.
    """
    if isinstance(link, Unlinked):
        to_percent(delta, "progressDelta")
        return PropagationResult(budget, [], [], [task_id])

    category = budget.find_category(link.category_id)
    delta = to_percent(delta, "progressDelta")
    headroom = measurement_headroom(category)
    if delta > headroom:
        raise InvalidRangeError("progressDelta", delta, low=0, high=headroom)

    new_budget = _replace_category(budget, apply_delta(category, delta))
    return PropagationResult(
        new_budget,
        [LedgerDelta(category.id, task_id, delta, note)],
        [task_id],
        [],
    )


# ── Ledger derivation ───────────────────────────────────────────────────────

def derive_progress(progress_base: int, active_deltas: Iterable[int]) -> int:
    """progress = min(100, base + Σ deltas)."""
    return clamp_progress(progress_base + sum(active_deltas))


def rederive_categories(budget: WorkBudget, active_deltas: Mapping[str, Iterable[int]],
                        category_ids: Iterable[str]) -> WorkBudget:
    """
    Recompute progress of ``category_ids`` from their anchor plus the active
    ledger deltas. Categories no longer in the budget are ignored (their
    ledger rows outlive the category).
    """
    targets = {cid for cid in category_ids if budget.has_category(cid)}
    if not targets:
        return budget
    categories = [
        replace(c, progress=derive_progress(c.progress_base, active_deltas.get(c.id, ())))
        if c.id in targets else c
        for c in budget.categories
    ]
    return replace(budget, categories=categories).recalculated()
