"""
Construction Budget Engine
Work domain models — the entities that feed the progress engine.

Models:
    - Work: one construction project; owns the progress method selector
    - WorkStage: lightweight schedule stage (tri-state) used by the STAGES method
    - Task: field task; may be linked to a budget category via stage_id
    - FinancialRecord: payable/receivable entry, optionally linked to a category

Architecture chain: Work → WorkStage / Task / FinancialRecord
                    Work → BudgetDocument (1:1, see app.models.budget)
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROGRESS_METHODS = {"STAGES", "TASKS"}

STAGE_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED")

TASK_STATUSES = {
    "BACKLOG", "PLANNING", "EXECUTION", "WAITING_APPROVAL", "PURCHASE_LOGISTICS",
    "WAITING_MATERIAL", "NON_CONFORMITY", "PHOTO_REGISTRY", "DONE",
}
TASK_DONE = "DONE"

TASK_PRIORITIES = {"LOW", "MEDIUM", "HIGH"}

FINANCE_TYPES = {"EXPENSE", "INCOME"}
FINANCE_STATUSES = {"PENDING", "PAID", "OVERDUE"}


def next_stage_status(status: str) -> str:
    """Cycle PENDING → IN_PROGRESS → COMPLETED → PENDING."""
    try:
        idx = STAGE_STATUSES.index(status)
    except ValueError:
        return STAGE_STATUSES[0]
    return STAGE_STATUSES[(idx + 1) % len(STAGE_STATUSES)]


def _money(value):
    return float(value) if value is not None else None


# ── Stage link (typed optional reference) ────────────────────────────────────

@dataclass(frozen=True)
class Linked:
    """Task contributes to the budget category ``category_id``."""
    category_id: str


@dataclass(frozen=True)
class Unlinked:
    """Task carries no budget category; progress deltas are a no-op."""


UNLINKED = Unlinked()


def stage_link(stage_id: str | None) -> Linked | Unlinked:
    return Linked(stage_id) if stage_id else UNLINKED


# ═══════════════════════════════════════════════════════════════════════════
#  WORK
# ═══════════════════════════════════════════════════════════════════════════

class Work(db.Model):
    """A construction project (obra)."""

    __tablename__ = "works"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    client = db.Column(db.String(200), default="")
    address = db.Column(db.String(300), default="")
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(30), default="PLANNING", index=True)
    progress_method = db.Column(
        db.String(10), nullable=False, default="STAGES",
        comment="STAGES | TASKS — headline progress aggregation",
    )
    budget = db.Column(
        db.Numeric(14, 2), nullable=False, default=0,
        comment="Mirror of WorkBudget.totalValue, refreshed on every budget save",
    )
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    stages = db.relationship(
        "WorkStage", backref="work", lazy="dynamic",
        cascade="all, delete-orphan", order_by="WorkStage.order",
    )
    tasks = db.relationship("Task", backref="work", lazy="dynamic", cascade="all, delete-orphan")
    financial_records = db.relationship(
        "FinancialRecord", backref="work", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "client": self.client,
            "address": self.address,
            "description": self.description,
            "status": self.status,
            "progress_method": self.progress_method,
            "budget": _money(self.budget),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Work {self.id}: {self.name[:40]}>"


# ═══════════════════════════════════════════════════════════════════════════
#  WORK STAGE
# ═══════════════════════════════════════════════════════════════════════════

class WorkStage(db.Model):
    """
    A schedule stage with a tri-state status.

    Parallel to (and not reconciled with) the priced BudgetCategory list;
    only the STAGES aggregation method reads it.
    """

    __tablename__ = "work_stages"

    id = db.Column(db.Integer, primary_key=True)
    work_id = db.Column(
        db.Integer, db.ForeignKey("works.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "work_id": self.work_id,
            "name": self.name,
            "status": self.status,
            "order": self.order,
        }

    def __repr__(self):
        return f"<WorkStage {self.id}: {self.name[:40]} [{self.status}]>"


# ═══════════════════════════════════════════════════════════════════════════
#  TASK
# ═══════════════════════════════════════════════════════════════════════════

class Task(db.Model):
    """A field task. ``stage_id`` references a BudgetCategory id inside the work's budget."""

    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    work_id = db.Column(
        db.Integer, db.ForeignKey("works.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(30), nullable=False, default="BACKLOG", index=True)
    priority = db.Column(db.String(10), default="MEDIUM")
    assigned_to = db.Column(db.String(150), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    completed_date = db.Column(db.Date, nullable=True)

    stage_id = db.Column(
        db.String(64), nullable=True, index=True,
        comment="BudgetCategory.id inside the work budget document",
    )
    physical_progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    estimated_cost = db.Column(db.Numeric(14, 2), nullable=True)
    planning_week = db.Column(db.String(8), nullable=True, index=True, comment="ISO week: 2024-W05")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def stage_link(self) -> Linked | Unlinked:
        return stage_link(self.stage_id)

    @property
    def is_done(self) -> bool:
        return self.status == TASK_DONE

    def to_dict(self):
        return {
            "id": self.id,
            "work_id": self.work_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
            "stage_id": self.stage_id,
            "physical_progress": self.physical_progress,
            "estimated_cost": _money(self.estimated_cost),
            "planning_week": self.planning_week,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]} [{self.status}]>"


# ═══════════════════════════════════════════════════════════════════════════
#  FINANCIAL RECORD
# ═══════════════════════════════════════════════════════════════════════════

class FinancialRecord(db.Model):
    """
    A payable (EXPENSE) or receivable (INCOME) entry.

    Read-only input to the earned-value calculator; the engine never writes it.
    """

    __tablename__ = "financial_records"

    id = db.Column(db.Integer, primary_key=True)
    work_id = db.Column(
        db.Integer, db.ForeignKey("works.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(10), nullable=False, default="EXPENSE")
    description = db.Column(db.String(300), default="")
    category = db.Column(db.String(100), default="")
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    status = db.Column(db.String(10), nullable=False, default="PENDING")
    due_date = db.Column(db.Date, nullable=True)
    paid_date = db.Column(db.Date, nullable=True)
    related_budget_category_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "work_id": self.work_id,
            "type": self.type,
            "description": self.description,
            "category": self.category,
            "amount": _money(self.amount),
            "status": self.status,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "related_budget_category_id": self.related_budget_category_id,
        }

    def __repr__(self):
        return f"<FinancialRecord {self.id}: {self.type} {self.amount}>"
