"""
Construction Budget Engine
Budget persistence models.

Models:
    - BudgetDocument: the whole WorkBudget aggregate as one JSON document,
      guarded by an optimistic-concurrency version counter
    - FieldReport: a daily log / inspection submitted from the field
    - ProgressLedgerEntry: one applied progress delta (report → category → task)

The document keeps the camelCase field layout of the WorkBudget aggregate
(id, workId, totalValue, categories[], updatedAt, version).
"""

from datetime import datetime, timezone

from app.models import db


REPORT_TYPES = {"DAILY", "INSPECTION", "ALERT", "INCIDENT"}


class BudgetDocument(db.Model):
    """Persisted WorkBudget aggregate (1:1 with Work)."""

    __tablename__ = "work_budgets"

    id = db.Column(db.String(64), primary_key=True)
    work_id = db.Column(
        db.Integer, db.ForeignKey("works.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )
    document = db.Column(db.JSON, nullable=False, default=dict)
    version = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<BudgetDocument work={self.work_id} v{self.version}>"


class FieldReport(db.Model):
    """
    A field report ("daily log").

    Its progress updates are applied once, atomically, as ledger entries.
    Editing the report replaces those entries instead of re-folding deltas.
    """

    __tablename__ = "field_reports"

    id = db.Column(db.Integer, primary_key=True)
    work_id = db.Column(
        db.Integer, db.ForeignKey("works.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    report_type = db.Column(db.String(20), nullable=False, default="DAILY")
    report_date = db.Column(db.Date, nullable=True)
    author = db.Column(db.String(150), default="")
    content = db.Column(db.Text, default="")
    related_task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True,
        comment="Set for measurement reports",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    ledger_entries = db.relationship(
        "ProgressLedgerEntry", backref="report", lazy="select",
        cascade="all, delete-orphan", order_by="ProgressLedgerEntry.id",
    )

    def to_dict(self, include_entries=True):
        d = {
            "id": self.id,
            "work_id": self.work_id,
            "report_type": self.report_type,
            "report_date": self.report_date.isoformat() if self.report_date else None,
            "author": self.author,
            "content": self.content,
            "related_task_id": self.related_task_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_entries:
            d["progress_updates"] = [e.to_dict() for e in self.ledger_entries]
        return d

    def __repr__(self):
        return f"<FieldReport {self.id} work={self.work_id} {self.report_type}>"


class ProgressLedgerEntry(db.Model):
    """
    Immutable record of one progress delta contributed by a field report.

    ``superseded`` entries were overridden by a later manual progress edit
    and no longer count toward the category's derived progress.
    """

    __tablename__ = "progress_ledger"

    id = db.Column(db.Integer, primary_key=True)
    work_id = db.Column(
        db.Integer, db.ForeignKey("works.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    report_id = db.Column(
        db.Integer, db.ForeignKey("field_reports.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    category_id = db.Column(db.String(64), nullable=False, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    delta = db.Column(db.Integer, nullable=False, comment="0-100, as reported")
    note = db.Column(db.Text, default="")
    superseded = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "report_id": self.report_id,
            "category_id": self.category_id,
            "task_id": self.task_id,
            "delta": self.delta,
            "note": self.note,
            "superseded": self.superseded,
        }

    def __repr__(self):
        return f"<ProgressLedgerEntry {self.id} cat={self.category_id} +{self.delta}>"
