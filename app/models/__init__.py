"""
Construction Budget Engine
SQLAlchemy extension instance shared by every model module.

Models:
    - work:   Work, WorkStage, Task, FinancialRecord
    - budget: BudgetDocument, FieldReport, ProgressLedgerEntry
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
