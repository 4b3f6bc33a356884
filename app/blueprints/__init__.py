"""
Construction Budget Engine
Blueprint registry and shared request helpers.
"""

import logging

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    InvalidRangeError,
    NotFoundError,
    ValidationError,
)
from app.services.cost_model import to_version
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def request_version(data=None):
    """Budget version the client read: JSON ``version`` or ``?version=``."""
    if data and data.get("version") is not None:
        raw = data["version"]
    else:
        raw = request.args.get("version")
    return to_version(raw)


def register_error_handlers(bp):
    """Map engine exceptions to JSON error bodies for every route of ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(InvalidRangeError)
    def _handle_range(error: InvalidRangeError):
        return api_error(E.VALIDATION_RANGE, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConcurrencyConflictError)
    def _handle_stale(error: ConcurrencyConflictError):
        return api_error(
            E.CONFLICT_VERSION, str(error),
            details={"supplied_version": error.expected_version, "stored_version": error.stored_version},
        )

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_STATE, str(error))

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db(error: SQLAlchemyError):
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")

    return bp
