"""
Engine-wide exception hierarchy.

Every service raises one of these types. Blueprints register handlers
against them once and get consistent HTTP status codes everywhere:

    NotFoundError             → 404
    ValidationError           → 422  (InvalidRangeError is a subtype)
    ConflictError             → 409  (ConcurrencyConflictError is a subtype)

Usage:
    from app.core.exceptions import NotFoundError, InvalidRangeError

    raise NotFoundError(resource="BudgetCategory", resource_id="cat_1", work_id=7)
    raise InvalidRangeError("progress", 120, low=0, high=100)
"""


class NotFoundError(Exception):
    """Raised when a referenced category/item/task does not exist in the given work.

    Args:
        resource: Human-readable entity name (e.g. "BudgetCategory", "Task").
        resource_id: The identifier that was looked up.
        work_id: Optional — the work scope that was searched. For logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        work_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.work_id = work_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if work_id is not None:
            msg += f" (work={work_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidRangeError(ValidationError):
    """A progress value, delta, quantity or price outside its allowed range.

    Raised before any mutation, so the aggregate is left unchanged.
    """

    def __init__(self, field: str, value, *, low=None, high=None) -> None:
        self.field = field
        self.value = value
        self.low = low
        self.high = high
        if high is None:
            bounds = f">= {low}"
        else:
            bounds = f"in [{low}, {high}]"
        super().__init__(
            f"{field} must be {bounds}, got {value!r}",
            details={field: f"must be {bounds}"},
        )


class ConflictError(Exception):
    """Raised when an operation collides with existing state.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field that collides.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ConcurrencyConflictError(ConflictError):
    """A save supplied a stale version of the WorkBudget aggregate.

    The engine never merges: the caller must reload, re-apply its change
    and save again.
    """

    def __init__(self, work_id, expected_version: int, stored_version: int | None) -> None:
        self.resource = "WorkBudget"
        self.field = "version"
        self.value = str(expected_version)
        self.work_id = work_id
        self.expected_version = expected_version
        self.stored_version = stored_version
        Exception.__init__(
            self,
            f"WorkBudget for work={work_id} was modified concurrently "
            f"(supplied version={expected_version}, stored version={stored_version})",
        )
