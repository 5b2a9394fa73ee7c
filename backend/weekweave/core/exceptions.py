class AppError(Exception):
    """Base class for all application exceptions."""

    code = "app_error"

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppError):
    """Raised when a referenced class, teacher, entry or change does not exist."""

    code = "not_found"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class InvalidTransitionError(AppError):
    """Raised when a change lifecycle precondition is violated.

    The caller is expected to refresh the record and reassess; it is never retried
    automatically.
    """

    code = "invalid_transition"

    def __init__(self, change_id: str, current_state: str, action: str):
        super().__init__(
            f"Cannot {action} timetable change {change_id} in state '{current_state}'",
            status_code=409,
            details={"change_id": change_id, "state": current_state, "action": action},
        )


class ScheduleValidationError(AppError):
    """Raised for malformed weekly edits or change records, before any mutation."""

    code = "validation_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=422, details=details)


class ConflictError(AppError):
    """Raised when a (class, week) scope is locked by a concurrent promotion."""

    code = "scope_locked"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=423, details=details)


class InconsistentStateError(AppError):
    """Raised when base and overlays may have diverged; writes to the class are halted."""

    code = "inconsistent_state"

    def __init__(self, class_id: str, message: str | None = None):
        super().__init__(
            message or f"Timetable for class {class_id} requires manual reconciliation",
            status_code=500,
            details={"class_id": class_id},
        )
