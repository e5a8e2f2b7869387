"""
Domain error taxonomy.

Every error carries an HTTP status so the global handler in main.py can
render it without each router translating errors by hand.
"""


class DBException(Exception):
    error_type = "database_error"

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(DBException):
    """Referenced course, lesson, user or enrollment does not exist."""

    error_type = "not_found"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, 404)


class ConflictError(DBException):
    """A uniqueness constraint rejected an insert or update."""

    error_type = "conflict"

    def __init__(self, message: str = "Duplicate entry: already exists"):
        super().__init__(message, 409)


class StoreUnavailableError(DBException):
    """Transient failure talking to the relational store."""

    error_type = "store_unavailable"

    def __init__(self, message: str = "Database error occurred"):
        super().__init__(message, 503)


class ValidationError(DBException):
    error_type = "validation_error"

    def __init__(self, message: str = "Invalid data"):
        super().__init__(message, 422)


class LessonLockedError(DBException):
    """The lesson exists but the drip schedule has not released it yet."""

    error_type = "lesson_locked"

    def __init__(self, availability: str, message: str = "Lesson is not available yet"):
        self.availability = availability
        super().__init__(message, 403)
