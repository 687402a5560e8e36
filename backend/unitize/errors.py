"""
Error taxonomy shared by the scheduler, the stores and the HTTP layer.

Each error carries the status code the app factory maps it to.
"""
from __future__ import annotations


class UnitizeError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidGradeError(UnitizeError):
    status_code = 400
    code = "invalid_grade"

    def __init__(self, value: object) -> None:
        super().__init__(
            f"Invalid grade {value!r}; expected one of again, hard, good, easy"
        )
        self.value = value


class BadRequestError(UnitizeError):
    status_code = 400
    code = "bad_request"


class NotFoundError(UnitizeError):
    status_code = 404
    code = "not_found"


class StorageError(UnitizeError):
    """Persistence failed. Safe for the caller to retry."""

    status_code = 500
    code = "storage_error"


class ConcurrentUpdateError(StorageError):
    status_code = 409
    code = "concurrent_update"
