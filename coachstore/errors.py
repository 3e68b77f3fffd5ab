"""
Error taxonomy for the coachstore data layer.

Backends raise `StoreError` subclasses; the client classifies them (see
`coachstore.retry`) and converts whatever survives the retry budget into a
failed `Result`. Codes in `ErrorCode` are stable strings that callers may
match on.
"""

from __future__ import annotations

from typing import Any, Optional


class ErrorCode:
    """Stable error code strings surfaced in `ErrorDetails.code`."""

    # Backend-level
    UNAVAILABLE = "UNAVAILABLE"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INTERNAL = "INTERNAL"

    # Client-level
    MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED"
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
    SUBSCRIPTION_FAILED = "SUBSCRIPTION_FAILED"
    HEALTH_CHECK_FAILED = "HEALTH_CHECK_FAILED"

    # Migrations
    MIGRATION_STATE_NOT_FOUND = "MIGRATION_STATE_NOT_FOUND"
    MIGRATION_STATE_FETCH_FAILED = "MIGRATION_STATE_FETCH_FAILED"
    MIGRATION_STATE_INIT_FAILED = "MIGRATION_STATE_INIT_FAILED"
    MIGRATION_EXECUTION_FAILED = "MIGRATION_EXECUTION_FAILED"
    MIGRATION_PROCESS_FAILED = "MIGRATION_PROCESS_FAILED"
    MIGRATION_HISTORY_FETCH_FAILED = "MIGRATION_HISTORY_FETCH_FAILED"
    MIGRATION_STATUS_CHECK_FAILED = "MIGRATION_STATUS_CHECK_FAILED"
    ROLLBACK_EXECUTION_FAILED = "ROLLBACK_EXECUTION_FAILED"
    ROLLBACK_PROCESS_FAILED = "ROLLBACK_PROCESS_FAILED"

    # Seeding
    SEEDING_FAILED = "SEEDING_FAILED"
    SPORTS_SEEDING_FAILED = "SPORTS_SEEDING_FAILED"
    ACHIEVEMENTS_SEEDING_FAILED = "ACHIEVEMENTS_SEEDING_FAILED"
    APP_SETTINGS_CREATION_FAILED = "APP_SETTINGS_CREATION_FAILED"
    CLEAR_DATA_FAILED = "CLEAR_DATA_FAILED"
    CHECK_DATA_FAILED = "CHECK_DATA_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # Bootstrap
    INITIALIZATION_FAILED = "INITIALIZATION_FAILED"
    RESET_FAILED = "RESET_FAILED"
    STATUS_CHECK_FAILED = "STATUS_CHECK_FAILED"

    # Domain services
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SPORT_HAS_SKILLS = "SPORT_HAS_SKILLS"
    SKILL_NOT_FOUND = "SKILL_NOT_FOUND"


class StoreError(Exception):
    """Base error raised by document backends."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.INTERNAL,
        details: Optional[Any] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.retryable = retryable

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class TransientStoreError(StoreError):
    """Temporary unavailability or timeout; safe to retry."""

    def __init__(self, message: str, code: str = ErrorCode.UNAVAILABLE, details: Optional[Any] = None) -> None:
        super().__init__(message, code=code, details=details, retryable=True)


class NotFoundError(StoreError):
    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, code=ErrorCode.NOT_FOUND, details=details)


class PermissionDeniedError(StoreError):
    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, code=ErrorCode.PERMISSION_DENIED, details=details)


class StoreValidationError(StoreError):
    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, code=ErrorCode.INVALID_ARGUMENT, details=details)


class AlreadyExistsError(StoreError):
    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, code=ErrorCode.ALREADY_EXISTS, details=details)


class MigrationDefinitionError(ValueError):
    """Raised at engine construction for malformed or duplicate migrations."""


__all__ = [
    "ErrorCode",
    "StoreError",
    "TransientStoreError",
    "NotFoundError",
    "PermissionDeniedError",
    "StoreValidationError",
    "AlreadyExistsError",
    "MigrationDefinitionError",
]
