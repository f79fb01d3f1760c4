from __future__ import annotations


class DomainError(Exception):
    """Base exception for business rule violations."""

    status_code = 400
    code = "domain_error"


class ValidationError(DomainError):
    """Raised before any write when input violates a constraint."""

    code = "validation_error"


class NotFoundError(DomainError):
    """Raised when a referenced employee or record does not exist."""

    status_code = 404
    code = "not_found"


class ConflictError(DomainError):
    """Business-rule conflict the client can correct."""

    code = "conflict"


class AlreadyClockedInError(ConflictError):
    code = "already_clocked_in"

    def __init__(self, message: str = "Already clocked in today") -> None:
        super().__init__(message)


class NoClockInError(ConflictError):
    code = "no_clock_in"

    def __init__(self, message: str = "No clock-in record found for today") -> None:
        super().__init__(message)


class StorageError(DomainError):
    """Underlying persistence failure. The message is never shown to clients."""

    status_code = 500
    code = "storage_error"


class DuplicateRecordError(StorageError):
    """Insert hit a uniqueness constraint."""

    code = "duplicate_record"
