"""
shared/exceptions.py
Domain exceptions for the booking engine.

Each exception carries a message, a machine-readable code and optional
details, and knows how to become an HTTPException at the API layer.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


# ── Request validation ────────────────────────────────────────

class ValidationError(DomainException):
    """Malformed input: bad time strings, unknown sport, off-grid slots."""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTimeFormat(ValidationError):
    def __init__(self, value: Any) -> None:
        super().__init__(
            f"invalid time format: {value!r}",
            code="INVALID_TIME_FORMAT",
            details={"value": value},
        )


class NotFoundError(DomainException):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(DomainException):
    status_code = status.HTTP_403_FORBIDDEN


# ── Allocation ────────────────────────────────────────────────

class SlotConflict(DomainException):
    """
    A requested slot is already held by a booking, recurring booking or lesson.
    Recoverable: the caller should re-query availability and pick other slots.
    """

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflicts: List[Dict[str, Any]]) -> None:
        super().__init__(message, code="SLOT_CONFLICT", details={"conflicts": conflicts})
        self.conflicts = conflicts


class StorageConflict(DomainException):
    """The store's uniqueness constraint fired after the pre-checks passed."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "One or more slots are no longer available") -> None:
        super().__init__(message, code="STORAGE_CONFLICT")


# ── Storage ───────────────────────────────────────────────────

class TransientStorageError(DomainException):
    """Serialization failure or deadlock reported by the store."""


class CounterNotFound(DomainException):
    """The counter upsert succeeded but returned no value."""

    def __init__(self) -> None:
        super().__init__("Failed to generate job code: counter not found after upsert")


# ── Side effects ──────────────────────────────────────────────

class EmailDeliveryError(DomainException):
    def __init__(self, to: str, reason: str) -> None:
        super().__init__(f"Email to {to} failed: {reason}", details={"to": to})
