"""Application-level exception types.

This module defines domain errors raised by the entities and the relay
service, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    room_hash_length: int
    expected_length: int
    max_members: int
    retry_after: int
    operation: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    # HTTP status used by the exception handler for this error family.
    status_code = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails (malformed hash, missing content)."""


class NotFoundAppError(AppError):
    """Raised when a room is absent or expired."""

    status_code = 404


class ConflictAppError(AppError):
    """Raised when an operation collides with existing state."""

    status_code = 409


@dataclass
class RateLimitedAppError(AppError):
    """Raised when the caller must wait before retrying."""

    retry_after: int = 0

    status_code = 429


class StorageAppError(AppError):
    """Raised when the backing store cannot complete a read or write."""

    status_code = 503
