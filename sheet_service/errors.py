"""
Error taxonomy for the character sheet service.

Every failure surfaced to a caller is a ``SheetServiceError`` subclass. The
HTTP layer maps ``status_code`` and ``error`` onto the response envelope; the
``context`` carries enough detail (character id, operation, offending field)
to diagnose a failure from the logs alone.
"""

from dataclasses import dataclass
from dataclasses import field as dc_field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import status


@dataclass
class ErrorContext:
    """Structured context attached to an error for logging."""

    character_id: Optional[str] = None
    user_id: Optional[str] = None
    operation: Optional[str] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = dc_field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = dc_field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "character_id": self.character_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "field": self.field,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class SheetServiceError(Exception):
    """
    Base exception for all service errors.

    Args:
        message: Technical error message
        context: Error context information
        details: Additional error details, returned to the caller
        user_friendly: Message shown to the caller instead of ``message``
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "internal_error"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None,
        user_friendly: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "user_friendly": self.user_friendly,
            "context": self.context.to_dict(),
            "details": self.details,
        }


class ValidationError(SheetServiceError):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "validation_error"


class AuthError(SheetServiceError):
    """Missing, invalid or undecodable bearer token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error = "unauthorized"

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        kwargs.setdefault("user_friendly", "Unauthorized")
        super().__init__(message, context, **kwargs)


class NotFoundError(SheetServiceError):
    """Character, history block or record absent."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class ConflictError(SheetServiceError):
    """Stale optimistic token or insufficient calculation points."""

    status_code = status.HTTP_409_CONFLICT
    error = "conflict"


class InternalError(SheetServiceError):
    """Unexpected failure. The caller only sees a sanitized message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "internal_error"

    def __init__(self, message: str, context: Optional[ErrorContext] = None, **kwargs):
        kwargs.setdefault("user_friendly", "An internal error occurred!")
        super().__init__(message, context, **kwargs)
