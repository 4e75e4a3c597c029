"""Error taxonomy for progress tracking and synchronization."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ProgressErrorCategory(str, Enum):
    """Stable categories used across the progress engine."""

    UNAUTHENTICATED = "unauthenticated"
    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    NETWORK = "network"
    CONFLICT = "conflict"
    API = "api"


class ProgressError(Exception):
    """Base exception for all progress engine failures."""

    def __init__(self, message: str, *, category: ProgressErrorCategory) -> None:
        self.message = message
        self.category = category
        super().__init__(self.message)


class UnauthenticatedError(ProgressError):
    """Raised when no effective user id can be resolved."""

    def __init__(self, message: str = "User not authenticated - no valid user ID found") -> None:
        super().__init__(message, category=ProgressErrorCategory.UNAUTHENTICATED)


class InvalidArgumentError(ProgressError):
    """Raised when a required identifier is missing."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ProgressErrorCategory.INVALID_ARGUMENT)


class ProgressSyncError(ProgressError):
    """Base class for failures talking to the remote progress store."""

    def __init__(
        self,
        message: str,
        *,
        category: ProgressErrorCategory,
        status_code: int = 0,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, category=category)
        self.status_code = status_code
        self.payload = payload or {}


class ProgressNotFoundError(ProgressSyncError):
    """Raised when a progress record does not exist (locally or server-side)."""

    def __init__(self, message: str = "Progress record not found", *, payload: dict[str, Any] | None = None) -> None:
        super().__init__(message, category=ProgressErrorCategory.NOT_FOUND, status_code=404, payload=payload)


class ProgressTimeoutError(ProgressSyncError):
    """Raised when a remote call exceeds the configured timeout."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ProgressErrorCategory.TIMEOUT)


class ProgressNetworkError(ProgressSyncError):
    """Raised on transport-level failures (DNS, refused connection, reset)."""

    def __init__(self, message: str = "Network error. Please check your internet connection.") -> None:
        super().__init__(message, category=ProgressErrorCategory.NETWORK)


class ProgressConflictError(ProgressSyncError):
    """Raised on 409 responses that carry no usable existing record."""

    def __init__(self, message: str = "Progress record already exists", *, payload: dict[str, Any] | None = None) -> None:
        super().__init__(message, category=ProgressErrorCategory.CONFLICT, status_code=409, payload=payload)


class ProgressAPIError(ProgressSyncError):
    """Raised for any other non-success response from the progress store."""

    def __init__(self, message: str, status_code: int, payload: dict[str, Any] | None = None) -> None:
        super().__init__(message, category=ProgressErrorCategory.API, status_code=status_code, payload=payload)


def get_progress_error_message(error: Exception) -> str:
    """Map an error to a user-facing sentence."""
    if not isinstance(error, ProgressError):
        return "An unexpected error occurred. Please try again."

    messages = {
        ProgressErrorCategory.UNAUTHENTICATED: "Authentication required. Please log in again.",
        ProgressErrorCategory.INVALID_ARGUMENT: "Invalid data provided. Please check your input.",
        ProgressErrorCategory.NOT_FOUND: "Progress record not found.",
        ProgressErrorCategory.TIMEOUT: "The server took too long to respond. Please try again.",
        ProgressErrorCategory.NETWORK: "Cannot connect to server. Please check your internet connection.",
        ProgressErrorCategory.CONFLICT: "Progress record already exists.",
    }
    if error.category in messages:
        return messages[error.category]

    status_code = getattr(error, "status_code", 0)
    if status_code == 401:
        return "Authentication required. Please log in again."
    if status_code >= 500:
        return "Server error. Please try again later."
    return error.message or "An error occurred. Please try again."
