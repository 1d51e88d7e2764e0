"""Custom exception hierarchy for the mediashare access-control layer.

Every error carries the HTTP status it maps to at the API boundary, so
domain code can raise without knowing about FastAPI.
"""

from __future__ import annotations

from typing import Any


class MediaShareError(Exception):
    """Base exception for all mediashare errors."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> dict[str, Any]:
        """JSON body returned to the client for this error."""
        return {"error": self.message}


class InvalidRequestError(MediaShareError):
    """Raised for malformed input (missing fields, bad names, bad values)."""

    status_code = 400


class PathTraversalError(MediaShareError):
    """Raised when a caller-supplied path would escape the sandbox root.

    The message is deliberately generic; it never reveals whether the
    target exists or where the sandbox lives.
    """

    status_code = 403

    def __init__(self, message: str = "Invalid path") -> None:
        super().__init__(message)


class NotEditableError(MediaShareError):
    """Raised when a write targets a path outside every editable root."""

    status_code = 403


class ShareRootDeletionError(MediaShareError):
    """Raised when a share tries to delete its own root through itself."""

    status_code = 403

    def __init__(self, message: str = "Cannot delete share root") -> None:
        super().__init__(message)


class ForbiddenHostError(MediaShareError):
    """Raised when an admin session is used from a non-allowed domain."""

    status_code = 403

    def __init__(self, message: str = "Admin access not allowed from this domain") -> None:
        super().__init__(message)


class PathNotFoundError(MediaShareError):
    """Raised when a file or directory path does not exist."""

    status_code = 404


class ShareNotFoundError(MediaShareError):
    """Raised when a share token does not match any share record."""

    status_code = 404

    def __init__(self, message: str = "Share not found") -> None:
        super().__init__(message)


class UnauthorizedError(MediaShareError):
    """Raised when a session is missing, invalid, or expired."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ConflictError(MediaShareError):
    """Raised when a destination already exists (create, rename, copy)."""

    status_code = 409


class QuotaExceededError(MediaShareError):
    """Raised when an upload would exceed a share's byte budget."""

    status_code = 413

    def __init__(self, message: str, *, remaining: int, requested: int) -> None:
        super().__init__(message)
        self.remaining = remaining
        self.requested = requested

    def payload(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "remaining": self.remaining,
            "requested": self.requested,
        }


class RangeNotSatisfiableError(MediaShareError):
    """Raised when a byte range starts beyond the end of the content."""

    status_code = 416

    def __init__(self, size: int) -> None:
        super().__init__("Requested range not satisfiable")
        self.size = size


class RateLimitedError(MediaShareError):
    """Raised when a caller exceeds the attempt budget for a window."""

    status_code = 429

    def __init__(self, message: str = "Too many attempts. Try again in 15 minutes.") -> None:
        super().__init__(message)


class UpstreamToolError(MediaShareError):
    """Raised when an external transcoding tool is missing or fails."""

    status_code = 501
