"""Typed application errors.

Every error carries a machine-readable ``code`` and an HTTP status so the
exception handlers in ``libs.common.error_handler`` can render
``{"error": ..., "code": ...}`` without the raising code knowing about HTTP
responses. ``extra`` holds additional context for the client (for budget
rejections: ``remaining`` and ``requested``).
"""

from typing import Any, Optional


class ClubOpsError(Exception):
    """Base class for business-rule and authorization failures."""

    status_code: int = 400
    default_code: str = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        extra: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


class AccessDenied(ClubOpsError):
    status_code = 403
    default_code = "UNAUTHORIZED"


class LastAdminError(ClubOpsError):
    status_code = 400
    default_code = "LAST_ADMIN"


class NotFoundError(ClubOpsError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(ClubOpsError):
    """Concurrent write lost a race; the client may resubmit."""

    status_code = 409
    default_code = "CONFLICT"
