# Overview: Domain error taxonomy shared by services, routes and CLI.

"""
Every failure a service can raise derives from DomainError. Routes map the
class to an HTTP status via ``status_code`` and render ``to_dict()``; the
CLI prints ``message``. Services never return error codes.
"""

from __future__ import annotations

from datetime import datetime

from .time_utils import to_utc_z


class DomainError(Exception):
    """Base class for caller-visible failures."""
    status_code = 400
    code = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    """400-level input problem."""
    status_code = 400
    code = "validation_error"


class UnauthorizedError(DomainError):
    """Missing, malformed, invalid or expired credential."""
    status_code = 401
    code = "unauthorized"

    MISSING = "missing"
    INVALID = "invalid"
    EXPIRED = "expired"

    def __init__(self, message: str, reason: str = INVALID, details: dict | None = None):
        super().__init__(message, details)
        self.reason = reason

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["reason"] = self.reason
        return payload


class LockedError(DomainError):
    """Account temporarily locked after repeated failed logins."""
    status_code = 423
    code = "locked"

    def __init__(self, message: str, lock_until: datetime, details: dict | None = None):
        super().__init__(message, details)
        self.lock_until = lock_until

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["lock_until"] = to_utc_z(self.lock_until)
        return payload


class ForbiddenError(DomainError):
    """Authenticated but not permitted (permission, branch scope, deactivated)."""
    status_code = 403
    code = "forbidden"


class BranchRequiredError(ForbiddenError):
    """Branch-scoped principal has no branch assigned (configuration fault)."""
    code = "branch_required"


class NotFoundError(DomainError):
    """Resource absent, or not visible to the caller's branch scope."""
    status_code = 404
    code = "not_found"


class HiddenResourceError(NotFoundError):
    """
    Resource exists but lies outside the caller's branch scope.

    Rendered exactly like NotFoundError so foreign-branch existence never
    leaks; audited as a denial.
    """
    audit_code = "forbidden"


class ConflictError(DomainError):
    """409-level conflict: duplicate key or illegal state transition."""
    status_code = 409
    code = "conflict"


class InsufficientStockError(DomainError):
    """One or more lines exceed available branch stock."""
    status_code = 409
    code = "insufficient_stock"


class InternalError(DomainError):
    """Storage, transaction or timeout failure. Rendered without detail."""
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal server error", details: dict | None = None):
        super().__init__(message, details)

    def to_dict(self) -> dict:
        return {"error": "Internal server error", "code": self.code}
