# Overview: JSON error rendering shared by the route modules.

from flask import current_app, g, jsonify, request

from .errors import DomainError, InternalError, LockedError
from .extensions import db
from .services import audit_service
from .time_utils import utcnow


def error_response(exc: DomainError, action: str):
    """
    Render a DomainError and log it with actor, action and correlation id.
    """
    principal = getattr(g, "principal", None)
    log = current_app.logger.error if isinstance(exc, InternalError) else current_app.logger.info
    log(
        "%s failed: %s (code=%s actor=%s correlation_id=%s)",
        action,
        exc.message,
        exc.code,
        principal.id if principal else None,
        getattr(g, "correlation_id", None),
    )

    response = jsonify(exc.to_dict())
    response.status_code = exc.status_code
    if isinstance(exc, LockedError) and exc.lock_until is not None:
        retry_after = max(0, int((exc.lock_until - utcnow()).total_seconds()))
        response.headers["Retry-After"] = str(retry_after)
    return response


def internal_error_response(action: str):
    """
    For unexpected exceptions: log the traceback, audit the failure and
    answer an opaque 500.
    """
    principal = getattr(g, "principal", None)
    current_app.logger.exception(
        "Failed to %s (actor=%s correlation_id=%s)",
        action,
        principal.id if principal else None,
        getattr(g, "correlation_id", None),
    )
    db.session.rollback()
    audit_service.record_failure(
        "request.error",
        InternalError(f"Failed to {action}"),
        principal=principal,
        resource_type="route",
        resource_id=f"{request.method} {request.path}",
    )
    return jsonify(InternalError().to_dict()), 500
