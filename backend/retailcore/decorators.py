# Overview: Request authentication and permission decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import DomainError, ForbiddenError, InternalError
from .permissions import effective_permissions, has_all, has_any, missing_permissions
from .responses import error_response
from .services import audit_service, auth_service


def require_auth(f):
    """
    Require a valid bearer access token.

    Sets g.principal, rebuilt from the user row (not from token claims).

    Returns 401 for missing/invalid/expired tokens, 403 for deactivated
    accounts, 423 for locked accounts.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.principal = auth_service.authenticate(request.headers.get("Authorization"))
        except DomainError as exc:
            if isinstance(exc, (ForbiddenError, InternalError)):
                audit_service.record_failure(
                    "auth.authenticate",
                    exc,
                    resource_type="route",
                    resource_id=f"{request.method} {request.path}",
                )
            return error_response(exc, f"authenticate {request.method} {request.path}")
        return f(*args, **kwargs)

    return decorated_function


def _deny(required: list[str], mode: str):
    principal = g.principal
    missing = missing_permissions(effective_permissions(principal), required)
    error = ForbiddenError(
        "Permission denied",
        details={"required_permissions": list(required), "missing_permissions": missing, "mode": mode},
    )
    audit_service.record_failure(
        "permission.denied",
        error,
        principal=principal,
        resource_type="route",
        resource_id=f"{request.method} {request.path}",
    )
    return error_response(error, f"{request.method} {request.path}")


def require_permission(*permission_codes):
    """
    Require all of the given permissions.

    Must be applied below @require_auth. Denials are audit-logged.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if getattr(g, "principal", None) is None:
                return error_response(
                    ForbiddenError("Authentication required"),
                    f"{request.method} {request.path}",
                )
            if not has_all(effective_permissions(g.principal), list(permission_codes)):
                return _deny(list(permission_codes), "all")
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permission_codes):
    """Require at least one of the given permissions."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if getattr(g, "principal", None) is None:
                return error_response(
                    ForbiddenError("Authentication required"),
                    f"{request.method} {request.path}",
                )
            if not has_any(effective_permissions(g.principal), list(permission_codes)):
                return _deny(list(permission_codes), "any")
            return f(*args, **kwargs)

        return decorated_function
    return decorator
