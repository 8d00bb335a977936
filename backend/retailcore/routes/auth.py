# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login        email + password -> token pair
- POST /api/auth/refresh      refresh token -> rotated token pair
- POST /api/auth/logout       revoke one refresh token
- POST /api/auth/logout-all   revoke every refresh token of the caller
- GET  /api/auth/me           current principal and effective permissions
- POST /api/auth/change-password  current + new password, revokes refresh tokens
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import DomainError, ValidationError
from ..permissions import effective_permissions
from ..responses import error_response, internal_error_response
from ..services import auth_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue an access/refresh token pair.

    SECURITY:
    - Locked accounts get 423 with lock_until and Retry-After
    - Failed attempts count towards lockout
    """
    try:
        data = _json_body()
        user, pair = auth_service.login(
            data.get("email"),
            data.get("password"),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "user": user.to_dict(),
            "permissions": sorted(effective_permissions(user)),
            **pair.to_dict(),
        }), 200

    except DomainError as exc:
        return error_response(exc, "login")
    except Exception:
        return internal_error_response("login user")


@auth_bp.post("/refresh")
def refresh_route():
    try:
        data = _json_body()
        pair = auth_service.refresh(
            data.get("refresh_token"),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify(pair.to_dict()), 200

    except DomainError as exc:
        return error_response(exc, "refresh")
    except Exception:
        return internal_error_response("refresh token")


@auth_bp.post("/logout")
def logout_route():
    try:
        data = _json_body()
        removed = auth_service.logout(data.get("refresh_token"))
        return jsonify({"message": "Logged out", "revoked": removed}), 200

    except DomainError as exc:
        return error_response(exc, "logout")
    except Exception:
        return internal_error_response("logout user")


@auth_bp.post("/logout-all")
@require_auth
def logout_all_route():
    """Revoke every refresh token of the caller (logout everywhere)."""
    try:
        removed = auth_service.logout_everywhere(g.principal.id, actor=g.principal)
        return jsonify({"message": "Logged out everywhere", "revoked": removed}), 200

    except DomainError as exc:
        return error_response(exc, "logout-all")
    except Exception:
        return internal_error_response("logout user everywhere")


@auth_bp.get("/me")
@require_auth
def me_route():
    principal = g.principal
    return jsonify({
        "user": principal.to_dict(),
        "permissions": sorted(effective_permissions(principal)),
    }), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Change the caller's password.

    Requires the current password. All refresh tokens are revoked, so
    other sessions must log in again once their access token expires.
    """
    try:
        data = _json_body()
        revoked = auth_service.change_password(
            g.principal.id,
            data.get("current_password"),
            data.get("new_password"),
            actor=g.principal,
        )
        return jsonify({"message": "Password changed", "revoked": revoked}), 200

    except DomainError as exc:
        return error_response(exc, "change-password")
    except Exception:
        return internal_error_response("change password")
