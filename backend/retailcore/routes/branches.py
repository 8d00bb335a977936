# Overview: Flask API routes for branch lookups, filtered by branch scope.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_any_permission, require_auth
from ..errors import DomainError
from ..responses import error_response, internal_error_response
from ..services import audit_service, branch_service
from ..services.branch_scope import resolve_accessible_branches


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
@require_any_permission("branches.read", "sales.create")
def list_branches_route():
    """Branches the caller may see. Cashiers see only their own branch."""
    try:
        resolution = resolve_accessible_branches(g.principal, request.args.get("branch_id"))
        if not resolution.ok:
            audit_service.record_failure(
                "branch.list",
                resolution.error,
                principal=g.principal,
                resource_type="branch",
            )
            return error_response(resolution.error, "list branches")

        branches = branch_service.list_branches(resolution.branch_ids)
        return jsonify({"branches": [b.to_dict() for b in branches]}), 200

    except DomainError as exc:
        return error_response(exc, "list branches")
    except Exception:
        return internal_error_response("list branches")
