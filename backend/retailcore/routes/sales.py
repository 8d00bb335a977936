# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import DomainError, ValidationError
from ..responses import error_response, internal_error_response
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    if not raw.isdigit():
        raise ValidationError(f"{name} must be a non-negative integer", details={"field": name})
    return int(raw)


@sales_bp.post("")
@require_auth
@require_permission("sales.create")
def create_sale_route():
    """
    Create and commit a sale.

    Body: branch_id, items[{product_id, quantity}], discount_percentage?,
    discount_cents?, amount_paid_cents?, payment_method?, customer_name?, notes?
    """
    try:
        data = _json_body()
        branch_id = data.get("branch_id", g.principal.branch_id)
        sale = sales_service.create_sale(
            g.principal,
            branch_id,
            data.get("items"),
            discount_percentage=data.get("discount_percentage"),
            discount_cents=data.get("discount_cents"),
            amount_paid_cents=data.get("amount_paid_cents"),
            payment_method=data.get("payment_method", "cash"),
            customer_name=data.get("customer_name"),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except DomainError as exc:
        return error_response(exc, "create sale")
    except Exception:
        return internal_error_response("create sale")


@sales_bp.get("")
@require_auth
@require_permission("sales.read")
def list_sales_route():
    """List sales. ?branch_id=1,2 (cross-branch roles only), ?status=, ?limit=, ?offset="""
    try:
        sales, total = sales_service.list_sales(
            g.principal,
            request.args.get("branch_id"),
            status=request.args.get("status") or None,
            limit=_int_arg("limit", 50),
            offset=_int_arg("offset", 0),
        )
        return jsonify({
            "sales": [s.to_dict(include_items=False) for s in sales],
            "total": total,
        }), 200

    except DomainError as exc:
        return error_response(exc, "list sales")
    except Exception:
        return internal_error_response("list sales")


@sales_bp.get("/<sale_id>")
@require_auth
@require_permission("sales.read")
def get_sale_route(sale_id: str):
    try:
        sale = sales_service.get_sale(g.principal, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except DomainError as exc:
        return error_response(exc, "get sale")
    except Exception:
        return internal_error_response("get sale")


@sales_bp.post("/<sale_id>/payments")
@require_auth
@require_permission("sales.create")
def add_payment_route(sale_id: str):
    try:
        data = _json_body()
        sale = sales_service.add_payment(
            g.principal,
            sale_id,
            data.get("amount_cents"),
            payment_method=data.get("payment_method"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except DomainError as exc:
        return error_response(exc, "add payment")
    except Exception:
        return internal_error_response("add payment")


@sales_bp.post("/<sale_id>/refund")
@require_auth
@require_permission("sales.refund")
def refund_sale_route(sale_id: str):
    """Body: reason, refund_items?[{sale_item_id|product_id, quantity}], refund_cents?"""
    try:
        data = _json_body()
        sale = sales_service.refund_sale(
            g.principal,
            sale_id,
            data.get("reason"),
            refund_cents=data.get("refund_cents"),
            refund_items=data.get("refund_items"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except DomainError as exc:
        return error_response(exc, "refund sale")
    except Exception:
        return internal_error_response("refund sale")


@sales_bp.post("/<sale_id>/refund-amount")
@require_auth
@require_permission("sales.refund")
def refund_amount_route(sale_id: str):
    try:
        data = _json_body()
        sale = sales_service.refund_amount(
            g.principal,
            sale_id,
            data.get("amount_cents"),
            data.get("reason"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except DomainError as exc:
        return error_response(exc, "refund sale amount")
    except Exception:
        return internal_error_response("refund sale amount")


@sales_bp.post("/<sale_id>/cancel")
@require_auth
@require_permission("sales.update")
def cancel_sale_route(sale_id: str):
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.cancel_sale(g.principal, sale_id, reason=data.get("reason"))
        return jsonify({"sale": sale.to_dict()}), 200

    except DomainError as exc:
        return error_response(exc, "cancel sale")
    except Exception:
        return internal_error_response("cancel sale")
