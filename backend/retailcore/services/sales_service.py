"""
Sales Service - atomic sale commit, refunds and cancellation

WHY: A sale, its stock decrements and its number allocation must land
together or not at all. Every mutation runs as one database transaction
(BEGIN IMMEDIATE on SQLite, row locks elsewhere) and every stock change is
a conditional UPDATE, so two cashiers selling the last unit can never both
succeed.

Pricing is tax-inclusive: the tax is extracted from the discounted total,
    taxable = total * 10000 / (10000 + tax_rate_bps)   (half-up to cents)
    tax     = total - taxable

Audit records are written after the transaction resolves and never affect
its outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..errors import (
    ConflictError,
    DomainError,
    ForbiddenError,
    HiddenResourceError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..identifiers import parse_id
from ..models import Branch, Product, ProductBranchStock, Sale, SaleItem
from ..permissions import effective_permissions, has_permission
from ..time_utils import utcnow
from . import audit_service, inventory_service
from .branch_scope import (
    assert_read_access,
    assert_write_access,
    build_branch_filter,
    resolve_accessible_branches,
)
from .concurrency import begin_write, lock_for_update, run_transaction
from .document_service import next_document_number

SALE_DOCUMENT_TYPE = "SALE"
SALE_NUMBER_PREFIX = "S"
BPS_DENOMINATOR = 10000

PAYMENT_METHODS = {"cash", "card", "upi", "bank_transfer", "credit", "other"}
SALE_STATUSES = {
    Sale.STATUS_PENDING,
    Sale.STATUS_COMPLETED,
    Sale.STATUS_CANCELLED,
    Sale.STATUS_REFUNDED,
}

MAX_LIST_LIMIT = 200
MAX_CUSTOMER_NAME_LENGTH = 255
MAX_NOTES_LENGTH = 2000


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class Pricing:
    subtotal_cents: int
    discount_percentage: Decimal
    discount_cents: int
    tax_rate_bps: int
    taxable_cents: int
    tax_cents: int
    total_cents: int


# ---------------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------------

def parse_quantity(value, field: str = "quantity") -> int:
    """Quantities are positive integers; bools, floats and strings are rejected."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", details={"field": field})
    return value


def _parse_cents(value, field: str, *, allow_zero: bool = True) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents", details={"field": field})
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be positive", details={"field": field})
    return value


def parse_cart(items) -> list[CartLine]:
    """
    Validate cart lines and merge duplicate products.

    Each line is a mapping with product_id and quantity.
    """
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Sale must contain at least one item", details={"field": "items"})

    totals: dict[int, int] = {}
    for index, line in enumerate(items):
        if not isinstance(line, dict):
            raise ValidationError("Each item must be an object", details={"field": f"items[{index}]"})
        product_id = parse_id(line.get("product_id"), f"items[{index}].product_id")
        quantity = parse_quantity(line.get("quantity"), f"items[{index}].quantity")
        totals[product_id] = totals.get(product_id, 0) + quantity

    return [CartLine(product_id=pid, quantity=qty) for pid, qty in totals.items()]


def _parse_percentage(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        raise ValidationError("discount_percentage must be a number", details={"field": "discount_percentage"})
    try:
        pct = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(
            "discount_percentage must be a number",
            details={"field": "discount_percentage"},
        ) from exc
    if not pct.is_finite() or pct < 0 or pct > 100:
        raise ValidationError(
            "discount_percentage must be between 0 and 100",
            details={"field": "discount_percentage"},
        )
    return pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_pricing(
    subtotal_cents: int,
    tax_rate_bps: int,
    discount_percentage=None,
    discount_cents=None,
) -> Pricing:
    """
    Apply discount, then extract tax from the tax-inclusive total.

    A non-zero percentage wins over a fixed amount; a fixed amount is
    capped at the subtotal.
    """
    pct = _parse_percentage(discount_percentage)
    if pct > 0:
        discount = _round_half_up(Decimal(subtotal_cents) * pct / Decimal(100))
    elif discount_cents is not None:
        discount = min(_parse_cents(discount_cents, "discount_cents"), subtotal_cents)
    else:
        discount = 0

    total = subtotal_cents - discount
    taxable = _round_half_up(
        Decimal(total) * BPS_DENOMINATOR / Decimal(BPS_DENOMINATOR + tax_rate_bps)
    )
    return Pricing(
        subtotal_cents=subtotal_cents,
        discount_percentage=pct,
        discount_cents=discount,
        tax_rate_bps=tax_rate_bps,
        taxable_cents=taxable,
        tax_cents=total - taxable,
        total_cents=total,
    )


def _parse_payment_method(value) -> str:
    if value is None:
        value = "cash"
    method = value.strip().lower() if isinstance(value, str) else None
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            "Unsupported payment_method",
            details={"field": "payment_method", "allowed": sorted(PAYMENT_METHODS)},
        )
    return method


def _parse_optional_text(value, field: str, max_length: int) -> str | None:
    """None or a string up to max_length; blank strings become None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={"field": field})
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters",
            details={"field": field, "max_length": max_length},
        )
    return text or None


def _parse_reason(reason) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required", details={"field": "reason"})
    return reason.strip()[:255]


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

def _require_permission(principal, permission: str, action: str) -> None:
    if principal is None:
        raise ForbiddenError("Authentication required")
    if not has_permission(effective_permissions(principal), permission):
        error = ForbiddenError("Permission denied", details={"required_permission": permission})
        audit_service.record_failure(action, error, principal=principal)
        raise error


def _run(op, *, action: str, principal, resource_id=None, branch_id=None):
    """Run a write transaction; audit any failure outcome before re-raising."""
    try:
        return run_transaction(op, action=action)
    except DomainError as exc:
        audit_service.record_failure(
            action,
            exc,
            principal=principal,
            resource_type="sale",
            resource_id=resource_id,
            branch_id=branch_id,
        )
        raise


def _load_sale_for_write(principal, sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise NotFoundError("Sale not found")
    if not assert_write_access(sale.branch_id, principal):
        raise HiddenResourceError("Sale not found")
    return sale


def _audit_sale(action: str, principal, sale: Sale, before: dict | None = None, reason: str | None = None) -> None:
    audit_service.record_event(
        action,
        principal=principal,
        resource_type="sale",
        resource_id=sale.id,
        branch_id=sale.branch_id,
        before=before,
        after=sale.to_dict(include_items=False),
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def create_sale(
    principal,
    branch_id,
    items,
    *,
    discount_percentage=None,
    discount_cents=None,
    amount_paid_cents=None,
    payment_method: str | None = "cash",
    customer_name: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Validate the cart against live branch stock and commit the sale.

    All-or-nothing: if any line is short, nothing is written. When
    amount_paid_cents is below the total the sale is left pending.
    """
    action = "sale.create"
    _require_permission(principal, "sales.create", action)

    lines = parse_cart(items)
    target_branch = parse_id(branch_id, "branch_id")

    if not assert_write_access(target_branch, principal):
        error = ForbiddenError("Cannot access other branches")
        audit_service.record_failure(action, error, principal=principal, resource_type="sale", branch_id=target_branch)
        raise error

    method = _parse_payment_method(payment_method)
    customer = _parse_optional_text(customer_name, "customer_name", MAX_CUSTOMER_NAME_LENGTH)
    sale_notes = _parse_optional_text(notes, "notes", MAX_NOTES_LENGTH)
    paid = None if amount_paid_cents is None else _parse_cents(amount_paid_cents, "amount_paid_cents")
    # Reject malformed discounts before any storage work
    _parse_percentage(discount_percentage)
    if discount_cents is not None:
        _parse_cents(discount_cents, "discount_cents")

    def _op() -> Sale:
        begin_write()

        branch = db.session.get(Branch, target_branch)
        if not branch:
            raise NotFoundError("Branch not found")
        if not branch.is_active:
            raise ValidationError("Branch is inactive", details={"field": "branch_id"})

        product_ids = [line.product_id for line in lines]
        products = {
            p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
        }
        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            raise NotFoundError("Product not found", details={"product_ids": missing})
        inactive = [pid for pid in product_ids if not products[pid].is_active]
        if inactive:
            raise ValidationError("Product is inactive", details={"product_ids": inactive})

        stock_rows = {
            row.product_id: row
            for row in lock_for_update(
                db.session.query(ProductBranchStock).filter(
                    ProductBranchStock.branch_id == branch.id,
                    ProductBranchStock.product_id.in_(product_ids),
                )
            ).all()
        }

        insufficient = []
        for line in lines:
            row = stock_rows.get(line.product_id)
            available = row.available_quantity if row else 0
            if available < line.quantity:
                insufficient.append({
                    "product_id": line.product_id,
                    "requested_quantity": line.quantity,
                    "available_quantity": available,
                })
        if insufficient:
            raise InsufficientStockError(
                "Insufficient stock for one or more items",
                details={"items": insufficient},
            )

        sale_items = []
        subtotal = 0
        for line in lines:
            product = products[line.product_id]
            line_total = product.selling_price_cents * line.quantity
            subtotal += line_total
            sale_items.append(SaleItem(
                product_id=product.id,
                product_name=product.name,
                sku=product.sku,
                quantity=line.quantity,
                unit_price_cents=product.selling_price_cents,
                cost_price_cents=product.cost_price_cents,
                line_total_cents=line_total,
                refunded_quantity=0,
            ))

        pricing = compute_pricing(
            subtotal,
            branch.tax_rate_bps,
            discount_percentage=discount_percentage,
            discount_cents=discount_cents,
        )

        amount_paid = pricing.total_cents if paid is None else paid
        now = utcnow()
        fully_paid = amount_paid >= pricing.total_cents

        sale = Sale(
            sale_number=next_document_number(
                branch_id=branch.id,
                branch_code=branch.code,
                document_type=SALE_DOCUMENT_TYPE,
                prefix=SALE_NUMBER_PREFIX,
            ),
            branch_id=branch.id,
            status=Sale.STATUS_COMPLETED if fully_paid else Sale.STATUS_PENDING,
            payment_method=method,
            subtotal_cents=pricing.subtotal_cents,
            discount_percentage=pricing.discount_percentage,
            discount_cents=pricing.discount_cents,
            tax_rate_bps=pricing.tax_rate_bps,
            taxable_cents=pricing.taxable_cents,
            tax_cents=pricing.tax_cents,
            total_cents=pricing.total_cents,
            amount_paid_cents=amount_paid,
            amount_due_cents=max(0, pricing.total_cents - amount_paid),
            change_cents=max(0, amount_paid - pricing.total_cents),
            refunded_cents=0,
            customer_name=customer,
            notes=sale_notes,
            created_by_user_id=principal.id,
            created_at=now,
            completed_at=now if fully_paid else None,
        )
        sale.items = sale_items
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            if not inventory_service.decrement_stock(line.product_id, branch.id, line.quantity):
                raise InsufficientStockError(
                    "Insufficient stock for one or more items",
                    details={"items": [{"product_id": line.product_id, "requested_quantity": line.quantity}]},
                )

        db.session.commit()
        return sale

    sale = _run(_op, action=action, principal=principal, branch_id=target_branch)
    _audit_sale(action, principal, sale)
    return sale


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

def get_sale(principal, sale_id) -> Sale:
    """Foreign-branch sales are reported as not found."""
    _require_permission(principal, "sales.read", "sale.read")
    parsed = parse_id(sale_id, "sale_id")

    sale = db.session.get(Sale, parsed)
    if not sale:
        raise NotFoundError("Sale not found")
    if not assert_read_access(sale.branch_id, principal):
        error = HiddenResourceError("Sale not found")
        audit_service.record_failure(
            "sale.read",
            error,
            principal=principal,
            resource_type="sale",
            resource_id=parsed,
            branch_id=sale.branch_id,
        )
        raise error
    return sale


def list_sales(
    principal,
    branch_ids=None,
    *,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    """Sales visible to the principal, newest first, with the total count."""
    _require_permission(principal, "sales.read", "sale.list")

    resolution = resolve_accessible_branches(principal, branch_ids)
    if not resolution.ok:
        audit_service.record_failure("sale.list", resolution.error, principal=principal, resource_type="sale")
        resolution.unwrap()

    if status is not None and status not in SALE_STATUSES:
        raise ValidationError("Unknown status", details={"field": "status", "allowed": sorted(SALE_STATUSES)})

    query = db.session.query(Sale)
    branch_filter = build_branch_filter(Sale.branch_id, resolution.branch_ids)
    if branch_filter is not None:
        query = query.filter(branch_filter)
    if status:
        query = query.filter(Sale.status == status)

    total = query.count()

    limit = max(1, min(int(limit), MAX_LIST_LIMIT))
    offset = max(0, int(offset))
    rows = query.order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()
    return rows, total


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

def add_payment(principal, sale_id, amount_cents, payment_method: str | None = None) -> Sale:
    """Take a further payment on a pending sale; completes it once fully paid."""
    action = "sale.payment"
    _require_permission(principal, "sales.create", action)
    parsed = parse_id(sale_id, "sale_id")
    amount = _parse_cents(amount_cents, "amount_cents", allow_zero=False)
    method = _parse_payment_method(payment_method) if payment_method is not None else None

    def _op() -> Sale:
        begin_write()
        sale = _load_sale_for_write(principal, parsed)
        if sale.status != Sale.STATUS_PENDING:
            raise ConflictError(
                f"Cannot take payment on a {sale.status} sale",
                details={"status": sale.status},
            )

        sale.amount_paid_cents += amount
        if method:
            sale.payment_method = method
        if sale.amount_paid_cents >= sale.total_cents:
            sale.status = Sale.STATUS_COMPLETED
            sale.completed_at = utcnow()
            sale.amount_due_cents = 0
            sale.change_cents = sale.amount_paid_cents - sale.total_cents
        else:
            sale.amount_due_cents = sale.total_cents - sale.amount_paid_cents

        db.session.commit()
        return sale

    sale = _run(_op, action=action, principal=principal, resource_id=parsed)
    _audit_sale(action, principal, sale, reason=f"payment {amount}")
    return sale


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------

def _parse_refund_items(refund_items) -> list[tuple[str, int, int]]:
    """(kind, id, quantity) per line; a line names either sale_item_id or product_id."""
    if not isinstance(refund_items, (list, tuple)) or not refund_items:
        raise ValidationError("refund_items must be a non-empty list", details={"field": "refund_items"})

    parsed: list[tuple[str, int, int]] = []
    for index, line in enumerate(refund_items):
        if not isinstance(line, dict):
            raise ValidationError("Each refund item must be an object", details={"field": f"refund_items[{index}]"})
        quantity = parse_quantity(line.get("quantity"), f"refund_items[{index}].quantity")
        if line.get("sale_item_id") is not None:
            parsed.append(("item", parse_id(line["sale_item_id"], f"refund_items[{index}].sale_item_id"), quantity))
        else:
            parsed.append(("product", parse_id(line.get("product_id"), f"refund_items[{index}].product_id"), quantity))
    return parsed


def _resolve_refund_lines(sale: Sale, requested) -> list[tuple[SaleItem, int]]:
    by_id = {item.id: item for item in sale.items}
    by_product = {item.product_id: item for item in sale.items}

    totals: dict[int, int] = {}
    for kind, key, quantity in requested:
        item = by_id.get(key) if kind == "item" else by_product.get(key)
        if item is None:
            raise ValidationError(
                "Refund item is not part of this sale",
                details={kind + "_id": key},
            )
        totals[item.id] = totals.get(item.id, 0) + quantity

    resolved = []
    for item_id, quantity in totals.items():
        item = by_id[item_id]
        if quantity > item.refundable_quantity:
            raise ValidationError(
                "Refund quantity exceeds quantity sold",
                details={
                    "sale_item_id": item.id,
                    "product_id": item.product_id,
                    "requested_quantity": quantity,
                    "refundable_quantity": item.refundable_quantity,
                },
            )
        resolved.append((item, quantity))
    return resolved


def refund_sale(principal, sale_id, reason, refund_cents=None, refund_items=None) -> Sale:
    """
    Refund a completed sale and restore stock.

    With refund_items, only those quantities return to stock and the amount
    defaults to sum(unit_price * quantity), capped at what is left to
    refund. Without refund_items every unreturned unit goes back and the
    amount defaults to the remaining total. The sale becomes "refunded"
    once no unit remains unreturned.
    """
    action = "sale.refund"
    _require_permission(principal, "sales.refund", action)
    parsed = parse_id(sale_id, "sale_id")
    refund_reason = _parse_reason(reason)
    requested = _parse_refund_items(refund_items) if refund_items is not None else None
    explicit_amount = None
    if refund_cents is not None:
        if isinstance(refund_cents, bool) or not isinstance(refund_cents, int) or refund_cents <= 0:
            raise ValidationError("refund_cents must be a positive integer", details={"field": "refund_cents"})
        explicit_amount = refund_cents

    before_holder: dict = {}

    def _op() -> Sale:
        begin_write()
        sale = _load_sale_for_write(principal, parsed)
        if sale.status != Sale.STATUS_COMPLETED:
            raise ConflictError(
                "Only completed sales can be refunded",
                details={"status": sale.status},
            )
        before_holder["sale"] = sale.to_dict(include_items=False)

        if requested is not None:
            lines = _resolve_refund_lines(sale, requested)
        else:
            lines = [(item, item.refundable_quantity) for item in sale.items if item.refundable_quantity > 0]
            if not lines:
                raise ConflictError("Sale has already been fully refunded")

        remaining = sale.total_cents - sale.refunded_cents
        if explicit_amount is not None:
            amount = explicit_amount
            if amount > remaining:
                raise ValidationError(
                    "Refund amount exceeds refundable balance",
                    details={"refundable_cents": remaining},
                )
        elif requested is not None:
            amount = min(sum(item.unit_price_cents * qty for item, qty in lines), remaining)
        else:
            amount = remaining

        # A zero amount still returns stock (free sale, or money already paid back)

        for item, quantity in lines:
            item.refunded_quantity += quantity
            inventory_service.restore_stock(item.product_id, sale.branch_id, quantity)

        sale.refunded_cents += amount
        sale.refund_reason = refund_reason
        sale.refunded_by_user_id = principal.id
        sale.refunded_at = utcnow()
        if all(item.refundable_quantity == 0 for item in sale.items):
            sale.status = Sale.STATUS_REFUNDED

        db.session.commit()
        return sale

    sale = _run(_op, action=action, principal=principal, resource_id=parsed)
    _audit_sale(action, principal, sale, before=before_holder.get("sale"), reason=refund_reason)
    return sale


def refund_amount(principal, sale_id, amount_cents, reason) -> Sale:
    """
    Money-only partial refund of a completed sale; no stock moves.

    Reduces amount_due; the sale becomes "refunded" once the whole total
    has been paid back.
    """
    action = "sale.refund_amount"
    _require_permission(principal, "sales.refund", action)
    parsed = parse_id(sale_id, "sale_id")
    refund_reason = _parse_reason(reason)
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer", details={"field": "amount_cents"})

    before_holder: dict = {}

    def _op() -> Sale:
        begin_write()
        sale = _load_sale_for_write(principal, parsed)
        if sale.status != Sale.STATUS_COMPLETED:
            raise ConflictError(
                "Only completed sales can be refunded",
                details={"status": sale.status},
            )
        before_holder["sale"] = sale.to_dict(include_items=False)

        remaining = sale.total_cents - sale.refunded_cents
        if amount_cents > remaining:
            raise ValidationError(
                "Refund amount exceeds refundable balance",
                details={"refundable_cents": remaining},
            )

        sale.refunded_cents += amount_cents
        sale.amount_due_cents = max(0, sale.amount_due_cents - amount_cents)
        sale.refund_reason = refund_reason
        sale.refunded_by_user_id = principal.id
        sale.refunded_at = utcnow()
        if sale.refunded_cents >= sale.total_cents:
            sale.status = Sale.STATUS_REFUNDED

        db.session.commit()
        return sale

    sale = _run(_op, action=action, principal=principal, resource_id=parsed)
    _audit_sale(action, principal, sale, before=before_holder.get("sale"), reason=refund_reason)
    return sale


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------

def cancel_sale(principal, sale_id, reason: str | None = None) -> Sale:
    """
    Cancel a pending sale and put all of its stock back.

    Completed sales are refunded, never cancelled.
    """
    action = "sale.cancel"
    _require_permission(principal, "sales.update", action)
    parsed = parse_id(sale_id, "sale_id")
    cancel_reason = reason.strip()[:255] if isinstance(reason, str) and reason.strip() else None

    before_holder: dict = {}

    def _op() -> Sale:
        begin_write()
        sale = _load_sale_for_write(principal, parsed)
        if sale.status == Sale.STATUS_COMPLETED:
            raise ConflictError("Cannot cancel a completed sale. Process a refund instead.")
        if sale.status != Sale.STATUS_PENDING:
            raise ConflictError(
                f"Sale is already {sale.status}",
                details={"status": sale.status},
            )
        before_holder["sale"] = sale.to_dict(include_items=False)

        for item in sale.items:
            quantity = item.refundable_quantity
            if quantity > 0:
                inventory_service.restore_stock(item.product_id, sale.branch_id, quantity)

        sale.status = Sale.STATUS_CANCELLED
        sale.amount_due_cents = 0
        sale.cancelled_by_user_id = principal.id
        sale.cancelled_at = utcnow()
        sale.cancel_reason = cancel_reason

        db.session.commit()
        return sale

    sale = _run(_op, action=action, principal=principal, resource_id=parsed)
    _audit_sale(action, principal, sale, before=before_holder.get("sale"), reason=cancel_reason)
    return sale
