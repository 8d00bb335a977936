from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update, run_with_retry

# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


def _validate_price(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents", details={"field": field})
    if value < 0 or value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} out of range", details={"field": field})
    return value


def create_product(sku: str, name: str, selling_price_cents: int, cost_price_cents: int = 0) -> Product:
    normalized_sku = (sku or "").strip().upper()
    if not normalized_sku:
        raise ValidationError("sku is required", details={"field": "sku"})
    if not name or not name.strip():
        raise ValidationError("name is required", details={"field": "name"})

    _validate_price(selling_price_cents, "selling_price_cents")
    _validate_price(cost_price_cents, "cost_price_cents")

    product = Product(
        sku=normalized_sku,
        name=name.strip(),
        selling_price_cents=selling_price_cents,
        cost_price_cents=cost_price_cents,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("SKU already exists") from exc
    return product


def update_product_prices(
    product_id: int,
    *,
    name: str | None = None,
    selling_price_cents: int | None = None,
    cost_price_cents: int | None = None,
) -> Product:
    """Edit catalog data. Past sale items keep their own snapshot."""
    if name is not None and not name.strip():
        raise ValidationError("name is required", details={"field": "name"})
    if selling_price_cents is not None:
        _validate_price(selling_price_cents, "selling_price_cents")
    if cost_price_cents is not None:
        _validate_price(cost_price_cents, "cost_price_cents")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found")
        if name is not None:
            product.name = name.strip()
        if selling_price_cents is not None:
            product.selling_price_cents = selling_price_cents
        if cost_price_cents is not None:
            product.cost_price_cents = cost_price_cents
        db.session.commit()
        return product

    return run_with_retry(_op)
