# Overview: Per-branch stock operations; all quantity changes are conditional UPDATEs.

from __future__ import annotations

from sqlalchemy import update

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Product, ProductBranchStock
from ..time_utils import utcnow


def _require_positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"field": "quantity"})
    return quantity


def get_stock(product_id: int, branch_id: int) -> ProductBranchStock | None:
    return (
        db.session.query(ProductBranchStock)
        .filter_by(product_id=product_id, branch_id=branch_id)
        .first()
    )


def get_available_quantity(product_id: int, branch_id: int) -> int:
    """quantity - reserved_quantity, or 0 when the branch has no stock row."""
    stock = get_stock(product_id, branch_id)
    if stock is None:
        return 0
    return stock.available_quantity


def is_below_reorder_level(product_id: int, branch_id: int) -> bool:
    stock = get_stock(product_id, branch_id)
    if stock is None:
        return False
    return stock.quantity <= stock.reorder_level


def decrement_stock(product_id: int, branch_id: int, quantity: int) -> bool:
    """
    Take ``quantity`` units out of branch stock.

    Single conditional UPDATE: succeeds only while available stock covers
    the request, so concurrent sellers can never oversell. Returns False
    (nothing changed) otherwise. Does not commit.
    """
    _require_positive_quantity(quantity)
    stmt = (
        update(ProductBranchStock)
        .where(
            ProductBranchStock.product_id == product_id,
            ProductBranchStock.branch_id == branch_id,
            ProductBranchStock.quantity - ProductBranchStock.reserved_quantity >= quantity,
        )
        .values(
            quantity=ProductBranchStock.quantity - quantity,
            last_updated=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def restore_stock(product_id: int, branch_id: int, quantity: int) -> None:
    """
    Put ``quantity`` units back (refund, cancel). Does not commit.

    The stock row must exist: it existed when the units were sold.
    """
    _require_positive_quantity(quantity)
    stmt = (
        update(ProductBranchStock)
        .where(
            ProductBranchStock.product_id == product_id,
            ProductBranchStock.branch_id == branch_id,
        )
        .values(
            quantity=ProductBranchStock.quantity + quantity,
            last_updated=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise NotFoundError(
            "Branch stock record not found",
            details={"product_id": product_id, "branch_id": branch_id},
        )


def receive_stock(
    product_id: int,
    branch_id: int,
    quantity: int,
    *,
    reorder_level: int | None = None,
    commit: bool = True,
) -> ProductBranchStock:
    """
    Add incoming stock to a branch, creating the stock row on first receipt.
    """
    _require_positive_quantity(quantity)

    if not db.session.get(Product, product_id):
        raise NotFoundError("Product not found")
    if not db.session.get(Branch, branch_id):
        raise NotFoundError("Branch not found")

    stock = get_stock(product_id, branch_id)
    if stock is None:
        stock = ProductBranchStock(
            product_id=product_id,
            branch_id=branch_id,
            quantity=quantity,
            reserved_quantity=0,
            reorder_level=reorder_level or 0,
            last_updated=utcnow(),
        )
        db.session.add(stock)
    else:
        db.session.execute(
            update(ProductBranchStock)
            .where(ProductBranchStock.id == stock.id)
            .values(quantity=ProductBranchStock.quantity + quantity, last_updated=utcnow())
            .execution_options(synchronize_session=False)
        )
        if reorder_level is not None:
            stock.reorder_level = reorder_level

    if commit:
        db.session.commit()
        db.session.refresh(stock)
    else:
        db.session.flush()
    return stock
