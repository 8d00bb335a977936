from __future__ import annotations

from sqlalchemy import event, inspect

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Sale document.

    Lifecycle: pending -> completed (payment taken in full), completed ->
    refunded (every unit returned or whole total refunded), pending ->
    cancelled (stock restored). Completed sales are never cancelled or
    deleted; they are refunded.

    Pricing is tax-inclusive:
        total = subtotal - discount = taxable + tax
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_status_created", "branch_id", "status", "created_at"),
        db.CheckConstraint("total_cents >= 0", name="ck_sales_total_nonneg"),
        db.CheckConstraint("refunded_cents >= 0", name="ck_sales_refunded_nonneg"),
        {"sqlite_autoincrement": True},
    )

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"
    STATUS_REFUNDED = "refunded"

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "MUM01-S-000042"
    sale_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_COMPLETED, index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    # Pricing (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    taxable_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    # Payment tracking
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_due_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    # Refund audit trail
    refunded_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_reason = db.Column(db.String(255), nullable=True)
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)

    # Cancel audit trail
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    customer_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.id",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "branch_id": self.branch_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "discount_percentage": str(self.discount_percentage) if self.discount_percentage is not None else "0",
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "taxable_cents": self.taxable_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "change_cents": self.change_cents,
            "refunded_cents": self.refunded_cents,
            "refund_reason": self.refund_reason,
            "refunded_by_user_id": self.refunded_by_user_id,
            "refunded_at": to_utc_z(self.refunded_at) if self.refunded_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "customer_name": self.customer_name,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale.

    product_name, sku and both prices are copied from the product when the
    sale is created. Only refunded_quantity may change afterwards.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_pos"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_items_price_nonneg"),
        db.CheckConstraint(
            "refunded_quantity >= 0 AND refunded_quantity <= quantity",
            name="ck_sale_items_refunded_range",
        ),
        {"sqlite_autoincrement": True},
    )

    SNAPSHOT_FIELDS = (
        "sale_id",
        "product_id",
        "product_name",
        "sku",
        "quantity",
        "unit_price_cents",
        "cost_price_cents",
        "line_total_cents",
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    refunded_quantity = db.Column(db.Integer, nullable=False, default=0)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    @property
    def refundable_quantity(self) -> int:
        return self.quantity - (self.refunded_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "line_total_cents": self.line_total_cents,
            "refunded_quantity": self.refunded_quantity,
        }


@event.listens_for(SaleItem, "before_update")
def _reject_snapshot_changes(mapper, connection, target):
    state = inspect(target)
    changed = [
        name for name in SaleItem.SNAPSHOT_FIELDS
        if state.attrs[name].history.has_changes()
    ]
    if changed:
        raise ValueError(f"Sale item fields are immutable: {', '.join(changed)}")
