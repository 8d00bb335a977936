from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data (shared across branches).

    Prices are authoritative in cents and tax-inclusive. Sale items copy
    name, sku and prices at sale time, so edits here never alter history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("selling_price_cents >= 0", name="ck_products_price_nonneg"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_products_cost_nonneg"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductBranchStock(db.Model):
    """
    Per-product, per-branch stock record.

    The CHECK constraints are the last line of defence: the services only
    ever change ``quantity`` through conditional UPDATEs that cannot drive
    it negative.
    """
    __tablename__ = "product_branch_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_product_branch_stock"),
        db.CheckConstraint("quantity >= 0", name="ck_branch_stock_quantity_nonneg"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_branch_stock_reserved_nonneg"),
        db.Index("ix_product_branch_stock_branch", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime, nullable=True)

    product = db.relationship("Product", backref=db.backref("branch_stock", lazy=True))
    branch = db.relationship("Branch")

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "reorder_level": self.reorder_level,
            "last_updated": to_utc_z(self.last_updated) if self.last_updated else None,
        }
