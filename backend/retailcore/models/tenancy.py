from __future__ import annotations

import re

from sqlalchemy.orm import validates

from ..extensions import db
from ..time_utils import to_utc_z

BRANCH_CODE_PATTERN = re.compile(r"^[A-Z0-9]{2,10}$")


class Branch(db.Model):
    """
    Branch (physical store) - the unit of data partitioning.

    Sales and branch stock carry an owning branch_id. Branch-scoped roles
    may only ever read or write rows of their own branch.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.CheckConstraint("tax_rate_bps >= 0", name="ck_branches_tax_rate_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    # Short unique code, also used as the sale-number prefix (e.g. "MUM01")
    code = db.Column(db.String(10), nullable=False, unique=True, index=True)

    # Tax rate in basis points (1800 = 18%). Prices are tax-inclusive.
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=1800)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @validates("code")
    def _validate_code(self, key, value):
        code = (value or "").strip().upper()
        if not BRANCH_CODE_PATTERN.match(code):
            raise ValueError("Branch code must be 2-10 uppercase letters or digits")
        return code

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "tax_rate_bps": self.tax_rate_bps,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
