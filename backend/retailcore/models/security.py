from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AuditRecord(db.Model):
    """
    Append-only audit trail of mutating and security-relevant actions.

    Written after the business transaction commits, in its own short
    transaction. Never updated or deleted by the application.
    """
    __tablename__ = "audit_records"
    __table_args__ = (
        db.Index("ix_audit_records_actor_action", "actor_user_id", "action"),
        db.Index("ix_audit_records_resource", "resource_type", "resource_id"),
        db.Index("ix_audit_records_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Actor snapshot (no FK: the record must survive user changes)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    actor_email = db.Column(db.String(255), nullable=True)
    actor_role = db.Column(db.String(64), nullable=True)
    branch_id = db.Column(db.Integer, nullable=True)

    # e.g. "sale.create", "auth.login", "permission.denied"
    action = db.Column(db.String(64), nullable=False, index=True)
    resource_type = db.Column(db.String(64), nullable=True)
    resource_id = db.Column(db.String(64), nullable=True)

    before = db.Column(db.JSON, nullable=True)
    after = db.Column(db.JSON, nullable=True)

    outcome = db.Column(db.String(16), nullable=False, index=True)  # success | failure
    reason = db.Column(db.Text, nullable=True)
    risk_level = db.Column(db.String(16), nullable=False, default="low")  # low | medium | high | critical
    flags = db.Column(db.JSON, nullable=False, default=list)

    correlation_id = db.Column(db.String(64), nullable=True, index=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_user_id": self.actor_user_id,
            "actor_email": self.actor_email,
            "actor_role": self.actor_role,
            "branch_id": self.branch_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "before": self.before,
            "after": self.after,
            "outcome": self.outcome,
            "reason": self.reason,
            "risk_level": self.risk_level,
            "flags": list(self.flags or []),
            "correlation_id": self.correlation_id,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
