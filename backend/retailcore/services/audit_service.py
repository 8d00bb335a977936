# Overview: Best-effort audit trail; pluggable sink, secret redaction, risk classification.

"""
Audit Service

WHY: Every mutating action and every denial must be attributable. The
audit trail is observability, not a participant in the business
transaction: records are written after the business commit (or after the
rollback, for failures), and a failing sink is logged and ignored.

The sink is looked up in ``app.extensions["audit_sink"]``; anything with a
``write(record: dict) -> None`` method can stand in for the default
database sink.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Protocol

from flask import current_app, g, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditRecord
from ..permissions import CanonicalRole, normalize_role
from ..time_utils import utcnow

REDACTED = "[REDACTED]"
SENSITIVE_KEY_PARTS = ("password", "token", "secret", "key")

SENSITIVE_ACTIONS = {
    "user.create",
    "user.access_update",
    "user.deactivate",
    "user.unlock",
    "user.password_change",
    "auth.logout_everywhere",
}
FINANCIAL_ACTIONS = {
    "sale.create",
    "sale.payment",
    "sale.refund",
    "sale.refund_amount",
    "sale.cancel",
}
HIGH_RISK_ACTIONS = {
    "auth.lockout",
    "auth.refresh_replay",
    "user.access_update",
}
CRITICAL_ACTIONS = {
    "branch.deactivate",
    "user.delete",
}
# Failure kinds that are always worth a second look
HIGH_RISK_FAILURES = {"forbidden", "branch_required", "internal_error"}

RISK_ORDER = ("low", "medium", "high", "critical")


class AuditSink(Protocol):
    def write(self, record: dict) -> None:
        ...


class DatabaseAuditSink:
    """Append the record to the audit_records table in its own commit."""

    def write(self, record: dict) -> None:
        try:
            db.session.add(AuditRecord(**record))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise


def get_audit_sink() -> AuditSink:
    sink = current_app.extensions.get("audit_sink")
    if sink is None:
        sink = DatabaseAuditSink()
        current_app.extensions["audit_sink"] = sink
    return sink


def get_correlation_id() -> str:
    """Request correlation id (X-Request-ID or generated), or a fresh one outside requests."""
    if has_request_context():
        correlation_id = getattr(g, "correlation_id", None)
        if not correlation_id:
            correlation_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
            g.correlation_id = correlation_id
        return correlation_id
    return uuid.uuid4().hex


def _is_sensitive_key(key: Any) -> bool:
    lowered = str(key).lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def sanitize(value: Any) -> Any:
    """Deep-copy ``value`` with secret-looking keys replaced by [REDACTED]."""
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_sensitive_key(key) else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    return value


def _raise_to(level: str, floor: str) -> str:
    return level if RISK_ORDER.index(level) >= RISK_ORDER.index(floor) else floor


def classify_risk(
    action: str,
    *,
    outcome: str = "success",
    actor_role: str | None = None,
    error_code: str | None = None,
    occurred_at: datetime | None = None,
) -> tuple[str, list[str]]:
    """Return (risk_level, flags) for an audit record."""
    flags: list[str] = []
    level = "low"

    if action in SENSITIVE_ACTIONS:
        flags.append("sensitive_data")
        level = _raise_to(level, "medium")

    if action in FINANCIAL_ACTIONS:
        flags.append("financial_action")
        level = _raise_to(level, "medium")

    if normalize_role(actor_role) == CanonicalRole.ADMIN:
        flags.append("admin_action")
        level = _raise_to(level, "medium")

    if occurred_at is not None and (occurred_at.hour < 6 or occurred_at.hour >= 22):
        flags.append("after_hours")
        level = _raise_to(level, "medium")

    if outcome == "failure":
        level = _raise_to(level, "medium")
        if error_code in HIGH_RISK_FAILURES:
            level = _raise_to(level, "high")

    if action in HIGH_RISK_ACTIONS:
        level = _raise_to(level, "high")

    if action in CRITICAL_ACTIONS:
        level = "critical"

    return level, flags


def build_record(
    action: str,
    *,
    principal=None,
    actor_user_id: int | None = None,
    actor_email: str | None = None,
    resource_type: str | None = None,
    resource_id: Any = None,
    branch_id: int | None = None,
    before: dict | None = None,
    after: dict | None = None,
    outcome: str = "success",
    reason: str | None = None,
    error_code: str | None = None,
) -> dict:
    occurred_at = utcnow()
    actor_role = principal.role if principal is not None else None
    risk_level, flags = classify_risk(
        action,
        outcome=outcome,
        actor_role=actor_role,
        error_code=error_code,
        occurred_at=occurred_at,
    )

    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    return {
        "actor_user_id": principal.id if principal is not None else actor_user_id,
        "actor_email": principal.email if principal is not None else actor_email,
        "actor_role": actor_role,
        "branch_id": branch_id if branch_id is not None else getattr(principal, "branch_id", None),
        "action": action,
        "resource_type": resource_type,
        "resource_id": str(resource_id) if resource_id is not None else None,
        "before": sanitize(before) if before is not None else None,
        "after": sanitize(after) if after is not None else None,
        "outcome": outcome,
        "reason": reason,
        "risk_level": risk_level,
        "flags": flags,
        "correlation_id": get_correlation_id(),
        "ip_address": ip_address,
        "user_agent": user_agent,
        "occurred_at": occurred_at,
    }


def record_event(action: str, **kwargs) -> None:
    """
    Build and write one audit record. Never raises.

    Sink failures are logged with the correlation id and dropped; the
    caller's business outcome is already decided.
    """
    record = None
    try:
        record = build_record(action, **kwargs)
        get_audit_sink().write(record)
    except Exception:
        current_app.logger.exception(
            "Failed to write audit record action=%s correlation_id=%s",
            action,
            record.get("correlation_id") if record else None,
        )


def record_failure(action: str, error, **kwargs) -> None:
    """Audit a DomainError outcome (denials and internal failures)."""
    record_event(
        action,
        outcome="failure",
        reason=getattr(error, "message", None) or str(error),
        error_code=getattr(error, "audit_code", None) or getattr(error, "code", None),
        **kwargs,
    )
