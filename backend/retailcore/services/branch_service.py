from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch
from ..models.tenancy import BRANCH_CODE_PATTERN
from . import audit_service
from .concurrency import lock_for_update, run_with_retry


def create_branch(name: str, code: str, tax_rate_bps: int = 1800) -> Branch:
    if not name or not name.strip():
        raise ValidationError("Branch name is required", details={"field": "name"})

    normalized_code = (code or "").strip().upper()
    if not BRANCH_CODE_PATTERN.match(normalized_code):
        raise ValidationError(
            "Branch code must be 2-10 uppercase letters or digits",
            details={"field": "code"},
        )

    if isinstance(tax_rate_bps, bool) or not isinstance(tax_rate_bps, int) or not 0 <= tax_rate_bps <= 10000:
        raise ValidationError("tax_rate_bps must be an integer between 0 and 10000", details={"field": "tax_rate_bps"})

    def _op():
        if db.session.query(Branch).filter_by(code=normalized_code).first():
            raise ConflictError("Branch code already exists")

        branch = Branch(name=name.strip(), code=normalized_code, tax_rate_bps=tax_rate_bps)
        db.session.add(branch)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError("Branch code already exists") from exc
        return branch

    branch = run_with_retry(_op)
    audit_service.record_event(
        "branch.create",
        resource_type="branch",
        resource_id=branch.id,
        branch_id=branch.id,
        after=branch.to_dict(),
    )
    return branch


def get_branch(branch_id: int) -> Branch | None:
    return db.session.get(Branch, branch_id)


def list_branches(branch_ids: list[int] | None = None, include_inactive: bool = False) -> list[Branch]:
    query = db.session.query(Branch)
    if branch_ids is not None:
        query = query.filter(Branch.id.in_(branch_ids))
    if not include_inactive:
        query = query.filter(Branch.is_active.is_(True))
    return query.order_by(Branch.code).all()


def set_branch_active(branch_id: int, is_active: bool, actor=None) -> Branch:
    """Deactivated branches accept no new sales or branch-scoped users."""
    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch:
            raise NotFoundError("Branch not found")
        branch.is_active = bool(is_active)
        db.session.commit()
        return branch

    branch = run_with_retry(_op)
    audit_service.record_event(
        "branch.activate" if is_active else "branch.deactivate",
        principal=actor,
        resource_type="branch",
        resource_id=branch.id,
        branch_id=branch.id,
    )
    return branch
