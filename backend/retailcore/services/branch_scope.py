# Overview: Branch-scope resolution; the multi-branch isolation boundary.

"""
Branch Scope

Every read and write of branch-owned rows (sales, stock) passes through
this module. Rules:

- Cross-branch roles (Admin, Regional Manager, Viewer) may name any set of
  branches, or none for "no restriction".
- Branch-scoped roles (Store Manager, Inventory Manager, Cashier) are
  pinned to their own branch. Naming any other branch is a hard deny, not
  a silent narrowing.
- A branch-scoped principal with no branch is a configuration fault and
  is denied (BranchRequiredError).
- Unknown roles and unparsable ids are denied.

Nothing here raises for a negative outcome: resolution returns a
BranchResolution and the single-branch checks return bools.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..errors import BranchRequiredError, DomainError, ForbiddenError, ValidationError
from ..identifiers import parse_id_list, try_parse_id
from ..permissions import has_cross_branch_access, is_branch_scoped


@dataclass(frozen=True)
class BranchResolution:
    """
    Outcome of resolve_accessible_branches.

    branch_ids is None when the caller may see every branch.
    """
    branch_ids: list[int] | None = None
    error: DomainError | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def unrestricted(self) -> bool:
        return self.ok and self.branch_ids is None

    def unwrap(self) -> list[int] | None:
        if self.error is not None:
            raise self.error
        return self.branch_ids


def resolve_accessible_branches(principal, requested: Any = None) -> BranchResolution:
    """Resolve the branches ``principal`` may touch for this request."""
    try:
        requested_ids = parse_id_list(requested, "branch_id")
    except ValidationError as exc:
        return BranchResolution(error=exc)

    role = getattr(principal, "role", None)

    if has_cross_branch_access(role):
        return BranchResolution(branch_ids=requested_ids or None)

    if not is_branch_scoped(role):
        return BranchResolution(error=ForbiddenError("Role has no branch access"))

    own_branch = try_parse_id(getattr(principal, "branch_id", None))
    if own_branch is None:
        return BranchResolution(error=BranchRequiredError("Branch assignment required"))

    if any(branch_id != own_branch for branch_id in requested_ids):
        return BranchResolution(error=ForbiddenError(
            "Cannot access other branches",
            details={"requested": requested_ids},
        ))

    return BranchResolution(branch_ids=[own_branch])


def _has_branch_access(branch_id: Any, principal) -> bool:
    target = try_parse_id(branch_id)
    if target is None or principal is None:
        return False

    role = getattr(principal, "role", None)
    if has_cross_branch_access(role):
        return True
    if not is_branch_scoped(role):
        return False

    own_branch = try_parse_id(getattr(principal, "branch_id", None))
    return own_branch is not None and own_branch == target


def assert_read_access(branch_id: Any, principal) -> bool:
    """True if ``principal`` may read a record owned by ``branch_id``."""
    return _has_branch_access(branch_id, principal)


def assert_write_access(branch_id: Any, principal) -> bool:
    """True if ``principal`` may mutate a record owned by ``branch_id``."""
    return _has_branch_access(branch_id, principal)


def build_branch_filter(column, branch_ids: list[int] | None):
    """
    SQLAlchemy criterion restricting ``column`` to ``branch_ids``.

    Returns None for "no restriction". An empty list yields a criterion
    that matches nothing.
    """
    if branch_ids is None:
        return None
    return column.in_(list(branch_ids))
