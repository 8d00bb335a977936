"""
Branch isolation tests.

Verifies:
- Branch-scoped roles are pinned to their own branch (hard deny otherwise)
- Cross-branch roles may name any branches, or none for "all"
- Misconfigured principals and unknown roles are denied, never widened
- Identifier parsing is strict
"""

from types import SimpleNamespace

import pytest

from retailcore.errors import BranchRequiredError, ForbiddenError, ValidationError
from retailcore.identifiers import parse_id, parse_id_list, try_parse_id
from retailcore.models import Sale
from retailcore.services.branch_scope import (
    BranchResolution,
    assert_read_access,
    assert_write_access,
    build_branch_filter,
    resolve_accessible_branches,
)


def make_principal(role, branch_id=None):
    return SimpleNamespace(id=1, role=role, permissions=[], branch_id=branch_id)


# =============================================================================
# RESOLUTION
# =============================================================================


class TestResolveAccessibleBranches:

    @pytest.mark.parametrize("role", ["Cashier", "store_manager", "Inventory Manager"])
    @pytest.mark.parametrize("requested", [[2], "2", [1, 2], "1,2", 2])
    def test_scoped_role_denied_other_branch(self, role, requested):
        result = resolve_accessible_branches(make_principal(role, branch_id=1), requested)
        assert not result.ok
        assert isinstance(result.error, ForbiddenError)
        assert result.branch_ids is None

    @pytest.mark.parametrize("requested", [None, [], "", [1], "1", 1])
    def test_scoped_role_gets_own_branch(self, requested):
        result = resolve_accessible_branches(make_principal("Cashier", branch_id=1), requested)
        assert result.ok
        assert result.branch_ids == [1]
        assert not result.unrestricted

    def test_scoped_role_string_branch_on_principal(self):
        result = resolve_accessible_branches(make_principal("Cashier", branch_id="1"), [1])
        assert result.branch_ids == [1]

    def test_scoped_role_without_branch_is_denied(self):
        result = resolve_accessible_branches(make_principal("Cashier", branch_id=None))
        assert isinstance(result.error, BranchRequiredError)
        with pytest.raises(BranchRequiredError):
            result.unwrap()

    @pytest.mark.parametrize("role", ["Admin", "regional_manager", "viewer"])
    def test_cross_branch_role_unrestricted_without_request(self, role):
        result = resolve_accessible_branches(make_principal(role), None)
        assert result.ok
        assert result.unrestricted
        assert result.unwrap() is None

    def test_cross_branch_role_gets_requested_branches(self):
        result = resolve_accessible_branches(make_principal("Admin"), "3,1,3")
        assert result.branch_ids == [3, 1]

    def test_unknown_role_is_denied(self):
        result = resolve_accessible_branches(make_principal("Janitor", branch_id=1))
        assert isinstance(result.error, ForbiddenError)

    def test_malformed_branch_id_is_validation_error(self):
        result = resolve_accessible_branches(make_principal("Admin"), "1,abc")
        assert isinstance(result.error, ValidationError)

    def test_resolution_never_raises_for_missing_principal(self):
        result = resolve_accessible_branches(None, None)
        assert not result.ok


# =============================================================================
# SINGLE-RECORD CHECKS
# =============================================================================


class TestRecordAccess:

    def test_own_branch_readable_and_writable(self):
        cashier = make_principal("Cashier", branch_id=1)
        assert assert_read_access(1, cashier)
        assert assert_write_access("1", cashier)

    def test_foreign_branch_denied(self):
        cashier = make_principal("Cashier", branch_id=1)
        assert not assert_read_access(2, cashier)
        assert not assert_write_access(2, cashier)

    def test_cross_branch_role_allowed_everywhere(self):
        admin = make_principal("Admin")
        assert assert_read_access(7, admin)
        assert assert_write_access(7, admin)

    @pytest.mark.parametrize("branch_id", [None, "", "x", 0, -1, True])
    def test_invalid_record_branch_denied(self, branch_id):
        assert not assert_read_access(branch_id, make_principal("Admin"))

    def test_missing_principal_denied(self):
        assert not assert_write_access(1, None)


class TestBranchFilter:

    def test_unrestricted_is_none(self):
        assert build_branch_filter(Sale.branch_id, None) is None

    def test_restricted_is_in_clause(self):
        criterion = build_branch_filter(Sale.branch_id, [1, 2])
        assert "branch_id" in str(criterion)
        assert "IN" in str(criterion).upper()

    def test_resolution_defaults(self):
        assert BranchResolution().unrestricted


# =============================================================================
# IDENTIFIERS
# =============================================================================


class TestIdentifiers:

    @pytest.mark.parametrize("value,expected", [(1, 1), ("42", 42), (" 7 ", 7)])
    def test_accepted(self, value, expected):
        assert parse_id(value) == expected

    @pytest.mark.parametrize("value", [True, False, 0, -3, "0", "-4", "1e3", "", "abc", 1.0, None, {"id": 1}, "１"])
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            parse_id(value)
        assert try_parse_id(value) is None

    def test_parse_list_shapes(self):
        assert parse_id_list(None) == []
        assert parse_id_list("") == []
        assert parse_id_list(5) == [5]
        assert parse_id_list("1, 2,2") == [1, 2]
        assert parse_id_list([3, "3", 4]) == [3, 4]
