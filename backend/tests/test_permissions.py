"""
Permission evaluation tests.

Verifies:
- Wildcard and legacy colon-notation grants
- Admin always holds the full catalog
- Empty stored permissions fall back to the role default
- Role name normalization
"""

from types import SimpleNamespace

import pytest

from retailcore.permissions import (
    ALL_PERMISSIONS,
    BRANCH_SCOPED_ROLES,
    CROSS_BRANCH_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
    CanonicalRole,
    PermissionCategory,
    check_role_tables,
    default_permissions_for,
    effective_permissions,
    get_catalog_resources,
    get_permission_definition,
    get_permissions_by_category,
    has_all,
    has_any,
    has_permission,
    missing_permissions,
    normalize_permission,
    normalize_role,
    validate_permission_code,
)


def make_principal(role, permissions=None, branch_id=None):
    return SimpleNamespace(role=role, permissions=permissions or [], branch_id=branch_id)


# =============================================================================
# MATCHING
# =============================================================================


class TestHasPermission:

    @pytest.mark.parametrize("resource", get_catalog_resources())
    def test_resource_wildcard_matches_every_action(self, resource):
        actions = [code.split(".", 1)[1] for code in ALL_PERMISSIONS if code.startswith(resource + ".")]
        for action in actions + ["anything"]:
            assert has_permission({f"{resource}.*"}, f"{resource}.{action}")

    def test_wildcard_does_not_cross_resources(self):
        assert not has_permission({"sales.*"}, "products.read")

    def test_legacy_colon_notation(self):
        assert has_permission({"products:read"}, "products.read")
        assert has_permission({"products.read"}, "products:read")
        assert has_permission({"sales:*"}, "sales.refund")

    def test_exact_match_only(self):
        assert not has_permission({"sales.read"}, "sales.refund")

    @pytest.mark.parametrize("effective", [None, [], "", 42, {"": True}])
    def test_malformed_effective_set_is_false(self, effective):
        assert has_permission(effective, "sales.read") is False

    @pytest.mark.parametrize("required", [None, "", 5, ["sales.read"]])
    def test_malformed_requirement_is_false(self, required):
        assert has_permission({"sales.read"}, required) is False

    def test_has_any_and_all(self):
        grants = {"sales.read", "sales.create"}
        assert has_any(grants, ["sales.refund", "sales.read"])
        assert not has_any(grants, ["sales.refund"])
        assert has_all(grants, ["sales.read", "sales.create"])
        assert not has_all(grants, ["sales.read", "sales.refund"])

    def test_has_all_empty_requirement_is_met(self):
        assert has_all(set(), [])
        assert not has_any(set(), [])

    def test_missing_permissions_lists_unmet(self):
        assert missing_permissions({"sales:read"}, ["sales.read", "sales:refund"]) == ["sales.refund"]


class TestNormalizePermission:

    def test_colon_becomes_dot(self):
        assert normalize_permission("sales:read") == "sales.read"

    def test_dot_is_unchanged(self):
        assert normalize_permission(" sales.read ") == "sales.read"

    @pytest.mark.parametrize("value", [None, "", "   ", 3])
    def test_blank_or_non_string(self, value):
        assert normalize_permission(value) == ""


# =============================================================================
# EFFECTIVE PERMISSIONS
# =============================================================================


class TestEffectivePermissions:

    def test_admin_with_empty_list_gets_full_catalog(self):
        assert effective_permissions(make_principal("Admin")) == ALL_PERMISSIONS

    def test_admin_stored_list_is_ignored(self):
        principal = make_principal("admin", permissions=["sales.read"])
        assert effective_permissions(principal) == ALL_PERMISSIONS

    def test_store_manager_empty_list_gets_role_default(self):
        principal = make_principal("Store Manager", permissions=[])
        effective = effective_permissions(principal)
        assert effective == DEFAULT_ROLE_PERMISSIONS[CanonicalRole.STORE_MANAGER]
        assert effective

    def test_explicit_list_replaces_default(self):
        principal = make_principal("Cashier", permissions=["sales:read"])
        assert effective_permissions(principal) == frozenset({"sales.read"})

    def test_unknown_role_gets_nothing(self):
        assert effective_permissions(make_principal("Janitor")) == frozenset()

    def test_missing_principal_gets_nothing(self):
        assert effective_permissions(None) == frozenset()

    def test_cashier_cannot_refund_by_default(self):
        effective = effective_permissions(make_principal("cashier"))
        assert has_permission(effective, "sales.create")
        assert not has_permission(effective, "sales.refund")
        assert not has_permission(effective, "sales.update")


# =============================================================================
# ROLES
# =============================================================================


class TestRoles:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("admin", CanonicalRole.ADMIN),
            ("ADMIN", CanonicalRole.ADMIN),
            ("store_manager", CanonicalRole.STORE_MANAGER),
            ("Store-Manager", CanonicalRole.STORE_MANAGER),
            ("  store   manager ", CanonicalRole.STORE_MANAGER),
            ("manager", CanonicalRole.STORE_MANAGER),
            ("regional_manager", CanonicalRole.REGIONAL_MANAGER),
            ("inventory-manager", CanonicalRole.INVENTORY_MANAGER),
            ("Cashier", CanonicalRole.CASHIER),
            ("viewer", CanonicalRole.VIEWER),
        ],
    )
    def test_normalize_role(self, raw, expected):
        assert normalize_role(raw) == expected

    def test_unknown_role_passes_through(self):
        assert normalize_role("Janitor") == "Janitor"
        assert normalize_role(None) is None

    def test_role_tables_partition_roles(self):
        check_role_tables()
        assert BRANCH_SCOPED_ROLES.isdisjoint(CROSS_BRANCH_ROLES)
        assert BRANCH_SCOPED_ROLES | CROSS_BRANCH_ROLES == set(CanonicalRole.ALL)

    def test_defaults_come_from_catalog(self):
        for role in CanonicalRole.ALL:
            assert default_permissions_for(role) <= ALL_PERMISSIONS

    def test_default_lookup_accepts_aliases(self):
        assert default_permissions_for("store_manager") == DEFAULT_ROLE_PERMISSIONS[CanonicalRole.STORE_MANAGER]
        assert default_permissions_for("nobody") == frozenset()


# =============================================================================
# CATALOG
# =============================================================================


class TestCatalog:

    def test_codes_are_dot_notation(self):
        for code in ALL_PERMISSIONS:
            resource, _, action = code.partition(".")
            assert resource and action and ":" not in code

    def test_definition_lookup(self):
        definition = get_permission_definition("sales.refund")
        assert definition["category"] == PermissionCategory.SALES
        assert get_permission_definition("sales.nope") is None

    def test_permissions_by_category(self):
        codes = {perm[0] for perm in get_permissions_by_category(PermissionCategory.SALES)}
        assert {"sales.create", "sales.read", "sales.refund"} <= codes

    @pytest.mark.parametrize(
        "code,valid",
        [
            ("sales.read", True),
            ("sales.*", True),
            ("widgets.*", False),
            ("sales.fly", False),
            ("sales:read", False),
            (None, False),
        ],
    )
    def test_validate_permission_code(self, code, valid):
        assert validate_permission_code(code) is valid
