# Overview: Canonical roles, role-name normalization and default role permissions.

"""
Role names reach the system in many spellings ("manager", "Store_Manager",
"store-manager"). This module is the only place that interprets them; every
other component calls ``normalize_role`` and compares against the
canonical constants below.
"""

from __future__ import annotations

from .definitions import ALL_PERMISSIONS


class CanonicalRole:
    ADMIN = "Admin"
    REGIONAL_MANAGER = "Regional Manager"
    STORE_MANAGER = "Store Manager"
    INVENTORY_MANAGER = "Inventory Manager"
    CASHIER = "Cashier"
    VIEWER = "Viewer"

    ALL = (ADMIN, REGIONAL_MANAGER, STORE_MANAGER, INVENTORY_MANAGER, CASHIER, VIEWER)


BRANCH_SCOPED_ROLES = frozenset({
    CanonicalRole.STORE_MANAGER,
    CanonicalRole.INVENTORY_MANAGER,
    CanonicalRole.CASHIER,
})

CROSS_BRANCH_ROLES = frozenset({
    CanonicalRole.ADMIN,
    CanonicalRole.REGIONAL_MANAGER,
    CanonicalRole.VIEWER,
})

_ROLE_ALIASES = {
    "admin": CanonicalRole.ADMIN,
    "regional manager": CanonicalRole.REGIONAL_MANAGER,
    "store manager": CanonicalRole.STORE_MANAGER,
    "manager": CanonicalRole.STORE_MANAGER,
    "inventory manager": CanonicalRole.INVENTORY_MANAGER,
    "cashier": CanonicalRole.CASHIER,
    "viewer": CanonicalRole.VIEWER,
    "auditor": CanonicalRole.VIEWER,
}


def normalize_role(value):
    """
    Map free-form role input to its canonical name.

    Case-insensitive; "_", "-" and runs of whitespace are equivalent.
    Unknown or empty input is returned unchanged so that callers can treat
    it as unrecognized.
    """
    if not value or not isinstance(value, str):
        return value
    key = " ".join(value.strip().lower().replace("_", " ").replace("-", " ").split())
    return _ROLE_ALIASES.get(key, value)


DEFAULT_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    CanonicalRole.ADMIN: ALL_PERMISSIONS,

    CanonicalRole.REGIONAL_MANAGER: frozenset({
        "users.read", "users.update",
        "products.create", "products.read", "products.update", "products.delete",
        "products.import", "products.export",
        "sales.create", "sales.read", "sales.update", "sales.refund",
        "inventory.create", "inventory.read", "inventory.update",
        "inventory.adjust", "inventory.transfer",
        "purchases.create", "purchases.read", "purchases.update",
        "purchases.approve", "purchases.receive",
        "invoices.read", "payments.read",
        "financial.reports", "financial.dashboard",
        "reports.read", "reports.export", "reports.analytics",
        "categories.read", "categories.update",
        "brands.read", "brands.update",
        "units.read",
        "suppliers.read", "suppliers.update",
        "customers.read", "customers.update", "customers.export",
        "branches.read",
        "audit.read",
        "dashboard.read", "dashboard.analytics",
        "profile.read", "profile.update",
    }),

    CanonicalRole.STORE_MANAGER: frozenset({
        "users.create", "users.read", "users.update",
        "products.create", "products.read", "products.update",
        "products.import", "products.export",
        "sales.create", "sales.read", "sales.update", "sales.refund",
        "inventory.create", "inventory.read", "inventory.update",
        "inventory.adjust", "inventory.transfer",
        "purchases.create", "purchases.read", "purchases.update",
        "purchases.approve", "purchases.receive",
        "invoices.create", "invoices.read", "invoices.update", "invoices.send",
        "payments.create", "payments.read",
        "financial.reports", "financial.dashboard",
        "reports.read", "reports.export", "reports.analytics",
        "categories.read", "brands.read", "units.read", "suppliers.read",
        "customers.create", "customers.read", "customers.update",
        "branches.read",
        "audit.read",
        "dashboard.read", "dashboard.analytics",
        "profile.read", "profile.update",
    }),

    CanonicalRole.INVENTORY_MANAGER: frozenset({
        "users.read",
        "products.create", "products.read", "products.update", "products.delete",
        "products.export", "products.import",
        # read only, for reconciliation
        "sales.read",
        "inventory.create", "inventory.read", "inventory.update",
        "inventory.delete", "inventory.adjust", "inventory.transfer",
        "purchases.create", "purchases.read", "purchases.receive",
        "invoices.read",
        "reports.read", "reports.export",
        "categories.read", "brands.read", "units.read", "suppliers.read",
        "customers.read", "customers.update",
        "branches.read",
        "dashboard.read",
        "profile.read", "profile.update",
    }),

    CanonicalRole.CASHIER: frozenset({
        "products.read",
        "sales.create", "sales.read",
        "categories.read", "brands.read",
        "dashboard.read",
        "profile.read", "profile.update",
    }),

    CanonicalRole.VIEWER: frozenset({
        "products.read",
        "sales.read",
        "inventory.read",
        "purchases.read",
        "invoices.read", "payments.read", "financial.reports",
        "reports.read", "reports.export",
        "categories.read", "brands.read", "units.read", "suppliers.read",
        "customers.read",
        "branches.read",
        "dashboard.read",
        "profile.read",
    }),
}


def default_permissions_for(role) -> frozenset[str]:
    """Default grant set for a role; empty for anything unrecognized."""
    return DEFAULT_ROLE_PERMISSIONS.get(normalize_role(role), frozenset())


def is_known_role(role) -> bool:
    return normalize_role(role) in CanonicalRole.ALL


def is_branch_scoped(role) -> bool:
    return normalize_role(role) in BRANCH_SCOPED_ROLES


def has_cross_branch_access(role) -> bool:
    return normalize_role(role) in CROSS_BRANCH_ROLES


def check_role_tables() -> None:
    """
    Raise RuntimeError if the role tables are inconsistent.

    Every canonical role must sit in exactly one of BRANCH_SCOPED_ROLES /
    CROSS_BRANCH_ROLES and have a default permission entry drawn from the
    catalog. Run at import time.
    """
    for role in CanonicalRole.ALL:
        scoped = role in BRANCH_SCOPED_ROLES
        cross = role in CROSS_BRANCH_ROLES
        if scoped == cross:
            raise RuntimeError(f"Role {role!r} must be exactly one of branch-scoped or cross-branch")
        if role not in DEFAULT_ROLE_PERMISSIONS:
            raise RuntimeError(f"Role {role!r} has no default permissions")
        unknown = DEFAULT_ROLE_PERMISSIONS[role] - ALL_PERMISSIONS
        if unknown:
            raise RuntimeError(f"Role {role!r} grants unknown permissions: {sorted(unknown)}")

    extra = (BRANCH_SCOPED_ROLES | CROSS_BRANCH_ROLES | set(DEFAULT_ROLE_PERMISSIONS)) - set(CanonicalRole.ALL)
    if extra:
        raise RuntimeError(f"Unknown roles in role tables: {sorted(extra)}")


check_role_tables()
