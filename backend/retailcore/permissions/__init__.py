# Overview: Permission system package.
# Re-exports the catalog, role tables and evaluator.

from .categories import PermissionCategory
from .definitions import (
    ALL_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    USER_PERMISSIONS,
    PRODUCT_PERMISSIONS,
    SALES_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    PURCHASE_PERMISSIONS,
    INVOICE_PERMISSIONS,
    PAYMENT_PERMISSIONS,
    FINANCIAL_PERMISSIONS,
    REPORT_PERMISSIONS,
    DASHBOARD_PERMISSIONS,
    MASTER_DATA_PERMISSIONS,
    CUSTOMER_PERMISSIONS,
    BRANCH_PERMISSIONS,
    SECURITY_PERMISSIONS,
    PROFILE_PERMISSIONS,
)
from .roles import (
    CanonicalRole,
    BRANCH_SCOPED_ROLES,
    CROSS_BRANCH_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
    normalize_role,
    default_permissions_for,
    is_known_role,
    is_branch_scoped,
    has_cross_branch_access,
    check_role_tables,
)
from .evaluator import (
    normalize_permission,
    effective_permissions,
    has_permission,
    has_any,
    has_all,
    missing_permissions,
)
from .helpers import (
    get_all_permission_codes,
    get_catalog_resources,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "ALL_PERMISSIONS",
    "PERMISSION_DEFINITIONS",
    "USER_PERMISSIONS",
    "PRODUCT_PERMISSIONS",
    "SALES_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "PURCHASE_PERMISSIONS",
    "INVOICE_PERMISSIONS",
    "PAYMENT_PERMISSIONS",
    "FINANCIAL_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "DASHBOARD_PERMISSIONS",
    "MASTER_DATA_PERMISSIONS",
    "CUSTOMER_PERMISSIONS",
    "BRANCH_PERMISSIONS",
    "SECURITY_PERMISSIONS",
    "PROFILE_PERMISSIONS",
    "CanonicalRole",
    "BRANCH_SCOPED_ROLES",
    "CROSS_BRANCH_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "normalize_role",
    "default_permissions_for",
    "is_known_role",
    "is_branch_scoped",
    "has_cross_branch_access",
    "check_role_tables",
    "normalize_permission",
    "effective_permissions",
    "has_permission",
    "has_any",
    "has_all",
    "missing_permissions",
    "get_all_permission_codes",
    "get_catalog_resources",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
]
