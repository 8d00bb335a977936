# Overview: All permission definitions organized by resource.
# Each permission is defined as: (code, name, description, category)
# Codes use dot-notation: "<resource>.<action>".

from .categories import PermissionCategory


# -- USERS --

USER_PERMISSIONS = [
    ("users.create", "Create Users", "Create user accounts", PermissionCategory.USERS),
    ("users.read", "View Users", "View user accounts", PermissionCategory.USERS),
    ("users.update", "Update Users", "Edit user role, permissions and branch", PermissionCategory.USERS),
    ("users.delete", "Delete Users", "Deactivate user accounts", PermissionCategory.USERS),
]


# -- PRODUCTS --

PRODUCT_PERMISSIONS = [
    ("products.create", "Create Products", "Create catalog products", PermissionCategory.CATALOG),
    ("products.read", "View Products", "View products and stock levels", PermissionCategory.CATALOG),
    ("products.update", "Update Products", "Edit products and prices", PermissionCategory.CATALOG),
    ("products.delete", "Delete Products", "Deactivate products", PermissionCategory.CATALOG),
    ("products.import", "Import Products", "Bulk import products", PermissionCategory.CATALOG),
    ("products.export", "Export Products", "Export the product catalog", PermissionCategory.CATALOG),
]


# -- SALES --

SALES_PERMISSIONS = [
    ("sales.create", "Create Sale", "Ring up sales and take payments", PermissionCategory.SALES),
    ("sales.read", "View Sales", "View sale documents", PermissionCategory.SALES),
    ("sales.update", "Update Sales", "Cancel pending sales", PermissionCategory.SALES),
    ("sales.delete", "Delete Sales", "Remove draft sales", PermissionCategory.SALES),
    ("sales.refund", "Refund Sales", "Refund completed sales", PermissionCategory.SALES),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    ("inventory.create", "Create Inventory", "Create branch stock records", PermissionCategory.INVENTORY),
    ("inventory.read", "View Inventory", "View branch stock quantities", PermissionCategory.INVENTORY),
    ("inventory.update", "Update Inventory", "Receive stock and edit reorder levels", PermissionCategory.INVENTORY),
    ("inventory.delete", "Delete Inventory", "Remove branch stock records", PermissionCategory.INVENTORY),
    ("inventory.adjust", "Adjust Inventory", "Post stock corrections", PermissionCategory.INVENTORY),
    ("inventory.transfer", "Transfer Inventory", "Move stock between branches", PermissionCategory.INVENTORY),
]


# -- PURCHASES --

PURCHASE_PERMISSIONS = [
    ("purchases.create", "Create Purchases", "Create purchase orders", PermissionCategory.PURCHASING),
    ("purchases.read", "View Purchases", "View purchase orders", PermissionCategory.PURCHASING),
    ("purchases.update", "Update Purchases", "Edit purchase orders", PermissionCategory.PURCHASING),
    ("purchases.delete", "Delete Purchases", "Delete purchase orders", PermissionCategory.PURCHASING),
    ("purchases.approve", "Approve Purchases", "Approve purchase orders", PermissionCategory.PURCHASING),
    ("purchases.receive", "Receive Purchases", "Receive goods against purchase orders", PermissionCategory.PURCHASING),
]


# -- FINANCE --

INVOICE_PERMISSIONS = [
    ("invoices.create", "Create Invoices", "Create invoices", PermissionCategory.FINANCE),
    ("invoices.read", "View Invoices", "View invoices", PermissionCategory.FINANCE),
    ("invoices.update", "Update Invoices", "Edit invoices", PermissionCategory.FINANCE),
    ("invoices.delete", "Delete Invoices", "Delete draft invoices", PermissionCategory.FINANCE),
    ("invoices.void", "Void Invoices", "Void issued invoices", PermissionCategory.FINANCE),
    ("invoices.send", "Send Invoices", "Send invoices to customers", PermissionCategory.FINANCE),
]

PAYMENT_PERMISSIONS = [
    ("payments.create", "Record Payments", "Record payments", PermissionCategory.FINANCE),
    ("payments.read", "View Payments", "View payments", PermissionCategory.FINANCE),
    ("payments.update", "Update Payments", "Edit payments", PermissionCategory.FINANCE),
    ("payments.void", "Void Payments", "Void payments", PermissionCategory.FINANCE),
]

FINANCIAL_PERMISSIONS = [
    ("financial.reports", "Financial Reports", "View financial reports", PermissionCategory.FINANCE),
    ("financial.dashboard", "Financial Dashboard", "View the financial dashboard", PermissionCategory.FINANCE),
]


# -- REPORTING --

REPORT_PERMISSIONS = [
    ("reports.read", "View Reports", "View operational reports", PermissionCategory.REPORTING),
    ("reports.export", "Export Reports", "Export reports", PermissionCategory.REPORTING),
    ("reports.analytics", "Report Analytics", "View analytics reports", PermissionCategory.REPORTING),
]

DASHBOARD_PERMISSIONS = [
    ("dashboard.read", "View Dashboard", "View the dashboard", PermissionCategory.REPORTING),
    ("dashboard.analytics", "Dashboard Analytics", "View dashboard analytics", PermissionCategory.REPORTING),
]


# -- MASTER DATA --

def _crud(resource: str, label: str, category: str) -> list[tuple[str, str, str, str]]:
    return [
        (f"{resource}.create", f"Create {label}", f"Create {label.lower()}", category),
        (f"{resource}.read", f"View {label}", f"View {label.lower()}", category),
        (f"{resource}.update", f"Update {label}", f"Edit {label.lower()}", category),
        (f"{resource}.delete", f"Delete {label}", f"Delete {label.lower()}", category),
    ]


MASTER_DATA_PERMISSIONS = (
    _crud("categories", "Categories", PermissionCategory.MASTER_DATA)
    + _crud("brands", "Brands", PermissionCategory.MASTER_DATA)
    + _crud("units", "Units", PermissionCategory.MASTER_DATA)
    + _crud("suppliers", "Suppliers", PermissionCategory.MASTER_DATA)
)

CUSTOMER_PERMISSIONS = _crud("customers", "Customers", PermissionCategory.CUSTOMERS) + [
    ("customers.export", "Export Customers", "Export customer records", PermissionCategory.CUSTOMERS),
]

BRANCH_PERMISSIONS = _crud("branches", "Branches", PermissionCategory.BRANCHES)


# -- SECURITY --

SECURITY_PERMISSIONS = [
    ("audit.read", "View Audit Log", "View the audit trail", PermissionCategory.SECURITY),
    ("security.dashboard", "Security Dashboard", "View the security dashboard", PermissionCategory.SECURITY),
    ("security.sessions", "Manage Sessions", "Revoke user sessions", PermissionCategory.SECURITY),
]


# -- PROFILE --

PROFILE_PERMISSIONS = [
    ("profile.read", "View Profile", "View own profile", PermissionCategory.PROFILE),
    ("profile.update", "Update Profile", "Edit own profile", PermissionCategory.PROFILE),
]


PERMISSION_DEFINITIONS = (
    USER_PERMISSIONS
    + PRODUCT_PERMISSIONS
    + SALES_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + PURCHASE_PERMISSIONS
    + INVOICE_PERMISSIONS
    + PAYMENT_PERMISSIONS
    + FINANCIAL_PERMISSIONS
    + REPORT_PERMISSIONS
    + DASHBOARD_PERMISSIONS
    + MASTER_DATA_PERMISSIONS
    + CUSTOMER_PERMISSIONS
    + BRANCH_PERMISSIONS
    + SECURITY_PERMISSIONS
    + PROFILE_PERMISSIONS
)

ALL_PERMISSIONS = frozenset(perm[0] for perm in PERMISSION_DEFINITIONS)
