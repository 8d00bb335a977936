# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    USERS = "USERS"
    CATALOG = "CATALOG"
    SALES = "SALES"
    INVENTORY = "INVENTORY"
    PURCHASING = "PURCHASING"
    FINANCE = "FINANCE"
    REPORTING = "REPORTING"
    MASTER_DATA = "MASTER_DATA"
    CUSTOMERS = "CUSTOMERS"
    BRANCHES = "BRANCHES"
    SECURITY = "SECURITY"
    PROFILE = "PROFILE"
