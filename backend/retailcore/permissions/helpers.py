# Overview: Utility functions for permission lookups and validation.

from .definitions import ALL_PERMISSIONS, PERMISSION_DEFINITIONS


def get_all_permission_codes():
    """Get list of all permission codes, in catalog order."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_permissions_by_category(category):
    """Get all permissions in a category."""
    return [perm for perm in PERMISSION_DEFINITIONS if perm[3] == category]


def get_permission_definition(code):
    """Get full definition for a permission code."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == code:
            return {
                "code": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None


def get_catalog_resources():
    """Resources that appear in the catalog ("sales", "products", ...)."""
    return sorted({code.split(".", 1)[0] for code in ALL_PERMISSIONS})


def validate_permission_code(code):
    """
    Check if a grant is storable on a user record.

    Accepts exact catalog codes and "<resource>.*" wildcards for
    resources that exist in the catalog.
    """
    if not isinstance(code, str):
        return False
    if code in ALL_PERMISSIONS:
        return True
    resource, _, action = code.partition(".")
    return action == "*" and resource in get_catalog_resources()
