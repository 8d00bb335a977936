# Overview: Pure permission evaluation (effective grants, wildcard and legacy matching).

"""
All functions here are total: they never raise for absent or malformed
input and answer False instead. Converting a False into a 403 is the job of
the calling gate (see decorators.require_permission).
"""

from __future__ import annotations

from typing import Iterable

from .definitions import ALL_PERMISSIONS
from .roles import CanonicalRole, default_permissions_for, normalize_role


def normalize_permission(value) -> str:
    """
    Canonical dot-notation form of a grant.

    "products:read" -> "products.read", "sales:*" -> "sales.*".
    Non-strings and blanks normalize to "".
    """
    if not isinstance(value, str):
        return ""
    stripped = value.strip()
    if not stripped:
        return ""
    if "." not in stripped and ":" in stripped:
        resource, _, action = stripped.partition(":")
        return f"{resource}.{action}"
    return stripped


def _as_grant_set(permissions) -> frozenset[str]:
    if not permissions:
        return frozenset()
    if isinstance(permissions, str):
        permissions = [permissions]
    try:
        items = list(permissions)
    except TypeError:
        return frozenset()
    return frozenset(p for p in (normalize_permission(item) for item in items) if p)


def effective_permissions(principal) -> frozenset[str]:
    """
    Resolve the grant set used for authorization decisions.

    Admin -> full catalog, stored list ignored.
    Non-empty stored list -> that list (legacy notation normalized).
    Otherwise -> role default (empty for an unrecognized role).
    """
    role = normalize_role(getattr(principal, "role", None))
    if role == CanonicalRole.ADMIN:
        return ALL_PERMISSIONS

    explicit = _as_grant_set(getattr(principal, "permissions", None))
    if explicit:
        return explicit
    return default_permissions_for(role)


def has_permission(effective, required) -> bool:
    """Exact match, else a "<resource>.*" wildcard for the same resource."""
    needed = normalize_permission(required)
    if not needed:
        return False

    grants = _as_grant_set(effective)
    if needed in grants:
        return True

    resource, _, action = needed.partition(".")
    if not resource:
        return False
    return f"{resource}.*" in grants


def _as_required_list(required) -> list:
    if required is None:
        return []
    if isinstance(required, str):
        return [required]
    if isinstance(required, Iterable):
        return list(required)
    return [required]


def has_any(effective, required) -> bool:
    return any(has_permission(effective, item) for item in _as_required_list(required))


def has_all(effective, required) -> bool:
    """True when every requirement is met; an empty requirement list is met."""
    return all(has_permission(effective, item) for item in _as_required_list(required))


def missing_permissions(effective, required) -> list[str]:
    return [
        normalize_permission(item) or str(item)
        for item in _as_required_list(required)
        if not has_permission(effective, item)
    ]
