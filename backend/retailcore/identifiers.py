# Overview: Canonical parsing for entity identifiers (branch, user, sale, product).

"""
Identifiers arrive from JSON bodies, query strings, token claims and CLI
arguments. They are all funneled through ``parse_id`` so that a comparison
between two ids is always a comparison between two positive ints.

Accepted shapes: a positive int, or a string of ASCII digits (surrounding
whitespace ignored). Everything else (bool, float, dict, "1e3", "-4", "")
is rejected.
"""

from __future__ import annotations

from typing import Any, Iterable

from .errors import ValidationError


def parse_id(value: Any, field: str = "id") -> int:
    """Parse a single identifier or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}", details={"field": field})

    if isinstance(value, int):
        if value <= 0:
            raise ValidationError(f"Invalid {field}", details={"field": field})
        return value

    if isinstance(value, str):
        stripped = value.strip()
        if stripped and stripped.isascii() and stripped.isdigit():
            parsed = int(stripped)
            if parsed > 0:
                return parsed

    raise ValidationError(f"Invalid {field}", details={"field": field})


def try_parse_id(value: Any) -> int | None:
    """Like parse_id but returns None instead of raising."""
    try:
        return parse_id(value)
    except ValidationError:
        return None


def parse_id_list(value: Any, field: str = "branch_id") -> list[int]:
    """
    Parse a list of identifiers.

    Accepts None (empty list), a single id, a comma-separated string,
    or an iterable of ids. Duplicates are dropped, order preserved.
    """
    if value is None:
        return []

    items: Iterable[Any]
    if isinstance(value, str):
        if not value.strip():
            return []
        items = [part for part in value.split(",")]
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = value
    else:
        items = [value]

    result: list[int] = []
    for item in items:
        parsed = parse_id(item, field)
        if parsed not in result:
            result.append(parsed)
    return result
