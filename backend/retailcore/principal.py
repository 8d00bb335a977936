# Overview: The authenticated actor for one request.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .permissions import normalize_role


@dataclass(frozen=True)
class Principal:
    """
    Immutable snapshot of a user row, built once per request.

    Built from the persisted record rather than token claims, so role,
    permission and branch changes apply on the next request.
    """
    id: int
    email: str
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)
    branch_id: int | None = None
    is_active: bool = True
    lock_until: datetime | None = None

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(
            id=user.id,
            email=user.email,
            role=normalize_role(user.role),
            permissions=frozenset(user.permissions or ()),
            branch_id=user.branch_id,
            is_active=bool(user.is_active),
            lock_until=user.lock_until,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "permissions": sorted(self.permissions),
            "branch_id": self.branch_id,
        }
