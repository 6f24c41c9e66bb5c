"""Actor model and permission checks for the tax declaration core.

Authentication happens upstream; the core only receives an already verified
``Actor`` and evaluates permissions against it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from smartretail.core.audit import log_denied
from smartretail.core.exceptions import ForbiddenError

MANAGER_ROLES = frozenset({"manager", "owner"})

TAX_PERMISSIONS = frozenset(
    {
        "tax:preview",
        "tax:create",
        "tax:update",
        "tax:clone",
        "tax:delete",
        "tax:list",
        "tax:export",
    }
)


@dataclass(frozen=True)
class Actor:
    id: int
    role: str = "staff"
    permissions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_values(cls, actor_id: int, role: str | None, permissions: Iterable[str] | None) -> Actor:
        perms = frozenset(p.strip().lower() for p in (permissions or ()) if p and p.strip())
        return cls(id=actor_id, role=(role or "staff").strip().lower(), permissions=perms)

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def has_permission(self, permission: str) -> bool:
        # Managers hold every tax permission implicitly
        if self.is_manager and permission in TAX_PERMISSIONS:
            return True
        return permission in self.permissions


def require_permission(actor: Actor, permission: str) -> Actor:
    if not actor.has_permission(permission):
        log_denied(permission, user_id=actor.id, reason="missing_permission")
        raise ForbiddenError(permission, reason="missing permission")
    return actor


def require_manager(actor: Actor, action: str) -> Actor:
    if not actor.is_manager:
        log_denied(action, user_id=actor.id, reason="manager_only")
        raise ForbiddenError(action, reason="managers only")
    return actor


def require_creator_or_manager(actor: Actor, created_by: int | None, action: str) -> Actor:
    if actor.is_manager or (created_by is not None and created_by == actor.id):
        return actor
    log_denied(action, user_id=actor.id, reason="not_creator")
    raise ForbiddenError(action, reason="only the creator or a manager may do this")
