# app/core/rbac.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Set
from uuid import UUID

from app.core.errors import Forbidden


class Role:
    ADMIN = "admin"
    CLIENT = "client"
    SYSTEM = "system"


# Roles stay stringly-typed: they arrive as the X-Role header value.
ALLOW: Mapping[str, Set[str]] = {
    # ---- Projects ----
    "project.create": {Role.ADMIN},
    "project.read": {Role.ADMIN, Role.CLIENT},

    # ---- Deliverables ----
    "deliverable.create": {Role.ADMIN},
    "deliverable.update": {Role.ADMIN},
    "deliverable.send": {Role.ADMIN},
    "deliverable.delete": {Role.ADMIN},
    "deliverable.read": {Role.ADMIN, Role.CLIENT},
    "deliverable.download": {Role.ADMIN, Role.CLIENT},

    # ---- Integrity scanner ----
    "integrity.scan": {Role.ADMIN, Role.SYSTEM},
    "integrity.repair": {Role.ADMIN, Role.SYSTEM},
    "integrity.orphans": {Role.ADMIN, Role.SYSTEM},

    # ---- Notifications ----
    "notification.read": {Role.ADMIN, Role.CLIENT},
}


def ensure_allowed(permission: str, role: str) -> None:
    allowed = ALLOW.get(permission, set())
    if role not in allowed:
        raise Forbidden(f"Role '{role}' is not allowed for '{permission}'")


def is_admin(role: str) -> bool:
    return role == Role.ADMIN


@dataclass(frozen=True)
class ActorContext:
    """Who is calling. Passed explicitly into every service operation."""

    actor_user_id: UUID
    role: str

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)
