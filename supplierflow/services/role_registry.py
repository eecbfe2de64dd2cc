"""
Role Registry — logical roles derived from identity-provider groups.

Roles are never stored on the identity; they are computed per request from
the raw group memberships the IdP vouches for.

Evaluation is a single set-intersection test per role and is deny-by-default:
  - the admin group is folded into every role's allowed-group set when the
    registry is built, so ADMIN implies every other role without ad-hoc checks
  - a role name that is unknown or has no configured groups resolves to an
    empty allowed set and never matches

Usage:
    registry = RoleRegistry.from_config(app.config)
    registry.has_role({"NHS-SupplierForm-OPW"}, Role.OPW)   # True
    registry.roles_of(identity.groups)                       # frozenset[Role]
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    """Logical permission categories."""

    REQUESTER = "requester"
    PBP = "pbp"
    PROCUREMENT = "procurement"
    OPW = "opw"
    CONTRACT = "contract"
    AP_CONTROL = "ap_control"
    ADMIN = "admin"


def parse_role(value) -> Role | None:
    """Return the Role for *value* (Role or string), or None if unknown."""
    if isinstance(value, Role):
        return value
    if not value:
        return None
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        return None


class RoleRegistry:
    """Immutable role → allowed-groups table."""

    def __init__(self, role_groups: Mapping[str, Iterable[str]], admin_group: str | None) -> None:
        table: dict[Role, frozenset[str]] = {}
        for name, groups in (role_groups or {}).items():
            role = parse_role(name)
            if role is None:
                logger.warning("Ignoring unknown role '%s' in ROLE_GROUPS", name)
                continue
            table[role] = frozenset(g for g in groups if g)

        admin = frozenset({admin_group}) if admin_group else frozenset()
        if not admin:
            logger.warning("ADMIN_GROUP is not configured; no identity will hold the admin role")
        for role in Role:
            table[role] = table.get(role, frozenset()) | admin

        self._table = table
        self.admin_group = admin_group

    @classmethod
    def from_config(cls, config: Mapping) -> "RoleRegistry":
        return cls(config.get("ROLE_GROUPS") or {}, config.get("ADMIN_GROUP"))

    def allowed_groups(self, role) -> frozenset[str]:
        resolved = parse_role(role)
        if resolved is None:
            return frozenset()
        return self._table.get(resolved, frozenset())

    def has_role(self, groups: Iterable[str], role) -> bool:
        allowed = self.allowed_groups(role)
        if not allowed:
            return False
        return not allowed.isdisjoint(groups or ())

    def is_admin(self, groups: Iterable[str]) -> bool:
        return self.has_role(groups, Role.ADMIN)

    def roles_of(self, groups: Iterable[str]) -> frozenset[Role]:
        group_set = frozenset(groups or ())
        return frozenset(role for role in Role if self.has_role(group_set, role))

    def to_dict(self) -> dict:
        """Rule table for the advisory client guard."""
        return {role.value: sorted(groups) for role, groups in self._table.items()}


def get_role_registry() -> RoleRegistry:
    """Return the registry built for the current Flask app."""
    from flask import current_app

    return current_app.extensions["role_registry"]
