"""
Request-scoped identity and context.

Identity is what the identity provider vouches for; RequestContext adds the
roles derived from it plus request metadata used by the audit trail. A
context is built once per request by the identity middleware and passed
explicitly to every evaluator and service call.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from supplierflow.services.role_registry import Role, RoleRegistry


@dataclass(frozen=True)
class Identity:
    email: str
    display_name: str | None = None
    groups: frozenset[str] = field(default_factory=frozenset)
    oid: str | None = None

    @classmethod
    def from_claims(cls, claims: dict) -> "Identity | None":
        """Build an identity from verified token claims (Azure AD shape)."""
        email = (claims.get("preferred_username") or claims.get("email") or claims.get("upn") or "").strip()
        if not email:
            return None
        groups = claims.get("groups") or []
        if isinstance(groups, str):
            groups = [groups]
        return cls(
            email=email,
            display_name=claims.get("name"),
            groups=frozenset(str(g) for g in groups),
            oid=claims.get("oid"),
        )

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "displayName": self.display_name,
            "groups": sorted(self.groups),
        }


@dataclass(frozen=True)
class RequestContext:
    identity: Identity
    registry: RoleRegistry
    roles: frozenset[Role]
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None

    @classmethod
    def build(
        cls,
        identity: Identity,
        registry: RoleRegistry,
        ip_address: str | None = None,
        user_agent: str | None = None,
        request_id: str | None = None,
    ) -> "RequestContext":
        return cls(
            identity=identity,
            registry=registry,
            roles=registry.roles_of(identity.groups),
            ip_address=ip_address,
            user_agent=user_agent,
            request_id=request_id,
        )

    @property
    def email(self) -> str:
        return self.identity.email

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    def has_role(self, role) -> bool:
        return self.registry.has_role(self.identity.groups, role)
