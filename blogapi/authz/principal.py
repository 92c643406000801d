from __future__ import annotations

from dataclasses import dataclass, field

from blogapi.authz.registry import PermissionRegistry


@dataclass(frozen=True)
class Principal:
    """An authenticated caller and the roles it holds right now."""

    id: int
    roles: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(id=user.id, roles=frozenset(role.name for role in user.roles))

    def effective_permissions(self, registry: PermissionRegistry) -> frozenset[str]:
        # recomputed on every call; never memoised across role changes
        permissions: set[str] = set()
        for role in self.roles:
            permissions |= registry.permissions_for(role)
        return frozenset(permissions)

    def bypass_permissions(self, registry: PermissionRegistry) -> frozenset[str]:
        permissions: set[str] = set()
        for role in self.roles:
            if registry.is_bypass(role):
                permissions |= registry.permissions_for(role)
        return frozenset(permissions)

    def holds_bypass_role(self, registry: PermissionRegistry) -> bool:
        return any(registry.is_bypass(role) for role in self.roles)
