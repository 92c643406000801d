"""Permission vocabulary and the in-memory role → permission registry."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def verb(self) -> str:
        # permissions name the view action "read"
        return "read" if self is Action.VIEW else self.value


RESOURCE_TYPES: frozenset[str] = frozenset({"posts", "comments", "users", "roles", "stats"})

# resource types whose instances may be viewed without a principal when public
PUBLICLY_READABLE: frozenset[str] = frozenset({"posts", "comments", "roles"})


class UnknownPermission(LookupError):
    """An action or resource type outside the registered vocabulary."""


@dataclass(frozen=True)
class PermissionDefinition:
    name: str
    description: str


@dataclass(frozen=True)
class RoleDefinition:
    """A role as seen by the rest of the system: immutable snapshot."""

    name: str
    description: str
    permissions: frozenset[str]


def _crud(resource_type: str, label: str) -> tuple[PermissionDefinition, ...]:
    return tuple(
        PermissionDefinition(name=f"{verb}_{resource_type}", description=f"{verb.capitalize()} {label}")
        for verb in ("create", "read", "update", "delete")
    )


PERMISSIONS: tuple[PermissionDefinition, ...] = (
    *_crud("posts", "posts"),
    *_crud("comments", "comments"),
    *_crud("users", "users"),
    *_crud("roles", "roles"),
    PermissionDefinition(name="read_stats", description="Read statistics"),
)

PERMISSION_NAMES: frozenset[str] = frozenset(p.name for p in PERMISSIONS)

_POSTS_AND_COMMENTS = (
    "create_posts", "read_posts", "update_posts", "delete_posts",
    "create_comments", "read_comments", "update_comments", "delete_comments",
)

SYSTEM_ROLES: tuple[RoleDefinition, ...] = (
    RoleDefinition(
        name="admin",
        description="Administrator with full access",
        permissions=PERMISSION_NAMES,
    ),
    RoleDefinition(
        name="editor",
        description="Editor can manage posts and comments",
        permissions=frozenset(_POSTS_AND_COMMENTS + ("read_roles", "read_stats")),
    ),
    RoleDefinition(
        name="author",
        description="Author can manage only their own posts and comments",
        permissions=frozenset(_POSTS_AND_COMMENTS + ("read_roles", "read_stats")),
    ),
    RoleDefinition(
        name="viewer",
        description="Viewer can only read posts and comments",
        permissions=frozenset({"read_posts", "read_comments"}),
    ),
)


def permission_name(action: Action | str, resource_type: str) -> str | None:
    """Return the permission guarding ``action`` on ``resource_type``.

    Raises ``UnknownPermission`` for an unregistered action or resource type.
    Returns ``None`` when both are registered but the combination is not an
    enumerated permission, which callers must treat as deny.
    """
    try:
        action = Action(action)
    except ValueError as exc:
        raise UnknownPermission(f"unknown action: {action!r}") from exc
    if resource_type not in RESOURCE_TYPES:
        raise UnknownPermission(f"unknown resource type: {resource_type!r}")
    name = f"{action.verb}_{resource_type}"
    return name if name in PERMISSION_NAMES else None


class PermissionRegistry:
    """Read-mostly map of role name to permission set.

    Reads go against an immutable snapshot; ``load`` swaps in a new snapshot
    wholesale so concurrent readers never observe a half-built map. Reloads
    are serialised so an older read can never overwrite a newer one, and a
    failed reload leaves the registry stale until ``refresh_if_stale``
    succeeds.
    """

    def __init__(self, roles: Iterable[RoleDefinition] = (), bypass_roles: Iterable[str] = ()):
        self._roles: Mapping[str, RoleDefinition] = MappingProxyType({})
        self.bypass_roles = frozenset(bypass_roles)
        self.stale = False
        self._reload_lock = asyncio.Lock()
        self.load(roles)

    def load(self, roles: Iterable[RoleDefinition]) -> None:
        snapshot = {role.name: role for role in roles}
        self._roles = MappingProxyType(snapshot)
        logger.info("permission registry loaded with %d roles", len(snapshot))

    async def reload(self, db) -> None:
        """Rebuild the snapshot from storage."""
        from blogapi.crud.role import role as role_crud

        async with self._reload_lock:
            try:
                roles = await role_crud.list_all(db)
                self.load(
                    RoleDefinition(
                        name=r.name,
                        description=r.description or "",
                        permissions=frozenset(r.permission_names),
                    )
                    for r in roles
                )
            except Exception:
                self.stale = True
                logger.warning("permission registry reload failed; marked stale until the next request")
                raise
            self.stale = False

    async def refresh_if_stale(self, db) -> None:
        if self.stale:
            await self.reload(db)

    def permissions_for(self, role_name: str) -> frozenset[str]:
        role = self._roles.get(role_name)
        return role.permissions if role is not None else frozenset()

    def all_roles(self) -> list[RoleDefinition]:
        return sorted(self._roles.values(), key=lambda r: r.name)

    def has_role(self, role_name: str) -> bool:
        return role_name in self._roles

    def is_bypass(self, role_name: str) -> bool:
        return role_name in self.bypass_roles


__all__ = [
    "Action",
    "PERMISSIONS",
    "PERMISSION_NAMES",
    "PUBLICLY_READABLE",
    "PermissionDefinition",
    "PermissionRegistry",
    "RESOURCE_TYPES",
    "RoleDefinition",
    "SYSTEM_ROLES",
    "UnknownPermission",
    "permission_name",
]
