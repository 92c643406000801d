"""The single authorization decision function.

Every read and write path routes through :func:`decide`. Rules are
evaluated in a fixed order and the first one that matches wins:

1. ``view`` of a publicly readable resource type, where the instance (if
   any) is in a public state, is allowed without a principal.
2. No principal: deny ``authentication_required``.
   A principal deleting its own user account is denied ``self_deletion``
   before any permission is considered.
3. A principal holding a bypass role is allowed when a bypass role grants
   the permission; ownership is not consulted.
4. Otherwise the principal needs the permission and, for an instance, must
   own it: ``missing_permission`` or ``not_owner`` on failure.
5. Anything else: deny ``no_applicable_rule``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from blogapi.authz.principal import Principal
from blogapi.authz.registry import (
    PUBLICLY_READABLE,
    Action,
    PermissionRegistry,
    permission_name,
)
from blogapi.core.errors import AuthenticationRequired, AuthorizationDenied
from blogapi.core.metrics import authz_decisions

logger = logging.getLogger(__name__)

AUTHENTICATION_REQUIRED = "authentication_required"
MISSING_PERMISSION = "missing_permission"
NOT_OWNER = "not_owner"
NO_APPLICABLE_RULE = "no_applicable_rule"
SELF_DELETION = "self_deletion"


class Resource(Protocol):
    id: Any
    resource_type: str
    owner_id: Any
    is_public: bool


@dataclass(frozen=True)
class ResourceSnapshot:
    """A detached view of a resource, for deciding without an ORM instance."""

    resource_type: str
    id: Any = None
    owner_id: Any = None
    is_public: bool = False


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


def decide(
    registry: PermissionRegistry,
    principal: Optional[Principal],
    action: Action | str,
    resource_type: str,
    resource: Optional[Resource] = None,
) -> Decision:
    """Decide whether ``principal`` may perform ``action`` on ``resource``.

    ``resource`` is ``None`` for ``create`` and collection-level ``view``.
    The resource is the snapshot the caller fetched; it is never re-read here.
    Denials are returned, not raised. ``UnknownPermission`` is raised for an
    action or resource type outside the vocabulary.
    """
    permission = permission_name(action, resource_type)
    action = Action(action)
    decision = _evaluate(registry, principal, action, resource_type, resource, permission)

    authz_decisions.labels(
        action=action.value,
        resource_type=resource_type,
        outcome="allow" if decision.allowed else decision.reason,
    ).inc()
    if not decision.allowed:
        logger.info(
            "denied %s on %s%s for principal %s: %s",
            action.value,
            resource_type,
            f"#{resource.id}" if resource is not None else "",
            principal.id if principal is not None else "anonymous",
            decision.reason,
        )
    return decision


def _evaluate(registry, principal, action, resource_type, resource, permission) -> Decision:
    if (
        action is Action.VIEW
        and resource_type in PUBLICLY_READABLE
        and (resource is None or resource.is_public)
    ):
        return ALLOW

    if principal is None:
        return deny(AUTHENTICATION_REQUIRED)

    if (
        action is Action.DELETE
        and resource_type == "users"
        and resource is not None
        and resource.id == principal.id
    ):
        return deny(SELF_DELETION)

    if permission is None:
        return deny(NO_APPLICABLE_RULE)

    if principal.holds_bypass_role(registry) and permission in principal.bypass_permissions(registry):
        return ALLOW

    if permission not in principal.effective_permissions(registry):
        return deny(MISSING_PERMISSION)
    if resource is None:
        return ALLOW if action is Action.CREATE or action is Action.VIEW else deny(NO_APPLICABLE_RULE)
    if resource.owner_id is None:
        return deny(NO_APPLICABLE_RULE)
    if resource.owner_id != principal.id:
        return deny(NOT_OWNER)
    return ALLOW


def enforce(decision: Decision) -> None:
    """Raise the matching service error for a denied decision."""
    if decision.allowed:
        return
    if decision.reason == AUTHENTICATION_REQUIRED:
        raise AuthenticationRequired()
    raise AuthorizationDenied(decision.reason)
