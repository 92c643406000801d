# blogapi/services/pipeline.py
"""The single entry point for every mutation.

``MutationPipeline.execute`` loads the current state, authorizes the caller
against that snapshot, applies domain rules, persists inside a transaction
and, once committed, publishes exactly one ``ChangeEvent``. A denial returns
before anything is written. A failure to deliver the event is logged and
counted by the bus but the mutation is still reported as successful.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.authz.decision import decide, enforce
from blogapi.authz.principal import Principal
from blogapi.authz.registry import SYSTEM_ROLES, Action, PermissionRegistry
from blogapi.core.errors import ConflictingState, NotFound, ValidationFailed
from blogapi.crud.comment import comment as comment_crud
from blogapi.crud.post import post as post_crud
from blogapi.crud.role import role as role_crud
from blogapi.crud.user import user as user_crud
from blogapi.database import with_transaction
from blogapi.models import Comment, Post, Role
from blogapi.services.events import ChangeEvent, EntityType, EventBus, Operation
from blogapi.services.rules import prepare_post_changes

logger = logging.getLogger(__name__)

_OPERATIONS = {
    Action.CREATE: Operation.CREATE,
    Action.UPDATE: Operation.UPDATE,
    Action.DELETE: Operation.DELETE,
}


@dataclass(frozen=True)
class ResourceRef:
    """Identifies the target of a mutation.

    ``id`` is the entity being changed (absent on create); ``parent_id`` is
    the owning entity a new one is created under, e.g. the post of a comment.
    """

    kind: str
    id: Optional[int] = None
    parent_id: Optional[int] = None


class MutationHandler:
    kind: str
    entity_type: EntityType
    actions: frozenset[Action] = frozenset({Action.CREATE, Action.UPDATE, Action.DELETE})

    def __init__(self, registry: PermissionRegistry):
        self.registry = registry

    async def load(self, db: AsyncSession, principal, action: Action, ref: ResourceRef, payload) -> Any:
        return None

    def target(self, action: Action, current: Any) -> tuple[Action, str, Any]:
        return action, self.kind, None if action is Action.CREATE else current

    def apply(self, action: Action, current: Any, payload: Mapping[str, Any]) -> dict[str, Any]:
        return dict(payload)

    async def persist(self, db, principal, action, ref, current, changes) -> tuple[Any, ChangeEvent]:
        raise NotImplementedError


def _require(entity, label: str):
    if entity is None:
        raise NotFound(f"{label} not found")
    return entity


class PostHandler(MutationHandler):
    kind = "posts"
    entity_type = EntityType.POST

    async def load(self, db, principal, action, ref, payload):
        if action is Action.CREATE:
            return None
        return _require(await post_crud.get_by_id(db, ref.id), "Post")

    def apply(self, action, current, payload):
        if action is Action.DELETE:
            return {}
        return prepare_post_changes(current, payload, datetime.now(timezone.utc))

    async def persist(self, db, principal, action, ref, current, changes):
        if action is Action.CREATE:
            post = Post(author_id=principal.id, **changes)
            db.add(post)
            await db.flush()
        elif action is Action.UPDATE:
            post = current
            for field, value in changes.items():
                setattr(post, field, value)
            await db.flush()
        else:
            post = current
            await db.delete(post)
            await db.flush()
        return post, ChangeEvent(self.entity_type, post.id, _OPERATIONS[action])


class CommentHandler(MutationHandler):
    kind = "comments"
    entity_type = EntityType.COMMENT

    async def load(self, db, principal, action, ref, payload):
        if action is Action.CREATE:
            parent = _require(await post_crud.get_by_id(db, ref.parent_id), "Post")
            # commenting requires being able to see the post
            enforce(decide(self.registry, principal, Action.VIEW, "posts", parent))
            return parent
        return _require(await comment_crud.get_by_id(db, ref.id), "Comment")

    def apply(self, action, current, payload):
        return {} if action is Action.DELETE else {"body": payload["body"]}

    async def persist(self, db, principal, action, ref, current, changes):
        if action is Action.CREATE:
            comment = Comment(author_id=principal.id, post_id=current.id, **changes)
            db.add(comment)
            await db.flush()
        elif action is Action.UPDATE:
            comment = current
            comment.body = changes["body"]
            await db.flush()
        else:
            comment = current
            await db.delete(comment)
            await db.flush()
        event = ChangeEvent(
            self.entity_type,
            comment.id,
            _OPERATIONS[action],
            affected_relations={"post": (comment.post_id,)},
        )
        return comment, event


class UserHandler(MutationHandler):
    kind = "users"
    entity_type = EntityType.USER
    # accounts are created by the identity layer, not through this pipeline
    actions = frozenset({Action.UPDATE, Action.DELETE})

    async def load(self, db, principal, action, ref, payload):
        return _require(await user_crud.get_by_id(db, ref.id), "User")

    async def persist(self, db, principal, action, ref, current, changes):
        user = current
        if action is Action.UPDATE:
            if "email" in changes and changes["email"] != user.email:
                if await user_crud.get_by_email(db, changes["email"]) is not None:
                    raise ConflictingState("Email already registered")
            for field, value in changes.items():
                setattr(user, field, value)
            await db.flush()
            return user, ChangeEvent(self.entity_type, user.id, Operation.UPDATE)

        affected = await user_crud.affected_post_ids(db, user.id)
        await db.delete(user)
        await db.flush()
        event = ChangeEvent(
            self.entity_type, user.id, Operation.DELETE, affected_relations={"posts": affected}
        )
        return user, event


class RoleHandler(MutationHandler):
    kind = "roles"
    entity_type = EntityType.ROLE

    async def load(self, db, principal, action, ref, payload):
        if action is Action.CREATE:
            return None
        return _require(await role_crud.get_by_id(db, ref.id), "Role")

    async def persist(self, db, principal, action, ref, current, changes):
        if action is Action.CREATE:
            if await role_crud.get_by_name(db, changes["name"]) is not None:
                raise ConflictingState(f"Role {changes['name']!r} already exists")
            role = Role(name=changes["name"], description=changes.get("description"))
            role.permissions = await role_crud.get_permissions(db, changes.get("permissions") or ())
            db.add(role)
            await db.flush()
        elif action is Action.UPDATE:
            role = current
            if "description" in changes:
                role.description = changes["description"]
            names = list(role.permission_names)
            if changes.get("permissions") is not None:
                names = list(changes["permissions"])
            names += [name for name in changes.get("grant") or () if name not in names]
            revoked = set(changes.get("revoke") or ())
            names = [name for name in names if name not in revoked]
            role.permissions = await role_crud.get_permissions(db, names)
            await db.flush()
        else:
            role = current
            if role.name in {definition.name for definition in SYSTEM_ROLES}:
                raise ConflictingState("System roles cannot be deleted")
            await db.delete(role)
            await db.flush()
        return role, ChangeEvent(self.entity_type, role.id, _OPERATIONS[action])


class RoleAssignmentHandler(MutationHandler):
    """Adds or removes a role on a user; authorized as updating that role."""

    kind = "role_assignments"
    entity_type = EntityType.ROLE_ASSIGNMENT
    actions = frozenset({Action.CREATE, Action.DELETE})

    async def load(self, db, principal, action, ref, payload):
        user = _require(await user_crud.get_by_id(db, ref.id), "User")
        role = await role_crud.get_by_name(db, payload["role"])
        if role is None:
            raise ValidationFailed(f"Unknown role: {payload['role']}")
        return user, role

    def target(self, action, current):
        _, role = current
        return Action.UPDATE, "roles", role

    async def persist(self, db, principal, action, ref, current, changes):
        user, role = current
        if action is Action.CREATE:
            if role not in user.roles:
                user.roles.append(role)
            operation = Operation.ASSIGN
        else:
            if role in user.roles:
                user.roles.remove(role)
            operation = Operation.REMOVE
        await db.flush()
        event = ChangeEvent(self.entity_type, user.id, operation, affected_relations={"role": (role.id,)})
        return user, event


class MutationPipeline:
    def __init__(self, registry: PermissionRegistry, bus: EventBus, handlers: list[MutationHandler] | None = None):
        self.registry = registry
        self.bus = bus
        handlers = handlers if handlers is not None else [
            PostHandler(registry),
            CommentHandler(registry),
            UserHandler(registry),
            RoleHandler(registry),
            RoleAssignmentHandler(registry),
        ]
        self._handlers = {handler.kind: handler for handler in handlers}

    async def execute(
        self,
        db: AsyncSession,
        principal: Optional[Principal],
        action: Action | str,
        ref: ResourceRef,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        handler = self._handlers[ref.kind]
        action = Action(action)
        if action not in handler.actions:
            raise ValueError(f"{ref.kind} does not support {action.value}")
        payload = payload or {}

        async def run():
            current = await handler.load(db, principal, action, ref, payload)
            checked_action, resource_type, resource = handler.target(action, current)
            enforce(decide(self.registry, principal, checked_action, resource_type, resource))
            changes = handler.apply(action, current, payload)
            return await handler.persist(db, principal, action, ref, current, changes)

        entity, event = await with_transaction(db, run)
        logger.info(
            "principal %s %s %s #%s",
            principal.id if principal is not None else "anonymous",
            event.operation.value,
            event.entity_type.value,
            event.entity_id,
        )
        await self.bus.publish(event)
        return entity
