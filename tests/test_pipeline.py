from __future__ import annotations

import pytest
import pytest_asyncio
from prometheus_client import REGISTRY
from sqlalchemy import func, select

from blogapi.authz.principal import Principal
from blogapi.authz.registry import Action, PermissionRegistry
from blogapi.core.errors import AuthorizationDenied, ConflictingState, ValidationFailed
from blogapi.crud.role import role as role_crud
from blogapi.crud.user import user as user_crud
from blogapi.database import async_session
from blogapi.models import Post
from blogapi.services.events import ChangeEvent, EntityType, EventBus, Operation
from blogapi.services.pipeline import MutationPipeline, ResourceRef

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture()
async def registry(users) -> PermissionRegistry:
    registry = PermissionRegistry(bypass_roles=["admin", "editor"])
    async with async_session() as db:
        await registry.reload(db)
    return registry


@pytest.fixture()
def recorded() -> list[ChangeEvent]:
    return []


@pytest.fixture()
def pipeline(registry, recorded) -> MutationPipeline:
    bus = EventBus()

    async def record(event: ChangeEvent) -> None:
        recorded.append(event)

    bus.subscribe(record)
    return MutationPipeline(registry, bus)


async def _principal(db, user_id: int) -> Principal:
    return Principal.from_user(await user_crud.get_by_id(db, user_id))


async def test_denied_mutation_writes_nothing(users, pipeline, recorded) -> None:
    async with async_session() as db:
        viewer = await _principal(db, users.viewer)
        with pytest.raises(AuthorizationDenied):
            await pipeline.execute(db, viewer, Action.CREATE, ResourceRef("posts"), {"title": "t", "body": "b"})
        assert await db.scalar(select(func.count(Post.id))) == 0
    assert recorded == []


async def test_successful_mutation_emits_one_event(users, pipeline, recorded) -> None:
    async with async_session() as db:
        author = await _principal(db, users.author)
        post = await pipeline.execute(
            db, author, Action.CREATE, ResourceRef("posts"), {"title": "Hello", "body": "World"}
        )
    assert post.status == "draft"
    assert recorded == [ChangeEvent(EntityType.POST, post.id, Operation.CREATE)]


async def test_failing_subscriber_does_not_fail_the_mutation(users, registry) -> None:
    bus = EventBus()

    async def broken(event: ChangeEvent) -> None:
        raise RuntimeError("cache unreachable")

    bus.subscribe(broken)
    pipeline = MutationPipeline(registry, bus)
    labels = {"entity": "post", "operation": "create"}
    before = REGISTRY.get_sample_value("blogapi_change_event_failures_total", labels) or 0.0

    async with async_session() as db:
        author = await _principal(db, users.author)
        post = await pipeline.execute(
            db, author, Action.CREATE, ResourceRef("posts"), {"title": "Kept", "body": "b"}
        )
        assert await db.get(Post, post.id) is not None

    assert REGISTRY.get_sample_value("blogapi_change_event_failures_total", labels) == before + 1


async def test_comment_event_names_parent_post(users, pipeline, recorded) -> None:
    async with async_session() as db:
        author = await _principal(db, users.author)
        post = await pipeline.execute(
            db, author, Action.CREATE, ResourceRef("posts"), {"title": "P", "body": "b", "status": "published"}
        )
        post_id = post.id
        viewer = await _principal(db, users.viewer)
        with pytest.raises(AuthorizationDenied):
            # viewers hold no create_comments
            await pipeline.execute(db, viewer, Action.CREATE, ResourceRef("comments", parent_id=post_id), {"body": "x"})
        comment = await pipeline.execute(
            db, author, Action.CREATE, ResourceRef("comments", parent_id=post_id), {"body": "first"}
        )
    assert recorded[-1].affected_relations == {"post": (post_id,)}
    assert recorded[-1].entity_id == comment.id


async def test_role_assignment_requires_updating_roles(users, pipeline, recorded) -> None:
    async with async_session() as db:
        author = await _principal(db, users.author)
        with pytest.raises(AuthorizationDenied):
            await pipeline.execute(
                db, author, Action.CREATE, ResourceRef("role_assignments", users.viewer), {"role": "editor"}
            )
        admin = await _principal(db, users.admin)
        with pytest.raises(ValidationFailed):
            await pipeline.execute(
                db, admin, Action.CREATE, ResourceRef("role_assignments", users.viewer), {"role": "ghost"}
            )
        updated = await pipeline.execute(
            db, admin, Action.CREATE, ResourceRef("role_assignments", users.viewer), {"role": "editor"}
        )
    assert updated.role_names == ["editor", "viewer"]
    assert [e.operation for e in recorded] == [Operation.ASSIGN]


async def test_system_roles_cannot_be_deleted(users, pipeline, recorded) -> None:
    async with async_session() as db:
        admin = await _principal(db, users.admin)
        viewer_role = await role_crud.get_by_name(db, "viewer")
        with pytest.raises(ConflictingState):
            await pipeline.execute(db, admin, Action.DELETE, ResourceRef("roles", viewer_role.id))
        assert await role_crud.get_by_name(db, "viewer") is not None
    assert recorded == []


async def test_user_deletion_reports_affected_posts(users, pipeline, recorded) -> None:
    async with async_session() as db:
        other = await _principal(db, users.other_author)
        post = await pipeline.execute(
            db, other, Action.CREATE, ResourceRef("posts"), {"title": "Gone soon", "body": "b"}
        )
        admin = await _principal(db, users.admin)
        await pipeline.execute(db, admin, Action.DELETE, ResourceRef("users", users.other_author))
    async with async_session() as db:
        assert await db.get(Post, post.id) is None
    assert recorded[-1].affected_relations == {"posts": (post.id,)}
