# blogapi/routes/posts.py
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.authz.decision import ResourceSnapshot, decide, enforce
from blogapi.authz.principal import Principal
from blogapi.authz.registry import Action, PermissionRegistry
from blogapi.cache.keys import KeyFamily, family_ttl, post_key, post_list_key, post_search_key
from blogapi.cache.store import ReadCache
from blogapi.core.deps import get_cache, get_pipeline, get_principal, get_registry, require_user
from blogapi.core.errors import NotFound
from blogapi.crud.post import post as post_crud
from blogapi.database import get_db
from blogapi.models.post import STATUS_PUBLISHED
from blogapi.schemas.comment import CommentRead, LatestComment
from blogapi.schemas.common import Message, Page
from blogapi.schemas.post import (
    PostCreate,
    PostDetail,
    PostListParams,
    PostRead,
    PostSearchParams,
    PostSummary,
    PostUpdate,
)
from blogapi.schemas.user import AuthorSummary
from blogapi.services.pipeline import MutationPipeline, ResourceRef

router = APIRouter(prefix="/posts", tags=["posts"])

# stands in for "some draft post nobody here owns" when filtering listings
_UNOWNED_DRAFT = ResourceSnapshot(resource_type="posts")


def serialize_summary(post, comments_count: int, latest) -> dict:
    return PostSummary(
        **PostRead.model_validate(post).model_dump(),
        author=AuthorSummary.model_validate(post.author) if post.author else None,
        comments_count=comments_count,
        latest_comment=LatestComment.model_validate(latest) if latest else None,
    ).model_dump(mode="json")


@router.get("", response_model=Page[PostSummary])
async def list_posts(
    params: Annotated[PostListParams, Query()],
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
    cache: ReadCache = Depends(get_cache),
):
    enforce(decide(registry, principal, Action.VIEW, "posts"))

    async def fetch_posts():
        items, total = await post_crud.list_published(
            db, params.page, params.per_page, params.sort_by, params.sort_order
        )
        data = [serialize_summary(*item) for item in items]
        return Page.build(data, total, params.page, params.per_page).model_dump(mode="json")

    key = post_list_key(params.model_dump())
    return await cache.get_or_compute(key, family_ttl(KeyFamily.POST_LIST), fetch_posts)


@router.get("/search")
async def search_posts(
    params: Annotated[PostSearchParams, Query()],
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
    cache: ReadCache = Depends(get_cache),
):
    enforce(decide(registry, principal, Action.VIEW, "posts"))
    criteria = params.model_dump()
    if not decide(registry, principal, Action.VIEW, "posts", _UNOWNED_DRAFT):
        criteria["status"] = STATUS_PUBLISHED

    async def fetch_results():
        items, total = await post_crud.search(db, criteria)
        data = [serialize_summary(*item) for item in items]
        return {
            "query": criteria["q"],
            "filters": {
                "status": criteria["status"],
                "published_from": criteria["published_from"],
                "published_to": criteria["published_to"],
                "sort_by": criteria["sort_by"],
                "sort_order": criteria["sort_order"],
            },
            "results": Page.build(data, total, params.page, params.per_page).model_dump(mode="json"),
        }

    key = post_search_key(criteria)
    return await cache.get_or_compute(key, family_ttl(KeyFamily.POST_LIST), fetch_results)


@router.get("/mine", response_model=Page[PostSummary])
async def my_posts(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    user=Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await post_crud.list_by_author(db, user.id, page, per_page)
    return Page.build([serialize_summary(*item) for item in items], total, page, per_page)


@router.get("/{post_id}", response_model=PostDetail)
async def get_post(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
    cache: ReadCache = Depends(get_cache),
):
    # decide on a fresh snapshot; the cached body may predate a status change
    snapshot = await post_crud.get_by_id(db, post_id)
    if snapshot is None:
        raise NotFound("Post not found")
    enforce(decide(registry, principal, Action.VIEW, "posts", snapshot))

    async def fetch_post():
        post = await post_crud.get_detail(db, post_id)
        if post is None:
            raise NotFound("Post not found")
        comments = sorted(post.comments, key=lambda c: (c.created_at, c.id), reverse=True)
        return PostDetail(
            **serialize_summary(post, len(comments), comments[0] if comments else None),
            comments=[CommentRead.model_validate(c) for c in comments],
        ).model_dump(mode="json")

    return await cache.get_or_compute(post_key(post_id), family_ttl(KeyFamily.POST), fetch_post)


@router.post("", response_model=PostRead, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    return await pipeline.execute(
        db, principal, Action.CREATE, ResourceRef("posts"), payload.model_dump(exclude_unset=True)
    )


@router.patch("/{post_id}", response_model=PostRead)
async def update_post(
    post_id: int,
    payload: PostUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    return await pipeline.execute(
        db, principal, Action.UPDATE, ResourceRef("posts", post_id), payload.model_dump(exclude_unset=True)
    )


@router.delete("/{post_id}", response_model=Message)
async def delete_post(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    await pipeline.execute(db, principal, Action.DELETE, ResourceRef("posts", post_id))
    return {"message": "Post deleted successfully"}
