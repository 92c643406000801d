# blogapi/routes/comments.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.authz.decision import decide, enforce
from blogapi.authz.principal import Principal
from blogapi.authz.registry import Action, PermissionRegistry
from blogapi.core.deps import get_pipeline, get_principal, get_registry
from blogapi.core.errors import NotFound
from blogapi.crud.comment import comment as comment_crud
from blogapi.crud.post import post as post_crud
from blogapi.database import get_db
from blogapi.schemas.comment import CommentCreate, CommentRead, CommentUpdate
from blogapi.schemas.common import Message, Page
from blogapi.services.pipeline import MutationPipeline, ResourceRef

router = APIRouter(tags=["comments"])


@router.get("/posts/{post_id}/comments", response_model=Page[CommentRead])
async def list_comments(
    post_id: int,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
):
    post = await post_crud.get_by_id(db, post_id)
    if post is None:
        raise NotFound("Post not found")
    enforce(decide(registry, principal, Action.VIEW, "posts", post))
    enforce(decide(registry, principal, Action.VIEW, "comments"))
    comments, total = await comment_crud.list_for_post(db, post_id, page, per_page)
    return Page.build([CommentRead.model_validate(c) for c in comments], total, page, per_page)


@router.post("/posts/{post_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def create_comment(
    post_id: int,
    payload: CommentCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    comment = await pipeline.execute(
        db, principal, Action.CREATE, ResourceRef("comments", parent_id=post_id), payload.model_dump()
    )
    await db.refresh(comment, ["author"])
    return CommentRead.model_validate(comment)


@router.get("/comments/{comment_id}", response_model=CommentRead)
async def get_comment(
    comment_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
):
    comment = await comment_crud.get_by_id(db, comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    # a comment is only as visible as the post it belongs to
    post = await post_crud.get_by_id(db, comment.post_id)
    enforce(decide(registry, principal, Action.VIEW, "posts", post))
    enforce(decide(registry, principal, Action.VIEW, "comments", comment))
    return CommentRead.model_validate(comment)


@router.patch("/comments/{comment_id}", response_model=CommentRead)
async def update_comment(
    comment_id: int,
    payload: CommentUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    comment = await pipeline.execute(
        db, principal, Action.UPDATE, ResourceRef("comments", comment_id), payload.model_dump()
    )
    return CommentRead.model_validate(comment)


@router.delete("/comments/{comment_id}", response_model=Message)
async def delete_comment(
    comment_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    await pipeline.execute(db, principal, Action.DELETE, ResourceRef("comments", comment_id))
    return {"message": "Comment deleted successfully"}
