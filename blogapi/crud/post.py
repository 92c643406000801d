# blogapi/crud/post.py
from datetime import date, datetime, time, timezone
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload
from typing import Any, Optional

from blogapi.models import Comment, Post
from blogapi.models.post import STATUS_PUBLISHED

SORTABLE_FIELDS = {
    "created_at": Post.created_at,
    "published_at": Post.published_at,
    "title": Post.title,
}


def _ordering(sort_by: str, sort_order: str):
    column = SORTABLE_FIELDS[sort_by]
    primary = column.asc() if sort_order == "asc" else column.desc()
    return primary, Post.id.desc()


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _day_end(value: date) -> datetime:
    return datetime.combine(value, time.max, tzinfo=timezone.utc)


class CRUDPost:
    async def get_by_id(self, db: AsyncSession, post_id: int) -> Optional[Post]:
        res = await db.execute(select(Post).where(Post.id == post_id))
        return res.scalars().first()

    async def get_detail(self, db: AsyncSession, post_id: int) -> Optional[Post]:
        q = (
            select(Post)
            .options(
                joinedload(Post.author),
                selectinload(Post.comments).joinedload(Comment.author),
            )
            .where(Post.id == post_id)
        )
        res = await db.execute(q)
        return res.scalars().first()

    async def _page(self, db: AsyncSession, q, page: int, per_page: int, sort_by: str, sort_order: str):
        total = await db.scalar(select(func.count()).select_from(q.subquery()))
        comment_counts = (
            select(Comment.post_id, func.count(Comment.id).label("count"))
            .group_by(Comment.post_id)
            .subquery()
        )
        stmt = (
            q.add_columns(func.coalesce(comment_counts.c.count, 0).label("comments_count"))
            .outerjoin(comment_counts, Post.id == comment_counts.c.post_id)
            .options(joinedload(Post.author))
            .order_by(*_ordering(sort_by, sort_order))
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        rows = (await db.execute(stmt)).all()
        latest = await self.latest_comments(db, [post.id for post, _ in rows])
        items = [(post, count, latest.get(post.id)) for post, count in rows]
        return items, total or 0

    async def latest_comments(self, db: AsyncSession, post_ids: list[int]) -> dict[int, Comment]:
        if not post_ids:
            return {}
        newest = (
            select(func.max(Comment.id))
            .where(Comment.post_id.in_(post_ids))
            .group_by(Comment.post_id)
        )
        q = select(Comment).options(joinedload(Comment.author)).where(Comment.id.in_(newest))
        res = await db.execute(q)
        return {comment.post_id: comment for comment in res.scalars().all()}

    async def list_published(self, db: AsyncSession, page: int, per_page: int, sort_by: str, sort_order: str):
        q = select(Post).where(Post.status == STATUS_PUBLISHED)
        return await self._page(db, q, page, per_page, sort_by, sort_order)

    async def list_by_author(self, db: AsyncSession, author_id: int, page: int, per_page: int):
        q = select(Post).where(Post.author_id == author_id)
        return await self._page(db, q, page, per_page, "created_at", "desc")

    async def search(self, db: AsyncSession, criteria: dict[str, Any]):
        q = select(Post)
        if criteria.get("q"):
            term = f"%{criteria['q'].lower()}%"
            q = q.where(or_(func.lower(Post.title).like(term), func.lower(Post.body).like(term)))
        if criteria.get("status"):
            q = q.where(Post.status == criteria["status"])
        if criteria.get("published_from"):
            q = q.where(Post.published_at >= _day_start(criteria["published_from"]))
        if criteria.get("published_to"):
            q = q.where(Post.published_at <= _day_end(criteria["published_to"]))
        return await self._page(
            db, q, criteria["page"], criteria["per_page"], criteria["sort_by"], criteria["sort_order"]
        )

    async def comments_count(self, db: AsyncSession, post_id: int) -> int:
        return await db.scalar(select(func.count(Comment.id)).where(Comment.post_id == post_id)) or 0


post = CRUDPost()
