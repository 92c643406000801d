# blogapi/crud/comment.py
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
from typing import Optional

from blogapi.models import Comment


class CRUDComment:
    async def get_by_id(self, db: AsyncSession, comment_id: int) -> Optional[Comment]:
        res = await db.execute(
            select(Comment).options(joinedload(Comment.author)).where(Comment.id == comment_id)
        )
        return res.scalars().first()

    async def list_for_post(self, db: AsyncSession, post_id: int, page: int, per_page: int) -> tuple[list[Comment], int]:
        total = await db.scalar(select(func.count(Comment.id)).where(Comment.post_id == post_id))
        q = (
            select(Comment)
            .options(joinedload(Comment.author))
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at.desc(), Comment.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        res = await db.execute(q)
        return list(res.scalars().all()), total or 0


comment = CRUDComment()
