# blogapi/crud/user.py
from sqlalchemy import func, select, union
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from blogapi.models import Comment, Post, Role, User


class CRUDUser:
    async def get_by_id(self, db: AsyncSession, user_id: int) -> Optional[User]:
        q = select(User).where(User.id == user_id)
        res = await db.execute(q)
        return res.scalars().first()

    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        q = select(User).where(User.email == email)
        res = await db.execute(q)
        return res.scalars().first()

    async def paginate(self, db: AsyncSession, page: int, per_page: int) -> tuple[list[User], int]:
        total = await db.scalar(select(func.count(User.id)))
        q = (
            select(User)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        res = await db.execute(q)
        return list(res.scalars().all()), total or 0

    async def create(self, db: AsyncSession, email: str, name: str | None = None, roles: list[Role] = ()) -> User:
        # accounts are provisioned by the identity layer; used by seeding
        user = User(email=email, name=name)
        user.roles = list(roles)
        db.add(user)
        await db.flush()
        return user

    async def affected_post_ids(self, db: AsyncSession, user_id: int) -> tuple[int, ...]:
        """Posts whose cached views change when the user's content is removed."""
        q = union(
            select(Post.id).where(Post.author_id == user_id),
            select(Comment.post_id).where(Comment.author_id == user_id),
        )
        res = await db.execute(q)
        return tuple(sorted(res.scalars().all()))


user = CRUDUser()
