# blogapi/services/statistics.py
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.models import Comment, Post, Role, User, role_user
from blogapi.models.post import STATUS_DRAFT, STATUS_PUBLISHED

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
TOP_N = 5


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _date_range(column, date_from: Optional[date], date_to: Optional[date]) -> list:
    clauses = []
    if date_from is not None:
        clauses.append(column >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to is not None:
        # inclusive of the whole final day
        clauses.append(column <= datetime.combine(date_to, time.max, tzinfo=timezone.utc))
    return clauses


def _author(user: User) -> dict[str, Any]:
    return {"id": user.id, "name": user.name, "email": user.email}


class StatisticsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def post_statistics(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
        return {
            "posts_by_status": await self._posts_by_status(),
            "posts_by_date_range": await self._posts_by_date_range(date_from, date_to),
            "average_comments_per_post": await self._average_comments_per_post(),
            "top_commented_posts": await self._top_commented_posts(),
            "total_posts": await self.db.scalar(select(func.count(Post.id))),
        }

    async def comment_statistics(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
        return {
            "total_comments": await self.db.scalar(select(func.count(Comment.id))),
            "comments_by_date_range": await self._comments_by_date_range(date_from, date_to),
            "comments_by_hour": await self._comments_by_hour(),
            "comments_by_day_of_week": await self._comments_by_day_of_week(),
            "top_commenters": await self._top_commenters(),
            "most_commented_posts": await self._most_commented_posts(),
        }

    async def user_statistics(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
        return {
            "total_users": await self.db.scalar(select(func.count(User.id))),
            "users_by_date_range": await self._users_by_date_range(date_from, date_to),
            "users_by_role": await self._users_by_role(),
            "email_verified_users": await self._email_verified_users(),
            "top_authors": await self._top_authors(),
        }

    # posts

    async def _posts_by_status(self) -> dict[str, int]:
        rows = await self.db.execute(select(Post.status, func.count(Post.id)).group_by(Post.status))
        counts = dict(rows.all())
        return {STATUS_DRAFT: counts.get(STATUS_DRAFT, 0), STATUS_PUBLISHED: counts.get(STATUS_PUBLISHED, 0)}

    async def _posts_by_date_range(self, date_from, date_to) -> Optional[dict]:
        if date_from is None and date_to is None:
            return None
        clauses = _date_range(Post.created_at, date_from, date_to)
        total = await self.db.scalar(select(func.count(Post.id)).where(*clauses))
        rows = await self.db.execute(
            select(Post.status, func.count(Post.id)).where(*clauses).group_by(Post.status)
        )
        return {
            "date_from": _iso_date(date_from),
            "date_to": _iso_date(date_to),
            "total": total,
            "by_status": dict(rows.all()),
        }

    async def _average_comments_per_post(self) -> float:
        per_post = (
            select(func.count(Comment.id).label("comments_count"))
            .select_from(Post)
            .outerjoin(Comment, Comment.post_id == Post.id)
            .group_by(Post.id)
            .subquery()
        )
        average = await self.db.scalar(select(func.avg(per_post.c.comments_count)))
        return round(float(average or 0), 2)

    async def _top_commented_posts(self) -> list[dict]:
        comments_count = func.count(Comment.id).label("comments_count")
        q = (
            select(Post, User, comments_count)
            .join(User, User.id == Post.author_id)
            .outerjoin(Comment, Comment.post_id == Post.id)
            .group_by(Post.id, User.id)
            .order_by(comments_count.desc(), Post.id)
            .limit(TOP_N)
        )
        rows = await self.db.execute(q)
        return [
            {
                "id": post.id,
                "title": post.title,
                "status": post.status,
                "author": _author(author),
                "comments_count": count,
                "created_at": _iso(post.created_at),
                "published_at": _iso(post.published_at),
            }
            for post, author, count in rows.all()
        ]

    # comments

    async def _comments_by_date_range(self, date_from, date_to) -> Optional[dict]:
        if date_from is None and date_to is None:
            return None
        clauses = _date_range(Comment.created_at, date_from, date_to)
        total = await self.db.scalar(select(func.count(Comment.id)).where(*clauses))
        return {"date_from": _iso_date(date_from), "date_to": _iso_date(date_to), "total": total}

    async def _comments_by_hour(self) -> dict[str, int]:
        hour = extract("hour", Comment.created_at).label("hour")
        rows = await self.db.execute(
            select(hour, func.count(Comment.id)).group_by(hour).order_by(hour)
        )
        return {str(int(h)): count for h, count in rows.all()}

    async def _comments_by_day_of_week(self) -> dict[str, int]:
        day = extract("dow", Comment.created_at).label("day")
        rows = await self.db.execute(select(day, func.count(Comment.id)).group_by(day).order_by(day))
        return {DAY_NAMES[int(d)]: count for d, count in rows.all()}

    async def _top_commenters(self) -> list[dict]:
        comments_count = func.count(Comment.id).label("comments_count")
        q = (
            select(User, comments_count)
            .join(Comment, Comment.author_id == User.id)
            .group_by(User.id)
            .order_by(comments_count.desc(), User.id)
            .limit(TOP_N)
        )
        rows = await self.db.execute(q)
        return [{"author": _author(user), "comments_count": count} for user, count in rows.all()]

    async def _most_commented_posts(self) -> list[dict]:
        comments_count = func.count(Comment.id).label("comments_count")
        q = (
            select(Post.id, Post.title, Post.status, comments_count)
            .join(Comment, Comment.post_id == Post.id)
            .group_by(Post.id, Post.title, Post.status)
            .order_by(comments_count.desc(), Post.id)
            .limit(TOP_N)
        )
        rows = await self.db.execute(q)
        return [
            {"post": {"id": post_id, "title": title, "status": status}, "comments_count": count}
            for post_id, title, status, count in rows.all()
        ]

    # users

    async def _users_by_date_range(self, date_from, date_to) -> Optional[dict]:
        if date_from is None and date_to is None:
            return None
        clauses = _date_range(User.created_at, date_from, date_to)
        total = await self.db.scalar(select(func.count(User.id)).where(*clauses))
        return {"date_from": _iso_date(date_from), "date_to": _iso_date(date_to), "total": total}

    async def _users_by_role(self) -> dict[str, int]:
        rows = await self.db.execute(
            select(Role.name, func.count(role_user.c.user_id))
            .join(role_user, role_user.c.role_id == Role.id)
            .group_by(Role.name)
            .order_by(Role.name)
        )
        return dict(rows.all())

    async def _email_verified_users(self) -> dict[str, int]:
        verified = await self.db.scalar(
            select(func.count(User.id)).where(User.email_verified_at.is_not(None))
        )
        unverified = await self.db.scalar(
            select(func.count(User.id)).where(User.email_verified_at.is_(None))
        )
        return {"verified": verified, "unverified": unverified, "total": verified + unverified}

    async def _top_authors(self) -> list[dict]:
        posts_count = func.count(Post.id).label("posts_count")
        q = (
            select(User, posts_count)
            .outerjoin(Post, Post.author_id == User.id)
            .group_by(User.id)
            .order_by(posts_count.desc(), User.id)
            .limit(TOP_N)
        )
        rows = await self.db.execute(q)
        return [{**_author(user), "posts_count": count} for user, count in rows.all()]


def _iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None
