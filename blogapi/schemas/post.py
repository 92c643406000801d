# blogapi/schemas/post.py
from datetime import date, datetime
from typing import Literal
from pydantic import BaseModel, Field, model_validator

from blogapi.schemas.comment import CommentRead, LatestComment
from blogapi.schemas.user import AuthorSummary

PostStatus = Literal["draft", "published"]
SortField = Literal["created_at", "published_at", "title"]
SortOrder = Literal["asc", "desc"]


class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    status: PostStatus | None = None
    published_at: datetime | None = None


class PostUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    body: str | None = Field(default=None, min_length=1)
    status: PostStatus | None = None
    published_at: datetime | None = None


class PostRead(BaseModel):
    id: int
    author_id: int
    title: str
    body: str
    status: str
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class PostSummary(PostRead):
    author: AuthorSummary | None = None
    comments_count: int = 0
    latest_comment: LatestComment | None = None


class PostDetail(PostSummary):
    comments: list[CommentRead] = []


class PostListParams(BaseModel):
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=15, ge=1, le=100)
    sort_by: SortField = "created_at"
    sort_order: SortOrder = "desc"


class PostSearchParams(PostListParams):
    q: str | None = None
    status: PostStatus | None = None
    published_from: date | None = None
    published_to: date | None = None
    sort_by: SortField = "published_at"
    per_page: int = Field(default=25, ge=1, le=100)

    @model_validator(mode="after")
    def check_range(self):
        if self.published_from and self.published_to and self.published_to < self.published_from:
            raise ValueError("published_to must be on or after published_from")
        return self
