# blogapi/schemas/comment.py
from datetime import datetime
from pydantic import BaseModel, Field

from blogapi.schemas.user import AuthorSummary


class CommentCreate(BaseModel):
    body: str = Field(min_length=1)


class CommentUpdate(CommentCreate):
    pass


class CommentRead(BaseModel):
    id: int
    post_id: int
    author_id: int
    body: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    author: AuthorSummary | None = None

    model_config = {"from_attributes": True}


class LatestComment(BaseModel):
    id: int
    body: str
    created_at: datetime | None = None
    author: AuthorSummary | None = None

    model_config = {"from_attributes": True}
