# blogapi/models/post.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from blogapi.database import Base
from blogapi.models.user import utcnow

STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"
POST_STATUSES = (STATUS_DRAFT, STATUS_PUBLISHED)


class Post(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), unique=True, nullable=False)
    body = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=STATUS_DRAFT, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    author = relationship("User", back_populates="posts")
    comments = relationship(
        "Comment", back_populates="post", cascade="all, delete-orphan", passive_deletes=True
    )

    resource_type = "posts"

    @property
    def owner_id(self):
        return self.author_id

    @property
    def is_public(self) -> bool:
        return self.status == STATUS_PUBLISHED
