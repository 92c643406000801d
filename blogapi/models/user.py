# blogapi/models/user.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Boolean, Table
from sqlalchemy.orm import relationship
from blogapi.database import Base


def utcnow():
    return datetime.now(timezone.utc)


role_user = Table(
    "role_user",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime(timezone=True), default=utcnow),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    is_active = Column(Boolean(), default=True)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    roles = relationship(
        "Role", secondary=role_user, back_populates="users", lazy="selectin", passive_deletes=True
    )
    posts = relationship(
        "Post", back_populates="author", cascade="all, delete-orphan", passive_deletes=True
    )
    comments = relationship(
        "Comment", back_populates="author", cascade="all, delete-orphan", passive_deletes=True
    )

    resource_type = "users"
    is_public = False

    @property
    def owner_id(self):
        # a user account is owned by itself
        return self.id

    @property
    def role_names(self) -> list[str]:
        return sorted(role.name for role in self.roles)
