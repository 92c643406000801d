# blogapi/models/role.py
from sqlalchemy import Column, ForeignKey, Integer, String, Table
from sqlalchemy.orm import relationship
from blogapi.database import Base
from blogapi.models.user import role_user

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(Base):
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, index=True, nullable=False)
    description = Column(String(255), nullable=True)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, index=True, nullable=False)
    description = Column(String(255), nullable=True)

    permissions = relationship(
        "Permission", secondary=role_permissions, lazy="selectin", order_by="Permission.name"
    )
    users = relationship(
        "User", secondary=role_user, back_populates="roles", passive_deletes=True, lazy="noload"
    )

    resource_type = "roles"
    # role metadata is publicly listed and has no owner
    is_public = True
    owner_id = None

    @property
    def permission_names(self) -> list[str]:
        return [permission.name for permission in self.permissions]
