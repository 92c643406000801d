# blogapi/schemas/role.py
from pydantic import BaseModel, Field


class RoleRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    permissions: list[str] = []

    @classmethod
    def from_role(cls, role):
        return cls(id=role.id, name=role.name, description=role.description, permissions=role.permission_names)


class RoleList(BaseModel):
    roles: list[RoleRead]


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50, pattern=r"^[a-z][a-z0-9_-]*$")
    description: str | None = None
    permissions: list[str] = []


class RoleUpdate(BaseModel):
    description: str | None = None
    permissions: list[str] | None = None


class PermissionGrant(BaseModel):
    permission: str


class RoleAssignment(BaseModel):
    role: str
