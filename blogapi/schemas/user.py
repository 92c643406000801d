# blogapi/schemas/user.py
from datetime import datetime
from pydantic import BaseModel, EmailStr

class UserBase(BaseModel):
    email: EmailStr
    name: str | None = None

class UserUpdate(BaseModel):
    email: EmailStr | None = None
    name: str | None = None


class UserRead(UserBase):
    id: int
    is_active: bool
    email_verified_at: datetime | None = None
    created_at: datetime | None = None
    roles: list[str] = []

    model_config = {"from_attributes": True}

    @classmethod
    def from_user(cls, user):
        return cls.model_validate(
            {
                "id": user.id,
                "email": user.email,
                "name": user.name,
                "is_active": user.is_active,
                "email_verified_at": user.email_verified_at,
                "created_at": user.created_at,
                "roles": user.role_names,
            }
        )

class UserDetail(UserRead):
    permissions: list[str] = []

class AuthorSummary(BaseModel):
    id: int
    name: str | None = None
    email: str

    model_config = {"from_attributes": True}

class TokenData(BaseModel):
    sub: str | None = None
