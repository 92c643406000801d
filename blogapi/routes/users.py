# blogapi/routes/users.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.authz.decision import decide, enforce
from blogapi.authz.principal import Principal
from blogapi.authz.registry import Action, PermissionRegistry
from blogapi.core.deps import get_pipeline, get_principal, get_registry, require_user
from blogapi.core.errors import NotFound
from blogapi.crud.user import user as user_crud
from blogapi.database import get_db
from blogapi.schemas.common import Message, Page
from blogapi.schemas.role import RoleAssignment, RoleRead
from blogapi.schemas.user import UserDetail, UserRead, UserUpdate
from blogapi.services.pipeline import MutationPipeline, ResourceRef

router = APIRouter(prefix="/users", tags=["users"])


def _detail(user, registry: PermissionRegistry) -> UserDetail:
    permissions = Principal.from_user(user).effective_permissions(registry)
    return UserDetail(**UserRead.from_user(user).model_dump(), permissions=sorted(permissions))


@router.get("/me", response_model=UserDetail)
async def read_users_me(current_user=Depends(require_user), registry: PermissionRegistry = Depends(get_registry)):
    return _detail(current_user, registry)


@router.get("", response_model=Page[UserRead])
async def list_users(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
):
    enforce(decide(registry, principal, Action.VIEW, "users"))
    users, total = await user_crud.paginate(db, page, per_page)
    return Page.build([UserRead.from_user(u) for u in users], total, page, per_page)


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
):
    user = await user_crud.get_by_id(db, user_id)
    if user is None:
        raise NotFound("User not found")
    enforce(decide(registry, principal, Action.VIEW, "users", user))
    return _detail(user, registry)


@router.patch("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    user = await pipeline.execute(
        db, principal, Action.UPDATE, ResourceRef("users", user_id), payload.model_dump(exclude_unset=True)
    )
    return UserRead.from_user(user)


@router.delete("/{user_id}", response_model=Message)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    await pipeline.execute(db, principal, Action.DELETE, ResourceRef("users", user_id))
    return {"message": "User deleted successfully"}


@router.get("/{user_id}/roles", response_model=list[RoleRead])
async def get_user_roles(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
):
    user = await user_crud.get_by_id(db, user_id)
    if user is None:
        raise NotFound("User not found")
    enforce(decide(registry, principal, Action.VIEW, "users", user))
    return [RoleRead.from_role(role) for role in sorted(user.roles, key=lambda r: r.name)]


@router.post("/{user_id}/roles", response_model=UserRead)
async def assign_role(
    user_id: int,
    payload: RoleAssignment,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    user = await pipeline.execute(
        db, principal, Action.CREATE, ResourceRef("role_assignments", user_id), payload.model_dump()
    )
    return UserRead.from_user(user)


@router.delete("/{user_id}/roles/{role_name}", response_model=UserRead)
async def remove_role(
    user_id: int,
    role_name: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    user = await pipeline.execute(
        db, principal, Action.DELETE, ResourceRef("role_assignments", user_id), {"role": role_name}
    )
    return UserRead.from_user(user)
