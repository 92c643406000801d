# blogapi/routes/roles.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.authz.decision import decide, enforce
from blogapi.authz.principal import Principal
from blogapi.authz.registry import Action, PermissionRegistry
from blogapi.cache.keys import KeyFamily, family_ttl, roles_meta_key
from blogapi.cache.store import ReadCache
from blogapi.core.deps import get_cache, get_pipeline, get_principal, get_registry, require_user
from blogapi.crud.role import role as role_crud
from blogapi.database import get_db
from blogapi.schemas.common import Message
from blogapi.schemas.role import PermissionGrant, RoleCreate, RoleList, RoleRead, RoleUpdate
from blogapi.services.pipeline import MutationPipeline, ResourceRef

router = APIRouter(tags=["roles"])


async def _cached_roles(db: AsyncSession, cache: ReadCache) -> dict:
    async def fetch_roles():
        roles = await role_crud.list_all(db)
        return RoleList(roles=[RoleRead.from_role(r) for r in roles]).model_dump(mode="json")

    return await cache.get_or_compute(roles_meta_key(), family_ttl(KeyFamily.ROLES_META), fetch_roles)


@router.get("/meta/roles", response_model=RoleList)
async def roles_meta(
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
    cache: ReadCache = Depends(get_cache),
):
    enforce(decide(registry, principal, Action.VIEW, "roles"))
    return await _cached_roles(db, cache)


@router.get("/roles", response_model=RoleList)
async def list_roles(
    user=Depends(require_user),
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
    cache: ReadCache = Depends(get_cache),
):
    enforce(decide(registry, principal, Action.VIEW, "roles"))
    return await _cached_roles(db, cache)


@router.post("/roles", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    role = await pipeline.execute(db, principal, Action.CREATE, ResourceRef("roles"), payload.model_dump())
    return RoleRead.from_role(role)


@router.patch("/roles/{role_id}", response_model=RoleRead)
async def update_role(
    role_id: int,
    payload: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    role = await pipeline.execute(
        db, principal, Action.UPDATE, ResourceRef("roles", role_id), payload.model_dump(exclude_unset=True)
    )
    return RoleRead.from_role(role)


@router.delete("/roles/{role_id}", response_model=Message)
async def delete_role(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    await pipeline.execute(db, principal, Action.DELETE, ResourceRef("roles", role_id))
    return {"message": "Role deleted successfully"}


@router.post("/roles/{role_id}/permissions", response_model=RoleRead)
async def grant_permission(
    role_id: int,
    payload: PermissionGrant,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    role = await pipeline.execute(
        db, principal, Action.UPDATE, ResourceRef("roles", role_id), {"grant": [payload.permission]}
    )
    return RoleRead.from_role(role)


@router.delete("/roles/{role_id}/permissions/{permission}", response_model=RoleRead)
async def revoke_permission(
    role_id: int,
    permission: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    pipeline: MutationPipeline = Depends(get_pipeline),
):
    role = await pipeline.execute(
        db, principal, Action.UPDATE, ResourceRef("roles", role_id), {"revoke": [permission]}
    )
    return RoleRead.from_role(role)
