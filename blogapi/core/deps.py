# blogapi/core/deps.py
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError

from blogapi.authz.principal import Principal
from blogapi.authz.registry import PermissionRegistry
from blogapi.cache.store import ReadCache
from blogapi.core.errors import AuthenticationRequired
from blogapi.core.security import decode_access_token
from blogapi.crud.user import user as user_crud
from blogapi.database import get_db
from blogapi.models import User
from blogapi.schemas.user import TokenData
from blogapi.services.pipeline import MutationPipeline

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Resolve the bearer token to a user; no token means an anonymous caller."""
    if credentials is None:
        return None
    credentials_exception = AuthenticationRequired("Could not validate credentials")
    try:
        payload = decode_access_token(credentials.credentials)
        sub = payload.get("sub")
        if sub is None:
            raise credentials_exception
        token_data = TokenData(sub=str(sub))
        user_id = int(token_data.sub)
    except (JWTError, ValueError):
        raise credentials_exception

    # roles are loaded with the user on every request, never reused
    user = await user_crud.get_by_id(db, user_id)
    if not user or not user.is_active:
        raise credentials_exception
    return user


async def get_registry(request: Request, db: AsyncSession = Depends(get_db)) -> PermissionRegistry:
    registry = request.app.state.registry
    # a registry whose last reload failed is rebuilt before any decision reads it
    await registry.refresh_if_stale(db)
    return registry


async def get_principal(
    user: User | None = Depends(get_current_user),
    registry: PermissionRegistry = Depends(get_registry),
) -> Principal | None:
    """Resolve the caller; depending on the registry keeps it fresh for pipeline decisions."""
    return Principal.from_user(user) if user is not None else None


async def require_user(user: User | None = Depends(get_current_user)) -> User:
    if user is None:
        raise AuthenticationRequired()
    return user


def get_cache(request: Request) -> ReadCache:
    return request.app.state.cache


def get_pipeline(request: Request) -> MutationPipeline:
    return request.app.state.pipeline
