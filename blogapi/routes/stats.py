# blogapi/routes/stats.py
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.authz.decision import decide, enforce
from blogapi.authz.principal import Principal
from blogapi.authz.registry import Action, PermissionRegistry
from blogapi.cache.keys import KeyFamily, family_ttl, stats_key
from blogapi.cache.store import ReadCache
from blogapi.core.deps import get_cache, get_principal, get_registry
from blogapi.database import get_db
from blogapi.schemas.stats import DateRange
from blogapi.services.statistics import StatisticsService

router = APIRouter(prefix="/stats", tags=["stats"])


async def _cached_stats(name: str, period: DateRange, cache: ReadCache, compute) -> dict:
    ranged = period.date_from is not None or period.date_to is not None
    family = KeyFamily.STATS_DATE_RANGE if ranged else KeyFamily.STATS

    async def fetch():
        return await compute(period.date_from, period.date_to)

    return await cache.get_or_compute(
        stats_key(name, period.date_from, period.date_to), family_ttl(family), fetch
    )


@router.get("/posts")
async def post_stats(
    period: Annotated[DateRange, Query()],
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
    cache: ReadCache = Depends(get_cache),
):
    enforce(decide(registry, principal, Action.VIEW, "stats"))
    return await _cached_stats("posts", period, cache, StatisticsService(db).post_statistics)


@router.get("/comments")
async def comment_stats(
    period: Annotated[DateRange, Query()],
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
    cache: ReadCache = Depends(get_cache),
):
    enforce(decide(registry, principal, Action.VIEW, "stats"))
    return await _cached_stats("comments", period, cache, StatisticsService(db).comment_statistics)


@router.get("/users")
async def user_stats(
    period: Annotated[DateRange, Query()],
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    registry: PermissionRegistry = Depends(get_registry),
    cache: ReadCache = Depends(get_cache),
):
    enforce(decide(registry, principal, Action.VIEW, "stats"))
    return await _cached_stats("users", period, cache, StatisticsService(db).user_statistics)
