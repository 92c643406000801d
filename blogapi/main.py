# blogapi/main.py
import logging

from fastapi import FastAPI

from blogapi.authz.registry import PermissionRegistry
from blogapi.cache.coordinator import CacheCoherenceCoordinator
from blogapi.cache.store import build_cache
from blogapi.core.config import get_settings
from blogapi.core.errors import register_exception_handlers
from blogapi.crud.role import role as role_crud
from blogapi.database import Base, async_session, engine
from blogapi.routes import comments, posts, roles, stats, users
from blogapi.services.events import ChangeEvent, EntityType, EventBus
from blogapi.services.pipeline import MutationPipeline

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)

    registry = PermissionRegistry(bypass_roles=settings.BYPASS_ROLES)
    cache = build_cache(settings)
    bus = EventBus()
    coordinator = CacheCoherenceCoordinator(cache)

    async def refresh_registry(event: ChangeEvent) -> None:
        # role changes alter the permission map every later decision reads
        if event.entity_type is not EntityType.ROLE:
            return
        registry.stale = True
        async with async_session() as db:
            await registry.reload(db)

    bus.subscribe(refresh_registry)
    bus.subscribe(coordinator.on_change)

    app.state.registry = registry
    app.state.cache = cache
    app.state.bus = bus
    app.state.pipeline = MutationPipeline(registry, bus)

    register_exception_handlers(app)
    app.include_router(posts.router)
    app.include_router(comments.router)
    app.include_router(users.router)
    app.include_router(roles.router)
    app.include_router(stats.router)

    @app.on_event("startup")
    async def startup_event():
        # create tables if they don't exist
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with async_session() as db:
            await role_crud.seed(db)
            await db.commit()
            await registry.reload(db)
        logger.info("%s started", settings.APP_NAME)

    @app.on_event("shutdown")
    async def shutdown_event():
        await cache.close()
        await engine.dispose()

    @app.get("/health")
    async def health():
        return {"status": "ok", "app": settings.APP_NAME}

    return app


app = create_app()
