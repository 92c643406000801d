"""Shared pytest fixtures for blogapi tests."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass

# settings and the engine are read at import time
_DB_DIR = tempfile.mkdtemp(prefix="blogapi-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/blogapi.sqlite"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-tests"
os.environ["LOG_LEVEL"] = "DEBUG"

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from blogapi.core.security import create_access_token
from blogapi.crud.role import role as role_crud
from blogapi.crud.user import user as user_crud
from blogapi.database import Base, async_session, engine
from blogapi.main import create_app


@dataclass(frozen=True)
class SeededUsers:
    admin: int
    editor: int
    author: int
    other_author: int
    viewer: int


def _bearer(user_id: int) -> dict[str, str]:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers():
    """Build an Authorization header for a user id."""

    return _bearer


@pytest_asyncio.fixture()
async def db_schema() -> AsyncIterator[None]:
    """Create a fresh schema with the system roles seeded."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as db:
        await role_crud.seed(db)
        await db.commit()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture()
async def users(db_schema: None) -> SeededUsers:
    async with async_session() as db:
        ids = {}
        for key, email, role_name in (
            ("admin", "admin@example.com", "admin"),
            ("editor", "editor@example.com", "editor"),
            ("author", "author@example.com", "author"),
            ("other_author", "other@example.com", "author"),
            ("viewer", "viewer@example.com", "viewer"),
        ):
            role = await role_crud.get_by_name(db, role_name)
            created = await user_crud.create(db, email, name=key.replace("_", " ").title(), roles=[role])
            ids[key] = created.id
        await db.commit()
    return SeededUsers(**ids)


@pytest_asyncio.fixture()
async def app(users: SeededUsers) -> FastAPI:
    """Return an application whose registry reflects the seeded roles."""

    application = create_app()
    async with async_session() as db:
        await application.state.registry.reload(db)
    return application


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    await app.state.cache.close()
