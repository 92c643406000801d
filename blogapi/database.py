import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from blogapi.core.config import get_settings
from blogapi.core.errors import ConflictingState, StorageUnavailable

logger = logging.getLogger(__name__)

settings = get_settings()

DATABASE_URL = settings.database_url

# sqlite connections are bound to the loop that opened them
_engine_options = {"poolclass": NullPool} if DATABASE_URL.startswith("sqlite") else {
    "pool_size": 20,
    "max_overflow": 0,
    "pool_pre_ping": True,
}

engine = create_async_engine(DATABASE_URL, echo=settings.DEBUG, **_engine_options)

if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

async_session = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()

T = TypeVar("T")


async def get_db() -> AsyncSession:
    async with async_session() as session:
        yield session


async def with_transaction(db: AsyncSession, fn: Callable[[], Awaitable[T]]) -> T:
    """Run ``fn`` and commit, rolling back on any failure.

    Driver errors are translated into the service taxonomy: constraint
    violations become ``ConflictingState`` and connectivity failures become
    the retryable ``StorageUnavailable``. Nothing is committed unless ``fn``
    returns normally.
    """
    try:
        result = await fn()
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictingState(str(exc.orig)) from exc
    except (OperationalError, InterfaceError) as exc:
        await db.rollback()
        logger.warning("storage unavailable, transaction rolled back: %s", exc)
        raise StorageUnavailable("The data store is temporarily unavailable.") from exc
    except DBAPIError as exc:
        await db.rollback()
        if exc.connection_invalidated:
            raise StorageUnavailable("The data store is temporarily unavailable.") from exc
        raise
    except BaseException:
        await db.rollback()
        raise
    return result
