from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from privacyhub.core.config import get_settings
from privacyhub.core.errors import ConstraintViolationError, TransactionFailedError


logger = logging.getLogger(__name__)

settings = get_settings()
_engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
# Configure bounded asyncpg pools for predictable latency under load.
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs["pool_size"] = max(1, int(settings.db_pool_size))
    _engine_kwargs["max_overflow"] = max(0, int(settings.db_max_overflow))
    _engine_kwargs["pool_timeout"] = 30
    _engine_kwargs["pool_recycle"] = 1800
    if settings.db_statement_timeout_ms > 0:
        _engine_kwargs["connect_args"] = {
            "server_settings": {"statement_timeout": str(int(settings.db_statement_timeout_ms))}
        }
engine = create_async_engine(settings.database_url, **_engine_kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


if engine.dialect.name == "sqlite":

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
        # SQLite ignores FK cascades unless enabled per connection.
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


@asynccontextmanager
async def atomic(session: AsyncSession, *, commit: bool = True) -> AsyncIterator[AsyncSession]:
    """Run a block of statements as one unit of work.

    On success the block is committed (or only flushed when ``commit`` is
    false, so a caller can compose several units into its own transaction).
    On failure the session is rolled back and store errors are translated:
    integrity errors become ``ConstraintViolationError`` and any other
    SQLAlchemy error becomes ``TransactionFailedError``. Domain errors pass
    through unchanged after the rollback.
    """
    try:
        yield session
        if commit:
            await session.commit()
        else:
            await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise ConstraintViolationError(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("transaction_failed error=%s", type(exc).__name__)
        raise TransactionFailedError(str(exc)) from exc
    except BaseException:
        await session.rollback()
        raise
