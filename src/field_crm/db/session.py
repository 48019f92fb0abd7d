"""Database Session Management for Field CRM.

Provides:
- Async SQLAlchemy engine creation
- AsyncSession factory
- Unit-of-work runner with bounded retry of transient failures
- Database initialization and table creation
"""
from __future__ import annotations

from pathlib import Path
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from field_crm.config import get_settings
from field_crm.core.exceptions import (
    ConcurrencyConflictError,
    DatabaseError,
    wrap_exception,
)
from field_crm.core.log import get_logger
from field_crm.core.retry import (
    DATABASE_RETRY_CONFIG,
    RetryConfig,
    RetryExhausted,
    retry_async,
)
from field_crm.db.base import Base

log = get_logger(__name__)

T = TypeVar("T")

# Global engine and session factory (initialized lazily)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async database engine.

    Connection pooling:
        - SQLite (dev): default pool, check_same_thread disabled
        - PostgreSQL (prod): pool_size=5, max_overflow=10, pool_timeout=30
    """
    global _engine

    if _engine is None:
        settings = get_settings()

        db_url = settings.database.url
        if "sqlite" in db_url and "///" in db_url:
            db_path = db_url.split("///")[1]
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        if "sqlite" in db_url:
            _engine = create_async_engine(
                db_url,
                echo=settings.database.echo,
                connect_args={"check_same_thread": False},
                pool_pre_ping=True,
            )
        elif "postgresql" in db_url or "postgres" in db_url:
            _engine = create_async_engine(
                db_url,
                echo=settings.database.echo,
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                pool_recycle=1800,
                pool_pre_ping=True,
            )
        else:
            _engine = create_async_engine(
                db_url,
                echo=settings.database.echo,
                pool_pre_ping=True,
            )

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())

    return _session_factory


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def database_retry_config() -> RetryConfig:
    """Retry policy for units of work, taken from settings."""
    retry = get_settings().retry
    return RetryConfig(
        max_attempts=retry.max_attempts,
        base_delay=retry.base_delay,
        max_delay=retry.max_delay,
        backoff=DATABASE_RETRY_CONFIG.backoff,
        retryable_exceptions=DATABASE_RETRY_CONFIG.retryable_exceptions,
        non_retryable_exceptions=DATABASE_RETRY_CONFIG.non_retryable_exceptions,
    )


async def run_transaction(
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    config: RetryConfig | None = None,
) -> T:
    """Run ``operation`` as one unit of work and commit it.

    Each attempt gets a fresh session, so a retried attempt re-reads
    state instead of replaying stale objects. Transient persistence
    errors are retried with bounded linear backoff; domain errors
    propagate on the first attempt and roll everything back.

    Raises:
        ConcurrencyConflictError: A versioned row changed underneath us.
        DatabaseError: Transient failures outlasted the retry budget.
    """
    factory = session_factory or get_session_factory()
    config = config or database_retry_config()

    async def attempt() -> T:
        async with factory() as session:
            try:
                result = await operation(session)
                await session.commit()
                return result
            except StaleDataError as e:
                await session.rollback()
                raise ConcurrencyConflictError(
                    "Record was modified concurrently, reload and retry",
                    cause=e,
                ) from e
            except Exception:
                await session.rollback()
                raise

    name = getattr(operation, "__name__", "transaction")
    try:
        return await retry_async(attempt, config=config)
    except RetryExhausted as e:
        log.error(
            "Transaction failed after retries",
            operation=name,
            attempts=e.attempts,
            error=str(e.last_error),
        )
        raise wrap_exception(
            e.last_error,
            DatabaseError,
            "Database temporarily unavailable",
            operation=name,
            attempts=e.attempts,
        ) from e.last_error


async def init_db() -> None:
    """Create all tables. Safe to call multiple times."""
    import field_crm.db.models  # noqa: F401  (registers models)

    engine = get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine. Call during application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def create_test_engine(url: str = "sqlite+aiosqlite:///:memory:") -> AsyncEngine:
    """Create a test engine with all tables.

    In-memory SQLite uses a single shared connection so every session
    sees the same database.
    """
    import field_crm.db.models  # noqa: F401

    kwargs: dict = {"echo": False}
    if "sqlite" in url:
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["poolclass"] = StaticPool

    engine = create_async_engine(url, **kwargs)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return engine
