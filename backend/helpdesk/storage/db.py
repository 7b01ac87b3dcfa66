"""Async database engine and sessions. PostgreSQL (asyncpg) in production, SQLite (aiosqlite) in tests."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

INIT_ATTEMPTS = 5


# SQLAlchemy 2.0 style
class Base(DeclarativeBase):
    pass


class Database:
    """Engine plus session factory. Created at startup, disposed on shutdown."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo, future=True)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def init(self) -> None:
        """Create tables if they don't exist. Retries on connection errors."""
        # models must be imported so their tables are registered on Base.metadata
        from helpdesk.storage import models  # noqa: F401

        logger.info("Initializing database (%s)", self.dialect)
        last_error = None
        for attempt in range(1, INIT_ATTEMPTS + 1):
            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                return
            except Exception as e:
                last_error = e
                err_name = type(e).__name__
                if "InvalidPassword" in err_name or "password authentication" in str(e).lower():
                    logger.error(
                        "PostgreSQL authentication failed. Check DATABASE_URL credentials in .env."
                    )
                    raise
                logger.warning("DB init attempt %s/%s failed: %s", attempt, INIT_ATTEMPTS, err_name)
                if attempt < INIT_ATTEMPTS:
                    await asyncio.sleep(2.0 * attempt)
        raise last_error

    async def close(self) -> None:
        await self.engine.dispose()
