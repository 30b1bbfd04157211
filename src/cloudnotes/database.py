# Database connection setup
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .config import Settings
from .core.models.base import BaseModel


class Database:
    """Owns the async engine and session factory for one process.

    Built by the application lifespan and handed to the store; nothing in the
    package reaches for a module-level engine.
    """

    def __init__(self, settings: Settings, engine: Optional[AsyncEngine] = None):
        self.settings = settings
        self.engine = engine or self._create_engine(settings)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @staticmethod
    def _create_engine(settings: Settings) -> AsyncEngine:
        url = settings.database_url
        if url.startswith("sqlite") and ":memory:" in url:
            # keep one shared in-memory database across connections
            return create_async_engine(
                url,
                echo=settings.database_echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(url, echo=settings.database_echo)

    async def create_tables(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(BaseModel.metadata.create_all)

    async def ping(self) -> None:
        """Run a trivial query; raises if the database is unreachable."""
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()
