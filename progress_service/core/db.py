from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
import logging

from progress_service.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def build_database_url(url: str) -> str:
    """Convert DATABASE_URL to the asyncpg driver form when needed"""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine_for(url: str, echo: bool = False):
    """Async engine for PostgreSQL (or SQLite for local development and tests)"""
    url = build_database_url(url)
    kwargs = {"echo": echo}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **kwargs)


def create_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_for(settings.DATABASE_URL, echo=settings.DB_ECHO)

AsyncSessionLocal = create_session_factory(engine)

# Declarative base for the SQLAlchemy models
Base = declarative_base()


async def get_db() -> AsyncSession:
    """
    Request-scoped session: committed when the handler returns, rolled back on error.
    Usage in FastAPI: db: AsyncSession = Depends(get_db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind=None):
    """Create all tables"""
    # Import all models to register them with Base.metadata
    from progress_service import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")


async def close_db():
    """Dispose the database engine"""
    await engine.dispose()
