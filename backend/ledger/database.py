"""
Database connection setup and session management.
"""
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from ledger.config import settings


# Convert to async URL for asyncpg
ASYNC_DATABASE_URL = settings.database_url.replace("postgresql://", "postgresql+asyncpg://")


# Declarative Base class
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# Shape of every quantity, price and money column; amounts with more decimal
# places than AMOUNT_SCALE are rejected before they reach the database
AMOUNT_PRECISION = 38
AMOUNT_SCALE = 18


# Asynchronous engine (for FastAPI)
async_engine = create_async_engine(
    ASYNC_DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow
)

# Asynchronous session factory
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


# Dependency for FastAPI endpoints
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function to get database session.

    Usage in FastAPI:
        @app.get("/")
        async def endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Create all tables (used for local development, migrations should be preferred)
async def create_tables():
    """Create all database tables. Use migrations in production."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
