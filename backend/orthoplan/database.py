"""Database engine, session factory, and declarative base.

All tables live in one schema. Tenant, clinic and owner isolation is
row-level: every Patient-derived query is filtered with the ScopeFilter
resolved for the request (see orthoplan.services.scoping).

Session dependency for FastAPI:
  - get_db()  → one session per request, commit on success, rollback on error
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from orthoplan.config import settings


def _engine_options(url: str) -> dict:
    # SQLite (local dev / tests) uses a static or null pool without sizing
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {"echo": settings.debug, "pool_size": 20, "max_overflow": 10}


engine = create_async_engine(
    settings.database_url,
    **_engine_options(settings.database_url),
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Yield a request-scoped session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
