from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from lessonsmith.config import get_database_settings


class Base(DeclarativeBase):
  pass


engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


def database_url() -> str | None:
  """Build the SQLAlchemy database URL while keeping settings evaluation minimal."""
  settings = get_database_settings()
  url = settings.pg_dsn
  if url and url.startswith("postgresql://"):
    url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

  return url


def get_db_engine() -> AsyncEngine | None:
  global engine
  settings = get_database_settings()
  url = database_url()
  if engine is None and url:
    engine = create_async_engine(url, echo=settings.debug, future=True, connect_args={"timeout": settings.pg_connect_timeout})
  return engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global SessionLocal
  if SessionLocal is None:
    db_engine = get_db_engine()
    if db_engine:
      SessionLocal = async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)
  return SessionLocal


async def get_db() -> AsyncGenerator[AsyncSession]:
  """Dependency to get a database session."""
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database connection is not configured (LESSONSMITH_PG_DSN is missing).")

  async with session_factory() as session:
    try:
      yield session
    finally:
      await session.close()


async def dispose_engine() -> None:
  """Close pooled connections on shutdown."""
  global engine, SessionLocal
  if engine is not None:
    await engine.dispose()
  engine = None
  SessionLocal = None
