"""Async engine and session factory for the generation audit table."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from structgen.config import get_database_settings

_ASYNC_SCHEMES = {"postgres://": "postgresql+asyncpg://", "postgresql://": "postgresql+asyncpg://"}


class Base(DeclarativeBase):
  pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def async_database_url(dsn: str | None) -> str | None:
  """Point plain Postgres DSNs at the asyncpg driver; other URLs pass through."""
  if not dsn:
    return None

  for prefix, replacement in _ASYNC_SCHEMES.items():
    if dsn.startswith(prefix):
      return replacement + dsn[len(prefix) :]

  return dsn


def create_session_factory(dsn: str, *, echo: bool = False) -> async_sessionmaker[AsyncSession]:
  """Build a standalone engine and session factory for an explicit DSN."""
  url = async_database_url(dsn)
  if url is None:
    raise ValueError("A database DSN is required.")

  engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
  return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


def get_db_engine() -> AsyncEngine | None:
  """Create the engine on first use; None when no DSN is configured."""
  global _engine
  if _engine is not None:
    return _engine

  settings = get_database_settings()
  url = async_database_url(settings.pg_dsn)
  if url is None:
    return None

  _engine = create_async_engine(url, echo=settings.debug, pool_pre_ping=True)
  return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global _session_factory
  if _session_factory is None:
    engine = get_db_engine()
    if engine is not None:
      _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
  return _session_factory
