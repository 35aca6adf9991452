"""Database session configuration."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from quandary.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


def _connect_args(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Request threads and the event loop share connections from the pool.
        return {"check_same_thread": False, "timeout": settings.db_timeout_seconds}
    if url.startswith("postgresql"):
        return {"connect_timeout": int(settings.db_timeout_seconds)}
    return {}


# Ensure model modules are imported so that metadata is populated when create_all runs.
import quandary.models  # noqa: E402,F401

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    connect_args=_connect_args(settings.database_url),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=engine)
