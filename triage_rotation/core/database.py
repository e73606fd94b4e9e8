# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Database engine — single source of truth for DB connectivity.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from triage_rotation.core.config import settings

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def build_engine(url: str | None = None) -> Engine:
    """Create the SQLAlchemy engine for the configured DATABASE_URL."""
    database_url = url or settings.DATABASE_URL
    if database_url.startswith("sqlite"):
        # Store calls run in the threadpool, so connections cross threads.
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in _MEMORY_URLS:
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )
