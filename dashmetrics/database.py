"""
Database connection and session management.

Async SQLAlchemy engine and session factory for the relational query
source. Nothing is created at import time; applications call
``create_engine`` once at startup and hand the session factory to
``SqlAlchemyQuerySource``.
"""

from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from dashmetrics.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for models the query source aggregates over."""


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Create the async engine for ``settings.database_url``.

    Args:
        settings: Settings to read (defaults to the global instance)

    Returns:
        AsyncEngine: Configured async database engine
    """
    settings = settings or default_settings
    engine = create_async_engine(settings.database_url, echo=settings.db_echo)

    @event.listens_for(engine.sync_engine, "connect")
    def receive_connect(dbapi_conn: Any, connection_record: Any) -> None:
        logger.debug("database_connection_established", dialect=engine.dialect.name)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with the settings the query source relies on."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
