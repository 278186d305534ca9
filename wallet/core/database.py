"""Ledger storage wiring: engine, session factory and backend selection."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from wallet.core.config import DatabaseConfig, LedgerBackend, Settings
from wallet.persistence.base import LedgerStore
from wallet.persistence.memory_store import InMemoryLedgerStore
from wallet.persistence.sql_store import SqlLedgerStore

logger = logging.getLogger(__name__)


def create_ledger_engine(config: DatabaseConfig, application_name: str) -> AsyncEngine:
    """Create the async engine the SQL ledger store runs on.

    Connections run with the session timezone pinned to UTC, since fraud
    windows and history cursors are compared as timezone-aware instants.
    ``application_name`` tags ledger sessions in ``pg_stat_activity`` so lock
    waits can be traced back to this service.
    """
    engine = create_async_engine(
        config.async_url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {"timezone": "UTC", "application_name": application_name},
            "timeout": config.connect_timeout,
        },
    )
    logger.info(
        "Ledger database engine created",
        extra={
            "host": config.host,
            "port": config.port,
            "database": config.name,
            "pool_size": config.pool_size,
        },
    )
    return engine


def create_ledger_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # The store opens and resolves transactions itself; rows stay readable after commit
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@dataclass
class LedgerStorage:
    """A ledger store plus the engine backing it, if any."""

    store: LedgerStore
    engine: AsyncEngine | None = None

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Ledger database engine disposed")


def open_ledger_storage(settings: Settings) -> LedgerStorage:
    """Build the store selected by ``LEDGER_BACKEND``."""
    if settings.ledger.backend == LedgerBackend.MEMORY:
        return LedgerStorage(store=InMemoryLedgerStore())

    engine = create_ledger_engine(settings.database, application_name=settings.app.name)
    return LedgerStorage(
        store=SqlLedgerStore(create_ledger_session_factory(engine)),
        engine=engine,
    )
