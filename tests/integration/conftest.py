"""Pytest configuration for PostgreSQL integration tests.

These tests require DATABASE_URL_APP (and optionally DATABASE_URL_ADMIN for
schema setup) to point at a disposable database.
"""

import os

import pytest
from sqlalchemy import text

from cli.db_setup import DatabaseSetup
from wallet.core.config import DatabaseConfig, FraudConfig, LedgerConfig
from wallet.core.database import create_ledger_engine, create_ledger_session_factory
from wallet.persistence.sql_store import SqlLedgerStore
from wallet.services.fraud_service import FraudEvaluator
from wallet.services.transaction_processor import TransactionProcessor


def pytest_collection_modifyitems(config, items):
    if os.environ.get("DATABASE_URL_APP"):
        return
    skip = pytest.mark.skip(reason="DATABASE_URL_APP not set")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def database_config() -> DatabaseConfig:
    config = DatabaseConfig()
    assert DatabaseSetup(config.sync_url).init() == 0
    return config


@pytest.fixture
async def pg_store(database_config):
    engine = create_ledger_engine(database_config, application_name="wallet-ledger-tests")
    session_factory = create_ledger_session_factory(engine)
    async with session_factory() as session, session.begin():
        await session.execute(
            text(
                "TRUNCATE wallet.fraud_alert, wallet.ledger_transaction, wallet.user_balance"
            )
        )
    try:
        yield SqlLedgerStore(session_factory)
    finally:
        await engine.dispose()


@pytest.fixture
def pg_processor(pg_store) -> TransactionProcessor:
    evaluator = FraudEvaluator(store=pg_store, config=FraudConfig())
    ledger = LedgerConfig()
    return TransactionProcessor(
        pg_store,
        evaluator,
        serialization_retries=ledger.serialization_retries,
        retry_backoff_ms=ledger.retry_backoff_ms,
    )
