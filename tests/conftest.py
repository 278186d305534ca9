"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]

# Add wallet to path for imports
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Set test environment variables before importing the app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LEDGER_BACKEND", "memory")

from tests.utils.ledger import START_TIME, TickingClock  # noqa: E402
from wallet.core.config import FraudConfig  # noqa: E402
from wallet.persistence.base import IsolationLevel, LedgerStore, StoreTransaction  # noqa: E402
from wallet.persistence.memory_store import InMemoryLedgerStore  # noqa: E402
from wallet.services.fraud_service import FraudEvaluator  # noqa: E402
from wallet.services.transaction_processor import TransactionProcessor  # noqa: E402


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store(clock: TickingClock) -> InMemoryLedgerStore:
    """In-memory ledger store on the deterministic clock."""
    return InMemoryLedgerStore(clock=clock)


@pytest.fixture
def fraud_config() -> FraudConfig:
    return FraudConfig(high_amount_cents=10_000, window_min=10)


@pytest.fixture
def fraud_evaluator(
    store: InMemoryLedgerStore, fraud_config: FraudConfig, clock: TickingClock
) -> FraudEvaluator:
    return FraudEvaluator(store=store, config=fraud_config, clock=clock)


@pytest.fixture
def processor(store: InMemoryLedgerStore, fraud_evaluator: FraudEvaluator) -> TransactionProcessor:
    return TransactionProcessor(store=store, fraud_evaluator=fraud_evaluator)


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def mock_store():
    """Mock ledger store whose unit-of-work calls succeed by default."""
    store = AsyncMock(spec=LedgerStore)
    store.begin_transaction.side_effect = lambda isolation=IsolationLevel.SERIALIZABLE: (
        StoreTransaction(isolation=isolation)
    )
    store.find_transaction_by_id.return_value = None
    store.save_transaction.side_effect = lambda handle, tx: tx.model_copy(
        update={"created_at": START_TIME}
    )
    return store


@pytest.fixture
def mock_fraud_evaluator():
    evaluator = AsyncMock(spec=FraudEvaluator)
    evaluator.check_and_flag_if_suspicious.return_value = False
    return evaluator
