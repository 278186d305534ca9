"""
FastAPI dependency injection utilities.

The ledger store and fraud configuration are created once in the application
lifespan and kept on ``app.state``; these dependencies assemble the services
around them for each request. Tests replace ``get_ledger_store`` and
``get_fraud_config`` through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request

from wallet.core.config import FraudConfig, Settings, get_settings
from wallet.persistence.base import LedgerStore
from wallet.services.fraud_service import FraudEvaluator
from wallet.services.transaction_processor import TransactionProcessor
from wallet.services.transaction_service import TransactionService


def get_app_settings() -> Settings:
    """Return the cached application settings."""
    return get_settings()


def get_ledger_store(request: Request) -> LedgerStore:
    """Return the ledger store created at startup."""
    return request.app.state.ledger_store


def get_fraud_config(request: Request) -> FraudConfig:
    """Return the fraud thresholds loaded at startup."""
    return request.app.state.fraud_config


LedgerStoreDep = Annotated[LedgerStore, Depends(get_ledger_store)]
FraudConfigDep = Annotated[FraudConfig, Depends(get_fraud_config)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_fraud_evaluator(store: LedgerStoreDep, config: FraudConfigDep) -> FraudEvaluator:
    return FraudEvaluator(store=store, config=config)


def get_transaction_processor(
    store: LedgerStoreDep,
    settings: SettingsDep,
    fraud_evaluator: FraudEvaluator = Depends(get_fraud_evaluator),
) -> TransactionProcessor:
    return TransactionProcessor(
        store=store,
        fraud_evaluator=fraud_evaluator,
        serialization_retries=settings.ledger.serialization_retries,
        retry_backoff_ms=settings.ledger.retry_backoff_ms,
    )


def get_transaction_service(store: LedgerStoreDep) -> TransactionService:
    return TransactionService(store)


TransactionProcessorDep = Annotated[TransactionProcessor, Depends(get_transaction_processor)]
TransactionServiceDep = Annotated[TransactionService, Depends(get_transaction_service)]
