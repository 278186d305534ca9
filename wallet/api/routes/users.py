"""Per-user ledger read API routes.

Endpoints:
- GET /api/v1/users/{user_id}/transactions - Transaction history, newest first
- GET /api/v1/users/{user_id}/balance - Current balance
- GET /api/v1/users/{user_id}/fraud-alerts - Fraud alerts, newest first
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query

from wallet.core.dependencies import TransactionServiceDep
from wallet.schemas.transaction import (
    BalanceResponse,
    FraudAlertItem,
    FraudAlertListResponse,
    TransactionHistoryItem,
    TransactionHistoryResponse,
)
from wallet.services.transaction_service import DEFAULT_HISTORY_LIMIT

router = APIRouter(prefix="/users/{user_id}", tags=["Users"])


@router.get(
    "/transactions",
    response_model=TransactionHistoryResponse,
    summary="Transaction history",
)
async def list_user_transactions(
    user_id: UUID,
    service: TransactionServiceDep,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, description="Page size, capped at 200"),
    before: datetime | None = Query(None, description="Only transactions created before this"),
) -> TransactionHistoryResponse:
    """List a user's transactions newest first."""
    transactions = await service.get_user_transactions(user_id, limit=limit, before=before)
    return TransactionHistoryResponse(
        transactions=[
            TransactionHistoryItem(
                transaction_id=tx.transaction_id,
                amount_cents=tx.amount_cents,
                type=tx.type,
                created_at=tx.created_at,
            )
            for tx in transactions
        ]
    )


@router.get("/balance", response_model=BalanceResponse, summary="Current balance")
async def get_user_balance(user_id: UUID, service: TransactionServiceDep) -> BalanceResponse:
    """Return the user's balance in cents (0 before the first transaction)."""
    balance_cents = await service.get_user_balance(user_id)
    return BalanceResponse(user_id=user_id, balance_cents=balance_cents)


@router.get(
    "/fraud-alerts",
    response_model=FraudAlertListResponse,
    summary="Fraud alerts",
)
async def list_user_fraud_alerts(
    user_id: UUID,
    service: TransactionServiceDep,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, description="Page size, capped at 200"),
) -> FraudAlertListResponse:
    alerts = await service.get_user_fraud_alerts(user_id, limit=limit)
    return FraudAlertListResponse(
        alerts=[
            FraudAlertItem(
                id=alert.id,
                transaction_id=alert.transaction_id,
                reason=alert.reason,
                created_at=alert.created_at,
            )
            for alert in alerts
        ]
    )
