"""Ledger transaction API routes.

Endpoints:
- POST /api/v1/transactions - Apply a deposit or withdrawal (idempotent by transactionId)
"""

from fastapi import APIRouter, status

from wallet.core.dependencies import TransactionProcessorDep
from wallet.schemas.transaction import (
    CreateTransactionRequest,
    ErrorResponse,
    TransactionResponse,
)

router = APIRouter(tags=["Transactions"])


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create transaction",
    description="Apply a deposit or withdrawal to the user's balance.",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request or insufficient funds"},
        409: {"model": ErrorResponse, "description": "Concurrent request conflict"},
    },
)
async def create_transaction(
    request: CreateTransactionRequest,
    processor: TransactionProcessorDep,
) -> TransactionResponse:
    """Process a transaction request.

    **Idempotency**: resubmitting a known transactionId returns the stored
    transaction and the owner's current balance without applying funds again.
    """
    result = await processor.process(request)
    transaction = result.transaction
    return TransactionResponse(
        transaction_id=transaction.transaction_id,
        user_id=transaction.user_id,
        amount_cents=transaction.amount_cents,
        type=transaction.type,
        balance_cents=result.balance_cents,
        created_at=transaction.created_at,
        flagged=result.flagged,
    )
