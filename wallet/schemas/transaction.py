"""Ledger transaction request/response schemas.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from wallet.domain.models.ledger import TransactionType


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either casing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateTransactionRequest(CamelModel):
    """Schema for submitting a deposit or withdrawal."""

    transaction_id: UUID = Field(..., description="Client-supplied idempotency key")
    user_id: UUID = Field(..., description="Owner of the balance")
    # Parsed by the money codec so format errors surface as 400 invalid_amount_format
    amount: str = Field(..., description="Decimal amount with up to 2 fraction digits")
    type: TransactionType


class TransactionResponse(CamelModel):
    """Result of processing a transaction request."""

    transaction_id: UUID
    user_id: UUID
    amount_cents: int
    type: TransactionType
    balance_cents: int
    created_at: datetime
    flagged: bool = False


class TransactionHistoryItem(CamelModel):
    transaction_id: UUID
    amount_cents: int
    type: TransactionType
    created_at: datetime


class TransactionHistoryResponse(CamelModel):
    transactions: list[TransactionHistoryItem]


class BalanceResponse(CamelModel):
    user_id: UUID
    balance_cents: int


class FraudAlertItem(CamelModel):
    id: UUID
    transaction_id: UUID
    reason: str
    created_at: datetime


class FraudAlertListResponse(CamelModel):
    alerts: list[FraudAlertItem]


class ErrorResponse(BaseModel):
    detail: str
    code: str
    errors: dict | None = None
