"""Ledger domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class Transaction(BaseModel):
    """Append-only ledger entry keyed by the client-supplied transaction_id."""

    model_config = ConfigDict(frozen=True)

    transaction_id: UUID
    user_id: UUID
    amount_cents: int = Field(..., gt=0)
    type: TransactionType
    # Assigned by the store on insert
    created_at: datetime | None = None

    @property
    def signed_amount_cents(self) -> int:
        if self.type == TransactionType.DEPOSIT:
            return self.amount_cents
        return -self.amount_cents


class Balance(BaseModel):
    """Mutable per-user balance row, written only under its row lock."""

    user_id: UUID
    balance_cents: int = Field(default=0, ge=0)
    updated_at: datetime | None = None


class FraudAlert(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    transaction_id: UUID
    reason: str = Field(..., max_length=255)
    created_at: datetime | None = None
