"""Read-side ledger queries: history, balance and fraud alerts."""

from datetime import datetime
from uuid import UUID

from wallet.domain.models.ledger import FraudAlert, Transaction
from wallet.persistence.base import LedgerStore

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200


def clamp_limit(limit: int | None, default: int = DEFAULT_HISTORY_LIMIT) -> int:
    """Clamp a requested page size into [1, MAX_HISTORY_LIMIT]."""
    if limit is None:
        return default
    return max(1, min(limit, MAX_HISTORY_LIMIT))


class TransactionService:
    """Service for ledger read queries."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def get_user_transactions(
        self,
        user_id: UUID,
        limit: int | None = DEFAULT_HISTORY_LIMIT,
        before: datetime | None = None,
    ) -> list[Transaction]:
        """List a user's transactions newest first.

        ``limit`` is capped at 200; ``before`` excludes rows created at or
        after that instant.
        """
        return await self.store.query_recent_transactions(
            user_id=user_id,
            order_desc=True,
            limit=clamp_limit(limit),
            before=before,
        )

    async def get_user_balance(self, user_id: UUID) -> int:
        """Current balance in cents; 0 for users without a balance row."""
        balance = await self.store.get_balance(user_id)
        return balance.balance_cents if balance is not None else 0

    async def get_user_fraud_alerts(
        self,
        user_id: UUID,
        limit: int | None = DEFAULT_HISTORY_LIMIT,
    ) -> list[FraudAlert]:
        return await self.store.list_fraud_alerts(user_id=user_id, limit=clamp_limit(limit))
