"""Shared helpers for ledger tests."""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from wallet.domain.models.ledger import Transaction, TransactionType
from wallet.persistence.memory_store import InMemoryLedgerStore
from wallet.schemas.transaction import CreateTransactionRequest

START_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime = START_TIME, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def make_request(
    user_id: UUID,
    amount: str,
    type_: TransactionType = TransactionType.DEPOSIT,
    transaction_id: UUID | None = None,
) -> CreateTransactionRequest:
    return CreateTransactionRequest(
        transaction_id=transaction_id or uuid4(),
        user_id=user_id,
        amount=amount,
        type=type_,
    )


async def commit_transaction(
    store: InMemoryLedgerStore,
    user_id: UUID,
    amount_cents: int,
    type_: TransactionType = TransactionType.DEPOSIT,
) -> Transaction:
    """Insert one committed transaction row without touching balances."""
    handle = await store.begin_transaction()
    stored = await store.save_transaction(
        handle,
        Transaction(
            transaction_id=uuid4(),
            user_id=user_id,
            amount_cents=amount_cents,
            type=type_,
        ),
    )
    await store.commit(handle)
    await store.release(handle)
    return stored
