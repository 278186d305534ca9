"""In-memory ledger store.

Used for local runs without PostgreSQL (``LEDGER_BACKEND=memory``) and for
tests. Not persistent across restarts.

Row locks are modelled with one ``asyncio.Lock`` per user id, kept only while
some handle holds or waits for it. Writes made through a handle stay private
to it until commit, when they are applied in a single step with no suspension
point in between.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from wallet.core.errors import ConstraintViolation
from wallet.domain.models.ledger import Balance, FraudAlert, Transaction
from wallet.persistence.base import (
    IsolationLevel,
    LedgerStore,
    StoreTransaction,
    TransactionState,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class MemoryStoreTransaction(StoreTransaction):
    pending_transactions: dict[UUID, Transaction] = field(default_factory=dict)
    pending_balances: dict[UUID, Balance] = field(default_factory=dict)
    held_locks: set[UUID] = field(default_factory=set)


class InMemoryLedgerStore(LedgerStore):
    """Ledger store backed by process memory."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._transactions: dict[UUID, Transaction] = {}
        self._balances: dict[UUID, Balance] = {}
        self._alerts: list[FraudAlert] = []
        self._row_locks: dict[UUID, asyncio.Lock] = {}
        # Holders plus waiters per user id; a lock is dropped when this reaches 0
        self._lock_users: dict[UUID, int] = {}
        # transaction_id -> id of the handle holding the uncommitted insert
        self._pending_ids: dict[UUID, UUID] = {}

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def begin_transaction(
        self, isolation: IsolationLevel = IsolationLevel.SERIALIZABLE
    ) -> MemoryStoreTransaction:
        return MemoryStoreTransaction(isolation=isolation)

    async def commit(self, handle: MemoryStoreTransaction) -> None:
        if not handle.is_active:
            return
        self._transactions.update(handle.pending_transactions)
        self._balances.update(handle.pending_balances)
        self._finish(handle, TransactionState.COMMITTED)

    async def rollback(self, handle: MemoryStoreTransaction) -> None:
        if not handle.is_active:
            return
        self._finish(handle, TransactionState.ROLLED_BACK)

    async def release(self, handle: MemoryStoreTransaction) -> None:
        if handle.released:
            return
        await self.rollback(handle)
        handle.released = True

    def _finish(self, handle: MemoryStoreTransaction, state: TransactionState) -> None:
        for transaction_id in handle.pending_transactions:
            self._pending_ids.pop(transaction_id, None)
        handle.pending_transactions.clear()
        handle.pending_balances.clear()
        for user_id in list(handle.held_locks):
            self._release_lock(handle, user_id)
        handle.state = state

    async def _acquire_lock(self, handle: MemoryStoreTransaction, user_id: UUID) -> None:
        if user_id in handle.held_locks:
            return
        lock = self._row_locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._forget_lock_user(user_id)
            raise
        handle.held_locks.add(user_id)

    def _release_lock(self, handle: MemoryStoreTransaction, user_id: UUID) -> None:
        handle.held_locks.discard(user_id)
        self._row_locks[user_id].release()
        self._forget_lock_user(user_id)

    def _forget_lock_user(self, user_id: UUID) -> None:
        remaining = self._lock_users[user_id] - 1
        if remaining:
            self._lock_users[user_id] = remaining
        else:
            del self._lock_users[user_id]
            del self._row_locks[user_id]

    @staticmethod
    def _ensure_active(handle: MemoryStoreTransaction) -> None:
        if not handle.is_active:
            raise RuntimeError(f"Store transaction {handle.id} is {handle.state.value}")

    # ------------------------------------------------------------------
    # Reads and writes inside a unit of work
    # ------------------------------------------------------------------

    async def find_transaction_by_id(
        self, handle: MemoryStoreTransaction, transaction_id: UUID
    ) -> Transaction | None:
        self._ensure_active(handle)
        if transaction_id in handle.pending_transactions:
            return handle.pending_transactions[transaction_id]
        return self._transactions.get(transaction_id)

    def _visible_balance(self, handle: MemoryStoreTransaction, user_id: UUID) -> Balance | None:
        balance = handle.pending_balances.get(user_id)
        if balance is None:
            balance = self._balances.get(user_id)
        return balance.model_copy() if balance is not None else None

    async def find_balance(self, handle: MemoryStoreTransaction, user_id: UUID) -> Balance | None:
        self._ensure_active(handle)
        return self._visible_balance(handle, user_id)

    async def lock_balance_for_update(
        self, handle: MemoryStoreTransaction, user_id: UUID
    ) -> Balance | None:
        self._ensure_active(handle)
        await self._acquire_lock(handle, user_id)
        balance = self._visible_balance(handle, user_id)
        if balance is None:
            # Nothing to lock
            self._release_lock(handle, user_id)
        return balance

    async def create_balance(
        self, handle: MemoryStoreTransaction, user_id: UUID, initial: int = 0
    ) -> Balance:
        self._ensure_active(handle)
        if self._visible_balance(handle, user_id) is not None:
            raise ConstraintViolation(
                "Balance already exists", details={"user_id": str(user_id)}
            )
        # A concurrent creator holds the lock until it resolves
        await self._acquire_lock(handle, user_id)
        if user_id in self._balances:
            self._release_lock(handle, user_id)
            raise ConstraintViolation(
                "Balance already exists", details={"user_id": str(user_id)}
            )
        balance = Balance(user_id=user_id, balance_cents=initial, updated_at=self._clock())
        handle.pending_balances[user_id] = balance
        return balance.model_copy()

    async def save_balance(self, handle: MemoryStoreTransaction, balance: Balance) -> None:
        self._ensure_active(handle)
        await self._acquire_lock(handle, balance.user_id)
        handle.pending_balances[balance.user_id] = balance.model_copy(
            update={"updated_at": self._clock()}
        )

    async def save_transaction(
        self, handle: MemoryStoreTransaction, transaction: Transaction
    ) -> Transaction:
        self._ensure_active(handle)
        transaction_id = transaction.transaction_id
        if (
            transaction_id in self._transactions
            or transaction_id in handle.pending_transactions
            or transaction_id in self._pending_ids
        ):
            raise ConstraintViolation(
                "Duplicate transaction_id",
                details={"transaction_id": str(transaction_id)},
            )
        stored = transaction.model_copy(update={"created_at": self._clock()})
        handle.pending_transactions[transaction_id] = stored
        self._pending_ids[transaction_id] = handle.id
        return stored

    # ------------------------------------------------------------------
    # Read queries and alerts
    # ------------------------------------------------------------------

    async def query_recent_transactions(
        self,
        user_id: UUID,
        since: datetime | None = None,
        until: datetime | None = None,
        order_desc: bool = True,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Transaction]:
        rows = [
            tx
            for tx in self._transactions.values()
            if tx.user_id == user_id
            and (since is None or tx.created_at >= since)
            and (until is None or tx.created_at <= until)
            and (before is None or tx.created_at < before)
        ]
        rows.sort(key=lambda tx: (tx.created_at, tx.transaction_id), reverse=order_desc)
        return rows[:limit]

    async def count_high_value(
        self,
        user_id: UUID,
        since: datetime,
        until: datetime,
        min_amount_cents: int,
    ) -> int:
        return sum(
            1
            for tx in self._transactions.values()
            if tx.user_id == user_id
            and since <= tx.created_at <= until
            and tx.amount_cents >= min_amount_cents
        )

    async def save_fraud_alert(self, alert: FraudAlert) -> FraudAlert:
        stored = alert.model_copy(update={"created_at": self._clock()})
        self._alerts.append(stored)
        return stored

    async def list_fraud_alerts(self, user_id: UUID, limit: int = 50) -> list[FraudAlert]:
        alerts = [alert for alert in self._alerts if alert.user_id == user_id]
        alerts.sort(key=lambda alert: alert.created_at, reverse=True)
        return alerts[:limit]

    async def get_balance(self, user_id: UUID) -> Balance | None:
        balance = self._balances.get(user_id)
        return balance.model_copy() if balance is not None else None

    async def ping(self) -> bool:
        return True
