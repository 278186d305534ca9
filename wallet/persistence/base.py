"""Base classes for the ledger store layer.

The store owns durable Transaction, Balance and FraudAlert records. Writes to
Transaction and Balance happen inside an explicit store transaction (a
``StoreTransaction`` handle) opened by the caller; read queries used by the
fraud heuristic and the history endpoints run in their own short transaction.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from wallet.domain.models.ledger import Balance, FraudAlert, Transaction


class IsolationLevel(str, Enum):
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


class TransactionState(str, Enum):
    ACTIVE = "ACTIVE"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass
class StoreTransaction:
    """Handle for one unit of work against the store."""

    isolation: IsolationLevel
    id: UUID = field(default_factory=uuid4)
    state: TransactionState = TransactionState.ACTIVE
    released: bool = False

    @property
    def is_active(self) -> bool:
        return self.state == TransactionState.ACTIVE and not self.released


class LedgerStore(ABC):
    """Contract consumed by the transaction processor and fraud evaluator.

    Implementations raise ``StoreUnavailable`` on connectivity loss,
    ``ConstraintViolation`` on uniqueness conflicts and
    ``SerializationConflict`` when the engine aborts a unit of work to keep
    serializable isolation.
    """

    @abstractmethod
    async def begin_transaction(
        self, isolation: IsolationLevel = IsolationLevel.SERIALIZABLE
    ) -> StoreTransaction:
        """Open a unit of work at the requested isolation level."""

    @abstractmethod
    async def commit(self, handle: StoreTransaction) -> None:
        """Commit the unit of work. No-op if already committed or rolled back."""

    @abstractmethod
    async def rollback(self, handle: StoreTransaction) -> None:
        """Roll back the unit of work. No-op if already committed or rolled back."""

    @abstractmethod
    async def release(self, handle: StoreTransaction) -> None:
        """Free the handle's resources, rolling back first if still active."""

    @abstractmethod
    async def find_transaction_by_id(
        self, handle: StoreTransaction, transaction_id: UUID
    ) -> Transaction | None: ...

    @abstractmethod
    async def find_balance(self, handle: StoreTransaction, user_id: UUID) -> Balance | None:
        """Read a balance row without locking it."""

    @abstractmethod
    async def lock_balance_for_update(
        self, handle: StoreTransaction, user_id: UUID
    ) -> Balance | None:
        """Read a balance row and hold an exclusive lock on it until the handle resolves."""

    @abstractmethod
    async def create_balance(
        self, handle: StoreTransaction, user_id: UUID, initial: int = 0
    ) -> Balance:
        """Insert a new balance row.

        Raises:
            ConstraintViolation: If a row for ``user_id`` already exists.
        """

    @abstractmethod
    async def save_balance(self, handle: StoreTransaction, balance: Balance) -> None: ...

    @abstractmethod
    async def save_transaction(
        self, handle: StoreTransaction, transaction: Transaction
    ) -> Transaction:
        """Insert a transaction row and return it with ``created_at`` assigned.

        Raises:
            ConstraintViolation: If ``transaction_id`` already exists.
        """

    @abstractmethod
    async def query_recent_transactions(
        self,
        user_id: UUID,
        since: datetime | None = None,
        until: datetime | None = None,
        order_desc: bool = True,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Transaction]:
        """List committed transactions for a user.

        ``since`` and ``until`` are inclusive bounds, ``before`` is exclusive.
        """

    @abstractmethod
    async def count_high_value(
        self,
        user_id: UUID,
        since: datetime,
        until: datetime,
        min_amount_cents: int,
    ) -> int: ...

    @abstractmethod
    async def save_fraud_alert(self, alert: FraudAlert) -> FraudAlert: ...

    @abstractmethod
    async def list_fraud_alerts(self, user_id: UUID, limit: int = 50) -> list[FraudAlert]:
        """List alerts for a user, newest first."""

    @abstractmethod
    async def get_balance(self, user_id: UUID) -> Balance | None:
        """Read the committed balance outside any caller-managed unit of work."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the backing engine is reachable."""
