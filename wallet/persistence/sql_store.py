"""PostgreSQL ledger store using SQLAlchemy 2.0 async and asyncpg.

Tables: wallet.ledger_transaction, wallet.user_balance, wallet.fraud_alert

Each StoreTransaction owns one AsyncSession whose connection is opened at the
requested isolation level. Balance locks are plain ``SELECT ... FOR UPDATE``
row locks held until the session commits or rolls back.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wallet.core.errors import ConstraintViolation, SerializationConflict, StoreUnavailable
from wallet.domain.models.ledger import Balance, FraudAlert, Transaction, TransactionType
from wallet.persistence.base import (
    IsolationLevel,
    LedgerStore,
    StoreTransaction,
    TransactionState,
)

logger = logging.getLogger(__name__)

# could_not_serialize, deadlock_detected
SERIALIZATION_FAILURE_SQLSTATES = frozenset({"40001", "40P01"})

TRANSACTION_COLUMNS = "transaction_id, user_id, amount_cents, type, created_at"
BALANCE_COLUMNS = "user_id, balance_cents, updated_at"
ALERT_COLUMNS = "id, user_id, transaction_id, reason, created_at"


def _sqlstate(exc: DBAPIError) -> str | None:
    """Extract the PostgreSQL SQLSTATE from a wrapped driver error."""
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return getattr(getattr(orig, "__cause__", None), "sqlstate", None)


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Map SQLAlchemy/driver errors onto the ledger store error contract."""
    try:
        yield
    except DBAPIError as exc:
        if _sqlstate(exc) in SERIALIZATION_FAILURE_SQLSTATES:
            raise SerializationConflict(
                "Concurrent update detected, retry the request",
                details={"operation": operation},
            ) from exc
        if isinstance(exc, IntegrityError):
            raise ConstraintViolation(
                "Uniqueness constraint violated",
                details={"operation": operation},
            ) from exc
        if exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError)):
            raise StoreUnavailable(
                f"Ledger store unavailable: {exc.orig}",
                details={"operation": operation},
            ) from exc
        raise
    except (OSError, TimeoutError) as exc:
        raise StoreUnavailable(
            f"Ledger store unavailable: {exc}",
            details={"operation": operation},
        ) from exc


@dataclass
class SqlStoreTransaction(StoreTransaction):
    session: AsyncSession | None = None


class SqlLedgerStore(LedgerStore):
    """Ledger store for the wallet schema."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def begin_transaction(
        self, isolation: IsolationLevel = IsolationLevel.SERIALIZABLE
    ) -> SqlStoreTransaction:
        session = self.session_factory()
        try:
            with translate_errors("begin_transaction"):
                await session.connection(execution_options={"isolation_level": isolation.value})
        except BaseException:
            await session.close()
            raise
        return SqlStoreTransaction(isolation=isolation, session=session)

    async def commit(self, handle: SqlStoreTransaction) -> None:
        if not handle.is_active:
            return
        with translate_errors("commit"):
            await handle.session.commit()
        handle.state = TransactionState.COMMITTED

    async def rollback(self, handle: SqlStoreTransaction) -> None:
        if not handle.is_active:
            return
        try:
            with translate_errors("rollback"):
                await handle.session.rollback()
        finally:
            handle.state = TransactionState.ROLLED_BACK

    async def release(self, handle: SqlStoreTransaction) -> None:
        if handle.released:
            return
        try:
            await self.rollback(handle)
        finally:
            handle.released = True
            await handle.session.close()

    # ------------------------------------------------------------------
    # Reads and writes inside a unit of work
    # ------------------------------------------------------------------

    async def find_transaction_by_id(
        self, handle: SqlStoreTransaction, transaction_id: UUID
    ) -> Transaction | None:
        with translate_errors("find_transaction_by_id"):
            result = await handle.session.execute(
                text(f"""
                    SELECT {TRANSACTION_COLUMNS}
                    FROM wallet.ledger_transaction
                    WHERE transaction_id = :transaction_id
                """),
                {"transaction_id": transaction_id},
            )
            row = result.fetchone()
        return self._row_to_transaction(row) if row is not None else None

    async def find_balance(self, handle: SqlStoreTransaction, user_id: UUID) -> Balance | None:
        with translate_errors("find_balance"):
            result = await handle.session.execute(
                text(f"""
                    SELECT {BALANCE_COLUMNS}
                    FROM wallet.user_balance
                    WHERE user_id = :user_id
                """),
                {"user_id": user_id},
            )
            row = result.fetchone()
        return self._row_to_balance(row) if row is not None else None

    async def lock_balance_for_update(
        self, handle: SqlStoreTransaction, user_id: UUID
    ) -> Balance | None:
        with translate_errors("lock_balance_for_update"):
            result = await handle.session.execute(
                text(f"""
                    SELECT {BALANCE_COLUMNS}
                    FROM wallet.user_balance
                    WHERE user_id = :user_id
                    FOR UPDATE
                """),
                {"user_id": user_id},
            )
            row = result.fetchone()
        return self._row_to_balance(row) if row is not None else None

    async def create_balance(
        self, handle: SqlStoreTransaction, user_id: UUID, initial: int = 0
    ) -> Balance:
        # SAVEPOINT keeps the outer unit usable when a concurrent creator wins
        with translate_errors("create_balance"):
            async with handle.session.begin_nested():
                result = await handle.session.execute(
                    text(f"""
                        INSERT INTO wallet.user_balance (user_id, balance_cents, updated_at)
                        VALUES (:user_id, :balance_cents, NOW())
                        RETURNING {BALANCE_COLUMNS}
                    """),
                    {"user_id": user_id, "balance_cents": initial},
                )
                row = result.fetchone()
        return self._row_to_balance(row)

    async def save_balance(self, handle: SqlStoreTransaction, balance: Balance) -> None:
        with translate_errors("save_balance"):
            await handle.session.execute(
                text("""
                    UPDATE wallet.user_balance
                    SET balance_cents = :balance_cents,
                        updated_at = NOW()
                    WHERE user_id = :user_id
                """),
                {"user_id": balance.user_id, "balance_cents": balance.balance_cents},
            )

    async def save_transaction(
        self, handle: SqlStoreTransaction, transaction: Transaction
    ) -> Transaction:
        with translate_errors("save_transaction"):
            result = await handle.session.execute(
                text(f"""
                    INSERT INTO wallet.ledger_transaction (
                        transaction_id, user_id, amount_cents, type, created_at
                    ) VALUES (
                        :transaction_id, :user_id, :amount_cents,
                        CAST(:type AS wallet.transaction_type), NOW()
                    )
                    RETURNING {TRANSACTION_COLUMNS}
                """),
                {
                    "transaction_id": transaction.transaction_id,
                    "user_id": transaction.user_id,
                    "amount_cents": transaction.amount_cents,
                    "type": transaction.type.value,
                },
            )
            row = result.fetchone()
        return self._row_to_transaction(row)

    # ------------------------------------------------------------------
    # Read queries and alerts (own short-lived session)
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
        conditions = ["user_id = :user_id"]
        params: dict[str, Any] = {"user_id": user_id, "limit": limit}

        if since is not None:
            conditions.append("created_at >= :since")
            params["since"] = since
        if until is not None:
            conditions.append("created_at <= :until")
            params["until"] = until
        if before is not None:
            conditions.append("created_at < :before")
            params["before"] = before

        where_clause = " AND ".join(conditions)
        direction = "DESC" if order_desc else "ASC"

        with translate_errors("query_recent_transactions"):
            async with self.session_factory() as session:
                result = await session.execute(
                    text(f"""
                        SELECT {TRANSACTION_COLUMNS}
                        FROM wallet.ledger_transaction
                        WHERE {where_clause}
                        ORDER BY created_at {direction}, transaction_id {direction}
                        LIMIT :limit
                    """),
                    params,
                )
                rows = result.fetchall()
        return [self._row_to_transaction(row) for row in rows]

    async def count_high_value(
        self,
        user_id: UUID,
        since: datetime,
        until: datetime,
        min_amount_cents: int,
    ) -> int:
        with translate_errors("count_high_value"):
            async with self.session_factory() as session:
                result = await session.execute(
                    text("""
                        SELECT COUNT(*)
                        FROM wallet.ledger_transaction
                        WHERE user_id = :user_id
                          AND created_at BETWEEN :since AND :until
                          AND amount_cents >= :min_amount_cents
                    """),
                    {
                        "user_id": user_id,
                        "since": since,
                        "until": until,
                        "min_amount_cents": min_amount_cents,
                    },
                )
                count = result.scalar_one()
        return int(count)

    async def save_fraud_alert(self, alert: FraudAlert) -> FraudAlert:
        with translate_errors("save_fraud_alert"):
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    text(f"""
                        INSERT INTO wallet.fraud_alert (
                            id, user_id, transaction_id, reason, created_at
                        ) VALUES (
                            :id, :user_id, :transaction_id, :reason, NOW()
                        )
                        RETURNING {ALERT_COLUMNS}
                    """),
                    {
                        "id": alert.id,
                        "user_id": alert.user_id,
                        "transaction_id": alert.transaction_id,
                        "reason": alert.reason,
                    },
                )
                row = result.fetchone()
        return self._row_to_alert(row)

    async def list_fraud_alerts(self, user_id: UUID, limit: int = 50) -> list[FraudAlert]:
        with translate_errors("list_fraud_alerts"):
            async with self.session_factory() as session:
                result = await session.execute(
                    text(f"""
                        SELECT {ALERT_COLUMNS}
                        FROM wallet.fraud_alert
                        WHERE user_id = :user_id
                        ORDER BY created_at DESC
                        LIMIT :limit
                    """),
                    {"user_id": user_id, "limit": limit},
                )
                rows = result.fetchall()
        return [self._row_to_alert(row) for row in rows]

    async def get_balance(self, user_id: UUID) -> Balance | None:
        with translate_errors("get_balance"):
            async with self.session_factory() as session:
                result = await session.execute(
                    text(f"""
                        SELECT {BALANCE_COLUMNS}
                        FROM wallet.user_balance
                        WHERE user_id = :user_id
                    """),
                    {"user_id": user_id},
                )
                row = result.fetchone()
        return self._row_to_balance(row) if row is not None else None

    async def ping(self) -> bool:
        try:
            with translate_errors("ping"):
                async with self.session_factory() as session:
                    await session.execute(text("SELECT 1"))
        except StoreUnavailable as exc:
            logger.warning("Ledger store ping failed", extra={"error": exc.message})
            return False
        return True

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_transaction(row) -> Transaction:
        return Transaction(
            transaction_id=row[0],
            user_id=row[1],
            amount_cents=int(row[2]),
            type=TransactionType(row[3]),
            created_at=row[4],
        )

    @staticmethod
    def _row_to_balance(row) -> Balance:
        return Balance(user_id=row[0], balance_cents=int(row[1]), updated_at=row[2])

    @staticmethod
    def _row_to_alert(row) -> FraudAlert:
        return FraudAlert(
            id=row[0],
            user_id=row[1],
            transaction_id=row[2],
            reason=row[3],
            created_at=row[4],
        )
