"""Unit tests for the PostgreSQL ledger store (mocked sessions)."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
)

from wallet.core.errors import ConstraintViolation, SerializationConflict, StoreUnavailable
from wallet.domain.models.ledger import Balance, FraudAlert, Transaction, TransactionType
from wallet.persistence.base import IsolationLevel, TransactionState
from wallet.persistence.sql_store import SqlLedgerStore, SqlStoreTransaction, translate_errors

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeDriverError(Exception):
    """Driver exception carrying a PostgreSQL SQLSTATE."""

    def __init__(self, sqlstate: str | None = None):
        super().__init__(f"driver error {sqlstate}")
        self.sqlstate = sqlstate


def make_session(fetchone=None, fetchall=None, scalar=None):
    session = AsyncMock()
    result = MagicMock()
    result.fetchone.return_value = fetchone
    result.fetchall.return_value = fetchall or []
    result.scalar_one.return_value = scalar
    session.execute = AsyncMock(return_value=result)
    session.__aenter__.return_value = session
    session.__aexit__.return_value = False
    return session


def executed_sql(session) -> str:
    return str(session.execute.await_args.args[0])


def executed_params(session) -> dict:
    return session.execute.await_args.args[1]


class TestTranslateErrors:
    """Test driver error mapping."""

    @pytest.mark.parametrize("sqlstate", ["40001", "40P01"])
    def test_serialization_failures(self, sqlstate):
        with pytest.raises(SerializationConflict) as exc_info:
            with translate_errors("commit"):
                raise OperationalError("COMMIT", {}, FakeDriverError(sqlstate))
        assert exc_info.value.details == {"operation": "commit"}

    def test_unique_violation(self):
        with pytest.raises(ConstraintViolation) as exc_info:
            with translate_errors("save_transaction"):
                raise IntegrityError("INSERT", {}, FakeDriverError("23505"))
        assert not isinstance(exc_info.value, SerializationConflict)

    @pytest.mark.parametrize("error_class", [OperationalError, InterfaceError])
    def test_connection_errors(self, error_class):
        with pytest.raises(StoreUnavailable):
            with translate_errors("find_balance"):
                raise error_class("SELECT 1", {}, FakeDriverError())

    def test_invalidated_connection(self):
        with pytest.raises(StoreUnavailable):
            with translate_errors("find_balance"):
                raise DBAPIError("SELECT 1", {}, FakeDriverError(), connection_invalidated=True)

    def test_socket_errors(self):
        with pytest.raises(StoreUnavailable):
            with translate_errors("ping"):
                raise ConnectionRefusedError("refused")

    def test_other_database_errors_propagate(self):
        with pytest.raises(DataError):
            with translate_errors("save_balance"):
                raise DataError("UPDATE", {}, FakeDriverError("22003"))

    def test_non_database_errors_propagate(self):
        with pytest.raises(ValueError):
            with translate_errors("save_balance"):
                raise ValueError("bad")


class TestUnitOfWork:
    """Test session handling for store transactions."""

    @pytest.mark.asyncio
    async def test_begin_sets_isolation_level(self):
        session = make_session()
        store = SqlLedgerStore(MagicMock(return_value=session))

        handle = await store.begin_transaction(IsolationLevel.SERIALIZABLE)

        session.connection.assert_awaited_once_with(
            execution_options={"isolation_level": "SERIALIZABLE"}
        )
        assert handle.session is session
        assert handle.is_active

    @pytest.mark.asyncio
    async def test_begin_failure_closes_session(self):
        session = make_session()
        session.connection.side_effect = OperationalError("BEGIN", {}, FakeDriverError())
        store = SqlLedgerStore(MagicMock(return_value=session))

        with pytest.raises(StoreUnavailable):
            await store.begin_transaction()
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_then_release(self):
        session = make_session()
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)

        await store.commit(handle)
        await store.commit(handle)
        await store.release(handle)
        await store.release(handle)

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()
        session.close.assert_awaited_once()
        assert handle.state == TransactionState.COMMITTED
        assert handle.released

    @pytest.mark.asyncio
    async def test_release_rolls_back_active(self):
        session = make_session()
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)

        await store.release(handle)

        session.rollback.assert_awaited_once()
        session.close.assert_awaited_once()
        assert handle.state == TransactionState.ROLLED_BACK

    @pytest.mark.asyncio
    async def test_commit_serialization_failure(self):
        session = make_session()
        session.commit.side_effect = OperationalError("COMMIT", {}, FakeDriverError("40001"))
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)

        with pytest.raises(SerializationConflict):
            await store.commit(handle)
        assert handle.state == TransactionState.ACTIVE


class TestWrites:
    """Test statements issued inside a unit of work."""

    @pytest.mark.asyncio
    async def test_lock_balance_for_update(self):
        user_id = uuid4()
        session = make_session(fetchone=(user_id, 500, NOW))
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)

        balance = await store.lock_balance_for_update(handle, user_id)

        assert balance == Balance(user_id=user_id, balance_cents=500, updated_at=NOW)
        assert "FOR UPDATE" in executed_sql(session)
        assert executed_params(session) == {"user_id": user_id}

    @pytest.mark.asyncio
    async def test_lock_missing_balance(self):
        session = make_session(fetchone=None)
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)
        assert await store.lock_balance_for_update(handle, uuid4()) is None

    @pytest.mark.asyncio
    async def test_create_balance_uses_savepoint(self):
        user_id = uuid4()
        session = make_session(fetchone=(user_id, 0, NOW))
        session.begin_nested = MagicMock(return_value=AsyncMock())
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)

        balance = await store.create_balance(handle, user_id)

        session.begin_nested.assert_called_once()
        assert balance.balance_cents == 0
        assert "INSERT INTO wallet.user_balance" in executed_sql(session)

    @pytest.mark.asyncio
    async def test_create_balance_conflict(self):
        session = make_session()
        nested = AsyncMock()
        nested.__aexit__.return_value = False
        session.begin_nested = MagicMock(return_value=nested)
        session.execute.side_effect = IntegrityError("INSERT", {}, FakeDriverError("23505"))
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)

        with pytest.raises(ConstraintViolation):
            await store.create_balance(handle, uuid4())

    @pytest.mark.asyncio
    async def test_save_transaction(self):
        tx = Transaction(
            transaction_id=uuid4(),
            user_id=uuid4(),
            amount_cents=1230,
            type=TransactionType.WITHDRAW,
        )
        session = make_session(
            fetchone=(tx.transaction_id, tx.user_id, 1230, "withdraw", NOW),
        )
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)

        stored = await store.save_transaction(handle, tx)

        assert stored.created_at == NOW
        assert stored.type == TransactionType.WITHDRAW
        assert executed_params(session)["type"] == "withdraw"
        assert "CAST(:type AS wallet.transaction_type)" in executed_sql(session)

    @pytest.mark.asyncio
    async def test_save_transaction_duplicate(self):
        session = make_session()
        session.execute.side_effect = IntegrityError("INSERT", {}, FakeDriverError("23505"))
        store = SqlLedgerStore(MagicMock())
        handle = SqlStoreTransaction(isolation=IsolationLevel.SERIALIZABLE, session=session)

        with pytest.raises(ConstraintViolation):
            await store.save_transaction(
                handle,
                Transaction(
                    transaction_id=uuid4(),
                    user_id=uuid4(),
                    amount_cents=1,
                    type=TransactionType.DEPOSIT,
                ),
            )


class TestQueries:
    """Test read queries run in their own session."""

    @pytest.mark.asyncio
    async def test_query_recent_transactions_with_before(self):
        user_id = uuid4()
        tx_id = uuid4()
        session = make_session(fetchall=[(tx_id, user_id, 100, "deposit", NOW)])
        store = SqlLedgerStore(MagicMock(return_value=session))

        rows = await store.query_recent_transactions(user_id, limit=5, before=NOW)

        assert [tx.transaction_id for tx in rows] == [tx_id]
        sql = executed_sql(session)
        assert "created_at < :before" in sql
        assert "ORDER BY created_at DESC, transaction_id DESC" in sql
        assert executed_params(session) == {"user_id": user_id, "limit": 5, "before": NOW}

    @pytest.mark.asyncio
    async def test_query_window_ascending(self):
        session = make_session()
        store = SqlLedgerStore(MagicMock(return_value=session))

        await store.query_recent_transactions(uuid4(), since=NOW, until=NOW, order_desc=False)

        sql = executed_sql(session)
        assert "created_at >= :since" in sql
        assert "created_at <= :until" in sql
        assert "ASC" in sql

    @pytest.mark.asyncio
    async def test_count_high_value(self):
        session = make_session(scalar=4)
        store = SqlLedgerStore(MagicMock(return_value=session))

        count = await store.count_high_value(uuid4(), NOW, NOW, min_amount_cents=10_000)

        assert count == 4
        assert executed_params(session)["min_amount_cents"] == 10_000

    @pytest.mark.asyncio
    async def test_save_fraud_alert(self):
        alert = FraudAlert(user_id=uuid4(), transaction_id=uuid4(), reason="reason")
        session = make_session(
            fetchone=(alert.id, alert.user_id, alert.transaction_id, alert.reason, NOW),
        )
        session.begin = MagicMock(return_value=AsyncMock())
        store = SqlLedgerStore(MagicMock(return_value=session))

        stored = await store.save_fraud_alert(alert)

        assert stored.id == alert.id
        assert stored.created_at == NOW

    @pytest.mark.asyncio
    async def test_get_balance_missing(self):
        session = make_session(fetchone=None)
        store = SqlLedgerStore(MagicMock(return_value=session))
        assert await store.get_balance(uuid4()) is None

    @pytest.mark.asyncio
    async def test_ping(self):
        session = make_session()
        store = SqlLedgerStore(MagicMock(return_value=session))
        assert await store.ping() is True

    @pytest.mark.asyncio
    async def test_ping_unreachable(self):
        session = make_session()
        session.execute.side_effect = ConnectionRefusedError("refused")
        store = SqlLedgerStore(MagicMock(return_value=session))
        assert await store.ping() is False
