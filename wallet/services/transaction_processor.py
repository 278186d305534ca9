"""Ledger transaction processing.

One ``process`` call is one unit of work:

    START -> VALIDATING -> IDEMPOTENT_RETURN
                        -> LOCKING -> COMPUTING -> REJECTED_INSUFFICIENT
                                               -> PERSISTING -> COMMITTED
                                                  -> EVALUATING_FRAUD -> DONE

ROLLED_BACK is reachable from LOCKING, COMPUTING and PERSISTING, and every
opened store transaction ends in RELEASED.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from wallet.core.errors import (
    ConstraintViolation,
    InsufficientFunds,
    InvalidRequest,
    SerializationConflict,
    is_client_facing,
)
from wallet.core.money import format_cents, parse_amount
from wallet.domain.models.ledger import Balance, Transaction, TransactionType
from wallet.persistence.base import IsolationLevel, LedgerStore, StoreTransaction
from wallet.schemas.transaction import CreateTransactionRequest
from wallet.services.fraud_service import FraudEvaluator

logger = logging.getLogger(__name__)


class ProcessingStage(str, Enum):
    START = "START"
    VALIDATING = "VALIDATING"
    IDEMPOTENT_RETURN = "IDEMPOTENT_RETURN"
    LOCKING = "LOCKING"
    COMPUTING = "COMPUTING"
    REJECTED_INSUFFICIENT = "REJECTED_INSUFFICIENT"
    PERSISTING = "PERSISTING"
    COMMITTED = "COMMITTED"
    EVALUATING_FRAUD = "EVALUATING_FRAUD"
    DONE = "DONE"
    ROLLED_BACK = "ROLLED_BACK"
    RELEASED = "RELEASED"


@dataclass
class ProcessingTrace:
    """Stages visited by one ``process`` call, for debug and error logs."""

    transaction_id: UUID
    stages: list[ProcessingStage] = field(default_factory=lambda: [ProcessingStage.START])

    @property
    def current(self) -> ProcessingStage:
        return self.stages[-1]

    def advance(self, stage: ProcessingStage) -> None:
        self.stages.append(stage)
        logger.debug(
            "Transaction stage",
            extra={"transaction_id": str(self.transaction_id), "stage": stage.value},
        )

    def names(self) -> list[str]:
        return [stage.value for stage in self.stages]


@dataclass
class ProcessResult:
    transaction: Transaction
    balance_cents: int
    flagged: bool = False


@dataclass
class _UnitOfWorkResult:
    transaction: Transaction
    balance_cents: int
    created: bool


class TransactionProcessor:
    """Applies deposits and withdrawals to user balances.

    Same-user requests are linearized by the balance row lock taken inside a
    SERIALIZABLE store transaction. A repeated ``transaction_id`` returns the
    stored transaction without applying funds again.

    Units aborted by the storage engine are retried after a randomized,
    exponentially growing delay so contending requests spread out.
    """

    def __init__(
        self,
        store: LedgerStore,
        fraud_evaluator: FraudEvaluator,
        serialization_retries: int = 5,
        retry_backoff_ms: float = 10.0,
    ):
        self.store = store
        self.fraud_evaluator = fraud_evaluator
        self.serialization_retries = serialization_retries
        self.retry_backoff_ms = retry_backoff_ms

    async def process(self, request: CreateTransactionRequest) -> ProcessResult:
        """Process one transaction request.

        Raises:
            InvalidRequest: For malformed amounts, insufficient funds, and any
                unexpected failure (wrapped, original message preserved).
            ConstraintViolation: When a concurrent request raced on the same
                transaction_id or serialization retries were exhausted.
        """
        trace = ProcessingTrace(transaction_id=request.transaction_id)
        try:
            trace.advance(ProcessingStage.VALIDATING)
            amount_cents = parse_amount(request.amount)
            outcome = await self._apply_with_retry(request, amount_cents, trace)
        except Exception as exc:
            if is_client_facing(exc):
                raise
            raise InvalidRequest(
                str(exc) or type(exc).__name__,
                details={"cause": type(exc).__name__},
            ) from exc

        flagged = False
        if outcome.created:
            trace.advance(ProcessingStage.EVALUATING_FRAUD)
            flagged = await self._evaluate_fraud(outcome.transaction)
        trace.advance(ProcessingStage.DONE)

        return ProcessResult(
            transaction=outcome.transaction,
            balance_cents=outcome.balance_cents,
            flagged=flagged,
        )

    async def _apply_with_retry(
        self,
        request: CreateTransactionRequest,
        amount_cents: int,
        trace: ProcessingTrace,
    ) -> _UnitOfWorkResult:
        attempt = 0
        while True:
            try:
                return await self._apply(request, amount_cents, trace)
            except SerializationConflict:
                if attempt >= self.serialization_retries:
                    raise
                attempt += 1
                delay = self._backoff_delay(attempt)
                logger.info(
                    "Retrying transaction after serialization conflict",
                    extra={
                        "transaction_id": str(request.transaction_id),
                        "user_id": str(request.user_id),
                        "attempt": attempt,
                        "delay_ms": round(delay * 1000, 1),
                    },
                )
                await asyncio.sleep(delay)

    def _backoff_delay(self, attempt: int) -> float:
        """Full-jitter exponential delay in seconds before retry ``attempt`` (1-based)."""
        ceiling_ms = self.retry_backoff_ms * 2 ** (attempt - 1)
        return random.uniform(0, ceiling_ms) / 1000

    async def _apply(
        self,
        request: CreateTransactionRequest,
        amount_cents: int,
        trace: ProcessingTrace,
    ) -> _UnitOfWorkResult:
        handle = await self.store.begin_transaction(IsolationLevel.SERIALIZABLE)
        try:
            existing = await self.store.find_transaction_by_id(handle, request.transaction_id)
            if existing is not None:
                trace.advance(ProcessingStage.IDEMPOTENT_RETURN)
                owner_balance = await self.store.find_balance(handle, existing.user_id)
                await self.store.commit(handle)
                return _UnitOfWorkResult(
                    transaction=existing,
                    balance_cents=owner_balance.balance_cents if owner_balance else 0,
                    created=False,
                )

            trace.advance(ProcessingStage.LOCKING)
            balance = await self._lock_or_create_balance(handle, request.user_id)

            trace.advance(ProcessingStage.COMPUTING)
            new_balance = self._compute_balance(balance, amount_cents, request.type)

            trace.advance(ProcessingStage.PERSISTING)
            stored = await self.store.save_transaction(
                handle,
                Transaction(
                    transaction_id=request.transaction_id,
                    user_id=request.user_id,
                    amount_cents=amount_cents,
                    type=request.type,
                ),
            )
            await self.store.save_balance(
                handle, balance.model_copy(update={"balance_cents": new_balance})
            )
            await self.store.commit(handle)
            trace.advance(ProcessingStage.COMMITTED)

            logger.info(
                "Transaction committed",
                extra={
                    "transaction_id": str(stored.transaction_id),
                    "user_id": str(stored.user_id),
                    "type": stored.type.value,
                    "amount": format_cents(stored.amount_cents),
                    "balance": format_cents(new_balance),
                },
            )
            return _UnitOfWorkResult(transaction=stored, balance_cents=new_balance, created=True)
        except InsufficientFunds:
            trace.advance(ProcessingStage.REJECTED_INSUFFICIENT)
            await self._rollback(handle, trace)
            raise
        except ConstraintViolation:
            await self._rollback(handle, trace)
            raise
        except Exception:
            await self._rollback(handle, trace)
            logger.exception(
                "Transaction processing failed",
                extra={
                    "transaction_id": str(request.transaction_id),
                    "user_id": str(request.user_id),
                    "stages": trace.names(),
                },
            )
            raise
        finally:
            await self._release(handle, trace)

    async def _lock_or_create_balance(self, handle: StoreTransaction, user_id: UUID) -> Balance:
        balance = await self.store.lock_balance_for_update(handle, user_id)
        if balance is not None:
            return balance

        try:
            await self.store.create_balance(handle, user_id, initial=0)
        except SerializationConflict:
            raise
        except ConstraintViolation:
            # A concurrent request created the row first; lock theirs instead
            logger.debug("Balance creation race lost", extra={"user_id": str(user_id)})

        balance = await self.store.lock_balance_for_update(handle, user_id)
        if balance is None:
            raise RuntimeError(f"Balance row for user {user_id} missing after creation")
        return balance

    @staticmethod
    def _compute_balance(balance: Balance, amount_cents: int, type_: TransactionType) -> int:
        if type_ == TransactionType.DEPOSIT:
            return balance.balance_cents + amount_cents
        if amount_cents > balance.balance_cents:
            raise InsufficientFunds(
                "insufficient_funds",
                details={
                    "balance_cents": balance.balance_cents,
                    "amount_cents": amount_cents,
                },
            )
        return balance.balance_cents - amount_cents

    async def _evaluate_fraud(self, transaction: Transaction) -> bool:
        try:
            return await self.fraud_evaluator.check_and_flag_if_suspicious(transaction)
        except Exception:
            # Funds are already committed; report the transaction as not flagged
            logger.exception(
                "Fraud evaluation failed",
                extra={
                    "transaction_id": str(transaction.transaction_id),
                    "user_id": str(transaction.user_id),
                },
            )
            return False

    async def _rollback(self, handle: StoreTransaction, trace: ProcessingTrace) -> None:
        try:
            await self.store.rollback(handle)
        except Exception:
            logger.exception(
                "Rollback failed",
                extra={"transaction_id": str(trace.transaction_id), "stages": trace.names()},
            )
        else:
            trace.advance(ProcessingStage.ROLLED_BACK)

    async def _release(self, handle: StoreTransaction, trace: ProcessingTrace) -> None:
        try:
            await self.store.release(handle)
        except Exception:
            logger.exception(
                "Releasing store transaction failed",
                extra={"transaction_id": str(trace.transaction_id), "stages": trace.names()},
            )
        else:
            trace.advance(ProcessingStage.RELEASED)
