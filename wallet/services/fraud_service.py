"""Fraud heuristic evaluated after each committed ledger write."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from wallet.core.config import FraudConfig
from wallet.core.logging import LoggerMixin
from wallet.core.money import format_cents
from wallet.domain.models.ledger import FraudAlert, Transaction
from wallet.persistence.base import LedgerStore

HIGH_VALUE_ALERT_COUNT = 3
MIN_RECENT_FETCH = 10


def utc_now() -> datetime:
    return datetime.now(UTC)


class FraudEvaluator(LoggerMixin):
    """Flags users with several high-value transactions in a trailing window.

    Runs outside the balance-update unit of work and without its lock, so two
    concurrent evaluations for the same user may both raise an alert. Alerts
    are append-only and such duplicates are kept.
    """

    def __init__(
        self,
        store: LedgerStore,
        config: FraudConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config
        self.clock = clock

    def alert_reason(self) -> str:
        return f">={HIGH_VALUE_ALERT_COUNT} high-value tx within {self.config.window_min} min"

    async def check_and_flag_if_suspicious(self, transaction: Transaction) -> bool:
        """Record a FraudAlert for ``transaction`` when the window threshold is met."""
        high = self.config.high_amount_cents
        window_min = self.config.window_min

        now = self.clock()
        since = now - timedelta(minutes=window_min)

        count = await self.store.count_high_value(
            user_id=transaction.user_id,
            since=since,
            until=now,
            min_amount_cents=high,
        )

        # Fetch at least as many rows as were counted so the filter below sees them all
        recent = await self.store.query_recent_transactions(
            user_id=transaction.user_id,
            since=since,
            until=now,
            order_desc=True,
            limit=max(count, MIN_RECENT_FETCH),
        )

        high_value = [tx for tx in recent if tx.amount_cents >= high]
        if len(high_value) < HIGH_VALUE_ALERT_COUNT:
            return False

        alert = await self.store.save_fraud_alert(
            FraudAlert(
                user_id=transaction.user_id,
                transaction_id=transaction.transaction_id,
                reason=self.alert_reason(),
            )
        )
        self.logger.warning(
            "fraud_alert_raised",
            user_id=str(transaction.user_id),
            transaction_id=str(transaction.transaction_id),
            alert_id=str(alert.id),
            high_value_count=len(high_value),
            threshold=format_cents(high),
            window_min=window_min,
        )
        return True
