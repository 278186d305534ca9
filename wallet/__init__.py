"""Wallet Ledger Service.

This service records deposits and withdrawals against per-user balances:
- Applies transactions idempotently by client-supplied transaction id
- Keeps balances consistent under concurrent requests
- Flags users with bursts of high-value transactions
- Serves transaction history and current balances
"""

__version__ = "0.1.0"
