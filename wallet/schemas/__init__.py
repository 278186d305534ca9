"""Schemas package for request/response models."""

from wallet.schemas.transaction import (
    BalanceResponse,
    CamelModel,
    CreateTransactionRequest,
    ErrorResponse,
    FraudAlertItem,
    FraudAlertListResponse,
    TransactionHistoryItem,
    TransactionHistoryResponse,
    TransactionResponse,
)

__all__ = [
    "CamelModel",
    # Transactions
    "CreateTransactionRequest",
    "TransactionResponse",
    "TransactionHistoryItem",
    "TransactionHistoryResponse",
    # Balances
    "BalanceResponse",
    # Fraud alerts
    "FraudAlertItem",
    "FraudAlertListResponse",
    # Errors
    "ErrorResponse",
]
