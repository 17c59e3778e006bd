"""Custody ledgers: plain and confidential tokens"""
from cipher_otc.core.ledger.token import (
    TokenLedger,
    LedgerSnapshot,
    PlainToken,
    ConfidentialToken,
)

__all__ = [
    "TokenLedger",
    "LedgerSnapshot",
    "PlainToken",
    "ConfidentialToken",
]
