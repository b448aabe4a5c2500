"""RevSplit commission, ledger and payout engine."""

__version__ = "1.0.0"
