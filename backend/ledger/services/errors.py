"""
Ledger error taxonomy.

Every rejection here is user-correctable input, never a transient fault, so
nothing in the ledger retries on a LedgerError.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Reasons an operation can be rejected."""
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_PRICE = "invalid_price"
    INVALID_FEES = "invalid_fees"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_QUANTITY = "insufficient_quantity"
    QUANTITY_EXCEEDS_POSITION = "quantity_exceeds_position"
    POSITION_NOT_FOUND = "position_not_found"
    ACCOUNT_NOT_FOUND = "account_not_found"


NOT_FOUND_KINDS = frozenset({ErrorKind.POSITION_NOT_FOUND, ErrorKind.ACCOUNT_NOT_FOUND})


class LedgerError(Exception):
    """Raised when an operation is rejected before any state is mutated."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or kind.value.replace("_", " ").capitalize()
        super().__init__(self.message)

    @property
    def is_not_found(self) -> bool:
        return self.kind in NOT_FOUND_KINDS

    def __repr__(self) -> str:
        return f"LedgerError(kind={self.kind.value!r}, message={self.message!r})"
