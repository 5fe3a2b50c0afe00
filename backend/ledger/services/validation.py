"""
Operation validation service.

Pre-checks buy and sell inputs before any calculation runs. Results are
returned as ValidationResult values rather than raised, so callers decide how
to surface them.
"""
from dataclasses import dataclass
from decimal import Context, Decimal
from typing import Any, Optional

from ledger.database import AMOUNT_PRECISION, AMOUNT_SCALE
from ledger.models.position import PositionStatus
from ledger.services.calculations import AMOUNT_QUANTUM
from ledger.services.errors import ErrorKind, LedgerError


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a single operation."""
    is_valid: bool
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def reject(cls, error: ErrorKind, message: str) -> "ValidationResult":
        return cls(is_valid=False, error=error, message=message)

    def raise_for_error(self) -> None:
        """Raise LedgerError if the result is a rejection."""
        if not self.is_valid:
            raise LedgerError(self.error, self.message)


class OperationValidator:
    """Validate operation inputs against balances and positions."""

    @staticmethod
    def _exceeds_scale(value: Decimal) -> bool:
        """True when value carries more decimal places than the database stores."""
        if value.as_tuple().exponent >= -AMOUNT_SCALE:
            return False
        rounded = value.quantize(AMOUNT_QUANTUM, context=Context(prec=AMOUNT_PRECISION, traps=[]))
        return rounded != value

    @staticmethod
    def validate_amounts(op: Any) -> ValidationResult:
        """Checks shared by buys and sells: quantity, price, then fees."""
        if op.quantity <= 0:
            return ValidationResult.reject(
                ErrorKind.INVALID_QUANTITY,
                "Quantity must be greater than zero"
            )
        if OperationValidator._exceeds_scale(op.quantity):
            return ValidationResult.reject(
                ErrorKind.INVALID_QUANTITY,
                f"Quantity cannot have more than {AMOUNT_SCALE} decimal places"
            )

        if op.unit_price <= 0:
            return ValidationResult.reject(
                ErrorKind.INVALID_PRICE,
                "Unit price must be greater than zero"
            )
        if OperationValidator._exceeds_scale(op.unit_price):
            return ValidationResult.reject(
                ErrorKind.INVALID_PRICE,
                f"Unit price cannot have more than {AMOUNT_SCALE} decimal places"
            )

        if op.fees < 0:
            return ValidationResult.reject(
                ErrorKind.INVALID_FEES,
                "Fees cannot be negative"
            )
        if OperationValidator._exceeds_scale(op.fees):
            return ValidationResult.reject(
                ErrorKind.INVALID_FEES,
                f"Fees cannot have more than {AMOUNT_SCALE} decimal places"
            )

        return ValidationResult.ok()

    @staticmethod
    def validate_buy(op: Any, available_balance: Decimal) -> ValidationResult:
        """
        Validate a buy operation.

        Args:
            op: Operation with quantity, unit_price and fees
            available_balance: Cash available on the funding account

        Returns:
            ValidationResult; error is INVALID_QUANTITY, INVALID_PRICE,
            INVALID_FEES or INSUFFICIENT_FUNDS when rejected
        """
        result = OperationValidator.validate_amounts(op)
        if not result.is_valid:
            return result

        total_cost = op.quantity * op.unit_price + op.fees
        if total_cost > available_balance:
            return ValidationResult.reject(
                ErrorKind.INSUFFICIENT_FUNDS,
                f"Insufficient funds. Required: {total_cost:.2f}, available: {available_balance:.2f}"
            )

        return ValidationResult.ok()

    @staticmethod
    def validate_sell(op: Any, position: Optional[Any]) -> ValidationResult:
        """
        Validate a sell operation.

        Args:
            op: Operation with quantity, unit_price and fees
            position: Current position for the identifier, or None

        Returns:
            ValidationResult; error is INVALID_QUANTITY, INVALID_PRICE,
            INVALID_FEES, POSITION_NOT_FOUND or INSUFFICIENT_QUANTITY when rejected
        """
        result = OperationValidator.validate_amounts(op)
        if not result.is_valid:
            return result

        if position is None or position.status == PositionStatus.CLOSED:
            return ValidationResult.reject(
                ErrorKind.POSITION_NOT_FOUND,
                "No open position for this identifier"
            )

        if op.quantity > position.total_quantity:
            return ValidationResult.reject(
                ErrorKind.INSUFFICIENT_QUANTITY,
                f"Insufficient quantity. Available: {position.total_quantity}, requested: {op.quantity}"
            )

        return ValidationResult.ok()

    @staticmethod
    def validate_dividend(value_per_share: Decimal, position: Optional[Any]) -> ValidationResult:
        """Validate a dividend credit against the receiving position."""
        if value_per_share <= 0:
            return ValidationResult.reject(
                ErrorKind.INVALID_PRICE,
                "Dividend value per share must be greater than zero"
            )
        if OperationValidator._exceeds_scale(value_per_share):
            return ValidationResult.reject(
                ErrorKind.INVALID_PRICE,
                f"Dividend value per share cannot have more than {AMOUNT_SCALE} decimal places"
            )

        if position is None or position.status == PositionStatus.CLOSED:
            return ValidationResult.reject(
                ErrorKind.POSITION_NOT_FOUND,
                "No open position for this identifier"
            )

        return ValidationResult.ok()
