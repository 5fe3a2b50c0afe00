"""
Operation model - Append-only ledger of buy, sell and dividend operations.
"""
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import String, Numeric, Date, DateTime, Enum as SQLEnum, Index, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
import enum

from ledger.database import AMOUNT_PRECISION, AMOUNT_SCALE, Base


class OperationType(str, enum.Enum):
    """Operation type enumeration."""
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"


class Operation(Base):
    """
    Operation model representing a single immutable trade record.

    Rows are only ever inserted; the position table holds the running state.
    """
    __tablename__ = "operations"

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    operation_type: Mapped[OperationType] = mapped_column(
        SQLEnum(OperationType, native_enum=False),
        nullable=False
    )

    # References
    identifier: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True
    )

    # Quantities and prices
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        comment="Units traded; units held on the payment date for dividends"
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        comment="Price per unit; value per share for dividends"
    )
    fees: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        default=Decimal("0")
    )

    # Amounts
    gross_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        comment="quantity * unit_price"
    )
    net_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        comment="gross + fees for buys, gross - fees for sells"
    )
    profit_loss: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=True,
        comment="Realized result, sells only"
    )

    operation_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Metadata
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow
    )

    # Composite indexes for common queries
    __table_args__ = (
        Index('ix_operations_identifier_date', 'identifier', 'operation_date'),
        Index('ix_operations_type_date', 'operation_type', 'operation_date'),
    )

    def __repr__(self) -> str:
        return (
            f"Operation(id={self.id!r}, "
            f"identifier={self.identifier!r}, "
            f"type={self.operation_type.value!r}, "
            f"quantity={self.quantity!r}, "
            f"date={self.operation_date!r})"
        )
