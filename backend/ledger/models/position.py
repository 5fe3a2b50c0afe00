"""
Position model - One row per distinct asset held.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
import enum

from ledger.database import AMOUNT_PRECISION, AMOUNT_SCALE, Base


class AssetType(str, enum.Enum):
    """Asset type enumeration."""
    STOCK = "stock"
    FII = "fii"
    ETF = "etf"
    CRYPTO = "crypto"
    FIXED_INCOME = "fixed_income"
    FUND = "fund"
    BDR = "bdr"
    OPTION = "option"
    FUTURE = "future"
    OTHER = "other"


class PositionStatus(str, enum.Enum):
    """Position lifecycle: closed exactly when quantity reaches zero."""
    ACTIVE = "active"
    CLOSED = "closed"


class Position(Base):
    """
    Position model representing the aggregated holding of one asset.

    Maintained incrementally by PositionManager using the weighted-average
    cost method: every buy re-bases the average price, sells realize profit
    against it and leave it untouched.
    """
    __tablename__ = "positions"

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Asset identification
    identifier: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
        comment="Ticker, symbol or code - unique key of the position"
    )
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    broker: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Broker holding the asset"
    )

    # Asset classification
    asset_type: Mapped[AssetType] = mapped_column(
        SQLEnum(AssetType, native_enum=False),
        nullable=False
    )
    status: Mapped[PositionStatus] = mapped_column(
        SQLEnum(PositionStatus, native_enum=False),
        nullable=False,
        default=PositionStatus.ACTIVE
    )

    # Position details
    total_quantity: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        comment="Current number of units held"
    )
    average_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        comment="Weighted average cost per unit including fees"
    )
    total_invested: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        comment="average_price * total_quantity"
    )
    current_price: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=True,
        comment="Latest known market price, externally supplied"
    )
    total_dividends_received: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        default=Decimal("0")
    )

    # Metadata
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return (
            f"Position(id={self.id!r}, "
            f"identifier={self.identifier!r}, "
            f"type={self.asset_type.value!r}, "
            f"status={self.status.value!r}, "
            f"quantity={self.total_quantity!r}, "
            f"avg_price={self.average_price!r})"
        )
