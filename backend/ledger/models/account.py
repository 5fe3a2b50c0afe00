"""
Account model - Cash accounts that fund buys and receive sale proceeds.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import AMOUNT_PRECISION, AMOUNT_SCALE, Base


class Account(Base):
    """Cash account debited on buys and credited on sells and dividends."""
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE),
        nullable=False,
        default=Decimal("0")
    )

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
        return f"Account(id={self.id!r}, name={self.name!r}, balance={self.balance!r})"
