"""Operation schemas."""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
import re

from ledger.models.operation import OperationType
from ledger.models.position import AssetType


IDENTIFIER_PATTERN = re.compile(r'^[A-Z0-9][A-Z0-9.\-/_]*$')


def normalize_identifier(identifier: str) -> str:
    """
    Validate and normalize an asset identifier.

    Args:
        identifier: Raw ticker, symbol or code

    Returns:
        Upper-cased, stripped identifier

    Raises:
        ValueError: If identifier format is invalid
    """
    if not identifier or not identifier.strip():
        raise ValueError("Identifier is required")

    identifier = identifier.upper().strip()

    if len(identifier) > 50:
        raise ValueError("Identifier too long (max 50 characters)")

    if not IDENTIFIER_PATTERN.match(identifier):
        raise ValueError("Identifier contains invalid characters")

    return identifier


class _OperationBase(BaseModel):
    """
    Fields shared by buy and sell requests.

    Quantity, price and fees are not range-checked here: OperationValidator
    owns those rules and reports them with a typed ErrorKind.
    """
    identifier: str = Field(..., min_length=1, max_length=50, description="Ticker, symbol or code")
    account_id: int = Field(..., description="Account debited or credited by the trade")
    quantity: Decimal = Field(..., description="Units traded")
    unit_price: Decimal = Field(..., description="Price per unit")
    fees: Decimal = Field(default=Decimal("0"), description="Brokerage fees and costs")
    operation_date: date = Field(default_factory=date.today)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('identifier')
    @classmethod
    def validate_identifier(cls, v):
        """Normalize identifier to its canonical upper-case form."""
        return normalize_identifier(v)


class BuyOperationCreate(_OperationBase):
    """Schema for a buy request. Creates the position on first purchase."""
    asset_type: AssetType = Field(default=AssetType.STOCK, description="Asset classification")
    name: Optional[str] = Field(None, max_length=200, description="Display name of the asset")
    broker: Optional[str] = Field(None, max_length=100, description="Broker holding the asset")


class SellOperationCreate(_OperationBase):
    """Schema for a sell request against an open position."""
    pass


class DividendCreate(BaseModel):
    """Schema for crediting a dividend to an open position."""
    identifier: str = Field(..., min_length=1, max_length=50)
    account_id: int = Field(..., description="Account receiving the dividend")
    value_per_share: Decimal = Field(..., description="Amount paid per unit held")
    payment_date: date = Field(default_factory=date.today)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('identifier')
    @classmethod
    def validate_identifier(cls, v):
        """Normalize identifier to its canonical upper-case form."""
        return normalize_identifier(v)


class OperationResponse(BaseModel):
    """Schema for a ledger entry."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    operation_type: OperationType
    identifier: str
    account_id: int
    quantity: Decimal
    unit_price: Decimal
    fees: Decimal
    gross_value: Decimal
    net_value: Decimal
    profit_loss: Optional[Decimal] = None
    operation_date: date
    notes: Optional[str] = None
    created_at: datetime
