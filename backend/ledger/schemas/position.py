"""Position schemas."""
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ledger.models.position import AssetType, PositionStatus
from ledger.schemas.operation import OperationResponse


class PositionResponse(BaseModel):
    """Schema for position response, including its valuation."""
    id: int = Field(..., description="Position ID")
    identifier: str = Field(..., description="Ticker, symbol or code")
    name: Optional[str] = Field(None, description="Asset display name")
    asset_type: AssetType = Field(..., description="Asset classification")
    broker: Optional[str] = Field(None, description="Broker holding the asset")
    status: PositionStatus = Field(..., description="active or closed")
    total_quantity: Decimal = Field(..., description="Current quantity held")
    average_price: Optional[Decimal] = Field(
        None, description="Weighted average cost per unit including fees (None once closed)"
    )
    total_invested: Decimal = Field(..., description="Cost basis (average_price × total_quantity)")
    current_price: Optional[Decimal] = Field(None, description="Latest market price")
    current_value: Decimal = Field(..., description="Market value, or cost basis when no price is known")
    unrealized_pnl: Decimal = Field(..., description="current_value - total_invested")
    unrealized_pnl_percent: Decimal = Field(..., description="unrealized_pnl / total_invested × 100")
    total_dividends_received: Decimal = Field(Decimal("0"), description="Sum of dividends credited")
    dividend_yield: Decimal = Field(Decimal("0"), description="Dividends / total_invested × 100")
    updated_at: datetime = Field(..., description="Last time the position changed")


class PriceUpdate(BaseModel):
    """Schema for setting the market price of a position."""
    current_price: Decimal = Field(..., gt=0, description="Latest market price")


class TradeResponse(BaseModel):
    """Schema returned after a buy, sell or dividend is applied."""
    position: PositionResponse
    operation: OperationResponse
    account_balance: Decimal = Field(..., description="Account balance after the trade")
    message: str
