"""Portfolio schemas."""
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List


class DistributionItemResponse(BaseModel):
    """One group of a distribution breakdown."""
    key: str = Field(..., description="Group key (asset type or broker)")
    value: Decimal = Field(..., description="Sum of current values in the group")
    percentage: Decimal = Field(..., description="Share of the grand total (0-100)")
    count: int = Field(..., description="Number of positions in the group")


class PortfolioSummaryResponse(BaseModel):
    """Schema for the consolidated portfolio summary."""
    total_invested: Decimal
    current_value: Decimal
    total_profit_loss: Decimal
    total_profit_loss_percent: Decimal
    total_dividends_received: Decimal
    active_count: int
    closed_count: int
    total_count: int
    currency: str = Field(..., description="Currency all amounts are expressed in")
    asset_distribution: List[DistributionItemResponse] = []
    broker_distribution: List[DistributionItemResponse] = []
