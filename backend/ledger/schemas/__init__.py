"""
Pydantic schemas for API request/response validation.
"""
from ledger.schemas.account import AccountCreate, AccountResponse
from ledger.schemas.operation import (
    BuyOperationCreate,
    SellOperationCreate,
    DividendCreate,
    OperationResponse
)
from ledger.schemas.position import PositionResponse, PriceUpdate, TradeResponse
from ledger.schemas.portfolio import DistributionItemResponse, PortfolioSummaryResponse

__all__ = [
    "AccountCreate",
    "AccountResponse",
    "BuyOperationCreate",
    "SellOperationCreate",
    "DividendCreate",
    "OperationResponse",
    "PositionResponse",
    "PriceUpdate",
    "TradeResponse",
    "DistributionItemResponse",
    "PortfolioSummaryResponse",
]
