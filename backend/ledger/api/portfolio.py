"""Portfolio API endpoints."""
from fastapi import APIRouter, Depends, Query
from typing import List
import logging

from ledger.api.deps import get_repository
from ledger.config import settings
from ledger.models import PositionStatus
from ledger.schemas.portfolio import DistributionItemResponse, PortfolioSummaryResponse
from ledger.services.calculations import DistributionItem, PositionCalculations
from ledger.services.repository import LedgerRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])

DISTRIBUTION_KEYS = {
    "asset_type": lambda p: p.asset_type.value,
    "broker": lambda p: p.broker or "unassigned",
}


def _distribution_response(items: List[DistributionItem]) -> List[DistributionItemResponse]:
    return [
        DistributionItemResponse(
            key=str(item.key),
            value=item.value,
            percentage=item.percentage,
            count=item.count
        )
        for item in items
    ]


@router.get("/summary", response_model=PortfolioSummaryResponse)
async def get_portfolio_summary(repository: LedgerRepository = Depends(get_repository)):
    """Get consolidated invested amount, value, profit/loss and distributions."""
    positions = await repository.list_positions()
    summary = PositionCalculations.performance_summary(positions)

    return PortfolioSummaryResponse(
        total_invested=summary.total_invested,
        current_value=summary.current_value,
        total_profit_loss=summary.total_profit_loss,
        total_profit_loss_percent=summary.total_profit_loss_percent,
        total_dividends_received=summary.total_dividends_received,
        active_count=summary.active_count,
        closed_count=summary.closed_count,
        total_count=summary.total_count,
        currency=settings.default_currency,
        asset_distribution=_distribution_response(summary.asset_distribution),
        broker_distribution=_distribution_response(summary.broker_distribution)
    )


@router.get("/distribution", response_model=List[DistributionItemResponse])
async def get_distribution(
    by: str = Query("asset_type", pattern="^(asset_type|broker)$", description="Grouping key"),
    repository: LedgerRepository = Depends(get_repository)
):
    """Get the share of each asset type or broker in the active portfolio."""
    positions = await repository.list_positions(PositionStatus.ACTIVE)
    items = PositionCalculations.distribute_by(positions, DISTRIBUTION_KEYS[by])
    return _distribution_response(items)
