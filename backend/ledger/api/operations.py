"""
Operation API endpoints.

Buy, sell and dividend operations and the ledger history.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
import logging

from ledger.api.deps import get_position_manager, get_repository, ledger_http_error
from ledger.schemas.operation import (
    BuyOperationCreate,
    SellOperationCreate,
    DividendCreate,
    OperationResponse,
    normalize_identifier
)
from ledger.schemas.position import PositionResponse, TradeResponse
from ledger.services.errors import LedgerError
from ledger.services.position_manager import PositionManager, TradeResult
from ledger.services.repository import LedgerRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/operations", tags=["operations"])


def _trade_response(result: TradeResult) -> TradeResponse:
    return TradeResponse(
        position=PositionResponse(**PositionManager.describe_position(result.position)),
        operation=OperationResponse.model_validate(result.operation),
        account_balance=result.account_balance,
        message=result.message
    )


@router.post("/buy", response_model=TradeResponse)
async def buy(
    request: BuyOperationCreate,
    manager: PositionManager = Depends(get_position_manager)
):
    """
    Register a buy.

    Debits quantity × unit_price + fees from the account and re-bases the
    position's weighted average price. The first buy of an identifier opens
    the position; a buy on a closed position reopens it.
    """
    try:
        result = await manager.execute_buy(request)
    except LedgerError as e:
        raise ledger_http_error(e)
    return _trade_response(result)


@router.post("/sell", response_model=TradeResponse)
async def sell(
    request: SellOperationCreate,
    manager: PositionManager = Depends(get_position_manager)
):
    """
    Register a sell.

    Realizes profit/loss against the current average price and credits the
    net proceeds to the account. Selling the whole quantity closes the position.
    """
    try:
        result = await manager.execute_sell(request)
    except LedgerError as e:
        raise ledger_http_error(e)
    return _trade_response(result)


@router.post("/dividend", response_model=TradeResponse)
async def dividend(
    request: DividendCreate,
    manager: PositionManager = Depends(get_position_manager)
):
    """Credit a dividend on the units currently held."""
    try:
        result = await manager.record_dividend(request)
    except LedgerError as e:
        raise ledger_http_error(e)
    return _trade_response(result)


@router.get("/", response_model=List[OperationResponse])
async def list_operations(
    identifier: Optional[str] = Query(None, max_length=50, description="Filter by asset identifier"),
    repository: LedgerRepository = Depends(get_repository)
):
    """List ledger entries in operation date order."""
    if identifier is not None:
        try:
            identifier = normalize_identifier(identifier)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    operations = await repository.list_operations(identifier)
    return [OperationResponse.model_validate(op) for op in operations]
