"""Position API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
import logging

from ledger.api.deps import get_position_manager, get_repository, ledger_http_error
from ledger.models import PositionStatus
from ledger.schemas.operation import normalize_identifier
from ledger.schemas.position import PositionResponse, PriceUpdate
from ledger.services.errors import LedgerError
from ledger.services.position_manager import PositionManager
from ledger.services.repository import LedgerRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/positions", tags=["positions"])


def _identifier_or_400(identifier: str) -> str:
    try:
        return normalize_identifier(identifier)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/", response_model=List[PositionResponse])
async def list_positions(
    status: Optional[PositionStatus] = Query(None, description="Filter by active or closed"),
    repository: LedgerRepository = Depends(get_repository)
):
    """List positions with their valuation at the stored market price."""
    positions = await repository.list_positions(status)
    return [PositionResponse(**PositionManager.describe_position(p)) for p in positions]


@router.get("/{identifier}", response_model=PositionResponse)
async def get_position(
    identifier: str,
    repository: LedgerRepository = Depends(get_repository)
):
    """Get a single position by identifier."""
    identifier = _identifier_or_400(identifier)
    position = await repository.get_position(identifier)
    if position is None:
        raise HTTPException(status_code=404, detail=f"Position {identifier} not found")
    return PositionResponse(**PositionManager.describe_position(position))


@router.put("/{identifier}/price", response_model=PositionResponse)
async def update_price(
    identifier: str,
    update: PriceUpdate,
    manager: PositionManager = Depends(get_position_manager)
):
    """Store the latest market price of a position."""
    identifier = _identifier_or_400(identifier)
    try:
        position = await manager.update_current_price(identifier, update.current_price)
    except LedgerError as e:
        raise ledger_http_error(e)
    return PositionResponse(**PositionManager.describe_position(position))
