"""Shared API dependencies."""
from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db
from ledger.services.errors import LedgerError
from ledger.services.position_manager import PositionLocks, PositionManager
from ledger.services.repository import LedgerRepository, SqlAlchemyLedgerRepository


def get_repository(db: AsyncSession = Depends(get_db)) -> LedgerRepository:
    """Ledger repository bound to the request's database session."""
    return SqlAlchemyLedgerRepository(db)


def get_position_locks(request: Request) -> PositionLocks:
    """Per-identifier locks shared by every request of this process."""
    return request.app.state.position_locks


def get_position_manager(
    repository: LedgerRepository = Depends(get_repository),
    locks: PositionLocks = Depends(get_position_locks)
) -> PositionManager:
    return PositionManager(repository, locks=locks)


def ledger_http_error(error: LedgerError) -> HTTPException:
    """
    Translate a rejected operation into an HTTP error.

    Missing positions and accounts are 404; every other rejection is a
    malformed request the caller must correct (422).
    """
    status_code = 404 if error.is_not_found else 422
    return HTTPException(
        status_code=status_code,
        detail={"error": error.kind.value, "message": error.message}
    )
