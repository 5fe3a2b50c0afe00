"""API router package."""
from ledger.api.accounts import router as accounts_router
from ledger.api.operations import router as operations_router
from ledger.api.positions import router as positions_router
from ledger.api.portfolio import router as portfolio_router

__all__ = [
    "accounts_router",
    "operations_router",
    "positions_router",
    "portfolio_router",
]
