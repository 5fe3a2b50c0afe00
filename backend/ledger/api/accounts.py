"""Account API endpoints."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from typing import List
import logging

from ledger.api.deps import get_repository
from ledger.schemas.account import AccountCreate, AccountResponse
from ledger.services.repository import LedgerRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@router.post("/", response_model=AccountResponse, status_code=201)
async def create_account(
    account_data: AccountCreate,
    repository: LedgerRepository = Depends(get_repository)
):
    """Open a cash account with an opening balance."""
    try:
        async with repository.transaction():
            account = await repository.create_account(account_data.name, account_data.balance)
    except IntegrityError:
        raise HTTPException(status_code=409, detail=f"Account {account_data.name!r} already exists")

    logger.info(f"Opened account {account.id} ({account.name}) with balance {account.balance}")
    return AccountResponse.model_validate(account)


@router.get("/", response_model=List[AccountResponse])
async def list_accounts(repository: LedgerRepository = Depends(get_repository)):
    """List all accounts."""
    accounts = await repository.list_accounts()
    return [AccountResponse.model_validate(a) for a in accounts]


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(account_id: int, repository: LedgerRepository = Depends(get_repository)):
    """Get an account and its balance."""
    account = await repository.get_account(account_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"Account {account_id} not found")
    return AccountResponse.model_validate(account)
