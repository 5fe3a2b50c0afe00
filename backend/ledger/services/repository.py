"""
Ledger repository - data source and sink for positions, accounts and operations.

PositionManager only talks to the LedgerRepository interface; the SQLAlchemy
implementation below is what the API wires in.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.models import Account, Operation, Position, PositionStatus
from ledger.services.errors import ErrorKind, LedgerError

logger = logging.getLogger(__name__)


class LedgerRepository(ABC):
    """Storage interface used by PositionManager."""

    @abstractmethod
    async def get_position(self, identifier: str, for_update: bool = False) -> Optional[Position]:
        """Return the position for an identifier, or None if it never existed."""

    @abstractmethod
    async def list_positions(self, status: Optional[PositionStatus] = None) -> List[Position]:
        """Return all positions, optionally filtered by status."""

    @abstractmethod
    async def save_position(self, position: Position) -> Position:
        """Insert or update a position."""

    @abstractmethod
    async def get_account(self, account_id: int, for_update: bool = False) -> Optional[Account]:
        """Return an account by id, or None."""

    @abstractmethod
    async def list_accounts(self) -> List[Account]:
        """Return all accounts."""

    @abstractmethod
    async def create_account(self, name: str, balance: Decimal) -> Account:
        """Open a new account with an opening balance."""

    @abstractmethod
    async def append_operation(self, operation: Operation) -> Operation:
        """Append an operation to the ledger. Operations are never updated."""

    @abstractmethod
    async def list_operations(self, identifier: Optional[str] = None) -> List[Operation]:
        """Return ledger entries in operation date order."""

    @abstractmethod
    def transaction(self):
        """
        Async context manager grouping the writes of one logical trade.

        Commits on normal exit, rolls back and re-raises on any exception.
        """

    async def get_account_balance(self, account_id: int, for_update: bool = False) -> Decimal:
        """
        Return the balance of an account.

        Raises:
            LedgerError: ACCOUNT_NOT_FOUND if the account does not exist
        """
        account = await self.get_account(account_id, for_update=for_update)
        if account is None:
            raise LedgerError(ErrorKind.ACCOUNT_NOT_FOUND, f"Account {account_id} not found")
        return account.balance

    async def adjust_account_balance(self, account_id: int, delta: Decimal) -> Decimal:
        """
        Add delta (negative for debits) to an account balance.

        Returns:
            The new balance
        """
        account = await self.get_account(account_id, for_update=True)
        if account is None:
            raise LedgerError(ErrorKind.ACCOUNT_NOT_FOUND, f"Account {account_id} not found")
        account.balance = account.balance + delta
        return account.balance


class SqlAlchemyLedgerRepository(LedgerRepository):
    """LedgerRepository backed by an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_position(self, identifier: str, for_update: bool = False) -> Optional[Position]:
        query = select(Position).where(Position.identifier == identifier)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_positions(self, status: Optional[PositionStatus] = None) -> List[Position]:
        query = select(Position).order_by(Position.identifier)
        if status is not None:
            query = query.where(Position.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def save_position(self, position: Position) -> Position:
        self.db.add(position)
        await self.db.flush()
        return position

    async def get_account(self, account_id: int, for_update: bool = False) -> Optional[Account]:
        query = select(Account).where(Account.id == account_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_accounts(self) -> List[Account]:
        result = await self.db.execute(select(Account).order_by(Account.id))
        return list(result.scalars().all())

    async def create_account(self, name: str, balance: Decimal) -> Account:
        account = Account(name=name, balance=balance)
        self.db.add(account)
        await self.db.flush()
        return account

    async def append_operation(self, operation: Operation) -> Operation:
        self.db.add(operation)
        await self.db.flush()
        return operation

    async def list_operations(self, identifier: Optional[str] = None) -> List[Operation]:
        query = select(Operation).order_by(Operation.operation_date, Operation.id)
        if identifier is not None:
            query = query.where(Operation.identifier == identifier)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.db.commit()
        except Exception as e:
            logger.debug(f"Rolling back ledger transaction: {e!r}")
            await self.db.rollback()
            raise
