"""
Pytest configuration for test suite.

Provides an in-memory LedgerRepository so the manager and API can be
exercised without a database, plus factories for positions and operations.
"""
import sys
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add the backend directory to sys.path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from ledger.models import Account, AssetType, Operation, Position, PositionStatus  # noqa: E402
from ledger.schemas.operation import BuyOperationCreate, SellOperationCreate  # noqa: E402
from ledger.services.repository import LedgerRepository  # noqa: E402


def pytest_configure(config):
    """Register custom markers dynamically."""
    config.addinivalue_line(
        "markers", "integration: integration tests that require external services"
    )
    config.addinivalue_line(
        "markers", "unit: unit tests with mocked dependencies"
    )


POSITION_COLUMNS = Position.__table__.columns.keys()


class InMemoryLedgerRepository(LedgerRepository):
    """
    LedgerRepository test double keeping everything in dictionaries.

    transaction() snapshots positions, balances and the ledger length and
    restores them if the block raises, mirroring a database rollback.
    """

    def __init__(self):
        self.positions: Dict[str, Position] = {}
        self.accounts: Dict[int, Account] = {}
        self.operations: List[Operation] = []
        self.commits = 0
        self.rollbacks = 0
        self._next_position_id = 1

    def add_account(self, name: str, balance: Decimal) -> Account:
        account = Account(
            id=len(self.accounts) + 1,
            name=name,
            balance=balance,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        self.accounts[account.id] = account
        return account

    async def get_position(self, identifier: str, for_update: bool = False) -> Optional[Position]:
        # Yield to the event loop like a real query would
        await asyncio.sleep(0)
        return self.positions.get(identifier)

    async def list_positions(self, status: Optional[PositionStatus] = None) -> List[Position]:
        positions = sorted(self.positions.values(), key=lambda p: p.identifier)
        if status is not None:
            positions = [p for p in positions if p.status == status]
        return positions

    async def save_position(self, position: Position) -> Position:
        await asyncio.sleep(0)
        now = datetime.utcnow()
        if position.id is None:
            position.id = self._next_position_id
            position.created_at = now
            self._next_position_id += 1
        position.updated_at = now
        self.positions[position.identifier] = position
        return position

    async def get_account(self, account_id: int, for_update: bool = False) -> Optional[Account]:
        return self.accounts.get(account_id)

    async def list_accounts(self) -> List[Account]:
        return list(self.accounts.values())

    async def create_account(self, name: str, balance: Decimal) -> Account:
        return self.add_account(name, balance)

    async def append_operation(self, operation: Operation) -> Operation:
        operation.id = len(self.operations) + 1
        operation.created_at = datetime.utcnow()
        self.operations.append(operation)
        return operation

    async def list_operations(self, identifier: Optional[str] = None) -> List[Operation]:
        operations = sorted(self.operations, key=lambda op: (op.operation_date, op.id))
        if identifier is not None:
            operations = [op for op in operations if op.identifier == identifier]
        return operations

    @asynccontextmanager
    async def transaction(self):
        positions = dict(self.positions)
        position_state = {
            identifier: {col: getattr(p, col) for col in POSITION_COLUMNS}
            for identifier, p in self.positions.items()
        }
        balances = {account_id: a.balance for account_id, a in self.accounts.items()}
        operation_count = len(self.operations)
        try:
            yield
            self.commits += 1
        except Exception:
            self.positions = positions
            for identifier, state in position_state.items():
                for col, value in state.items():
                    setattr(self.positions[identifier], col, value)
            for account_id, balance in balances.items():
                self.accounts[account_id].balance = balance
            del self.operations[operation_count:]
            self.rollbacks += 1
            raise


@pytest.fixture
def repository():
    """Empty in-memory ledger repository."""
    return InMemoryLedgerRepository()


@pytest.fixture
def funded_repository(repository):
    """Repository with one account holding 10,000."""
    repository.add_account("Main", Decimal("10000"))
    return repository


@pytest.fixture
def make_position():
    """Factory for transient Position objects."""
    def _make(
        identifier: str = "PETR4",
        total_quantity: str = "0",
        average_price: str = "0",
        total_invested: Optional[str] = None,
        status: PositionStatus = PositionStatus.ACTIVE,
        asset_type: AssetType = AssetType.STOCK,
        broker: Optional[str] = None,
        current_price: Optional[str] = None,
        total_dividends_received: str = "0",
    ) -> Position:
        quantity = Decimal(total_quantity)
        average = Decimal(average_price)
        return Position(
            identifier=identifier,
            name=identifier,
            asset_type=asset_type,
            broker=broker,
            status=status,
            total_quantity=quantity,
            average_price=average,
            total_invested=Decimal(total_invested) if total_invested is not None else average * quantity,
            current_price=Decimal(current_price) if current_price is not None else None,
            total_dividends_received=Decimal(total_dividends_received),
        )
    return _make


@pytest.fixture
def buy_op():
    """Factory for buy requests."""
    def _make(quantity, unit_price, fees="0", identifier="PETR4", account_id=1, **kwargs):
        return BuyOperationCreate(
            identifier=identifier,
            account_id=account_id,
            quantity=Decimal(str(quantity)),
            unit_price=Decimal(str(unit_price)),
            fees=Decimal(str(fees)),
            **kwargs
        )
    return _make


@pytest.fixture
def sell_op():
    """Factory for sell requests."""
    def _make(quantity, unit_price, fees="0", identifier="PETR4", account_id=1, **kwargs):
        return SellOperationCreate(
            identifier=identifier,
            account_id=account_id,
            quantity=Decimal(str(quantity)),
            unit_price=Decimal(str(unit_price)),
            fees=Decimal(str(fees)),
            **kwargs
        )
    return _make
