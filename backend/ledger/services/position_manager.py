"""
Position manager service - Applies operations to positions.

Each buy, sell or dividend is validated, calculated and persisted as one unit:
the position upsert, the account movement and the ledger entry are written in
a single repository transaction while the identifier's lock is held.
"""
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, Optional
import asyncio
import logging

from ledger.config import settings
from ledger.models import Operation, OperationType, Position, PositionStatus
from ledger.schemas.operation import BuyOperationCreate, DividendCreate, SellOperationCreate
from ledger.services.calculations import PositionCalculations, SaleCalculation
from ledger.services.errors import ErrorKind, LedgerError
from ledger.services.repository import LedgerRepository
from ledger.services.validation import OperationValidator, ValidationResult

logger = logging.getLogger(__name__)


class PositionLocks:
    """
    One asyncio.Lock per identifier.

    Operations on the same identifier are applied strictly one after another,
    so the average price is never recomputed from a stale snapshot. Share one
    instance between all managers of a process.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, identifier: str) -> AsyncIterator[None]:
        async with self._locks[identifier]:
            yield

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class TradeResult:
    """Outcome of an applied operation."""
    position: Position
    operation: Operation
    account_balance: Decimal
    message: str
    sale: Optional[SaleCalculation] = None


class PositionManager:
    """Apply buy, sell and dividend operations to positions."""

    def __init__(self, repository: LedgerRepository, locks: Optional[PositionLocks] = None):
        self.repository = repository
        self.locks = locks if locks is not None else PositionLocks()

    @staticmethod
    def _reject(result: ValidationResult, identifier: str) -> None:
        if not result.is_valid:
            logger.warning(
                f"Rejected operation on {identifier}: {result.error.value} - {result.message}"
            )
            result.raise_for_error()

    @staticmethod
    def _check_cost_basis(position: Position) -> None:
        """Warn if total_invested drifted from average_price * total_quantity."""
        if position.total_quantity == 0:
            return
        expected = position.average_price * position.total_quantity
        drift = abs(expected - position.total_invested)
        if drift > settings.quantity_tolerance * max(position.total_invested, Decimal("1")):
            logger.warning(
                f"Cost basis drift on {position.identifier}: "
                f"invested={position.total_invested}, avg*qty={expected}"
            )

    async def execute_buy(self, request: BuyOperationCreate) -> TradeResult:
        """
        Apply a buy: debit the account, re-base the average price, log the operation.

        Args:
            request: Buy operation request

        Returns:
            TradeResult with the updated position and the new account balance

        Raises:
            LedgerError: INVALID_QUANTITY, INVALID_PRICE, INVALID_FEES,
                INSUFFICIENT_FUNDS or ACCOUNT_NOT_FOUND
        """
        identifier = request.identifier
        self._reject(OperationValidator.validate_amounts(request), identifier)

        async with self.locks.hold(identifier):
            async with self.repository.transaction():
                position = await self.repository.get_position(identifier, for_update=True)
                balance = await self.repository.get_account_balance(request.account_id, for_update=True)
                self._reject(OperationValidator.validate_buy(request, balance), identifier)

                calc = PositionCalculations.apply_buy(position, request)
                reopened = position is not None and position.status == PositionStatus.CLOSED

                if position is None:
                    position = Position(
                        identifier=identifier,
                        name=request.name or identifier,
                        asset_type=request.asset_type,
                        broker=request.broker,
                        total_dividends_received=Decimal("0"),
                    )
                elif reopened:
                    # Fresh cost basis; the old market price belongs to the closed lot
                    position.current_price = None
                    position.asset_type = request.asset_type
                    position.name = request.name or position.name
                    position.broker = request.broker or position.broker

                position.total_quantity = calc.new_total_quantity
                position.average_price = calc.new_average_price
                position.total_invested = calc.new_total_invested
                position.status = PositionStatus.ACTIVE
                self._check_cost_basis(position)
                await self.repository.save_position(position)

                gross_value = request.quantity * request.unit_price
                net_value = gross_value + request.fees
                new_balance = await self.repository.adjust_account_balance(
                    request.account_id, -net_value
                )

                operation = await self.repository.append_operation(Operation(
                    operation_type=OperationType.BUY,
                    identifier=identifier,
                    account_id=request.account_id,
                    quantity=request.quantity,
                    unit_price=request.unit_price,
                    fees=request.fees,
                    gross_value=gross_value,
                    net_value=net_value,
                    operation_date=request.operation_date,
                    notes=request.notes,
                ))

        logger.info(
            f"Buy {identifier}: qty={request.quantity} @ {request.unit_price} fees={request.fees} -> "
            f"quantity={calc.new_total_quantity}, avg_price={calc.new_average_price}, "
            f"invested={calc.new_total_invested}{' (reopened)' if reopened else ''}"
        )

        return TradeResult(
            position=position,
            operation=operation,
            account_balance=new_balance,
            message=f"Bought {request.quantity} {identifier}",
        )

    async def execute_sell(self, request: SellOperationCreate) -> TradeResult:
        """
        Apply a sell: realize profit/loss, credit the account, log the operation.

        Selling the whole quantity closes the position.

        Args:
            request: Sell operation request

        Returns:
            TradeResult with the updated position, the new balance and the sale result

        Raises:
            LedgerError: INVALID_QUANTITY, INVALID_PRICE, INVALID_FEES,
                POSITION_NOT_FOUND, INSUFFICIENT_QUANTITY or ACCOUNT_NOT_FOUND
        """
        identifier = request.identifier
        self._reject(OperationValidator.validate_amounts(request), identifier)

        async with self.locks.hold(identifier):
            async with self.repository.transaction():
                position = await self.repository.get_position(identifier, for_update=True)
                await self.repository.get_account_balance(request.account_id, for_update=True)
                self._reject(OperationValidator.validate_sell(request, position), identifier)

                sale = PositionCalculations.apply_sale(position, request)

                position.total_quantity = sale.remaining_quantity
                position.total_invested = sale.new_total_invested
                if sale.closes_position:
                    # average_price is kept for display only
                    position.status = PositionStatus.CLOSED
                self._check_cost_basis(position)
                await self.repository.save_position(position)

                new_balance = await self.repository.adjust_account_balance(
                    request.account_id, sale.net_value
                )

                operation = await self.repository.append_operation(Operation(
                    operation_type=OperationType.SELL,
                    identifier=identifier,
                    account_id=request.account_id,
                    quantity=request.quantity,
                    unit_price=request.unit_price,
                    fees=request.fees,
                    gross_value=sale.gross_value,
                    net_value=sale.net_value,
                    profit_loss=sale.profit_loss,
                    operation_date=request.operation_date,
                    notes=request.notes,
                ))

        logger.info(
            f"Sell {identifier}: qty={request.quantity} @ {request.unit_price} fees={request.fees} -> "
            f"profit_loss={sale.profit_loss}, remaining={sale.remaining_quantity}"
            f"{' (closed)' if sale.closes_position else ''}"
        )

        return TradeResult(
            position=position,
            operation=operation,
            account_balance=new_balance,
            message=(
                f"Sold {request.quantity} {identifier}"
                + (", position closed" if sale.closes_position else "")
            ),
            sale=sale,
        )

    async def record_dividend(self, request: DividendCreate) -> TradeResult:
        """
        Credit a dividend on the units currently held.

        Raises:
            LedgerError: INVALID_PRICE, POSITION_NOT_FOUND or ACCOUNT_NOT_FOUND
        """
        identifier = request.identifier

        async with self.locks.hold(identifier):
            async with self.repository.transaction():
                position = await self.repository.get_position(identifier, for_update=True)
                self._reject(
                    OperationValidator.validate_dividend(request.value_per_share, position),
                    identifier
                )
                await self.repository.get_account_balance(request.account_id, for_update=True)

                dividend = PositionCalculations.apply_dividend(position, request.value_per_share)
                position.total_dividends_received = dividend.new_total_dividends
                await self.repository.save_position(position)

                new_balance = await self.repository.adjust_account_balance(
                    request.account_id, dividend.total_value
                )

                operation = await self.repository.append_operation(Operation(
                    operation_type=OperationType.DIVIDEND,
                    identifier=identifier,
                    account_id=request.account_id,
                    quantity=position.total_quantity,
                    unit_price=request.value_per_share,
                    fees=Decimal("0"),
                    gross_value=dividend.total_value,
                    net_value=dividend.total_value,
                    operation_date=request.payment_date,
                    notes=request.notes,
                ))

        logger.info(
            f"Dividend {identifier}: {request.value_per_share}/unit -> credited {dividend.total_value}"
        )

        return TradeResult(
            position=position,
            operation=operation,
            account_balance=new_balance,
            message=f"Credited {dividend.total_value} in dividends from {identifier}",
        )

    async def update_current_price(self, identifier: str, current_price: Decimal) -> Position:
        """
        Store the latest market price of a position.

        Raises:
            LedgerError: INVALID_PRICE or POSITION_NOT_FOUND
        """
        if current_price <= 0:
            raise LedgerError(ErrorKind.INVALID_PRICE, "Price must be greater than zero")

        async with self.locks.hold(identifier):
            async with self.repository.transaction():
                position = await self.repository.get_position(identifier, for_update=True)
                if position is None:
                    raise LedgerError(ErrorKind.POSITION_NOT_FOUND, f"Position {identifier} not found")

                position.current_price = current_price
                await self.repository.save_position(position)

        logger.info(f"Updated price for {identifier}: {current_price}")
        return position

    @staticmethod
    def describe_position(position: Position, current_price: Optional[Decimal] = None) -> Dict[str, Any]:
        """
        Get position data with its valuation.

        Args:
            position: Position to describe
            current_price: Market price override; defaults to the stored price

        Returns:
            Dictionary with position fields plus current value and unrealized metrics
        """
        price = current_price if current_price is not None else position.current_price
        valuation = PositionCalculations.valuate(position, price)
        is_closed = position.status == PositionStatus.CLOSED

        return {
            "id": position.id,
            "identifier": position.identifier,
            "name": position.name,
            "asset_type": position.asset_type,
            "broker": position.broker,
            "status": position.status,
            "total_quantity": position.total_quantity,
            "average_price": None if is_closed else position.average_price,
            "total_invested": position.total_invested,
            "current_price": price,
            "current_value": valuation.current_value,
            "unrealized_pnl": valuation.unrealized_pnl,
            "unrealized_pnl_percent": valuation.unrealized_pnl_percent,
            "total_dividends_received": position.total_dividends_received or Decimal("0"),
            "dividend_yield": PositionCalculations.dividend_yield(position),
            "updated_at": position.updated_at or datetime.utcnow(),
        }
