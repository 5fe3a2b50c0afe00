"""
Tests for PositionManager.

Runs full buy/sell/dividend flows against the in-memory repository:
- Scenario walk-through (first buy, additional buy, partial sale)
- Rejections leave position, balance and ledger untouched
- Closing and reopening positions
- Rollback when a write fails mid-trade
- Serialization of concurrent operations on one identifier
"""
import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from ledger.models import AssetType, OperationType, PositionStatus
from ledger.schemas.operation import DividendCreate
from ledger.services.errors import ErrorKind, LedgerError
from ledger.services.position_manager import PositionLocks, PositionManager


pytestmark = pytest.mark.unit


@pytest.fixture
def manager(funded_repository):
    return PositionManager(funded_repository)


class TestBuyAndSellScenario:
    """Walk through a first buy, an additional buy and a partial sale."""

    @pytest.mark.asyncio
    async def test_first_buy_opens_position(self, manager, funded_repository, buy_op):
        result = await manager.execute_buy(buy_op(100, "10", "5", name="Petrobras", broker="XP"))

        position = funded_repository.positions["PETR4"]
        assert result.position is position
        assert position.status == PositionStatus.ACTIVE
        assert position.average_price == Decimal("10.05")
        assert position.total_invested == Decimal("1005")
        assert position.name == "Petrobras"
        assert position.broker == "XP"
        assert result.account_balance == Decimal("8995")
        assert funded_repository.accounts[1].balance == Decimal("8995")

        operation = funded_repository.operations[0]
        assert operation.operation_type == OperationType.BUY
        assert operation.net_value == Decimal("1005")
        assert operation.profit_loss is None

    @pytest.mark.asyncio
    async def test_full_scenario(self, manager, funded_repository, buy_op, sell_op):
        await manager.execute_buy(buy_op(100, "10", "5"))
        await manager.execute_buy(buy_op(50, "12"))

        position = funded_repository.positions["PETR4"]
        assert position.total_quantity == Decimal("150")
        assert position.total_invested == Decimal("1605")
        assert position.average_price == Decimal("10.70")

        result = await manager.execute_sell(sell_op(60, "15", "10"))

        assert result.sale.net_value == Decimal("890")
        assert result.sale.cost_of_sold_lot == Decimal("642")
        assert result.sale.profit_loss == Decimal("248")
        assert position.total_quantity == Decimal("90")
        assert position.average_price == Decimal("10.70")
        assert position.total_invested == Decimal("963")
        assert result.account_balance == Decimal("9285")

        sell = funded_repository.operations[-1]
        assert sell.operation_type == OperationType.SELL
        assert sell.profit_loss == Decimal("248")
        assert len(funded_repository.operations) == 3


class TestRejections:
    """Rejected operations raise LedgerError and change nothing."""

    @pytest.mark.asyncio
    async def test_oversized_sell_leaves_position_unchanged(
        self, manager, funded_repository, buy_op, sell_op
    ):
        await manager.execute_buy(buy_op(10, "10"))

        with pytest.raises(LedgerError) as exc_info:
            await manager.execute_sell(sell_op(11, "10"))

        assert exc_info.value.kind == ErrorKind.INSUFFICIENT_QUANTITY
        position = funded_repository.positions["PETR4"]
        assert position.total_quantity == Decimal("10")
        assert position.total_invested == Decimal("100")
        assert funded_repository.accounts[1].balance == Decimal("9900")
        assert len(funded_repository.operations) == 1

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, manager, funded_repository, buy_op):
        with pytest.raises(LedgerError) as exc_info:
            await manager.execute_buy(buy_op(1000, "10", "0.01"))

        assert exc_info.value.kind == ErrorKind.INSUFFICIENT_FUNDS
        assert funded_repository.positions == {}
        assert funded_repository.operations == []
        assert funded_repository.rollbacks == 1

    @pytest.mark.asyncio
    async def test_sell_without_position(self, manager, sell_op):
        with pytest.raises(LedgerError) as exc_info:
            await manager.execute_sell(sell_op(1, "10"))

        assert exc_info.value.kind == ErrorKind.POSITION_NOT_FOUND
        assert exc_info.value.is_not_found

    @pytest.mark.asyncio
    async def test_unknown_account(self, manager, buy_op):
        with pytest.raises(LedgerError) as exc_info:
            await manager.execute_buy(buy_op(1, "10", account_id=42))

        assert exc_info.value.kind == ErrorKind.ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_invalid_quantity_is_reported_before_unknown_account(self, manager, buy_op, sell_op):
        with pytest.raises(LedgerError) as exc_info:
            await manager.execute_buy(buy_op(0, "10", account_id=42))

        assert exc_info.value.kind == ErrorKind.INVALID_QUANTITY

        with pytest.raises(LedgerError) as exc_info:
            await manager.execute_sell(sell_op(0, "10", account_id=42))

        assert exc_info.value.kind == ErrorKind.INVALID_QUANTITY

    @pytest.mark.asyncio
    async def test_invalid_quantity_is_reported_before_any_write(self, manager, funded_repository, buy_op):
        with pytest.raises(LedgerError) as exc_info:
            await manager.execute_buy(buy_op(0, "10"))

        assert exc_info.value.kind == ErrorKind.INVALID_QUANTITY
        assert funded_repository.accounts[1].balance == Decimal("10000")


class TestLifecycle:
    """Test closing and reopening positions."""

    @pytest.mark.asyncio
    async def test_selling_everything_closes_position(self, manager, funded_repository, buy_op, sell_op):
        await manager.execute_buy(buy_op(100, "10", "5"))

        result = await manager.execute_sell(sell_op(100, "11"))

        position = funded_repository.positions["PETR4"]
        assert position.status == PositionStatus.CLOSED
        assert position.total_quantity == 0
        assert position.total_invested == 0
        assert result.sale.profit_loss == Decimal("95")
        assert "closed" in result.message

        described = PositionManager.describe_position(position)
        assert described["average_price"] is None
        assert described["current_value"] == 0

    @pytest.mark.asyncio
    async def test_buy_after_close_reopens_with_fresh_basis(
        self, manager, funded_repository, buy_op, sell_op
    ):
        await manager.execute_buy(buy_op(10, "100"))
        await manager.execute_sell(sell_op(10, "120"))

        await manager.execute_buy(buy_op(5, "50", "1", asset_type=AssetType.BDR))

        position = funded_repository.positions["PETR4"]
        assert position.status == PositionStatus.ACTIVE
        assert position.total_quantity == Decimal("5")
        assert position.total_invested == Decimal("251")
        assert position.average_price == Decimal("50.2")
        assert position.asset_type == AssetType.BDR
        assert position.id == 1

    @pytest.mark.asyncio
    async def test_reopened_position_drops_market_price_of_closed_lot(
        self, manager, funded_repository, buy_op, sell_op
    ):
        await manager.execute_buy(buy_op(10, "100"))
        await manager.update_current_price("PETR4", Decimal("150"))
        await manager.execute_sell(sell_op(10, "150"))

        await manager.execute_buy(buy_op(5, "50"))

        position = funded_repository.positions["PETR4"]
        assert position.current_price is None
        described = PositionManager.describe_position(position)
        assert described["current_value"] == Decimal("250")
        assert described["unrealized_pnl"] == 0


class TestDividendsAndPrices:
    """Test dividend credits and market price updates."""

    @pytest.mark.asyncio
    async def test_dividend_credits_account_without_touching_cost(
        self, manager, funded_repository, buy_op
    ):
        await manager.execute_buy(buy_op(100, "10"))

        result = await manager.record_dividend(DividendCreate(
            identifier="petr4",
            account_id=1,
            value_per_share=Decimal("0.35"),
            payment_date=date(2024, 5, 20),
        ))

        position = funded_repository.positions["PETR4"]
        assert position.total_dividends_received == Decimal("35")
        assert position.average_price == Decimal("10")
        assert position.total_invested == Decimal("1000")
        assert result.account_balance == Decimal("9035")
        assert result.operation.operation_type == OperationType.DIVIDEND
        assert result.operation.gross_value == Decimal("35")

    @pytest.mark.asyncio
    async def test_dividend_on_missing_position(self, manager):
        with pytest.raises(LedgerError) as exc_info:
            await manager.record_dividend(DividendCreate(
                identifier="VALE3", account_id=1, value_per_share=Decimal("1")
            ))

        assert exc_info.value.kind == ErrorKind.POSITION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_current_price(self, manager, funded_repository, buy_op):
        await manager.execute_buy(buy_op(10, "10"))

        position = await manager.update_current_price("PETR4", Decimal("12.5"))

        assert position.current_price == Decimal("12.5")
        described = PositionManager.describe_position(position)
        assert described["current_value"] == Decimal("125")
        assert described["unrealized_pnl"] == Decimal("25")

    @pytest.mark.asyncio
    async def test_update_price_rejects_non_positive(self, manager):
        with pytest.raises(LedgerError) as exc_info:
            await manager.update_current_price("PETR4", Decimal("0"))

        assert exc_info.value.kind == ErrorKind.INVALID_PRICE


class TestAtomicity:
    """A failing write rolls back the whole trade."""

    @pytest.mark.asyncio
    async def test_failed_ledger_append_rolls_back_position_and_balance(
        self, manager, funded_repository, buy_op
    ):
        await manager.execute_buy(buy_op(10, "10"))
        funded_repository.append_operation = AsyncMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(RuntimeError):
            await manager.execute_buy(buy_op(10, "20"))

        position = funded_repository.positions["PETR4"]
        assert position.total_quantity == Decimal("10")
        assert position.average_price == Decimal("10")
        assert position.total_invested == Decimal("100")
        assert funded_repository.accounts[1].balance == Decimal("9900")
        assert len(funded_repository.operations) == 1


class TestConcurrency:
    """Operations on one identifier are applied one at a time."""

    @pytest.mark.asyncio
    async def test_concurrent_buys_keep_cost_basis_consistent(self, funded_repository, buy_op):
        locks = PositionLocks()
        managers = [PositionManager(funded_repository, locks=locks) for _ in range(4)]

        await asyncio.gather(*[
            managers[i % 4].execute_buy(buy_op(1, str(10 + i))) for i in range(20)
        ])

        position = funded_repository.positions["PETR4"]
        assert position.total_quantity == Decimal("20")
        assert position.total_invested == sum(Decimal(10 + i) for i in range(20))
        assert len(funded_repository.operations) == 20
        assert len(locks) == 1

    @pytest.mark.asyncio
    async def test_concurrent_sells_never_oversell(self, funded_repository, buy_op, sell_op):
        manager = PositionManager(funded_repository)
        await manager.execute_buy(buy_op(10, "10"))

        results = await asyncio.gather(
            *[manager.execute_sell(sell_op(4, "11")) for _ in range(3)],
            return_exceptions=True
        )

        failures = [r for r in results if isinstance(r, LedgerError)]
        assert len(failures) == 1
        assert failures[0].kind == ErrorKind.INSUFFICIENT_QUANTITY
        assert funded_repository.positions["PETR4"].total_quantity == Decimal("2")
