"""
Position calculations service.

Weighted-average cost accounting for buy and sell operations, plus valuation
and distribution metrics for a set of positions. Every function here is pure:
inputs are read, never mutated, and results come back as frozen dataclasses
that PositionManager applies to the stored position.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Context, Decimal, DivisionByZero, InvalidOperation, Overflow
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional
import logging

from ledger.database import AMOUNT_PRECISION, AMOUNT_SCALE
from ledger.models.position import PositionStatus
from ledger.services.errors import ErrorKind, LedgerError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Smallest step the amount columns store
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_SCALE)
AMOUNT_CONTEXT = Context(prec=AMOUNT_PRECISION, traps=[InvalidOperation, DivisionByZero, Overflow])


def quantize_amount(value: Decimal) -> Decimal:
    """Round a value to the scale the database keeps."""
    return value.quantize(AMOUNT_QUANTUM, context=AMOUNT_CONTEXT)


@dataclass(frozen=True)
class PriceCalculation:
    """Position state after a buy."""
    new_average_price: Decimal
    new_total_quantity: Decimal
    new_total_invested: Decimal


@dataclass(frozen=True)
class SaleCalculation:
    """Realized result of a sell and the position state it leaves behind."""
    profit_loss: Decimal
    remaining_quantity: Decimal
    net_value: Decimal
    gross_value: Decimal
    cost_of_sold_lot: Decimal
    new_total_invested: Decimal

    @property
    def closes_position(self) -> bool:
        return self.remaining_quantity == 0


@dataclass(frozen=True)
class DividendCalculation:
    """Cash credited by a dividend and the position's new running total."""
    total_value: Decimal
    new_total_dividends: Decimal


@dataclass(frozen=True)
class Valuation:
    """Mark-to-market view of a single position."""
    current_value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_percent: Decimal


@dataclass(frozen=True)
class DistributionItem:
    """One group of a distribution breakdown."""
    key: Any
    value: Decimal
    percentage: Decimal
    count: int


@dataclass(frozen=True)
class PortfolioSummary:
    """Consolidated metrics over a set of positions."""
    total_invested: Decimal
    current_value: Decimal
    total_profit_loss: Decimal
    total_profit_loss_percent: Decimal
    total_dividends_received: Decimal
    active_count: int
    closed_count: int
    total_count: int
    asset_distribution: List[DistributionItem] = field(default_factory=list)
    broker_distribution: List[DistributionItem] = field(default_factory=list)


class PositionCalculations:
    """Weighted-average cost calculations for investment positions."""

    @staticmethod
    def is_open(position: Optional[Any]) -> bool:
        """True when the position exists and still holds units."""
        return (
            position is not None
            and position.status == PositionStatus.ACTIVE
            and position.total_quantity > 0
        )

    @staticmethod
    def apply_buy(position: Optional[Any], buy_op: Any) -> PriceCalculation:
        """
        Calculate the new weighted average price after a buy.

        Average Price = (Total Invested + Quantity * Unit Price + Fees) / Total Quantity

        Fees are capitalized into the cost basis. A closed position is
        reopened with a fresh cost basis, as if it were a first purchase.
        The average price is rounded to the stored scale and total invested
        is derived from it, so the stored row satisfies
        total_invested == average_price * total_quantity.

        Args:
            position: Current position, or None for the first purchase
            buy_op: Validated operation with quantity, unit_price and fees

        Returns:
            PriceCalculation with the new average price, quantity and total invested
        """
        operation_cost = buy_op.quantity * buy_op.unit_price + buy_op.fees

        if PositionCalculations.is_open(position):
            total_cost = position.total_invested + operation_cost
            total_quantity = position.total_quantity + buy_op.quantity
        else:
            total_cost = operation_cost
            total_quantity = buy_op.quantity

        average_price = quantize_amount(AMOUNT_CONTEXT.divide(total_cost, total_quantity))
        total_invested = quantize_amount(AMOUNT_CONTEXT.multiply(average_price, total_quantity))

        return PriceCalculation(
            new_average_price=average_price,
            new_total_quantity=total_quantity,
            new_total_invested=total_invested,
        )

    @staticmethod
    def apply_sale(position: Any, sell_op: Any) -> SaleCalculation:
        """
        Calculate the realized result of a sell.

        Profit/Loss = (Quantity * Unit Price - Fees) - Average Price * Quantity

        The average price of the remaining units is unchanged; only the total
        invested shrinks with the quantity.

        Args:
            position: Current position
            sell_op: Operation with quantity, unit_price and fees

        Returns:
            SaleCalculation with realized profit/loss and remaining quantity

        Raises:
            LedgerError: QUANTITY_EXCEEDS_POSITION if selling more than is held
        """
        if sell_op.quantity > position.total_quantity:
            raise LedgerError(
                ErrorKind.QUANTITY_EXCEEDS_POSITION,
                f"Sell quantity {sell_op.quantity} exceeds position of {position.total_quantity}"
            )

        gross_value = sell_op.quantity * sell_op.unit_price
        net_value = gross_value - sell_op.fees
        cost_of_sold_lot = position.average_price * sell_op.quantity
        remaining_quantity = position.total_quantity - sell_op.quantity

        if remaining_quantity == 0:
            new_total_invested = ZERO
        else:
            new_total_invested = quantize_amount(
                AMOUNT_CONTEXT.multiply(position.average_price, remaining_quantity)
            )

        return SaleCalculation(
            profit_loss=net_value - cost_of_sold_lot,
            remaining_quantity=remaining_quantity,
            net_value=net_value,
            gross_value=gross_value,
            cost_of_sold_lot=cost_of_sold_lot,
            new_total_invested=new_total_invested,
        )

    @staticmethod
    def apply_dividend(position: Any, value_per_share: Decimal) -> DividendCalculation:
        """
        Calculate the cash credited by a dividend on the units currently held.

        Dividends never touch the cost basis.
        """
        total_value = value_per_share * position.total_quantity
        previous = position.total_dividends_received or ZERO
        return DividendCalculation(
            total_value=total_value,
            new_total_dividends=previous + total_value,
        )

    @staticmethod
    def valuate(position: Any, current_price: Optional[Decimal] = None) -> Valuation:
        """
        Calculate current value and unrealized gain/loss of a position.

        Without a market price the position is valued at cost, so no gain is
        ever reported that the market has not confirmed.

        Args:
            position: Position to value
            current_price: Latest market price, if known

        Returns:
            Valuation; unrealized_pnl_percent is 0 when nothing is invested
        """
        if position.total_quantity == 0:
            current_value = ZERO
        elif current_price is None:
            # quantity * average_price is total_invested by construction
            current_value = position.total_invested
        else:
            current_value = position.total_quantity * current_price

        unrealized_pnl = current_value - position.total_invested

        return Valuation(
            current_value=current_value,
            unrealized_pnl=unrealized_pnl,
            unrealized_pnl_percent=PositionCalculations.safe_percentage(
                unrealized_pnl, position.total_invested
            ),
        )

    @staticmethod
    def safe_percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
        """numerator / denominator * 100, or 0 when the denominator is 0."""
        if not denominator:
            return ZERO
        return numerator / denominator * HUNDRED

    @staticmethod
    def dividend_yield(position: Any) -> Decimal:
        """Dividends received as a percentage of the amount invested."""
        return PositionCalculations.safe_percentage(
            position.total_dividends_received or ZERO, position.total_invested
        )

    @staticmethod
    def price_for(position: Any, prices: Optional[Dict[str, Decimal]] = None) -> Optional[Decimal]:
        """Pick the market price for a position: explicit map first, then stored price."""
        if prices and position.identifier in prices:
            return prices[position.identifier]
        return position.current_price

    @staticmethod
    def distribute_by(
        positions: Iterable[Any],
        key_fn: Callable[[Any], Hashable],
        prices: Optional[Dict[str, Decimal]] = None
    ) -> List[DistributionItem]:
        """
        Group positions by an arbitrary key and compute each group's share.

        Args:
            positions: Positions to group
            key_fn: Function returning the group key of a position (asset type, broker)
            prices: Optional map of identifier to market price

        Returns:
            DistributionItem list sorted by descending value; empty input gives
            an empty list and a zero grand total gives 0% for every group
        """
        values: Dict[Hashable, Decimal] = defaultdict(lambda: ZERO)
        counts: Dict[Hashable, int] = defaultdict(int)

        for position in positions:
            key = key_fn(position)
            valuation = PositionCalculations.valuate(
                position, PositionCalculations.price_for(position, prices)
            )
            values[key] += valuation.current_value
            counts[key] += 1

        grand_total = sum(values.values(), ZERO)

        distribution = [
            DistributionItem(
                key=key,
                value=value,
                percentage=PositionCalculations.safe_percentage(value, grand_total),
                count=counts[key],
            )
            for key, value in values.items()
        ]
        distribution.sort(key=lambda item: item.value, reverse=True)
        return distribution

    @staticmethod
    def performance_summary(
        positions: Iterable[Any],
        prices: Optional[Dict[str, Decimal]] = None
    ) -> PortfolioSummary:
        """
        Consolidate invested amount, market value and counts over positions.

        Closed positions contribute to the counts and the dividends total but
        carry no value or cost.
        """
        positions = list(positions)
        active = [p for p in positions if PositionCalculations.is_open(p)]

        total_invested = ZERO
        current_value = ZERO
        for position in active:
            valuation = PositionCalculations.valuate(
                position, PositionCalculations.price_for(position, prices)
            )
            total_invested += position.total_invested
            current_value += valuation.current_value

        total_profit_loss = current_value - total_invested
        total_dividends = sum(
            (p.total_dividends_received or ZERO for p in positions), ZERO
        )

        summary = PortfolioSummary(
            total_invested=total_invested,
            current_value=current_value,
            total_profit_loss=total_profit_loss,
            total_profit_loss_percent=PositionCalculations.safe_percentage(
                total_profit_loss, total_invested
            ),
            total_dividends_received=total_dividends,
            active_count=len(active),
            closed_count=len(positions) - len(active),
            total_count=len(positions),
            asset_distribution=PositionCalculations.distribute_by(
                active, lambda p: p.asset_type.value, prices
            ),
            broker_distribution=PositionCalculations.distribute_by(
                active, lambda p: p.broker or "unassigned", prices
            ),
        )

        logger.debug(
            f"Portfolio summary: invested={total_invested}, value={current_value}, "
            f"active={summary.active_count}, closed={summary.closed_count}"
        )
        return summary
