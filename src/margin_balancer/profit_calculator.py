"""Profit and loss of positions against their acquisition cost"""

import logging
from typing import List, Optional

from .models import IterationProfitSummary, MarginPosition, Position, ProfitLossRecord, ProfitResult
from .money import normalize_ticker

logger = logging.getLogger(__name__)


def _average_price(position: Position) -> Optional[float]:
    """FIFO average price when known, otherwise the plain average price"""
    fifo = position.average_position_price_fifo_number
    if fifo is not None and fifo > 0:
        return fifo
    average = position.average_position_price_number
    if average is not None and average > 0:
        return average
    return None


def calculate_position_profit(position: Position,
                              min_profit_percent: Optional[float] = None) -> Optional[ProfitResult]:
    """
    Profit of a position against its cost basis (average price * amount).

    Returns None when value, amount or acquisition price is unknown or not
    positive. A negative min_profit_percent works as a maximum allowed loss.
    """
    if position.total_price_number is None or position.total_price_number <= 0:
        return None

    if position.amount is None or position.amount <= 0:
        return None

    average_price = _average_price(position)
    if average_price is None:
        return None

    cost_basis = average_price * position.amount
    profit_amount = position.total_price_number - cost_basis
    profit_percent = profit_amount / cost_basis * 100

    meets_threshold = True if min_profit_percent is None else profit_percent >= min_profit_percent

    return ProfitResult(
        profit_amount=profit_amount,
        profit_percent=profit_percent,
        meets_threshold=meets_threshold,
    )


def format_profit_amount(amount: float) -> str:
    sign = '+' if amount >= 0 else ''
    return f"{sign}{amount:.2f} RUB"


def format_profit_percentage(percentage: float) -> str:
    sign = '+' if percentage >= 0 else ''
    return f"{sign}{percentage:.2f}%"


class ProfitCalculator:
    """Per-iteration profit/loss reporting over a wallet"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def calculate_position_profit_loss(self, position: Position) -> Optional[ProfitLossRecord]:
        if not position.base or position.is_currency:
            return None

        profit = calculate_position_profit(position)
        if profit is None:
            self.logger.debug(f"Cannot calculate profit for {position.base}")
            return None

        ticker = normalize_ticker(position.base) or position.base
        original_cost = position.total_price_number - profit.profit_amount

        self.logger.debug(
            f"Profit for {ticker}: {format_profit_amount(profit.profit_amount)} "
            f"({format_profit_percentage(profit.profit_percent)})"
        )

        return ProfitLossRecord(
            ticker=ticker,
            current_position_value=position.total_price_number,
            original_cost=original_cost,
            profit_amount=profit.profit_amount,
            profit_percentage=profit.profit_percent,
            is_margin_position=isinstance(position, MarginPosition) and position.is_margin,
        )

    def calculate_iteration_profit_summary(self, wallet: List[Position]) -> IterationProfitSummary:
        """Sum profit over every position with a computable cost basis"""
        summary = IterationProfitSummary()
        total_original_cost = 0.0

        for position in wallet:
            record = self.calculate_position_profit_loss(position)
            if record is None:
                continue

            summary.profit_loss_records.append(record)
            summary.total_profit += record.profit_amount
            total_original_cost += record.original_cost

            if record.profit_amount > 0:
                summary.profit_positions += 1
            elif record.profit_amount < 0:
                summary.loss_positions += 1

        if total_original_cost > 0:
            summary.total_profit_percentage = summary.total_profit / total_original_cost * 100

        self.logger.info(
            f"Iteration profit: {format_profit_amount(summary.total_profit)} "
            f"({format_profit_percentage(summary.total_profit_percentage)}), "
            f"{summary.profit_positions} in profit, {summary.loss_positions} at a loss"
        )
        return summary
