"""Commission expenses of executed orders, per iteration and per day"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Literal, Mapping, Optional

from .models import DailyExpenseSummary, ExpenseRecord, IterationExpenseSummary, Money, Position
from .money import money_to_float, normalize_ticker

COMMISSION_RATE = 0.0005
MINIMUM_COMMISSION = 1.0


def estimate_commission(order_amount: float) -> float:
    """Broker tariff estimate: 0.05% of the order amount, at least 1 RUB"""
    return max(order_amount * COMMISSION_RATE, MINIMUM_COMMISSION)


def _response_field(order_response: Any, *names: str) -> Any:
    """Read a field from a mapping or object response, trying each name in turn"""
    if order_response is None:
        return None
    for name in names:
        if isinstance(order_response, Mapping):
            value = order_response.get(name)
        else:
            value = getattr(order_response, name, None)
        if value is not None:
            return value
    return None


def _amount_to_float(value: Any) -> float:
    if isinstance(value, (Money, Mapping)):
        return money_to_float(value)
    return float(value)


class ExpenseTracker:
    """Collects commissions of one account's orders"""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None,
                 logger: Optional[logging.Logger] = None):
        self.clock = clock or datetime.now
        self.logger = logger or logging.getLogger(__name__)
        self._iteration_expenses: List[ExpenseRecord] = []
        self._daily_expenses: List[ExpenseRecord] = []

    def record_order_expense(self, order_id: str, position: Position, order_response: Any,
                             order_type: Literal['BUY', 'SELL'], lots: int) -> Optional[ExpenseRecord]:
        """
        Record the commission of an executed order.

        The commission is taken from the order response when present,
        otherwise estimated from the response order amount, otherwise from
        lot price * lots.
        """
        if not position.base or position.is_currency:
            self.logger.debug(f"Skipping expense recording for currency {position.base}")
            return None

        ticker = normalize_ticker(position.base) or position.base
        lot_price = position.lot_price_number or 0.0

        commission_value = _response_field(order_response, 'commission')
        order_amount_value = _response_field(order_response, 'total_order_amount', 'totalOrderAmount')

        if commission_value is not None:
            commission = _amount_to_float(commission_value)
            self.logger.debug(f"Commission from order response for {ticker}: {commission:.2f} RUB")
        elif order_amount_value is not None:
            commission = estimate_commission(_amount_to_float(order_amount_value))
            self.logger.debug(f"Estimated commission for {ticker}: {commission:.2f} RUB")
        else:
            commission = estimate_commission(lot_price * lots)
            self.logger.debug(f"Fallback commission estimate for {ticker}: {commission:.2f} RUB")

        record = ExpenseRecord(
            order_id=order_id,
            ticker=ticker,
            order_type=order_type,
            lots=lots,
            amount_rub=lot_price * lots,
            commission=commission,
            timestamp=self.clock(),
        )

        self.logger.info(f"Expense: {ticker} {order_type} {lots} lots, commission {commission:.2f} RUB")

        self._iteration_expenses.append(record)
        self._daily_expenses.append(record)
        return record

    def get_and_clear_iteration_summary(self) -> IterationExpenseSummary:
        """Summarize the current iteration and start a new one"""
        summary = IterationExpenseSummary(
            total_commission=sum(record.commission for record in self._iteration_expenses),
            orders_executed=len(self._iteration_expenses),
            expense_records=list(self._iteration_expenses),
        )
        self.logger.debug(
            f"Iteration expenses: {summary.total_commission:.2f} RUB from {summary.orders_executed} orders"
        )
        self._iteration_expenses = []
        return summary

    def get_daily_expense_summary(self) -> DailyExpenseSummary:
        return DailyExpenseSummary(
            total_commission=sum(record.commission for record in self._daily_expenses),
            orders_executed=len(self._daily_expenses),
        )

    def clear_daily_expenses(self):
        """Called at the start of a new trading day"""
        self.logger.debug("Clearing daily expenses for new trading day")
        self._daily_expenses = []

    def get_daily_expense_records(self) -> List[ExpenseRecord]:
        return list(self._daily_expenses)

    @staticmethod
    def format_commission(amount: float) -> str:
        return f"{amount:.2f} RUB"
