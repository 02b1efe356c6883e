"""Accumulation of iteration profit and expenses within a trading day"""

import logging
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from .models import DailySummary, IterationExpenseSummary, IterationProfitSummary

DEFAULT_TIMEZONE = "Europe/Moscow"


class DailyAggregator:
    """
    Running daily totals for one account.

    The trading day is the calendar date in the exchange timezone. Counters
    reset lazily: every call compares the clock's date with the stored one.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None,
                 timezone: str = DEFAULT_TIMEZONE,
                 logger: Optional[logging.Logger] = None):
        self.timezone = ZoneInfo(timezone)
        self.clock = clock or (lambda: datetime.now(self.timezone))
        self.logger = logger or logging.getLogger(__name__)
        self.current_date = ''
        self.daily_profit = 0.0
        self.daily_expenses = 0.0
        self.iterations_count = 0
        self._reset_to_current_date()

    def _today(self) -> str:
        return self.clock().astimezone(self.timezone).strftime('%Y-%m-%d')

    def _reset_to_current_date(self):
        today = self._today()
        if self.current_date != today:
            self.logger.info(f"New trading day detected: {today} (previous: {self.current_date or 'none'})")
            self.current_date = today
            self.daily_profit = 0.0
            self.daily_expenses = 0.0
            self.iterations_count = 0

    def add_iteration_results(self, profit_summary: IterationProfitSummary,
                              expense_summary: IterationExpenseSummary):
        self._reset_to_current_date()

        self.daily_profit += profit_summary.total_profit
        self.daily_expenses += expense_summary.total_commission
        self.iterations_count += 1

        self.logger.debug(
            f"Daily totals: profit {self.daily_profit:.2f} RUB, expenses {self.daily_expenses:.2f} RUB "
            f"after {self.iterations_count} iterations"
        )

    def get_daily_summary(self) -> DailySummary:
        self._reset_to_current_date()
        return DailySummary(
            date=self.current_date,
            cumulative_profit=self.daily_profit,
            cumulative_expenses=self.daily_expenses,
            net_daily_profit=self.daily_profit - self.daily_expenses,
            iterations_count=self.iterations_count,
        )

    def check_and_reset_if_new_day(self) -> bool:
        """True when a day boundary was crossed since the last call"""
        previous_date = self.current_date
        self._reset_to_current_date()
        return previous_date != self.current_date

    @staticmethod
    def format_daily_summary(summary: DailySummary) -> str:
        profit_sign = '+' if summary.cumulative_profit > 0 else ''
        net_sign = '+' if summary.net_daily_profit > 0 else ''
        return (
            f"Daily Summary ({summary.date}):\n"
            f"  Cumulative Profit: {profit_sign}{summary.cumulative_profit:.2f} RUB\n"
            f"  Cumulative Expenses: {summary.cumulative_expenses:.2f} RUB\n"
            f"  Net Daily Profit: {net_sign}{summary.net_daily_profit:.2f} RUB\n"
            f"  Iterations: {summary.iterations_count}"
        )
