"""Per-account facade over the margin, funding and profit engines"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from .config import AccountConfig
from .daily_aggregator import DEFAULT_TIMEZONE, DailyAggregator
from .desired_wallet import alias_desired_wallet, require_allocation_metrics
from .expense_tracker import ExpenseTracker
from .funding import plan_non_margin_funding
from .margin_calculator import DEFAULT_MARKET_CLOSE_TIME, MarginCalculator
from .models import (
    DailySummary,
    DesiredWallet,
    IterationPlan,
    Position,
)
from .profit_calculator import ProfitCalculator, calculate_position_profit
from .logger import AccountLogger


class AccountRebalanceEngine:
    """
    Decision engine for a single account.

    Each account gets its own instance: the expense tracker and daily
    aggregator hold per-account running totals. The market close time and
    the trading day are both read in the exchange timezone.
    """

    def __init__(self, account: AccountConfig, market_close_time: str = DEFAULT_MARKET_CLOSE_TIME,
                 timezone: str = DEFAULT_TIMEZONE,
                 clock: Optional[Callable[[], datetime]] = None,
                 logger: Optional[logging.Logger] = None):
        self.account = account
        self.market_close_time = market_close_time
        self.timezone = ZoneInfo(timezone)
        self.clock = clock or (lambda: datetime.now(self.timezone))
        self.logger = logger or AccountLogger(logging.getLogger(__name__), account.id)
        self.margin_calculator = MarginCalculator(account.to_margin_config(), logger=self.logger)
        self.profit_calculator = ProfitCalculator(logger=self.logger)
        self.expense_tracker = ExpenseTracker(clock=self.clock, logger=self.logger)
        self.daily_aggregator = DailyAggregator(clock=self.clock, timezone=timezone, logger=self.logger)

    def exchange_now(self, now: Optional[datetime] = None) -> datetime:
        """Current time in the exchange timezone; naive values are taken as exchange-local"""
        now = now or self.clock()
        if now.tzinfo is None:
            return now
        return now.astimezone(self.timezone)

    def plan_iteration(self, wallet: List[Position], desired_wallet: Optional[DesiredWallet] = None,
                       current_rub_balance: float = 0.0, now: Optional[datetime] = None,
                       market_caps: Optional[Dict[str, float]] = None,
                       aums: Optional[Dict[str, float]] = None) -> IterationPlan:
        """
        Margin exposure, close-time decision, target sizes and funding plan for one snapshot.

        Raises:
            BalancingDataError: the account's allocation mode lacks market cap or AUM data
        """
        desired_wallet = alias_desired_wallet(
            desired_wallet if desired_wallet is not None else self.account.desired_wallet
        )
        require_allocation_metrics(self.account.desired_mode, desired_wallet.keys(),
                                   market_caps=market_caps, aums=aums)
        plan = IterationPlan()

        if self.account.margin_trading.enabled:
            plan.margin_positions = self.margin_calculator.identify_margin_positions(wallet)
            plan.margin_limits = self.margin_calculator.check_margin_limits(wallet, plan.margin_positions)
            plan.margin_decision = self.margin_calculator.apply_margin_strategy(
                plan.margin_positions,
                now=self.exchange_now(now),
                balance_interval_ms=self.account.balance_interval,
                market_close_time=self.market_close_time,
            )
            plan.position_sizes = self.margin_calculator.calculate_optimal_position_sizes(wallet, desired_wallet)

            if not plan.margin_limits.is_valid:
                self.logger.warning(
                    f"Margin limits exceeded: used {plan.margin_limits.used_margin:.2f} RUB, "
                    f"risk {plan.margin_limits.risk_level.value}"
                )

        plan.funding = plan_non_margin_funding(
            wallet,
            desired_wallet,
            self.account.buy_requires_total_marginal_sell,
            current_rub_balance=current_rub_balance,
            min_profit_percent=self.account.min_profit_percent_for_close_position,
        )
        return plan

    def can_close_position(self, position: Position) -> bool:
        """Whether a sell of position passes the account's minimum profit rule"""
        threshold = self.account.min_profit_percent_for_close_position
        if threshold is None:
            return True
        profit = calculate_position_profit(position, threshold)
        if profit is None:
            self.logger.debug(f"No cost basis for {position.base}, cannot verify profit rule, sell blocked")
            return False
        return profit.meets_threshold

    def finish_iteration(self, wallet: List[Position]) -> DailySummary:
        """Fold this iteration's profit and commissions into the daily totals"""
        if self.daily_aggregator.check_and_reset_if_new_day():
            self.expense_tracker.clear_daily_expenses()

        profit_summary = self.profit_calculator.calculate_iteration_profit_summary(wallet)
        expense_summary = self.expense_tracker.get_and_clear_iteration_summary()
        self.daily_aggregator.add_iteration_results(profit_summary, expense_summary)

        summary = self.daily_aggregator.get_daily_summary()
        self.logger.info(self.daily_aggregator.format_daily_summary(summary))
        return summary
