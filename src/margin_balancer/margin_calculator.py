"""Margin trading calculations: exposure, limits, transfer costs and close-time strategy"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .models import (
    DesiredWallet,
    MarginBalancingStrategy,
    MarginConfig,
    MarginLimitValidation,
    MarginLimitsCheck,
    MarginPosition,
    MarginStrategyDecision,
    MarginTimeInfo,
    Position,
    PositionSize,
    RiskLevel,
    TransferCost,
    TransferCostItem,
)
from .money import position_value

logger = logging.getLogger(__name__)

TRANSFER_FEE_RATE = 0.01
MEDIUM_RISK_USAGE = 0.6
HIGH_RISK_USAGE = 0.8
DEFAULT_BALANCE_INTERVAL_MS = 60 * 60 * 1000
# Moscow Exchange main session close
DEFAULT_MARKET_CLOSE_TIME = "18:45"


def identify_margin_positions(wallet: List[Position], config: MarginConfig) -> List[MarginPosition]:
    """
    Mark the wallet positions that are financed with broker credit.

    With a multiplier of m, 1/m of every position is own capital and the
    rest is borrowed. Cash, empty and non-positive positions carry no margin.
    """
    if not config.enabled:
        logger.debug("Margin trading disabled, no margin positions")
        return []

    if config.multiplier <= 1:
        logger.debug(f"Multiplier {config.multiplier} <= 1, no margin positions")
        return []

    margin_positions = []
    for position in wallet:
        if position.is_currency:
            continue

        total_value = position_value(position.total_price_number)
        if total_value <= 0 or not position.amount or position.amount <= 0:
            continue

        margin_value = total_value - total_value / config.multiplier
        margin_positions.append(MarginPosition(**{
            **position.model_dump(),
            'is_margin': True,
            'margin_value': margin_value,
            'leverage': config.multiplier,
            # TODO: derive margin_call from broker margin attributes once the portfolio source exposes them
            'margin_call': False,
        }))
        logger.debug(f"Margin position {position.base}: value {total_value:.2f}, margin part {margin_value:.2f}")

    return margin_positions


class MarginCalculator:
    """Margin exposure and close-time decisions for one account"""

    def __init__(self, config: MarginConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def identify_margin_positions(self, wallet: List[Position]) -> List[MarginPosition]:
        return identify_margin_positions(wallet, self.config)

    def calculate_available_margin(self, portfolio: List[Position]) -> float:
        """Available margin = total portfolio value (cash included) * (multiplier - 1)"""
        total_value = self._total_value(portfolio)
        return total_value * (self.config.multiplier - 1)

    def validate_margin_limits(self, margin_positions: List[MarginPosition]) -> MarginLimitValidation:
        """Check used margin against the configured maximum margin size"""
        total_margin_used = self._used_margin(margin_positions)
        max_margin_allowed = self.config.max_margin_size
        is_valid = total_margin_used <= max_margin_allowed

        if not is_valid:
            self.logger.warning(
                f"Margin used {total_margin_used:.2f} exceeds max margin size {max_margin_allowed:.2f}"
            )

        return MarginLimitValidation(
            is_valid=is_valid,
            total_margin_used=total_margin_used,
            max_margin_allowed=max_margin_allowed,
            exceeded_amount=None if is_valid else total_margin_used - max_margin_allowed,
        )

    def check_margin_limits(self, portfolio: List[Position],
                            margin_positions: List[MarginPosition]) -> MarginLimitsCheck:
        """Compare used margin with available margin and band the usage into a risk level"""
        available_margin = self.calculate_available_margin(portfolio)
        used_margin = self._used_margin(margin_positions)
        remaining_margin = available_margin - used_margin

        if available_margin > 0:
            usage_ratio = used_margin / available_margin
        else:
            usage_ratio = float('inf') if used_margin > 0 else 0.0

        if remaining_margin < 0 or usage_ratio >= HIGH_RISK_USAGE:
            risk_level = RiskLevel.HIGH
        elif usage_ratio >= MEDIUM_RISK_USAGE:
            risk_level = RiskLevel.MEDIUM
        else:
            risk_level = RiskLevel.LOW

        is_valid = remaining_margin >= 0 and used_margin <= self.config.max_margin_size

        self.logger.debug(
            f"Margin check: available {available_margin:.2f}, used {used_margin:.2f}, "
            f"remaining {remaining_margin:.2f}, risk {risk_level.value}"
        )

        return MarginLimitsCheck(
            is_valid=is_valid,
            available_margin=available_margin,
            used_margin=used_margin,
            remaining_margin=remaining_margin,
            usage_percent=usage_ratio * 100,
            risk_level=risk_level,
        )

    def calculate_transfer_cost(self, margin_positions: List[MarginPosition]) -> TransferCost:
        """Broker fee for carrying margin positions over: free below the threshold, 1% otherwise"""
        result = TransferCost()

        for position in margin_positions:
            value = position_value(position.total_price_number)
            is_free = value <= 0 or value < self.config.free_threshold
            cost = 0.0 if is_free else value * TRANSFER_FEE_RATE

            if is_free:
                result.free_transfers += 1
            else:
                result.paid_transfers += 1
                result.total_cost += cost

            result.cost_breakdown.append(TransferCostItem(
                ticker=position.base or 'UNKNOWN',
                cost=cost,
                is_free=is_free,
            ))

        return result

    def should_apply_margin_strategy(self, now: Optional[datetime] = None,
                                     balance_interval_ms: int = DEFAULT_BALANCE_INTERVAL_MS,
                                     market_close_time: str = DEFAULT_MARKET_CLOSE_TIME) -> bool:
        """
        True when the market is already closed or the next scheduled run would
        fall at or after the close, so this run is the last chance to act.
        """
        now = now or datetime.now()
        close_at = self._close_datetime(now, market_close_time)

        if now >= close_at:
            return True

        next_run = now + timedelta(milliseconds=balance_interval_ms)
        return next_run >= close_at

    def apply_margin_strategy(self, margin_positions: List[MarginPosition],
                              strategy: Optional[str] = None,
                              now: Optional[datetime] = None,
                              balance_interval_ms: int = DEFAULT_BALANCE_INTERVAL_MS,
                              market_close_time: str = DEFAULT_MARKET_CLOSE_TIME) -> MarginStrategyDecision:
        """Decide whether margin should be unwound before the session closes"""
        now = now or datetime.now()
        time_info = self._time_info(now, balance_interval_ms, market_close_time)

        if not self.should_apply_margin_strategy(now, balance_interval_ms, market_close_time):
            return MarginStrategyDecision(
                should_remove_margin=False,
                reason="Not time to apply margin strategy",
                transfer_cost=0.0,
                time_info=time_info,
            )

        effective_strategy = strategy or self.config.strategy
        minutes = f"{time_info.time_to_close:.0f}"

        try:
            resolved = MarginBalancingStrategy(effective_strategy)
        except ValueError:
            self.logger.warning(f"Unknown margin strategy '{effective_strategy}', keeping margin")
            return MarginStrategyDecision(
                should_remove_margin=False,
                reason="Unknown strategy",
                transfer_cost=0.0,
                time_info=time_info,
            )

        if resolved is MarginBalancingStrategy.REMOVE:
            transfer = self.calculate_transfer_cost(margin_positions)
            decision = MarginStrategyDecision(
                should_remove_margin=True,
                reason=f"Strategy: remove margin at market close (time to close: {minutes} min)",
                transfer_cost=transfer.total_cost,
                time_info=time_info,
            )
        elif resolved is MarginBalancingStrategy.KEEP:
            decision = MarginStrategyDecision(
                should_remove_margin=False,
                reason=f"Strategy: keep margin (time to close: {minutes} min)",
                transfer_cost=0.0,
                time_info=time_info,
            )
        else:
            total_margin_value = sum(position_value(p.total_price_number) for p in margin_positions)
            max_margin_allowed = self.config.max_margin_size
            should_remove = total_margin_value > max_margin_allowed
            if should_remove:
                reason = (f"Strategy: remove margin (sum {total_margin_value:.2f} rub > max "
                          f"{max_margin_allowed:.2f} rub, time to close: {minutes} min)")
                transfer_cost = self.calculate_transfer_cost(margin_positions).total_cost
            else:
                reason = (f"Strategy: keep margin (sum {total_margin_value:.2f} rub <= max "
                          f"{max_margin_allowed:.2f} rub, time to close: {minutes} min)")
                transfer_cost = 0.0
            decision = MarginStrategyDecision(
                should_remove_margin=should_remove,
                reason=reason,
                transfer_cost=transfer_cost,
                time_info=time_info,
            )

        self.logger.info(decision.reason)
        return decision

    def calculate_optimal_position_sizes(self, portfolio: List[Position],
                                         desired_wallet: DesiredWallet) -> Dict[str, PositionSize]:
        """
        Target size per ticker: its share of the portfolio plus its share of the
        available margin, the margin part never exceeding the base part.
        """
        total_value = self._total_value(portfolio)
        available_margin = self.calculate_available_margin(portfolio)

        sizes = {}
        for ticker, percent in desired_wallet.items():
            base_size = total_value * percent / 100
            margin_size = min(available_margin * percent / 100, base_size)
            sizes[ticker] = PositionSize(
                base_size=base_size,
                margin_size=margin_size,
                total_size=base_size + margin_size,
            )
        return sizes

    @staticmethod
    def _total_value(portfolio: List[Position]) -> float:
        return sum(position_value(p.total_price_number) for p in portfolio)

    @staticmethod
    def _used_margin(margin_positions: List[MarginPosition]) -> float:
        return sum(position_value(p.margin_value) for p in margin_positions)

    @staticmethod
    def _close_datetime(now: datetime, market_close_time: str) -> datetime:
        """Market close on the same calendar day as now"""
        close_hour, close_minute = (int(part) for part in market_close_time.split(':'))
        return now.replace(hour=close_hour, minute=close_minute, second=0, microsecond=0)

    def _time_info(self, now: datetime, balance_interval_ms: int, market_close_time: str) -> MarginTimeInfo:
        close_at = self._close_datetime(now, market_close_time)
        time_to_close = (close_at - now).total_seconds() / 60
        time_to_next_balance = balance_interval_ms / (1000 * 60)
        return MarginTimeInfo(
            time_to_close=time_to_close,
            time_to_next_balance=time_to_next_balance,
            is_last_balance=time_to_close <= time_to_next_balance,
        )
