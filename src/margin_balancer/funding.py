"""
Funding of non-margin instrument purchases.

Some instruments cannot be bought with broker credit. When the target
allocation requires buying them, the money has to come from cash or from
selling other holdings. This module decides which purchases need funding and
builds a lot-quantized selling plan under the configured selling mode.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple, Union

from .models import (
    BuyRequiresTotalMarginalSellConfig,
    DesiredWallet,
    FundingPlan,
    Position,
    ProfitResult,
    SellingMode,
    SellPlanItem,
)
from .money import normalize_ticker, position_value, tickers_equal
from .profit_calculator import calculate_position_profit

logger = logging.getLogger(__name__)

SellingPlan = Dict[str, SellPlanItem]


def _is_excluded(position: Position, config: BuyRequiresTotalMarginalSellConfig) -> bool:
    """Non-margin instruments are never sold to fund themselves or each other"""
    return any(tickers_equal(instrument, position.base) for instrument in config.instruments)


def _lots_to_cover(amount: float, lot_price: float) -> int:
    """Smallest whole number of lots whose value covers amount"""
    # rounding absorbs float noise such as 3.0000000000000004 lots
    return math.ceil(round(amount / lot_price, 9))


def _select_positions(wallet: List[Position], config: BuyRequiresTotalMarginalSellConfig,
                      mode: SellingMode, min_profit_percent: Optional[float]) -> List[Position]:
    """Single filter pipeline behind both position selectors"""
    if not config.enabled:
        logger.debug("Buy requires total marginal sell is disabled")
        return []

    if mode is SellingMode.NONE:
        return []

    selected: List[Tuple[Position, Optional[ProfitResult]]] = []
    for position in wallet:
        if position.is_currency:
            continue
        if not position.amount or position.amount <= 0:
            continue
        if _is_excluded(position, config):
            logger.debug(f"Skipping {position.base}: non-margin instrument")
            continue

        profit = calculate_position_profit(position, min_profit_percent)

        if mode is SellingMode.ONLY_POSITIVE_POSITIONS_SELL:
            if profit is None or profit.profit_amount <= 0 or not profit.meets_threshold:
                continue
        elif mode is SellingMode.EQUAL_IN_PERCENTS:
            if min_profit_percent is not None and (profit is None or not profit.meets_threshold):
                continue

        selected.append((position, profit))

    if mode is SellingMode.ONLY_POSITIVE_POSITIONS_SELL:
        selected.sort(key=lambda item: item[1].profit_amount, reverse=True)

    logger.debug(f"Selected {len(selected)} positions for selling in mode {mode.value}")
    return [position for position, _ in selected]


def identify_profitable_positions(wallet: List[Position], config: BuyRequiresTotalMarginalSellConfig,
                                  min_profit_percent: Optional[float] = None) -> List[Position]:
    """Positions in profit that may be sold, largest profit first"""
    return _select_positions(wallet, config, SellingMode.ONLY_POSITIVE_POSITIONS_SELL, min_profit_percent)


def identify_positions_for_selling(wallet: List[Position], config: BuyRequiresTotalMarginalSellConfig,
                                   mode: Union[SellingMode, str],
                                   min_profit_percent: Optional[float] = None) -> List[Position]:
    """Positions that may be sold under the given selling mode"""
    return _select_positions(wallet, config, _resolve_mode(mode), min_profit_percent)


def calculate_required_funds(wallet: List[Position], desired_wallet: DesiredWallet,
                             config: BuyRequiresTotalMarginalSellConfig) -> Dict[str, float]:
    """
    Pending purchases of non-margin instruments that are large enough to fund.

    A purchase counts when it is at least min_buy_rebalance_percent of the
    total portfolio value (inclusive).
    """
    required_funds: Dict[str, float] = {}

    if not config.enabled:
        return required_funds

    total_value = sum(position_value(p.total_price_number) for p in wallet)
    threshold = total_value * config.min_buy_rebalance_percent / 100
    desired_tickers = [normalize_ticker(ticker) for ticker in desired_wallet]

    for instrument in config.instruments:
        if normalize_ticker(instrument) not in desired_tickers:
            logger.debug(f"Instrument {instrument} not in desired wallet, skipping")
            continue

        position = next((p for p in wallet if tickers_equal(p.base, instrument)), None)
        if position is None:
            logger.debug(f"Position for {instrument} not found in wallet")
            continue

        purchase_amount = position.to_buy_number
        if not purchase_amount or purchase_amount <= 0:
            continue

        if purchase_amount >= threshold:
            required_funds[instrument] = purchase_amount
            logger.debug(f"Need to buy {instrument}: {purchase_amount:.2f} RUB (threshold {threshold:.2f} RUB)")
        else:
            logger.debug(
                f"Purchase of {instrument} below threshold: {purchase_amount:.2f} RUB < {threshold:.2f} RUB"
            )

    return required_funds


def total_funds_needed(required_funds: Dict[str, float], current_rub_balance: float = 0.0) -> float:
    """Purchases plus any negative cash balance that must be covered too"""
    return sum(required_funds.values()) + max(0.0, -current_rub_balance)


def calculate_selling_amounts(positions: List[Position], required_funds: Dict[str, float],
                              mode: Union[SellingMode, str],
                              current_rub_balance: float = 0.0) -> SellingPlan:
    """Lot-quantized selling plan that raises the required funds"""
    mode = _resolve_mode(mode)
    selling_plan: SellingPlan = {}
    funds_needed = total_funds_needed(required_funds, current_rub_balance)

    if mode is SellingMode.NONE or funds_needed <= 0:
        return selling_plan

    logger.debug(
        f"Funds needed: {funds_needed:.2f} RUB (balance {current_rub_balance:.2f} RUB), "
        f"{len(positions)} candidate positions"
    )

    if mode is SellingMode.ONLY_POSITIVE_POSITIONS_SELL:
        funds_to_raise = funds_needed
        for position in positions:
            if funds_to_raise <= 0:
                break
            item = _sell_item(position, funds_to_raise)
            if item is None:
                continue
            _add_to_plan(selling_plan, position.base, item)
            funds_to_raise -= item.sell_amount
            logger.debug(
                f"Sell {item.sell_lots} lots of {position.base} for {item.sell_amount:.2f} RUB "
                f"(remaining {max(funds_to_raise, 0.0):.2f} RUB)"
            )

    elif mode is SellingMode.EQUAL_IN_PERCENTS:
        total_candidate_value = sum(position_value(p.total_price_number) for p in positions)
        if total_candidate_value <= 0:
            return selling_plan
        for position in positions:
            share = position_value(position.total_price_number) / total_candidate_value
            item = _sell_item(position, share * funds_needed)
            if item is None:
                continue
            _add_to_plan(selling_plan, position.base, item)
            logger.debug(
                f"Sell {item.sell_lots} lots of {position.base} for {item.sell_amount:.2f} RUB "
                f"({share * 100:.2f}% share)"
            )

    return selling_plan


def plan_non_margin_funding(wallet: List[Position], desired_wallet: DesiredWallet,
                            config: BuyRequiresTotalMarginalSellConfig,
                            current_rub_balance: float = 0.0,
                            min_profit_percent: Optional[float] = None) -> FundingPlan:
    """Required funds, candidate selection and selling plan in one pass"""
    required_funds = calculate_required_funds(wallet, desired_wallet, config)
    if not required_funds:
        return FundingPlan()

    mode = config.selling_mode
    candidates = identify_positions_for_selling(wallet, config, mode, min_profit_percent)
    selling_plan = calculate_selling_amounts(candidates, required_funds, mode, current_rub_balance)

    needed = total_funds_needed(required_funds, current_rub_balance)
    planned = sum(item.sell_amount for item in selling_plan.values())
    shortfall = max(0.0, needed - planned)

    if shortfall > 0 and mode is not SellingMode.NONE:
        logger.warning(
            f"Insufficient funds from selling: need {needed:.2f} RUB, planned {planned:.2f} RUB, "
            f"shortfall {shortfall:.2f} RUB"
        )

    return FundingPlan(
        required_funds=required_funds,
        total_funds_needed=needed,
        selling_plan=selling_plan,
        planned_amount=planned,
        shortfall=shortfall,
    )


def _sell_item(position: Position, amount: float) -> Optional[SellPlanItem]:
    """Lots of position covering amount, capped at the lots actually held"""
    lot_price = position.lot_price_number
    if amount <= 0 or not lot_price or lot_price <= 0:
        return None

    sell_lots = min(_lots_to_cover(amount, lot_price), position.held_lots)
    if sell_lots <= 0:
        return None

    return SellPlanItem(sell_lots=sell_lots, sell_amount=sell_lots * lot_price)


def _add_to_plan(selling_plan: SellingPlan, ticker: str, item: SellPlanItem):
    """Holdings of the same ticker under different instrument ids share one plan entry"""
    existing = selling_plan.get(ticker)
    if existing is not None:
        item = SellPlanItem(sell_lots=existing.sell_lots + item.sell_lots,
                            sell_amount=existing.sell_amount + item.sell_amount)
    selling_plan[ticker] = item


def _resolve_mode(mode: Union[SellingMode, str]) -> SellingMode:
    resolved = SellingMode.parse(mode)
    if resolved is SellingMode.NONE and mode != SellingMode.NONE.value:
        logger.warning(f"Unknown selling mode '{mode}', nothing will be sold")
    return resolved
