"""Target allocation helpers"""

import logging
from typing import Dict, Iterable, List, Optional

from .exceptions import BalancingDataError
from .models import DesiredWallet
from .money import normalize_ticker, sum_values

logger = logging.getLogger(__name__)

# Allocation modes and the per-ticker metrics each one weighs by
MODE_REQUIRED_METRICS = {
    'marketcap': ('market cap data',),
    'aum': ('AUM data',),
    'marketcap_aum': ('market cap data', 'AUM data'),
}


def normalize_desire(desired_wallet: DesiredWallet) -> DesiredWallet:
    """Rescale target percentages so they sum to 100"""
    total = sum_values(desired_wallet)
    if total <= 0:
        logger.warning(f"Desired wallet sums to {total}, cannot normalize")
        return dict(desired_wallet)
    return {ticker: float(percent) / total * 100 for ticker, percent in desired_wallet.items()}


def alias_desired_wallet(desired_wallet: DesiredWallet) -> DesiredWallet:
    """Merge tickers that map to the same instrument, then normalize"""
    merged: Dict[str, float] = {}
    for ticker, percent in normalize_desire(desired_wallet).items():
        key = normalize_ticker(ticker) or ticker
        merged[key] = merged.get(key, 0.0) + percent
    return normalize_desire(merged)


def require_allocation_metrics(mode: str, tickers: Iterable[str],
                               market_caps: Optional[Dict[str, float]] = None,
                               aums: Optional[Dict[str, float]] = None):
    """
    Halt allocation when the mode weighs by metrics missing for some tickers.

    Raises:
        BalancingDataError: listing the missing metric kinds and tickers
    """
    required = MODE_REQUIRED_METRICS.get(mode)
    if not required:
        return

    tickers = list(tickers)
    sources = {
        'market cap data': market_caps or {},
        'AUM data': aums or {},
    }

    missing_data: List[str] = []
    affected_tickers: List[str] = []
    for metric in required:
        values = sources[metric]
        missing = [t for t in tickers if not values.get(t) or values[t] <= 0]
        if missing:
            missing_data.append(metric)
            affected_tickers.extend(t for t in missing if t not in affected_tickers)

    if missing_data:
        logger.error(f"Allocation mode {mode} missing {', '.join(missing_data)} for {', '.join(affected_tickers)}")
        raise BalancingDataError(mode, missing_data, affected_tickers)
