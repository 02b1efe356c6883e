# tests/conftest.py
"""Test configuration and fixtures."""

import pytest

from margin_balancer import (
    BuyRequiresTotalMarginalSellConfig,
    MarginConfig,
    MarginPosition,
    Position,
)


def _position(base, total=None, amount=None, lot_size=1, lot_price=None, quote='RUB',
              fifo=None, average=None, to_buy=None):
    price = total / amount if total is not None and amount else None
    if lot_price is None and price is not None and lot_size:
        lot_price = price * lot_size
    return Position(
        base=base,
        quote=quote,
        pair=f"{base}/{quote}",
        amount=amount,
        lot_size=lot_size,
        price_number=price,
        lot_price_number=lot_price,
        total_price_number=total,
        to_buy_number=to_buy,
        average_position_price_fifo_number=fifo,
        average_position_price_number=average,
    )


@pytest.fixture(name="make_position")
def make_position_fixture():
    """Factory for priced positions; price and lot price derive from total / amount."""
    return _position


@pytest.fixture(name="make_margin_position")
def make_margin_position_fixture():
    def factory(base, total, margin_value, leverage=2.0):
        return MarginPosition(
            base=base,
            quote='RUB',
            amount=1,
            total_price_number=total,
            is_margin=True,
            margin_value=margin_value,
            leverage=leverage,
        )
    return factory


@pytest.fixture(name="margin_config")
def margin_config_fixture():
    return MarginConfig(
        enabled=True,
        multiplier=2.0,
        free_threshold=5000,
        max_margin_size=100000,
        strategy='keep_if_small',
    )


@pytest.fixture(name="portfolio")
def portfolio_fixture(make_position):
    """100 000 RUB portfolio including 20 000 RUB cash."""
    return [
        make_position('TRUR', total=50000, amount=5000),
        make_position('TMOS', total=30000, amount=3000),
        make_position('RUB', total=20000, amount=20000, quote='RUB'),
    ]


@pytest.fixture(name="funding_config")
def funding_config_fixture():
    return BuyRequiresTotalMarginalSellConfig(
        enabled=True,
        instruments=['TGLD'],
        allow_to_sell_others_positions_to_buy_non_marginal_positions={'mode': 'only_positive_positions_sell'},
        min_buy_rebalance_percent=1.0,
    )


@pytest.fixture(name="funding_wallet")
def funding_wallet_fixture(make_position):
    """
    100 000 RUB wallet:
    TGLD is the non-margin instrument waiting to be bought,
    TRUR is in profit (+11.1%), TBRU in bigger profit (+25%), TMOS at a loss.
    """
    return [
        make_position('TGLD', total=9000, amount=900, fifo=10, to_buy=1000),
        make_position('TRUR', total=40000, amount=400, fifo=90),
        make_position('TBRU', total=10000, amount=100, fifo=80),
        make_position('TMOS', total=30000, amount=300, fifo=120),
        make_position('RUB', total=11000, amount=11000, quote='RUB'),
    ]
