from datetime import datetime

import pytest

from margin_balancer import MarginCalculator, MarginConfig, RiskLevel, identify_margin_positions


def _config(**overrides):
    values = dict(enabled=True, multiplier=2.0, free_threshold=5000, max_margin_size=100000,
                  strategy='keep_if_small')
    values.update(overrides)
    return MarginConfig(**values)


class TestIdentifyMarginPositions:

    def test_margin_value_is_borrowed_part_of_position(self, make_position):
        wallet = [make_position('TRUR', total=120000, amount=1000)]

        positions = identify_margin_positions(wallet, _config())

        assert len(positions) == 1
        assert positions[0].is_margin
        assert positions[0].margin_value == 60000
        assert positions[0].leverage == 2.0
        assert positions[0].margin_call is False
        assert positions[0].base == 'TRUR'
        assert positions[0].total_price_number == 120000

    @pytest.mark.parametrize("multiplier", [1.0, 0.5])
    def test_no_margin_without_leverage(self, portfolio, multiplier):
        assert identify_margin_positions(portfolio, _config(multiplier=multiplier)) == []

    def test_disabled_margin_trading(self, portfolio):
        assert identify_margin_positions(portfolio, _config(enabled=False)) == []

    def test_skips_cash_empty_and_non_positive_positions(self, make_position):
        wallet = [
            make_position('RUB', total=20000, amount=20000),
            make_position('TMOS', total=0, amount=0),
            make_position('TBRU', total=-100, amount=10),
            make_position('TGLD', total=5000, amount=0),
            make_position('TRUR', total=30000, amount=300),
        ]

        positions = identify_margin_positions(wallet, _config(multiplier=4.0))

        assert [p.base for p in positions] == ['TRUR']
        assert positions[0].margin_value == 22500

    def test_calculator_uses_its_config(self, portfolio, margin_config):
        calculator = MarginCalculator(margin_config)
        assert [p.base for p in calculator.identify_margin_positions(portfolio)] == ['TRUR', 'TMOS']


class TestAvailableMargin:

    def test_includes_cash(self, portfolio):
        assert MarginCalculator(_config()).calculate_available_margin(portfolio) == 100000

    def test_linear_in_multiplier(self, portfolio):
        single = MarginCalculator(_config(multiplier=2.0)).calculate_available_margin(portfolio)
        double = MarginCalculator(_config(multiplier=3.0)).calculate_available_margin(portfolio)
        assert double == 2 * single

    def test_missing_values_contribute_zero(self, make_position):
        portfolio = [make_position('TRUR', total=None, amount=None), make_position('TMOS', total=1000, amount=10)]
        assert MarginCalculator(_config()).calculate_available_margin(portfolio) == 1000

    def test_negative_portfolio_is_not_clamped(self, make_position):
        portfolio = [make_position('RUB', total=-1000, amount=1)]
        assert MarginCalculator(_config()).calculate_available_margin(portfolio) == -1000


class TestValidateMarginLimits:

    def test_within_limit(self, make_margin_position):
        positions = [make_margin_position('TRUR', 25000, 15000), make_margin_position('TMOS', 15000, 8000)]

        result = MarginCalculator(_config()).validate_margin_limits(positions)

        assert result.is_valid
        assert result.total_margin_used == 23000
        assert result.max_margin_allowed == 100000
        assert result.exceeded_amount is None

    def test_exceeded_limit_reports_excess(self, make_margin_position):
        positions = [make_margin_position('TRUR', 25000, 15000), make_margin_position('TMOS', 15000, 8000)]

        result = MarginCalculator(_config(max_margin_size=20000)).validate_margin_limits(positions)

        assert not result.is_valid
        assert result.exceeded_amount == 3000

    def test_missing_margin_value_counts_as_zero(self, make_margin_position):
        positions = [make_margin_position('TRUR', 25000, None)]
        assert MarginCalculator(_config()).validate_margin_limits(positions).total_margin_used == 0


class TestCheckMarginLimits:

    @pytest.mark.parametrize("used, expected", [
        (0, RiskLevel.LOW),
        (59999, RiskLevel.LOW),
        (60000, RiskLevel.MEDIUM),
        (79999, RiskLevel.MEDIUM),
        (80000, RiskLevel.HIGH),
        (100000, RiskLevel.HIGH),
    ])
    def test_risk_bands(self, portfolio, make_margin_position, used, expected):
        calculator = MarginCalculator(_config(max_margin_size=1000000))

        result = calculator.check_margin_limits(portfolio, [make_margin_position('TRUR', used * 2, used)])

        assert result.available_margin == 100000
        assert result.used_margin == used
        assert result.risk_level is expected
        assert result.is_valid

    def test_negative_remaining_is_high_risk_and_invalid(self, portfolio, make_margin_position):
        calculator = MarginCalculator(_config(max_margin_size=1000000))

        result = calculator.check_margin_limits(portfolio, [make_margin_position('TRUR', 240000, 120000)])

        assert result.remaining_margin == -20000
        assert result.risk_level is RiskLevel.HIGH
        assert not result.is_valid

    def test_configured_max_also_applies(self, portfolio, make_margin_position):
        calculator = MarginCalculator(_config(max_margin_size=50000))

        result = calculator.check_margin_limits(portfolio, [make_margin_position('TRUR', 120000, 60000)])

        assert result.remaining_margin == 40000
        assert result.risk_level is RiskLevel.MEDIUM
        assert not result.is_valid

    def test_no_available_margin(self, portfolio, make_margin_position):
        calculator = MarginCalculator(_config(multiplier=1.0))

        idle = calculator.check_margin_limits(portfolio, [])
        used = calculator.check_margin_limits(portfolio, [make_margin_position('TRUR', 2000, 1000)])

        assert idle.risk_level is RiskLevel.LOW
        assert used.risk_level is RiskLevel.HIGH


class TestTransferCost:

    def test_threshold_value_is_paid_and_below_is_free(self, make_margin_position):
        positions = [
            make_margin_position('TRUR', 5000, 2500),
            make_margin_position('TMOS', 4999, 2499.5),
        ]

        result = MarginCalculator(_config()).calculate_transfer_cost(positions)

        assert result.total_cost == 50
        assert result.paid_transfers == 1
        assert result.free_transfers == 1
        assert [(item.ticker, item.cost, item.is_free) for item in result.cost_breakdown] == [
            ('TRUR', 50, False),
            ('TMOS', 0, True),
        ]

    def test_missing_value_is_free(self, make_margin_position):
        positions = [make_margin_position('TRUR', None, None), make_margin_position('TMOS', -10, 0)]

        result = MarginCalculator(_config()).calculate_transfer_cost(positions)

        assert result.total_cost == 0
        assert result.free_transfers == 2


class TestMarginStrategy:

    @pytest.mark.parametrize("now, expected", [
        (datetime(2024, 5, 6, 17, 0), False),
        (datetime(2024, 5, 6, 17, 44), False),
        (datetime(2024, 5, 6, 17, 45), True),
        (datetime(2024, 5, 6, 18, 30), True),
        (datetime(2024, 5, 6, 18, 45), True),
        (datetime(2024, 5, 6, 19, 0), True),
    ])
    def test_should_apply_looks_ahead_one_interval(self, now, expected):
        calculator = MarginCalculator(_config())
        assert calculator.should_apply_margin_strategy(now, 60 * 60 * 1000, '18:45') is expected

    def test_short_interval_waits_for_later_run(self):
        calculator = MarginCalculator(_config())
        assert not calculator.should_apply_margin_strategy(datetime(2024, 5, 6, 18, 0), 10 * 60 * 1000, '18:45')

    def test_not_time_yet(self, make_margin_position):
        calculator = MarginCalculator(_config(strategy='remove'))

        decision = calculator.apply_margin_strategy(
            [make_margin_position('TRUR', 150000, 75000)], now=datetime(2024, 5, 6, 17, 0))

        assert not decision.should_remove_margin
        assert decision.reason.startswith("Not time to apply")
        assert decision.transfer_cost == 0
        assert decision.time_info.time_to_close == 105
        assert decision.time_info.time_to_next_balance == 60
        assert not decision.time_info.is_last_balance

    def test_keep_if_small_removes_large_margin(self, make_margin_position):
        calculator = MarginCalculator(_config())

        decision = calculator.apply_margin_strategy(
            [make_margin_position('TRUR', 150000, 75000)], 'keep_if_small', datetime(2024, 5, 6, 18, 30))

        assert decision.should_remove_margin
        assert decision.transfer_cost == 1500
        assert decision.time_info.is_last_balance
        assert decision.time_info.time_to_close == 15

    def test_keep_if_small_keeps_small_margin(self, make_margin_position):
        calculator = MarginCalculator(_config())

        decision = calculator.apply_margin_strategy(
            [make_margin_position('TRUR', 60000, 30000), make_margin_position('TMOS', 40000, 20000)],
            now=datetime(2024, 5, 6, 18, 30))

        assert not decision.should_remove_margin
        assert decision.transfer_cost == 0
        assert "keep margin" in decision.reason

    def test_remove_strategy_reports_transfer_cost(self, make_margin_position):
        calculator = MarginCalculator(_config(strategy='keep'))
        positions = [make_margin_position('TRUR', 10000, 5000), make_margin_position('TMOS', 1000, 500)]

        decision = calculator.apply_margin_strategy(positions, 'remove', datetime(2024, 5, 6, 19, 0))

        assert decision.should_remove_margin
        assert decision.transfer_cost == 100
        assert "remove margin at market close" in decision.reason

    def test_keep_strategy_from_config(self, make_margin_position):
        calculator = MarginCalculator(_config(strategy='keep'))

        decision = calculator.apply_margin_strategy(
            [make_margin_position('TRUR', 500000, 250000)], now=datetime(2024, 5, 6, 18, 30))

        assert not decision.should_remove_margin
        assert decision.transfer_cost == 0

    def test_unknown_strategy_keeps_margin(self, make_margin_position):
        calculator = MarginCalculator(_config())

        decision = calculator.apply_margin_strategy(
            [make_margin_position('TRUR', 500000, 250000)], 'sell_everything', datetime(2024, 5, 6, 18, 30))

        assert not decision.should_remove_margin
        assert decision.reason == "Unknown strategy"
        assert decision.transfer_cost == 0


class TestOptimalPositionSizes:

    def test_margin_part_follows_available_margin(self, portfolio):
        sizes = MarginCalculator(_config(multiplier=1.5)).calculate_optimal_position_sizes(
            portfolio, {'TRUR': 60, 'TMOS': 40})

        assert sizes['TRUR'].base_size == 60000
        assert sizes['TRUR'].margin_size == 30000
        assert sizes['TRUR'].total_size == 90000
        assert sizes['TMOS'].margin_size == 20000

    def test_margin_part_capped_by_base_size(self, portfolio):
        sizes = MarginCalculator(_config(multiplier=3.0)).calculate_optimal_position_sizes(portfolio, {'TRUR': 60})

        assert sizes['TRUR'].base_size == 60000
        assert sizes['TRUR'].margin_size == 60000
        assert sizes['TRUR'].total_size == 120000

    def test_empty_desired_wallet(self, portfolio):
        assert MarginCalculator(_config()).calculate_optimal_position_sizes(portfolio, {}) == {}

    def test_zero_value_portfolio(self, make_position):
        sizes = MarginCalculator(_config()).calculate_optimal_position_sizes(
            [make_position('TRUR', total=0, amount=0)], {'TRUR': 100})

        assert sizes['TRUR'].total_size == 0
        assert sizes['TRUR'].margin_size == 0
