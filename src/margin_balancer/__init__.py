from .models import (
    # Money and portfolio models
    Money,
    Position,
    MarginPosition,
    Wallet,
    DesiredWallet,
    # Margin models
    MarginBalancingStrategy,
    MarginConfig,
    RiskLevel,
    MarginLimitValidation,
    MarginLimitsCheck,
    TransferCost,
    MarginStrategyDecision,
    PositionSize,
    # Funding models
    SellingMode,
    BuyRequiresTotalMarginalSellConfig,
    SellPlanItem,
    FundingPlan,
    IterationPlan,
    # Profit and expense models
    ProfitResult,
    ProfitLossRecord,
    IterationProfitSummary,
    ExpenseRecord,
    IterationExpenseSummary,
    DailySummary,
)
from .money import money_to_float, float_to_money, normalize_ticker, tickers_equal
from .exceptions import BalancingDataError
from .margin_calculator import MarginCalculator, identify_margin_positions
from .funding import (
    calculate_required_funds,
    identify_profitable_positions,
    identify_positions_for_selling,
    calculate_selling_amounts,
    plan_non_margin_funding,
)
from .profit_calculator import ProfitCalculator, calculate_position_profit
from .expense_tracker import ExpenseTracker
from .daily_aggregator import DailyAggregator
from .desired_wallet import normalize_desire, alias_desired_wallet, require_allocation_metrics
from .engine import AccountRebalanceEngine

__version__ = "1.0.0"

__all__ = [
    "Money",
    "Position",
    "MarginPosition",
    "Wallet",
    "DesiredWallet",
    "MarginBalancingStrategy",
    "MarginConfig",
    "RiskLevel",
    "MarginLimitValidation",
    "MarginLimitsCheck",
    "TransferCost",
    "MarginStrategyDecision",
    "PositionSize",
    "SellingMode",
    "BuyRequiresTotalMarginalSellConfig",
    "SellPlanItem",
    "FundingPlan",
    "IterationPlan",
    "ProfitResult",
    "ProfitLossRecord",
    "IterationProfitSummary",
    "ExpenseRecord",
    "IterationExpenseSummary",
    "DailySummary",
    "money_to_float",
    "float_to_money",
    "normalize_ticker",
    "tickers_equal",
    "BalancingDataError",
    "MarginCalculator",
    "identify_margin_positions",
    "calculate_required_funds",
    "identify_profitable_positions",
    "identify_positions_for_selling",
    "calculate_selling_amounts",
    "plan_non_margin_funding",
    "ProfitCalculator",
    "calculate_position_profit",
    "ExpenseTracker",
    "DailyAggregator",
    "normalize_desire",
    "alias_desired_wallet",
    "require_allocation_metrics",
    "AccountRebalanceEngine",
    "__version__",
]
