from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, model_validator

NANO_FACTOR = 1_000_000_000


# Money models
class Money(BaseModel):
    """Broker fixed-point amount: whole units plus nano fraction"""
    model_config = ConfigDict(frozen=True)

    units: int = 0
    nano: int = Field(default=0, ge=0, lt=NANO_FACTOR)
    currency: Optional[str] = None


# Portfolio models
class Position(BaseModel):
    """Priced instrument holding for one rebalancing iteration"""
    model_config = ConfigDict(frozen=True)

    base: Optional[str] = None
    quote: Optional[str] = None
    pair: Optional[str] = None
    figi: Optional[str] = None
    amount: Optional[float] = None
    lot_size: Optional[int] = None
    price: Optional[Money] = None
    price_number: Optional[float] = None
    lot_price: Optional[Money] = None
    lot_price_number: Optional[float] = None
    total_price: Optional[Money] = None
    total_price_number: Optional[float] = None
    desired_amount_number: Optional[float] = None
    to_buy_lots: Optional[int] = None
    to_buy_number: Optional[float] = None
    average_position_price: Optional[Money] = None
    average_position_price_number: Optional[float] = None
    average_position_price_fifo: Optional[Money] = None
    average_position_price_fifo_number: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def fill_numbers_from_money(cls, data):
        """Derive float fields from fixed-point fields when only the latter are given"""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for money_field in ('price', 'lot_price', 'total_price',
                            'average_position_price', 'average_position_price_fifo'):
            number_field = f"{money_field}_number"
            money = data.get(money_field)
            if money is None or data.get(number_field) is not None:
                continue
            if isinstance(money, dict):
                money = Money(**money)
            data[number_field] = money.units + money.nano / NANO_FACTOR
        return data

    @property
    def is_currency(self) -> bool:
        """Cash holdings are stored as positions with base == quote (e.g. RUB/RUB)"""
        return self.base is not None and self.base == self.quote

    @property
    def held_lots(self) -> int:
        """Whole lots currently held"""
        if not self.amount or self.amount <= 0:
            return 0
        if self.lot_size and self.lot_size > 0:
            return int(self.amount // self.lot_size)
        if self.lot_price_number and self.lot_price_number > 0 and self.total_price_number:
            return int(self.total_price_number // self.lot_price_number)
        return 0


class MarginPosition(Position):
    """Position financed partly by broker credit"""
    is_margin: bool
    margin_value: Optional[float] = None
    leverage: Optional[float] = None
    margin_call: bool = False


Wallet = List[Position]
DesiredWallet = Dict[str, float]


# Margin models
class MarginBalancingStrategy(str, Enum):
    """What to do with borrowed funds before the session closes"""
    REMOVE = "remove"
    KEEP = "keep"
    KEEP_IF_SMALL = "keep_if_small"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MarginConfig(BaseModel):
    """Engine-level margin settings for one account"""
    enabled: bool = True
    multiplier: float
    free_threshold: float
    max_margin_size: float
    strategy: str = MarginBalancingStrategy.KEEP.value


class MarginLimitValidation(BaseModel):
    is_valid: bool
    total_margin_used: float
    max_margin_allowed: float
    exceeded_amount: Optional[float] = None


class MarginLimitsCheck(BaseModel):
    is_valid: bool
    available_margin: float
    used_margin: float
    remaining_margin: float
    usage_percent: float
    risk_level: RiskLevel


class TransferCostItem(BaseModel):
    ticker: str
    cost: float
    is_free: bool


class TransferCost(BaseModel):
    total_cost: float = 0.0
    free_transfers: int = 0
    paid_transfers: int = 0
    cost_breakdown: List[TransferCostItem] = Field(default_factory=list)


class MarginTimeInfo(BaseModel):
    time_to_close: float
    time_to_next_balance: float
    is_last_balance: bool


class MarginStrategyDecision(BaseModel):
    """Result of the close-time margin unwind decision"""
    should_remove_margin: bool
    reason: str
    transfer_cost: float
    time_info: MarginTimeInfo


class PositionSize(BaseModel):
    base_size: float
    margin_size: float
    total_size: float


# Funding models
class SellingMode(str, Enum):
    """Which holdings may be sold to fund non-margin purchases"""
    ONLY_POSITIVE_POSITIONS_SELL = "only_positive_positions_sell"
    EQUAL_IN_PERCENTS = "equal_in_percents"
    NONE = "none"

    @classmethod
    def parse(cls, value) -> "SellingMode":
        """Unknown modes resolve to NONE so a config typo never triggers sells"""
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


class SellingPolicyConfig(BaseModel):
    mode: str = SellingMode.ONLY_POSITIVE_POSITIONS_SELL.value


class BuyRequiresTotalMarginalSellConfig(BaseModel):
    """Instruments that cannot be bought on margin and how to fund them"""
    enabled: bool = False
    instruments: List[str] = Field(default_factory=list)
    allow_to_sell_others_positions_to_buy_non_marginal_positions: SellingPolicyConfig = Field(
        default_factory=SellingPolicyConfig
    )
    min_buy_rebalance_percent: float = Field(default=0.0, ge=0.0)

    @property
    def selling_mode(self) -> SellingMode:
        return SellingMode.parse(self.allow_to_sell_others_positions_to_buy_non_marginal_positions.mode)


class SellPlanItem(BaseModel):
    sell_lots: int = Field(ge=0)
    sell_amount: float


class FundingPlan(BaseModel):
    """Selling plan that finances purchases of non-margin instruments"""
    required_funds: Dict[str, float] = Field(default_factory=dict)
    total_funds_needed: float = 0.0
    selling_plan: Dict[str, SellPlanItem] = Field(default_factory=dict)
    planned_amount: float = 0.0
    shortfall: float = 0.0


class IterationPlan(BaseModel):
    """Engine decisions for one rebalancing iteration, consumed by the order planner"""
    margin_positions: List[MarginPosition] = Field(default_factory=list)
    margin_limits: Optional[MarginLimitsCheck] = None
    margin_decision: Optional[MarginStrategyDecision] = None
    position_sizes: Dict[str, PositionSize] = Field(default_factory=dict)
    funding: FundingPlan = Field(default_factory=FundingPlan)


# Profit models
class ProfitResult(BaseModel):
    profit_amount: float
    profit_percent: float
    meets_threshold: bool


class ProfitLossRecord(BaseModel):
    ticker: str
    current_position_value: float
    original_cost: float
    profit_amount: float
    profit_percentage: float
    is_margin_position: bool = False


class IterationProfitSummary(BaseModel):
    total_profit: float = 0.0
    total_profit_percentage: float = 0.0
    profit_positions: int = 0
    loss_positions: int = 0
    profit_loss_records: List[ProfitLossRecord] = Field(default_factory=list)


# Expense models
class ExpenseRecord(BaseModel):
    order_id: str
    ticker: str
    order_type: Literal['BUY', 'SELL']
    lots: int
    amount_rub: float
    commission: float
    timestamp: datetime


class IterationExpenseSummary(BaseModel):
    total_commission: float = 0.0
    orders_executed: int = 0
    expense_records: List[ExpenseRecord] = Field(default_factory=list)


class DailyExpenseSummary(BaseModel):
    total_commission: float
    orders_executed: int


class DailySummary(BaseModel):
    date: str
    cumulative_profit: float
    cumulative_expenses: float
    net_daily_profit: float
    iterations_count: int
