"""Pydantic models for account configuration with validation."""

import os
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from ..models import BuyRequiresTotalMarginalSellConfig, MarginBalancingStrategy, MarginConfig


class AccountMarginConfig(BaseModel):
    """Margin trading settings of an account."""

    enabled: bool = Field(
        default=False,
        description="Allow the account to borrow from the broker"
    )
    multiplier: float = Field(
        default=1.0,
        ge=1.0,
        description="Portfolio multiplier; 2 means half of every position is borrowed"
    )
    free_threshold: float = Field(
        default=0.0,
        ge=0.0,
        description="Position value in RUB below which a margin transfer is free"
    )
    max_margin_size: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Maximum total margin in RUB; required when margin trading is enabled"
    )
    balancing_strategy: MarginBalancingStrategy = Field(
        default=MarginBalancingStrategy.KEEP,
        description="What to do with margin before market close"
    )

    @model_validator(mode="after")
    def require_max_margin_size(self) -> "AccountMarginConfig":
        """An enabled margin account must state its limit explicitly."""
        if self.enabled and self.max_margin_size is None:
            raise ValueError("max_margin_size is required when margin trading is enabled")
        return self


class AccountConfig(BaseModel):
    """Single brokerage account configuration."""

    id: str
    name: str
    t_invest_token: str
    account_id: str
    desired_wallet: Dict[str, float]
    desired_mode: Literal['manual', 'default', 'marketcap_aum', 'marketcap', 'aum', 'decorrelation'] = 'manual'
    balance_interval: int = Field(
        default=3600000,
        gt=0,
        description="Milliseconds between rebalancing iterations"
    )
    sleep_between_orders: int = Field(
        default=3000,
        ge=0,
        description="Milliseconds to wait between order submissions"
    )
    margin_trading: AccountMarginConfig = Field(
        default_factory=AccountMarginConfig,
        description="Margin trading settings"
    )
    buy_requires_total_marginal_sell: BuyRequiresTotalMarginalSellConfig = Field(
        default_factory=BuyRequiresTotalMarginalSellConfig,
        description="Funding of instruments that cannot be bought on margin"
    )
    min_profit_percent_for_close_position: Optional[float] = Field(
        default=None,
        description="Minimum profit percent to allow selling; negative values allow a bounded loss"
    )

    @field_validator("desired_wallet")
    @classmethod
    def validate_desired_wallet(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Desired wallet must not be empty or contain negative weights."""
        if not v:
            raise ValueError("desired_wallet must not be empty")
        negative = [ticker for ticker, weight in v.items() if weight < 0]
        if negative:
            raise ValueError(f"desired_wallet has negative weights for: {', '.join(negative)}")
        return v

    def to_margin_config(self) -> MarginConfig:
        """Engine margin settings; a disabled account gets multiplier 1 and no margin allowance."""
        margin = self.margin_trading
        return MarginConfig(
            enabled=margin.enabled,
            multiplier=margin.multiplier if margin.enabled else 1.0,
            free_threshold=margin.free_threshold,
            max_margin_size=margin.max_margin_size if margin.max_margin_size is not None else 0.0,
            strategy=margin.balancing_strategy.value,
        )

    def resolve_token(self) -> Optional[str]:
        """Token value, expanding the ${ENV_VAR} form from the environment."""
        token = self.t_invest_token
        if token.startswith('${') and token.endswith('}'):
            return os.environ.get(token[2:-1])
        return token


class ProjectConfig(BaseModel):
    """Root configuration: all managed accounts."""

    accounts: List[AccountConfig] = Field(
        min_length=1,
        description="Configured accounts"
    )

    def get_account_by_id(self, account_id: str) -> Optional[AccountConfig]:
        return next((account for account in self.accounts if account.id == account_id), None)
