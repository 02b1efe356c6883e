"""Configuration loader with validation."""

import logging
import yaml
from pathlib import Path

from .models import ProjectConfig

logger = logging.getLogger(__name__)


def load_config(config_path: str | Path) -> ProjectConfig:
    """
    Load and validate account configuration from a YAML or JSON file.

    The loaded config is returned to the caller rather than cached, so each
    engine receives its configuration explicitly.

    Args:
        config_path: Path to the config file (JSON is parsed as YAML)

    Returns:
        Validated ProjectConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config validation fails
        yaml.YAMLError: If YAML parsing fails
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    try:
        config = ProjectConfig(**raw_config)
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    logger.info(f"Configuration loaded successfully: {len(config.accounts)} accounts")
    for account in config.accounts:
        total_weight = sum(account.desired_wallet.values())
        if abs(total_weight - 100) > 1:
            logger.warning(f"Desired wallet weights of account {account.id} sum to {total_weight}%, not 100%")

        margin = account.margin_trading
        logger.info(f"  Account {account.id} ({account.name}): mode {account.desired_mode}, "
                    f"interval {account.balance_interval / 1000:.0f}s")
        if margin.enabled:
            logger.info(f"    Margin: x{margin.multiplier}, free threshold {margin.free_threshold} RUB, "
                        f"max size {margin.max_margin_size} RUB, strategy {margin.balancing_strategy.value}")
        funding = account.buy_requires_total_marginal_sell
        if funding.enabled:
            logger.info(f"    Non-margin instruments: {', '.join(funding.instruments) or 'none'} "
                        f"(selling mode {funding.selling_mode.value}, "
                        f"min buy {funding.min_buy_rebalance_percent}%)")

    return config
