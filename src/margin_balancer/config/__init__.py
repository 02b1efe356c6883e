"""Account configuration for the margin-aware rebalancer."""

from .models import (
    AccountConfig,
    AccountMarginConfig,
    ProjectConfig,
)
from .loader import load_config

__all__ = [
    "AccountConfig",
    "AccountMarginConfig",
    "ProjectConfig",
    "load_config",
]
