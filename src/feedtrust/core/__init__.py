"""Core configuration for feedtrust."""

from .config import (
    ConfigError,
    TrustPipelineConfig,
    get_config,
    reset_config,
)

__all__ = [
    "ConfigError",
    "TrustPipelineConfig",
    "get_config",
    "reset_config",
]
