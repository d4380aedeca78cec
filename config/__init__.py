"""Configuration module for the aria-pilot agent."""
from config.models import (
    AgentConfig,
    BrowserConfig,
    CompressionConfig,
    NavigationConfig,
    PilotConfig,
    load_config,
)

__all__ = [
    "AgentConfig",
    "BrowserConfig",
    "CompressionConfig",
    "NavigationConfig",
    "PilotConfig",
    "load_config",
]
