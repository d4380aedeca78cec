"""Pydantic configuration models for the aria-pilot agent."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from exceptions import ConfigFileNotFoundError, ConfigurationError
from navigation import NavigationRetryConfig
from snapshot_compressor import DEFAULT_FILTERED_PREFIXES


# Load .env file if present
load_dotenv()


class AgentConfig(BaseModel):
    """LLM and task loop configuration."""

    model: str = Field(
        default="gpt-4.1-mini",
        description="Model name to use for the LLM",
    )
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for the OpenAI-compatible API endpoint",
    )
    api_key: str = Field(
        default="",
        description="API key for the LLM service",
    )
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Temperature for model generation",
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=32768,
        description="Maximum tokens for model response",
    )
    max_iterations: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of loop iterations per task",
    )
    max_validation_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Re-requests for invalid output, and completion validation rounds",
    )
    max_repeated_actions: int = Field(
        default=2,
        ge=1,
        le=20,
        description="Repeats of the same action before the model is warned",
    )
    max_consecutive_errors: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Consecutive recoverable errors before the task fails",
    )
    max_total_errors: int = Field(
        default=15,
        ge=1,
        le=200,
        description="Total recoverable errors before the task fails",
    )
    initial_navigation_retries: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Browser restarts allowed when the first navigation fails",
    )
    max_repetition_recoveries: int = Field(
        default=3,
        ge=0,
        le=50,
        description="Repeated tool-call payloads recovered per task",
    )
    compress_snapshots: bool = Field(
        default=True,
        description="Compress page snapshots before sending them to the model",
    )
    search_provider: Literal["none", "duckduckgo", "google", "bing"] = Field(
        default="none",
        description="Search engine behind the web_search tool; none disables the tool",
    )
    guardrails: Optional[str] = Field(
        default=None,
        description="Extra constraints the agent must respect",
    )
    debug: bool = Field(
        default=False,
        description="Emit debug events such as compression statistics",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url doesn't have trailing slash."""
        return v.rstrip("/")

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Load values from environment variables if not explicitly set."""
        env_mapping = {
            "base_url": "PILOT_BASE_URL",
            "api_key": "PILOT_API_KEY",
            "model": "PILOT_MODEL",
        }
        for field_name, env_var in env_mapping.items():
            if field_name not in data or data[field_name] is None:
                env_value = os.getenv(env_var)
                if env_value:
                    data[field_name] = env_value
        return data


class BrowserConfig(BaseModel):
    """Browser automation configuration."""

    browser: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to use",
    )
    headless: bool = Field(
        default=True,
        description="Run browser in headless mode",
    )
    viewport_width: int = Field(
        default=1280,
        ge=320,
        le=3840,
        description="Browser viewport width",
    )
    viewport_height: int = Field(
        default=800,
        ge=240,
        le=2160,
        description="Browser viewport height",
    )
    slow_mo: int = Field(
        default=0,
        ge=0,
        le=5000,
        description="Slow down browser operations by this many ms",
    )
    bypass_csp: bool = Field(
        default=True,
        description="Bypass the page's Content-Security-Policy",
    )


class NavigationConfig(BaseModel):
    """Navigation timeout escalation."""

    base_timeout_ms: int = Field(default=30000, ge=1000, description="Timeout of the first attempt")
    max_timeout_ms: int = Field(default=120000, ge=1000, description="Upper bound for any attempt")
    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts including the first")
    timeout_multiplier: float = Field(default=2.0, ge=1.0, le=10.0, description="Growth per attempt")

    @model_validator(mode="after")
    def check_bounds(self) -> "NavigationConfig":
        if self.max_timeout_ms < self.base_timeout_ms:
            raise ValueError("max_timeout_ms must be >= base_timeout_ms")
        return self

    def to_retry_config(self) -> NavigationRetryConfig:
        return NavigationRetryConfig(
            base_timeout_ms=self.base_timeout_ms,
            max_timeout_ms=self.max_timeout_ms,
            max_attempts=self.max_attempts,
            timeout_multiplier=self.timeout_multiplier,
        )


class CompressionConfig(BaseModel):
    """Snapshot compressor settings."""

    filtered_prefixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FILTERED_PREFIXES),
        description="Lines starting with any of these are dropped",
    )
    enable_deduplication: bool = Field(
        default=True,
        description="Replace repeated quoted text with [same as above]",
    )


class PilotConfig(BaseModel):
    """Root configuration model combining all config sections."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)

    verbose: bool = Field(
        default=False,
        description="Enable verbose logging",
    )

    @classmethod
    def from_flat_dict(cls, data: dict[str, Any]) -> "PilotConfig":
        """Create config from a flat dictionary (legacy format compatibility)."""
        sections = {
            "agent": set(AgentConfig.model_fields),
            "browser": set(BrowserConfig.model_fields),
            "navigation": set(NavigationConfig.model_fields),
            "compression": set(CompressionConfig.model_fields),
        }
        nested: dict[str, Any] = {name: {} for name in sections}

        for key, value in data.items():
            if key == "verbose":
                nested["verbose"] = value
                continue
            for section, keys in sections.items():
                if key in keys:
                    nested[section][key] = value
                    break

        return cls.model_validate(nested)


def load_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict[str, Any]] = None,
) -> PilotConfig:
    """
    Load configuration from file with CLI overrides.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    Raises:
        ConfigFileNotFoundError: If an explicitly given file does not exist.
        ConfigurationError: If the file cannot be parsed.
    """
    config_data: dict[str, Any] = {}

    # Load from file if provided or default exists
    if config_path is None:
        config_path = Path("config.json")
    elif not config_path.exists():
        raise ConfigFileNotFoundError(str(config_path))

    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                if config_path.suffix in {".yaml", ".yml"}:
                    import yaml
                    config_data = yaml.safe_load(f) or {}
                else:
                    config_data = json.load(f)
        except Exception as e:
            raise ConfigurationError(f"Could not load {config_path}: {e}") from e

    # Check if it's flat or nested format
    is_flat = any(key in config_data for key in ["model", "base_url", "api_key"])

    if is_flat:
        config = PilotConfig.from_flat_dict(config_data)
    else:
        config = PilotConfig.model_validate(config_data)

    # Apply CLI overrides
    if cli_overrides:
        config_dict = config.model_dump()
        _apply_overrides(config_dict, cli_overrides)
        config = PilotConfig.model_validate(config_dict)

    return config


def _apply_overrides(config_dict: dict[str, Any], overrides: dict[str, Any]) -> None:
    """Apply CLI overrides to config dictionary."""
    override_mapping = {
        "browser": ("browser", "browser"),
        "headless": ("browser", "headless"),
        "headful": ("browser", "headless"),  # inverted
        "verbose": ("verbose", None),
        "debug": ("agent", "debug"),
        "model": ("agent", "model"),
        "base_url": ("agent", "base_url"),
        "max_iterations": ("agent", "max_iterations"),
        "search_provider": ("agent", "search_provider"),
    }

    for key, value in overrides.items():
        if value is None:
            continue

        if key == "headful":
            config_dict["browser"]["headless"] = not value
            continue

        mapping = override_mapping.get(key)
        if mapping:
            section, field = mapping
            if field is None:
                config_dict[section] = value
            else:
                config_dict[section][field] = value
