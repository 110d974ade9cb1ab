"""Configuration management using Pydantic Settings."""

from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StrategySettings(BaseSettings):
    """DCA ladder configuration.

    Percentages are expressed in percent of the reference price (2.0 = 2%).
    """

    model_config = SettingsConfigDict(env_prefix="DCAFLOW_STRATEGY_")

    max_steps: int = Field(default=10, ge=1, le=100)
    buy_interval_pct: float = Field(default=2.0, gt=0.0, lt=100.0)
    target_profit_pct: float = Field(default=3.0, gt=0.0)
    stop_loss_pct: float = Field(default=10.0, gt=0.0, lt=100.0)
    initial_amount: float = Field(default=10000.0, gt=0.0)
    premium_rate_pct: float = Field(default=0.0, ge=0.0)


class SystemSettings(BaseSettings):
    """System configuration."""

    model_config = SettingsConfigDict(env_prefix="DCAFLOW_")

    exchange: str = "upbit"
    mode: Literal["demo", "live"] = "demo"
    symbol: str = "BTC/KRW"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    poll_interval: float = Field(default=2.0, ge=1.0, le=10.0)
    retry_failed_exit: bool = True

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Require a BASE/QUOTE pair."""
        if v.count("/") != 1 or not all(v.split("/")):
            raise ValueError(f"symbol must look like BASE/QUOTE, got {v!r}")
        return v.upper()


class BacktestSettings(BaseSettings):
    """Backtest data configuration."""

    model_config = SettingsConfigDict(env_prefix="DCAFLOW_BACKTEST_")

    timeframe: str = "1d"
    limit: int = Field(default=200, ge=1, le=5000)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Keys (from .env)
    exchange_api_key: SecretStr = Field(default=SecretStr(""))
    exchange_api_secret: SecretStr = Field(default=SecretStr(""))

    # Environment
    env: Literal["development", "production"] = "development"

    # Sub-settings
    system: SystemSettings = Field(default_factory=SystemSettings)
    strategy: StrategySettings = Field(default_factory=StrategySettings)
    backtest: BacktestSettings = Field(default_factory=BacktestSettings)

    @property
    def is_demo_mode(self) -> bool:
        """Check if running against the synthetic demo exchange."""
        return self.system.mode == "demo"

    @property
    def has_exchange_credentials(self) -> bool:
        """Check if exchange credentials are configured."""
        return bool(
            self.exchange_api_key.get_secret_value()
            and self.exchange_api_secret.get_secret_value()
        )


def load_settings() -> Settings:
    """Load settings from environment and config files."""
    return Settings()


# Global settings instance (lazy loaded)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
