"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class EvaluatorSettings(BaseSettings):
    """Evaluation cycle parameters."""

    model_config = SettingsConfigDict(env_prefix="EVALUATOR_")

    executor_address: str = ""  # owner whose positions are tracked
    refresh_interval: float = 300.0  # seconds between evaluation cycles
    trade_size: Decimal = Decimal("100")  # collateral per simulated trade
    max_concurrency: int = 8  # parallel market tasks per cycle
    holding_hours: Decimal = Decimal("48")
    leverage: Decimal = Decimal("3")
    ema_period: int = 24  # hourly samples
    history_lookback_hours: int = 24
    position_query_limit: int = 1000


class ProjectionSettings(BaseSettings):
    """Mean-reversion drift correction applied to the current funding rate.

    The defaults are policy constants, not fitted values. Tune them via the
    PROJECTION_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="PROJECTION_")

    strong_deviation: Decimal = Decimal("0.01")  # current above EMA by more than this
    strong_adjustment: Decimal = Decimal("0.015")
    mild_adjustment: Decimal = Decimal("0.01")  # current above EMA by any amount
    rebound_deviation: Decimal = Decimal("0.01")  # current below EMA by more than this
    rebound_adjustment: Decimal = Decimal("0.01")


class LifecycleSettings(BaseSettings):
    """Thresholds for held-position decisions."""

    model_config = SettingsConfigDict(env_prefix="LIFECYCLE_")

    price_buffer: Decimal = Decimal("0.05")  # 5% from liquidation / take-profit
    rate_deviation_threshold: Decimal = Decimal("0.5")  # |cur - ema| / |ema|


class PriceFeedSettings(BaseSettings):
    """Pyth Hermes price service connection settings."""

    model_config = SettingsConfigDict(env_prefix="PYTH_")

    hermes_url: str = "https://hermes.pyth.network"
    request_timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 0.5


class FundingHistorySettings(BaseSettings):
    """Historical funding-rate API connection settings.

    The API serves hourly long/short funding samples per market address
    between two calendar days.
    """

    model_config = SettingsConfigDict(env_prefix="FUNDING_HISTORY_")

    base_url: str = "https://indexer-mainnet.levana.finance"
    request_timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 0.5


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    evaluator: EvaluatorSettings = EvaluatorSettings()
    projection: ProjectionSettings = ProjectionSettings()
    lifecycle: LifecycleSettings = LifecycleSettings()
    price_feed: PriceFeedSettings = PriceFeedSettings()
    funding_history: FundingHistorySettings = FundingHistorySettings()
