"""Shared test fixtures for the funding rate evaluator."""

from collections.abc import Callable
from decimal import Decimal

import pytest

from funding_evaluator.config import EvaluatorSettings, LifecycleSettings, ProjectionSettings
from funding_evaluator.models import (
    Direction,
    FundingRateSample,
    MarketConfig,
    MarketSnapshot,
    Position,
)

FEED_ID = "0xe62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43"


@pytest.fixture
def evaluator_settings() -> EvaluatorSettings:
    """Evaluator settings with test defaults (fast refresh, no executor)."""
    return EvaluatorSettings(
        executor_address="neutron1executor",
        refresh_interval=0.01,
        trade_size=Decimal("100"),
        max_concurrency=4,
    )


@pytest.fixture
def lifecycle_settings() -> LifecycleSettings:
    return LifecycleSettings()


@pytest.fixture
def projection_settings() -> ProjectionSettings:
    return ProjectionSettings()


@pytest.fixture
def market_config() -> MarketConfig:
    """Config of a mid-sized market (wBTC-like parameters)."""
    return MarketConfig(
        trading_fee_notional_size=Decimal("0.0005"),
        trading_fee_counter_collateral=Decimal("0.001"),
        funding_rate_sensitivity=Decimal("1"),
        funding_rate_max_annualized=Decimal("0.45"),
        delta_neutrality_fee_sensitivity=Decimal("50000000000"),
        delta_neutrality_fee_cap=Decimal("0.0002"),
        borrow_fee_rate_min_annualized=Decimal("0.01"),
        borrow_fee_rate_max_annualized=Decimal("0.6"),
        max_leverage=Decimal("30"),
        price_feed_id=FEED_ID,
    )


@pytest.fixture
def make_snapshot(market_config: MarketConfig) -> Callable[..., MarketSnapshot]:
    """Factory for MarketSnapshot with overridable fields."""

    def _make(**overrides) -> MarketSnapshot:
        fields = {
            "market_addr": "neutron1market",
            "market_id": "BTC_USD",
            "market_type": "collateral_is_quote",
            "config": market_config,
            "long_notional": Decimal("62533.63301"),
            "short_notional": Decimal("38504.06259"),
            "long_usd": Decimal("62533.63301"),
            "short_usd": Decimal("38504.06259"),
            "long_funding": Decimal("0.2"),
            "short_funding": Decimal("-0.3"),
            "borrow_fee": Decimal("0.03"),
            "base": "BTC",
            "quote": "USD",
            "positions": (),
        }
        fields.update(overrides)
        return MarketSnapshot(**fields)

    return _make


@pytest.fixture
def make_position() -> Callable[..., Position]:
    """Factory for Position with overridable fields."""

    def _make(**overrides) -> Position:
        fields = {
            "id": "42",
            "direction": Direction.SHORT,
            "liquidation_price": None,
            "take_profit_price": None,
            "entry_price": Decimal("100"),
            "leverage": Decimal("3"),
        }
        fields.update(overrides)
        return Position(**fields)

    return _make


@pytest.fixture
def make_samples() -> Callable[..., list[FundingRateSample]]:
    """Factory for ``count`` hourly samples with constant rates."""

    def _make(
        count: int, long_rate: str = "0.1", short_rate: str = "-0.1"
    ) -> list[FundingRateSample]:
        return [
            FundingRateSample(
                timestamp=f"2026-01-01T{i % 24:02d}:00:00Z",
                long_rate=Decimal(long_rate),
                short_rate=Decimal(short_rate),
            )
            for i in range(count)
        ]

    return _make
