"""Market data layer -- snapshot aggregation, spot prices, and funding-rate history."""

from funding_evaluator.market_data.aggregator import AggregateResult, MarketDataAggregator
from funding_evaluator.market_data.client import (
    FundingHistorySource,
    MarketQueryClient,
    PriceOracle,
)
from funding_evaluator.market_data.funding_history import FundingHistoryClient, fetch_rate_emas
from funding_evaluator.market_data.price_feed import PythPriceFeed

__all__ = [
    "AggregateResult",
    "FundingHistoryClient",
    "FundingHistorySource",
    "MarketDataAggregator",
    "MarketQueryClient",
    "PriceOracle",
    "PythPriceFeed",
    "fetch_rate_emas",
]
