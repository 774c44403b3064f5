"""Abstract collaborator interfaces for market data.

The evaluator depends only on these contracts. Chain queries, the price
oracle and the funding-rate history API are reached through concrete
implementations; every call may fail independently and each failure is
attributable to a single market or feed.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from funding_evaluator.models import FundingRateSample


class MarketQueryClient(ABC):
    """Read-only queries against the market registry and market contracts.

    Results are already decoded; numeric fields arrive as decimal strings.
    """

    @abstractmethod
    async def list_markets(self) -> list[str]:
        """Return the ids of every market known to the registry."""
        ...

    @abstractmethod
    async def market_info(self, market_id: str) -> str:
        """Resolve a market id to its contract address."""
        ...

    @abstractmethod
    async def market_status(self, market_addr: str) -> Mapping[str, Any]:
        """Return the decoded status document of a market."""
        ...

    @abstractmethod
    async def open_position_ids(self, market_addr: str, owner: str, limit: int) -> list[str]:
        """Return the ids of positions held by ``owner`` in a market."""
        ...

    @abstractmethod
    async def position_details(
        self, market_addr: str, position_ids: list[str]
    ) -> list[Mapping[str, Any]]:
        """Return the decoded position documents for the given ids."""
        ...


class PriceOracle(ABC):
    """Spot price source keyed by price-feed id."""

    @abstractmethod
    async def latest_scaled_price(self, feed_id: str) -> Decimal:
        """Return the latest price, already adjusted for the feed exponent.

        Raises:
            PriceUnavailableError: If no price can be produced.
        """
        ...


class FundingHistorySource(ABC):
    """Historical long/short funding rates per market."""

    @abstractmethod
    async def funding_rate_history(
        self, market_addr: str, start_date: str, end_date: str
    ) -> list[FundingRateSample]:
        """Return samples between two calendar days (``YYYY-MM-DD``), oldest first.

        Raises:
            FundingHistoryUnavailableError: If the history cannot be fetched.
        """
        ...
