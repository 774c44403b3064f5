"""Pyth Hermes price oracle client.

Fetches the latest price update for a feed id over the Hermes REST API and
scales it by the feed exponent:

    GET {hermes_url}/v2/updates/price/latest?ids[]=<feed_id>
    -> {"parsed": [{"price": {"price": "6214953000000", "expo": -8, ...}}]}

    scaled = Decimal(price) * 10**expo
"""

import asyncio
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import aiohttp

from funding_evaluator.config import PriceFeedSettings
from funding_evaluator.exceptions import PriceUnavailableError
from funding_evaluator.logging import get_logger
from funding_evaluator.market_data.client import PriceOracle
from funding_evaluator.models import parse_optional_decimal

logger = get_logger(__name__)


def scale_price(raw_price: Any, expo: Any) -> Decimal:
    """Apply a Pyth exponent to a raw integer price string.

    Raises:
        PriceUnavailableError: If the price or exponent cannot be parsed.
    """
    price = parse_optional_decimal(raw_price, "price")
    if price is None:
        raise PriceUnavailableError(f"unparsable price {raw_price!r}")
    try:
        exponent = int(expo)
    except (TypeError, ValueError) as e:
        raise PriceUnavailableError(f"unparsable exponent {expo!r}") from e
    return price.scaleb(exponent)


class PythPriceFeed(PriceOracle):
    """Latest-price lookups against a Pyth Hermes endpoint.

    The aiohttp session is created lazily and reused across cycles; call
    ``close()`` on shutdown.
    """

    def __init__(self, settings: PriceFeedSettings | None = None) -> None:
        self._settings = settings or PriceFeedSettings()
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.request_timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def latest_scaled_price(self, feed_id: str) -> Decimal:
        """Return the latest exponent-adjusted price for ``feed_id``.

        Raises:
            PriceUnavailableError: On HTTP failure after retries, an
                undecodable body, or a response with no parsable price.
        """
        try:
            payload = await self._fetch_with_retry(feed_id)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PriceUnavailableError(f"feed {feed_id}: {e}") from e

        parsed = payload.get("parsed") if isinstance(payload, Mapping) else None
        if not parsed or not isinstance(parsed, list) or not isinstance(parsed[0], Mapping):
            raise PriceUnavailableError(f"feed {feed_id}: no price data")

        price = parsed[0].get("price")
        if not isinstance(price, Mapping):
            raise PriceUnavailableError(f"feed {feed_id}: no price data")
        return scale_price(price.get("price"), price.get("expo"))

    async def _get_json(self, feed_id: str) -> Mapping[str, Any]:
        session = await self._get_session()
        url = f"{self._settings.hermes_url.rstrip('/')}/v2/updates/price/latest"
        async with session.get(url, params={"ids[]": feed_id}) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def _fetch_with_retry(self, feed_id: str) -> Mapping[str, Any]:
        """Fetch with exponential backoff retry. Re-raises on final failure."""
        max_retries = max(1, self._settings.max_retries)
        base_delay = self._settings.retry_base_delay

        for attempt in range(max_retries):
            try:
                return await self._get_json(feed_id)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt == max_retries - 1:
                    logger.error(
                        "price_fetch_failed_permanently",
                        feed_id=feed_id,
                        error=str(e),
                        attempts=max_retries,
                    )
                    raise

                delay = base_delay * (2**attempt)
                logger.warning(
                    "price_fetch_retry",
                    feed_id=feed_id,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

        return {}  # Unreachable, but satisfies type checker
