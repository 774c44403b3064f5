"""Historical funding-rate client and trailing EMA helper.

The history API returns a JSON array of hourly samples for one market
between two calendar days:

    GET {base_url}/funding-rates?market=<addr>&start_date=YYYY-MM-DD&end_date=YYYY-MM-DD
    -> [{"timestamp": "...", "long_rate": "0.12", "short_rate": "-0.15"}, ...]

Rates are annualized decimal strings. Each side is parsed on its own, so a
malformed long rate drops the sample from the long series only.
"""

import asyncio
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import aiohttp

from funding_evaluator.config import FundingHistorySettings
from funding_evaluator.exceptions import FundingHistoryUnavailableError
from funding_evaluator.logging import get_logger
from funding_evaluator.market_data.client import FundingHistorySource
from funding_evaluator.models import FundingRateSample
from funding_evaluator.signals.smoothing import trailing_ema

logger = get_logger(__name__)

_DATE_FORMAT = "%Y-%m-%d"


class FundingHistoryClient(FundingHistorySource):
    """aiohttp client for the funding-rate history API."""

    def __init__(self, settings: FundingHistorySettings | None = None) -> None:
        self._settings = settings or FundingHistorySettings()
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

    async def funding_rate_history(
        self, market_addr: str, start_date: str, end_date: str
    ) -> list[FundingRateSample]:
        """Fetch the samples for a market between two calendar days.

        Raises:
            FundingHistoryUnavailableError: On HTTP failure after retries, an
                undecodable body, or a response that is not a list of records.
        """
        params = {"market": market_addr, "start_date": start_date, "end_date": end_date}
        try:
            payload = await self._fetch_with_retry(params)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise FundingHistoryUnavailableError(f"market {market_addr}: {e}") from e

        if not isinstance(payload, list):
            raise FundingHistoryUnavailableError(
                f"market {market_addr}: unexpected response type {type(payload).__name__}"
            )

        return [FundingRateSample.from_record(r) for r in payload if isinstance(r, dict)]

    async def _get_json(self, params: dict[str, str]) -> Any:
        session = await self._get_session()
        url = f"{self._settings.base_url.rstrip('/')}/funding-rates"
        async with session.get(url, params=params) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def _fetch_with_retry(self, params: dict[str, str]) -> Any:
        """Fetch with exponential backoff retry. Re-raises on final failure."""
        max_retries = max(1, self._settings.max_retries)
        base_delay = self._settings.retry_base_delay

        for attempt in range(max_retries):
            try:
                return await self._get_json(params)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt == max_retries - 1:
                    logger.error(
                        "funding_history_failed_permanently",
                        market=params["market"],
                        error=str(e),
                        attempts=max_retries,
                    )
                    raise

                delay = base_delay * (2**attempt)
                logger.warning(
                    "funding_history_retry",
                    market=params["market"],
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

        return []  # Unreachable, but satisfies type checker


def split_rate_series(
    samples: Sequence[FundingRateSample],
) -> tuple[list[Decimal], list[Decimal]]:
    """Split samples into (long_rates, short_rates), dropping unparsed sides."""
    long_rates = [s.long_rate for s in samples if s.long_rate is not None]
    short_rates = [s.short_rate for s in samples if s.short_rate is not None]
    return long_rates, short_rates


def history_window(lookback_hours: int, now: datetime | None = None) -> tuple[str, str]:
    """Return the (start_date, end_date) calendar days covering the lookback, UTC."""
    end = now or datetime.now(timezone.utc)
    start = end - timedelta(hours=lookback_hours)
    return start.strftime(_DATE_FORMAT), end.strftime(_DATE_FORMAT)


async def fetch_rate_emas(
    source: FundingHistorySource,
    market_addr: str,
    period: int = 24,
    lookback_hours: int = 24,
    now: datetime | None = None,
) -> tuple[Decimal, Decimal]:
    """Fetch a market's recent history and smooth both sides.

    Args:
        source: Funding-rate history collaborator.
        market_addr: Market contract address.
        period: EMA period, also the minimum sample count per side.
        lookback_hours: How far back the history window reaches.
        now: Window end. Defaults to the current UTC time.

    Returns:
        Tuple of (ema_long, ema_short).

    Raises:
        FundingHistoryUnavailableError: If the history cannot be fetched.
        InsufficientDataError: If either side has fewer than ``period`` samples.
    """
    start_date, end_date = history_window(lookback_hours, now)
    samples = await source.funding_rate_history(market_addr, start_date, end_date)
    long_rates, short_rates = split_rate_series(samples)

    ema_long = trailing_ema(long_rates, period)
    ema_short = trailing_ema(short_rates, period)
    return ema_long, ema_short
