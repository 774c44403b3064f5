"""Market data aggregator -- concurrent per-market snapshot retrieval.

For every market in the registry, concurrently:
  market info -> status -> executor's open position ids -> position details

The last step runs only when the executor holds positions in the market.
A failure in any step fails only that market: it is wrapped in a
MarketFetchError naming the market and the step, and collected next to the
snapshots that did succeed.
"""

import asyncio
import dataclasses
from dataclasses import dataclass, field

import structlog

from funding_evaluator.exceptions import MarketFetchError
from funding_evaluator.logging import get_logger
from funding_evaluator.market_data.client import MarketQueryClient
from funding_evaluator.models import MarketSnapshot, Position

logger = get_logger(__name__)


@dataclass(frozen=True)
class AggregateResult:
    """Snapshots keyed by market address plus the markets that failed."""

    snapshots: dict[str, MarketSnapshot] = field(default_factory=dict)
    failures: tuple[MarketFetchError, ...] = ()


class MarketDataAggregator:
    """Builds a point-in-time snapshot of every known market.

    Args:
        client: Market query collaborator.
        executor: Owner address whose open positions are tracked.
        max_concurrency: Markets fetched in parallel.
        position_query_limit: Page size for the open position id query.
    """

    def __init__(
        self,
        client: MarketQueryClient,
        executor: str,
        max_concurrency: int = 8,
        position_query_limit: int = 1000,
    ) -> None:
        self._client = client
        self._executor = executor
        self._max_concurrency = max(1, max_concurrency)
        self._position_query_limit = position_query_limit

    async def fetch_all(self) -> AggregateResult:
        """Fetch every market's snapshot.

        Returns:
            AggregateResult with partial results: markets that failed are
            listed in ``failures`` and absent from ``snapshots``.

        Raises:
            MarketFetchError: If the market list itself cannot be fetched.
        """
        try:
            market_ids = await self._client.list_markets()
        except Exception as e:
            raise MarketFetchError("registry", "list_markets", e) from e

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(market_id: str) -> MarketSnapshot | MarketFetchError:
            async with semaphore:
                with structlog.contextvars.bound_contextvars(market_id=market_id):
                    try:
                        return await self._fetch_market(market_id)
                    except MarketFetchError as e:
                        logger.warning(
                            "market_fetch_failed",
                            step=e.step,
                            error=str(e.cause),
                        )
                        return e
                    except Exception as e:
                        logger.error("market_fetch_error", exc_info=True)
                        return MarketFetchError(market_id, "unexpected", e)

        results = await asyncio.gather(*(bounded(mid) for mid in market_ids))

        snapshots: dict[str, MarketSnapshot] = {}
        failures: list[MarketFetchError] = []
        for result in results:
            if isinstance(result, MarketFetchError):
                failures.append(result)
            else:
                snapshots[result.market_addr] = result

        logger.info(
            "markets_aggregated",
            markets=len(market_ids),
            fetched=len(snapshots),
            failed=len(failures),
        )
        return AggregateResult(snapshots=snapshots, failures=tuple(failures))

    async def _fetch_market(self, market_id: str) -> MarketSnapshot:
        """Run the per-market query chain, tagging failures with their step."""
        try:
            market_addr = await self._client.market_info(market_id)
        except Exception as e:
            raise MarketFetchError(market_id, "market_info", e) from e

        try:
            status = await self._client.market_status(market_addr)
            snapshot = MarketSnapshot.from_status(market_addr, status)
        except Exception as e:
            raise MarketFetchError(market_id, "status", e) from e

        try:
            position_ids = await self._client.open_position_ids(
                market_addr, self._executor, self._position_query_limit
            )
        except Exception as e:
            raise MarketFetchError(market_addr, "open_positions", e) from e

        positions: list[Position] = []
        if position_ids:
            try:
                raw_positions = await self._client.position_details(market_addr, position_ids)
                positions = [Position.from_dict(raw) for raw in raw_positions]
            except Exception as e:
                raise MarketFetchError(market_addr, "position_details", e) from e

        return dataclasses.replace(snapshot, positions=tuple(positions))
