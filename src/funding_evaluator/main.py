"""Entry point for embedding the funding rate evaluator.

Wires the components together and runs the evaluation loop until SIGINT or
SIGTERM. The chain query client is supplied by the embedding application;
the price oracle and funding-rate history clients are built from settings.

Component wiring order (in build_evaluator):
1. AppSettings (configuration)
2. MarketDataAggregator (over the supplied MarketQueryClient)
3. PythPriceFeed (spot prices)
4. FundingHistoryClient (funding-rate history)
5. DecisionPlanner + FundingRateEvaluator
"""

import asyncio
import signal

from funding_evaluator.config import AppSettings
from funding_evaluator.evaluator import FundingRateEvaluator
from funding_evaluator.logging import get_logger, setup_logging
from funding_evaluator.market_data.aggregator import MarketDataAggregator
from funding_evaluator.market_data.client import MarketQueryClient
from funding_evaluator.market_data.funding_history import FundingHistoryClient
from funding_evaluator.market_data.price_feed import PythPriceFeed

logger = get_logger(__name__)


def build_evaluator(
    market_client: MarketQueryClient,
    settings: AppSettings,
) -> tuple[FundingRateEvaluator, PythPriceFeed, FundingHistoryClient]:
    """Build the evaluator and the HTTP clients it owns."""
    aggregator = MarketDataAggregator(
        market_client,
        executor=settings.evaluator.executor_address,
        max_concurrency=settings.evaluator.max_concurrency,
        position_query_limit=settings.evaluator.position_query_limit,
    )
    price_feed = PythPriceFeed(settings.price_feed)
    history = FundingHistoryClient(settings.funding_history)

    evaluator = FundingRateEvaluator(
        aggregator,
        price_feed,
        history,
        settings=settings.evaluator,
        projection_settings=settings.projection,
        lifecycle_settings=settings.lifecycle,
    )
    return evaluator, price_feed, history


def _setup_signal_handlers(shutdown: asyncio.Event) -> None:
    """SIGINT/SIGTERM request a graceful stop after the in-flight cycle."""
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        shutdown.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def run(market_client: MarketQueryClient, settings: AppSettings | None = None) -> None:
    """Run the evaluator until a shutdown signal arrives."""
    settings = settings or AppSettings()
    setup_logging(settings.log_level)

    if not settings.evaluator.executor_address:
        logger.warning("executor_address_not_set")

    evaluator, price_feed, history = build_evaluator(market_client, settings)

    shutdown = asyncio.Event()
    _setup_signal_handlers(shutdown)

    logger.info(
        "funding_evaluator_starting",
        executor=settings.evaluator.executor_address,
        refresh_interval=settings.evaluator.refresh_interval,
        max_concurrency=settings.evaluator.max_concurrency,
    )

    try:
        await evaluator.start()
        await shutdown.wait()
    finally:
        await evaluator.stop()
        await price_feed.close()
        await history.close()
        logger.info("funding_evaluator_stopped")
