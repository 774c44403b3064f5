"""Funding-rate evaluator -- the periodic evaluation loop and published state.

Each cycle:
  1. Aggregate a fresh snapshot of every market
  2. Fan out one bounded task per market:
     spot price -> 24h funding history -> EMA long/short -> evaluate_market
  3. Merge every market's decisions and prices into private temporaries
  4. Swap a new immutable PublishedState in, as one reference

A market that cannot be evaluated is recorded in the CycleReport with its
skip reason and is absent from that cycle's decisions; it never aborts the
cycle. If the aggregation itself fails the previous state stays published.

Readers (``state``, ``decisions``, ``prices``, ``generate_decision_plan``)
take the current PublishedState reference without locking and always see
decisions and prices built by the same cycle.
"""

import asyncio
import time
from collections.abc import Mapping
from decimal import Decimal

import structlog

from funding_evaluator.analytics.market_evaluation import evaluate_market
from funding_evaluator.config import EvaluatorSettings, LifecycleSettings, ProjectionSettings
from funding_evaluator.exceptions import (
    FundingHistoryUnavailableError,
    InsufficientDataError,
    PriceUnavailableError,
)
from funding_evaluator.logging import get_logger
from funding_evaluator.market_data.aggregator import MarketDataAggregator
from funding_evaluator.market_data.client import FundingHistorySource, PriceOracle
from funding_evaluator.market_data.funding_history import fetch_rate_emas
from funding_evaluator.models import (
    CycleReport,
    MarketDecision,
    MarketOutcome,
    MarketSnapshot,
    PublishedState,
)
from funding_evaluator.planner import DecisionPlanner, DecisionView, suggest_investment

logger = get_logger(__name__)


class FundingRateEvaluator:
    """Periodically evaluates every market and publishes ranked decisions.

    Args:
        aggregator: Market snapshot source.
        price_oracle: Spot price collaborator.
        history_source: Funding-rate history collaborator.
        settings: Cycle and evaluation parameters.
        projection_settings: Drift thresholds for projected rates.
        lifecycle_settings: Thresholds for held positions.
        planner: Decision planner. Built from the collaborators when None.
    """

    def __init__(
        self,
        aggregator: MarketDataAggregator,
        price_oracle: PriceOracle,
        history_source: FundingHistorySource,
        settings: EvaluatorSettings | None = None,
        projection_settings: ProjectionSettings | None = None,
        lifecycle_settings: LifecycleSettings | None = None,
        planner: DecisionPlanner | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._price_oracle = price_oracle
        self._history = history_source
        self._settings = settings or EvaluatorSettings()
        self._projection = projection_settings or ProjectionSettings()
        self._planner = planner or DecisionPlanner(
            history_source,
            settings=self._settings,
            lifecycle_settings=lifecycle_settings,
            projection_settings=self._projection,
        )

        self._state = PublishedState()
        self._cycle_lock = asyncio.Lock()
        self._running = False
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def start(self) -> None:
        """Run an immediate first cycle, then one every ``refresh_interval``."""
        if self._running:
            logger.warning("evaluator_already_running")
            return
        self._running = True
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop())
        logger.info("evaluator_started", refresh_interval=self._settings.refresh_interval)

    async def stop(self) -> None:
        """Stop scheduling cycles.

        A cycle already in flight runs to completion and publishes before
        the background task ends.
        """
        self._running = False
        self._wake.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("evaluator_stopped", generation=self._state.generation)

    @property
    def is_running(self) -> bool:
        return self._running

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("evaluator_cycle_error", error=str(e), exc_info=True)

            if not self._running:
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._settings.refresh_interval)
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                break

    # ──────────────────────────────────────────────
    # Evaluation cycle
    # ──────────────────────────────────────────────

    async def refresh(self) -> CycleReport:
        """Run one evaluation cycle and publish its results.

        Returns:
            The CycleReport published with the new state.

        Raises:
            MarketFetchError: If the market list cannot be fetched. The
                previous state stays published.
        """
        async with self._cycle_lock:
            started_at = time.time()
            generation = self._state.generation + 1

            aggregate = await self._aggregator.fetch_all()

            semaphore = asyncio.Semaphore(max(1, self._settings.max_concurrency))

            async def bounded(snapshot: MarketSnapshot) -> MarketOutcome:
                async with semaphore:
                    with structlog.contextvars.bound_contextvars(market=snapshot.market_addr):
                        return await self._evaluate_one(snapshot, generation, started_at)

            outcomes = await asyncio.gather(
                *(bounded(s) for s in aggregate.snapshots.values())
            )

            decisions: dict[str, MarketDecision] = {}
            prices: dict[str, Decimal] = {}
            for outcome in outcomes:
                if not outcome.is_ok:
                    continue
                for decision in outcome.decisions:
                    decisions[decision.key] = decision
                if outcome.price_feed_id is not None and outcome.price is not None:
                    prices[outcome.price_feed_id] = outcome.price

            report = CycleReport(
                generation=generation,
                started_at=started_at,
                finished_at=time.time(),
                outcomes=tuple(outcomes),
                fetch_failures=tuple(str(f) for f in aggregate.failures),
            )

            self._state = PublishedState.build(
                generation=generation,
                decisions=decisions,
                prices=prices,
                markets=aggregate.snapshots,
                report=report,
            )

            logger.info(
                "cycle_published",
                generation=generation,
                evaluated=report.evaluated,
                skipped=report.skipped,
                fetch_failures=len(report.fetch_failures),
                decisions=len(decisions),
                duration=round(report.finished_at - started_at, 3),
            )
            return report

    async def _evaluate_one(
        self, snapshot: MarketSnapshot, generation: int, now: float
    ) -> MarketOutcome:
        """Evaluate one market. Every failure becomes a skipped outcome."""
        addr = snapshot.market_addr
        feed_id = snapshot.config.price_feed_id
        if not feed_id:
            return self._skip(addr, "no price feed configured")

        try:
            price = await self._price_oracle.latest_scaled_price(feed_id)
        except PriceUnavailableError as e:
            return self._skip(addr, f"price unavailable: {e}")
        except Exception as e:
            logger.error("price_lookup_error", feed_id=feed_id, exc_info=True)
            return self._skip(addr, f"price unavailable: {e}")

        try:
            ema_long, ema_short = await fetch_rate_emas(
                self._history,
                addr,
                period=self._settings.ema_period,
                lookback_hours=self._settings.history_lookback_hours,
            )
        except FundingHistoryUnavailableError as e:
            return self._skip(addr, f"funding history unavailable: {e}")
        except InsufficientDataError as e:
            return self._skip(addr, f"insufficient funding history: {e}")
        except Exception as e:
            logger.error("funding_history_error", exc_info=True)
            return self._skip(addr, f"funding history unavailable: {e}")

        decisions = evaluate_market(
            snapshot,
            ema_short=ema_short,
            ema_long=ema_long,
            trade_size=self._settings.trade_size,
            settings=self._settings,
            projection=self._projection,
            generation=generation,
            now=now,
        )
        return MarketOutcome.ok(addr, decisions, feed_id, price)

    @staticmethod
    def _skip(market_addr: str, reason: str) -> MarketOutcome:
        logger.warning("market_skipped", reason=reason)
        return MarketOutcome.skipped(market_addr, reason)

    # ──────────────────────────────────────────────
    # Read-only views
    # ──────────────────────────────────────────────

    @property
    def state(self) -> PublishedState:
        """The current published state. Immutable; safe to hold."""
        return self._state

    @property
    def decisions(self) -> Mapping[str, MarketDecision]:
        return self._state.decisions

    @property
    def prices(self) -> Mapping[str, Decimal]:
        return self._state.prices

    @property
    def markets(self) -> Mapping[str, MarketSnapshot]:
        return self._state.markets

    @property
    def last_report(self) -> CycleReport | None:
        return self._state.report

    async def generate_decision_plan(self) -> DecisionView:
        """Rank opportunities and position adjustments from the current state."""
        return await self._planner.build_view(self._state)

    @staticmethod
    def suggest_investment(view: DecisionView) -> MarketDecision | None:
        """Single best next action in ``view``, or None."""
        return suggest_investment(view)
