"""Decision planner -- ranked entry opportunities and position adjustments.

Consumes the evaluator's last published state. For every market in it:
  1. Re-fetch funding history and recompute the EMAs (no cross-cycle EMA
     cache). Falls back to (0, 0) whenever the EMAs cannot be computed.
  2. Re-evaluate the two candidate decisions.
  3. Match each executor position to the decision of its direction and let
     the lifecycle advisor choose close / increase / reduce / hold.
  4. Directions without a held position and with a strictly positive
     profit estimate become OPEN opportunities.

Both lists are sorted by profit estimate, highest first (stable).
"""

import asyncio
import dataclasses
import time
from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from funding_evaluator.analytics.market_evaluation import evaluate_market
from funding_evaluator.config import EvaluatorSettings, LifecycleSettings, ProjectionSettings
from funding_evaluator.exceptions import FundingHistoryUnavailableError, InsufficientDataError
from funding_evaluator.logging import get_logger
from funding_evaluator.market_data.client import FundingHistorySource
from funding_evaluator.market_data.funding_history import fetch_rate_emas
from funding_evaluator.models import (
    CycleReport,
    DecisionAction,
    MarketDecision,
    MarketSnapshot,
    PublishedState,
)
from funding_evaluator.position.lifecycle import PositionLifecycleAdvisor

logger = get_logger(__name__)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class DecisionView:
    """Ranked decisions built from one published state."""

    opportunities: list[MarketDecision] = field(default_factory=list)
    position_adjustments: list[MarketDecision] = field(default_factory=list)
    generation: int = 0
    report: CycleReport | None = None

    def suggest_investment(self) -> MarketDecision | None:
        """Single best next action. See ``suggest_investment``."""
        return suggest_investment(self)


def suggest_investment(view: DecisionView) -> MarketDecision | None:
    """Pick the single best next action from a view.

    The top opportunity wins unless the top position adjustment has a
    strictly higher, positive profit estimate. With no opportunities the top
    adjustment is returned only when its profit estimate is positive.
    """
    top_adjustment = view.position_adjustments[0] if view.position_adjustments else None

    if view.opportunities:
        top_opportunity = view.opportunities[0]
        if (
            top_adjustment is not None
            and top_adjustment.profit_estimate > _ZERO
            and top_adjustment.profit_estimate > top_opportunity.profit_estimate
        ):
            return top_adjustment
        return top_opportunity

    if top_adjustment is not None and top_adjustment.profit_estimate > _ZERO:
        return top_adjustment
    return None


def _by_profit(decisions: list[MarketDecision]) -> list[MarketDecision]:
    return sorted(decisions, key=lambda d: d.profit_estimate, reverse=True)


class DecisionPlanner:
    """Builds a DecisionView from a published evaluator state.

    Args:
        history_source: Funding-rate history collaborator for EMA refresh.
        settings: Evaluation parameters (EMA period, trade size, leverage).
        lifecycle_settings: Thresholds for held positions.
        projection_settings: Drift thresholds for projected rates.
    """

    def __init__(
        self,
        history_source: FundingHistorySource,
        settings: EvaluatorSettings | None = None,
        lifecycle_settings: LifecycleSettings | None = None,
        projection_settings: ProjectionSettings | None = None,
    ) -> None:
        self._history = history_source
        self._settings = settings or EvaluatorSettings()
        self._projection = projection_settings or ProjectionSettings()
        self._advisor = PositionLifecycleAdvisor(lifecycle_settings)

    async def build_view(self, state: PublishedState) -> DecisionView:
        """Rank opportunities and position adjustments for ``state``."""
        semaphore = asyncio.Semaphore(max(1, self._settings.max_concurrency))
        now = time.time()

        async def bounded(snapshot: MarketSnapshot) -> tuple[list, list]:
            async with semaphore:
                with structlog.contextvars.bound_contextvars(market=snapshot.market_addr):
                    return await self._plan_market(snapshot, state, now)

        results = await asyncio.gather(*(bounded(s) for s in state.markets.values()))

        opportunities: list[MarketDecision] = []
        adjustments: list[MarketDecision] = []
        for market_opportunities, market_adjustments in results:
            opportunities.extend(market_opportunities)
            adjustments.extend(market_adjustments)

        view = DecisionView(
            opportunities=_by_profit(opportunities),
            position_adjustments=_by_profit(adjustments),
            generation=state.generation,
            report=state.report,
        )
        logger.info(
            "decision_view_built",
            generation=state.generation,
            opportunities=len(view.opportunities),
            adjustments=len(view.position_adjustments),
        )
        return view

    async def _plan_market(
        self, snapshot: MarketSnapshot, state: PublishedState, now: float
    ) -> tuple[list[MarketDecision], list[MarketDecision]]:
        ema_long, ema_short = await self._rate_emas(snapshot.market_addr)

        decisions = evaluate_market(
            snapshot,
            ema_short=ema_short,
            ema_long=ema_long,
            settings=self._settings,
            projection=self._projection,
            generation=state.generation,
            now=now,
        )
        by_direction = {d.direction: d for d in decisions}

        price = None
        if snapshot.config.price_feed_id is not None:
            price = state.prices.get(snapshot.config.price_feed_id)

        adjustments: list[MarketDecision] = []
        held = set()
        for position in snapshot.positions:
            decision = by_direction.get(position.direction)
            if decision is None:
                continue
            held.add(position.direction)

            action, reason = self._advisor.advise(
                position, decision.current_rate, decision.ema_rate, price
            )
            adjustments.append(
                dataclasses.replace(
                    decision,
                    has_position=True,
                    position_id=position.id,
                    action=action,
                    note=reason.value if reason else None,
                )
            )

        opportunities = [
            dataclasses.replace(d, action=DecisionAction.OPEN)
            for d in decisions
            if d.direction not in held and d.profit_estimate > _ZERO
        ]
        return opportunities, adjustments

    async def _rate_emas(self, market_addr: str) -> tuple[Decimal, Decimal]:
        """EMAs for a market, or (0, 0) when history is unusable."""
        try:
            return await fetch_rate_emas(
                self._history,
                market_addr,
                period=self._settings.ema_period,
                lookback_hours=self._settings.history_lookback_hours,
            )
        except (FundingHistoryUnavailableError, InsufficientDataError) as e:
            logger.warning("ema_fallback", reason=str(e))
            return _ZERO, _ZERO
        except Exception:
            logger.error("ema_fallback_unexpected", exc_info=True)
            return _ZERO, _ZERO
