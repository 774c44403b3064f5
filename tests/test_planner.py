"""Tests for DecisionPlanner: position matching, lifecycle actions, ranking."""

import json
import time
from collections.abc import Callable
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from funding_evaluator.config import EvaluatorSettings
from funding_evaluator.exceptions import FundingHistoryUnavailableError
from funding_evaluator.market_data.client import FundingHistorySource
from funding_evaluator.models import (
    DecisionAction,
    Direction,
    MarketDecision,
    MarketSnapshot,
    Position,
    PublishedState,
)
from funding_evaluator.planner import DecisionPlanner, DecisionView, suggest_investment


def _decision(profit: str, direction: Direction = Direction.SHORT, **overrides) -> MarketDecision:
    fields = dict(
        market_addr="neutron1market",
        market_id="BTC_USD",
        market_type="collateral_is_quote",
        direction=direction,
        profit_estimate=Decimal(profit),
        current_rate=Decimal("-0.3"),
        ema_rate=Decimal("-0.3"),
        projected_post_rate=Decimal("-0.3"),
        fees=Decimal("0.001"),
        open_interest=Decimal("1000"),
        imbalance=Decimal("0.5"),
        timestamp=time.time(),
    )
    fields.update(overrides)
    return MarketDecision(**fields)


@pytest.fixture
def history(make_samples: Callable) -> AsyncMock:
    source = AsyncMock(spec=FundingHistorySource)
    source.funding_rate_history.return_value = make_samples(24, "0.2", "-0.3")
    return source


@pytest.fixture
def planner(history: AsyncMock, evaluator_settings: EvaluatorSettings) -> DecisionPlanner:
    return DecisionPlanner(history, settings=evaluator_settings)


def _state(*snapshots: MarketSnapshot, price: str | None = "100") -> PublishedState:
    prices = {}
    if price is not None:
        prices = {s.config.price_feed_id: Decimal(price) for s in snapshots}
    return PublishedState.build(
        generation=3,
        decisions={},
        prices=prices,
        markets={s.market_addr: s for s in snapshots},
    )


class TestBuildView:
    """Opportunities and position adjustments from one state."""

    @pytest.mark.asyncio
    async def test_profitable_direction_becomes_opportunity(
        self, planner: DecisionPlanner, make_snapshot: Callable[..., MarketSnapshot]
    ) -> None:
        view = await planner.build_view(_state(make_snapshot()))

        assert view.generation == 3
        assert len(view.opportunities) == 1
        opportunity = view.opportunities[0]
        assert opportunity.direction == Direction.SHORT
        assert opportunity.action == DecisionAction.OPEN
        assert opportunity.generation == 3
        assert view.position_adjustments == []

    @pytest.mark.asyncio
    async def test_held_direction_becomes_adjustment(
        self,
        planner: DecisionPlanner,
        make_snapshot: Callable[..., MarketSnapshot],
        make_position: Callable[..., Position],
    ) -> None:
        position = make_position(id="42", direction=Direction.SHORT)
        view = await planner.build_view(_state(make_snapshot(positions=(position,))))

        assert view.opportunities == []
        assert len(view.position_adjustments) == 1
        adjustment = view.position_adjustments[0]
        assert adjustment.has_position is True
        assert adjustment.position_id == "42"
        # current == EMA: no deviation
        assert adjustment.action == DecisionAction.HOLD
        assert adjustment.note is None

    @pytest.mark.asyncio
    async def test_held_position_near_liquidation_closes(
        self,
        planner: DecisionPlanner,
        make_snapshot: Callable[..., MarketSnapshot],
        make_position: Callable[..., Position],
    ) -> None:
        # (105 - 100) / 105 < 0.05
        position = make_position(direction=Direction.SHORT, liquidation_price=Decimal("105"))
        view = await planner.build_view(_state(make_snapshot(positions=(position,))))

        adjustment = view.position_adjustments[0]
        assert adjustment.action == DecisionAction.CLOSE
        assert adjustment.note == "liquidation-risk"

    @pytest.mark.asyncio
    async def test_unknown_price_skips_price_exits(
        self,
        planner: DecisionPlanner,
        make_snapshot: Callable[..., MarketSnapshot],
        make_position: Callable[..., Position],
    ) -> None:
        position = make_position(direction=Direction.SHORT, liquidation_price=Decimal("105"))
        view = await planner.build_view(_state(make_snapshot(positions=(position,)), price=None))

        assert view.position_adjustments[0].action == DecisionAction.HOLD

    @pytest.mark.asyncio
    async def test_paying_position_closes_funding_positive(
        self,
        planner: DecisionPlanner,
        make_snapshot: Callable[..., MarketSnapshot],
        make_position: Callable[..., Position],
    ) -> None:
        position = make_position(direction=Direction.LONG)
        view = await planner.build_view(_state(make_snapshot(positions=(position,))))

        adjustment = view.position_adjustments[0]
        assert adjustment.direction == Direction.LONG
        assert adjustment.action == DecisionAction.CLOSE
        assert adjustment.note == "funding-positive"
        # The unheld short side is still an opportunity
        assert [d.direction for d in view.opportunities] == [Direction.SHORT]

    @pytest.mark.asyncio
    async def test_history_failure_falls_back_to_zero_ema(
        self,
        planner: DecisionPlanner,
        history: AsyncMock,
        make_snapshot: Callable[..., MarketSnapshot],
        make_position: Callable[..., Position],
    ) -> None:
        history.funding_rate_history.side_effect = FundingHistoryUnavailableError("down")
        position = make_position(direction=Direction.SHORT)

        view = await planner.build_view(_state(make_snapshot(positions=(position,))))

        adjustment = view.position_adjustments[0]
        assert adjustment.ema_rate == Decimal("0")
        assert adjustment.action == DecisionAction.HOLD

    @pytest.mark.asyncio
    async def test_insufficient_history_falls_back_to_zero_ema(
        self,
        planner: DecisionPlanner,
        history: AsyncMock,
        make_samples: Callable,
        make_snapshot: Callable[..., MarketSnapshot],
    ) -> None:
        history.funding_rate_history.return_value = make_samples(5)

        view = await planner.build_view(_state(make_snapshot()))

        assert view.opportunities[0].ema_rate == Decimal("0")

    @pytest.mark.asyncio
    async def test_one_market_history_error_does_not_fail_view(
        self,
        planner: DecisionPlanner,
        history: AsyncMock,
        make_samples: Callable,
        make_snapshot: Callable[..., MarketSnapshot],
    ) -> None:
        async def samples(addr: str, start: str, end: str) -> list:
            if addr == "neutron1bad":
                raise json.JSONDecodeError("Expecting value", "<html>", 0)
            return make_samples(24, "0.2", "-0.3")

        history.funding_rate_history.side_effect = samples
        state = _state(
            make_snapshot(market_addr="neutron1good"),
            make_snapshot(market_addr="neutron1bad"),
        )

        view = await planner.build_view(state)

        by_market = {d.market_addr: d for d in view.opportunities}
        assert set(by_market) == {"neutron1good", "neutron1bad"}
        assert by_market["neutron1good"].ema_rate == Decimal("-0.3")
        assert by_market["neutron1bad"].ema_rate == Decimal("0")

    @pytest.mark.asyncio
    async def test_opportunities_ranked_by_profit(
        self, planner: DecisionPlanner, make_snapshot: Callable[..., MarketSnapshot]
    ) -> None:
        snapshots = [
            make_snapshot(market_addr="neutron1a", short_notional=Decimal("38504.06259")),
            make_snapshot(market_addr="neutron1b", short_notional=Decimal("20000")),
            make_snapshot(market_addr="neutron1c", short_notional=Decimal("30000")),
        ]

        view = await planner.build_view(_state(*snapshots))

        profits = [d.profit_estimate for d in view.opportunities]
        assert len(profits) == 3
        assert all(a >= b for a, b in zip(profits, profits[1:]))
        assert view.opportunities[0].market_addr == "neutron1b"

    @pytest.mark.asyncio
    async def test_adjustments_ranked_by_profit(
        self,
        planner: DecisionPlanner,
        make_snapshot: Callable[..., MarketSnapshot],
        make_position: Callable[..., Position],
    ) -> None:
        snapshots = [
            make_snapshot(
                market_addr="neutron1a",
                positions=(
                    make_position(id="1", direction=Direction.LONG),
                    make_position(id="2", direction=Direction.SHORT),
                ),
            ),
            make_snapshot(
                market_addr="neutron1b",
                short_notional=Decimal("20000"),
                positions=(make_position(id="3", direction=Direction.SHORT),),
            ),
        ]

        view = await planner.build_view(_state(*snapshots))

        profits = [d.profit_estimate for d in view.position_adjustments]
        assert all(a >= b for a, b in zip(profits, profits[1:]))
        assert [d.position_id for d in view.position_adjustments] == ["3", "2", "1"]

    @pytest.mark.asyncio
    async def test_empty_state(self, planner: DecisionPlanner) -> None:
        view = await planner.build_view(PublishedState())

        assert view.opportunities == []
        assert view.position_adjustments == []
        assert view.suggest_investment() is None


class TestSuggestInvestment:
    """Single best next action."""

    def test_prefers_top_opportunity(self) -> None:
        view = DecisionView(
            opportunities=[_decision("0.02")],
            position_adjustments=[_decision("0.01", has_position=True)],
        )
        assert suggest_investment(view).profit_estimate == Decimal("0.02")

    def test_more_profitable_adjustment_wins(self) -> None:
        view = DecisionView(
            opportunities=[_decision("0.01")],
            position_adjustments=[_decision("0.03", has_position=True)],
        )
        assert suggest_investment(view).profit_estimate == Decimal("0.03")

    def test_equal_profit_keeps_opportunity(self) -> None:
        opportunity = _decision("0.02", action=DecisionAction.OPEN)
        view = DecisionView(
            opportunities=[opportunity],
            position_adjustments=[_decision("0.02", has_position=True)],
        )
        assert suggest_investment(view) is opportunity

    def test_positive_adjustment_without_opportunities(self) -> None:
        view = DecisionView(position_adjustments=[_decision("0.01", has_position=True)])
        assert suggest_investment(view).profit_estimate == Decimal("0.01")

    def test_negative_adjustment_without_opportunities(self) -> None:
        view = DecisionView(position_adjustments=[_decision("-0.01", has_position=True)])
        assert suggest_investment(view) is None

    def test_empty_view(self) -> None:
        assert DecisionView().suggest_investment() is None
