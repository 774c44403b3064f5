"""Per-market evaluation: fee, projected rate and post-trade profit per direction.

Core flow for one market snapshot:
  1. Fee estimate per direction, using that side's current funding rate
  2. Projected rate per direction from the current rate's drift against its EMA
  3. Simulate our own trade (trade_size * leverage notional) on one side at a
     time and recompute the funding-rate model
  4. Profit per direction from the POST-TRADE rate of that side, net of fees

Profitability is judged against the rate that would exist after our trade
moves the market, not the rate observed now.

CRITICAL: All computations use Decimal. Never use float.
"""

import time
from decimal import Decimal

from funding_evaluator.config import EvaluatorSettings, ProjectionSettings
from funding_evaluator.models import DecisionAction, Direction, MarketDecision, MarketSnapshot
from funding_evaluator.pnl.fee_model import estimate_fee_percentage
from funding_evaluator.pnl.profit_model import estimate_profit, project_funding_rate
from funding_evaluator.pricing.funding_model import compute_funding_rates


def post_trade_rates(snapshot: MarketSnapshot, trade_notional: Decimal) -> tuple[Decimal, Decimal]:
    """Funding rate each side would pay after adding ``trade_notional`` to it.

    Returns:
        Tuple of (long_rate_after_long_trade, short_rate_after_short_trade).
    """
    cfg = snapshot.config
    params = (
        cfg.funding_rate_sensitivity,
        cfg.funding_rate_max_annualized,
        cfg.delta_neutrality_fee_sensitivity,
        cfg.delta_neutrality_fee_cap,
    )

    long_after_long, _ = compute_funding_rates(
        snapshot.long_notional + trade_notional, snapshot.short_notional, *params
    )
    _, short_after_short = compute_funding_rates(
        snapshot.long_notional, snapshot.short_notional + trade_notional, *params
    )
    return long_after_long, short_after_short


def evaluate_market(
    snapshot: MarketSnapshot,
    ema_short: Decimal,
    ema_long: Decimal,
    trade_size: Decimal | None = None,
    settings: EvaluatorSettings | None = None,
    projection: ProjectionSettings | None = None,
    generation: int = 0,
    now: float | None = None,
) -> list[MarketDecision]:
    """Produce the two candidate decisions for a market.

    Args:
        snapshot: Market snapshot for this cycle.
        ema_short: Smoothed short funding rate.
        ema_long: Smoothed long funding rate.
        trade_size: Collateral of the simulated trade. Defaults to settings.
        settings: Holding period and evaluation leverage.
        projection: Drift thresholds for the projected rate.
        generation: Cycle id stamped on the decisions.
        now: Decision timestamp. Defaults to the current time.

    Returns:
        ``[short, long]`` decisions, both with action IGNORE.
    """
    settings = settings or EvaluatorSettings()
    if trade_size is None:
        trade_size = settings.trade_size
    timestamp = time.time() if now is None else now

    cfg = snapshot.config
    leverage = settings.leverage
    holding_hours = settings.holding_hours

    long_rate = snapshot.long_funding
    short_rate = snapshot.short_funding

    fee_short = estimate_fee_percentage(
        leverage,
        cfg.trading_fee_notional_size,
        cfg.trading_fee_counter_collateral,
        snapshot.borrow_fee,
        short_rate,
        holding_hours,
    )
    fee_long = estimate_fee_percentage(
        leverage,
        cfg.trading_fee_notional_size,
        cfg.trading_fee_counter_collateral,
        snapshot.borrow_fee,
        long_rate,
        holding_hours,
    )

    projected_short = project_funding_rate(short_rate, ema_short, projection)
    projected_long = project_funding_rate(long_rate, ema_long, projection)

    long_after, short_after = post_trade_rates(snapshot, trade_size * leverage)

    short_profit = estimate_profit(short_after, holding_hours, fee_short)
    long_profit = estimate_profit(long_after, holding_hours, fee_long)

    common = {
        "market_addr": snapshot.market_addr,
        "market_id": snapshot.market_id,
        "market_type": snapshot.market_type,
        "open_interest": snapshot.open_interest,
        "imbalance": snapshot.imbalance,
        "action": DecisionAction.IGNORE,
        "timestamp": timestamp,
        "generation": generation,
    }

    return [
        MarketDecision(
            direction=Direction.SHORT,
            profit_estimate=short_profit,
            current_rate=short_rate,
            ema_rate=ema_short,
            projected_post_rate=projected_short,
            fees=fee_short,
            **common,
        ),
        MarketDecision(
            direction=Direction.LONG,
            profit_estimate=long_profit,
            current_rate=long_rate,
            ema_rate=ema_long,
            projected_post_rate=projected_long,
            fees=fee_long,
            **common,
        ),
    ]
