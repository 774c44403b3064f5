"""Profit projection for funding-rate positions.

Funding convention: a positive annualized rate means the side PAYS, a
negative rate means the side is PAID. Profit over the holding period is the
funding received minus the fee estimate.
"""

from decimal import Decimal

from funding_evaluator.config import ProjectionSettings

_HOURS_PER_YEAR = Decimal("8760")  # 365 * 24


def estimate_profit(
    funding_rate_annualized: Decimal,
    holding_hours: Decimal,
    entry_fee: Decimal,
) -> Decimal:
    """Net profit fraction over the holding period.

    ``-rate * holding_hours / 8760 - entry_fee``
    """
    funding_impact = -funding_rate_annualized * (holding_hours / _HOURS_PER_YEAR)
    return funding_impact - entry_fee


def minimum_profitable_funding_rate(holding_hours: Decimal, entry_fee: Decimal) -> Decimal:
    """Annualized rate at which ``estimate_profit`` breaks even."""
    return -entry_fee * (_HOURS_PER_YEAR / holding_hours)


def project_funding_rate(
    current: Decimal,
    ema: Decimal,
    settings: ProjectionSettings | None = None,
) -> Decimal:
    """Project the next funding rate from its drift against the EMA.

    A mean-reversion heuristic, not a forecast:
      - far above EMA  -> current - strong_adjustment
      - above EMA      -> current - mild_adjustment
      - far below EMA  -> current + rebound_adjustment
      - otherwise      -> current

    Args:
        current: Current annualized funding rate.
        ema: Smoothed funding rate.
        settings: Thresholds and adjustments. Defaults when None.

    Returns:
        Projected annualized funding rate.
    """
    s = settings or ProjectionSettings()
    delta = current - ema

    if delta > s.strong_deviation:
        return current - s.strong_adjustment
    if delta > 0:
        return current - s.mild_adjustment
    if delta < -s.rebound_deviation:
        return current + s.rebound_adjustment
    return current
