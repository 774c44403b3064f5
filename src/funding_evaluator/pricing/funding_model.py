"""Delta-neutrality funding-rate model.

Maps long/short notional exposure and a market's risk parameters to the
annualized funding rate each side pays (positive) or receives (negative).
The more crowded ("popular") side pays, the other side is paid the same
total amount spread over its smaller notional:

  total               = long + short
  override            = max_annualized * total / (dnf_sensitivity * dnf_cap)
  effective           = max(override, sensitivity)
  popular_rate        = min((long - short) / total * effective, max_annualized)
  unpopular_rate      = popular_rate * popular_notional / unpopular_notional

The sensitivity floor widens as notional grows relative to the
delta-neutrality fee sensitivity/cap product.

CRITICAL: All computations use Decimal. Never use float.
"""

from decimal import Decimal

_ZERO = Decimal("0")


def compute_funding_rates(
    long_notional: Decimal,
    short_notional: Decimal,
    funding_rate_sensitivity: Decimal,
    funding_rate_max_annualized: Decimal,
    delta_neutrality_fee_sensitivity: Decimal,
    delta_neutrality_fee_cap: Decimal,
) -> tuple[Decimal, Decimal]:
    """Compute annualized (long_rate, short_rate) for the given exposure.

    Args:
        long_notional: Long-side notional, possibly including a hypothetical trade.
        short_notional: Short-side notional, possibly including a hypothetical trade.
        funding_rate_sensitivity: Market ``funding_rate_sensitivity``.
        funding_rate_max_annualized: Cap on the popular side's rate.
        delta_neutrality_fee_sensitivity: Market ``delta_neutrality_fee_sensitivity``.
        delta_neutrality_fee_cap: Market ``delta_neutrality_fee_cap``.

    Returns:
        Tuple of (long_rate, short_rate). ``(0, 0)`` when there is no notional.
        On a single-sided market the empty side is quoted the popular rate
        unscaled.
    """
    total = long_notional + short_notional
    if total == _ZERO:
        return _ZERO, _ZERO

    net_open_interest = long_notional - short_notional

    if net_open_interest > _ZERO:
        popular_notional, unpopular_notional = long_notional, short_notional
    else:
        popular_notional, unpopular_notional = short_notional, long_notional

    dnf_scale = delta_neutrality_fee_sensitivity * delta_neutrality_fee_cap
    if dnf_scale == _ZERO:
        effective_sensitivity = funding_rate_sensitivity
    else:
        override = funding_rate_max_annualized * (total / dnf_scale)
        effective_sensitivity = max(override, funding_rate_sensitivity)

    raw_popular_rate = (net_open_interest / total) * effective_sensitivity
    popular_rate = min(raw_popular_rate, funding_rate_max_annualized)

    if unpopular_notional == _ZERO:
        unpopular_rate = popular_rate
    else:
        unpopular_rate = popular_rate * (popular_notional / unpopular_notional)

    if net_open_interest > _ZERO:
        return popular_rate, -unpopular_rate
    return unpopular_rate, -popular_rate
