"""Fee estimation for leveraged perpetual positions.

All figures are fractions of the posted collateral (deposit). Rates are
annualized decimals, e.g. 0.03 = 3%/yr. A position opened with leverage L
on deposit D has notional L*D, of which (L-1)*D is borrowed counter
collateral.

All calculations use Decimal arithmetic exclusively -- no float conversions anywhere.
"""

from decimal import Decimal

_ONE = Decimal("1")
_TWO = Decimal("2")
_DAYS_PER_YEAR = Decimal("365")
_HOURS_PER_DAY = Decimal("24")


def estimate_fee_percentage(
    leverage: Decimal,
    fee_rate_notional: Decimal,
    fee_rate_counter: Decimal,
    borrow_rate_annualized: Decimal,
    funding_rate_annualized: Decimal,
    holding_hours: Decimal,
) -> Decimal:
    """Estimate the total cost of holding a position, as a fraction of deposit.

    Sum of four terms:
      - trading fee on notional:           fee_rate_notional
      - trading fee on counter collateral: (leverage - 1) * fee_rate_counter
      - borrow fee on the borrowed part:   (1 - 1/leverage) * borrow / 365 * days
      - funding on the full notional:      funding / 365 * days

    Args:
        leverage: Position leverage (> 0).
        fee_rate_notional: Market trading fee on notional size (e.g. 0.0005).
        fee_rate_counter: Market trading fee on counter collateral (e.g. 0.001).
        borrow_rate_annualized: Current borrow fee rate (e.g. 0.03).
        funding_rate_annualized: Current funding rate for the side (signed).
        holding_hours: Expected holding period in hours.

    Returns:
        Total fee fraction. Negative funding can make this negative.
    """
    days_held = holding_hours / _HOURS_PER_DAY

    trading_fee_notional = fee_rate_notional
    trading_fee_counter = (leverage - _ONE) * fee_rate_counter
    borrow_fee = (_ONE - _ONE / leverage) * (borrow_rate_annualized / _DAYS_PER_YEAR) * days_held
    funding_fee = funding_rate_annualized / _DAYS_PER_YEAR * days_held

    return trading_fee_notional + trading_fee_counter + borrow_fee + funding_fee


def calc_entry_fee_percent(
    leverage: Decimal,
    fee_rate_notional: Decimal,
    fee_rate_counter: Decimal,
) -> Decimal:
    """Entry-only trading fee as a fraction of deposit.

    The counter-collateral fee is charged on half of the borrowed portion:
    ``notional + (1 - 1/leverage) / 2 * counter``.
    """
    return fee_rate_notional + ((_ONE - _ONE / leverage) / _TWO) * fee_rate_counter
