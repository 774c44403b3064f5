"""Exponential smoothing of funding-rate series.

Computes Exponential Moving Averages over historical funding rates using
Decimal arithmetic with quantize to prevent precision explosion.

CRITICAL: All computations use Decimal. Never use float.
"""

from collections.abc import Sequence
from decimal import Decimal

from funding_evaluator.exceptions import InsufficientDataError

#: Precision limit for EMA intermediate results (18 decimal places).
#: Prevents Decimal division from producing arbitrarily long representations.
_EMA_QUANTIZE = Decimal("0.000000000000000001")


def _alpha(period: int) -> Decimal:
    if period < 1:
        raise ValueError(f"EMA period must be >= 1, got {period}")
    return Decimal("2") / (Decimal(period) + Decimal("1"))


def compute_ema(
    values: Sequence[Decimal], period: int, seed: Decimal | None = None
) -> list[Decimal]:
    """Smooth ``values`` and return the running EMA after each sample.

    Each step folds one sample in with weight ``2 / (period + 1)``. Without
    a ``seed`` the first sample starts the series unchanged; with one, every
    sample is folded onto it.

    Args:
        values: Ordered samples, oldest first.
        period: Smoothing period (>= 1).
        seed: Starting EMA value, if already known.

    Returns:
        One EMA value per consumed sample. Empty when nothing was consumed
        and no seed was given; ``[seed]`` when only the seed is known.
    """
    alpha = _alpha(period)
    keep = Decimal("1") - alpha

    series: list[Decimal] = []
    if seed is not None:
        series.append(seed.quantize(_EMA_QUANTIZE))
    for v in values:
        if series:
            series.append((alpha * v + keep * series[-1]).quantize(_EMA_QUANTIZE))
        else:
            series.append(v.quantize(_EMA_QUANTIZE))

    if seed is not None:
        return series[1:] or series
    return series


def trailing_ema(values: Sequence[Decimal], period: int) -> Decimal:
    """Return the EMA after consuming the whole sequence.

    The first ``period`` samples seed the average with their simple mean,
    every later sample is folded in by ``compute_ema``. A window shorter
    than ``period`` is never smoothed partially.

    Raises:
        InsufficientDataError: If ``len(values) < period``.
        ValueError: If ``period < 1``.
    """
    _alpha(period)  # validates period
    if len(values) < period:
        raise InsufficientDataError(required=period, available=len(values))

    seed = sum(values[:period], Decimal("0")) / Decimal(period)
    return compute_ema(values[period:], period, seed=seed)[-1]
