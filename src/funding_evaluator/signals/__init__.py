"""Signal analysis: exponential smoothing of funding-rate history."""

from funding_evaluator.signals.smoothing import compute_ema, trailing_ema

__all__ = ["compute_ema", "trailing_ema"]
