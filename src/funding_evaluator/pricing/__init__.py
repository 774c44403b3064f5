"""Market-impact pricing: the delta-neutrality funding-rate model."""

from funding_evaluator.pricing.funding_model import compute_funding_rates

__all__ = ["compute_funding_rates"]
