"""Custom exceptions for the funding rate evaluator.

Every per-market failure maps onto one of these so the evaluation cycle
can record why a market was skipped without aborting the others.
"""


class EvaluatorError(Exception):
    """Base exception for all evaluator errors."""


class InsufficientDataError(EvaluatorError):
    """Raised when a series is shorter than the smoothing period."""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(f"need {required} samples, have {available}")


class PriceUnavailableError(EvaluatorError):
    """Raised when the oracle cannot produce a price for a feed."""


class FundingHistoryUnavailableError(EvaluatorError):
    """Raised when historical funding rates cannot be fetched."""


class MarketFetchError(EvaluatorError):
    """Raised when one step of fetching a market's data fails.

    Attributes:
        market: Market id or address the failure belongs to.
        step: Which query failed (e.g. "market_info", "status").
    """

    def __init__(self, market: str, step: str, cause: Exception | None = None) -> None:
        self.market = market
        self.step = step
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"market {market}: failed to fetch {step}{detail}")
