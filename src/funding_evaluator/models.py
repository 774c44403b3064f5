"""Shared data models for the funding rate evaluator.

CRITICAL: All rates, prices, notionals and fees use Decimal. Never use float.

Snapshots, decisions and published state are frozen dataclasses: every
evaluation cycle builds new values and swaps them in whole, nothing is
patched in place. Upstream numeric fields arrive as decimal strings and are
parsed with ``parse_decimal``, which logs and falls back to a default
instead of failing the whole record.
"""

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any

from funding_evaluator.logging import get_logger

logger = get_logger(__name__)

_ZERO = Decimal("0")

#: Keeps the imbalance ratio finite on markets with no open notional.
IMBALANCE_EPSILON = Decimal("0.000001")


def parse_decimal(raw: Any, default: Decimal = _ZERO, field_name: str = "") -> Decimal:
    """Parse an upstream numeric value into a finite Decimal.

    Args:
        raw: String or number from a decoded upstream document.
        default: Value returned when ``raw`` is missing or malformed.
        field_name: Field label used in the warning log.

    Returns:
        The parsed Decimal, or ``default``.
    """
    if raw is None or raw == "":
        return default
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        logger.warning("invalid_decimal", field=field_name, raw=raw)
        return default
    if not value.is_finite():
        logger.warning("non_finite_decimal", field=field_name, raw=raw)
        return default
    return value


def _node(value: Any) -> Mapping[str, Any]:
    """A nested document node, or an empty one when missing or not an object."""
    return value if isinstance(value, Mapping) else {}


def parse_optional_decimal(raw: Any, field_name: str = "") -> Decimal | None:
    """Like ``parse_decimal`` but returns None for missing or malformed values."""
    if raw is None or raw == "":
        return None
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        logger.warning("invalid_decimal", field=field_name, raw=raw)
        return None
    return value if value.is_finite() else None


class Direction(str, Enum):
    """Position direction relative to the base asset."""

    LONG = "long"
    SHORT = "short"


class DecisionAction(str, Enum):
    """Recommended action for a market decision."""

    OPEN = "open"
    INCREASE = "increase"
    REDUCE = "reduce"
    HOLD = "hold"
    CLOSE = "close"
    IGNORE = "ignore"


class CloseReason(str, Enum):
    """Why the lifecycle advisor closed a position."""

    FUNDING_POSITIVE = "funding-positive"
    LIQUIDATION_RISK = "liquidation-risk"
    TAKE_PROFIT = "take-profit"


def decision_key(market_addr: str, direction: Direction) -> str:
    """Key of a decision in the published decision map."""
    return f"{market_addr}|{direction.value}"


@dataclass(frozen=True)
class MarketConfig:
    """Risk configuration of a single market."""

    trading_fee_notional_size: Decimal = _ZERO
    trading_fee_counter_collateral: Decimal = _ZERO
    funding_rate_sensitivity: Decimal = _ZERO
    funding_rate_max_annualized: Decimal = _ZERO
    delta_neutrality_fee_sensitivity: Decimal = _ZERO
    delta_neutrality_fee_cap: Decimal = _ZERO
    borrow_fee_rate_min_annualized: Decimal = _ZERO
    borrow_fee_rate_max_annualized: Decimal = _ZERO
    max_leverage: Decimal = _ZERO
    price_feed_id: str | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "MarketConfig":
        """Build from a decoded market ``config`` document.

        The price feed is the first Pyth feed configured for the spot price
        oracle; markets without one get ``price_feed_id=None``.
        """
        oracle = _node(_node(raw.get("spot_price")).get("oracle"))
        feeds = oracle.get("feeds")
        feed_id = None
        if isinstance(feeds, list) and feeds:
            pyth = _node(_node(feeds[0]).get("data")).get("pyth")
            raw_id = _node(pyth).get("id")
            feed_id = str(raw_id) if raw_id else None

        def dec(name: str) -> Decimal:
            return parse_decimal(raw.get(name), field_name=name)

        return cls(
            trading_fee_notional_size=dec("trading_fee_notional_size"),
            trading_fee_counter_collateral=dec("trading_fee_counter_collateral"),
            funding_rate_sensitivity=dec("funding_rate_sensitivity"),
            funding_rate_max_annualized=dec("funding_rate_max_annualized"),
            delta_neutrality_fee_sensitivity=dec("delta_neutrality_fee_sensitivity"),
            delta_neutrality_fee_cap=dec("delta_neutrality_fee_cap"),
            borrow_fee_rate_min_annualized=dec("borrow_fee_rate_min_annualized"),
            borrow_fee_rate_max_annualized=dec("borrow_fee_rate_max_annualized"),
            max_leverage=dec("max_leverage"),
            price_feed_id=feed_id,
        )


@dataclass(frozen=True)
class Position:
    """Point-in-time copy of an open position owned by the tracked executor."""

    id: str
    direction: Direction
    liquidation_price: Decimal | None = None
    take_profit_price: Decimal | None = None
    entry_price: Decimal = _ZERO
    leverage: Decimal = _ZERO
    notional_size: Decimal = _ZERO
    position_size_usd: Decimal = _ZERO
    deposit_collateral_usd: Decimal = _ZERO
    pnl_usd: Decimal = _ZERO

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Position":
        """Build from a decoded position document."""
        return cls(
            id=str(raw["id"]),
            direction=Direction(raw["direction_to_base"]),
            liquidation_price=parse_optional_decimal(
                raw.get("liquidation_price_base"), "liquidation_price_base"
            ),
            take_profit_price=parse_optional_decimal(
                raw.get("take_profit_price_base"), "take_profit_price_base"
            ),
            entry_price=parse_decimal(raw.get("entry_price_base"), field_name="entry_price_base"),
            leverage=parse_decimal(raw.get("leverage"), field_name="leverage"),
            notional_size=parse_decimal(raw.get("notional_size"), field_name="notional_size"),
            position_size_usd=parse_decimal(
                raw.get("position_size_usd"), field_name="position_size_usd"
            ),
            deposit_collateral_usd=parse_decimal(
                raw.get("deposit_collateral_usd"), field_name="deposit_collateral_usd"
            ),
            pnl_usd=parse_decimal(raw.get("pnl_usd"), field_name="pnl_usd"),
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """Full point-in-time view of one market for a single evaluation cycle.

    Rates are annualized decimals (0.03 = 3%/yr). Positive funding means the
    side pays, negative means the side is paid.
    """

    market_addr: str
    market_id: str
    market_type: str
    config: MarketConfig
    long_notional: Decimal = _ZERO
    short_notional: Decimal = _ZERO
    long_usd: Decimal = _ZERO
    short_usd: Decimal = _ZERO
    long_funding: Decimal = _ZERO
    short_funding: Decimal = _ZERO
    borrow_fee: Decimal = _ZERO
    base: str = ""
    quote: str = ""
    positions: tuple[Position, ...] = ()

    @property
    def open_interest(self) -> Decimal:
        """Sum of long and short USD exposure."""
        return self.long_usd + self.short_usd

    @property
    def imbalance(self) -> Decimal:
        """Share of notional on the short side."""
        return self.short_notional / (
            self.short_notional + self.long_notional + IMBALANCE_EPSILON
        )

    def funding_rate(self, direction: Direction) -> Decimal:
        """Current annualized funding rate for one side."""
        if direction is Direction.LONG:
            return self.long_funding
        return self.short_funding

    @classmethod
    def from_status(
        cls,
        market_addr: str,
        status: Mapping[str, Any],
        positions: Iterable[Position] = (),
    ) -> "MarketSnapshot":
        """Build from a decoded market ``status`` document."""

        def dec(name: str) -> Decimal:
            return parse_decimal(status.get(name), field_name=name)

        return cls(
            market_addr=market_addr,
            market_id=str(status.get("market_id", "")),
            market_type=str(status.get("market_type", "")),
            config=MarketConfig.from_dict(_node(status.get("config"))),
            long_notional=dec("long_notional"),
            short_notional=dec("short_notional"),
            long_usd=dec("long_usd"),
            short_usd=dec("short_usd"),
            long_funding=dec("long_funding"),
            short_funding=dec("short_funding"),
            borrow_fee=dec("borrow_fee"),
            base=str(status.get("base", "")),
            quote=str(status.get("quote", "")),
            positions=tuple(positions),
        )


@dataclass(frozen=True)
class FundingRateSample:
    """One historical funding-rate observation.

    Each side is parsed independently; a malformed side is None and only
    that side's series loses the sample.
    """

    timestamp: str
    long_rate: Decimal | None
    short_rate: Decimal | None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "FundingRateSample":
        """Build from a decoded history record (timestamp, long_rate, short_rate)."""
        return cls(
            timestamp=str(record.get("timestamp", "")),
            long_rate=parse_optional_decimal(record.get("long_rate"), "long_rate"),
            short_rate=parse_optional_decimal(record.get("short_rate"), "short_rate"),
        )


@dataclass(frozen=True)
class MarketDecision:
    """Evaluation result for one market and direction.

    Recomputed in full every cycle. The action starts as IGNORE and is set
    once, on a copy made with ``dataclasses.replace``.
    """

    market_addr: str
    market_id: str
    market_type: str
    direction: Direction
    profit_estimate: Decimal
    current_rate: Decimal
    ema_rate: Decimal
    projected_post_rate: Decimal
    fees: Decimal
    open_interest: Decimal
    imbalance: Decimal
    has_position: bool = False
    position_id: str | None = None
    action: DecisionAction = DecisionAction.IGNORE
    note: str | None = None
    timestamp: float = field(default_factory=time.time)
    generation: int = 0

    @property
    def key(self) -> str:
        """Key of this decision in the published decision map."""
        return decision_key(self.market_addr, self.direction)


class OutcomeStatus(str, Enum):
    """Per-market result of an evaluation cycle."""

    OK = "ok"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class MarketOutcome:
    """Tagged per-market result: evaluated decisions, or the skip reason."""

    market_addr: str
    status: OutcomeStatus
    reason: str | None = None
    decisions: tuple[MarketDecision, ...] = ()
    price_feed_id: str | None = None
    price: Decimal | None = None

    @classmethod
    def ok(
        cls,
        market_addr: str,
        decisions: Iterable[MarketDecision],
        price_feed_id: str,
        price: Decimal,
    ) -> "MarketOutcome":
        return cls(
            market_addr=market_addr,
            status=OutcomeStatus.OK,
            decisions=tuple(decisions),
            price_feed_id=price_feed_id,
            price=price,
        )

    @classmethod
    def skipped(cls, market_addr: str, reason: str) -> "MarketOutcome":
        return cls(market_addr=market_addr, status=OutcomeStatus.SKIPPED, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status is OutcomeStatus.OK


@dataclass(frozen=True)
class CycleReport:
    """Summary of one evaluation cycle, published with its decisions."""

    generation: int
    started_at: float
    finished_at: float
    outcomes: tuple[MarketOutcome, ...] = ()
    fetch_failures: tuple[str, ...] = ()

    @property
    def evaluated(self) -> int:
        return sum(1 for o in self.outcomes if o.is_ok)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if not o.is_ok)


def _frozen(mapping: Mapping | None = None) -> MappingProxyType:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class PublishedState:
    """Everything one cycle publishes, swapped in as a single reference.

    The mappings are read-only proxies over private copies, so a reader
    holding a state never sees another cycle's data.
    """

    generation: int = 0
    decisions: Mapping[str, MarketDecision] = field(default_factory=_frozen)
    prices: Mapping[str, Decimal] = field(default_factory=_frozen)
    markets: Mapping[str, MarketSnapshot] = field(default_factory=_frozen)
    report: CycleReport | None = None

    @classmethod
    def build(
        cls,
        generation: int,
        decisions: Mapping[str, MarketDecision],
        prices: Mapping[str, Decimal],
        markets: Mapping[str, MarketSnapshot],
        report: CycleReport | None = None,
    ) -> "PublishedState":
        return cls(
            generation=generation,
            decisions=_frozen(decisions),
            prices=_frozen(prices),
            markets=_frozen(markets),
            report=report,
        )
