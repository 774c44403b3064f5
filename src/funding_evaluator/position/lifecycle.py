"""Position lifecycle advisor: close / increase / reduce / hold.

Stateless. Each cycle re-derives the action for a held position from the
current funding rate, its EMA and the current oracle price only:

  1. funding rate for the side is positive        -> close (funding-positive)
  2. price within buffer of liquidation price      -> close (liquidation-risk)
  3. price within buffer of take-profit price      -> close (take-profit)
  4. (current - ema) / |ema| below -threshold      -> increase
     (current - ema) / |ema| above +threshold      -> reduce
     otherwise                                     -> hold

Distances are direction-aware. For longs the liquidation price sits below
and the take-profit above the market; for shorts the reverse.
"""

from decimal import Decimal

from funding_evaluator.config import LifecycleSettings
from funding_evaluator.logging import get_logger
from funding_evaluator.models import CloseReason, DecisionAction, Direction, Position

logger = get_logger(__name__)

_ZERO = Decimal("0")


class PositionLifecycleAdvisor:
    """Decides what to do with a held position.

    Args:
        settings: Price buffer and rate deviation threshold.
    """

    def __init__(self, settings: LifecycleSettings | None = None) -> None:
        self._settings = settings or LifecycleSettings()

    def check_exit(
        self,
        position: Position,
        current_rate: Decimal,
        current_price: Decimal | None,
    ) -> tuple[bool, CloseReason | None]:
        """Assess whether the position should be closed.

        Args:
            position: The held position.
            current_rate: Current annualized funding rate for its direction.
            current_price: Current oracle price. None skips the price checks.

        Returns:
            Tuple of (should_exit, reason). Reason is None when not exiting.
        """
        if current_rate > _ZERO:
            return True, CloseReason.FUNDING_POSITIVE

        if current_price is None:
            return False, None

        buffer = self._settings.price_buffer
        liquidation = position.liquidation_price
        take_profit = position.take_profit_price

        if position.direction is Direction.LONG:
            if liquidation is not None and liquidation > _ZERO:
                if (current_price - liquidation) / liquidation <= buffer:
                    return True, CloseReason.LIQUIDATION_RISK
            if take_profit is not None and take_profit > _ZERO:
                if (take_profit - current_price) / take_profit <= buffer:
                    return True, CloseReason.TAKE_PROFIT
        else:
            if liquidation is not None and liquidation > _ZERO:
                if (liquidation - current_price) / liquidation <= buffer:
                    return True, CloseReason.LIQUIDATION_RISK
            if take_profit is not None and take_profit > _ZERO:
                if (current_price - take_profit) / take_profit <= buffer:
                    return True, CloseReason.TAKE_PROFIT

        return False, None

    def advise(
        self,
        position: Position,
        current_rate: Decimal,
        ema_rate: Decimal,
        current_price: Decimal | None,
    ) -> tuple[DecisionAction, CloseReason | None]:
        """Choose the action for a held position.

        Returns:
            Tuple of (action, close_reason). The reason is set only for CLOSE.
        """
        should_exit, reason = self.check_exit(position, current_rate, current_price)
        if should_exit:
            logger.info(
                "position_exit_advised",
                position_id=position.id,
                direction=position.direction.value,
                reason=reason.value if reason else None,
            )
            return DecisionAction.CLOSE, reason

        # Deviation is undefined against a zero EMA (no usable history)
        if ema_rate == _ZERO:
            return DecisionAction.HOLD, None

        percent_diff = (current_rate - ema_rate) / abs(ema_rate)
        threshold = self._settings.rate_deviation_threshold

        if percent_diff < -threshold:
            return DecisionAction.INCREASE, None
        if percent_diff > threshold:
            return DecisionAction.REDUCE, None
        return DecisionAction.HOLD, None
