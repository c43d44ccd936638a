"""
Points ledger and points policy.

The ledger accumulates a session's total and tells its own subscribers
about each gain. It knows nothing about the trigger bus: relaying a
gain as ``onPointsGained`` is the caller's job, right after
``add_points``.

The policy turns a flow's PointsConfig into amounts (per answer, per
correct/wrong answer, per form, per slide visit, streak and time
bonus). The ledger never looks at configuration.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from ..models.flow import Item, Option
from ..models.points import PointsConfig, PointsGain

__all__ = ["PointsLedger", "PointsPolicy", "GainHandler"]

logger = logging.getLogger(__name__)

GainHandler = Callable[[int, str], None]


class PointsLedger:
    """
    Running point total for one viewing session.

    The total never decreases while the session lives.
    """

    def __init__(self) -> None:
        self._total = 0
        self._history: list[PointsGain] = []
        self._listeners: dict[int, GainHandler] = {}
        self._next_id = 0

    @property
    def total(self) -> int:
        return self._total

    def get_total(self) -> int:
        return self._total

    @property
    def history(self) -> list[PointsGain]:
        return list(self._history)

    def add_points(self, amount: int, reason: str = "") -> Optional[PointsGain]:
        """
        Add ``amount`` points.

        Negative amounts are clamped to zero, and a zero gain changes
        nothing: no history entry, no notification.

        Args:
            amount: Points to add.
            reason: Why (shown by the badge, kept in history).

        Returns:
            The recorded gain, or None when nothing was added.
        """
        amount = max(0, int(amount))
        if amount == 0:
            logger.debug(f"Ignoring zero gain ({reason})")
            return None

        self._total += amount
        gain = PointsGain(points=amount, reason=reason)
        self._history.append(gain)
        logger.info(f"+{amount} points ({reason}), total {self._total}")

        for listener_id, listener in list(self._listeners.items()):
            try:
                listener(amount, reason)
            except Exception:
                logger.exception(f"Error in points listener {listener_id}")

        return gain

    def subscribe_to_gain(self, handler: GainHandler) -> Callable[[], None]:
        """Register ``handler(points, reason)``; returns an unsubscribe callable."""
        listener_id = self._next_id
        self._next_id += 1
        self._listeners[listener_id] = handler

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def reset(self) -> None:
        """Start over. Only meant for a fresh session on the same ledger."""
        self._total = 0
        self._history.clear()


class PointsPolicy:
    """
    Points values derived from a flow's PointsConfig.

    Keeps the answer streak, since the streak multiplier depends on
    previous answers in the session.

    Attributes:
        config: Point values and multipliers.
        streak: Consecutive correct answers so far.
    """

    def __init__(self, config: Optional[PointsConfig] = None) -> None:
        self.config = config or PointsConfig()
        self.streak = 0

    def for_option(self, option: Optional[Option], elapsed_seconds: Optional[float] = None) -> int:
        """Points for a slide-level option pick."""
        if option is None:
            return 0
        if option.points is not None and option.points > 0:
            base = option.points
        else:
            base = self._graded_base(option.is_correct)
        return self._apply_multipliers(base, option.is_correct, elapsed_seconds)

    def for_item(self, item: Optional[Item], elapsed_seconds: Optional[float] = None) -> int:
        """Points for a questionnaire/grid item pick."""
        if item is None or item.points_enabled is False:
            return 0
        if item.points is not None and item.points > 0:
            base = item.points
        else:
            base = self._graded_base(item.is_correct)
        return self._apply_multipliers(base, item.is_correct, elapsed_seconds)

    def reset(self) -> None:
        """Forget the answer streak. Call alongside PointsLedger.reset()."""
        self.streak = 0

    def for_form_complete(self) -> int:
        return self.config.points_per_form_complete

    def for_slide_visit(self) -> int:
        return self.config.points_per_slide_visit

    def _graded_base(self, is_correct: Optional[bool]) -> int:
        if is_correct is True:
            return self.config.points_per_correct_answer
        if is_correct is False:
            return self.config.points_per_wrong_answer
        return self.config.points_per_answer

    def _apply_multipliers(self, base: int, is_correct: Optional[bool], elapsed_seconds: Optional[float]) -> int:
        multiplier = 1.0

        if is_correct is True:
            self.streak += 1
        elif is_correct is False:
            self.streak = 0

        if self.config.streak_enabled and is_correct is True and self.streak >= 2:
            multiplier *= self.config.streak_multiplier

        if (
            self.config.time_bonus_enabled
            and elapsed_seconds is not None
            and elapsed_seconds <= self.config.time_bonus_window_seconds
        ):
            multiplier *= self.config.time_bonus_multiplier

        return int(round(base * multiplier))
