"""
Effect components driven by the trigger bus.

Each effect listens to a set of trigger kinds and, when an event
arrives, asks the gamification resolver whether it may react before
firing. Rendering is out of scope: firing means recording the event
and calling ``on_fire`` so a UI layer can play the badge, sound,
confetti or particles.

Element-scoped effects only react to events that name an element.
Flow-scoped displays (the points progress bar) follow the flow-level
switch instead.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from ..models.flow import Flow
from ..models.gamification import EffectKind, GamificationEvent, TriggerKind
from .gamification import is_effect_allowed, is_flow_effect_allowed
from .triggers import TriggerBus

__all__ = [
    "Effect",
    "ElementEffect",
    "PointsBadgeEffect",
    "SuccessSoundEffect",
    "ConfettiEffect",
    "ParticlesEffect",
    "PointsProgressEffect",
    "default_effects",
]

logger = logging.getLogger(__name__)

FireCallback = Callable[[GamificationEvent], None]

ELEMENT_TRIGGERS = (
    TriggerKind.ON_BUTTON_CLICK,
    TriggerKind.ON_QUESTION_ANSWER,
    TriggerKind.ON_FORM_COMPLETE,
    TriggerKind.ON_ITEM_ACTION,
)


class Effect:
    """
    Base class for bus-driven effects.

    Attributes:
        flow: Flow used for opt-in lookups.
        triggers: Kinds this effect subscribes to.
        on_fire: Optional callback invoked when the effect fires.
        fired: Events the effect fired for, in order.
    """

    name = "effect"

    def __init__(
        self,
        flow: Flow,
        triggers: Optional[Iterable[TriggerKind]] = None,
        on_fire: Optional[FireCallback] = None,
    ) -> None:
        self.flow = flow
        self.triggers = tuple(TriggerKind(t) for t in (triggers or self.default_triggers()))
        self.on_fire = on_fire
        self.fired: list[GamificationEvent] = []

    @classmethod
    def default_triggers(cls) -> tuple[TriggerKind, ...]:
        return ELEMENT_TRIGGERS

    def attach(self, bus: TriggerBus) -> Callable[[], None]:
        """
        Subscribe to every configured trigger.

        Returns:
            A callable that detaches the effect from the bus.
        """
        unsubscribes = [bus.subscribe(kind, self.handle) for kind in self.triggers]

        def detach() -> None:
            for unsubscribe in unsubscribes:
                unsubscribe()

        return detach

    def allows(self, event: GamificationEvent) -> bool:
        raise NotImplementedError

    def handle(self, event: GamificationEvent) -> None:
        """Bus handler: fire when the resolver allows it."""
        if not self.allows(event):
            logger.debug(f"{self.name} skipped {event}")
            return
        self.fire(event)

    def fire(self, event: GamificationEvent) -> None:
        self.fired.append(event)
        logger.debug(f"{self.name} fired for {event}")
        if self.on_fire:
            self.on_fire(event)

    @property
    def fire_count(self) -> int:
        return len(self.fired)


class ElementEffect(Effect):
    """An effect gated by one per-element opt-in flag."""

    kind: EffectKind

    def allows(self, event: GamificationEvent) -> bool:
        if event.is_global:
            return False
        return is_effect_allowed(event.element_id, self.kind, self.flow)


class PointsBadgeEffect(ElementEffect):
    """Floating "+N" badge."""

    name = "points_badge"
    kind = EffectKind.POINTS_BADGE

    def fire(self, event: GamificationEvent) -> None:
        # Badge needs something to show even for point-less triggers
        if "points" not in event.payload:
            event = event.model_copy(update={"payload": {**event.payload, "points": 10}})
        super().fire(event)


class SuccessSoundEffect(ElementEffect):
    name = "success_sound"
    kind = EffectKind.SUCCESS_SOUND


class ConfettiEffect(ElementEffect):
    name = "confetti"
    kind = EffectKind.CONFETTI


class ParticlesEffect(ElementEffect):
    name = "particles"
    kind = EffectKind.PARTICLES


class PointsProgressEffect(Effect):
    """
    Flow-scoped points progress bar.

    Tracks the running total announced on ``onPointsGained`` and only
    reacts when the flow-level switch is on.
    """

    name = "points_progress"

    def __init__(
        self,
        flow: Flow,
        triggers: Optional[Iterable[TriggerKind]] = None,
        on_fire: Optional[FireCallback] = None,
    ) -> None:
        super().__init__(flow, triggers, on_fire)
        self.displayed_total = 0

    @classmethod
    def default_triggers(cls) -> tuple[TriggerKind, ...]:
        return (TriggerKind.ON_POINTS_GAINED,)

    def allows(self, event: GamificationEvent) -> bool:
        return is_flow_effect_allowed(self.flow)

    def fire(self, event: GamificationEvent) -> None:
        total = event.payload.get("total")
        self.displayed_total = total if isinstance(total, int) else self.displayed_total + event.points
        super().fire(event)


def default_effects(flow: Flow, on_fire: Optional[FireCallback] = None) -> list[Effect]:
    """The effect set a viewing session mounts by default."""
    return [
        PointsBadgeEffect(flow, on_fire=on_fire),
        SuccessSoundEffect(flow, on_fire=on_fire),
        ConfettiEffect(flow, on_fire=on_fire),
        ParticlesEffect(flow, on_fire=on_fire),
        PointsProgressEffect(flow, on_fire=on_fire),
    ]
