"""
Gamification trigger bus.

Decouples "something happened" (a button click, an answer, a form,
points) from "what plays" (badge, sound, confetti, particles, progress).
Effects subscribe per trigger kind; interactive code publishes.

Usage:
    bus = TriggerBus()
    unsubscribe = bus.subscribe(TriggerKind.ON_BUTTON_CLICK, handler)
    bus.publish(TriggerKind.ON_BUTTON_CLICK, {"reason": "clicked"}, element_id="btn1")
    unsubscribe()
"""
from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, Optional

from ..models.gamification import GamificationEvent, TriggerKind

__all__ = ["TriggerBus", "TriggerHandler"]

logger = logging.getLogger(__name__)

TriggerHandler = Callable[[GamificationEvent], None]


class TriggerBus:
    """
    Synchronous in-process publish/subscribe registry.

    Handlers are kept per kind as ``handler_id -> handler`` in
    subscription order. ``publish`` calls them immediately, one after
    the other; a handler that raises is logged and skipped.
    """

    def __init__(self) -> None:
        self._registry: dict[TriggerKind, dict[str, TriggerHandler]] = {}
        self._ids = itertools.count()

    def subscribe(self, kind: TriggerKind, handler: TriggerHandler) -> Callable[[], None]:
        """
        Register ``handler`` for ``kind``.

        Args:
            kind: Trigger kind to listen for.
            handler: Called with the GamificationEvent.

        Returns:
            An idempotent unsubscribe callable.
        """
        kind = TriggerKind(kind)
        handler_id = f"listener-{next(self._ids)}"
        self._registry.setdefault(kind, {})[handler_id] = handler
        logger.debug(f"Subscribed {handler_id} to {kind.value}")

        def unsubscribe() -> None:
            self._remove(kind, handler_id)

        return unsubscribe

    def _remove(self, kind: TriggerKind, handler_id: str) -> None:
        handlers = self._registry.get(kind)
        if not handlers or handler_id not in handlers:
            return
        del handlers[handler_id]
        if not handlers:
            del self._registry[kind]
        logger.debug(f"Unsubscribed {handler_id} from {kind.value}")

    def publish(
        self,
        kind: TriggerKind,
        payload: Optional[dict[str, Any]] = None,
        element_id: Optional[str] = None,
    ) -> GamificationEvent:
        """
        Deliver an event to every current subscriber of ``kind``.

        The subscriber list is captured when publishing starts; handlers
        unsubscribed while the dispatch runs are not called afterwards.

        Returns:
            The published event.
        """
        event = GamificationEvent(kind=kind, element_id=element_id, payload=payload or {})
        handlers = self._registry.get(event.kind, {})

        for handler_id in list(handlers):
            handler = handlers.get(handler_id)
            if handler is None:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in trigger handler {handler_id} for {event.kind.value}")

        return event

    def listener_count(self, kind: TriggerKind) -> int:
        return len(self._registry.get(TriggerKind(kind), {}))

    def clear(self) -> None:
        """Drop every subscription."""
        self._registry.clear()
