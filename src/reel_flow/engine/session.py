"""
Reel Session - one end user playing one flow.

Wires the runtime pieces together the way the viewing page does:

1. Navigation: asks the FlowNavigator where to go after an interaction,
   unless the slide or element is locked.
2. Points: awards points through the PointsPolicy/PointsLedger and
   relays every gain onto the bus as ``onPointsGained``.
3. Triggers: publishes button/answer/form/item events for the effects.
4. Analytics: queues view, interaction and time_spent events.

Example Usage:
    >>> session = ReelSession(flow, visit_id="visit-1", analytics=queue)
    >>> session.start()
    >>> decision = session.select_option("opt1")
    >>> session.current_slide.id
    'slide-c'
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from ..models.analytics import AnalyticsEvent, AnalyticsEventType
from ..models.flow import Element, ElementType, Flow, Slide
from ..models.gamification import FlowGamificationSettings, TriggerKind
from .analytics import AnalyticsBatchQueue
from .effects import Effect, default_effects
from .gamification import should_reward
from .navigation import (
    FlowNavigator,
    Interaction,
    MoveKind,
    NavigationDecision,
    SlideState,
    normalize_url,
)
from .points import PointsLedger, PointsPolicy
from .triggers import TriggerBus

__all__ = ["ReelSession"]

logger = logging.getLogger(__name__)


class ReelSession:
    """
    Runtime state of one viewing session.

    Attributes:
        flow: The flow being played (read-only).
        visit_id: Analytics visit id; no analytics without one.
        bus: Gamification trigger bus.
        ledger: Points ledger.
        policy: Points policy built from the flow's points config.
        analytics: Optional analytics queue.
        effects: Effects attached to the bus.
        current_index: Index of the slide on screen.
        answers: Slide id -> picked option id.
        state: Item responses and valid forms (used by lock checks).
        finished: True once navigation ran past the last slide.
    """

    def __init__(
        self,
        flow: Flow,
        visit_id: Optional[str] = None,
        analytics: Optional[AnalyticsBatchQueue] = None,
        bus: Optional[TriggerBus] = None,
        ledger: Optional[PointsLedger] = None,
        effects: Optional[list[Effect]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize a session.

        Args:
            flow: Flow to play.
            visit_id: Visit id registered with the collector.
            analytics: Queue for interaction analytics.
            bus: Trigger bus (a fresh one by default).
            ledger: Points ledger (a fresh one by default).
            effects: Effects to attach; the default set when None.
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self.flow = flow
        self.visit_id = visit_id
        self.analytics = analytics
        self.bus = bus or TriggerBus()
        self.ledger = ledger or PointsLedger()
        self.settings = FlowGamificationSettings.from_flow(flow)
        self.policy = PointsPolicy(self.settings.points)
        self.navigator = FlowNavigator(flow)
        self.effects = effects if effects is not None else default_effects(flow)
        self._clock = clock

        self.current_index = 0
        self.answers: dict[str, str] = {}
        self.state = SlideState()
        self.visited: set[str] = set()
        self.finished = False
        self.started = False

        self._slide_started_at: Optional[float] = None
        self._detach = [effect.attach(self.bus) for effect in self.effects]

        logger.debug(f"ReelSession created for flow {flow.id} ({len(flow.slides)} slides)")

    # =========================================================================
    # SLIDES
    # =========================================================================

    @property
    def current_slide(self) -> Optional[Slide]:
        if 0 <= self.current_index < len(self.flow.slides):
            return self.flow.slides[self.current_index]
        return None

    def is_current_slide_locked(self) -> bool:
        slide = self.current_slide
        return slide is not None and self.navigator.is_slide_locked(slide, self.state)

    def start(self) -> None:
        """Show the first slide."""
        if self.started:
            return
        self.started = True
        if not self.flow.slides:
            logger.warning(f"Flow {self.flow.id} has no slides")
            self.finished = True
            return
        self._enter_slide(0)

    def go_to(self, index: int) -> bool:
        """
        Move to slide ``index``.

        Records time spent on the slide being left and a view for the
        new one. Out-of-range indexes are ignored.

        Returns:
            True if the slide changed.
        """
        if not 0 <= index < len(self.flow.slides):
            logger.warning(f"Ignoring move to slide index {index}")
            return False
        if index == self.current_index and self.started:
            return False
        self.started = True

        self._record_time_spent()
        self._enter_slide(index)
        return True

    def _enter_slide(self, index: int) -> None:
        self.current_index = index
        slide = self.flow.slides[index]
        self._slide_started_at = self._clock()
        self._track(AnalyticsEventType.VIEW, slide.id)

        first_visit = slide.id not in self.visited
        self.visited.add(slide.id)
        if first_visit and index > 0 and self.settings.enabled:
            self._award(self.policy.for_slide_visit(), "Slide visit")

    def _record_time_spent(self) -> None:
        slide = self.current_slide
        if slide is None or self._slide_started_at is None:
            return
        seconds = int(self._clock() - self._slide_started_at)
        if seconds > 0:
            self._track(AnalyticsEventType.TIME_SPENT, slide.id, duration=seconds)

    def _elapsed_on_slide(self) -> Optional[float]:
        if self._slide_started_at is None:
            return None
        return self._clock() - self._slide_started_at

    def apply(self, decision: NavigationDecision) -> NavigationDecision:
        """Carry out a navigation decision."""
        if decision.moves and decision.target_index is not None:
            self.go_to(decision.target_index)
        elif decision.kind == MoveKind.END:
            self._record_time_spent()
            self._slide_started_at = None
            self.finished = True
            logger.info(f"Flow {self.flow.id} finished, {self.ledger.total} points")
        return decision

    # =========================================================================
    # INTERACTIONS
    # =========================================================================

    def select_option(self, option_id: str) -> NavigationDecision:
        """
        Pick a slide-level option.

        Slide options have no per-element gamification, so no trigger is
        published; points follow the option or the per-answer value.
        """
        slide = self._require_slide()
        option = slide.get_option(option_id)
        if option is None:
            logger.warning(f"Unknown option {option_id} on slide {slide.id}")
            return NavigationDecision(kind=MoveKind.STAY)

        self.answers[slide.id] = option_id
        self._track(
            AnalyticsEventType.INTERACTION,
            slide.id,
            metadata={"type": "option_select", "optionId": option_id},
        )

        if self.settings.enabled:
            self._award(self.policy.for_option(option, self._elapsed_on_slide()), "Answer")

        if self.navigator.is_slide_locked(slide, self.state):
            return NavigationDecision(kind=MoveKind.STAY)
        return self.apply(self.navigator.decide(slide.id, Interaction(option_id=option_id)))

    def select_item(self, element_id: str, item_id: str) -> NavigationDecision:
        """
        Pick an item in a questionnaire or question grid.

        Multi-selection elements toggle the item and stay put.
        Single-selection elements record the answer, award points, fire
        ``onQuestionAnswer`` (and ``onItemAction`` for items with an
        action) and navigate unless the element or slide locks.
        """
        slide = self._require_slide()
        element = slide.get_element(element_id)
        item = element.get_item(item_id) if element else None
        if element is None or item is None:
            logger.warning(f"Unknown item {element_id}/{item_id} on slide {slide.id}")
            return NavigationDecision(kind=MoveKind.STAY)

        previous = self.state.responses.get(element_id, [])
        if element.multiple_selection:
            if item_id in previous:
                self.state.responses[element_id] = [i for i in previous if i != item_id]
            else:
                self.state.responses[element_id] = previous + [item_id]
        else:
            self.state.responses[element_id] = [item_id]

        self._track(
            AnalyticsEventType.INTERACTION,
            slide.id,
            metadata={
                "type": "questionnaire_select",
                "elementId": element_id,
                "itemId": item_id,
                "selectedIds": list(self.state.responses[element_id]),
            },
        )

        newly_selected = item_id in self.state.responses[element_id] and item_id not in previous
        if newly_selected and should_reward(element_id, self.flow):
            points = self.policy.for_item(item, self._elapsed_on_slide())
            self._award(points, "Questionnaire answer")
            self.bus.publish(
                TriggerKind.ON_QUESTION_ANSWER,
                {"points": points, "reason": "Questionnaire answer", "itemId": item_id},
                element_id=element_id,
            )

        if not self.navigator.should_auto_advance(element):
            return NavigationDecision(kind=MoveKind.STAY)

        if item.has_action:
            self.bus.publish(
                TriggerKind.ON_ITEM_ACTION,
                {"itemId": item_id, "actionType": item.action_type.value},
                element_id=element_id,
            )
            # An explicit item action is its own navigation control
            return self.apply(
                self.navigator.decide(slide.id, Interaction(element_id=element_id, item_id=item_id))
            )

        if element.lock_slide or self.navigator.is_slide_locked(slide, self.state):
            return NavigationDecision(kind=MoveKind.STAY)
        return self.apply(self.navigator.decide(slide.id, Interaction(element_id=element_id, item_id=item_id)))

    def click_button(self, element_id: str) -> NavigationDecision:
        """Press a button; buttons are explicit navigation controls."""
        slide = self._require_slide()
        element = slide.get_element(element_id)
        if element is None or not element.is_type(ElementType.BUTTON):
            logger.warning(f"Unknown button {element_id} on slide {slide.id}")
            return NavigationDecision(kind=MoveKind.STAY)

        self._track(
            AnalyticsEventType.INTERACTION,
            slide.id,
            metadata={"type": "button_click", "elementId": element_id},
        )
        if should_reward(element_id, self.flow):
            self.bus.publish(TriggerKind.ON_BUTTON_CLICK, {"reason": "Button clicked"}, element_id=element_id)

        action = element.ui_config.get("action")
        url = element.ui_config.get("url")
        if action == "url" and url:
            return self._open_url(str(url), element)
        return self.apply(self.navigator.decide(slide.id, Interaction(element_id=element_id)))

    def submit_form(self, element_id: str, data: Optional[dict[str, Any]] = None) -> NavigationDecision:
        """
        Submit a form element.

        Marks the form valid (unlocking a slide it locked), awards the
        form points and fires ``onFormComplete`` when the element is
        rewarded. Submitting does not move the slide by itself.
        """
        slide = self._require_slide()
        element = slide.get_element(element_id)
        if element is None or not element.is_type(ElementType.FORM):
            logger.warning(f"Unknown form {element_id} on slide {slide.id}")
            return NavigationDecision(kind=MoveKind.STAY)

        first_submit = element_id not in self.state.valid_forms
        self.state.valid_forms.add(element_id)
        self._track(
            AnalyticsEventType.INTERACTION,
            slide.id,
            metadata={"type": "form_submit", "elementId": element_id, "fields": sorted((data or {}).keys())},
        )

        if first_submit and should_reward(element_id, self.flow):
            points = self.policy.for_form_complete()
            self._award(points, "Form complete")
            self.bus.publish(
                TriggerKind.ON_FORM_COMPLETE,
                {"points": points, "reason": "Form complete"},
                element_id=element_id,
            )
        return NavigationDecision(kind=MoveKind.STAY)

    def continue_(self, element_id: Optional[str] = None) -> NavigationDecision:
        """
        Explicit continue control (swipe, arrow, "next" button).

        Refused while the slide is locked. ``element_id`` names the
        element whose answer decides the route, e.g. a multi-selection
        questionnaire.
        """
        slide = self._require_slide()
        if self.navigator.is_slide_locked(slide, self.state):
            logger.debug(f"Slide {slide.id} is locked, continue ignored")
            return NavigationDecision(kind=MoveKind.STAY)

        interaction = self._continue_interaction(slide, element_id)
        if interaction is None:
            return self.apply(self.navigator.advance_from(self.current_index))
        return self.apply(self.navigator.decide(slide.id, interaction))

    def _continue_interaction(self, slide: Slide, element_id: Optional[str]) -> Optional[Interaction]:
        if element_id:
            selected = self.state.responses.get(element_id, [])
            if len(selected) == 1:
                return Interaction(element_id=element_id, item_id=selected[0])
            return Interaction(element_id=element_id)
        option_id = self.answers.get(slide.id)
        if option_id:
            return Interaction(option_id=option_id)
        return None

    def _open_url(self, url: str, element: Element) -> NavigationDecision:
        return NavigationDecision(
            kind=MoveKind.OPEN_URL,
            url=normalize_url(url),
            open_in_new_tab=element.ui_config.get("openInNewTab", True) is not False,
        )

    # =========================================================================
    # POINTS / ANALYTICS
    # =========================================================================

    def _award(self, points: int, reason: str) -> None:
        """Add points and relay the gain onto the bus right away."""
        gain = self.ledger.add_points(points, reason)
        if gain is None:
            return
        self.bus.publish(
            TriggerKind.ON_POINTS_GAINED,
            {"points": gain.points, "reason": reason, "total": self.ledger.total},
        )

    def _track(self, event_type: AnalyticsEventType, slide_id: str, **fields: Any) -> None:
        if self.analytics is None or not self.visit_id:
            return
        self.analytics.enqueue(
            AnalyticsEvent(visit_id=self.visit_id, event_type=event_type, slide_id=slide_id, **fields)
        )

    def _require_slide(self) -> Slide:
        if not self.started:
            self.start()
        slide = self.current_slide
        if slide is None:
            raise RuntimeError("flow has no slides")
        return slide

    def reset_points(self) -> None:
        """Clear the points total, history and answer streak."""
        self.ledger.reset()
        self.policy.reset()

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def close(self) -> int:
        """
        End the session: detach effects and best-effort flush analytics.

        Returns:
            Analytics events delivered by the final flush.
        """
        if not self.finished:
            self._record_time_spent()
        for detach in self._detach:
            detach()
        self._detach = []
        if self.analytics is None:
            return 0
        return self.analytics.shutdown()

    def summary(self) -> dict[str, Any]:
        """Session summary for logs and the CLI."""
        slide = self.current_slide
        return {
            "flow_id": self.flow.id,
            "visit_id": self.visit_id,
            "current_slide": slide.id if slide else None,
            "finished": self.finished,
            "total_points": self.ledger.total,
            "answers": dict(self.answers),
            "visited": len(self.visited),
        }
