"""
Flow navigation: deciding which slide comes after an interaction.

``resolve_next`` is the pure resolver. It looks at one slide's override
map and the user's interaction and answers with a target slide id or
the ``SEQUENTIAL`` marker. It never answers with an id that is not in
the flow; stale references quietly fall through to the next rule.

``FlowNavigator`` turns that answer into a concrete move (jump,
advance, end of flow, open a URL) and knows how to tell whether a slide
is locked. Locking is the caller's business: a locked slide simply does
not invoke the resolver on interaction.

Example Usage:
    >>> navigator = FlowNavigator(flow)
    >>> decision = navigator.decide("slide-a", Interaction(option_id="opt1"))
    >>> decision.kind
    <MoveKind.JUMP: 'jump'>
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..models.flow import (
    Element,
    ElementType,
    Flow,
    ItemActionType,
    Slide,
    item_logic_key,
)

__all__ = [
    "SEQUENTIAL",
    "Interaction",
    "MoveKind",
    "NavigationDecision",
    "SlideState",
    "FlowNavigator",
    "normalize_url",
    "resolve_next",
]

logger = logging.getLogger(__name__)

# Marker returned when no override applies
SEQUENTIAL = "sequential"


class Interaction(BaseModel):
    """
    What the user did on a slide.

    Either an option pick (``option_id``) or an item pick inside an
    element (``element_id`` + ``item_id``). ``element_id`` alone means
    an element-wide control such as a button or a continue control.
    """
    option_id: Optional[str] = None
    element_id: Optional[str] = None
    item_id: Optional[str] = None

    @model_validator(mode="after")
    def check_shape(self) -> "Interaction":
        if self.option_id is None and self.element_id is None:
            raise ValueError("interaction needs option_id or element_id")
        if self.item_id is not None and self.element_id is None:
            raise ValueError("item_id requires element_id")
        return self


def _existing(flow: Flow, target: Optional[str], source: str) -> Optional[str]:
    """Return ``target`` if the flow still has it."""
    if not target:
        return None
    if flow.has_slide(target):
        return target
    logger.warning(f"Ignoring {source} pointing at missing slide '{target}'")
    return None


def resolve_next(flow: Flow, slide: Slide, interaction: Interaction) -> str:
    """
    Compute the next slide for an interaction.

    Precedence:
    1. The item's own ``slide`` action.
    2. ``logicNext.elements["<elementId>-item-<itemId>"]`` for items,
       ``logicNext.options[optionId]`` for options.
    3. ``logicNext.elements[elementId]`` (element-wide connection).
    4. ``logicNext.defaultNext``.
    5. ``SEQUENTIAL``.

    Args:
        flow: The flow, used to check targets still exist.
        slide: The slide the interaction happened on.
        interaction: Option pick or element/item pick.

    Returns:
        A slide id present in ``flow`` or ``SEQUENTIAL``.
    """
    logic = slide.logic_next

    if interaction.element_id and interaction.item_id:
        element = slide.get_element(interaction.element_id)
        item = element.get_item(interaction.item_id) if element else None
        if item is not None and item.action_type == ItemActionType.SLIDE:
            target = _existing(flow, item.slide_id, f"item action {item.id}")
            if target:
                return target

        key = item_logic_key(interaction.element_id, interaction.item_id)
        target = _existing(flow, logic.elements.get(key), f"logicNext.elements[{key}]")
        if target:
            return target

    if interaction.option_id:
        target = _existing(
            flow,
            logic.options.get(interaction.option_id),
            f"logicNext.options[{interaction.option_id}]",
        )
        if target:
            return target

    if interaction.element_id:
        target = _existing(
            flow,
            logic.elements.get(interaction.element_id),
            f"logicNext.elements[{interaction.element_id}]",
        )
        if target:
            return target

    target = _existing(flow, logic.default_next, f"defaultNext of {slide.id}")
    if target:
        return target

    return SEQUENTIAL


class MoveKind(str, Enum):
    """Concrete outcome of a navigation decision."""
    JUMP = "jump"          # Override target
    ADVANCE = "advance"    # Next slide in order
    END = "end"            # Sequential from the last slide
    OPEN_URL = "open_url"  # Item action opens a link
    STAY = "stay"          # Nothing to do (locked, multi-select toggle)


class NavigationDecision(BaseModel):
    """
    Result of ``FlowNavigator.decide``.

    Attributes:
        kind: What the caller should do.
        target_slide_id: Slide to show (JUMP/ADVANCE).
        target_index: Index of that slide.
        is_direct_jump: More than one slide away from the current one.
        url: Link to open (OPEN_URL).
        open_in_new_tab: How to open it.
    """
    kind: MoveKind
    target_slide_id: Optional[str] = None
    target_index: Optional[int] = None
    is_direct_jump: bool = False
    url: Optional[str] = None
    open_in_new_tab: bool = True

    @property
    def moves(self) -> bool:
        return self.kind in (MoveKind.JUMP, MoveKind.ADVANCE)


class SlideState(BaseModel):
    """Per-session answers the lock check needs."""
    responses: dict[str, list[str]] = Field(default_factory=dict)
    valid_forms: set[str] = Field(default_factory=set)


def normalize_url(url: str) -> str:
    """Add a scheme to bare links."""
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


class FlowNavigator:
    """
    Turns resolver answers into moves within one flow.

    Attributes:
        flow: The flow being played.
    """

    def __init__(self, flow: Flow) -> None:
        self.flow = flow

    def decide(self, slide_id: str, interaction: Interaction) -> NavigationDecision:
        """
        Decide the move for an interaction on ``slide_id``.

        Item ``url`` actions win over any slide override; everything
        else goes through ``resolve_next``.
        """
        current_index = self.flow.index_of(slide_id)
        if current_index < 0:
            logger.warning(f"Interaction on unknown slide '{slide_id}'")
            return NavigationDecision(kind=MoveKind.STAY)

        slide = self.flow.slides[current_index]

        if interaction.element_id and interaction.item_id:
            element = slide.get_element(interaction.element_id)
            item = element.get_item(interaction.item_id) if element else None
            if item is not None and item.action_type == ItemActionType.URL:
                if item.url:
                    return NavigationDecision(
                        kind=MoveKind.OPEN_URL,
                        url=normalize_url(item.url),
                        open_in_new_tab=item.open_in_new_tab,
                    )
                logger.warning(f"Item {item.id} has a url action without a url")

        target = resolve_next(self.flow, slide, interaction)
        if target == SEQUENTIAL:
            return self.advance_from(current_index)

        target_index = self.flow.index_of(target)
        logger.debug(f"Override from {slide_id} to {target} (index {target_index})")
        return NavigationDecision(
            kind=MoveKind.JUMP,
            target_slide_id=target,
            target_index=target_index,
            is_direct_jump=abs(target_index - current_index) > 1,
        )

    def advance_from(self, index: int) -> NavigationDecision:
        """Plain sequential move from ``index``."""
        if 0 <= index < len(self.flow.slides) - 1:
            nxt = self.flow.slides[index + 1]
            return NavigationDecision(
                kind=MoveKind.ADVANCE,
                target_slide_id=nxt.id,
                target_index=index + 1,
            )
        return NavigationDecision(kind=MoveKind.END)

    def is_slide_locked(self, slide: Slide, state: Optional[SlideState] = None) -> bool:
        """
        Whether interactions on ``slide`` must not navigate by themselves.

        A slide is locked by its background config, by a locking button,
        by a locking questionnaire/grid that has no response yet, or by a
        locking form that is not valid yet.
        """
        if slide.locked_by_background:
            return True

        state = state or SlideState()
        for element in slide.elements:
            if not element.lock_slide:
                continue
            if element.is_type(ElementType.BUTTON):
                return True
            if element.is_type(ElementType.QUESTIONNAIRE, ElementType.QUESTION_GRID):
                if not state.responses.get(element.id):
                    return True
            if element.is_type(ElementType.FORM) and element.id not in state.valid_forms:
                return True
        return False

    @staticmethod
    def should_auto_advance(element: Optional[Element]) -> bool:
        """Only single-selection elements move on after a pick."""
        return element is None or element.auto_advance
