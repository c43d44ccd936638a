"""
Per-element gamification resolver.

One place that answers "may this effect fire for this element?". Every
effect asks here instead of reading config on its own.

The rule is strict: an effect fires only when that element explicitly
turned that effect on. A coarse ``enabled`` switch never implies a
specific effect, and an explicit ``False`` always wins.
"""
from __future__ import annotations

import logging
from typing import Optional

from ..models.flow import ElementType, Flow
from ..models.gamification import (
    EffectKind,
    FlowGamificationSettings,
    GamificationSettings,
)

__all__ = [
    "is_effect_allowed",
    "is_flow_effect_allowed",
    "element_opted_in",
    "should_reward",
]

logger = logging.getLogger(__name__)


def is_effect_allowed(element_id: Optional[str], effect_kind: EffectKind, flow: Optional[Flow]) -> bool:
    """
    Decide whether ``effect_kind`` may fire for ``element_id``.

    Args:
        element_id: Element the event originated from. Global events
            (no element) never enable element-scoped effects.
        effect_kind: The effect asking.
        flow: The flow; the element is searched across every slide since
            events can outrun the caller's current slide.

    Returns:
        True only when the element's config sets the effect's flag to
        True. Missing element, missing/malformed config, an explicit
        False or an unset flag all answer False.
    """
    if not element_id or flow is None:
        return False

    try:
        effect_kind = EffectKind(effect_kind)
    except ValueError:
        logger.warning(f"Unknown effect kind '{effect_kind}'")
        return False

    element = flow.find_element(element_id)
    if element is None:
        logger.debug(f"Element {element_id} not found in flow {flow.id}")
        return False

    settings = GamificationSettings.from_element(element)
    if settings is None:
        return False

    flag = settings.flag_for(effect_kind)
    if flag is False:
        return False
    if flag is True:
        return True

    if settings.enabled:
        logger.debug(f"{element_id}: enabled=True but {effect_kind.flag_name} unset, not firing")
    return False


def is_flow_effect_allowed(flow: Optional[Flow]) -> bool:
    """Flow-scoped displays (points progress) follow the flow-level switch."""
    return FlowGamificationSettings.from_flow(flow).enabled


def element_opted_in(element_id: Optional[str], flow: Optional[Flow]) -> bool:
    """True when the element has a config block that turns anything on."""
    if not element_id or flow is None:
        return False
    settings = GamificationSettings.from_element(flow.find_element(element_id))
    return settings is not None and settings.any_enabled


def should_reward(element_id: Optional[str], flow: Optional[Flow]) -> bool:
    """
    Whether an interaction on an element earns points and a trigger.

    Forms are rewarded when their own block is enabled, or when they
    carry no block at all and the flow-level switch is on. Every other
    element must opt in through its own block.
    """
    if not element_id or flow is None:
        return False
    element = flow.find_element(element_id)
    if element is None:
        return False
    if not element.is_type(ElementType.FORM):
        return element_opted_in(element_id, flow)

    settings = GamificationSettings.from_element(element)
    if settings is None:
        return is_flow_effect_allowed(flow)
    return settings.enabled is True
