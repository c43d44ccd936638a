from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, Field

from .points import PointsConfig

if TYPE_CHECKING:
    from .flow import Element, Flow


__all__ = [
    "TriggerKind",
    "EffectKind",
    "GamificationEvent",
    "GamificationSettings",
    "FlowGamificationSettings",
]

logger = logging.getLogger(__name__)


class TriggerKind(str, Enum):
    """
    Semantic events published on the trigger bus.

    ON_SLIDE_CHANGE is part of the vocabulary so effects can be
    configured with it, but the session never publishes it.
    """
    ON_BUTTON_CLICK = "onButtonClick"
    ON_QUESTION_ANSWER = "onQuestionAnswer"
    ON_FORM_COMPLETE = "onFormComplete"
    ON_POINTS_GAINED = "onPointsGained"
    ON_ITEM_ACTION = "onItemAction"
    ON_SLIDE_CHANGE = "onSlideChange"

    @classmethod
    def auto_published(cls) -> frozenset["TriggerKind"]:
        """Kinds the session publishes on its own."""
        return frozenset(k for k in cls if k is not cls.ON_SLIDE_CHANGE)


class EffectKind(str, Enum):
    """Element-scoped effects and the opt-in flag that controls each."""
    POINTS_BADGE = "pointsBadge"
    SUCCESS_SOUND = "successSound"
    CONFETTI = "confetti"
    PARTICLES = "particles"

    @property
    def flag_name(self) -> str:
        """Name of the opt-in flag in the builder's config."""
        return "enable" + self.value[0].upper() + self.value[1:]


# Flags that count as "this element opted into something"
_ELEMENT_FLAGS = {
    "enable_points_badge": "enablePointsBadge",
    "enable_success_sound": "enableSuccessSound",
    "enable_confetti": "enableConfetti",
    "enable_particles": "enableParticles",
    "enable_points_progress": "enablePointsProgress",
    "enable_achievement": "enableAchievement",
}


class GamificationEvent(BaseModel):
    """
    Event delivered to bus subscribers.

    Attributes:
        kind: Trigger kind.
        element_id: Originating element; absent for global events.
        payload: Extra data (points, reason, item id, ...).
        timestamp: When the event was published.
    """
    kind: TriggerKind = Field(description="Trigger kind")
    element_id: Optional[str] = Field(default=None, description="Originating element")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event data")
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def is_global(self) -> bool:
        return not self.element_id

    @property
    def points(self) -> int:
        value = self.payload.get("points")
        return value if isinstance(value, int) else 0

    def __str__(self) -> str:
        scope = self.element_id or "global"
        return f"[{self.kind.value}:{scope}] {self.payload}"


def _tri_state(value: Any) -> Optional[bool]:
    """Only real booleans count; anything else is "unset"."""
    return value if isinstance(value, bool) else None


class GamificationSettings(BaseModel):
    """
    Normalized per-element gamification opt-in.

    Every flag is tri-state: True (opted in), False (opted out) or None
    (never configured). Built once per element by ``from_element`` so
    callers never walk the raw config themselves.
    """
    enabled: Optional[bool] = None
    enable_points_badge: Optional[bool] = None
    enable_success_sound: Optional[bool] = None
    enable_confetti: Optional[bool] = None
    enable_particles: Optional[bool] = None
    enable_points_progress: Optional[bool] = None
    enable_achievement: Optional[bool] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["GamificationSettings"]:
        """Normalize a raw config block; non-dicts mean "no config"."""
        if not isinstance(raw, dict):
            return None
        values = {"enabled": _tri_state(raw.get("enabled"))}
        for field_name, key in _ELEMENT_FLAGS.items():
            values[field_name] = _tri_state(raw.get(key, raw.get(field_name)))
        return cls(**values)

    @classmethod
    def from_element(cls, element: Optional["Element"]) -> Optional["GamificationSettings"]:
        """
        Read an element's gamification block.

        The block lives either on the element itself or inside its
        uiConfig. Returns None when neither is a usable dict.
        """
        if element is None:
            return None
        raw = element.gamification_config
        if raw is None:
            raw = element.ui_config.get("gamificationConfig")
        return cls.from_raw(raw)

    def flag_for(self, effect: EffectKind) -> Optional[bool]:
        return {
            EffectKind.POINTS_BADGE: self.enable_points_badge,
            EffectKind.SUCCESS_SOUND: self.enable_success_sound,
            EffectKind.CONFETTI: self.enable_confetti,
            EffectKind.PARTICLES: self.enable_particles,
        }[effect]

    @property
    def any_enabled(self) -> bool:
        """True when the coarse switch or any specific flag is on."""
        if self.enabled is True:
            return True
        return any(getattr(self, name) is True for name in _ELEMENT_FLAGS)


class FlowGamificationSettings(BaseModel):
    """Normalized flow-level gamification config."""
    enabled: bool = False
    points: PointsConfig = Field(default_factory=PointsConfig)

    @classmethod
    def from_flow(cls, flow: Optional["Flow"]) -> "FlowGamificationSettings":
        raw = flow.gamification_config if flow is not None else None
        if not isinstance(raw, dict):
            return cls()
        return cls(
            enabled=raw.get("enabled") is True,
            points=PointsConfig.from_raw(raw.get("pointsConfig")),
        )
