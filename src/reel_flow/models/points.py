from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


__all__ = [
    "PointsConfig",
    "PointsGain",
]


class PointsConfig(BaseModel):
    """
    Point values for a flow.

    Lives outside the ledger; the ledger only accumulates what it is
    told. Defaults match what the builder ships with.

    Attributes:
        points_per_answer: Any answer on a question.
        points_per_correct_answer: A graded answer that is correct.
        points_per_wrong_answer: A graded answer that is wrong.
        points_per_form_complete: A submitted form.
        points_per_slide_visit: Landing on a slide (0 disables).
        time_bonus_enabled: Multiply quick answers.
        time_bonus_multiplier: Multiplier for quick answers.
        time_bonus_window_seconds: How quick "quick" is.
        streak_enabled: Multiply consecutive correct answers.
        streak_multiplier: Multiplier from the second correct answer on.
    """
    points_per_answer: int = Field(default=10, ge=0)
    points_per_correct_answer: int = Field(default=20, ge=0)
    points_per_wrong_answer: int = Field(default=5, ge=0)
    points_per_form_complete: int = Field(default=50, ge=0)
    points_per_slide_visit: int = Field(default=5, ge=0)
    time_bonus_enabled: bool = False
    time_bonus_multiplier: float = Field(default=1.5, ge=1.0)
    time_bonus_window_seconds: float = Field(default=10.0, gt=0)
    streak_enabled: bool = False
    streak_multiplier: float = Field(default=2.0, ge=1.0)

    @classmethod
    def from_raw(cls, raw: Any) -> "PointsConfig":
        """
        Build from the builder's camelCase ``pointsConfig`` block.

        Missing, zero or non-numeric values fall back to the defaults.
        """
        if not isinstance(raw, dict):
            return cls()

        keys = {
            "points_per_answer": "pointsPerAnswer",
            "points_per_correct_answer": "pointsPerCorrectAnswer",
            "points_per_wrong_answer": "pointsPerWrongAnswer",
            "points_per_form_complete": "pointsPerFormComplete",
            "points_per_slide_visit": "pointsPerSlideVisit",
            "time_bonus_multiplier": "timeBonusMultiplier",
            "streak_multiplier": "streakMultiplier",
        }
        values: dict[str, Any] = {}
        for field_name, key in keys.items():
            value = raw.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
                values[field_name] = int(value) if field_name.startswith("points_") else float(value)

        for field_name, key in (("time_bonus_enabled", "timeBonusEnabled"), ("streak_enabled", "streakEnabled")):
            if raw.get(key) is True:
                values[field_name] = True

        window = raw.get("timeBonusWindowSeconds")
        if isinstance(window, (int, float)) and not isinstance(window, bool) and window > 0:
            values["time_bonus_window_seconds"] = float(window)

        # Multipliers below 1 would take points away
        for field_name in ("time_bonus_multiplier", "streak_multiplier"):
            if values.get(field_name, 1.0) < 1.0:
                values.pop(field_name)

        return cls(**values)


class PointsGain(BaseModel):
    """One entry of the ledger's history."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    points: int = Field(ge=0)
    reason: str = Field(default="")
    timestamp: datetime = Field(default_factory=datetime.now)
