from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


__all__ = [
    "AnalyticsEventType",
    "AnalyticsEvent",
]


class AnalyticsEventType(str, Enum):
    """Kinds of interaction the collector aggregates."""
    VIEW = "view"               # A slide became visible
    INTERACTION = "interaction" # Option/item/button/form activity
    TIME_SPENT = "time_spent"   # Seconds spent on the previous slide


class AnalyticsEvent(BaseModel):
    """
    A queued analytics event.

    Attributes:
        visit_id: The visit (viewing session) this event belongs to.
        event_type: view, interaction or time_spent.
        slide_id: Slide the event refers to.
        duration: Seconds, for time_spent events.
        metadata: Free-form details (interaction type, ids, ...).
        enqueued_at: When the event entered the queue.
        retry_count: Failed deliveries so far.
    """
    visit_id: str = Field(description="Visit identifier")
    event_type: AnalyticsEventType = Field(description="Event type")
    slide_id: Optional[str] = Field(default=None)
    duration: Optional[int] = Field(default=None, ge=0)
    metadata: Optional[dict[str, Any]] = Field(default=None)
    enqueued_at: datetime = Field(default_factory=datetime.now)
    retry_count: int = Field(default=0, ge=0)

    def to_wire(self) -> dict[str, Any]:
        """
        Shape sent to the collector.

        Visit id travels in the URL; absent optional fields are omitted.
        """
        wire: dict[str, Any] = {"eventType": self.event_type.value}
        if self.slide_id is not None:
            wire["slideId"] = self.slide_id
        if self.duration is not None:
            wire["duration"] = self.duration
        if self.metadata is not None:
            wire["metadata"] = self.metadata
        return wire

    def with_retry(self) -> "AnalyticsEvent":
        """Copy of this event with the retry counter bumped."""
        return self.model_copy(update={"retry_count": self.retry_count + 1})
