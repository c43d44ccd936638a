"""
Pytest configuration and fixtures for reel_flow tests.

This module provides reusable test fixtures including:
- A four-slide quiz document exercising every override kind
- A small builder for ad hoc flows
- A fake analytics transport that records (and can fail) batches
- A controllable clock for time-based session behavior
"""
from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from src.reel_flow.engine.analytics import AnalyticsTransport, AnalyticsTransportError
from src.reel_flow.models.flow import Flow


# =============================================================================
# FLOW DOCUMENTS
# =============================================================================

QUIZ_DOCUMENT: dict[str, Any] = {
    "id": "flow-1",
    "name": "Demo quiz",
    "gamificationConfig": {"enabled": True},
    "slides": [
        {
            "id": "slide-a",
            "question": "Where to?",
            "options": [
                {"id": "opt1", "label": "Jump to C"},
                {"id": "opt2", "label": "Just continue"},
                {"id": "opt3", "label": "Stale route"},
            ],
            "logicNext": {"options": {"opt1": "slide-c", "opt3": "deleted-slide"}},
        },
        {
            "id": "slide-b",
            "elements": [
                {
                    "id": "q1",
                    "elementType": "QUESTIONNAIRE",
                    "uiConfig": {
                        "items": [
                            {"id": "i1", "label": "Skip ahead", "actionType": "slide", "slideId": "slide-d"},
                            {"id": "i2", "label": "Routed"},
                            {"id": "i3", "label": "Docs", "actionType": "url",
                             "url": "example.com/docs", "openInNewTab": False},
                            {"id": "i4", "label": "Plain"},
                        ],
                    },
                    "gamificationConfig": {"enablePointsBadge": True},
                },
                {
                    "id": "btn1",
                    "elementType": "BUTTON",
                    "uiConfig": {"text": "Go"},
                    "gamificationConfig": {"enableConfetti": True},
                },
            ],
            "logicNext": {"elements": {"q1-item-i1": "slide-c", "q1-item-i2": "slide-d"}},
        },
        {
            "id": "slide-c",
            "elements": [
                {"id": "form1", "elementType": "FORM", "uiConfig": {"lockSlide": True}},
            ],
        },
        {
            "id": "slide-d",
            "elements": [
                {
                    "id": "multi",
                    "elementType": "QUESTIONNAIRE",
                    "uiConfig": {"multipleSelection": True, "items": [{"id": "m1"}, {"id": "m2"}]},
                    "gamificationConfig": {"enabled": True},
                },
            ],
            "logicNext": {"elements": {"multi-item-m1": "slide-a"}},
        },
    ],
}


@pytest.fixture
def quiz_document() -> dict[str, Any]:
    """A deep copy of the demo quiz, safe to mutate."""
    return copy.deepcopy(QUIZ_DOCUMENT)


@pytest.fixture
def quiz_flow(quiz_document: dict[str, Any]) -> Flow:
    """The demo quiz as a validated Flow."""
    return Flow.model_validate(quiz_document)


@pytest.fixture
def make_flow() -> Callable[..., Flow]:
    """
    Build a flow from slide dicts.

    Example:
        flow = make_flow([{"id": "a"}, {"id": "b"}], gamification={"enabled": True})
    """

    def _make(slides: list[dict[str, Any]], gamification: Optional[dict[str, Any]] = None) -> Flow:
        document: dict[str, Any] = {"id": "test-flow", "slides": slides}
        if gamification is not None:
            document["gamificationConfig"] = gamification
        return Flow.model_validate(document)

    return _make


@pytest.fixture
def flow_file(tmp_path: Path, quiz_document: dict[str, Any]) -> Path:
    """The demo quiz written to a JSON file."""
    path = tmp_path / "flow.json"
    path.write_text(json.dumps(quiz_document), encoding="utf-8")
    return path


# =============================================================================
# ANALYTICS FIXTURES
# =============================================================================

class RecordingTransport(AnalyticsTransport):
    """
    In-memory transport.

    Records every attempt; visits listed in ``failing_visits`` raise on
    ``send_batch`` and report failure on ``send_beacon``.
    """

    def __init__(self, failing_visits: Optional[set[str]] = None) -> None:
        self.failing_visits = failing_visits or set()
        self.attempts: list[tuple[str, list[dict[str, Any]]]] = []
        self.beacons: list[tuple[str, list[dict[str, Any]]]] = []

    @property
    def delivered(self) -> list[tuple[str, list[dict[str, Any]]]]:
        return [(visit, events) for visit, events in self.attempts if visit not in self.failing_visits]

    async def send_batch(self, visit_id: str, events: list[dict[str, Any]]) -> None:
        self.attempts.append((visit_id, events))
        if visit_id in self.failing_visits:
            raise AnalyticsTransportError(visit_id, "collector unavailable")

    def send_beacon(self, visit_id: str, events: list[dict[str, Any]]) -> bool:
        self.beacons.append((visit_id, events))
        return visit_id not in self.failing_visits


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


# =============================================================================
# CLOCK
# =============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
