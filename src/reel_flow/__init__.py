"""
Reel Flow - runtime core for swipeable quiz/presentation flows.

Plays a flow built elsewhere:
1. Decide the next slide from per-option/per-item overrides (Navigation)
2. Publish semantic events for visual/audio effects (Trigger Bus)
3. Gate every effect by the element's own opt-in (Gamification Resolver)
4. Accumulate the session's points (Points Ledger)
5. Report interactions to the collector in batches (Analytics Queue)

Quick Start:
    >>> from reel_flow import Flow, ReelSession
    >>>
    >>> flow = Flow.model_validate(document)
    >>> session = ReelSession(flow)
    >>> session.start()
    >>> session.select_option("opt1")

CLI Usage:
    $ python -m reel_flow inspect flow.json
    $ python -m reel_flow play flow.json --analytics-url http://localhost:5000

Modules:
    - engine: Runtime pieces (navigation, triggers, effects, points, analytics, session)
    - models: Data models (Flow, Slide, Element, GamificationEvent, AnalyticsEvent)
    - web: Development analytics collector
"""
from .engine import ReelSession
from .main import run_cli
from .models import Flow

__version__ = "0.1.0"

__all__ = [
    "Flow",
    "ReelSession",
    "run_cli",
    "__version__",
]
