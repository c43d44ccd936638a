"""
Runtime engine for playing a flow.

This package contains the runtime pieces:
- navigation: FlowNavigator / resolve_next (which slide comes next)
- triggers: TriggerBus (gamification publish/subscribe)
- gamification: is_effect_allowed (per-element effect opt-in)
- effects: badge, sound, confetti, particles, points progress
- points: PointsLedger / PointsPolicy
- analytics: AnalyticsBatchQueue / HttpAnalyticsTransport
- session: ReelSession (wires everything for one viewer)
"""
from .analytics import (
    AnalyticsBatchQueue,
    AnalyticsTransport,
    AnalyticsTransportError,
    HttpAnalyticsTransport,
)
from .effects import (
    ConfettiEffect,
    Effect,
    ParticlesEffect,
    PointsBadgeEffect,
    PointsProgressEffect,
    SuccessSoundEffect,
    default_effects,
)
from .gamification import (
    element_opted_in,
    is_effect_allowed,
    is_flow_effect_allowed,
    should_reward,
)
from .navigation import (
    SEQUENTIAL,
    FlowNavigator,
    Interaction,
    MoveKind,
    NavigationDecision,
    resolve_next,
)
from .points import PointsLedger, PointsPolicy
from .session import ReelSession
from .triggers import TriggerBus

__all__ = [
    "AnalyticsBatchQueue",
    "AnalyticsTransport",
    "AnalyticsTransportError",
    "HttpAnalyticsTransport",
    "ConfettiEffect",
    "Effect",
    "ParticlesEffect",
    "PointsBadgeEffect",
    "PointsProgressEffect",
    "SuccessSoundEffect",
    "default_effects",
    "element_opted_in",
    "is_effect_allowed",
    "is_flow_effect_allowed",
    "should_reward",
    "SEQUENTIAL",
    "FlowNavigator",
    "Interaction",
    "MoveKind",
    "NavigationDecision",
    "resolve_next",
    "PointsLedger",
    "PointsPolicy",
    "ReelSession",
    "TriggerBus",
]
