
# =============================================================================
# Flow Document Models
# Used for: the read-only quiz/presentation handed to the runtime
# =============================================================================
from .flow import (
    Element,  # Typed content block (questionnaire, form, button, ...)
    ElementType,  # Enum of the type tags the runtime reacts to
    Flow,  # Ordered slides + flow-level gamification config
    Item,  # Selectable item inside a questionnaire/grid
    ItemActionType,  # Enum: NONE, SLIDE, URL
    LogicNext,  # Per-slide override map
    Option,  # Slide-level answer option
    Slide,  # One screen
    item_logic_key,  # "<elementId>-item-<itemId>"
)

# =============================================================================
# Gamification Models
# Used for: trigger bus events and per-element opt-in
# =============================================================================
from .gamification import (
    EffectKind,  # Enum: POINTS_BADGE, SUCCESS_SOUND, CONFETTI, PARTICLES
    FlowGamificationSettings,  # Normalized flow-level switch + points config
    GamificationEvent,  # Event delivered to bus subscribers
    GamificationSettings,  # Normalized per-element tri-state flags
    TriggerKind,  # Closed set of bus event kinds
)

# =============================================================================
# Points Models
# Used for: the ledger and the points policy
# =============================================================================
from .points import (
    PointsConfig,  # Point values per answer/form/visit + multipliers
    PointsGain,  # Ledger history entry
)

# =============================================================================
# Analytics Models
# Used for: the batching queue and the collector
# =============================================================================
from .analytics import (
    AnalyticsEvent,  # Queued event with retry counter
    AnalyticsEventType,  # Enum: VIEW, INTERACTION, TIME_SPENT
)

# =============================================================================
# Public API
# =============================================================================
__all__ = [
    # Flow document
    "Element",
    "ElementType",
    "Flow",
    "Item",
    "ItemActionType",
    "LogicNext",
    "Option",
    "Slide",
    "item_logic_key",

    # Gamification
    "EffectKind",
    "FlowGamificationSettings",
    "GamificationEvent",
    "GamificationSettings",
    "TriggerKind",

    # Points
    "PointsConfig",
    "PointsGain",

    # Analytics
    "AnalyticsEvent",
    "AnalyticsEventType",
]
