"""
Fallback Recommendations
========================

Deterministic four-field recommendations used when the stream yields
nothing usable.

The table is exhaustive over FallbackKey; a missing or unrecognised
congestion level resolves to UNKNOWN.
"""

from enum import Enum
from typing import Dict, Optional

from roadwatch.models.entities import CongestionLevel
from roadwatch.models.recommendation import RecommendationDraft


class FallbackKey(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    UNKNOWN = "UNKNOWN"


FALLBACK_TABLE: Dict[FallbackKey, RecommendationDraft] = {
    FallbackKey.HIGH: RecommendationDraft(
        alternate_route="Take the ring expressway detour to bypass the congested section.",
        best_time_to_travel="Delay departure by about 1 hour if you can.",
        transportation_tip="Metro Line 2 avoids road congestion entirely.",
        safety_tip="Keep a safe distance in heavy traffic and avoid frequent lane changes.",
    ),
    FallbackKey.MEDIUM: RecommendationDraft(
        alternate_route="Go via Taiyu Road onto Xuefu Street to skip the main jam.",
        best_time_to_travel="Leaving in about 30 minutes should be smoother.",
        transportation_tip="Bike share plus a bus transfer works well at this level.",
        safety_tip="Watch for temporary traffic control points along the way.",
    ),
    FallbackKey.LOW: RecommendationDraft(
        alternate_route="The current route is basically clear, no detour needed.",
        best_time_to_travel="Now is a good time to travel.",
        transportation_tip="Driving is the most efficient choice right now.",
        safety_tip="Obey speed limits even when the road is clear.",
    ),
    FallbackKey.UNKNOWN: RecommendationDraft(
        alternate_route="The current route is clear and remains the best choice.",
        best_time_to_travel="Any time is suitable for this trip.",
        transportation_tip="Driving is the most convenient option.",
        safety_tip="Keep a safe speed and stay alert.",
    ),
}


def fallback_key(level: Optional[CongestionLevel]) -> FallbackKey:
    """Map a congestion level (or None) onto a table key."""
    if level is None:
        return FallbackKey.UNKNOWN
    try:
        return FallbackKey(CongestionLevel(level).value)
    except ValueError:
        return FallbackKey.UNKNOWN


def fallback_recommendation(level: Optional[CongestionLevel]) -> RecommendationDraft:
    """
    Look up the fixed recommendation for a congestion level.

    Args:
        level: Congestion along the route, or None if unknown

    Returns:
        A complete draft (every field populated)
    """
    return FALLBACK_TABLE[fallback_key(level)]
