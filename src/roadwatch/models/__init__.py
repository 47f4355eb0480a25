"""
Data Models
===========

Pydantic models and typed records for Roadwatch.

This module re-exports all data models for convenient access.

Models:
    Geometry:
        - LatLng: Geographic coordinate

    Entities:
        - CongestionLevel, Severity, IncidentKind: Enumerations
        - RoadSegment, CongestionPoint, AccidentMarker, VehicleToken

    Refresh:
        - RefreshPhase, RefreshCycleState

    Overlays:
        - RoadOverlay, PointOverlay, MarkerOverlay, OverlayStyle, OverlayRef

    Recommendation:
        - RouteQuery: Input of a recommendation request
        - RecommendationDraft: Four-field, mergeable recommendation
        - RecommendationResult: Final draft plus its source
"""

from roadwatch.models.geometry import LatLng
from roadwatch.models.entities import (
    AccidentMarker,
    CongestionLevel,
    CongestionPoint,
    IncidentKind,
    RoadSegment,
    Severity,
    VehicleToken,
)
from roadwatch.models.state import RefreshCycleState, RefreshPhase
from roadwatch.models.overlay import (
    EntityKind,
    MarkerOverlay,
    OverlayKind,
    OverlayRef,
    OverlayStyle,
    PointOverlay,
    RoadOverlay,
    Viewport,
)
from roadwatch.models.recommendation import (
    RecommendationDraft,
    RecommendationResult,
    RecommendationSource,
    RouteQuery,
)

__all__ = [
    # Geometry
    "LatLng",
    # Entities
    "CongestionLevel",
    "Severity",
    "IncidentKind",
    "RoadSegment",
    "CongestionPoint",
    "AccidentMarker",
    "VehicleToken",
    # Refresh
    "RefreshPhase",
    "RefreshCycleState",
    # Overlays
    "EntityKind",
    "OverlayKind",
    "OverlayStyle",
    "OverlayRef",
    "RoadOverlay",
    "PointOverlay",
    "MarkerOverlay",
    "Viewport",
    # Recommendation
    "RouteQuery",
    "RecommendationDraft",
    "RecommendationResult",
    "RecommendationSource",
]
