"""
Overlay Models
==============

Narrow, typed description of what the map SDK is asked to draw.

Variants:
    - RoadOverlay: polyline for a RoadSegment
    - PointOverlay: circle for a CongestionPoint (radius animates)
    - MarkerOverlay: icon marker for an AccidentMarker or VehicleToken

Every overlay carries the (entity kind, entity id) it represents so that
click handlers and animation loops can map an overlay back to the store.

Colour Scheme:
    LOW     #4CAF50 (green)
    MEDIUM  #FF9800 (orange)
    HIGH    #F44336 (red)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from roadwatch.models.entities import CongestionLevel, IncidentKind
from roadwatch.models.geometry import LatLng


LEVEL_COLORS = {
    CongestionLevel.LOW: "#4CAF50",
    CongestionLevel.MEDIUM: "#FF9800",
    CongestionLevel.HIGH: "#F44336",
}

INCIDENT_COLORS = {
    IncidentKind.ACCIDENT: "#F44336",
    IncidentKind.CONSTRUCTION: "#FFC107",
    IncidentKind.CONTROL: "#2196F3",
}

INCIDENT_ICONS = {
    IncidentKind.ACCIDENT: "/icons/accident.svg",
    IncidentKind.CONSTRUCTION: "/icons/construction.svg",
    IncidentKind.CONTROL: "/icons/control.svg",
}

VEHICLE_ICON = "/icons/vehicle.svg"


class OverlayKind(str, Enum):
    """Overlay variant."""

    ROAD = "ROAD"
    POINT = "POINT"
    MARKER = "MARKER"


class EntityKind(str, Enum):
    """Which store collection an overlay represents."""

    ROAD = "ROAD"
    CONGESTION_POINT = "CONGESTION_POINT"
    ACCIDENT = "ACCIDENT"
    VEHICLE = "VEHICLE"


@dataclass(frozen=True)
class OverlayStyle:
    """
    Visual style of an overlay.

    Attributes:
        color: Stroke or fill colour
        weight: Stroke weight in pixels (polylines)
        opacity: Opacity in [0, 1]
        radius: Circle radius in metres (point overlays)
        icon: Icon URL (marker overlays)
    """

    color: str = "#3388ff"
    weight: int = 5
    opacity: float = 0.8
    radius: Optional[float] = None
    icon: Optional[str] = None

    def with_opacity(self, opacity: float) -> "OverlayStyle":
        return OverlayStyle(self.color, self.weight, opacity, self.radius, self.icon)

    def with_radius(self, radius: float) -> "OverlayStyle":
        return OverlayStyle(self.color, self.weight, self.opacity, radius, self.icon)


@dataclass(frozen=True)
class RoadOverlay:
    entity_id: str
    path: Tuple[LatLng, ...]
    style: OverlayStyle
    kind: OverlayKind = field(default=OverlayKind.ROAD, init=False)
    entity_kind: EntityKind = field(default=EntityKind.ROAD, init=False)


@dataclass(frozen=True)
class PointOverlay:
    entity_id: str
    position: LatLng
    style: OverlayStyle
    kind: OverlayKind = field(default=OverlayKind.POINT, init=False)
    entity_kind: EntityKind = field(default=EntityKind.CONGESTION_POINT, init=False)


@dataclass(frozen=True)
class MarkerOverlay:
    entity_id: str
    position: LatLng
    style: OverlayStyle
    entity_kind: EntityKind = EntityKind.ACCIDENT
    title: str = ""
    kind: OverlayKind = field(default=OverlayKind.MARKER, init=False)


OverlaySpec = Union[RoadOverlay, PointOverlay, MarkerOverlay]


@dataclass(frozen=True)
class OverlayRef:
    """
    Opaque handle to an overlay created by a map session.

    Attributes:
        handle: Session-unique identifier
        kind: Overlay variant
        entity_kind: Store collection of the entity
        entity_id: Id of the entity drawn
    """

    handle: int
    kind: OverlayKind
    entity_kind: EntityKind
    entity_id: str


@dataclass(frozen=True)
class Viewport:
    """Map camera position."""

    center: LatLng
    zoom: int
    tilt: float = 0.0
