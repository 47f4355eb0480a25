"""
Entity Models
=============

The four collections held by the Entity Store.

Core Concepts:
    - CongestionLevel: Ordinal traffic classification (LOW < MEDIUM < HIGH)
    - RoadSegment: Named polyline with a level and a traffic volume
    - CongestionPoint: Named spot with a level, independent of roads
    - AccidentMarker: Incident (collision, road works, traffic control)
    - VehicleToken: Spawn descriptor for an animated vehicle on one road

Lifecycle:
    RoadSegment     replaced wholesale every tick, never deleted
    CongestionPoint replaced every tick, level may change
    AccidentMarker  seeded or synthesized; oldest evicted stochastically
    VehicleToken    spawned per road; live position belongs to animation

All entities are frozen. Regeneration builds new instances with
`model_copy(update=...)` and hands them to the store as a whole.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from roadwatch.models.geometry import LatLng


class CongestionLevel(str, Enum):
    """
    Ordinal congestion classification.

    Attributes:
        LOW: Free flowing, occasional slowdowns
        MEDIUM: Slow traffic, heavy volume
        HIGH: Severe congestion
    """

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        """Ordinal position on the scale (1..3)."""
        return _LEVEL_ORDER.index(self) + 1

    def neighbours(self) -> List["CongestionLevel"]:
        """Levels exactly one step away (one or two of them)."""
        return [
            level for level in _LEVEL_ORDER
            if abs(level.rank - self.rank) == 1
        ]


_LEVEL_ORDER = [CongestionLevel.LOW, CongestionLevel.MEDIUM, CongestionLevel.HIGH]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC so every stored time is comparable."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Severity(str, Enum):
    """Incident severity."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class IncidentKind(str, Enum):
    """
    Incident category.

    Attributes:
        ACCIDENT: Traffic collision
        CONSTRUCTION: Road works occupying lanes
        CONTROL: Temporary traffic control
    """

    ACCIDENT = "ACCIDENT"
    CONSTRUCTION = "CONSTRUCTION"
    CONTROL = "CONTROL"


class RoadSegment(BaseModel):
    """
    A monitored road drawn as a polyline.

    Attributes:
        id: Stable identifier
        name: Display name
        path: Ordered geographic points (at least 2)
        level: Current congestion level
        traffic_volume: Current traffic volume (vehicles per interval)
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable road identifier")
    name: str = Field(..., description="Display name")
    path: List[LatLng] = Field(
        ...,
        min_length=2,
        description="Ordered path points (minimum 2)",
    )
    level: CongestionLevel = Field(..., description="Current congestion level")
    traffic_volume: float = Field(
        ...,
        ge=0.0,
        description="Traffic volume, never negative",
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: List[LatLng]) -> List[LatLng]:
        """Ensure the polyline has at least one leg."""
        if len(v) < 2:
            raise ValueError("RoadSegment path must have at least 2 points")
        return v

    @property
    def leg_count(self) -> int:
        """Number of straight legs in the path."""
        return len(self.path) - 1


class CongestionPoint(BaseModel):
    """
    A congestion hotspot (typically an intersection).

    Attributes:
        id: Stable identifier
        name: Display name
        position: Location of the hotspot
        level: Current congestion level
        description: Free-text detail shown on selection
        updated_at: When the level was last (re)assessed
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    position: LatLng
    level: CongestionLevel
    description: str = ""
    updated_at: Optional[datetime] = None

    @field_validator("updated_at")
    @classmethod
    def validate_updated_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class AccidentMarker(BaseModel):
    """
    An incident on the road network.

    Attributes:
        id: Stable identifier
        position: Location of the incident
        severity: Incident severity
        created_at: When the incident was reported
        estimated_clear_at: Optional expected clearance time
        kind: Incident category
        title: Short display title
        description: Free-text detail shown on selection
    """

    model_config = ConfigDict(frozen=True)

    id: str
    position: LatLng
    severity: Severity
    created_at: datetime
    estimated_clear_at: Optional[datetime] = None
    kind: IncidentKind = IncidentKind.ACCIDENT
    title: str = ""
    description: str = ""

    @field_validator("created_at", "estimated_clear_at")
    @classmethod
    def validate_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps (common in REST payloads) are read as UTC."""
        return _as_utc(v)


class VehicleToken(BaseModel):
    """
    Spawn descriptor for an animated vehicle.

    The token is bound to exactly one road. The animation layer owns the
    live (leg, progress) state once the token is running; the store only
    records where it was spawned.

    Attributes:
        id: Stable identifier (unique per road)
        road_id: Owning RoadSegment id
        segment_index: Leg index the token spawned on
        progress: Fraction of that leg already travelled, in [0, 1)
    """

    model_config = ConfigDict(frozen=True)

    id: str
    road_id: str
    segment_index: int = Field(default=0, ge=0)
    progress: float = Field(default=0.0, ge=0.0, lt=1.0)
