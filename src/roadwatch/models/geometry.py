"""
Geometry Models
===============

Geographic primitives shared by every entity on the map.

Design Philosophy:
    The core never talks to a concrete map SDK, so positions are plain
    WGS-84 coordinates. Paths are ordered point sequences; everything
    that moves or is synthesized along a road uses linear interpolation
    between consecutive points (a "leg").

Example:
    from roadwatch.models.geometry import LatLng, lerp

    a = LatLng(lat=37.8571, lng=112.559)
    b = LatLng(lat=37.8571, lng=112.574)
    midpoint = lerp(a, b, 0.5)
"""

from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field


class LatLng(BaseModel):
    """
    Geographic coordinate.

    Attributes:
        lat: Latitude in degrees
        lng: Longitude in degrees
    """

    model_config = ConfigDict(frozen=True)

    lat: float = Field(
        ...,
        ge=-90.0,
        le=90.0,
        description="Latitude in degrees",
    )

    lng: float = Field(
        ...,
        ge=-180.0,
        le=180.0,
        description="Longitude in degrees",
    )

    def __repr__(self) -> str:
        return f"LatLng({self.lat:.5f}, {self.lng:.5f})"


def lerp(start: LatLng, end: LatLng, t: float) -> LatLng:
    """
    Linearly interpolate between two coordinates.

    Args:
        start: Position at t=0
        end: Position at t=1
        t: Interpolation factor, clamped to [0, 1]

    Returns:
        Interpolated coordinate
    """
    t = min(1.0, max(0.0, t))
    return LatLng(
        lat=start.lat + (end.lat - start.lat) * t,
        lng=start.lng + (end.lng - start.lng) * t,
    )


def point_on_path(path: Sequence[LatLng], leg_index: int, progress: float) -> LatLng:
    """
    Resolve a (leg, progress) position on a path.

    A path of N points has N-1 legs. The leg index wraps so callers can
    keep incrementing it.

    Args:
        path: Ordered path points (at least 2)
        leg_index: Index of the leg (wraps modulo leg count)
        progress: Fraction of the leg already travelled

    Returns:
        Interpolated coordinate on the path
    """
    if len(path) < 2:
        raise ValueError("path must contain at least 2 points")
    legs = len(path) - 1
    i = leg_index % legs
    return lerp(path[i], path[i + 1], progress)

