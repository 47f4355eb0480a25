"""
Recommendation Models
=====================

Travel recommendation draft, result, and the query that produces them.

Wire Contract (JSON object embedded in the streamed text):
    {
        "alternateRoute": "...",
        "bestTimeToTravel": "...",
        "transportationTip": "...",
        "safetyTip": "..."
    }

Merge Semantics:
    A draft field is only overwritten when the incoming value is a
    non-empty string. A populated field never regresses to empty, which
    makes merging idempotent: d.merged(p).merged(p) == d.merged(p).
"""

from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from roadwatch.models.entities import CongestionLevel


DRAFT_FIELDS = (
    "alternate_route",
    "best_time_to_travel",
    "transportation_tip",
    "safety_tip",
)


class RecommendationDraft(BaseModel):
    """
    Four-field travel recommendation, possibly incomplete.

    Attributes:
        alternate_route: Alternative route suggestion
        best_time_to_travel: Suggested departure time
        transportation_tip: Suggested mode of transport
        safety_tip: Safety advice
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    alternate_route: str = Field(default="", alias="alternateRoute")
    best_time_to_travel: str = Field(default="", alias="bestTimeToTravel")
    transportation_tip: str = Field(default="", alias="transportationTip")
    safety_tip: str = Field(default="", alias="safetyTip")

    @property
    def is_empty(self) -> bool:
        """True when no field has been populated yet."""
        return not any(getattr(self, name) for name in DRAFT_FIELDS)

    @property
    def is_complete(self) -> bool:
        """True when every field is populated."""
        return all(getattr(self, name) for name in DRAFT_FIELDS)

    def merged(self, other: "RecommendationDraft") -> "RecommendationDraft":
        """
        Merge another draft into this one.

        Only non-empty fields of `other` are taken.

        Args:
            other: Newly decoded draft

        Returns:
            New draft; `self` is left unchanged.
        """
        update = {
            name: getattr(other, name)
            for name in DRAFT_FIELDS
            if getattr(other, name)
        }
        if not update:
            return self
        return self.model_copy(update=update)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RecommendationDraft":
        """
        Build a draft from a decoded JSON object.

        Accepts wire (camelCase) or Python field names. Values that are
        not strings are ignored rather than coerced.
        """
        values = {}
        for name, field in cls.model_fields.items():
            value = data.get(field.alias or name, data.get(name))
            if isinstance(value, str):
                values[name] = value
        return cls(**values)

    def to_wire(self) -> dict:
        """Export with camelCase keys, as it appears on the wire."""
        return self.model_dump(by_alias=True)


class RecommendationSource(str, Enum):
    """
    Where a final recommendation came from.

    Attributes:
        STREAM_FINAL: The complete streamed JSON object parsed
        STREAM_PARTIAL: Only partial parses succeeded; best-effort draft
        FALLBACK: Deterministic lookup table
    """

    STREAM_FINAL = "STREAM_FINAL"
    STREAM_PARTIAL = "STREAM_PARTIAL"
    FALLBACK = "FALLBACK"


class RecommendationResult(BaseModel):
    """Final outcome of one recommendation request."""

    model_config = ConfigDict(frozen=True)

    draft: RecommendationDraft
    source: RecommendationSource


class RouteQuery(BaseModel):
    """
    A user-initiated route recommendation request.

    Attributes:
        origin: Start location name
        destination: End location name
        distance: Human-readable distance (e.g. "12.7 km")
        duration: Human-readable travel time (e.g. "35 min")
        congestion_level: Congestion along the route, if known
        description: Free-text congestion description
    """

    origin: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    distance: Optional[str] = None
    duration: Optional[str] = None
    congestion_level: Optional[CongestionLevel] = None
    description: Optional[str] = None
