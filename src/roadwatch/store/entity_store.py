"""
Entity Store
============

Holds the current snapshot of the four entity collections.

Design Rules:
    - Snapshots are immutable (frozen dataclass of tuples of frozen models)
    - Readers get the snapshot object itself; there is nothing to lock
    - Replacement is atomic: a whole snapshot, or one whole collection
    - Only the Refresh Scheduler replaces anything
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Tuple

from roadwatch.models.entities import (
    AccidentMarker,
    CongestionPoint,
    RoadSegment,
    VehicleToken,
)


logger = logging.getLogger(__name__)


class Collection(str, Enum):
    """Names of the replaceable collections."""

    ROADS = "roads"
    CONGESTION_POINTS = "congestion_points"
    ACCIDENTS = "accidents"
    VEHICLES = "vehicles"


@dataclass(frozen=True)
class EntitySnapshot:
    """
    Immutable view of every entity on the map.

    Equality is deep: two snapshots with the same content compare equal.

    Attributes:
        roads: Road segments
        congestion_points: Congestion hotspots
        accidents: Incident markers
        vehicles: Vehicle spawn descriptors
    """

    roads: Tuple[RoadSegment, ...] = ()
    congestion_points: Tuple[CongestionPoint, ...] = ()
    accidents: Tuple[AccidentMarker, ...] = ()
    vehicles: Tuple[VehicleToken, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.roads or self.congestion_points or self.accidents or self.vehicles)

    def road(self, road_id: str) -> Optional[RoadSegment]:
        return next((r for r in self.roads if r.id == road_id), None)

    def congestion_point(self, point_id: str) -> Optional[CongestionPoint]:
        return next((p for p in self.congestion_points if p.id == point_id), None)

    def accident(self, accident_id: str) -> Optional[AccidentMarker]:
        return next((a for a in self.accidents if a.id == accident_id), None)

    def vehicle(self, vehicle_id: str) -> Optional[VehicleToken]:
        return next((v for v in self.vehicles if v.id == vehicle_id), None)

    def counts(self) -> dict:
        """Collection sizes for logging/metrics."""
        return {
            "roads": len(self.roads),
            "congestion_points": len(self.congestion_points),
            "accidents": len(self.accidents),
            "vehicles": len(self.vehicles),
        }


class EntityStore:
    """
    Owner of the current EntitySnapshot.

    Attributes:
        version: Number of replacements performed so far
        is_seeded: Whether a non-empty snapshot has ever been stored

    Example:
        store = EntityStore()
        store.replace(EntitySnapshot(roads=(road,)))
        snapshot = store.snapshot()
    """

    def __init__(self, initial: Optional[EntitySnapshot] = None) -> None:
        self._snapshot = initial or EntitySnapshot()
        self._version = 0
        self._seeded = not self._snapshot.is_empty

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_seeded(self) -> bool:
        return self._seeded

    def snapshot(self) -> EntitySnapshot:
        """Current snapshot (immutable)."""
        return self._snapshot

    def replace(self, snapshot: EntitySnapshot) -> None:
        """
        Atomically replace the whole snapshot.

        Args:
            snapshot: New snapshot
        """
        self._snapshot = snapshot
        self._version += 1
        if not snapshot.is_empty:
            self._seeded = True
        logger.debug(f"Store replaced (v{self._version}): {snapshot.counts()}")

    def replace_collection(self, collection: Collection, items: Iterable) -> None:
        """
        Atomically replace a single collection.

        Args:
            collection: Which collection to swap
            items: New contents
        """
        self.replace(replace(self._snapshot, **{collection.value: tuple(items)}))
