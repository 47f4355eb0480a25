"""
Regeneration Rules
==================

Stochastic, synchronous rules that derive the next snapshot from the
current one.

Rules:
    Roads:
        mutate with p=road_mutation
        mutated → adjacent level with p=adjacent_bias (one rank up/down,
                  uniform among valid neighbours), else uniform over all
                  three levels; volume += U(-volume_delta, +volume_delta),
                  clamped to [volume_min, volume_max]
    Congestion points:
        mutate with p=point_mutation → uniform among the two other levels
    Accidents:
        p=accident_eviction  → drop the oldest marker (by created_at)
        p=accident_synthesis → new marker on a random leg of a random road,
                               HIGH with p=high_severity, else MEDIUM
    Vehicles:
        every road carries vehicles_per_road tokens; existing ids are kept

Key Features:
    - Pure function of (snapshot, rng, now); never blocks, never awaits
    - All probability constants are parameters, not hard-coded
    - Deterministic when the injected random.Random is seeded
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from roadwatch.models.entities import (
    AccidentMarker,
    CongestionLevel,
    CongestionPoint,
    IncidentKind,
    RoadSegment,
    Severity,
    VehicleToken,
)
from roadwatch.models.geometry import point_on_path
from roadwatch.store.entity_store import EntitySnapshot


logger = logging.getLogger(__name__)


ALL_LEVELS = (CongestionLevel.LOW, CongestionLevel.MEDIUM, CongestionLevel.HIGH)


@dataclass
class RegenerationParams:
    """
    Tuning constants for regeneration.

    Loaded from the `regeneration` config section.
    """

    # Roads
    road_mutation: float = 0.5
    adjacent_bias: float = 0.6
    volume_delta: float = 20.0
    volume_min: float = 60.0
    volume_max: float = 200.0

    # Congestion points
    point_mutation: float = 0.3

    # Accidents
    accident_eviction: float = 0.1
    accident_synthesis: float = 0.05
    high_severity: float = 0.3
    accident_clear_minutes: int = 60

    # Vehicles
    vehicles_per_road: int = 3


class Regenerator:
    """
    Applies the regeneration rules to a snapshot.

    Example:
        regenerator = Regenerator(RegenerationParams(), random.Random(7))
        next_snapshot = regenerator.regenerate(store.snapshot())
    """

    def __init__(
        self,
        params: Optional[RegenerationParams] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize regenerator.

        Args:
            params: Tuning constants (defaults if None)
            rng: Random source (unseeded if None)
        """
        self.params = params or RegenerationParams()
        self.rng = rng or random.Random()

    def regenerate(
        self,
        snapshot: EntitySnapshot,
        now: Optional[datetime] = None,
    ) -> EntitySnapshot:
        """
        Derive the next snapshot.

        Args:
            snapshot: Current snapshot (not modified)
            now: Timestamp for new/updated entities (defaults to UTC now)

        Returns:
            New snapshot
        """
        if now is None:
            now = datetime.now(timezone.utc)

        roads = tuple(self.mutate_road(road) for road in snapshot.roads)
        points = tuple(
            self.mutate_congestion_point(point, now)
            for point in snapshot.congestion_points
        )
        accidents = self.update_accidents(snapshot.accidents, roads, now)
        vehicles = self.spawn_vehicles(snapshot.vehicles, roads)

        return EntitySnapshot(
            roads=roads,
            congestion_points=points,
            accidents=accidents,
            vehicles=vehicles,
        )

    # -------------------------------------------------------------------------
    # Roads
    # -------------------------------------------------------------------------

    def mutate_road(self, road: RoadSegment) -> RoadSegment:
        """Mutate one road's level and volume, or return it unchanged."""
        p = self.params
        if self.rng.random() >= p.road_mutation:
            return road

        level = self.next_road_level(road.level)
        volume = road.traffic_volume + self.rng.uniform(-p.volume_delta, p.volume_delta)
        volume = min(p.volume_max, max(p.volume_min, volume))

        return road.model_copy(update={
            "level": level,
            "traffic_volume": round(volume, 1),
        })

    def next_road_level(self, current: CongestionLevel) -> CongestionLevel:
        """Pick the level of a mutated road (adjacent-biased)."""
        if self.rng.random() < self.params.adjacent_bias:
            return self.rng.choice(current.neighbours())
        return self.rng.choice(ALL_LEVELS)

    # -------------------------------------------------------------------------
    # Congestion points
    # -------------------------------------------------------------------------

    def mutate_congestion_point(
        self,
        point: CongestionPoint,
        now: datetime,
    ) -> CongestionPoint:
        """Mutate one point's level, or return it unchanged."""
        if self.rng.random() >= self.params.point_mutation:
            return point

        others = [level for level in ALL_LEVELS if level != point.level]
        return point.model_copy(update={
            "level": self.rng.choice(others),
            "updated_at": now,
        })

    # -------------------------------------------------------------------------
    # Accidents
    # -------------------------------------------------------------------------

    def update_accidents(
        self,
        accidents: Tuple[AccidentMarker, ...],
        roads: Tuple[RoadSegment, ...],
        now: datetime,
    ) -> Tuple[AccidentMarker, ...]:
        """Evict the oldest marker and/or synthesize a new one."""
        p = self.params
        result: List[AccidentMarker] = list(accidents)

        if result and self.rng.random() < p.accident_eviction:
            oldest = min(result, key=lambda a: a.created_at)
            result.remove(oldest)
            logger.info(f"Accident cleared: {oldest.id} ({oldest.title or oldest.kind.value})")

        if roads and self.rng.random() < p.accident_synthesis:
            marker = self.synthesize_accident(roads, now)
            result.append(marker)
            logger.info(f"Accident reported: {marker.id} severity={marker.severity.value}")

        return tuple(result)

    def synthesize_accident(
        self,
        roads: Tuple[RoadSegment, ...],
        now: datetime,
    ) -> AccidentMarker:
        """Create a marker at a random point along a random road."""
        p = self.params
        road = self.rng.choice(roads)
        position = point_on_path(
            road.path,
            self.rng.randrange(road.leg_count),
            self.rng.random(),
        )
        severity = Severity.HIGH if self.rng.random() < p.high_severity else Severity.MEDIUM

        return AccidentMarker(
            id=f"acc-{int(now.timestamp())}-{self.rng.randrange(16 ** 6):06x}",
            position=position,
            severity=severity,
            created_at=now,
            estimated_clear_at=now + timedelta(minutes=p.accident_clear_minutes),
            kind=IncidentKind.ACCIDENT,
            title="Reported collision",
            description=f"Collision reported on {road.name}",
        )

    # -------------------------------------------------------------------------
    # Vehicles
    # -------------------------------------------------------------------------

    def spawn_vehicles(
        self,
        vehicles: Tuple[VehicleToken, ...],
        roads: Tuple[RoadSegment, ...],
    ) -> Tuple[VehicleToken, ...]:
        """Keep existing tokens and top every road up to vehicles_per_road."""
        existing = {v.id: v for v in vehicles}
        result: List[VehicleToken] = []

        for road in roads:
            for i in range(self.params.vehicles_per_road):
                token_id = f"{road.id}-v{i}"
                token = existing.get(token_id)
                if token is None or token.road_id != road.id:
                    token = VehicleToken(
                        id=token_id,
                        road_id=road.id,
                        segment_index=self.rng.randrange(road.leg_count),
                        progress=self.rng.random(),
                    )
                result.append(token)

        return tuple(result)
