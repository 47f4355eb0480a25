"""
Animation Loop Manager
======================

Per-entity animation loops driven by self-rescheduling timers.

Loops:
    Vehicle movement  every frame, advance along the current leg by
                      frame / leg_duration; leg_duration grows with the
                      road's congestion (HIGH slowest). At the end of a
                      leg move to the next one (wrapping), or with
                      p=teleport_probability jump to a random spot on the
                      same road.
    Accident flash    opacity steps between a floor and 1.0, reversing at
                      each bound (HIGH severity flashes deeper).
    Congestion pulse  circle radius oscillates between base and max
                      radius, for MEDIUM and HIGH points only.

Design Rules:
    - Each firing resolves the overlay through the reconciler; a loop
      whose overlay is detached or whose entity left the store cancels
      itself
    - sync() is idempotent: it starts missing loops and discards loops
      for entities that are gone
    - dispose() tears down every group; no callback fires afterwards
"""

import logging
import random
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from roadwatch.animation.timers import SelfReschedulingTimer, TimerGroup
from roadwatch.models.entities import CongestionLevel, Severity
from roadwatch.models.geometry import LatLng, point_on_path
from roadwatch.models.overlay import EntityKind, OverlayRef
from roadwatch.overlay.reconciler import OverlayReconciler
from roadwatch.overlay.session import MapSession
from roadwatch.store.entity_store import EntitySnapshot, EntityStore


logger = logging.getLogger(__name__)


@dataclass
class AnimationParams:
    """
    Animation tuning.

    Loaded from the `animation` config section.
    """

    frame_seconds: float = 0.1
    base_leg_seconds: float = 4.0
    teleport_probability: float = 0.1

    flash_step: float = 0.1
    flash_floor: float = 0.4
    flash_floor_high: float = 0.2

    pulse_base_radius: float = 200.0
    pulse_max_radius: float = 400.0
    pulse_high_scale: float = 1.5
    pulse_step: float = 20.0


@dataclass
class VehicleMotion:
    """Live position of one vehicle on its road."""

    leg_index: int
    progress: float


class AnimationLoopManager:
    """
    Starts, keeps, and tears down per-entity animation loops.

    Attributes:
        params: Animation tuning
        frames: Total animation frames applied

    Example:
        animation = AnimationLoopManager(store, reconciler, session)
        reconciler.set_position_resolver(animation)
        scheduler.subscribe(reconciler.rebuild)
        scheduler.subscribe(animation.sync)
        ...
        animation.dispose()
    """

    def __init__(
        self,
        store: EntityStore,
        reconciler: OverlayReconciler,
        session: MapSession,
        params: Optional[AnimationParams] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize animation loop manager.

        Args:
            store: Entity store (read-only use)
            reconciler: Resolves entities to their current overlay
            session: Map session overlays are updated on
            params: Animation tuning (defaults if None)
            rng: Random source for teleports
        """
        self.store = store
        self.reconciler = reconciler
        self.session = session
        self.params = params or AnimationParams()
        self.rng = rng or random.Random()
        self.frames = 0

        self._vehicles = TimerGroup("vehicle")
        self._flashes = TimerGroup("flash")
        self._pulses = TimerGroup("pulse")

        self._motion: Dict[str, VehicleMotion] = {}
        self._opacity: Dict[str, Tuple[float, int]] = {}
        self._radius: Dict[str, Tuple[float, int]] = {}

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def sync(self, snapshot: Optional[EntitySnapshot] = None) -> None:
        """
        Align running loops with a snapshot.

        Args:
            snapshot: Snapshot to align with (current store snapshot if None)
        """
        if snapshot is None:
            snapshot = self.store.snapshot()

        for group in (self._vehicles, self._flashes, self._pulses):
            group.prune()

        # Vehicles
        live = {v.id for v in snapshot.vehicles}
        for key in self._vehicles:
            if key not in live:
                self._vehicles.discard(key)
        for gone in set(self._motion) - live:
            del self._motion[gone]
        for vehicle in snapshot.vehicles:
            if vehicle.id not in self._motion:
                self._motion[vehicle.id] = VehicleMotion(vehicle.segment_index, vehicle.progress)
            if vehicle.id not in self._vehicles:
                self._start(self._vehicles, EntityKind.VEHICLE, vehicle.id, self._vehicle_step)

        # Accidents
        live = {a.id for a in snapshot.accidents}
        for key in self._flashes:
            if key not in live:
                self._flashes.discard(key)
        self._opacity = {k: v for k, v in self._opacity.items() if k in live}
        for accident in snapshot.accidents:
            if accident.id not in self._flashes:
                self._opacity.setdefault(accident.id, (1.0, -1))
                self._start(self._flashes, EntityKind.ACCIDENT, accident.id, self._flash_step)

        # Congestion points (LOW points do not pulse)
        live = {p.id for p in snapshot.congestion_points if p.level != CongestionLevel.LOW}
        for key in self._pulses:
            if key not in live:
                self._pulses.discard(key)
        self._radius = {k: v for k, v in self._radius.items() if k in live}
        for point_id in live:
            if point_id not in self._pulses:
                self._radius.setdefault(point_id, (self.params.pulse_base_radius, 1))
                self._start(self._pulses, EntityKind.CONGESTION_POINT, point_id, self._pulse_step)

        logger.debug(f"Animation synced: {self.loop_counts()}")

    def _start(self, group: TimerGroup, kind: EntityKind, entity_id: str, step) -> None:
        timer = SelfReschedulingTimer(
            step=lambda: step(entity_id),
            is_attached=lambda: self._is_live(kind, entity_id),
            name=f"{group.name}:{entity_id}",
        )
        group.add(entity_id, timer, delay=self.params.frame_seconds)

    def dispose(self) -> None:
        """Cancel every loop. Safe to call more than once."""
        for group in (self._vehicles, self._flashes, self._pulses):
            group.dispose()
        self._motion.clear()
        self._opacity.clear()
        self._radius.clear()
        logger.info("Animation loops disposed")

    def loop_counts(self) -> dict:
        return {
            "vehicles": len(self._vehicles),
            "flashes": len(self._flashes),
            "pulses": len(self._pulses),
        }

    # -------------------------------------------------------------------------
    # Liveness
    # -------------------------------------------------------------------------

    def _overlay(self, kind: EntityKind, entity_id: str) -> Optional[OverlayRef]:
        ref = self.reconciler.overlay_for(kind, entity_id)
        if ref is None or not self.session.is_attached(ref):
            return None
        return ref

    def _is_live(self, kind: EntityKind, entity_id: str) -> bool:
        snapshot = self.store.snapshot()
        if kind == EntityKind.VEHICLE:
            present = snapshot.vehicle(entity_id) is not None
        elif kind == EntityKind.ACCIDENT:
            present = snapshot.accident(entity_id) is not None
        else:
            present = snapshot.congestion_point(entity_id) is not None
        return present and self._overlay(kind, entity_id) is not None

    # -------------------------------------------------------------------------
    # Vehicles
    # -------------------------------------------------------------------------

    def position_of(self, vehicle_id: str) -> Optional[LatLng]:
        """Live position of a vehicle, or None if it is not animated."""
        motion = self._motion.get(vehicle_id)
        if motion is None:
            return None
        snapshot = self.store.snapshot()
        vehicle = snapshot.vehicle(vehicle_id)
        road = snapshot.road(vehicle.road_id) if vehicle else None
        if road is None:
            return None
        return point_on_path(road.path, motion.leg_index, motion.progress)

    def _vehicle_step(self, vehicle_id: str) -> Optional[float]:
        p = self.params
        snapshot = self.store.snapshot()
        vehicle = snapshot.vehicle(vehicle_id)
        road = snapshot.road(vehicle.road_id) if vehicle else None
        motion = self._motion.get(vehicle_id)
        ref = self._overlay(EntityKind.VEHICLE, vehicle_id)
        if road is None or motion is None or ref is None:
            return None

        leg_seconds = p.base_leg_seconds * road.level.rank
        motion.progress += p.frame_seconds / leg_seconds
        if motion.progress >= 1.0:
            motion.progress = 0.0
            motion.leg_index = (motion.leg_index + 1) % road.leg_count
            if self.rng.random() < p.teleport_probability:
                motion.leg_index = self.rng.randrange(road.leg_count)
                motion.progress = self.rng.random()

        position = point_on_path(road.path, motion.leg_index, motion.progress)
        self.session.update_overlay(ref, position=position)
        self.frames += 1
        return p.frame_seconds

    # -------------------------------------------------------------------------
    # Accidents
    # -------------------------------------------------------------------------

    def _flash_step(self, accident_id: str) -> Optional[float]:
        p = self.params
        accident = self.store.snapshot().accident(accident_id)
        ref = self._overlay(EntityKind.ACCIDENT, accident_id)
        if accident is None or ref is None:
            return None

        floor = p.flash_floor_high if accident.severity == Severity.HIGH else p.flash_floor
        opacity, direction = self._opacity.get(accident_id, (1.0, -1))
        opacity = round(opacity + direction * p.flash_step, 3)
        if opacity >= 1.0:
            opacity, direction = 1.0, -1
        elif opacity <= floor:
            opacity, direction = floor, 1
        self._opacity[accident_id] = (opacity, direction)

        style = self.reconciler.accident_overlay(accident).style.with_opacity(opacity)
        self.session.update_overlay(ref, style=style)
        self.frames += 1
        return p.frame_seconds

    def opacity_of(self, accident_id: str) -> Optional[float]:
        state = self._opacity.get(accident_id)
        return state[0] if state else None

    # -------------------------------------------------------------------------
    # Congestion points
    # -------------------------------------------------------------------------

    def _pulse_step(self, point_id: str) -> Optional[float]:
        p = self.params
        point = self.store.snapshot().congestion_point(point_id)
        ref = self._overlay(EntityKind.CONGESTION_POINT, point_id)
        if point is None or ref is None or point.level == CongestionLevel.LOW:
            return None

        max_radius = p.pulse_max_radius
        if point.level == CongestionLevel.HIGH:
            max_radius *= p.pulse_high_scale

        radius, direction = self._radius.get(point_id, (p.pulse_base_radius, 1))
        radius += direction * p.pulse_step
        if radius >= max_radius:
            radius, direction = max_radius, -1
        elif radius <= p.pulse_base_radius:
            radius, direction = p.pulse_base_radius, 1
        self._radius[point_id] = (radius, direction)

        style = self.reconciler.point_overlay(point).style.with_radius(radius)
        self.session.update_overlay(ref, style=style)
        self.frames += 1
        return p.frame_seconds

    def radius_of(self, point_id: str) -> Optional[float]:
        state = self._radius.get(point_id)
        return state[0] if state else None
