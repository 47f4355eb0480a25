"""
Overlay Reconciler
==================

Maps an EntitySnapshot onto map overlays.

Every rebuild removes all overlays this reconciler created and draws
one per entity:

    RoadSegment      → RoadOverlay   (polyline coloured by level)
    CongestionPoint  → PointOverlay  (circle coloured by level)
    AccidentMarker   → MarkerOverlay (icon by incident kind)
    VehicleToken     → MarkerOverlay (vehicle icon at live position)

Selecting an overlay surfaces an EntityDetail to registered callbacks.
The reconciler reads the store; it never mutates entity state.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from roadwatch.models.entities import (
    AccidentMarker,
    CongestionPoint,
    RoadSegment,
    VehicleToken,
)
from roadwatch.models.geometry import LatLng, point_on_path
from roadwatch.models.overlay import (
    INCIDENT_COLORS,
    INCIDENT_ICONS,
    LEVEL_COLORS,
    VEHICLE_ICON,
    EntityKind,
    MarkerOverlay,
    OverlayRef,
    OverlayStyle,
    PointOverlay,
    RoadOverlay,
)
from roadwatch.overlay.session import MapSession
from roadwatch.store.entity_store import EntitySnapshot, EntityStore


logger = logging.getLogger(__name__)


ROAD_WEIGHT = 6
ROAD_OPACITY = 0.8
POINT_OPACITY = 0.35
VEHICLE_COLOR = "#1976D2"

EntityKey = Tuple[EntityKind, str]


class PositionResolver(Protocol):
    """Source of live vehicle positions."""

    def position_of(self, vehicle_id: str) -> Optional[LatLng]:
        ...


@dataclass(frozen=True)
class EntityDetail:
    """
    What a selection shows about an entity.

    Attributes:
        entity_kind: Store collection
        entity_id: Entity id
        title: Heading line
        fields: Ordered label → value pairs
    """

    entity_kind: EntityKind
    entity_id: str
    title: str
    fields: Dict[str, str] = field(default_factory=dict)


SelectCallback = Callable[[EntityDetail], None]


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


class OverlayReconciler:
    """
    Full-rebuild reconciler between the store and a map session.

    Attributes:
        session: Map session overlays are drawn on
        store: Entity store read on selection
        point_radius: Base circle radius for congestion points (metres)
        rebuilds: Number of rebuilds performed

    Example:
        reconciler = OverlayReconciler(session, store)
        reconciler.on_select(lambda detail: print(detail.title))
        scheduler.subscribe(reconciler.rebuild)
    """

    def __init__(
        self,
        session: MapSession,
        store: EntityStore,
        positions: Optional[PositionResolver] = None,
        point_radius: float = 200.0,
    ) -> None:
        """
        Initialize reconciler.

        Args:
            session: Map session to draw on
            store: Entity store (read-only use)
            positions: Live vehicle positions (spawn positions if None)
            point_radius: Base circle radius for congestion points
        """
        self.session = session
        self.store = store
        self.positions = positions
        self.point_radius = point_radius
        self.rebuilds = 0

        self._refs: Dict[EntityKey, OverlayRef] = {}
        self._select_callbacks: List[SelectCallback] = []

    def set_position_resolver(self, positions: Optional[PositionResolver]) -> None:
        self.positions = positions

    # -------------------------------------------------------------------------
    # Rebuild
    # -------------------------------------------------------------------------

    def rebuild(self, snapshot: Optional[EntitySnapshot] = None) -> None:
        """
        Redraw every overlay for a snapshot.

        Args:
            snapshot: Snapshot to draw (current store snapshot if None)
        """
        if snapshot is None:
            snapshot = self.store.snapshot()

        self.clear()

        for road in snapshot.roads:
            self._draw(self.road_overlay(road))
        for point in snapshot.congestion_points:
            self._draw(self.point_overlay(point))
        for accident in snapshot.accidents:
            self._draw(self.accident_overlay(accident))
        for vehicle in snapshot.vehicles:
            road = snapshot.road(vehicle.road_id)
            if road is None:
                logger.debug(f"Vehicle {vehicle.id} has no road {vehicle.road_id}, skipped")
                continue
            self._draw(self.vehicle_overlay(vehicle, road))

        self.rebuilds += 1
        logger.debug(f"Overlays rebuilt (#{self.rebuilds}): {len(self._refs)} drawn")

    def clear(self) -> None:
        """Remove every overlay this reconciler created."""
        for ref in self._refs.values():
            self.session.remove_overlay(ref)
        self._refs.clear()

    def _draw(self, spec) -> None:
        ref = self.session.create_overlay(spec)
        self.session.on_overlay_click(ref, self._handle_click)
        self._refs[(ref.entity_kind, ref.entity_id)] = ref

    def overlay_for(self, entity_kind: EntityKind, entity_id: str) -> Optional[OverlayRef]:
        """Current overlay of an entity, if drawn."""
        return self._refs.get((entity_kind, entity_id))

    def refs(self) -> List[OverlayRef]:
        return list(self._refs.values())

    # -------------------------------------------------------------------------
    # Overlay specs
    # -------------------------------------------------------------------------

    def road_overlay(self, road: RoadSegment) -> RoadOverlay:
        return RoadOverlay(
            entity_id=road.id,
            path=tuple(road.path),
            style=OverlayStyle(
                color=LEVEL_COLORS[road.level],
                weight=ROAD_WEIGHT,
                opacity=ROAD_OPACITY,
            ),
        )

    def point_overlay(self, point: CongestionPoint) -> PointOverlay:
        return PointOverlay(
            entity_id=point.id,
            position=point.position,
            style=OverlayStyle(
                color=LEVEL_COLORS[point.level],
                weight=2,
                opacity=POINT_OPACITY,
                radius=self.point_radius,
            ),
        )

    def accident_overlay(self, accident: AccidentMarker) -> MarkerOverlay:
        return MarkerOverlay(
            entity_id=accident.id,
            position=accident.position,
            style=OverlayStyle(
                color=INCIDENT_COLORS[accident.kind],
                opacity=1.0,
                icon=INCIDENT_ICONS[accident.kind],
            ),
            entity_kind=EntityKind.ACCIDENT,
            title=accident.title,
        )

    def vehicle_overlay(self, vehicle: VehicleToken, road: RoadSegment) -> MarkerOverlay:
        position = None
        if self.positions is not None:
            position = self.positions.position_of(vehicle.id)
        if position is None:
            position = point_on_path(road.path, vehicle.segment_index, vehicle.progress)

        return MarkerOverlay(
            entity_id=vehicle.id,
            position=position,
            style=OverlayStyle(color=VEHICLE_COLOR, opacity=1.0, icon=VEHICLE_ICON),
            entity_kind=EntityKind.VEHICLE,
            title=road.name,
        )

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def on_select(self, callback: SelectCallback) -> Callable[[], None]:
        """
        Register a selection callback.

        Returns:
            Function that removes the callback
        """
        self._select_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._select_callbacks:
                self._select_callbacks.remove(callback)

        return unsubscribe

    def _handle_click(self, ref: OverlayRef) -> None:
        detail = self.describe(ref.entity_kind, ref.entity_id)
        if detail is None:
            logger.debug(f"Click on stale overlay {ref.handle} ({ref.entity_id}) ignored")
            return

        for callback in list(self._select_callbacks):
            try:
                callback(detail)
            except Exception as e:
                logger.error(f"Selection callback failed: {e}", exc_info=True)

    def describe(self, entity_kind: EntityKind, entity_id: str) -> Optional[EntityDetail]:
        """Build the detail view of an entity from the current snapshot."""
        snapshot = self.store.snapshot()

        if entity_kind == EntityKind.ROAD:
            road = snapshot.road(entity_id)
            if road is None:
                return None
            return EntityDetail(entity_kind, road.id, road.name, {
                "Congestion": road.level.value,
                "Traffic volume": f"{road.traffic_volume:g}",
            })

        if entity_kind == EntityKind.CONGESTION_POINT:
            point = snapshot.congestion_point(entity_id)
            if point is None:
                return None
            return EntityDetail(entity_kind, point.id, point.name, {
                "Congestion": point.level.value,
                "Details": point.description or "-",
                "Updated": _fmt_time(point.updated_at),
            })

        if entity_kind == EntityKind.ACCIDENT:
            accident = snapshot.accident(entity_id)
            if accident is None:
                return None
            return EntityDetail(entity_kind, accident.id, accident.title or accident.kind.value, {
                "Type": accident.kind.value,
                "Severity": accident.severity.value,
                "Reported": _fmt_time(accident.created_at),
                "Details": accident.description or "-",
                "Estimated clear": _fmt_time(accident.estimated_clear_at),
            })

        if entity_kind == EntityKind.VEHICLE:
            vehicle = snapshot.vehicle(entity_id)
            if vehicle is None:
                return None
            road = snapshot.road(vehicle.road_id)
            return EntityDetail(entity_kind, vehicle.id, f"Vehicle {vehicle.id}", {
                "Road": road.name if road else vehicle.road_id,
                "Congestion": road.level.value if road else "-",
            })

        return None
