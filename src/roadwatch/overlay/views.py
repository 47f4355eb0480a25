"""
Viewport Presets
================

Named camera positions over Taiyuan and a rotator that cycles them.

Presets:
    overall     city centre, zoom 12
    downtown    Liuxiang area, zoom 14
    north       northern districts, zoom 13
    east        eastern districts, zoom 13
    congestion  centred on the worst congestion point, zoom 15
"""

import asyncio
import logging
from typing import Dict, Optional, Sequence

from roadwatch.models.geometry import LatLng
from roadwatch.models.overlay import Viewport
from roadwatch.overlay.session import MapSession
from roadwatch.store.entity_store import EntitySnapshot, EntityStore


logger = logging.getLogger(__name__)


VIEW_PRESETS: Dict[str, Viewport] = {
    "overall": Viewport(center=LatLng(lat=37.857, lng=112.549), zoom=12),
    "downtown": Viewport(center=LatLng(lat=37.873, lng=112.563), zoom=14),
    "north": Viewport(center=LatLng(lat=37.905, lng=112.555), zoom=13),
    "east": Viewport(center=LatLng(lat=37.857, lng=112.595), zoom=13),
}

CONGESTION_PRESET = "congestion"
CONGESTION_ZOOM = 15

PRESET_NAMES = tuple(VIEW_PRESETS) + (CONGESTION_PRESET,)


def resolve_preset(name: str, snapshot: EntitySnapshot) -> Viewport:
    """
    Resolve a preset name to a viewport.

    The congestion preset centres on the highest-level congestion point
    (first one wins on ties) and falls back to `overall` when there are
    no points.

    Raises:
        KeyError: Unknown preset name
    """
    if name == CONGESTION_PRESET:
        if not snapshot.congestion_points:
            return VIEW_PRESETS["overall"]
        worst = max(snapshot.congestion_points, key=lambda p: p.level.rank)
        return Viewport(center=worst.position, zoom=CONGESTION_ZOOM)
    return VIEW_PRESETS[name]


def apply_preset(session: MapSession, name: str, snapshot: EntitySnapshot) -> Viewport:
    """Resolve a preset and move the session camera to it."""
    viewport = resolve_preset(name, snapshot)
    session.set_viewport(viewport.center, viewport.zoom, viewport.tilt)
    logger.info(f"View changed to '{name}' (zoom {viewport.zoom})")
    return viewport


class ViewRotator:
    """
    Periodic task cycling the viewport through presets.

    Attributes:
        interval_seconds: Time spent on each preset
        presets: Preset names in rotation order
        current: Name of the preset currently shown
    """

    def __init__(
        self,
        session: MapSession,
        store: EntityStore,
        interval_seconds: float = 15.0,
        presets: Optional[Sequence[str]] = None,
    ) -> None:
        """
        Initialize view rotator.

        Args:
            session: Map session to move
            store: Store read when resolving the congestion preset
            interval_seconds: Seconds per preset
            presets: Rotation order (all presets if None)
        """
        presets = tuple(presets or PRESET_NAMES)
        unknown = [p for p in presets if p not in PRESET_NAMES]
        if unknown:
            raise ValueError(f"Unknown view presets: {unknown}")

        self.session = session
        self.store = store
        self.interval_seconds = interval_seconds
        self.presets = presets
        self.current: Optional[str] = None

        self._index = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def step(self) -> str:
        """Advance to the next preset and apply it."""
        name = self.presets[self._index % len(self.presets)]
        self._index += 1
        apply_preset(self.session, name, self.store.snapshot())
        self.current = name
        return name

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="view_rotation")
        return self._task

    async def _run(self) -> None:
        logger.info(f"View rotation started: every {self.interval_seconds}s over {list(self.presets)}")
        while True:
            self.step()
            await asyncio.sleep(self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the rotation task and wait for it."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("View rotation stopped")
