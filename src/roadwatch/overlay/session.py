"""
Map Session
===========

Capability interface of the map SDK and an in-memory implementation.

The core never touches a global map object. A MapSession is created by
the caller and passed explicitly to the reconciler and the animation
manager.

Capabilities:
    - create_overlay(spec) → OverlayRef
    - update_overlay(ref, position=..., style=...)
    - remove_overlay(ref)
    - is_attached(ref)
    - set_viewport(center, zoom, tilt)
    - on_overlay_click(ref, handler)
"""

import itertools
import logging
from dataclasses import asdict, replace
from typing import Callable, Dict, List, Optional, Protocol

from roadwatch.models.geometry import LatLng
from roadwatch.models.overlay import (
    MarkerOverlay,
    OverlayRef,
    OverlaySpec,
    OverlayStyle,
    PointOverlay,
    RoadOverlay,
    Viewport,
)


logger = logging.getLogger(__name__)


ClickHandler = Callable[[OverlayRef], None]


class MapSession(Protocol):
    """What the core needs from a map SDK."""

    def create_overlay(self, spec: OverlaySpec) -> OverlayRef:
        """Draw an overlay and return its handle."""
        ...

    def update_overlay(
        self,
        ref: OverlayRef,
        position: Optional[LatLng] = None,
        style: Optional[OverlayStyle] = None,
    ) -> bool:
        """Move or restyle an attached overlay. False if detached."""
        ...

    def remove_overlay(self, ref: OverlayRef) -> None:
        """Remove an overlay. Removing a detached overlay is a no-op."""
        ...

    def is_attached(self, ref: OverlayRef) -> bool:
        """Whether the overlay is still on the map."""
        ...

    def set_viewport(self, center: LatLng, zoom: int, tilt: float = 0.0) -> None:
        """Move the camera."""
        ...

    def on_overlay_click(self, ref: OverlayRef, handler: ClickHandler) -> None:
        """Register the click handler of an overlay."""
        ...


class InMemoryMapSession:
    """
    Map session that records state instead of rendering it.

    Used by the service (the overlay state is exported over HTTP and
    WebSocket) and by tests.

    Attributes:
        viewport: Current camera position
        created: Overlays created so far
        updated: Successful overlay updates so far
        removed: Overlays removed so far
    """

    def __init__(self, viewport: Optional[Viewport] = None) -> None:
        self.viewport = viewport
        self.created = 0
        self.updated = 0
        self.removed = 0
        self._handles = itertools.count(1)
        self._overlays: Dict[int, OverlaySpec] = {}
        self._handlers: Dict[int, ClickHandler] = {}

    def __len__(self) -> int:
        return len(self._overlays)

    def create_overlay(self, spec: OverlaySpec) -> OverlayRef:
        handle = next(self._handles)
        self._overlays[handle] = spec
        self.created += 1
        return OverlayRef(
            handle=handle,
            kind=spec.kind,
            entity_kind=spec.entity_kind,
            entity_id=spec.entity_id,
        )

    def update_overlay(
        self,
        ref: OverlayRef,
        position: Optional[LatLng] = None,
        style: Optional[OverlayStyle] = None,
    ) -> bool:
        spec = self._overlays.get(ref.handle)
        if spec is None:
            return False

        changes = {}
        if position is not None and not isinstance(spec, RoadOverlay):
            changes["position"] = position
        if style is not None:
            changes["style"] = style
        if changes:
            self._overlays[ref.handle] = replace(spec, **changes)
            self.updated += 1
        return True

    def remove_overlay(self, ref: OverlayRef) -> None:
        if self._overlays.pop(ref.handle, None) is not None:
            self.removed += 1
        self._handlers.pop(ref.handle, None)

    def is_attached(self, ref: OverlayRef) -> bool:
        return ref.handle in self._overlays

    def set_viewport(self, center: LatLng, zoom: int, tilt: float = 0.0) -> None:
        self.viewport = Viewport(center=center, zoom=zoom, tilt=tilt)
        logger.debug(f"Viewport set: center={center}, zoom={zoom}, tilt={tilt}")

    def on_overlay_click(self, ref: OverlayRef, handler: ClickHandler) -> None:
        if self.is_attached(ref):
            self._handlers[ref.handle] = handler

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def spec(self, ref: OverlayRef) -> Optional[OverlaySpec]:
        """Current spec of an attached overlay."""
        return self._overlays.get(ref.handle)

    def refs(self) -> List[OverlayRef]:
        """Handles of every attached overlay."""
        return [
            OverlayRef(handle, spec.kind, spec.entity_kind, spec.entity_id)
            for handle, spec in self._overlays.items()
        ]

    def click(self, ref: OverlayRef) -> bool:
        """
        Simulate a click on an overlay.

        Returns:
            True if a handler ran
        """
        handler = self._handlers.get(ref.handle)
        if handler is None:
            return False
        handler(ref)
        return True

    def export(self) -> dict:
        """JSON-serializable view of the whole map."""
        overlays = []
        for handle, spec in self._overlays.items():
            item = {
                "handle": handle,
                "kind": spec.kind.value,
                "entity_kind": spec.entity_kind.value,
                "entity_id": spec.entity_id,
                "style": asdict(spec.style),
            }
            if isinstance(spec, RoadOverlay):
                item["path"] = [p.model_dump() for p in spec.path]
            elif isinstance(spec, (PointOverlay, MarkerOverlay)):
                item["position"] = spec.position.model_dump()
            if isinstance(spec, MarkerOverlay) and spec.title:
                item["title"] = spec.title
            overlays.append(item)

        viewport = None
        if self.viewport is not None:
            viewport = {
                "center": self.viewport.center.model_dump(),
                "zoom": self.viewport.zoom,
                "tilt": self.viewport.tilt,
            }

        return {"viewport": viewport, "overlays": overlays}
