"""
Overlay Module
==============

Everything that touches the map.

    - session.py: MapSession capability protocol, InMemoryMapSession
    - reconciler.py: Snapshot → overlays, selection details
    - views.py: Viewport presets and the view rotator
"""

from roadwatch.overlay.session import ClickHandler, InMemoryMapSession, MapSession
from roadwatch.overlay.reconciler import EntityDetail, OverlayReconciler, PositionResolver
from roadwatch.overlay.views import (
    PRESET_NAMES,
    VIEW_PRESETS,
    ViewRotator,
    apply_preset,
    resolve_preset,
)

__all__ = [
    "ClickHandler",
    "InMemoryMapSession",
    "MapSession",
    "EntityDetail",
    "OverlayReconciler",
    "PositionResolver",
    "PRESET_NAMES",
    "VIEW_PRESETS",
    "ViewRotator",
    "apply_preset",
    "resolve_preset",
]
