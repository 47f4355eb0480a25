"""
Roadwatch
=========

Live traffic overlay engine with streamed route recommendations.

This package keeps a snapshot of city traffic (roads, congestion hotspots,
incidents, vehicles), regenerates it on a single-flight timer, draws it
onto a map session with per-entity animation, and decodes route advice
from a token stream into a best-effort structured result.

Components:
    - store: Entity snapshot and its single owner
    - scheduler: Regeneration rules and the refresh countdown
    - overlay: Map session, overlay reconciler, viewport presets
    - animation: Self-rescheduling timers and per-entity loops
    - datasource: Mock and HTTP backends
    - recommendation: Streaming decoder, fallback table, service

Example:
    from roadwatch.config import settings

    # The service is started via the FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "Roadwatch Project"

__all__ = [
    "__version__",
]
