"""
Scheduler Module
================

Periodic regeneration of the Entity Store.

    - regeneration.py: Stochastic rules deriving the next snapshot
    - refresh.py: Single-flight countdown driver and subscriber fan-out

Key Design Decisions:
    - Regeneration is synchronous and pure; only the data-source poll awaits
    - Overlapping triggers are dropped, never queued
    - Probability constants are configuration, not code
"""

from roadwatch.scheduler.regeneration import RegenerationParams, Regenerator
from roadwatch.scheduler.refresh import RefreshMetrics, RefreshScheduler

__all__ = [
    "RegenerationParams",
    "Regenerator",
    "RefreshMetrics",
    "RefreshScheduler",
]
