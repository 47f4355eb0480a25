"""
Refresh Cycle State
===================

State of the single-flight refresh driver.

Core Concepts:
    - RefreshPhase: IDLE or IN_FLIGHT
    - RefreshCycleState: phase, countdown to the next tick, tick counter

Transitions:
    IDLE → IN_FLIGHT:  a timer tick or manual trigger starts a refresh
    IN_FLIGHT → IDLE:  snapshot replaced and subscribers notified,
                       or the data-source poll failed
    IN_FLIGHT + tick:  dropped (single-flight, never queued)

Invariants:
    - After every completed refresh countdown == interval and
      tick_count has grown by exactly one.
    - A failed refresh resets the countdown but does not count as a tick.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RefreshPhase(str, Enum):
    """
    Phase of the refresh driver.

    Attributes:
        IDLE: No refresh running; ticks are accepted
        IN_FLIGHT: A refresh is running; ticks are dropped
    """

    IDLE = "IDLE"
    IN_FLIGHT = "IN_FLIGHT"


class RefreshCycleState(BaseModel):
    """
    Mutable state of the refresh driver.

    Attributes:
        phase: Current phase
        countdown: Seconds until the next timed tick
        tick_count: Number of completed refreshes
        last_refreshed_at: Wall-clock time of the last completed refresh
    """

    phase: RefreshPhase = Field(
        default=RefreshPhase.IDLE,
        description="Current refresh phase",
    )

    countdown: int = Field(
        default=30,
        ge=0,
        description="Seconds until the next timed tick",
    )

    tick_count: int = Field(
        default=0,
        ge=0,
        description="Completed refreshes (monotonically increasing)",
    )

    last_refreshed_at: Optional[datetime] = Field(
        default=None,
        description="When the last refresh completed",
    )

    @property
    def in_flight(self) -> bool:
        return self.phase == RefreshPhase.IN_FLIGHT
