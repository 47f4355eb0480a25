"""
Animation Module
================

Per-entity animation on top of the overlay layer.

    - timers.py: SelfReschedulingTimer state machine and TimerGroup
    - loops.py: Vehicle, flash and pulse loops; live vehicle positions
"""

from roadwatch.animation.timers import SelfReschedulingTimer, TimerGroup, TimerState
from roadwatch.animation.loops import AnimationLoopManager, AnimationParams, VehicleMotion

__all__ = [
    "SelfReschedulingTimer",
    "TimerGroup",
    "TimerState",
    "AnimationLoopManager",
    "AnimationParams",
    "VehicleMotion",
]
