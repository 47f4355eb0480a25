"""
Self-Rescheduling Timers
========================

Explicit timer state machine over `loop.call_later`.

States:
    IDLE       created, or currently running its step
    SCHEDULED  a call_later handle is pending
    CANCELLED  terminal; no callback ever fires again

Transitions:
    IDLE → SCHEDULED     start() / step returned a delay
    SCHEDULED → IDLE     handle fired
    * → CANCELLED        dispose(), step returned None, step raised,
                         or is_attached() reported False

Each firing checks is_attached() before running the step and again
before rescheduling. A detached timer cancels itself; nothing outside
has to remember to stop it.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional


logger = logging.getLogger(__name__)


StepFn = Callable[[], Optional[float]]
AttachedFn = Callable[[], bool]


class TimerState(str, Enum):
    IDLE = "IDLE"
    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"


class SelfReschedulingTimer:
    """
    Timer that runs a step and reschedules itself after the delay the
    step returns.

    Attributes:
        name: Label used in logs
        fired: Number of times the step ran

    Example:
        timer = SelfReschedulingTimer(step, is_attached=lambda: ref_alive)
        timer.start()
        ...
        timer.dispose()
    """

    def __init__(
        self,
        step: StepFn,
        is_attached: Optional[AttachedFn] = None,
        name: str = "timer",
    ) -> None:
        """
        Initialize timer.

        Args:
            step: Called on each firing; returns the next delay in
                seconds, or None to stop
            is_attached: Liveness check consulted before each step and
                each reschedule
            name: Label for logs
        """
        self.name = name
        self.fired = 0
        self._step = step
        self._is_attached = is_attached or (lambda: True)
        self._state = TimerState.IDLE
        self._handle: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._state == TimerState.CANCELLED

    def start(self, delay: float = 0.0) -> None:
        """
        Schedule the first firing.

        Must be called from inside a running event loop. Starting a
        scheduled or cancelled timer does nothing.
        """
        if self._state != TimerState.IDLE:
            return
        self._loop = asyncio.get_running_loop()
        self._schedule(delay)

    def _schedule(self, delay: float) -> None:
        self._handle = self._loop.call_later(max(0.0, delay), self._fire)
        self._state = TimerState.SCHEDULED

    def _fire(self) -> None:
        self._handle = None
        if self._state == TimerState.CANCELLED:
            return
        self._state = TimerState.IDLE

        if not self._is_attached():
            logger.debug(f"Timer {self.name} detached, cancelling")
            self.dispose()
            return

        try:
            delay = self._step()
        except Exception as e:
            logger.error(f"Timer {self.name} step failed, cancelling: {e}", exc_info=True)
            self.dispose()
            return
        self.fired += 1

        if delay is None or self._state == TimerState.CANCELLED:
            self.dispose()
            return

        if not self._is_attached():
            logger.debug(f"Timer {self.name} detached after step, cancelling")
            self.dispose()
            return

        self._schedule(delay)

    def dispose(self) -> None:
        """Cancel the pending firing; the timer never fires again."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._state = TimerState.CANCELLED


class TimerGroup:
    """
    Keyed collection of timers with one dispose for the whole group.

    Example:
        flashes = TimerGroup("flash")
        flashes.add("acc1", SelfReschedulingTimer(step))
        flashes.discard("acc1")
        flashes.dispose()
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._timers: Dict[str, SelfReschedulingTimer] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._timers

    def __len__(self) -> int:
        return len(self._timers)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._timers))

    def get(self, key: str) -> Optional[SelfReschedulingTimer]:
        return self._timers.get(key)

    def add(self, key: str, timer: SelfReschedulingTimer, delay: float = 0.0) -> None:
        """Register and start a timer, replacing any timer under the same key."""
        self.discard(key)
        self._timers[key] = timer
        timer.start(delay)

    def discard(self, key: str) -> None:
        """Dispose and forget one timer (no-op for unknown keys)."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.dispose()

    def prune(self) -> List[str]:
        """
        Forget timers that cancelled themselves.

        Returns:
            Keys that were removed
        """
        dead = [key for key, timer in self._timers.items() if timer.cancelled]
        for key in dead:
            del self._timers[key]
        return dead

    def dispose(self) -> None:
        """Dispose every timer in the group."""
        for timer in self._timers.values():
            timer.dispose()
        if self._timers:
            logger.debug(f"Disposed {len(self._timers)} {self.name} timers")
        self._timers.clear()
