"""
Refresh Scheduler
=================

Single-flight periodic driver that regenerates the Entity Store.

This module provides the RefreshScheduler class which:
    - Counts down once per second and fires a refresh at zero
    - Accepts manual refresh triggers
    - Polls the data source, then regenerates synchronously
    - Replaces the store snapshot atomically
    - Notifies subscribers (overlay reconciler, animation manager)

Design Rules:
    - At most one refresh IN_FLIGHT; overlapping triggers are dropped
    - Subscribers are notified BEFORE the phase returns to IDLE, so no
      second regeneration can start before the prior redraw was dispatched
    - A failed poll leaves the store untouched and retries next tick
    - A failed regeneration keeps the previous snapshot and is counted
    - Subscriber exceptions are logged and counted, never propagated
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Set, Tuple

from roadwatch.datasource.base import DataSource
from roadwatch.errors import TransientFetchFailure
from roadwatch.models.state import RefreshCycleState, RefreshPhase
from roadwatch.scheduler.regeneration import Regenerator
from roadwatch.store.entity_store import EntitySnapshot, EntityStore


logger = logging.getLogger(__name__)


Subscriber = Callable[[EntitySnapshot], None]


class RefreshMetrics:
    """Metrics for RefreshScheduler observability."""

    __slots__ = (
        "ticks_completed",
        "ticks_dropped",
        "fetch_failures",
        "regeneration_failures",
        "refresh_errors",
        "subscriber_errors",
        "entities_admitted",
    )

    def __init__(self) -> None:
        self.ticks_completed: int = 0
        self.ticks_dropped: int = 0
        self.fetch_failures: int = 0
        self.regeneration_failures: int = 0
        self.refresh_errors: int = 0
        self.subscriber_errors: int = 0
        self.entities_admitted: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "ticks_completed": self.ticks_completed,
            "ticks_dropped": self.ticks_dropped,
            "fetch_failures": self.fetch_failures,
            "regeneration_failures": self.regeneration_failures,
            "refresh_errors": self.refresh_errors,
            "subscriber_errors": self.subscriber_errors,
            "entities_admitted": self.entities_admitted,
        }


class RefreshScheduler:
    """
    Single-flight refresh driver.

    Attributes:
        store: Entity store this scheduler owns the writes of
        source: Data source polled on every refresh
        regenerator: Regeneration rules
        interval_seconds: Countdown length between timed refreshes
        countdown_step_seconds: Wall-clock length of one countdown step
        state: Current RefreshCycleState
        metrics: Operational metrics

    Example:
        scheduler = RefreshScheduler(store, MockDataSource(), Regenerator())
        scheduler.subscribe(reconciler.rebuild)

        await scheduler.refresh()       # initial load
        scheduler.start()               # timed refreshes every 30s

        # Later, on teardown
        await scheduler.stop()
    """

    def __init__(
        self,
        store: EntityStore,
        source: DataSource,
        regenerator: Regenerator,
        interval_seconds: int = 30,
        countdown_step_seconds: float = 1.0,
    ) -> None:
        """
        Initialize refresh scheduler.

        Args:
            store: Entity store to regenerate
            source: Data source to poll
            regenerator: Regeneration rules
            interval_seconds: Countdown length (must be >= 1)
            countdown_step_seconds: Duration of one countdown step
        """
        if interval_seconds < 1:
            raise ValueError("interval_seconds must be >= 1")

        self.store = store
        self.source = source
        self.regenerator = regenerator
        self.interval_seconds = interval_seconds
        self.countdown_step_seconds = countdown_step_seconds

        self.state = RefreshCycleState(countdown=interval_seconds)
        self.metrics = RefreshMetrics()

        self._subscribers: List[Subscriber] = []
        self._known_ids: Set[str] = set()

        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        self._countdown_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        """Whether the countdown loop is active."""
        return self._running

    # -------------------------------------------------------------------------
    # Subscribers
    # -------------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback invoked with each new snapshot.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, snapshot: EntitySnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                self.metrics.subscriber_errors += 1
                logger.error(f"Refresh subscriber {callback!r} failed: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh(self, manual: bool = False) -> bool:
        """
        Run one refresh unless another is already in flight.

        Args:
            manual: Whether this was triggered by a user (logging only)

        Returns:
            True if a refresh completed, False if it was dropped or the
            data-source poll failed.
        """
        if self.state.in_flight:
            self.metrics.ticks_dropped += 1
            logger.debug(
                f"Refresh dropped, another is in flight "
                f"(manual={manual}, dropped={self.metrics.ticks_dropped})"
            )
            return False

        self.state.phase = RefreshPhase.IN_FLIGHT
        try:
            try:
                base, seeding, new_keys = await self._poll_source()
            except TransientFetchFailure as e:
                self._record_failure(e)
                return False
            except Exception as e:
                logger.error(f"Unexpected data source error: {type(e).__name__}: {e}")
                self._record_failure(e)
                return False

            now = datetime.now(timezone.utc)
            try:
                if seeding:
                    snapshot = EntitySnapshot(
                        roads=base.roads,
                        congestion_points=base.congestion_points,
                        accidents=base.accidents,
                        vehicles=self.regenerator.spawn_vehicles(base.vehicles, base.roads),
                    )
                else:
                    snapshot = self.regenerator.regenerate(base, now)

                self.store.replace(snapshot)
            except Exception as e:
                self.metrics.regeneration_failures += 1
                self.state.countdown = self.interval_seconds
                logger.error(
                    f"Regeneration failed, keeping previous snapshot "
                    f"(failures={self.metrics.regeneration_failures}): {type(e).__name__}: {e}",
                    exc_info=True,
                )
                return False

            self._known_ids.update(new_keys)
            if new_keys and not seeding:
                self.metrics.entities_admitted += len(new_keys)
                logger.info(f"Admitted {len(new_keys)} new entities from source")

            self.state.tick_count += 1
            self.state.countdown = self.interval_seconds
            self.state.last_refreshed_at = now
            self.metrics.ticks_completed += 1

            logger.info(
                f"Refresh #{self.state.tick_count} complete "
                f"({'seed' if seeding else 'manual' if manual else 'timer'}): "
                f"{snapshot.counts()}"
            )

            self._notify(snapshot)
            return True
        finally:
            self.state.phase = RefreshPhase.IDLE

    def _record_failure(self, error: Exception) -> None:
        self.metrics.fetch_failures += 1
        self.state.countdown = self.interval_seconds
        logger.warning(
            f"Refresh failed, keeping previous snapshot "
            f"(failures={self.metrics.fetch_failures}): {error}"
        )

    async def _poll_source(self) -> Tuple[EntitySnapshot, bool, Set[str]]:
        """
        Fetch snapshots and build the base for regeneration.

        The first successful poll seeds the store. Afterwards only entities
        whose ids were never seen before are admitted, so evicted markers
        do not come back. Admitted ids become known only once the refresh
        has replaced the snapshot.

        Returns:
            Tuple of (base snapshot, whether this poll seeds the store,
            keys of newly admitted entities)
        """
        congestion = await self.source.fetch_congestion_snapshot()
        accidents = await self.source.fetch_accident_snapshot()

        current = self.store.snapshot()
        seeding = not self.store.is_seeded
        new_keys: Set[str] = set()

        base = EntitySnapshot(
            roads=self._admit("road", current.roads, congestion.roads, new_keys),
            congestion_points=self._admit(
                "point", current.congestion_points, congestion.congestion_points, new_keys
            ),
            accidents=self._admit("accident", current.accidents, accidents, new_keys),
            vehicles=current.vehicles,
        )
        return base, seeding, new_keys

    def _admit(
        self,
        kind: str,
        current: Sequence,
        fetched: Sequence,
        new_keys: Set[str],
    ) -> tuple:
        for item in current:
            self._known_ids.add(f"{kind}:{item.id}")

        admitted = []
        for item in fetched:
            key = f"{kind}:{item.id}"
            if key not in self._known_ids and key not in new_keys:
                new_keys.add(key)
                admitted.append(item)

        return tuple(current) + tuple(admitted)

    # -------------------------------------------------------------------------
    # Countdown loop
    # -------------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """
        Start the countdown loop as a background task.

        Returns:
            The countdown task
        """
        if self._countdown_task is not None and not self._countdown_task.done():
            return self._countdown_task

        self._countdown_task = asyncio.create_task(self.run(), name="refresh_countdown")
        return self._countdown_task

    async def run(self) -> None:
        """
        Count down and fire timed refreshes.

        Runs until stop() is called. Each refresh runs as its own task so
        that a slow poll never stalls the countdown; ticks that land while
        it is still in flight are dropped.
        """
        self._running = True
        self._stop_event.clear()

        logger.info(
            f"RefreshScheduler started: interval={self.interval_seconds}s, "
            f"step={self.countdown_step_seconds}s"
        )

        while self._running:
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.countdown_step_seconds,
                )
                # Stop event was set, exit
                break
            except asyncio.TimeoutError:
                pass

            self.state.countdown = max(0, self.state.countdown - 1)
            if self.state.countdown > 0:
                continue

            self.state.countdown = self.interval_seconds
            if self.state.in_flight:
                self.metrics.ticks_dropped += 1
                logger.debug("Timer tick dropped, refresh still in flight")
                continue

            self._refresh_task = asyncio.create_task(self.refresh(), name="refresh")
            self._refresh_task.add_done_callback(self._on_refresh_done)

        logger.info("RefreshScheduler stopped")

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        """Surface exceptions of timed refreshes, which nothing awaits."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.metrics.refresh_errors += 1
            logger.error(f"Timed refresh crashed: {type(error).__name__}: {error}", exc_info=error)

    async def stop(self) -> None:
        """
        Stop the countdown loop and cancel any in-flight refresh.

        After this returns no further refresh will start on its own.
        """
        self._running = False
        self._stop_event.set()

        if self._countdown_task is not None:
            try:
                await self._countdown_task
            except asyncio.CancelledError:
                pass
            self._countdown_task = None

        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
        self._refresh_task = None
