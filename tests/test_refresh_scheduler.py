"""
Refresh Scheduler Tests
=======================

Single-flight refreshes, countdown, failure retention, subscribers.
"""

import asyncio
import random

import pytest

from conftest import BlockingDataSource, FlakyDataSource
from roadwatch.datasource import MockDataSource
from roadwatch.models import AccidentMarker, RefreshPhase
from roadwatch.scheduler import RegenerationParams, RefreshScheduler, Regenerator
from roadwatch.store import EntityStore


class ReportingDataSource(MockDataSource):
    """Mock source that also returns incidents given as raw REST payloads."""

    def __init__(self) -> None:
        super().__init__(chunk_delay_seconds=0)
        self.reports = []

    async def fetch_accident_snapshot(self):
        markers = await super().fetch_accident_snapshot()
        return markers + [AccidentMarker.model_validate(r) for r in self.reports]


NAIVE_REPORT = {
    "id": "acc-rest",
    "position": {"lat": 37.86, "lng": 112.56},
    "severity": "MEDIUM",
    "created_at": "2024-05-01T08:00:00",
}


def _scheduler(source, interval=30, step=1.0, **params) -> RefreshScheduler:
    return RefreshScheduler(
        EntityStore(),
        source,
        Regenerator(RegenerationParams(**params), random.Random(5)),
        interval_seconds=interval,
        countdown_step_seconds=step,
    )


class TestRefresh:
    """One refresh at a time."""

    @pytest.mark.asyncio
    async def test_first_refresh_seeds_store(self):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0))

        assert await scheduler.refresh()

        snapshot = scheduler.store.snapshot()
        assert scheduler.store.is_seeded
        assert [r.id for r in snapshot.roads] == ["road1", "road2", "road3", "road4"]
        assert len(snapshot.congestion_points) == 4
        assert len(snapshot.accidents) == 3
        assert len(snapshot.vehicles) == 12

    @pytest.mark.asyncio
    async def test_seed_data_is_not_mutated(self):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0), road_mutation=1.0)
        await scheduler.refresh()

        levels = {r.id: r.level.value for r in scheduler.store.snapshot().roads}
        assert levels == {"road1": "HIGH", "road2": "MEDIUM", "road3": "LOW", "road4": "MEDIUM"}

    @pytest.mark.asyncio
    async def test_countdown_resets_and_tick_advances(self):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0), interval=30)
        scheduler.state.countdown = 7

        assert await scheduler.refresh()

        assert scheduler.state.countdown == 30
        assert scheduler.state.tick_count == 1
        assert scheduler.state.phase == RefreshPhase.IDLE
        assert scheduler.state.last_refreshed_at is not None

    @pytest.mark.asyncio
    async def test_overlapping_refresh_is_dropped(self):
        source = BlockingDataSource()
        scheduler = _scheduler(source)

        first = asyncio.create_task(scheduler.refresh())
        await source.entered.wait()
        assert scheduler.state.in_flight

        assert await scheduler.refresh(manual=True) is False
        assert scheduler.metrics.ticks_dropped == 1

        source.release.set()
        assert await first is True

        assert source.calls == 1
        assert scheduler.state.tick_count == 1
        assert scheduler.store.version == 1

    @pytest.mark.asyncio
    async def test_subscribers_notified_while_in_flight(self):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0))
        seen = []
        scheduler.subscribe(lambda snapshot: seen.append((scheduler.state.phase, snapshot)))

        await scheduler.refresh()

        assert len(seen) == 1
        phase, snapshot = seen[0]
        assert phase == RefreshPhase.IN_FLIGHT
        assert snapshot is scheduler.store.snapshot()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0))
        seen = []
        unsubscribe = scheduler.subscribe(seen.append)

        await scheduler.refresh()
        unsubscribe()
        await scheduler.refresh()

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_contained(self):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0))
        seen = []

        def broken(snapshot):
            raise RuntimeError("redraw failed")

        scheduler.subscribe(broken)
        scheduler.subscribe(seen.append)

        assert await scheduler.refresh()
        assert scheduler.metrics.subscriber_errors == 1
        assert len(seen) == 1
        assert scheduler.state.phase == RefreshPhase.IDLE


class TestFetchFailure:
    """Failed polls keep the previous snapshot."""

    @pytest.mark.asyncio
    async def test_snapshot_unchanged_on_failure(self):
        source = FlakyDataSource()
        scheduler = _scheduler(source, interval=30)
        await scheduler.refresh()

        before = scheduler.store.snapshot()
        version = scheduler.store.version
        scheduler.state.countdown = 3
        source.fail = True

        assert await scheduler.refresh() is False

        assert scheduler.store.snapshot() == before
        assert scheduler.store.version == version
        assert scheduler.state.tick_count == 1
        assert scheduler.state.countdown == 30
        assert scheduler.state.phase == RefreshPhase.IDLE
        assert scheduler.metrics.fetch_failures == 1

    @pytest.mark.asyncio
    async def test_next_tick_retries(self):
        source = FlakyDataSource()
        source.fail = True
        scheduler = _scheduler(source)

        assert await scheduler.refresh() is False
        assert not scheduler.store.is_seeded

        source.fail = False
        assert await scheduler.refresh() is True
        assert scheduler.store.is_seeded

    @pytest.mark.asyncio
    async def test_evicted_accidents_do_not_return(self):
        scheduler = _scheduler(
            MockDataSource(chunk_delay_seconds=0),
            accident_eviction=1.0,
            accident_synthesis=0.0,
        )
        await scheduler.refresh()
        for _ in range(3):
            await scheduler.refresh()

        assert scheduler.store.snapshot().accidents == ()


class TestRegenerationFailure:
    """Regeneration errors keep the previous snapshot."""

    @pytest.mark.asyncio
    async def test_naive_source_timestamps_survive_eviction(self):
        source = ReportingDataSource()
        source.reports.append(NAIVE_REPORT)
        scheduler = _scheduler(source, accident_eviction=0.0, accident_synthesis=1.0)

        assert await scheduler.refresh()
        assert await scheduler.refresh()
        assert len(scheduler.store.snapshot().accidents) == 5

        scheduler.regenerator.params.accident_synthesis = 0.0
        scheduler.regenerator.params.accident_eviction = 1.0
        assert await scheduler.refresh()

        ids = [a.id for a in scheduler.store.snapshot().accidents]
        assert "acc-rest" not in ids
        assert len(ids) == 4
        assert scheduler.metrics.regeneration_failures == 0

    @pytest.mark.asyncio
    async def test_snapshot_unchanged_on_regeneration_error(self, monkeypatch):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0), interval=30)
        await scheduler.refresh()

        before = scheduler.store.snapshot()
        version = scheduler.store.version
        scheduler.state.countdown = 3
        seen = []
        scheduler.subscribe(seen.append)

        def broken(snapshot, now=None):
            raise TypeError("can't compare offset-naive and offset-aware datetimes")

        monkeypatch.setattr(scheduler.regenerator, "regenerate", broken)

        assert await scheduler.refresh() is False

        assert scheduler.store.snapshot() == before
        assert scheduler.store.version == version
        assert scheduler.state.tick_count == 1
        assert scheduler.state.countdown == 30
        assert scheduler.state.phase == RefreshPhase.IDLE
        assert scheduler.metrics.regeneration_failures == 1
        assert seen == []

    @pytest.mark.asyncio
    async def test_entities_from_failed_refresh_are_admitted_later(self, monkeypatch):
        source = ReportingDataSource()
        scheduler = _scheduler(source, accident_eviction=0.0, accident_synthesis=0.0)
        await scheduler.refresh()

        source.reports.append(NAIVE_REPORT)
        regenerate = scheduler.regenerator.regenerate

        def broken(snapshot, now=None):
            raise RuntimeError("regeneration failed")

        monkeypatch.setattr(scheduler.regenerator, "regenerate", broken)
        assert await scheduler.refresh() is False

        monkeypatch.setattr(scheduler.regenerator, "regenerate", regenerate)
        assert await scheduler.refresh() is True

        ids = [a.id for a in scheduler.store.snapshot().accidents]
        assert "acc-rest" in ids
        assert scheduler.metrics.entities_admitted == 1

    @pytest.mark.asyncio
    async def test_timed_refresh_exception_is_logged(self, monkeypatch, caplog):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0), interval=1, step=0.01)

        async def crashing_refresh(manual=False):
            raise RuntimeError("refresh crashed")

        monkeypatch.setattr(scheduler, "refresh", crashing_refresh)

        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert scheduler.metrics.refresh_errors >= 1
        assert "Timed refresh crashed" in caplog.text


class TestCountdownLoop:
    """Timed refreshes."""

    @pytest.mark.asyncio
    async def test_timer_fires_refreshes(self):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0), interval=2, step=0.01)
        await scheduler.refresh()

        scheduler.start()
        await asyncio.sleep(0.2)
        await scheduler.stop()

        assert scheduler.state.tick_count >= 3
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_no_refresh_after_stop(self):
        scheduler = _scheduler(MockDataSource(chunk_delay_seconds=0), interval=1, step=0.01)
        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        ticks = scheduler.state.tick_count
        await asyncio.sleep(0.1)
        assert scheduler.state.tick_count == ticks

    @pytest.mark.asyncio
    async def test_timer_ticks_dropped_while_in_flight(self):
        source = BlockingDataSource()
        scheduler = _scheduler(source, interval=1, step=0.01)

        scheduler.start()
        await source.entered.wait()
        await asyncio.sleep(0.1)

        assert scheduler.metrics.ticks_dropped >= 1
        assert source.calls == 1

        source.release.set()
        await asyncio.sleep(0.02)
        await scheduler.stop()
        assert scheduler.state.tick_count >= 1

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            _scheduler(MockDataSource(), interval=0)
