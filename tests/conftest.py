"""
Test Configuration
==================

Pytest fixtures and fake data sources for Roadwatch.
"""

import asyncio
import json
import random
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional, Sequence

import pytest

from roadwatch.datasource.base import CongestionSnapshot
from roadwatch.datasource.mock import (
    MockDataSource,
    seed_accidents,
    seed_congestion_points,
    seed_roads,
)
from roadwatch.models.entities import CongestionLevel
from roadwatch.errors import StreamInterrupted, StreamUnavailable, TransientFetchFailure
from roadwatch.models.recommendation import RouteQuery
from roadwatch.scheduler.regeneration import Regenerator
from roadwatch.store.entity_store import EntitySnapshot, EntityStore


FIXED_NOW = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


# =============================================================================
# Fake data sources
# =============================================================================

class FlakyDataSource(MockDataSource):
    """Mock source whose snapshot fetches fail while `fail` is set."""

    def __init__(self) -> None:
        super().__init__(chunk_delay_seconds=0.0)
        self.fail = False
        self.calls = 0

    async def fetch_congestion_snapshot(self) -> CongestionSnapshot:
        self.calls += 1
        if self.fail:
            raise TransientFetchFailure("congestion service down")
        return await super().fetch_congestion_snapshot()


class BlockingDataSource(MockDataSource):
    """
    Mock source whose congestion fetch waits for `release`.

    Create inside a running event loop.
    """

    def __init__(self) -> None:
        super().__init__(chunk_delay_seconds=0.0)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def fetch_congestion_snapshot(self) -> CongestionSnapshot:
        self.calls += 1
        self.entered.set()
        await self.release.wait()
        return await super().fetch_congestion_snapshot()


class ScriptedStreamSource(MockDataSource):
    """
    Source whose recommendation stream replays fixed chunks.

    Args:
        chunks: Chunks to yield in order
        unavailable: Raise StreamUnavailable before the first chunk
        interrupt_after: Raise StreamInterrupted after this many chunks
    """

    def __init__(
        self,
        chunks: Sequence = (),
        unavailable: bool = False,
        interrupt_after: Optional[int] = None,
    ) -> None:
        super().__init__(chunk_delay_seconds=0.0)
        self.chunks = list(chunks)
        self.unavailable = unavailable
        self.interrupt_after = interrupt_after
        self.reads: List[int] = []

    async def fetch_recommendation_stream(self, query: RouteQuery) -> AsyncIterator[bytes]:
        if self.unavailable:
            raise StreamUnavailable("connection refused")
        for i, chunk in enumerate(self.chunks):
            if self.interrupt_after is not None and i >= self.interrupt_after:
                raise StreamInterrupted("connection reset")
            self.reads.append(i)
            yield chunk
            await asyncio.sleep(0)


def sse(content: str) -> str:
    """One chat-completions SSE line carrying a content delta."""
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def rng():
    """Seeded random source."""
    return random.Random(1234)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def sample_snapshot(rng, now):
    """Taiyuan seed data with vehicles spawned."""
    roads = tuple(seed_roads())
    return EntitySnapshot(
        roads=roads,
        congestion_points=tuple(seed_congestion_points(now)),
        accidents=tuple(seed_accidents(now)),
        vehicles=Regenerator(rng=rng).spawn_vehicles((), roads),
    )


@pytest.fixture
def seeded_store(sample_snapshot):
    """Store already holding the sample snapshot."""
    store = EntityStore()
    store.replace(sample_snapshot)
    return store


@pytest.fixture
def route_query():
    return RouteQuery(
        origin="Taiyuan Railway Station",
        destination="Wuyi Square",
        distance="6.2 km",
        duration="25 min",
        congestion_level=CongestionLevel.HIGH,
        description="Heavy traffic on Yingze Street",
    )
