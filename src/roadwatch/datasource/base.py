"""
Data Source Protocol
====================

Abstract capability set for everything the core reads from outside.

This interface is implemented by:
    - MockDataSource: deterministic seed data and a mock SSE stream
    - HttpDataSource: REST snapshots plus a streaming chat-completions call

Design Rules:
    - Snapshot fetches raise TransientFetchFailure on any failure
    - fetch_recommendation_stream returns an async iterator of raw bytes;
      it raises StreamUnavailable before yielding anything when the stream
      cannot be opened, and StreamInterrupted if it breaks afterwards
    - The core behaves identically whichever implementation is used
"""

from dataclasses import dataclass
from typing import AsyncIterator, List, Protocol, Tuple

from roadwatch.models.entities import AccidentMarker, CongestionPoint, RoadSegment
from roadwatch.models.recommendation import RouteQuery


@dataclass(frozen=True)
class CongestionSnapshot:
    """
    Road and hotspot state reported by a data source.

    Attributes:
        roads: Road segments
        congestion_points: Congestion hotspots
    """

    roads: Tuple[RoadSegment, ...] = ()
    congestion_points: Tuple[CongestionPoint, ...] = ()


class DataSource(Protocol):
    """Protocol for data source backends."""

    async def fetch_congestion_snapshot(self) -> CongestionSnapshot:
        """
        Fetch roads and congestion points.

        Raises:
            TransientFetchFailure: On any failure
        """
        ...

    async def fetch_accident_snapshot(self) -> List[AccidentMarker]:
        """
        Fetch current incidents.

        Raises:
            TransientFetchFailure: On any failure
        """
        ...

    def fetch_recommendation_stream(self, query: RouteQuery) -> AsyncIterator[bytes]:
        """
        Open a server-sent event stream for a recommendation.

        Args:
            query: Route being asked about

        Returns:
            Async iterator over raw response chunks
        """
        ...

    async def close(self) -> None:
        """Release any held connections."""
        ...
