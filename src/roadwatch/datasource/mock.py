"""
Mock Data Source
================

Deterministic seed data for Taiyuan and a mock recommendation stream.

The mock simulates:
    - 4 monitored roads, 4 congestion hotspots, 3 incidents
    - Optional network latency on every call
    - A chat-completions SSE stream whose token deltas spell out a JSON
      recommendation (wrapped in a code fence, as language models often
      do), cut into byte chunks that deliberately straddle line and
      UTF-8 boundaries
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, List

from roadwatch.datasource.base import CongestionSnapshot
from roadwatch.models.entities import (
    AccidentMarker,
    CongestionLevel,
    CongestionPoint,
    IncidentKind,
    RoadSegment,
    Severity,
)
from roadwatch.models.geometry import LatLng
from roadwatch.models.recommendation import RecommendationDraft, RouteQuery


logger = logging.getLogger(__name__)


SSE_DONE = "[DONE]"


def _path(*points) -> List[LatLng]:
    return [LatLng(lng=lng, lat=lat) for lng, lat in points]


def seed_roads() -> List[RoadSegment]:
    """Monitored roads in central Taiyuan."""
    return [
        RoadSegment(
            id="road1",
            name="Yingze Street",
            path=_path((112.559, 37.8571), (112.574, 37.8571), (112.589, 37.8574)),
            level=CongestionLevel.HIGH,
            traffic_volume=180.0,
        ),
        RoadSegment(
            id="road2",
            name="South Inner Ring Street",
            path=_path(
                (112.530, 37.8465),
                (112.559, 37.8466),
                (112.589, 37.8466),
                (112.613, 37.8465),
            ),
            level=CongestionLevel.MEDIUM,
            traffic_volume=130.0,
        ),
        RoadSegment(
            id="road3",
            name="Jiefang Road",
            path=_path((112.5599, 37.8586), (112.5613, 37.8697), (112.5613, 37.8802)),
            level=CongestionLevel.LOW,
            traffic_volume=80.0,
        ),
        RoadSegment(
            id="road4",
            name="Binhe West Road",
            path=_path(
                (112.5224, 37.8683),
                (112.5384, 37.8723),
                (112.5492, 37.8734),
                (112.5573, 37.8795),
            ),
            level=CongestionLevel.MEDIUM,
            traffic_volume=120.0,
        ),
    ]


def seed_congestion_points(now: datetime) -> List[CongestionPoint]:
    """Congestion hotspots (mostly intersections)."""
    return [
        CongestionPoint(
            id="cp1",
            name="Liuxiang Intersection",
            position=LatLng(lng=112.563, lat=37.873),
            level=CongestionLevel.HIGH,
            description="Severe north-south congestion, about 20 minutes to pass",
            updated_at=now,
        ),
        CongestionPoint(
            id="cp2",
            name="Wuyi Square",
            position=LatLng(lng=112.576, lat=37.857),
            level=CongestionLevel.MEDIUM,
            description="Moderate east-west congestion, heavy volume",
            updated_at=now,
        ),
        CongestionPoint(
            id="cp3",
            name="Taoyuan Intersection",
            position=LatLng(lng=112.547, lat=37.870),
            level=CongestionLevel.HIGH,
            description="Congested in all directions, lane closed for works",
            updated_at=now,
        ),
        CongestionPoint(
            id="cp4",
            name="Changfeng Street Intersection",
            position=LatLng(lng=112.532, lat=37.864),
            level=CongestionLevel.LOW,
            description="Flowing, occasional slowdowns",
            updated_at=now,
        ),
    ]


def seed_accidents(now: datetime) -> List[AccidentMarker]:
    """Incidents present at startup."""
    return [
        AccidentMarker(
            id="acc1",
            position=LatLng(lng=112.558, lat=37.858),
            severity=Severity.MEDIUM,
            created_at=now - timedelta(minutes=45),
            estimated_clear_at=now + timedelta(minutes=30),
            kind=IncidentKind.ACCIDENT,
            title="Rear-end collision",
            description="Two vehicles, side lane blocked, being handled",
        ),
        AccidentMarker(
            id="acc2",
            position=LatLng(lng=112.543, lat=37.883),
            severity=Severity.MEDIUM,
            created_at=now - timedelta(hours=8),
            estimated_clear_at=now + timedelta(days=2),
            kind=IncidentKind.CONSTRUCTION,
            title="Road maintenance",
            description="Inner lane occupied by maintenance works",
        ),
        AccidentMarker(
            id="acc3",
            position=LatLng(lng=112.567, lat=37.871),
            severity=Severity.LOW,
            created_at=now - timedelta(minutes=30),
            estimated_clear_at=now + timedelta(hours=4),
            kind=IncidentKind.CONTROL,
            title="Temporary traffic control",
            description="Event traffic control, detour advised",
        ),
    ]


def mock_recommendation(query: RouteQuery) -> RecommendationDraft:
    """Recommendation text the mock stream spells out for a query."""
    level = query.congestion_level
    if level == CongestionLevel.HIGH:
        return RecommendationDraft(
            alternate_route=f"Leave {query.origin} via Binhe West Road to skip the Yingze Street jam.",
            best_time_to_travel="Congestion should ease in about 45 minutes.",
            transportation_tip=f"Metro Line 2 reaches {query.destination} without road delays.",
            safety_tip="Keep your distance in stop-and-go traffic and avoid lane hopping.",
        )
    if level == CongestionLevel.MEDIUM:
        return RecommendationDraft(
            alternate_route="Switch to Xuefu Street to avoid the slowest stretch.",
            best_time_to_travel="Departing in 20 minutes avoids the current peak.",
            transportation_tip="Bike share plus a bus transfer is competitive right now.",
            safety_tip="Watch for temporary control points near Wuyi Square.",
        )
    return RecommendationDraft(
        alternate_route=f"The direct route to {query.destination} is the best choice.",
        best_time_to_travel="Roads are clear, leave whenever you like.",
        transportation_tip="Driving is fastest under current conditions.",
        safety_tip="Keep to the speed limit on open roads.",
    )


def encode_sse_stream(content: str, token_size: int = 6) -> bytes:
    """
    Render text as a chat-completions SSE stream.

    Args:
        content: Full assistant text to deliver
        token_size: Characters per delta

    Returns:
        Encoded stream including the [DONE] sentinel
    """
    lines = []
    for i in range(0, len(content), token_size):
        event = {"choices": [{"index": 0, "delta": {"content": content[i:i + token_size]}}]}
        lines.append(f"data: {json.dumps(event, ensure_ascii=False)}\n\n")
    lines.append(f"data: {SSE_DONE}\n\n")
    return "".join(lines).encode("utf-8")


class MockDataSource:
    """
    Deterministic data source for development and testing.

    Attributes:
        latency_seconds: Simulated latency applied to every fetch
        chunk_size: Bytes per recommendation stream chunk
        chunk_delay_seconds: Pause between stream chunks
        token_size: Characters per streamed delta
    """

    def __init__(
        self,
        latency_seconds: float = 0.0,
        chunk_size: int = 48,
        chunk_delay_seconds: float = 0.05,
        token_size: int = 6,
    ) -> None:
        """
        Initialize mock data source.

        Args:
            latency_seconds: Simulated latency per fetch
            chunk_size: Bytes per stream chunk
            chunk_delay_seconds: Delay between stream chunks
            token_size: Characters per delta event
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        self.latency_seconds = latency_seconds
        self.chunk_size = chunk_size
        self.chunk_delay_seconds = chunk_delay_seconds
        self.token_size = token_size
        self._started_at = datetime.now(timezone.utc)

        logger.info(
            f"MockDataSource initialized: latency={latency_seconds}s, "
            f"chunk_size={chunk_size}B, chunk_delay={chunk_delay_seconds}s"
        )

    async def _simulate_latency(self) -> None:
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)

    async def fetch_congestion_snapshot(self) -> CongestionSnapshot:
        await self._simulate_latency()
        return CongestionSnapshot(
            roads=tuple(seed_roads()),
            congestion_points=tuple(seed_congestion_points(self._started_at)),
        )

    async def fetch_accident_snapshot(self) -> List[AccidentMarker]:
        await self._simulate_latency()
        return seed_accidents(self._started_at)

    async def fetch_recommendation_stream(self, query: RouteQuery) -> AsyncIterator[bytes]:
        """
        Stream a recommendation for the query as raw SSE bytes.

        Args:
            query: Route being asked about

        Yields:
            Byte chunks of the encoded stream
        """
        await self._simulate_latency()

        body = json.dumps(mock_recommendation(query).to_wire(), ensure_ascii=False, indent=2)
        payload = encode_sse_stream(f"```json\n{body}\n```", self.token_size)

        for i in range(0, len(payload), self.chunk_size):
            yield payload[i:i + self.chunk_size]
            if self.chunk_delay_seconds > 0:
                await asyncio.sleep(self.chunk_delay_seconds)

    async def close(self) -> None:
        return None
