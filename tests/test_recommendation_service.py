"""
Recommendation Service Tests
============================

Stream to result, failure handling, fallback table, HTTP source.
"""

import asyncio
import json

import httpx
import pytest

from conftest import ScriptedStreamSource, sse
from roadwatch.datasource import HttpDataSource, MockDataSource
from roadwatch.datasource.mock import encode_sse_stream, mock_recommendation
from roadwatch.errors import TransientFetchFailure
from roadwatch.models import CongestionLevel, RecommendationDraft, RecommendationSource
from roadwatch.recommendation import RecommendationService
from roadwatch.recommendation.fallback import (
    FALLBACK_TABLE,
    FallbackKey,
    fallback_key,
    fallback_recommendation,
)


class TestFallbackTable:
    """Deterministic fallback lookup."""

    @pytest.mark.parametrize("key", list(FallbackKey))
    def test_every_key_is_complete(self, key):
        assert FALLBACK_TABLE[key].is_complete

    def test_levels_map_to_keys(self):
        assert fallback_key(CongestionLevel.HIGH) == FallbackKey.HIGH
        assert fallback_key(CongestionLevel.LOW) == FallbackKey.LOW
        assert fallback_key(None) == FallbackKey.UNKNOWN
        assert fallback_key("GRIDLOCK") == FallbackKey.UNKNOWN

    def test_high_suggests_detour(self):
        assert "ring expressway" in fallback_recommendation(CongestionLevel.HIGH).alternate_route


class TestRecommend:
    """recommend() over fake sources."""

    @pytest.mark.asyncio
    async def test_mock_stream_resolves_final(self, route_query):
        service = RecommendationService(MockDataSource(chunk_delay_seconds=0))
        partials = []

        result = await service.recommend(route_query, on_partial=partials.append)

        assert result.source == RecommendationSource.STREAM_FINAL
        assert result.draft == mock_recommendation(route_query)
        assert partials
        assert service.metrics.stream_final == 1

    @pytest.mark.asyncio
    async def test_unavailable_stream_uses_fallback(self, route_query):
        service = RecommendationService(ScriptedStreamSource(unavailable=True))
        partials = []

        result = await service.recommend(route_query, on_partial=partials.append)

        assert result.source == RecommendationSource.FALLBACK
        assert result.draft == FALLBACK_TABLE[FallbackKey.HIGH]
        assert partials == []
        assert service.metrics.unavailable == 1
        assert service.metrics.fallback == 1

    @pytest.mark.asyncio
    async def test_interrupted_after_partial(self, route_query):
        source = ScriptedStreamSource(
            chunks=[
                sse('{"alternateRoute": "Binhe West Road"}'),
                sse(" Also consider {the metro}"),
                sse(" and more"),
            ],
            interrupt_after=2,
        )
        service = RecommendationService(source)
        partials = []

        result = await service.recommend(route_query, on_partial=partials.append)

        assert source.reads == [0, 1]
        assert len(partials) == 1
        assert result.source == RecommendationSource.STREAM_PARTIAL
        assert result.draft.alternate_route == "Binhe West Road"
        assert service.metrics.interrupted == 1

    @pytest.mark.asyncio
    async def test_interrupted_before_anything_uses_fallback(self, route_query):
        source = ScriptedStreamSource(chunks=[sse("{")], interrupt_after=0)
        result = await RecommendationService(source).recommend(route_query)

        assert result.source == RecommendationSource.FALLBACK

    @pytest.mark.asyncio
    async def test_partials_arrive_before_later_chunks_are_read(self, route_query):
        source = ScriptedStreamSource(chunks=[
            sse('{"alternateRoute": "A"'),
            sse(', "safetyTip": "S"}'),
            sse(" trailing text"),
            "data: [DONE]\n",
        ])
        reads_at_partial = []

        async def on_partial(draft: RecommendationDraft) -> None:
            await asyncio.sleep(0)
            reads_at_partial.append(list(source.reads))

        result = await RecommendationService(source).recommend(route_query, on_partial)

        assert reads_at_partial == [[0, 1]]
        assert result.source == RecommendationSource.STREAM_FINAL
        assert result.draft.safety_tip == "S"

    @pytest.mark.asyncio
    async def test_stream_ends_with_result(self, route_query):
        service = RecommendationService(MockDataSource(chunk_delay_seconds=0))
        items = [item async for item in service.stream(route_query)]

        assert all(isinstance(i, RecommendationDraft) for i in items[:-1])
        assert items[-1].source == RecommendationSource.STREAM_FINAL


def _http_source(handler) -> HttpDataSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpDataSource(
        base_url="http://traffic.test/api/",
        completions_url="http://llm.test/v1/chat/completions",
        api_key="secret",
        client=client,
    )


class TestHttpDataSource:
    """HTTP backend against a mock transport."""

    @pytest.mark.asyncio
    async def test_streamed_completion(self, route_query):
        body = json.dumps(FALLBACK_TABLE[FallbackKey.LOW].to_wire())
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream; charset=utf-8"},
                content=encode_sse_stream(body),
            )

        source = _http_source(handler)
        result = await RecommendationService(source).recommend(route_query)
        await source.close()

        assert result.source == RecommendationSource.STREAM_FINAL
        assert result.draft == FALLBACK_TABLE[FallbackKey.LOW]
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["stream"] is True
        assert "Wuyi Square" in seen["body"]["messages"][0]["content"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="overloaded"),
        httpx.Response(302, headers={"location": "http://llm.test/login"}),
        httpx.Response(200, json={"error": "stream not supported"}),
        httpx.Response(200, text="data: {}\n\n"),
    ], ids=["server-error", "redirect", "json-body", "plain-text"])
    async def test_unusable_response_uses_fallback(self, route_query, response):
        source = _http_source(lambda request: response)
        service = RecommendationService(source)
        partials = []

        result = await service.recommend(route_query, on_partial=partials.append)
        await source.close()

        assert result.source == RecommendationSource.FALLBACK
        assert partials == []
        assert service.metrics.unavailable == 1

    @pytest.mark.asyncio
    async def test_connection_error_uses_fallback(self, route_query):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        source = _http_source(handler)
        result = await RecommendationService(source).recommend(route_query)
        await source.close()

        assert result.source == RecommendationSource.FALLBACK

    @pytest.mark.asyncio
    async def test_snapshot_fetch(self, sample_snapshot):
        roads = [r.model_dump(mode="json") for r in sample_snapshot.roads]
        accidents = [a.model_dump(mode="json") for a in sample_snapshot.accidents]

        def handler(request):
            if request.url.path == "/api/congestion":
                return httpx.Response(200, json={"roads": roads, "congestion_points": []})
            return httpx.Response(200, json={"accidents": accidents})

        source = _http_source(handler)
        congestion = await source.fetch_congestion_snapshot()
        fetched = await source.fetch_accident_snapshot()
        await source.close()

        assert congestion.roads == sample_snapshot.roads
        assert congestion.congestion_points == ()
        assert [a.id for a in fetched] == ["acc1", "acc2", "acc3"]

    @pytest.mark.asyncio
    async def test_failed_fetch_is_transient(self):
        source = _http_source(lambda request: httpx.Response(503))
        with pytest.raises(TransientFetchFailure):
            await source.fetch_congestion_snapshot()
        await source.close()

    @pytest.mark.asyncio
    async def test_invalid_payload_is_transient(self):
        source = _http_source(
            lambda request: httpx.Response(200, json={"roads": [{"id": "r"}]})
        )
        with pytest.raises(TransientFetchFailure):
            await source.fetch_congestion_snapshot()
        await source.close()
