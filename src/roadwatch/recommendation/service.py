"""
Recommendation Service
======================

Drives one recommendation request from the data-source stream through
the decoder to a final result.

Failure Handling:
    StreamUnavailable   → fallback table immediately, no partial decode
    StreamInterrupted   → stop reading, resolve with what was received
    stream exhausted    → decoder resolution (final / partial / fallback)

Every chunk read is an await, so partial drafts reach callers one at a
time while the stream is still open.
"""

import inspect
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from roadwatch.datasource.base import DataSource
from roadwatch.errors import StreamInterrupted, StreamUnavailable
from roadwatch.models.recommendation import (
    RecommendationDraft,
    RecommendationResult,
    RecommendationSource,
    RouteQuery,
)
from roadwatch.recommendation.decoder import StreamingRecommendationDecoder
from roadwatch.recommendation.fallback import fallback_recommendation


logger = logging.getLogger(__name__)


PartialCallback = Callable[[RecommendationDraft], Union[None, Awaitable[None]]]


class RecommendationMetrics:
    """Outcome counters across requests."""

    __slots__ = (
        "requests",
        "stream_final",
        "stream_partial",
        "fallback",
        "unavailable",
        "interrupted",
    )

    def __init__(self) -> None:
        self.requests: int = 0
        self.stream_final: int = 0
        self.stream_partial: int = 0
        self.fallback: int = 0
        self.unavailable: int = 0
        self.interrupted: int = 0

    def record(self, result: RecommendationResult) -> None:
        if result.source == RecommendationSource.STREAM_FINAL:
            self.stream_final += 1
        elif result.source == RecommendationSource.STREAM_PARTIAL:
            self.stream_partial += 1
        else:
            self.fallback += 1

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class RecommendationService:
    """
    Recommendation requests over a DataSource.

    Example:
        service = RecommendationService(MockDataSource())

        result = await service.recommend(query, on_partial=print)

        async for item in service.stream(query):
            ...  # RecommendationDraft partials, then a RecommendationResult
    """

    def __init__(self, source: DataSource) -> None:
        self.source = source
        self.metrics = RecommendationMetrics()

    async def recommend(
        self,
        query: RouteQuery,
        on_partial: Optional[PartialCallback] = None,
    ) -> RecommendationResult:
        """
        Resolve a query to a final recommendation.

        Args:
            query: Route being asked about
            on_partial: Called (or awaited) with each partial draft before
                the next chunk is read

        Returns:
            Final RecommendationResult
        """
        result: Optional[RecommendationResult] = None
        async for item in self.stream(query):
            if isinstance(item, RecommendationResult):
                result = item
            elif on_partial is not None:
                outcome = on_partial(item)
                if inspect.isawaitable(outcome):
                    await outcome
        return result

    async def stream(
        self,
        query: RouteQuery,
    ) -> AsyncIterator[Union[RecommendationDraft, RecommendationResult]]:
        """
        Yield each partial draft as it decodes, then the final result.

        The last item is always a RecommendationResult.
        """
        self.metrics.requests += 1
        decoder = StreamingRecommendationDecoder()
        chunks = None

        logger.info(f"Recommendation requested: {query.origin} → {query.destination}")

        try:
            chunks = self.source.fetch_recommendation_stream(query)
            async for chunk in chunks:
                for draft in decoder.feed(chunk):
                    yield draft
        except StreamUnavailable as e:
            self.metrics.unavailable += 1
            logger.warning(f"Recommendation stream unavailable, using fallback: {e}")
            result = RecommendationResult(
                draft=fallback_recommendation(query.congestion_level),
                source=RecommendationSource.FALLBACK,
            )
            self.metrics.record(result)
            yield result
            return
        except StreamInterrupted as e:
            self.metrics.interrupted += 1
            logger.warning(f"Recommendation stream interrupted: {e}")
        except Exception as e:
            self.metrics.interrupted += 1
            logger.error(f"Recommendation stream failed: {type(e).__name__}: {e}")
        finally:
            if chunks is not None and hasattr(chunks, "aclose"):
                await chunks.aclose()

        result = decoder.finish(query.congestion_level)
        self.metrics.record(result)

        logger.info(
            f"Recommendation resolved: source={result.source.value}, "
            f"decoder={decoder.metrics.to_dict()}"
        )
        yield result
