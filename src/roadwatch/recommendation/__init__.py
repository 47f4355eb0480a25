"""
Recommendation Module
=====================

Route recommendations decoded incrementally from a token stream.

Components:
    - StreamingRecommendationDecoder: SSE lines → best-effort draft
    - fallback_recommendation: Deterministic table per congestion level
    - RecommendationService: Stream orchestration and error recovery

Design Philosophy:
    A request always resolves. The worst case is the fallback table,
    never an exception and never an empty answer.
"""

from roadwatch.recommendation.decoder import DecoderMetrics, StreamingRecommendationDecoder
from roadwatch.recommendation.fallback import (
    FALLBACK_TABLE,
    FallbackKey,
    fallback_key,
    fallback_recommendation,
)
from roadwatch.recommendation.service import RecommendationMetrics, RecommendationService

__all__ = [
    "DecoderMetrics",
    "StreamingRecommendationDecoder",
    "FALLBACK_TABLE",
    "FallbackKey",
    "fallback_key",
    "fallback_recommendation",
    "RecommendationMetrics",
    "RecommendationService",
]
