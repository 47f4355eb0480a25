"""
Streaming Recommendation Decoder
================================

Incrementally extracts a RecommendationDraft from a chat-completions
SSE stream.

Pipeline (per chunk):
    1. Decode bytes with an incremental UTF-8 decoder (multi-byte
       characters may straddle chunks)
    2. Split on newlines; the trailing incomplete line stays buffered
    3. `data:` lines are payloads; `data: [DONE]` marks the end
    4. Payload JSON yields choices[0].delta.content, appended to the
       full-response text
    5. When a new closing brace arrives, the span from the first `{` to
       the last `}` is parsed; success merges into the running draft

Resolution (finish):
    - final span parses        → STREAM_FINAL (merged over the draft)
    - some field was populated → STREAM_PARTIAL
    - nothing usable           → FALLBACK table

Design Rules:
    - A malformed payload or an unbalanced span is never an error; it is
      counted and decoding continues
    - Brace positions are tracked as deltas arrive, no rescans
    - Merging never overwrites a populated field with an empty one
"""

import codecs
import json
import logging
from typing import List, Optional, Union

from roadwatch.models.entities import CongestionLevel
from roadwatch.models.recommendation import (
    RecommendationDraft,
    RecommendationResult,
    RecommendationSource,
)
from roadwatch.recommendation.fallback import fallback_recommendation


logger = logging.getLogger(__name__)


DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class DecoderMetrics:
    """Counters for one decode."""

    __slots__ = (
        "chunks",
        "lines",
        "deltas",
        "malformed_fragments",
        "parse_attempts",
        "partial_parses",
    )

    def __init__(self) -> None:
        self.chunks: int = 0
        self.lines: int = 0
        self.deltas: int = 0
        self.malformed_fragments: int = 0
        self.parse_attempts: int = 0
        self.partial_parses: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class StreamingRecommendationDecoder:
    """
    Stateful decoder for one recommendation stream.

    Attributes:
        draft: Best-effort draft accumulated so far
        text: Concatenation of every delta received
        done: Whether the [DONE] sentinel was seen
        metrics: Decode counters

    Example:
        decoder = StreamingRecommendationDecoder()
        async for chunk in stream:
            for partial in decoder.feed(chunk):
                show(partial)
        result = decoder.finish(query.congestion_level)
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._line_buffer = ""
        self._text = ""
        self._first_open = -1
        self._last_close = -1
        self._draft = RecommendationDraft()
        self._done = False
        self._finished = False
        self.metrics = DecoderMetrics()

    @property
    def draft(self) -> RecommendationDraft:
        return self._draft

    @property
    def text(self) -> str:
        return self._text

    @property
    def done(self) -> bool:
        return self._done

    # -------------------------------------------------------------------------
    # Feeding
    # -------------------------------------------------------------------------

    def feed(self, chunk: Union[bytes, str]) -> List[RecommendationDraft]:
        """
        Consume one chunk of the stream.

        Args:
            chunk: Raw bytes or already-decoded text

        Returns:
            Draft after each successful partial parse triggered by this
            chunk, in order (empty if none)
        """
        if self._finished:
            raise RuntimeError("Decoder already finished")

        self.metrics.chunks += 1
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)

        self._line_buffer += chunk
        *lines, self._line_buffer = self._line_buffer.split("\n")

        updates: List[RecommendationDraft] = []
        for line in lines:
            draft = self._handle_line(line)
            if draft is not None:
                updates.append(draft)
        return updates

    def _handle_line(self, line: str) -> Optional[RecommendationDraft]:
        self.metrics.lines += 1
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]
        if not payload.strip():
            return None
        if payload.strip() == DONE_SENTINEL:
            self._done = True
            return None

        content = self._extract_delta(payload)
        if not content:
            return None
        return self._append(content)

    def _extract_delta(self, payload: str) -> Optional[str]:
        try:
            event = json.loads(payload)
            delta = event["choices"][0].get("delta") or {}
        except (ValueError, KeyError, IndexError, TypeError, AttributeError):
            self.metrics.malformed_fragments += 1
            logger.debug(f"Skipping malformed stream payload: {payload[:80]!r}")
            return None

        content = delta.get("content") if isinstance(delta, dict) else None
        if not isinstance(content, str):
            return None
        self.metrics.deltas += 1
        return content

    def _append(self, content: str) -> Optional[RecommendationDraft]:
        offset = len(self._text)
        self._text += content

        if self._first_open < 0:
            first = content.find("{")
            if first >= 0:
                self._first_open = offset + first

        last = content.rfind("}")
        if last < 0:
            return None
        self._last_close = offset + last

        parsed = self._parse_span()
        if parsed is None:
            return None

        self.metrics.partial_parses += 1
        self._draft = self._draft.merged(parsed)
        return self._draft

    def _parse_span(self) -> Optional[RecommendationDraft]:
        if self._first_open < 0 or self._last_close < self._first_open:
            return None

        self.metrics.parse_attempts += 1
        span = self._text[self._first_open:self._last_close + 1]
        try:
            data = json.loads(span)
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        return RecommendationDraft.from_mapping(data)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def finish(self, level: Optional[CongestionLevel] = None) -> RecommendationResult:
        """
        Resolve the stream into a final result.

        Flushes any unterminated last line first.

        Args:
            level: Congestion level used to pick the fallback

        Returns:
            The final RecommendationResult (never None)
        """
        if not self._finished:
            self._line_buffer += self._utf8.decode(b"", final=True)
            if self._line_buffer:
                line, self._line_buffer = self._line_buffer, ""
                self._handle_line(line)
            self._finished = True

        final = self._parse_span()
        if final is not None:
            return RecommendationResult(
                draft=self._draft.merged(final),
                source=RecommendationSource.STREAM_FINAL,
            )

        if not self._draft.is_empty:
            logger.info("Stream ended without a complete object, using partial draft")
            return RecommendationResult(
                draft=self._draft,
                source=RecommendationSource.STREAM_PARTIAL,
            )

        logger.warning("Stream produced nothing usable, using fallback recommendation")
        return RecommendationResult(
            draft=fallback_recommendation(level),
            source=RecommendationSource.FALLBACK,
        )
