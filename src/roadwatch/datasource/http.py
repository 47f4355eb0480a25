"""
HTTP Data Source
================

Production data source backed by a REST traffic service and an
OpenAI-compatible chat-completions endpoint.

This source:
    - GETs {base_url}/congestion and {base_url}/accidents and validates
      them against the entity models
    - POSTs a streaming chat-completions request whose prompt asks for the
      four recommendation fields as a bare JSON object
    - Maps every transport problem onto the core error taxonomy

Design Rules:
    - Never let an httpx exception escape; translate it
    - Fail before yielding (StreamUnavailable) when the stream cannot start
    - Log every failure with its cause
"""

import logging
from typing import AsyncIterator, List, Optional

import httpx
from pydantic import ValidationError

from roadwatch.datasource.base import CongestionSnapshot
from roadwatch.errors import StreamInterrupted, StreamUnavailable, TransientFetchFailure
from roadwatch.models.entities import AccidentMarker, CongestionPoint, RoadSegment
from roadwatch.models.recommendation import RouteQuery


logger = logging.getLogger(__name__)


PROMPT_TEMPLATE = """\
You are a traffic assistant. Give travel advice for this route:
- Origin: {origin}
- Destination: {destination}
- Distance: {distance}
- Estimated time: {duration}
- Congestion level: {level}
- Conditions: {description}

Give advice on the following, each under 50 words:
1. Alternative route
2. Best time to travel
3. Mode of transport
4. Safety

Reply with JSON only, no other text, in exactly this format:
{{
  "alternateRoute": "alternative route advice",
  "bestTimeToTravel": "best time to travel",
  "transportationTip": "mode of transport advice",
  "safetyTip": "safety advice"
}}
"""


def build_prompt(query: RouteQuery) -> str:
    """Render the recommendation prompt for a query."""
    return PROMPT_TEMPLATE.format(
        origin=query.origin,
        destination=query.destination,
        distance=query.distance or "unknown",
        duration=query.duration or "unknown",
        level=query.congestion_level.value if query.congestion_level else "unknown",
        description=query.description or "no details",
    )


class HttpDataSource:
    """
    Data source that talks to real services over HTTP.

    Attributes:
        base_url: Root URL of the traffic REST service
        completions_url: Chat-completions endpoint for recommendations
        model: Model name sent with each completion request
    """

    def __init__(
        self,
        base_url: str,
        completions_url: str,
        api_key: Optional[str] = None,
        model: str = "deepseek-chat",
        temperature: float = 0.7,
        max_tokens: int = 500,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize HTTP data source.

        Args:
            base_url: Root URL of the traffic REST service
            completions_url: Chat-completions endpoint
            api_key: Bearer token for the completions endpoint
            model: Model name
            temperature: Sampling temperature
            max_tokens: Completion length cap
            timeout_seconds: Per-request timeout
            client: Pre-built client (tests inject a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.completions_url = completions_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

        logger.info(
            f"HttpDataSource initialized: base_url={self.base_url}, "
            f"completions_url={completions_url}, model={model}"
        )

    async def _get_json(self, path: str):
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Fetch failed: GET {url}: {e}")
            raise TransientFetchFailure(f"GET {url} failed: {e}") from e

    async def fetch_congestion_snapshot(self) -> CongestionSnapshot:
        data = await self._get_json("/congestion")
        try:
            roads = tuple(RoadSegment.model_validate(r) for r in data.get("roads", []))
            points = tuple(
                CongestionPoint.model_validate(p)
                for p in data.get("congestion_points", [])
            )
        except (ValidationError, AttributeError) as e:
            raise TransientFetchFailure(f"Invalid congestion payload: {e}") from e
        return CongestionSnapshot(roads=roads, congestion_points=points)

    async def fetch_accident_snapshot(self) -> List[AccidentMarker]:
        data = await self._get_json("/accidents")
        try:
            return [AccidentMarker.model_validate(a) for a in data.get("accidents", [])]
        except (ValidationError, AttributeError) as e:
            raise TransientFetchFailure(f"Invalid accident payload: {e}") from e

    async def fetch_recommendation_stream(self, query: RouteQuery) -> AsyncIterator[bytes]:
        """
        Stream a chat completion as raw SSE bytes.

        Raises:
            StreamUnavailable: Connection failed, non-2xx status, or the
                response is not text/event-stream
            StreamInterrupted: Transport failed after the first chunk
        """
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": build_prompt(query)}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }

        try:
            request = self._client.build_request(
                "POST", self.completions_url, headers=headers, json=body
            )
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise StreamUnavailable(f"Could not open recommendation stream: {e}") from e

        try:
            if not response.is_success:
                raise StreamUnavailable(f"Recommendation API error: {response.status_code}")

            content_type = response.headers.get("content-type", "")
            if "text/event-stream" not in content_type:
                raise StreamUnavailable(
                    f"Recommendation API did not return an event stream: {content_type or 'no content-type'}"
                )

            try:
                async for chunk in response.aiter_bytes():
                    yield chunk
            except httpx.HTTPError as e:
                raise StreamInterrupted(f"Recommendation stream broke: {e}") from e
        finally:
            await response.aclose()

    async def close(self) -> None:
        await self._client.aclose()
