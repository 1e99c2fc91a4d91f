from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from clara.internal_core.contracts import AnalysisRequest, AnalysisResult, validate_analysis_payload
from clara.internal_core.errors import EmptyResponseError, MalformedResponseError, UpstreamError

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    fallback = f"Server error: {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        message = body.get("error") or body.get("detail")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return fallback


class AnalyzeServiceClient:
    """Talks to a running CLARA service over `POST /api/analyze`."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                transport=self._transport,
            ) as client:
                response = await client.post("/api/analyze", json=request.to_wire())
        except httpx.HTTPError as exc:
            logger.warning("analyze service unreachable at %s: %s", self._base_url, exc)
            raise UpstreamError(f"Analysis service request failed: {exc}") from exc

        if not response.is_success:
            raise UpstreamError(_error_message(response), upstream_status=response.status_code)
        if not response.content:
            raise EmptyResponseError("The analysis service returned an empty response.")
        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                "The analysis service returned output that is not valid JSON."
            ) from exc
        return validate_analysis_payload(payload)
