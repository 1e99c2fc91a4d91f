from __future__ import annotations

"""
Gemini oracle gateway with strict output validation.

Design intent:
- One schema-constrained `generate_content` call per analysis, no retries.
- Keep model output constrained to the audit schema and its closed enums.
- Fail closed on empty or malformed output; never accept partial results.
"""

import asyncio
import json
import logging
import time
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from clara.audio.normalizer import decode_audio_payload
from clara.internal_core.config import ClaraConfig, load_config
from clara.internal_core.contracts import (
    AUDIT_RESPONSE_SCHEMA,
    AnalysisRequest,
    AnalysisResult,
    validate_analysis_payload,
)
from clara.internal_core.errors import (
    EmptyResponseError,
    InputReadError,
    InvalidRequestError,
    MalformedResponseError,
    UpstreamError,
)
from clara.oracle.prompts import ANALYZE_INSTRUCTION, CLARA_SYSTEM_INSTRUCTION, TRANSCRIPT_PREFIX

logger = logging.getLogger(__name__)


class OracleGateway:
    def __init__(self, config: ClaraConfig, *, client: Any = None) -> None:
        self._config = config
        self._client = client

    @classmethod
    def from_config(cls, config: Optional[ClaraConfig] = None) -> "OracleGateway":
        return cls(config or load_config())

    @property
    def model(self) -> str:
        return self._config.CLARA_GEMINI_MODEL

    def _get_client(self) -> Any:
        # Checked on every call so a missing key never reaches the network.
        api_key = self._config.require_api_key()
        if self._client is None:
            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(
                    timeout=int(self._config.CLARA_ORACLE_TIMEOUT_SECONDS) * 1000
                ),
            )
        return self._client

    def build_generation_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=CLARA_SYSTEM_INSTRUCTION,
            response_mime_type="application/json",
            response_schema=AUDIT_RESPONSE_SCHEMA,
            temperature=float(self._config.CLARA_TEMPERATURE),
        )

    async def analyze(self, request: AnalysisRequest | dict[str, Any]) -> AnalysisResult:
        client = self._get_client()
        if not isinstance(request, AnalysisRequest):
            request = AnalysisRequest.from_wire(request)
        parts = [_content_part(request), types.Part.from_text(text=ANALYZE_INSTRUCTION)]

        started = time.perf_counter()
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[types.Content(role="user", parts=parts)],
                config=self.build_generation_config(),
            )
        except genai_errors.APIError as exc:
            logger.warning("oracle call failed: code=%s message=%s", exc.code, exc.message)
            raise UpstreamError(
                exc.message or str(exc) or "Gemini analysis failed.",
                upstream_status=exc.code,
            ) from exc
        except (httpx.HTTPError, asyncio.TimeoutError, OSError) as exc:
            logger.warning("oracle transport failure: %s", exc)
            raise UpstreamError(f"Gemini analysis failed: {exc or type(exc).__name__}") from exc
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)

        raw = getattr(response, "text", None)
        if not raw or not str(raw).strip():
            raise EmptyResponseError("No response received from Gemini.")

        result = parse_oracle_text(str(raw))
        logger.info(
            "oracle analysis done: kind=%s events=%d elapsed_ms=%.2f",
            request.kind,
            len(result.audit_flags),
            elapsed_ms,
        )
        return result


def _content_part(request: AnalysisRequest) -> types.Part:
    if request.kind == "audio":
        try:
            audio_bytes = decode_audio_payload(request.data or "")
        except InputReadError as exc:
            raise InvalidRequestError(str(exc)) from exc
        return types.Part.from_bytes(data=audio_bytes, mime_type=str(request.mime_type))
    return types.Part.from_text(text=f"{TRANSCRIPT_PREFIX}{request.text}")


def parse_oracle_text(raw: str) -> AnalysisResult:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError("The analysis service returned output that is not valid JSON.") from exc
    return validate_analysis_payload(payload)
