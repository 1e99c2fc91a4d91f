from __future__ import annotations

"""
HTTP surface for the CLARA backend.

Design intent:
- Keep API orchestration thin and typed.
- Honor the analyze wire contract: `{type, data?, mimeType?, text?}` in,
  `{audit_flags}` or `{error}` out.
- Expose the single analysis session read-only; only the orchestrator writes it.
"""

import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from clara.audio.normalizer import AudioSource
from clara.internal_core.config import ClaraConfig, load_config
from clara.internal_core.contracts import AnalysisRequest, AnalysisResult, AnalysisSession, RiskLevel
from clara.internal_core.errors import (
    ClaraError,
    InvalidRequestError,
    PayloadTooLargeError,
    SourceNotFoundError,
    UpstreamError,
)
from clara.oracle.gateway import OracleGateway
from clara.orchestrator.state_machine import AnalysisGateway, AnalysisOrchestrator
from clara.report.summary import build_audit_summary


class TextSubmissionRequest(BaseModel):
    content: str = Field(min_length=1)
    label: Optional[str] = Field(default=None, max_length=255)


class RiskBucketItem(BaseModel):
    level: RiskLevel
    name: str
    count: int


class AuditSummaryItem(BaseModel):
    total_events: int
    high_risk_count: int
    risk_distribution: list[RiskBucketItem] = Field(default_factory=list)
    bias_counts: dict[str, int] = Field(default_factory=dict)
    reasoning_robust: bool
    headline: str


class SessionSnapshotResponse(BaseModel):
    session: AnalysisSession
    source_url: Optional[str] = None
    summary: Optional[AuditSummaryItem] = None


app = FastAPI(title="clara backend service")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> ClaraConfig:
    existing = getattr(app.state, "clara_config", None)
    if isinstance(existing, ClaraConfig):
        return existing
    created = load_config()
    setattr(app.state, "clara_config", created)
    return created


def _get_gateway() -> AnalysisGateway:
    existing = getattr(app.state, "oracle_gateway", None)
    if existing is not None:
        return existing
    created = OracleGateway.from_config(_get_config())
    setattr(app.state, "oracle_gateway", created)
    return created


def _get_orchestrator() -> AnalysisOrchestrator:
    existing = getattr(app.state, "orchestrator", None)
    if isinstance(existing, AnalysisOrchestrator):
        return existing
    created = AnalysisOrchestrator(_get_gateway(), config=_get_config())
    setattr(app.state, "orchestrator", created)
    return created


def _snapshot_response(session: AnalysisSession) -> SessionSnapshotResponse:
    summary_item: Optional[AuditSummaryItem] = None
    if session.phase == "complete" and session.result is not None:
        summary = build_audit_summary(session.result)
        summary_item = AuditSummaryItem(
            total_events=summary.total_events,
            high_risk_count=summary.high_risk_count,
            risk_distribution=[
                RiskBucketItem(level=bucket.level, name=bucket.name, count=bucket.count)
                for bucket in summary.risk_distribution
            ],
            bias_counts=summary.bias_counts,
            reasoning_robust=summary.reasoning_robust,
            headline=summary.headline,
        )
    return SessionSnapshotResponse(
        session=session,
        source_url="/session/source" if session.source_handle is not None else None,
        summary=summary_item,
    )


@app.exception_handler(ClaraError)
async def clara_error_handler(request: Request, exc: ClaraError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/analyze", response_model=AnalysisResult)
async def analyze(request: Request) -> AnalysisResult:
    config = _get_config()
    body = await request.body()
    if len(body) > config.CLARA_MAX_PAYLOAD_BYTES:
        raise PayloadTooLargeError(
            f"Request body exceeds the {config.CLARA_MAX_PAYLOAD_BYTES // (1024 * 1024)}MB limit."
        )
    try:
        payload: Any = json.loads(body or b"null")
    except ValueError as exc:
        raise InvalidRequestError("Invalid request body.") from exc

    analysis_request = AnalysisRequest.from_wire(payload)
    try:
        return await _get_gateway().analyze(analysis_request)
    except ClaraError:
        raise
    except Exception as exc:
        logger.exception("analyze failed with an unclassified error")
        raise UpstreamError(str(exc) or "Gemini analysis failed.") from exc


@app.get("/session", response_model=SessionSnapshotResponse)
async def session_snapshot() -> SessionSnapshotResponse:
    return _snapshot_response(_get_orchestrator().session)


@app.post("/session/audio", response_model=SessionSnapshotResponse)
async def session_submit_audio(
    request: Request,
    filename: str = Query(min_length=1, max_length=255),
    label: Optional[str] = Query(default=None, max_length=255),
    wait: bool = Query(default=False),
) -> SessionSnapshotResponse:
    filename = Path(str(filename or "")).name
    if not filename:
        raise InvalidRequestError("Missing filename.")

    config = _get_config()
    payload = await request.body()
    if not payload:
        raise InvalidRequestError("Uploaded file is empty.")
    if len(payload) > config.CLARA_MAX_PAYLOAD_BYTES:
        raise PayloadTooLargeError(
            f"Uploaded file exceeds {config.CLARA_MAX_PAYLOAD_BYTES // (1024 * 1024)}MB limit."
        )

    content_type = str(request.headers.get("content-type", "")).split(";")[0].strip().lower()
    if not content_type.startswith("audio/"):
        content_type = mimetypes.guess_type(filename)[0] or content_type

    orchestrator = _get_orchestrator()
    task = orchestrator.start_audio(
        AudioSource(filename=filename, mime_type=content_type or None, content=payload),
        label=label,
        keep_source=True,
    )
    if wait:
        await task
    return _snapshot_response(orchestrator.session)


@app.post("/session/text", response_model=SessionSnapshotResponse)
async def session_submit_text(
    payload: TextSubmissionRequest,
    wait: bool = Query(default=False),
) -> SessionSnapshotResponse:
    orchestrator = _get_orchestrator()
    task = orchestrator.start_text(payload.content, label=payload.label)
    if wait:
        await task
    return _snapshot_response(orchestrator.session)


@app.get("/session/source")
async def session_source() -> FileResponse:
    handle = _get_orchestrator().session.source_handle
    if handle is None:
        raise SourceNotFoundError("No source audio is held by the current session.")
    path = Path(handle.path)
    if not path.exists() or not path.is_file():
        raise SourceNotFoundError(f"Audio file not found: {handle.filename}")
    return FileResponse(path, media_type=handle.mime_type, filename=handle.filename)


@app.post("/session/reset", response_model=SessionSnapshotResponse)
async def session_reset() -> SessionSnapshotResponse:
    return _snapshot_response(_get_orchestrator().reset())
