from __future__ import annotations

"""
Single-session analysis state machine.

Design intent:
- One writer: only the orchestrator replaces the session snapshot.
- Strict forward transitions per submission; reset replaces the session wholesale.
- A completion for an abandoned session is discarded, never applied.
"""

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Protocol, Set

from clara.audio.normalizer import AudioSource, normalize_audio, normalize_text
from clara.internal_core.config import ClaraConfig, load_config
from clara.internal_core.contracts import (
    AnalysisRequest,
    AnalysisResult,
    AnalysisSession,
    SessionPhase,
    SourceHandle,
)
from clara.internal_core.errors import ClaraError, SessionBusyError, SessionTransitionError
from clara.internal_core.lifecycle import make_event
from clara.internal_core.source_handles import borrow_source, materialize_source, release_source

logger = logging.getLogger(__name__)


class AnalysisGateway(Protocol):
    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        ...


ALLOWED_TRANSITIONS: Dict[SessionPhase, FrozenSet[SessionPhase]] = {
    "idle": frozenset({"submitting"}),
    "submitting": frozenset({"awaiting", "failed"}),
    "awaiting": frozenset({"complete", "failed"}),
    "complete": frozenset(),
    "failed": frozenset(),
}

IN_FLIGHT_PHASES: FrozenSet[SessionPhase] = frozenset({"submitting", "awaiting"})


def _new_session() -> AnalysisSession:
    now = time.time()
    session_id = uuid.uuid4().hex
    return AnalysisSession(
        session_id=session_id,
        phase="idle",
        events=[make_event(session_id, "SESSION_CREATED", "created")],
        created_at=now,
        updated_at=now,
    )


class AnalysisOrchestrator:
    def __init__(self, gateway: AnalysisGateway, *, config: Optional[ClaraConfig] = None) -> None:
        self._gateway = gateway
        self._config = config or load_config()
        self._session = _new_session()
        self._task: Optional[asyncio.Task[AnalysisSession]] = None
        self._abandoned: Set[asyncio.Task[AnalysisSession]] = set()

    @property
    def session(self) -> AnalysisSession:
        return self._session

    @property
    def gateway(self) -> AnalysisGateway:
        return self._gateway

    def _is_current(self, session_id: str) -> bool:
        return self._session.session_id == session_id

    def _transition(self, session_id: str, phase: SessionPhase, **updates: Any) -> bool:
        if not self._is_current(session_id):
            logger.warning(
                "discarding %s for abandoned session %s (current=%s)",
                phase,
                session_id,
                self._session.session_id,
            )
            return False

        current = self._session.phase
        if phase not in ALLOWED_TRANSITIONS[current]:
            raise SessionTransitionError(f"Illegal session transition: {current} -> {phase}")

        self._session = self._session.model_copy(
            update={"phase": phase, "updated_at": time.time(), **updates}
        )
        logger.info("session %s: %s -> %s", session_id, current, phase)
        return True

    def _record(self, event_type: str, code: str, detail: str = "") -> None:
        event = make_event(self._session.session_id, event_type, code, detail)
        self._session = self._session.model_copy(
            update={"events": [*self._session.events, event]}
        )

    def _claim(self) -> str:
        phase = self._session.phase
        if phase in IN_FLIGHT_PHASES:
            raise SessionBusyError("An analysis is already in progress.")
        if phase != "idle":
            raise SessionTransitionError("Reset the current analysis before submitting a new one.")
        return self._session.session_id

    def _capture_source(self, source: AudioSource, keep_source: bool) -> Optional[SourceHandle]:
        try:
            mime_type = source.resolved_mime_type()
        except ClaraError:
            mime_type = source.mime_type or "application/octet-stream"
        if source.path is not None:
            return borrow_source(Path(source.path), mime_type)
        if keep_source and source.content:
            try:
                return materialize_source(
                    self._config.tmp_dir_path(), source.filename, mime_type, source.content
                )
            except OSError as exc:
                logger.warning("could not keep a playable copy of %s: %s", source.filename, exc)
        return None

    def start_audio(
        self,
        source: AudioSource,
        *,
        label: Optional[str] = None,
        keep_source: bool = False,
    ) -> "asyncio.Task[AnalysisSession]":
        """
        Submit an audio file. Must be called from a running event loop.

        With `keep_source`, in-memory content is copied into the temp dir and
        exposed as a playable handle until reset; file paths are always
        exposed as borrowed handles.
        """
        session_id = self._claim()
        self._transition(
            session_id,
            "submitting",
            label=label or source.filename,
            source_handle=self._capture_source(source, keep_source),
        )
        self._record("SUBMITTED", "audio", f"filename={source.filename}")
        return self._spawn(self._run_audio(session_id, source))

    def start_text(self, content: str, *, label: Optional[str] = None) -> "asyncio.Task[AnalysisSession]":
        session_id = self._claim()
        self._transition(
            session_id,
            "submitting",
            label=label or "Transcript",
            transcript_echo=content,
        )
        self._record("SUBMITTED", "text", f"chars={len(content or '')}")
        return self._spawn(self._run_text(session_id, content))

    async def submit_audio(
        self,
        source: AudioSource,
        *,
        label: Optional[str] = None,
        keep_source: bool = False,
    ) -> AnalysisSession:
        return await self.start_audio(source, label=label, keep_source=keep_source)

    async def submit_text(self, content: str, *, label: Optional[str] = None) -> AnalysisSession:
        return await self.start_text(content, label=label)

    async def wait(self) -> AnalysisSession:
        task = self._task
        if task is not None:
            await task
        return self._session

    def reset(self) -> AnalysisSession:
        """Discard interest in any in-flight work, release the source, start a fresh session."""
        previous = self._session
        if previous.phase == "idle" and previous.source_handle is None and self._task is None:
            return previous
        task, self._task = self._task, None
        released = False
        try:
            if task is not None and not task.done():
                self._abandoned.add(task)
                task.add_done_callback(self._abandoned.discard)
        finally:
            released = release_source(previous.source_handle)
            self._session = _new_session()

        if previous.phase != "idle" or previous.source_handle is not None:
            logger.info(
                "session %s reset from %s (source_released=%s)",
                previous.session_id,
                previous.phase,
                released,
            )
            self._record("SESSION_RESET", previous.phase, f"previous={previous.session_id}")
            if previous.source_handle is not None:
                self._record("SOURCE_RELEASED", "deleted" if released else "dropped")
        return self._session

    def _spawn(self, coro: Any) -> "asyncio.Task[AnalysisSession]":
        self._task = asyncio.ensure_future(coro)
        return self._task

    def _fail(self, session_id: str, exc: BaseException) -> None:
        message = str(exc) or "An unexpected error occurred during analysis."
        if self._transition(session_id, "failed", failure_reason=message):
            self._record("FAILED", str(getattr(exc, "code", type(exc).__name__)), message)
            logger.warning("session %s failed: %s", session_id, message)

    async def _run_audio(self, session_id: str, source: AudioSource) -> AnalysisSession:
        try:
            request = await normalize_audio(source, max_bytes=self._config.CLARA_MAX_PAYLOAD_BYTES)
        except ClaraError as exc:
            self._fail(session_id, exc)
            return self._session
        except Exception as exc:
            logger.exception("unexpected normalization failure for session %s", session_id)
            self._fail(session_id, exc)
            return self._session
        return await self._run_oracle(session_id, request)

    async def _run_text(self, session_id: str, content: str) -> AnalysisSession:
        try:
            request = normalize_text(content)
        except ClaraError as exc:
            self._fail(session_id, exc)
            return self._session
        except Exception as exc:
            logger.exception("unexpected normalization failure for session %s", session_id)
            self._fail(session_id, exc)
            return self._session
        return await self._run_oracle(session_id, request)

    async def _run_oracle(self, session_id: str, request: AnalysisRequest) -> AnalysisSession:
        if not self._transition(session_id, "awaiting"):
            return self._session
        self._record("NORMALIZED", request.kind)

        try:
            result = await self._gateway.analyze(request)
        except ClaraError as exc:
            self._fail(session_id, exc)
            return self._session
        except Exception as exc:
            logger.exception("unexpected gateway failure for session %s", session_id)
            self._fail(session_id, exc)
            return self._session

        if self._transition(session_id, "complete", result=result):
            self._record("ORACLE_DONE", "ok", f"events={len(result.audit_flags)}")
        return self._session
