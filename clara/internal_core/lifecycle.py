from __future__ import annotations

import datetime as _dt

from .contracts import LifecycleEvent


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _sanitize_detail(detail: str) -> str:
    # IMPORTANT: Never include transcript text or audio bytes in detail.
    detail = (detail or "").replace("\n", " ").strip()
    if len(detail) > 200:
        detail = detail[:200] + "…"
    return detail


def make_event(session_id: str, event_type: str, code: str, detail: str = "") -> LifecycleEvent:
    return LifecycleEvent(
        ts_iso=_ts_iso(),
        session_id=session_id,
        type=event_type,  # type: ignore[arg-type]
        code=code,
        detail=_sanitize_detail(detail),
    )
