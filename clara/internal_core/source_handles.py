from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import Optional

from .contracts import SourceHandle

logger = logging.getLogger(__name__)

_UNSAFE_STEM_RE = re.compile(r"[^A-Za-z0-9_-]+")


def _sanitize_stem(filename: str) -> str:
    stem = _UNSAFE_STEM_RE.sub("_", Path(filename).stem).strip("_")
    return stem[:64] or "audio"


def materialize_source(tmp_dir: Path, filename: str, mime_type: str, payload: bytes) -> SourceHandle:
    """Write uploaded audio to the session temp dir so it can be played back."""
    tmp_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(filename).suffix.lower()
    out_path = tmp_dir / f"{_sanitize_stem(filename)}_{uuid.uuid4().hex[:10]}{suffix}"
    out_path.write_bytes(payload)
    return SourceHandle(path=str(out_path), filename=Path(filename).name, mime_type=mime_type, owned=True)


def borrow_source(path: Path, mime_type: str) -> SourceHandle:
    return SourceHandle(path=str(path), filename=path.name, mime_type=mime_type, owned=False)


def release_source(handle: Optional[SourceHandle]) -> bool:
    """Drop a source handle; owned temp files are unlinked. Never raises."""
    if handle is None or not handle.owned:
        return False
    try:
        Path(handle.path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("failed to release source handle %s: %s", handle.path, exc)
        return False
    return True
