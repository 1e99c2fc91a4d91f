from __future__ import annotations

import asyncio
import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from clara.internal_core.contracts import AnalysisRequest
from clara.internal_core.errors import InputReadError, InvalidRequestError, PayloadTooLargeError

DEFAULT_MAX_BYTES = 50 * 1024 * 1024


@dataclass(frozen=True)
class AudioSource:
    """
    User-supplied audio. Exactly one of `path`, `content` or `encoded` is set;
    `encoded` holds base64 text, optionally as a `data:` URI from a browser.
    """

    filename: str
    mime_type: Optional[str] = None
    path: Optional[Path] = None
    content: Optional[bytes] = None
    encoded: Optional[str] = None

    def __post_init__(self) -> None:
        if self.path is not None and not isinstance(self.path, Path):
            object.__setattr__(self, "path", Path(self.path))

    def resolved_mime_type(self) -> str:
        declared = (self.mime_type or "").split(";")[0].strip().lower()
        if not declared and self.encoded and self.encoded.startswith("data:"):
            declared = self.encoded[5:].split(";", 1)[0].split(",", 1)[0].strip().lower()
        if declared:
            return declared
        guessed, _ = mimetypes.guess_type(self.filename)
        if not guessed:
            raise InvalidRequestError(f"Unable to determine the media type of {self.filename!r}.")
        return guessed


def encode_audio_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_audio_payload(value: str) -> bytes:
    try:
        return base64.b64decode(strip_data_uri_prefix(value).strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InputReadError(f"Audio payload is not valid base64: {exc}") from exc


def strip_data_uri_prefix(value: str) -> str:
    """Drop a leading `data:<mime>;base64,` so only the base64 body remains."""
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def _read_source_bytes(source: AudioSource) -> bytes:
    provided = [item for item in (source.path, source.content, source.encoded) if item is not None]
    if len(provided) != 1:
        raise InvalidRequestError("Audio source must carry exactly one of path, content or encoded data.")
    if source.content is not None:
        return bytes(source.content)
    if source.encoded is not None:
        return decode_audio_payload(source.encoded)
    try:
        return source.path.read_bytes()  # type: ignore[union-attr]
    except OSError as exc:
        raise InputReadError(f"Unable to read audio file {source.filename!r}: {exc}") from exc


def _enforce_max_size_bytes(size: int, max_bytes: int) -> None:
    if size > max_bytes:
        raise PayloadTooLargeError(
            f"Audio file too large ({size / (1024 * 1024):.1f}MB), "
            f"max allowed is {max_bytes / (1024 * 1024):.1f}MB"
        )


async def normalize_audio(source: AudioSource, *, max_bytes: int = DEFAULT_MAX_BYTES) -> AnalysisRequest:
    mime_type = source.resolved_mime_type()
    if source.path is not None:
        try:
            _enforce_max_size_bytes(source.path.stat().st_size, max_bytes)
        except OSError as exc:
            raise InputReadError(f"Unable to read audio file {source.filename!r}: {exc}") from exc

    payload = await asyncio.to_thread(_read_source_bytes, source)
    if not payload:
        raise InputReadError(f"Audio file {source.filename!r} is empty.")
    _enforce_max_size_bytes(len(payload), max_bytes)

    return AnalysisRequest.for_audio(encode_audio_bytes(payload), mime_type)


def normalize_text(content: str) -> AnalysisRequest:
    if not isinstance(content, str) or not content.strip():
        raise InvalidRequestError("Transcript is empty.")
    return AnalysisRequest.for_text(content)
