import asyncio
import base64

import pytest

from clara.audio.normalizer import (
    AudioSource,
    decode_audio_payload,
    encode_audio_bytes,
    normalize_audio,
    normalize_text,
    strip_data_uri_prefix,
)
from clara.internal_core.errors import InputReadError, InvalidRequestError, PayloadTooLargeError


@pytest.mark.parametrize(
    "raw",
    [b"", b"\x00", b"\x00\x11\x22\x33\x44\x55", bytes(range(256)), b"ID3" + b"\xff" * 1021],
)
def test_base64_round_trip(raw: bytes) -> None:
    assert base64.b64decode(encode_audio_bytes(raw)) == raw
    assert decode_audio_payload(encode_audio_bytes(raw)) == raw


def test_strip_data_uri_prefix() -> None:
    assert strip_data_uri_prefix("data:audio/mp3;base64,SUQz") == "SUQz"
    assert strip_data_uri_prefix("SUQz") == "SUQz"


def test_normalize_audio_from_path(tmp_path) -> None:
    raw = b"RIFF\x24\x00\x00\x00WAVEfmt "
    path = tmp_path / "visit.wav"
    path.write_bytes(raw)

    request = asyncio.run(normalize_audio(AudioSource(filename="visit.wav", path=path)))

    assert request.kind == "audio"
    assert request.mime_type in {"audio/wav", "audio/x-wav"}
    assert base64.b64decode(request.data) == raw
    assert request.text is None


def test_normalize_audio_keeps_declared_mime_type() -> None:
    request = asyncio.run(
        normalize_audio(
            AudioSource(filename="recording", mime_type="audio/aac; codecs=mp4a", content=b"\x01\x02")
        )
    )
    assert request.mime_type == "audio/aac"


def test_normalize_audio_strips_data_uri_prefix() -> None:
    raw = b"ID3\x03\x00"
    encoded = "data:audio/mpeg;base64," + base64.b64encode(raw).decode("ascii")

    request = asyncio.run(normalize_audio(AudioSource(filename="clip", encoded=encoded)))

    assert request.mime_type == "audio/mpeg"
    assert not request.data.startswith("data:")
    assert base64.b64decode(request.data) == raw


def test_normalize_audio_missing_file_raises_input_read_error(tmp_path) -> None:
    source = AudioSource(filename="gone.mp3", path=tmp_path / "gone.mp3")
    with pytest.raises(InputReadError):
        asyncio.run(normalize_audio(source))


def test_normalize_audio_corrupt_encoded_payload_raises_input_read_error() -> None:
    source = AudioSource(filename="clip.mp3", encoded="data:audio/mpeg;base64,@@not-base64@@")
    with pytest.raises(InputReadError):
        asyncio.run(normalize_audio(source))


def test_normalize_audio_empty_file_raises_input_read_error(tmp_path) -> None:
    path = tmp_path / "empty.wav"
    path.write_bytes(b"")
    with pytest.raises(InputReadError, match="empty"):
        asyncio.run(normalize_audio(AudioSource(filename="empty.wav", path=path)))


def test_normalize_audio_rejects_oversized_input(tmp_path) -> None:
    path = tmp_path / "long.wav"
    path.write_bytes(b"\x00" * 2048)
    with pytest.raises(PayloadTooLargeError):
        asyncio.run(normalize_audio(AudioSource(filename="long.wav", path=path), max_bytes=1024))
    with pytest.raises(PayloadTooLargeError):
        asyncio.run(
            normalize_audio(
                AudioSource(filename="long.wav", mime_type="audio/wav", content=b"\x00" * 2048),
                max_bytes=1024,
            )
        )


def test_normalize_audio_unknown_media_type_is_invalid() -> None:
    with pytest.raises(InvalidRequestError, match="media type"):
        asyncio.run(normalize_audio(AudioSource(filename="recording", content=b"\x01")))


def test_normalize_audio_requires_exactly_one_source(tmp_path) -> None:
    path = tmp_path / "visit.wav"
    path.write_bytes(b"\x01")
    with pytest.raises(InvalidRequestError):
        asyncio.run(normalize_audio(AudioSource(filename="visit.wav", path=path, content=b"\x01")))
    with pytest.raises(InvalidRequestError):
        asyncio.run(normalize_audio(AudioSource(filename="visit.wav")))


def test_normalize_text_passes_transcript_through_unchanged() -> None:
    transcript = "Dr: Any chest pain?\nPt: Yes, since this morning.\n"
    request = normalize_text(transcript)
    assert request.kind == "text"
    assert request.text == transcript
    assert request.data is None and request.mime_type is None


def test_normalize_text_rejects_blank_transcript() -> None:
    with pytest.raises(InvalidRequestError):
        normalize_text("  \n ")
