from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError


def _project_root() -> Path:
    # clara/internal_core/config.py -> clara -> project
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass(frozen=True)
class ClaraConfig:
    GEMINI_API_KEY: str
    CLARA_GEMINI_MODEL: str
    CLARA_TEMPERATURE: float
    CLARA_MAX_PAYLOAD_BYTES: int
    CLARA_ORACLE_TIMEOUT_SECONDS: int
    CLARA_TMP_DIR: str
    CLARA_SERVICE_URL: str
    CLARA_LOG_LEVEL: str
    PORT: int

    def tmp_dir_path(self, repo_root: Path | None = None) -> Path:
        return ((repo_root or _project_root()) / self.CLARA_TMP_DIR).resolve()

    def require_api_key(self) -> str:
        key = self.GEMINI_API_KEY.strip()
        if not key:
            raise ConfigurationError("GEMINI_API_KEY is not configured on the server.")
        return key


def load_config() -> ClaraConfig:
    return ClaraConfig(
        GEMINI_API_KEY=_getenv_str("GEMINI_API_KEY", ""),
        CLARA_GEMINI_MODEL=_getenv_str("CLARA_GEMINI_MODEL", "gemini-3-pro-preview"),
        CLARA_TEMPERATURE=_getenv_float("CLARA_TEMPERATURE", 0.2),
        CLARA_MAX_PAYLOAD_BYTES=_getenv_int("CLARA_MAX_PAYLOAD_BYTES", 50 * 1024 * 1024),
        CLARA_ORACLE_TIMEOUT_SECONDS=_getenv_int("CLARA_ORACLE_TIMEOUT_SECONDS", 300),
        CLARA_TMP_DIR=_getenv_str("CLARA_TMP_DIR", "./tmp"),
        CLARA_SERVICE_URL=_getenv_str("CLARA_SERVICE_URL", "http://127.0.0.1:3001"),
        CLARA_LOG_LEVEL=_getenv_str("CLARA_LOG_LEVEL", "INFO"),
        PORT=_getenv_int("PORT", 3001),
    )
