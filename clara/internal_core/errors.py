from __future__ import annotations

from typing import Optional


class ClaraError(RuntimeError):
    """Base class for every failure that ends an analysis session."""

    code = "clara_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputReadError(ClaraError):
    """Raised when the submitted file cannot be read in full."""

    code = "input_read_error"
    status_code = 400


class ConfigurationError(ClaraError):
    """Raised when the service is missing required upstream configuration."""

    code = "configuration_error"
    status_code = 500


class InvalidRequestError(ClaraError, ValueError):
    code = "invalid_request"
    status_code = 400


class PayloadTooLargeError(InvalidRequestError):
    code = "payload_too_large"
    status_code = 413


class OracleError(ClaraError):
    """Raised when the reasoning service fails or returns an unusable payload."""

    code = "oracle_error"
    status_code = 500


class EmptyResponseError(OracleError):
    code = "empty_response"
    status_code = 502


class MalformedResponseError(OracleError):
    code = "malformed_response"
    status_code = 502


class UpstreamError(OracleError):
    code = "upstream_error"

    def __init__(self, message: str, *, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class SourceNotFoundError(ClaraError):
    code = "source_not_found"
    status_code = 404


class SessionBusyError(ClaraError):
    code = "session_busy"
    status_code = 409


class SessionTransitionError(ClaraError):
    code = "session_transition"
    status_code = 409
