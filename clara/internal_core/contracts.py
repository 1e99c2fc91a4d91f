from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import InvalidRequestError, MalformedResponseError


class BiasType(str, Enum):
    DIAGNOSTIC_SHADOWING = "Diagnostic Shadowing"
    PREMATURE_CLOSURE = "Premature Closure"
    ANCHORING_BIAS = "Anchoring Bias"
    SAFE_PRACTICE = "Safe Practice"


class RiskLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NONE = "None"

    @property
    def severity(self) -> int:
        return _RISK_SEVERITY[self]


_RISK_SEVERITY = {
    RiskLevel.HIGH: 3,
    RiskLevel.MEDIUM: 2,
    RiskLevel.LOW: 1,
    RiskLevel.NONE: 0,
}

_TIMESTAMP_RE = re.compile(r"^(?P<mm>\d{1,3}):(?P<ss>[0-5]\d)$")


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    timestamp: str
    bias_type: BiasType = Field(validation_alias=AliasChoices("bias_type", "biasType"))
    risk_level: RiskLevel = Field(validation_alias=AliasChoices("risk_level", "riskLevel"))
    dialogue_trigger: str = Field(
        validation_alias=AliasChoices("dialogue_trigger", "dialogueTrigger")
    )
    reasoning: str = Field(
        validation_alias=AliasChoices("clinical_reasoning", "reasoning"),
        serialization_alias="clinical_reasoning",
    )

    @field_validator("timestamp")
    @classmethod
    def _canonical_timestamp(cls, value: str) -> str:
        match = _TIMESTAMP_RE.match(value.strip())
        if match is None:
            raise ValueError(f"timestamp must be MM:SS, got {value!r}")
        return f"{int(match.group('mm')):02d}:{match.group('ss')}"

    @field_validator("dialogue_trigger", "reasoning")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class AnalysisResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    audit_flags: List[AuditEvent]

    def high_risk_count(self) -> int:
        return sum(1 for flag in self.audit_flags if flag.risk_level is RiskLevel.HIGH)


RequestKind = Literal["audio", "text"]


class AnalysisRequest(BaseModel):
    """One normalized unit of work for the oracle: inline audio or a transcript."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: RequestKind = Field(alias="type")
    data: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    text: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_variant(self) -> "AnalysisRequest":
        has_audio = bool(self.data) or bool(self.mime_type)
        has_text = bool(self.text)
        if self.kind == "audio":
            if not (self.data and self.mime_type):
                raise ValueError("audio requests require both data and mimeType")
            if has_text:
                raise ValueError("audio requests must not carry text")
        else:
            if not has_text or not (self.text or "").strip():
                raise ValueError("text requests require non-empty text")
            if has_audio:
                raise ValueError("text requests must not carry data or mimeType")
        return self

    @classmethod
    def from_wire(cls, payload: Any) -> "AnalysisRequest":
        if not isinstance(payload, dict):
            raise InvalidRequestError("Invalid request body.")
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise InvalidRequestError(f"Invalid request body: {_first_error(exc)}") from exc

    @classmethod
    def for_audio(cls, data: str, mime_type: str) -> "AnalysisRequest":
        return cls.from_wire({"type": "audio", "data": data, "mimeType": mime_type})

    @classmethod
    def for_text(cls, text: str) -> "AnalysisRequest":
        return cls.from_wire({"type": "text", "text": text})

    def to_wire(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
    msg = str(first.get("msg", "invalid value"))
    return f"{loc}: {msg}" if loc else msg


def _audit_event_schema() -> Dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "timestamp": {"type": "STRING", "description": "Format MM:SS"},
            "bias_type": {
                "type": "STRING",
                "enum": [member.value for member in BiasType],
            },
            "risk_level": {
                "type": "STRING",
                "enum": [member.value for member in RiskLevel],
            },
            "dialogue_trigger": {"type": "STRING", "description": "Quote from the consultation"},
            "clinical_reasoning": {
                "type": "STRING",
                "description": "Explanation of the logic failure",
            },
        },
        "required": [
            "timestamp",
            "bias_type",
            "risk_level",
            "dialogue_trigger",
            "clinical_reasoning",
        ],
        "property_ordering": [
            "timestamp",
            "bias_type",
            "risk_level",
            "dialogue_trigger",
            "clinical_reasoning",
        ],
    }


# Shared by every analysis regardless of input kind.
AUDIT_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "audit_flags": {
            "type": "ARRAY",
            "items": _audit_event_schema(),
        },
    },
    "required": ["audit_flags"],
}


def validate_analysis_payload(payload: Any) -> AnalysisResult:
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            "The analysis service returned a response that does not match the audit schema."
        )
    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponseError(
            "The analysis service returned a response that does not match the audit schema "
            f"({_first_error(exc)})."
        ) from exc


SessionPhase = Literal["idle", "submitting", "awaiting", "complete", "failed"]


class SourceHandle(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    filename: str
    mime_type: str
    owned: bool = True


class LifecycleEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ts_iso: str
    session_id: str
    type: Literal[
        "SESSION_CREATED",
        "SUBMITTED",
        "NORMALIZED",
        "ORACLE_DONE",
        "FAILED",
        "SOURCE_RELEASED",
        "SESSION_RESET",
    ]
    code: str
    detail: str


class AnalysisSession(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    session_id: str
    phase: SessionPhase = "idle"
    label: Optional[str] = None
    source_handle: Optional[SourceHandle] = None
    transcript_echo: Optional[str] = None
    result: Optional[AnalysisResult] = None
    failure_reason: Optional[str] = None
    events: List[LifecycleEvent] = Field(default_factory=list)
    created_at: float
    updated_at: float
