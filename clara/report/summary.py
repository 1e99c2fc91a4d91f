from __future__ import annotations

"""
Summarize a completed audit for the presenter and the CLI.

Design intent:
- Keep the counts that drive the dashboard (risk distribution, high-risk
  alert) next to the data model instead of inside a renderer.
- Prefer deterministic, explainable rules; no model calls here.
"""

from dataclasses import dataclass, field
from typing import Sequence

from clara.internal_core.contracts import AnalysisResult, AnalysisSession, AuditEvent, BiasType, RiskLevel


@dataclass(frozen=True)
class RiskBucket:
    level: RiskLevel
    name: str
    count: int


@dataclass(frozen=True)
class AuditSummary:
    total_events: int
    high_risk_count: int
    risk_distribution: list[RiskBucket] = field(default_factory=list)
    bias_counts: dict[str, int] = field(default_factory=dict)
    reasoning_robust: bool = True
    headline: str = ""


_BUCKET_NAMES = {
    RiskLevel.HIGH: "High Risk",
    RiskLevel.MEDIUM: "Medium Risk",
    RiskLevel.LOW: "Low Risk",
    RiskLevel.NONE: "Safe Practice",
}


def _risk_distribution(flags: Sequence[AuditEvent]) -> list[RiskBucket]:
    buckets = []
    for level in sorted(RiskLevel, key=lambda item: item.severity, reverse=True):
        count = sum(1 for flag in flags if flag.risk_level is level)
        if count > 0:
            buckets.append(RiskBucket(level=level, name=_BUCKET_NAMES[level], count=count))
    return buckets


def _bias_counts(flags: Sequence[AuditEvent]) -> dict[str, int]:
    counts = {member.value: 0 for member in BiasType}
    for flag in flags:
        counts[flag.bias_type.value] += 1
    return counts


def build_audit_summary(result: AnalysisResult) -> AuditSummary:
    flags = list(result.audit_flags)
    high_risk = result.high_risk_count()
    if high_risk > 0:
        headline = (
            f"High Risk Bias Detected: {high_risk} high-risk logical "
            f"{'failure' if high_risk == 1 else 'failures'} may impact patient safety."
        )
    else:
        headline = "Reasoning appears robust: no high-risk cognitive biases were detected."
    return AuditSummary(
        total_events=len(flags),
        high_risk_count=high_risk,
        risk_distribution=_risk_distribution(flags),
        bias_counts=_bias_counts(flags),
        reasoning_robust=high_risk == 0,
        headline=headline,
    )


def format_report(session: AnalysisSession, summary: AuditSummary | None = None) -> str:
    lines = [f"Source: {session.label or 'untitled'}", f"Status: {session.phase}"]
    if session.phase == "failed":
        lines.append(f"Analysis Failed: {session.failure_reason}")
        return "\n".join(lines)
    if session.result is None:
        return "\n".join(lines)

    summary = summary or build_audit_summary(session.result)
    lines.append(summary.headline)
    if summary.risk_distribution:
        lines.append(
            "Risk distribution: "
            + ", ".join(f"{bucket.name}={bucket.count}" for bucket in summary.risk_distribution)
        )
    lines.append(f"Audit Log ({summary.total_events} Events)")
    for flag in session.result.audit_flags:
        lines.append(f"[{flag.timestamp}] {flag.bias_type.value} / {flag.risk_level.value}")
        lines.append(f'  Trigger: "{flag.dialogue_trigger}"')
        lines.append(f"  Reasoning: {flag.reasoning}")
    return "\n".join(lines)
