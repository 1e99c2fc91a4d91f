from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from clara.audio.normalizer import AudioSource
from clara.internal_core.config import ClaraConfig, load_config
from clara.internal_core.contracts import AnalysisSession
from clara.oracle.gateway import OracleGateway
from clara.oracle.http_client import AnalyzeServiceClient
from clara.orchestrator.state_machine import AnalysisGateway, AnalysisOrchestrator
from clara.report.summary import build_audit_summary, format_report


def _build_gateway(config: ClaraConfig, service_url: Optional[str]) -> AnalysisGateway:
    if service_url:
        return AnalyzeServiceClient(service_url, timeout=float(config.CLARA_ORACLE_TIMEOUT_SECONDS))
    return OracleGateway.from_config(config)


async def run_audit(
    orchestrator: AnalysisOrchestrator,
    *,
    audio: Optional[Path] = None,
    transcript: Optional[str] = None,
    label: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> AnalysisSession:
    try:
        if audio is not None:
            await orchestrator.submit_audio(
                AudioSource(filename=audio.name, mime_type=mime_type, path=audio),
                label=label,
            )
        else:
            await orchestrator.submit_text(transcript or "", label=label)
        return orchestrator.session
    finally:
        orchestrator.reset()


def _session_payload(session: AnalysisSession) -> dict:
    payload = {
        "label": session.label,
        "phase": session.phase,
        "failure_reason": session.failure_reason,
        "audit_flags": [],
    }
    if session.result is not None:
        summary = build_audit_summary(session.result)
        payload["audit_flags"] = [
            flag.model_dump(mode="json", by_alias=True) for flag in session.result.audit_flags
        ]
        payload["high_risk_count"] = summary.high_risk_count
        payload["reasoning_robust"] = summary.reasoning_robust
    return payload


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Audit a consultation recording or transcript for clinical-reasoning biases."
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--audio", help="Path to a consultation recording (mp3, wav, aac, ...).")
    source.add_argument("--transcript", help="Path to a UTF-8 transcript file.")
    source.add_argument("--text", help="Transcript text passed inline.")
    parser.add_argument("--label", default=None, help="Display name for the case.")
    parser.add_argument("--mime-type", default=None, help="Override the audio media type.")
    parser.add_argument(
        "--service-url",
        default=None,
        help="Send the analysis to a running CLARA service instead of calling Gemini directly.",
    )
    parser.add_argument("--json", action="store_true", help="Print the result as JSON.")
    args = parser.parse_args(argv)

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.CLARA_LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    audio_path: Optional[Path] = None
    transcript: Optional[str] = None
    label = args.label
    if args.audio:
        audio_path = Path(args.audio).expanduser()
    elif args.transcript:
        transcript_path = Path(args.transcript).expanduser()
        try:
            transcript = transcript_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SystemExit(f"transcript file not readable: {transcript_path} ({exc})")
        label = label or transcript_path.name
    else:
        transcript = args.text

    orchestrator = AnalysisOrchestrator(_build_gateway(config, args.service_url), config=config)
    session = asyncio.run(
        run_audit(
            orchestrator,
            audio=audio_path,
            transcript=transcript,
            label=label,
            mime_type=args.mime_type,
        )
    )

    if args.json:
        print(json.dumps(_session_payload(session), indent=2, ensure_ascii=False))
    else:
        print(format_report(session))
    return 0 if session.phase == "complete" else 1


if __name__ == "__main__":
    sys.exit(main())
