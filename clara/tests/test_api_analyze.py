import json
from dataclasses import replace
from types import SimpleNamespace

from fastapi.testclient import TestClient

from clara.api.main import app
from clara.internal_core.config import load_config
from clara.internal_core.contracts import AnalysisResult
from clara.internal_core.errors import EmptyResponseError, MalformedResponseError, UpstreamError
from clara.oracle.gateway import OracleGateway


class FakeGateway:
    def __init__(self, result=None, error=None) -> None:
        self.result = result if result is not None else AnalysisResult(audit_flags=[])
        self.error = error
        self.requests = []

    async def analyze(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


def _clear_injected_state() -> None:
    for name in ("clara_config", "oracle_gateway", "orchestrator"):
        if hasattr(app.state, name):
            delattr(app.state, name)


def _install(gateway, tmp_path, **overrides) -> None:
    _clear_injected_state()
    settings = {"GEMINI_API_KEY": "test-key", "CLARA_TMP_DIR": str(tmp_path / "sessions")}
    settings.update(overrides)
    app.state.clara_config = replace(load_config(), **settings)
    app.state.oracle_gateway = gateway


_HIGH_RISK = AnalysisResult.model_validate(
    {
        "audit_flags": [
            {
                "timestamp": "00:42",
                "bias_type": "Diagnostic Shadowing",
                "risk_level": "High",
                "dialogue_trigger": "It's likely just your anxiety acting up.",
                "clinical_reasoning": "Chest pain attributed to anxiety without an EKG.",
            }
        ]
    }
)


def test_healthz() -> None:
    client = TestClient(app)
    assert client.get("/healthz").json() == {"status": "ok"}


def test_analyze_text_returns_audit_flags(tmp_path) -> None:
    gateway = FakeGateway(result=_HIGH_RISK)
    _install(gateway, tmp_path)
    client = TestClient(app)
    try:
        response = client.post("/api/analyze", json={"type": "text", "text": "Dr: hello"})
    finally:
        _clear_injected_state()

    assert response.status_code == 200
    body = response.json()
    assert list(body) == ["audit_flags"]
    assert body["audit_flags"][0]["bias_type"] == "Diagnostic Shadowing"
    assert body["audit_flags"][0]["clinical_reasoning"].startswith("Chest pain")
    assert gateway.requests[0].text == "Dr: hello"


def test_analyze_rejects_request_with_both_variants(tmp_path) -> None:
    gateway = FakeGateway()
    _install(gateway, tmp_path)
    client = TestClient(app)
    try:
        response = client.post(
            "/api/analyze",
            json={"type": "audio", "data": "AAEC", "mimeType": "audio/wav", "text": "Dr: hi"},
        )
        invalid_json = client.post(
            "/api/analyze", content=b"{broken", headers={"content-type": "application/json"}
        )
    finally:
        _clear_injected_state()

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_request"
    assert invalid_json.status_code == 400
    assert gateway.requests == []


def test_analyze_rejects_oversized_body(tmp_path) -> None:
    gateway = FakeGateway()
    _install(gateway, tmp_path, CLARA_MAX_PAYLOAD_BYTES=64)
    client = TestClient(app)
    try:
        response = client.post(
            "/api/analyze",
            json={"type": "audio", "data": "A" * 200, "mimeType": "audio/wav"},
        )
    finally:
        _clear_injected_state()

    assert response.status_code == 413
    assert "limit" in response.json()["error"]
    assert gateway.requests == []


def test_analyze_without_api_key_returns_500(tmp_path) -> None:
    calls = []

    async def generate_content(**kwargs):
        calls.append(kwargs)

    config = replace(load_config(), GEMINI_API_KEY="")
    gateway = OracleGateway(
        config,
        client=SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content))),
    )
    _install(gateway, tmp_path, GEMINI_API_KEY="")
    client = TestClient(app)
    try:
        response = client.post("/api/analyze", json={"type": "text", "text": "Dr: hello"})
    finally:
        _clear_injected_state()

    assert response.status_code == 500
    assert response.json() == {
        "error": "GEMINI_API_KEY is not configured on the server.",
        "code": "configuration_error",
    }
    assert calls == []


def test_analyze_oracle_failures_map_to_status_codes(tmp_path) -> None:
    cases = [
        (EmptyResponseError("No response received from Gemini."), 502),
        (MalformedResponseError("The analysis service returned output that is not valid JSON."), 502),
        (UpstreamError("Resource exhausted", upstream_status=429), 500),
    ]
    client = TestClient(app)
    for error, status in cases:
        _install(FakeGateway(error=error), tmp_path)
        try:
            response = client.post("/api/analyze", json={"type": "text", "text": "Dr: hello"})
        finally:
            _clear_injected_state()
        assert response.status_code == status
        assert response.json()["error"] == error.message


def test_session_text_flow_and_reset(tmp_path) -> None:
    _install(FakeGateway(result=_HIGH_RISK), tmp_path)
    try:
        with TestClient(app) as client:
            idle = client.get("/session").json()
            assert idle["session"]["phase"] == "idle"

            done = client.post(
                "/session/text?wait=true",
                json={"content": "Dr: It's likely just your anxiety.", "label": "Case 1"},
            )
            assert done.status_code == 200
            body = done.json()
            assert body["session"]["phase"] == "complete"
            assert body["session"]["label"] == "Case 1"
            assert body["summary"]["high_risk_count"] == 1
            assert body["summary"]["reasoning_robust"] is False
            assert body["session"]["result"]["audit_flags"][0]["risk_level"] == "High"

            again = client.post("/session/text?wait=true", json={"content": "Dr: again"})
            assert again.status_code == 409
            assert again.json()["code"] == "session_transition"

            reset = client.post("/session/reset").json()
            assert reset["session"]["phase"] == "idle"
            assert reset["session"]["result"] is None
            assert reset["summary"] is None
    finally:
        _clear_injected_state()


def test_session_audio_upload_exposes_source_until_reset(tmp_path) -> None:
    _install(FakeGateway(), tmp_path)
    try:
        with TestClient(app) as client:
            response = client.post(
                "/session/audio?filename=visit.mp3&wait=true",
                content=b"ID3fakeaudio",
                headers={"content-type": "audio/mpeg"},
            )
            assert response.status_code == 200
            body = response.json()
            assert body["session"]["phase"] == "complete"
            assert body["source_url"] == "/session/source"
            assert body["summary"]["headline"].startswith("Reasoning appears robust")

            source = client.get("/session/source")
            assert source.status_code == 200
            assert source.content == b"ID3fakeaudio"

            client.post("/session/reset")
            assert client.get("/session/source").status_code == 404
            assert list((tmp_path / "sessions").iterdir()) == []
    finally:
        _clear_injected_state()


def test_session_audio_upload_rejects_empty_body(tmp_path) -> None:
    _install(FakeGateway(), tmp_path)
    try:
        with TestClient(app) as client:
            response = client.post("/session/audio?filename=visit.mp3", content=b"")
    finally:
        _clear_injected_state()

    assert response.status_code == 400
    assert json.loads(response.content)["error"] == "Uploaded file is empty."


def test_analyze_unclassified_gateway_error_returns_json(tmp_path) -> None:
    gateway = FakeGateway(error=ValueError("Unsupported response content type"))
    _install(gateway, tmp_path)
    client = TestClient(app)
    try:
        response = client.post("/api/analyze", json={"type": "text", "text": "Dr: hello"})
    finally:
        _clear_injected_state()

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"error": "Unsupported response content type", "code": "upstream_error"}


def test_session_source_missing_uses_error_body(tmp_path) -> None:
    _install(FakeGateway(), tmp_path)
    try:
        with TestClient(app) as client:
            response = client.get("/session/source")
    finally:
        _clear_injected_state()

    assert response.status_code == 404
    assert response.json() == {
        "error": "No source audio is held by the current session.",
        "code": "source_not_found",
    }
