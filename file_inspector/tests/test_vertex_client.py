import types
import httpx
import pytest
from unittest.mock import MagicMock
from google.genai import errors as genai_errors

from config.settings import Settings
from services.errors import OracleError, OracleErrorKind, classify_exception
from services.vertex_client import VertexLLMClient, build_llm_client, parse_json_response


class DummyModels:
    def __init__(self, side_effects):
        self._side_effects = list(side_effects)
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if not self._side_effects:
            raise AssertionError("No more side effects configured")
        effect = self._side_effects.pop(0)
        if isinstance(effect, Exception):
            raise effect
        return types.SimpleNamespace(text=effect)


@pytest.fixture
def client():
    # Bypass credential validation and SDK init
    c = VertexLLMClient.__new__(VertexLLMClient)
    c.model_name = "gemini-test"
    c.client = types.SimpleNamespace(models=DummyModels([]))
    return c


def _api_error(code, message, status):
    return genai_errors.APIError(code, {"error": {"code": code, "message": message, "status": status}})


# ---------- generate_json ----------
def test_generate_json_parses_reply(client):
    client.client.models = DummyModels(['{"results": []}'])

    assert client.generate_json("system", "prompt") == {"results": []}

    call = client.client.models.calls[0]
    assert call["model"] == "gemini-test"
    assert call["contents"] == "prompt"
    assert call["config"].system_instruction == "system"
    assert call["config"].response_mime_type == "application/json"


def test_generate_json_classifies_sdk_errors(client):
    client.client.models = DummyModels([_api_error(429, "Resource exhausted", "RESOURCE_EXHAUSTED")])

    with pytest.raises(OracleError) as exc_info:
        client.generate_json("system", "prompt")
    assert exc_info.value.kind is OracleErrorKind.RATE_LIMITED
    assert exc_info.value.status_code == 429


def test_generate_json_empty_reply_is_malformed(client):
    client.client.models = DummyModels([""])

    with pytest.raises(OracleError) as exc_info:
        client.generate_json("system", "prompt")
    assert exc_info.value.kind is OracleErrorKind.MALFORMED_RESPONSE


# ---------- parse_json_response ----------
def test_parse_plain_json():
    assert parse_json_response('{"a": 1}') == {"a": 1}


def test_parse_fenced_json():
    text = 'Here you go:\n```json\n{"results": [{"index": 0}]}\n```'
    assert parse_json_response(text) == {"results": [{"index": 0}]}


def test_parse_embedded_json():
    assert parse_json_response('Result: {"a": {"b": 2}} trailing') == {"a": {"b": 2}}


def test_parse_garbage_raises():
    with pytest.raises(OracleError) as exc_info:
        parse_json_response("no json here")
    assert exc_info.value.kind is OracleErrorKind.MALFORMED_RESPONSE


# ---------- classify_exception ----------
@pytest.mark.parametrize("code, message, status, kind", [
    (429, "Resource exhausted", "RESOURCE_EXHAUSTED", OracleErrorKind.RATE_LIMITED),
    (401, "Request had invalid authentication credentials", "UNAUTHENTICATED", OracleErrorKind.AUTH_FAILURE),
    (403, "Permission denied", "PERMISSION_DENIED", OracleErrorKind.AUTH_FAILURE),
    (504, "Deadline expired", "DEADLINE_EXCEEDED", OracleErrorKind.TIMEOUT),
    (400, "Quota exceeded for project", "FAILED_PRECONDITION", OracleErrorKind.RATE_LIMITED),
    (500, "Internal error", "INTERNAL", OracleErrorKind.GENERIC),
])
def test_classify_api_errors(code, message, status, kind):
    error = classify_exception(_api_error(code, message, status))
    assert error.kind is kind
    assert error.status_code == code


def test_classify_transport_errors():
    assert classify_exception(httpx.ReadTimeout("slow")).kind is OracleErrorKind.TIMEOUT
    assert classify_exception(httpx.ConnectError("refused")).kind is OracleErrorKind.CONNECTION_ERROR
    assert classify_exception(ConnectionResetError("reset")).kind is OracleErrorKind.CONNECTION_ERROR
    assert classify_exception(TimeoutError()).kind is OracleErrorKind.TIMEOUT


def test_classify_by_message():
    assert classify_exception(Exception("429 Too Many Requests")).kind is OracleErrorKind.RATE_LIMITED
    assert classify_exception(Exception("unauthenticated")).kind is OracleErrorKind.AUTH_FAILURE
    assert classify_exception(Exception("invalid_argument")).kind is OracleErrorKind.GENERIC


def test_classify_keeps_oracle_errors():
    original = OracleError("gone", kind=OracleErrorKind.MISSING_RESULT)
    assert classify_exception(original) is original


# ---------- construction ----------
def test_api_key_client(monkeypatch):
    fake_client = MagicMock()
    monkeypatch.setattr("services.vertex_client.genai.Client", fake_client)

    c = VertexLLMClient(api_key="test-key", model_name="gemini-test")

    assert c.model_name == "gemini-test"
    assert c.client is fake_client.return_value
    assert fake_client.call_args.kwargs["api_key"] == "test-key"
    assert fake_client.call_args.kwargs["vertexai"] is True


def test_missing_credentials_env(monkeypatch):
    monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)
    with pytest.raises(ValueError):
        VertexLLMClient(project="p")


def test_missing_credentials_file(monkeypatch, tmp_path):
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(tmp_path / "nope.json"))
    with pytest.raises(FileNotFoundError):
        VertexLLMClient(project="p")


def test_credentials_file_without_service_account_fields(monkeypatch, tmp_path):
    creds = tmp_path / "creds.json"
    creds.write_text('{"type": "service_account"}')
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(creds))
    with pytest.raises(ValueError):
        VertexLLMClient(project="p")


def test_build_llm_client_unconfigured():
    assert build_llm_client(Settings()) is None


def test_build_llm_client_with_api_key(monkeypatch):
    monkeypatch.setattr("services.vertex_client.genai.Client", MagicMock())
    c = build_llm_client(Settings(api_key="k", model_name="gemini-test"))
    assert isinstance(c, VertexLLMClient)
    assert c.model_name == "gemini-test"
