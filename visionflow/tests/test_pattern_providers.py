from __future__ import annotations

import base64
import json
import sys
from pathlib import Path

import httpx
import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from visionflow import pattern_providers  # noqa: E402
from visionflow.pattern_config import PatternAnalysisConfig  # noqa: E402
from visionflow.pattern_providers import (  # noqa: E402
    GeminiVisionProvider,
    OpenAICompatVisionProvider,
    ProviderAuthError,
    ProviderServiceError,
    ProviderTimeoutError,
    _post_json,
    build_provider,
)


def _gemini(**overrides) -> GeminiVisionProvider:
    options = {
        "api_key": "test-key",
        "base_url": "https://example.test/v1beta/",
        "default_model": "gemini-test",
        "timeout_seconds": 12.0,
        "generation_defaults": {"temperature": 0.25, "topK": 20},
    }
    options.update(overrides)
    return GeminiVisionProvider(**options)


def _capture_post(monkeypatch, *, status_code: int, body):
    captured: dict[str, object] = {}

    def fake_post_json(*, url, headers, request_payload, timeout_seconds):
        captured["url"] = url
        captured["headers"] = headers
        captured["payload"] = request_payload
        captured["timeout"] = timeout_seconds
        text = body if isinstance(body, str) else json.dumps(body)
        return httpx.Response(status_code, text=text)

    monkeypatch.setattr(pattern_providers, "_post_json", fake_post_json)
    return captured


def test_gemini_request_carries_image_schema_and_generation_config(monkeypatch):
    captured = _capture_post(
        monkeypatch,
        status_code=200,
        body={
            "candidates": [
                {
                    "content": {"parts": [{"text": '{"patterns": '}, {"text": "[]}"}]},
                    "finishReason": "STOP",
                }
            ]
        },
    )

    result = _gemini().invoke(
        system_prompt="system",
        user_prompt="user",
        image_bytes=b"jpeg-bytes",
        schema_hint={"type": "OBJECT"},
    )

    assert result.text == '{"patterns": []}'
    assert result.model_used == "gemini-test"
    assert result.request_metadata["finish_reason"] == "STOP"
    assert captured["url"] == "https://example.test/v1beta/models/gemini-test:generateContent"
    assert captured["headers"]["x-goog-api-key"] == "test-key"
    assert captured["timeout"] == 12.0

    payload = captured["payload"]
    assert payload["systemInstruction"]["parts"][0]["text"] == "system"
    parts = payload["contents"][0]["parts"]
    assert parts[0] == {"text": "user"}
    assert parts[1]["inlineData"]["mimeType"] == "image/jpeg"
    assert base64.b64decode(parts[1]["inlineData"]["data"]) == b"jpeg-bytes"
    generation = payload["generationConfig"]
    assert generation["responseMimeType"] == "application/json"
    assert generation["responseSchema"] == {"type": "OBJECT"}
    assert generation["temperature"] == 0.25
    assert generation["topK"] == 20


def test_gemini_without_candidates_returns_empty_text(monkeypatch):
    _capture_post(monkeypatch, status_code=200, body={"promptFeedback": {"blockReason": "SAFETY"}})
    result = _gemini().invoke(system_prompt="s", user_prompt="u", image_bytes=b"x")
    assert result.text == ""
    assert result.request_metadata["finish_reason"] is None


def test_missing_api_key_is_an_auth_error(monkeypatch):
    captured = _capture_post(monkeypatch, status_code=200, body={})
    with pytest.raises(ProviderAuthError):
        _gemini(api_key="").invoke(system_prompt="s", user_prompt="u", image_bytes=b"x")
    assert captured == {}


@pytest.mark.parametrize("status_code", [401, 403])
def test_unauthorized_status_is_an_auth_error(monkeypatch, status_code):
    _capture_post(monkeypatch, status_code=status_code, body={"error": {"message": "denied"}})
    with pytest.raises(ProviderAuthError):
        _gemini().invoke(system_prompt="s", user_prompt="u", image_bytes=b"x")


def test_invalid_api_key_message_is_an_auth_error(monkeypatch):
    _capture_post(
        monkeypatch,
        status_code=400,
        body={"error": {"status": "INVALID_ARGUMENT", "message": "API key not valid. Please pass a valid API key."}},
    )
    with pytest.raises(ProviderAuthError):
        _gemini().invoke(system_prompt="s", user_prompt="u", image_bytes=b"x")


@pytest.mark.parametrize(("status_code", "retryable"), [(429, True), (500, True), (503, True), (400, False), (404, False)])
def test_service_errors_are_classified_by_status(monkeypatch, status_code, retryable):
    _capture_post(monkeypatch, status_code=status_code, body={"error": {"message": "nope"}})
    with pytest.raises(ProviderServiceError) as exc_info:
        _gemini().invoke(system_prompt="s", user_prompt="u", image_bytes=b"x")

    assert exc_info.value.status_code == status_code
    assert exc_info.value.retryable is retryable


def test_openai_provider_posts_chat_completion_with_data_url(monkeypatch):
    captured = _capture_post(
        monkeypatch,
        status_code=200,
        body={"choices": [{"message": {"content": '{"patterns": []}'}}]},
    )
    provider = OpenAICompatVisionProvider(
        api_key="sk-test",
        base_url="https://api.example.test/v1",
        default_model="gpt-test",
        timeout_seconds=20.0,
    )

    result = provider.invoke(system_prompt="s", user_prompt="u", image_bytes=b"png")

    assert result.text == '{"patterns": []}'
    assert captured["url"] == "https://api.example.test/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-test"
    payload = captured["payload"]
    assert payload["model"] == "gpt-test"
    assert payload["response_format"] == {"type": "json_object"}
    image_part = payload["messages"][1]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_build_provider_follows_route_and_generation_settings():
    gemini = build_provider(PatternAnalysisConfig(api_key="k"))
    assert isinstance(gemini, GeminiVisionProvider)
    assert gemini.generation_defaults == {
        "temperature": 0.25,
        "maxOutputTokens": 3072,
        "topK": 20,
        "topP": 0.85,
    }
    assert gemini.availability() == {
        "id": "gemini",
        "label": "Gemini",
        "configured": True,
        "default_model": "gemini-2.0-flash-exp",
    }

    openai = build_provider(
        PatternAnalysisConfig(provider_route="openai", api_key="", model="gpt-4o", base_url="https://api.openai.com/v1")
    )
    assert isinstance(openai, OpenAICompatVisionProvider)
    assert openai.configured is False


def test_post_json_returns_the_httpx_response(monkeypatch):
    sent: dict[str, object] = {}

    def fake_post(url, *, headers, json, timeout):
        sent.update(url=url, headers=headers, json=json, timeout=timeout)
        return httpx.Response(200, json={"ok": True})

    monkeypatch.setattr(pattern_providers.httpx, "post", fake_post)

    response = _post_json(
        url="https://example.test/x",
        headers={"Content-Type": "application/json"},
        request_payload={"a": 1},
        timeout_seconds=5.0,
    )

    assert isinstance(response, httpx.Response)
    assert response.json() == {"ok": True}
    assert sent["json"] == {"a": 1}
    assert sent["timeout"] == 5.0
    assert sent["headers"]["Accept"] == "application/json"


@pytest.mark.parametrize(
    ("raised", "expected"),
    [
        (httpx.ReadTimeout("slow"), ProviderTimeoutError),
        (httpx.ConnectError("refused"), ProviderServiceError),
    ],
)
def test_post_json_classifies_transport_failures(monkeypatch, raised, expected):
    def fake_post(url, *, headers, json, timeout):
        raise raised

    monkeypatch.setattr(pattern_providers.httpx, "post", fake_post)

    with pytest.raises(expected):
        _post_json(url="https://example.test/x", headers={}, request_payload={}, timeout_seconds=1.0)
