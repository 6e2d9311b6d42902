from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

import httpx

from .pattern_config import PatternAnalysisConfig


class VisionProviderError(RuntimeError):
    pass


class ProviderAuthError(VisionProviderError):
    pass


class ProviderTimeoutError(VisionProviderError):
    pass


class ProviderServiceError(VisionProviderError):
    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


@dataclass
class ProviderResult:
    text: str
    raw_response: Any
    model_used: str
    request_metadata: dict[str, Any]


class _BaseVisionProvider:
    route_id: str = ""
    label: str = ""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        default_model: str,
        timeout_seconds: float,
        generation_defaults: dict[str, Any] | None = None,
    ) -> None:
        self.api_key = api_key.strip()
        self.base_url = base_url.strip().rstrip("/")
        self.default_model = default_model.strip()
        self.timeout_seconds = timeout_seconds
        self.generation_defaults = generation_defaults or {}

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.default_model)

    def availability(self) -> dict[str, Any]:
        return {
            "id": self.route_id,
            "label": self.label,
            "configured": bool(self.configured),
            "default_model": self.default_model,
        }

    def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        image_bytes: bytes,
        schema_hint: dict[str, Any] | None = None,
        image_media_type: str = "image/jpeg",
    ) -> ProviderResult:
        raise NotImplementedError

    def _require_credentials(self, env_name: str) -> None:
        if not self.api_key:
            raise ProviderAuthError(f"{self.label} provider is not configured (missing {env_name}).")
        if not self.default_model:
            raise ProviderAuthError(f"{self.label} provider is not configured (missing model).")
        if not self.base_url.startswith("http"):
            raise ProviderAuthError(f"Invalid {self.label} base URL.")


class GeminiVisionProvider(_BaseVisionProvider):
    route_id = "gemini"
    label = "Gemini"

    def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        image_bytes: bytes,
        schema_hint: dict[str, Any] | None = None,
        image_media_type: str = "image/jpeg",
    ) -> ProviderResult:
        if not image_bytes:
            raise VisionProviderError("An image is required for Gemini pattern analysis.")
        self._require_credentials("VISIONFLOW_GEMINI_API_KEY")

        generation_config: dict[str, Any] = {
            "responseMimeType": "application/json",
        }
        generation_config.update(self.generation_defaults)
        if schema_hint:
            generation_config["responseSchema"] = schema_hint

        request_payload = {
            "systemInstruction": {
                "parts": [{"text": system_prompt}],
            },
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": user_prompt},
                        {
                            "inlineData": {
                                "mimeType": image_media_type,
                                "data": base64.b64encode(image_bytes).decode("ascii"),
                            }
                        },
                    ],
                }
            ],
            "generationConfig": generation_config,
        }

        url = f"{self.base_url}/models/{self.default_model}:generateContent"
        response = _post_json(
            url=url,
            headers={
                "x-goog-api-key": self.api_key,
                "Content-Type": "application/json",
            },
            request_payload=request_payload,
            timeout_seconds=self.timeout_seconds,
        )
        _raise_for_status(response, label=self.label)
        try:
            payload = response.json()
        except Exception as exc:
            raise ProviderServiceError(f"Gemini response envelope was not valid JSON: {exc}") from exc

        text = _extract_gemini_text(payload)
        return ProviderResult(
            text=text,
            raw_response=payload,
            model_used=self.default_model,
            request_metadata={
                "provider": self.route_id,
                "endpoint": url,
                "model": self.default_model,
                "finish_reason": _extract_gemini_finish_reason(payload),
            },
        )


class OpenAICompatVisionProvider(_BaseVisionProvider):
    route_id = "openai"
    label = "OpenAI"

    def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        image_bytes: bytes,
        schema_hint: dict[str, Any] | None = None,
        image_media_type: str = "image/jpeg",
    ) -> ProviderResult:
        if not image_bytes:
            raise VisionProviderError("An image is required for OpenAI pattern analysis.")
        self._require_credentials("VISIONFLOW_OPENAI_API_KEY")

        data_url = f"data:{image_media_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        request_payload: dict[str, Any] = {
            "model": self.default_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": user_prompt},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                },
            ],
            "response_format": {"type": "json_object"},
        }
        request_payload.update(self.generation_defaults)

        url = _build_chat_completions_url(self.base_url)
        response = _post_json(
            url=url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            request_payload=request_payload,
            timeout_seconds=self.timeout_seconds,
        )
        _raise_for_status(response, label=self.label)
        try:
            payload = response.json()
        except Exception as exc:
            raise ProviderServiceError(f"OpenAI response envelope was not valid JSON: {exc}") from exc

        text = _extract_openai_text(payload)
        return ProviderResult(
            text=text,
            raw_response=payload,
            model_used=self.default_model,
            request_metadata={
                "provider": self.route_id,
                "endpoint": url,
                "model": self.default_model,
            },
        )


def build_provider(config: PatternAnalysisConfig) -> _BaseVisionProvider:
    if config.provider_route == "openai":
        return OpenAICompatVisionProvider(
            api_key=config.api_key,
            base_url=config.base_url,
            default_model=config.model,
            timeout_seconds=config.timeout_seconds,
            generation_defaults={
                "temperature": config.temperature,
                "max_tokens": config.max_output_tokens,
                "top_p": config.top_p,
            },
        )
    return GeminiVisionProvider(
        api_key=config.api_key,
        base_url=config.base_url,
        default_model=config.model,
        timeout_seconds=config.timeout_seconds,
        generation_defaults={
            "temperature": config.temperature,
            "maxOutputTokens": config.max_output_tokens,
            "topK": config.top_k,
            "topP": config.top_p,
        },
    )


def _post_json(
    *,
    url: str,
    headers: dict[str, str],
    request_payload: dict[str, Any],
    timeout_seconds: float,
) -> httpx.Response:
    normalized_headers = dict(headers)
    normalized_headers.setdefault("Accept", "application/json")
    normalized_headers.setdefault("User-Agent", "VisionFlow/1.0")

    try:
        return httpx.post(
            url,
            headers=normalized_headers,
            json=request_payload,
            timeout=timeout_seconds,
        )
    except httpx.TimeoutException as exc:
        raise ProviderTimeoutError(f"Model request timed out after {timeout_seconds:g}s: {exc}") from exc
    except httpx.HTTPError as exc:
        raise ProviderServiceError(f"HTTP request failed: {exc}") from exc


def _raise_for_status(response: httpx.Response, *, label: str) -> None:
    if response.status_code < 400:
        return
    detail = _extract_error_detail(response)
    message = f"{label} request failed ({response.status_code}): {detail}"
    if response.status_code in {401, 403} or "API_KEY" in detail.upper().replace(" ", "_"):
        raise ProviderAuthError(message)
    retryable = response.status_code in {408, 429} or response.status_code >= 500
    raise ProviderServiceError(message, status_code=response.status_code, retryable=retryable)


def _extract_gemini_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise ProviderServiceError("Invalid Gemini response payload.")
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        # Blocked prompts come back without candidates; the parser reports it as empty.
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list):
        return ""
    chunks: list[str] = []
    for part in parts:
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            chunks.append(part["text"])
    return "".join(chunks)


def _extract_gemini_finish_reason(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    reason = candidates[0].get("finishReason")
    return reason if isinstance(reason, str) else None


def _extract_openai_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise ProviderServiceError("Invalid OpenAI response payload.")
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProviderServiceError("OpenAI response does not contain choices.")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise ProviderServiceError("OpenAI response missing message payload.")

    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        chunks: list[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                chunks.append(item["text"])
        return "\n".join(chunks)
    return ""


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
        if isinstance(payload, dict):
            if isinstance(payload.get("error"), dict):
                error = payload["error"]
                message = error.get("message")
                status = error.get("status")
                if isinstance(message, str) and message:
                    if isinstance(status, str) and status:
                        return f"{status}: {message}"
                    return message
            detail = payload.get("detail")
            if isinstance(detail, str) and detail:
                return detail
    except Exception:
        pass
    body = response.text.strip()
    return body[:300] if body else "Unknown provider error"


def _build_chat_completions_url(base_url: str) -> str:
    normalized = base_url.strip().rstrip("/")
    if normalized.endswith("/chat/completions"):
        return normalized
    return f"{normalized}/chat/completions"
