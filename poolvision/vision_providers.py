from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import httpx

from .image_inputs import ImageInput

USER_AGENT = "PoolVision/1.0"


class VisionProviderError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out


@dataclass
class VisionProviderResult:
    text: str
    raw_response: Any
    model_used: str
    base_url_used: str
    request_metadata: dict[str, Any]
    parsed: dict[str, Any] | None = field(default=None)


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
        parsed_model: str = "",
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key.strip()
        self.base_url = base_url.strip().rstrip("/")
        self.default_model = default_model.strip()
        self.parsed_model = parsed_model.strip()
        self.timeout_seconds = timeout_seconds
        self.http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.default_model)

    def model_for(self, call_class: str) -> str:
        if call_class == "parsed" and self.parsed_model:
            return self.parsed_model
        return self.default_model

    def availability(self) -> dict[str, Any]:
        return {
            "id": self.route_id,
            "label": self.label,
            "configured": bool(self.configured),
            "default_model": self.default_model,
            "parsed_model": self.parsed_model or self.default_model,
        }

    def analyze(
        self,
        *,
        prompt: str,
        image: ImageInput,
        model_override: str | None = None,
        generation_options: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> VisionProviderResult:
        raise NotImplementedError

    def _resolve_model(self, model_override: str | None) -> str:
        model_used = (model_override or self.default_model).strip()
        if not model_used:
            raise VisionProviderError(f"{self.label} provider is not configured (missing model).")
        return model_used

    def _resolve_timeout(self, timeout_seconds: float | None) -> float:
        if timeout_seconds is None:
            return self.timeout_seconds
        return max(0.1, min(self.timeout_seconds, timeout_seconds))

    def _post(
        self,
        *,
        url: str,
        headers: dict[str, str],
        request_payload: dict[str, Any],
        timeout_seconds: float,
    ) -> Any:
        response = _post_json(
            url=url,
            headers=headers,
            request_payload=request_payload,
            timeout_seconds=timeout_seconds,
            http_client=self.http_client,
        )
        if response.status_code >= 400:
            detail = _extract_error_detail(response)
            raise VisionProviderError(
                f"{self.label} request failed ({response.status_code}): {detail}",
                status_code=int(response.status_code),
            )
        try:
            return response.json()
        except ValueError as exc:
            raise VisionProviderError(f"{self.label} response was not valid JSON: {exc}") from exc


class GeminiVisionProvider(_BaseVisionProvider):
    route_id = "gemini"
    label = "Gemini"

    @classmethod
    def from_env(cls) -> "GeminiVisionProvider":
        timeout_seconds = _parse_timeout_seconds(
            os.getenv("VISION_REQUEST_TIMEOUT_SECONDS"),
            fallback=90.0,
        )
        return cls(
            api_key=os.getenv("VISION_GEMINI_API_KEY", ""),
            base_url=os.getenv("VISION_GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"),
            default_model=os.getenv("VISION_GEMINI_MODEL", "gemini-1.5-flash"),
            parsed_model=os.getenv("VISION_GEMINI_PARSED_MODEL", "gemini-1.5-pro-latest"),
            timeout_seconds=timeout_seconds,
        )

    def analyze(
        self,
        *,
        prompt: str,
        image: ImageInput,
        model_override: str | None = None,
        generation_options: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> VisionProviderResult:
        if not self.api_key:
            raise VisionProviderError("Gemini provider is not configured (missing VISION_GEMINI_API_KEY).")
        model_used = self._resolve_model(model_override)
        if not self.base_url.startswith("http"):
            raise VisionProviderError("Invalid Gemini base URL.")

        version_root = self.base_url if self.base_url.endswith("/v1beta") else f"{self.base_url}/v1beta"
        endpoint = f"{version_root}/models/{model_used}:generateContent"

        request_payload: dict[str, Any] = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {
                            "inline_data": {
                                "mime_type": image.media_type,
                                "data": image.to_base64(),
                            }
                        },
                    ],
                }
            ],
        }
        if generation_options:
            request_payload["generationConfig"] = dict(generation_options)

        payload = self._post(
            url=endpoint,
            headers={
                "x-goog-api-key": self.api_key,
                "Content-Type": "application/json",
            },
            request_payload=request_payload,
            timeout_seconds=self._resolve_timeout(timeout_seconds),
        )
        text = _extract_gemini_text(payload)
        return VisionProviderResult(
            text=text,
            raw_response=payload,
            model_used=model_used,
            base_url_used=self.base_url,
            request_metadata={
                "provider": self.route_id,
                "endpoint": endpoint,
                "model": model_used,
                "image": image.describe(),
            },
        )


class ClaudeVisionProvider(_BaseVisionProvider):
    route_id = "claude"
    label = "Claude"

    @classmethod
    def from_env(cls) -> "ClaudeVisionProvider":
        timeout_seconds = _parse_timeout_seconds(
            os.getenv("VISION_REQUEST_TIMEOUT_SECONDS"),
            fallback=90.0,
        )
        return cls(
            api_key=os.getenv("VISION_CLAUDE_API_KEY", ""),
            base_url=os.getenv("VISION_CLAUDE_BASE_URL", "https://api.anthropic.com"),
            default_model=os.getenv("VISION_CLAUDE_MODEL", "claude-3-5-sonnet-20241022"),
            parsed_model=os.getenv("VISION_CLAUDE_PARSED_MODEL", "claude-3-opus-20240229"),
            timeout_seconds=timeout_seconds,
        )

    def analyze(
        self,
        *,
        prompt: str,
        image: ImageInput,
        model_override: str | None = None,
        generation_options: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> VisionProviderResult:
        if not self.api_key:
            raise VisionProviderError("Claude provider is not configured (missing VISION_CLAUDE_API_KEY).")
        model_used = self._resolve_model(model_override)
        if not self.base_url.startswith("http"):
            raise VisionProviderError("Invalid Claude base URL.")

        endpoint = f"{self.base_url}/messages" if self.base_url.endswith("/v1") else f"{self.base_url}/v1/messages"

        request_payload: dict[str, Any] = {
            "model": model_used,
            "max_tokens": 1024,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": image.media_type,
                                "data": image.to_base64(),
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        }
        if generation_options:
            request_payload.update(generation_options)

        payload = self._post(
            url=endpoint,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
                "content-type": "application/json",
            },
            request_payload=request_payload,
            timeout_seconds=self._resolve_timeout(timeout_seconds),
        )
        text = _extract_claude_text(payload)
        return VisionProviderResult(
            text=text,
            raw_response=payload,
            model_used=model_used,
            base_url_used=self.base_url,
            request_metadata={
                "provider": self.route_id,
                "endpoint": endpoint,
                "model": model_used,
                "image": image.describe(),
            },
        )


class OpenAIVisionProvider(_BaseVisionProvider):
    route_id = "openai"
    label = "OpenAI"

    @classmethod
    def from_env(cls) -> "OpenAIVisionProvider":
        timeout_seconds = _parse_timeout_seconds(
            os.getenv("VISION_REQUEST_TIMEOUT_SECONDS"),
            fallback=90.0,
        )
        return cls(
            api_key=os.getenv("VISION_OPENAI_API_KEY", ""),
            base_url=os.getenv("VISION_OPENAI_BASE_URL", "https://api.openai.com/v1"),
            default_model=os.getenv("VISION_OPENAI_MODEL", ""),
            parsed_model=os.getenv("VISION_OPENAI_PARSED_MODEL", ""),
            timeout_seconds=timeout_seconds,
        )

    def analyze(
        self,
        *,
        prompt: str,
        image: ImageInput,
        model_override: str | None = None,
        generation_options: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> VisionProviderResult:
        if not self.api_key:
            raise VisionProviderError("OpenAI provider is not configured (missing VISION_OPENAI_API_KEY).")
        return _analyze_chat_completions(
            self,
            prompt=prompt,
            image=image,
            model_used=self._resolve_model(model_override),
            api_key=self.api_key,
            generation_options=generation_options,
            timeout_seconds=self._resolve_timeout(timeout_seconds),
        )


class LocalOpenAICompatVisionProvider(_BaseVisionProvider):
    route_id = "local"
    label = "Local LM Studio"

    @classmethod
    def from_env(cls) -> "LocalOpenAICompatVisionProvider":
        timeout_seconds = _parse_timeout_seconds(
            os.getenv("VISION_REQUEST_TIMEOUT_SECONDS"),
            fallback=90.0,
        )
        return cls(
            api_key=os.getenv("VISION_LOCAL_API_KEY", ""),
            base_url=os.getenv("VISION_LOCAL_BASE_URL", "http://127.0.0.1:1234/v1"),
            default_model=os.getenv("VISION_LOCAL_MODEL", ""),
            timeout_seconds=timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.default_model)

    def analyze(
        self,
        *,
        prompt: str,
        image: ImageInput,
        model_override: str | None = None,
        generation_options: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> VisionProviderResult:
        return _analyze_chat_completions(
            self,
            prompt=prompt,
            image=image,
            model_used=self._resolve_model(model_override),
            api_key=self.api_key,
            generation_options=generation_options,
            timeout_seconds=self._resolve_timeout(timeout_seconds),
        )


def build_default_providers(
    *,
    http_client: httpx.Client | None = None,
) -> dict[str, _BaseVisionProvider]:
    providers: dict[str, _BaseVisionProvider] = {
        "gemini": GeminiVisionProvider.from_env(),
        "claude": ClaudeVisionProvider.from_env(),
        "openai": OpenAIVisionProvider.from_env(),
        "local": LocalOpenAICompatVisionProvider.from_env(),
    }
    if http_client is not None:
        for provider in providers.values():
            provider.http_client = http_client
    return providers


def _analyze_chat_completions(
    provider: _BaseVisionProvider,
    *,
    prompt: str,
    image: ImageInput,
    model_used: str,
    api_key: str,
    generation_options: dict[str, Any] | None,
    timeout_seconds: float,
) -> VisionProviderResult:
    if not provider.base_url.startswith("http"):
        raise VisionProviderError(f"Invalid {provider.label} base URL.")

    request_payload: dict[str, Any] = {
        "model": model_used,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image.to_data_url()}},
                ],
            }
        ],
    }
    if generation_options:
        request_payload.update(generation_options)
    request_payload.setdefault("temperature", 0)

    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    url = _build_chat_completions_url(provider.base_url)
    payload = provider._post(
        url=url,
        headers=headers,
        request_payload=request_payload,
        timeout_seconds=timeout_seconds,
    )
    text = _extract_openai_text(payload, label=provider.label)
    return VisionProviderResult(
        text=text,
        raw_response=payload,
        model_used=model_used,
        base_url_used=provider.base_url,
        request_metadata={
            "provider": provider.route_id,
            "endpoint": url,
            "model": model_used,
            "image": image.describe(),
        },
    )


def _parse_timeout_seconds(raw_value: str | None, *, fallback: float) -> float:
    if raw_value is None:
        return fallback
    try:
        parsed = float(raw_value)
    except ValueError:
        return fallback
    if parsed <= 0:
        return fallback
    return parsed


def _post_json(
    *,
    url: str,
    headers: dict[str, str],
    request_payload: dict[str, Any],
    timeout_seconds: float,
    http_client: httpx.Client | None = None,
) -> httpx.Response:
    normalized_headers = dict(headers)
    normalized_headers.setdefault("Accept", "application/json")
    normalized_headers.setdefault("User-Agent", USER_AGENT)

    try:
        if http_client is not None:
            return http_client.post(
                url,
                headers=normalized_headers,
                json=request_payload,
                timeout=timeout_seconds,
            )
        return httpx.post(
            url,
            headers=normalized_headers,
            json=request_payload,
            timeout=timeout_seconds,
        )
    except httpx.TimeoutException as exc:
        raise VisionProviderError(f"HTTP request timed out after {timeout_seconds:.1f}s", timed_out=True) from exc
    except httpx.HTTPError as exc:
        raise VisionProviderError(f"HTTP request failed: {exc}") from exc


def _extract_gemini_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise VisionProviderError("Invalid Gemini response payload.")
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        feedback = payload.get("promptFeedback")
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            raise VisionProviderError(f"Gemini blocked the request: {feedback['blockReason']}")
        raise VisionProviderError("Gemini response does not contain candidates.")
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise VisionProviderError("Gemini response missing content parts.")
    chunks = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
    if not chunks:
        raise VisionProviderError("Gemini response did not include text content.")
    return "\n".join(chunks)


def _extract_openai_text(payload: Any, *, label: str = "OpenAI") -> str:
    if not isinstance(payload, dict):
        raise VisionProviderError(f"Invalid {label} response payload.")
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise VisionProviderError(f"{label} response does not contain choices.")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise VisionProviderError(f"{label} response missing message payload.")

    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        chunks: list[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                chunks.append(item["text"])
        if chunks:
            return "\n".join(chunks)
    raise VisionProviderError(f"{label} response did not include text content.")


def _extract_claude_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise VisionProviderError("Invalid Claude response payload.")
    content = payload.get("content")
    if not isinstance(content, list):
        raise VisionProviderError("Claude response missing content array.")
    chunks: list[str] = []
    for item in content:
        if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
            chunks.append(item["text"])
    if not chunks:
        raise VisionProviderError("Claude response did not include text content.")
    return "\n".join(chunks)


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        if isinstance(payload.get("error"), dict):
            message = payload["error"].get("message")
            if isinstance(message, str) and message:
                return message
        detail = payload.get("detail")
        if isinstance(detail, str) and detail:
            return detail
    body = response.text.strip()
    return body[:300] if body else "Unknown provider error"


def _build_chat_completions_url(base_url: str) -> str:
    normalized = base_url.strip().rstrip("/")
    if normalized.endswith("/chat/completions"):
        return normalized
    return f"{normalized}/chat/completions"
