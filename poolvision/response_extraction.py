from __future__ import annotations

import json
import re
from typing import Any

from .normalization import finite_float

_FENCE_PATTERN = re.compile(r"```[ \t]*(?:json)?[ \t]*\r?\n?", flags=re.IGNORECASE)
PREVIEW_LIMIT = 200


class NoJsonFound(RuntimeError):
    def __init__(self, message: str, *, preview: str = "") -> None:
        super().__init__(message)
        self.preview = preview


def extract_json_object(response: Any) -> dict[str, Any]:
    if isinstance(response, dict):
        return response
    if isinstance(response, (bytes, bytearray)):
        response = bytes(response).decode("utf-8", errors="replace")
    if not isinstance(response, str):
        raise NoJsonFound(f"Unsupported provider response type: {type(response).__name__}")

    cleaned = strip_code_fences(response)
    if not cleaned:
        raise NoJsonFound("Provider response was empty.")

    try:
        payload = _loads(cleaned)
    except ValueError:
        payload = None
    else:
        if isinstance(payload, dict):
            return payload

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start < 0 or end <= start:
        raise NoJsonFound("No JSON object found in provider response.", preview=preview_text(response))

    try:
        payload = _loads(cleaned[start : end + 1])
    except ValueError as exc:
        raise NoJsonFound(
            f"Provider response contained malformed JSON: {exc}",
            preview=preview_text(response),
        ) from exc
    if not isinstance(payload, dict):
        raise NoJsonFound("Provider response JSON was not an object.", preview=preview_text(response))
    return payload


def _loads(text: str) -> Any:
    # NaN, Infinity and out-of-range floats become null.
    return json.loads(text, parse_constant=lambda _: None, parse_float=finite_float)


def strip_code_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", text).replace("```", "").strip()


def preview_text(text: Any) -> str:
    value = str(text or "").strip()
    if len(value) <= PREVIEW_LIMIT:
        return value
    return value[:PREVIEW_LIMIT] + "..."
