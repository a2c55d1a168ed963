from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from .provider_availability import DEFAULT_COOLDOWN_SECONDS
from .provider_registry import DEFAULT_PROVIDER_ORDER
from .vision_providers import _parse_timeout_seconds

DEFAULT_MAX_CONCURRENCY = 4


@dataclass(frozen=True)
class PoolVisionSettings:
    provider_order: tuple[str, ...] = DEFAULT_PROVIDER_ORDER
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    request_deadline_seconds: float | None = None
    image_fetch_timeout_seconds: float = 30.0
    enrich_equipment: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "PoolVisionSettings":
        max_concurrency = _parse_optional_int(os.getenv("POOLVISION_MAX_CONCURRENCY"))
        deadline = _parse_optional_float(os.getenv("POOLVISION_REQUEST_DEADLINE_SECONDS"))
        return cls(
            provider_order=_parse_provider_order(os.getenv("POOLVISION_PROVIDER_ORDER")),
            cooldown_seconds=_parse_timeout_seconds(
                os.getenv("POOLVISION_PROVIDER_COOLDOWN_SECONDS"),
                fallback=DEFAULT_COOLDOWN_SECONDS,
            ),
            max_concurrency=max_concurrency if max_concurrency and max_concurrency > 0 else DEFAULT_MAX_CONCURRENCY,
            request_deadline_seconds=deadline if deadline and deadline > 0 else None,
            image_fetch_timeout_seconds=_parse_timeout_seconds(
                os.getenv("POOLVISION_IMAGE_FETCH_TIMEOUT_SECONDS"),
                fallback=30.0,
            ),
            enrich_equipment=_parse_bool_env(os.getenv("POOLVISION_ENRICH_EQUIPMENT"), default=True),
            log_level=_parse_log_level(os.getenv("POOLVISION_LOG_LEVEL")),
        )


def _parse_provider_order(raw_value: str | None) -> tuple[str, ...]:
    if raw_value is None:
        return DEFAULT_PROVIDER_ORDER
    names: list[str] = []
    for item in raw_value.split(","):
        name = item.strip().lower()
        if name and name not in names:
            names.append(name)
    return tuple(names) or DEFAULT_PROVIDER_ORDER


def _parse_log_level(raw_value: str | None) -> str:
    value = (raw_value or "").strip().upper()
    # getLevelName maps known names to their numeric level.
    if value and isinstance(logging.getLevelName(value), int):
        return value
    return "INFO"


def _parse_bool_env(raw_value: str | None, *, default: bool) -> bool:
    if raw_value is None:
        return default
    value = raw_value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_optional_int(raw_value: str | None) -> int | None:
    if raw_value is None:
        return None
    try:
        parsed = int(raw_value)
    except ValueError:
        return None
    return parsed


def _parse_optional_float(raw_value: str | None) -> float | None:
    if raw_value is None:
        return None
    try:
        parsed = float(raw_value)
    except ValueError:
        return None
    return parsed
