from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

from .image_inputs import ImageInput
from .provider_availability import DEFAULT_COOLDOWN_SECONDS, AvailabilityTracker
from .response_extraction import extract_json_object
from .vision_providers import VisionProviderResult

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_ORDER: tuple[str, ...] = ("gemini", "claude", "openai", "local")

# Request options applied to auto-parsed calls, keyed by provider route id.
PARSED_GENERATION_OPTIONS: dict[str, dict[str, Any]] = {
    "gemini": {"temperature": 0.1, "topK": 1, "topP": 0.8, "maxOutputTokens": 1024},
    "claude": {"temperature": 0},
    "openai": {"temperature": 0},
    "local": {"temperature": 0},
}


class CallClass(str, Enum):
    RAW = "raw"
    PARSED = "parsed"


class VisionProvider(Protocol):
    route_id: str
    label: str

    @property
    def configured(self) -> bool: ...

    def model_for(self, call_class: str) -> str: ...

    def availability(self) -> dict[str, Any]: ...

    def analyze(
        self,
        *,
        prompt: str,
        image: ImageInput,
        model_override: str | None = None,
        generation_options: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> VisionProviderResult: ...


@dataclass(frozen=True)
class ProviderAdapter:
    name: str
    call_class: CallClass
    provider: VisionProvider
    model: str
    generation_options: dict[str, Any] = field(default_factory=dict)

    def analyze(
        self,
        *,
        image: ImageInput,
        instruction: str,
        timeout_seconds: float | None = None,
    ) -> VisionProviderResult:
        result = self.provider.analyze(
            prompt=instruction,
            image=image,
            model_override=self.model or None,
            generation_options=self.generation_options or None,
            timeout_seconds=timeout_seconds,
        )
        if self.call_class is CallClass.PARSED:
            result.parsed = extract_json_object(result.text)
        return result

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "call_class": self.call_class.value,
            "model": self.model,
        }


class ProviderRegistry:
    def __init__(
        self,
        adapters: dict[CallClass, list[ProviderAdapter]],
        *,
        tracker: AvailabilityTracker,
    ) -> None:
        self._adapters = {call_class: tuple(adapters.get(call_class, ())) for call_class in CallClass}
        self.tracker = tracker
        for adapter in self.all_adapters():
            tracker.status(adapter.name)

    def adapters(self, call_class: CallClass | str) -> tuple[ProviderAdapter, ...]:
        return self._adapters[CallClass(call_class)]

    def all_adapters(self) -> list[ProviderAdapter]:
        return [adapter for call_class in CallClass for adapter in self._adapters[call_class]]

    def provider_names(self) -> list[str]:
        names: list[str] = []
        for adapter in self.all_adapters():
            if adapter.name not in names:
                names.append(adapter.name)
        return names

    def is_available(self, name: str) -> bool:
        return self.tracker.is_available(name)

    def describe(self) -> dict[str, Any]:
        return {
            call_class.value: [adapter.describe() for adapter in self._adapters[call_class]]
            for call_class in CallClass
        }


def build_provider_registry(
    providers: dict[str, VisionProvider],
    *,
    order: Iterable[str] = DEFAULT_PROVIDER_ORDER,
    tracker: AvailabilityTracker | None = None,
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    include_unconfigured: bool = False,
) -> ProviderRegistry:
    """Build the ordered adapter lists for both call classes.

    Providers are taken in ``order``; names missing from ``providers`` are
    ignored. Unconfigured providers are left out unless
    ``include_unconfigured`` is set.
    """
    ordered_names = [name.strip().lower() for name in order if name and name.strip()]
    adapters: dict[CallClass, list[ProviderAdapter]] = {call_class: [] for call_class in CallClass}
    for name in ordered_names:
        provider = providers.get(name)
        if provider is None:
            logger.debug("Provider %s is listed in the order but not registered", name)
            continue
        if not provider.configured and not include_unconfigured:
            logger.info("Provider %s is not configured; leaving it out of rotation", name)
            continue
        for call_class in CallClass:
            generation_options = PARSED_GENERATION_OPTIONS.get(name, {}) if call_class is CallClass.PARSED else {}
            adapters[call_class].append(
                ProviderAdapter(
                    name=name,
                    call_class=call_class,
                    provider=provider,
                    model=provider.model_for(call_class.value),
                    generation_options=dict(generation_options),
                )
            )

    if tracker is None:
        tracker = AvailabilityTracker(cooldown_seconds=cooldown_seconds, clock=clock)
    registry = ProviderRegistry(adapters, tracker=tracker)
    logger.info(
        "Provider rotation: raw=%s parsed=%s",
        ", ".join(adapter.name for adapter in registry.adapters(CallClass.RAW)) or "none",
        ", ".join(adapter.name for adapter in registry.adapters(CallClass.PARSED)) or "none",
    )
    return registry
