from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from .analysis_schemas import SchemaInvalid
from .image_inputs import ImageInput
from .provider_availability import classify_failure
from .provider_registry import CallClass, ProviderRegistry
from .response_extraction import NoJsonFound, preview_text
from .vision_providers import VisionProviderError, VisionProviderResult

logger = logging.getLogger(__name__)

RECOVERABLE_ERRORS = (VisionProviderError, NoJsonFound, SchemaInvalid)


@dataclass
class AttemptRecord:
    provider_name: str
    outcome: str
    failure_class: str | None = None
    error: str | None = None
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider_name,
            "outcome": self.outcome,
            "failure_class": self.failure_class,
            "error": self.error,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass
class DispatchResult:
    value: Any
    provider_name: str
    raw: VisionProviderResult
    attempts: list[AttemptRecord] = field(default_factory=list)


class AllProvidersExhausted(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        last_error: str | None = None,
        attempts: list[AttemptRecord] | None = None,
    ) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempts = list(attempts or [])


class FallbackDispatcher:
    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.registry = registry
        self._clock = clock or registry.tracker.now

    def dispatch(
        self,
        call_class: CallClass | str,
        *,
        instruction: str,
        image: ImageInput,
        interpret: Callable[[VisionProviderResult], Any] | None = None,
        deadline: float | None = None,
    ) -> DispatchResult:
        resolved_class = CallClass(call_class)
        tracker = self.registry.tracker
        attempts: list[AttemptRecord] = []
        last_error: str | None = None

        for adapter in self.registry.adapters(resolved_class):
            now = self._clock()
            if deadline is not None and now >= deadline:
                last_error = "Request deadline reached before a provider succeeded."
                logger.warning("Deadline reached; not attempting %s or later providers", adapter.name)
                break

            if not tracker.is_available(adapter.name):
                logger.debug("Skipping %s - cooling down after quota/auth failure", adapter.name)
                attempts.append(AttemptRecord(provider_name=adapter.name, outcome="skipped"))
                continue

            timeout_seconds = None if deadline is None else max(deadline - now, 0.0)
            logger.info(
                "Attempting %s analysis with %s (image=%s)",
                resolved_class.value,
                adapter.name,
                image.label,
            )
            try:
                raw = adapter.analyze(image=image, instruction=instruction, timeout_seconds=timeout_seconds)
                if interpret is not None:
                    value = interpret(raw)
                else:
                    value = raw.parsed if raw.parsed is not None else raw.text
            except RECOVERABLE_ERRORS as exc:
                failure_class = classify_failure(exc)
                tracker.mark_failed(adapter.name, failure_class, error=str(exc))
                last_error = str(exc)
                attempts.append(
                    AttemptRecord(
                        provider_name=adapter.name,
                        outcome="failed",
                        failure_class=failure_class.value,
                        error=last_error,
                        elapsed_seconds=self._clock() - now,
                    )
                )
                logger.warning(
                    "%s failed (%s): %s",
                    adapter.name,
                    failure_class.value,
                    preview_text(last_error),
                )
                continue

            tracker.mark_succeeded(adapter.name)
            attempts.append(
                AttemptRecord(
                    provider_name=adapter.name,
                    outcome="succeeded",
                    elapsed_seconds=self._clock() - now,
                )
            )
            logger.info("%s analysis succeeded with %s", resolved_class.value, adapter.name)
            return DispatchResult(value=value, provider_name=adapter.name, raw=raw, attempts=attempts)

        if last_error is None:
            if attempts:
                message = "No AI providers available: every provider is cooling down."
            else:
                message = "No AI providers are configured."
        else:
            message = f"All AI providers failed. Last error: {last_error}"
        logger.error(message)
        raise AllProvidersExhausted(message, last_error=last_error, attempts=attempts)
