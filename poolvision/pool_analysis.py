from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from .analysis_pipeline import interpret_response, profile_for
from .analysis_schemas import AnalysisKind
from .dispatch import AllProvidersExhausted, AttemptRecord, DispatchResult, FallbackDispatcher
from .domain_records import SatelliteAnalysis, default_record
from .equipment_search import EquipmentSearchService
from .image_inputs import ImageInput, load_image_inputs
from .prompts import get_prompt
from .provider_registry import ProviderRegistry, build_provider_registry
from .result_aggregation import aggregate_deck, aggregate_environment, aggregate_equipment, aggregate_skimmers
from .satellite_imagery import SatelliteImageryClient
from .settings import PoolVisionSettings
from .vision_providers import build_default_providers

logger = logging.getLogger(__name__)


class PoolAnalysisError(RuntimeError):
    pass


@dataclass
class AnalysisOutcome:
    kind: AnalysisKind
    record: Any
    provider_name: str | None
    image_count: int
    attempts: list[dict[str, Any]] = field(default_factory=list)
    analyzed_at: str = ""
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "result": self.record.to_dict(),
            "provider": self.provider_name,
            "image_count": self.image_count,
            "attempts": list(self.attempts),
            "analyzed_at": self.analyzed_at,
            "context": dict(self.context),
        }


@dataclass
class _ImageRun:
    image: ImageInput
    record: Any
    dispatch: DispatchResult | None = None
    error: AllProvidersExhausted | None = None


class PoolAnalysisService:
    def __init__(
        self,
        *,
        settings: PoolVisionSettings | None = None,
        providers: dict[str, Any] | None = None,
        registry: ProviderRegistry | None = None,
        satellite_client: SatelliteImageryClient | None = None,
        equipment_search: EquipmentSearchService | None = None,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or PoolVisionSettings()
        self.http_client = http_client
        self.providers = providers if providers is not None else build_default_providers(http_client=http_client)
        self.registry = registry or build_provider_registry(
            self.providers,
            order=self.settings.provider_order,
            cooldown_seconds=self.settings.cooldown_seconds,
            clock=clock,
        )
        self.dispatcher = FallbackDispatcher(self.registry)
        self.satellite_client = satellite_client
        self.equipment_search = equipment_search

    @classmethod
    def from_env(
        cls,
        *,
        settings: PoolVisionSettings | None = None,
        http_client: httpx.Client | None = None,
    ) -> "PoolAnalysisService":
        settings = settings or PoolVisionSettings.from_env()
        return cls(
            settings=settings,
            satellite_client=SatelliteImageryClient.from_env(http_client=http_client),
            equipment_search=EquipmentSearchService.from_env(http_client=http_client) if settings.enrich_equipment else None,
            http_client=http_client,
        )

    def provider_health(self) -> dict[str, Any]:
        rotation = self.registry.provider_names()
        now = self.registry.tracker.now()
        providers_payload: list[dict[str, Any]] = []
        for name, provider in self.providers.items():
            entry = provider.availability()
            entry["id"] = name
            entry["in_rotation"] = name in rotation
            if name in rotation:
                entry["status"] = self.registry.tracker.status(name).to_dict(now=now)
            providers_payload.append(entry)
        return {
            "providers": providers_payload,
            "order": list(rotation),
            "available": [name for name in rotation if self.registry.is_available(name)],
            "rotation": self.registry.describe(),
        }

    # single-image kinds

    def analyze_surface(self, *, image: Any, instruction: str | None = None) -> AnalysisOutcome:
        return self._analyze_single(AnalysisKind.SURFACE, image, instruction=instruction)

    def analyze_test_strip(self, *, image: Any, instruction: str | None = None) -> AnalysisOutcome:
        return self._analyze_single(AnalysisKind.TEST_STRIP, image, instruction=instruction)

    def analyze_satellite_image(
        self,
        *,
        image: Any,
        instruction: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> AnalysisOutcome:
        return self._analyze_single(AnalysisKind.SATELLITE, image, instruction=instruction, context=context)

    def analyze_satellite(self, *, address: str, instruction: str | None = None) -> AnalysisOutcome:
        if self.satellite_client is None:
            raise PoolAnalysisError("Satellite imagery is not configured.")
        location, image = self.satellite_client.fetch_for_address(address)
        outcome = self.analyze_satellite_image(
            image=image,
            instruction=instruction,
            context={"address": location.formatted_address, "location": location.to_dict()},
        )
        record: SatelliteAnalysis = outcome.record
        if not record.pool_detected:
            logger.info("No pool detected at %s", location.formatted_address)
        return outcome

    # multi-image kinds

    def analyze_equipment(
        self,
        *,
        images: Any,
        equipment_type: str | None = None,
        instruction: str | None = None,
    ) -> AnalysisOutcome:
        prompt = instruction or get_prompt(AnalysisKind.EQUIPMENT, equipment_type=equipment_type)
        runs = self._run_many(AnalysisKind.EQUIPMENT, images, instruction=prompt)
        if self.equipment_search is not None:
            for run in runs:
                if run.dispatch is not None:
                    run.record = self.equipment_search.enrich(run.record)
        aggregated = aggregate_equipment([run.record for run in runs])
        context = {"equipment_type": equipment_type} if equipment_type else {}
        return self._outcome(AnalysisKind.EQUIPMENT, aggregated, runs, context=context)

    def analyze_environment(self, *, images: Any, instruction: str | None = None) -> AnalysisOutcome:
        runs = self._run_many(AnalysisKind.ENVIRONMENT, images, instruction=instruction)
        return self._outcome(AnalysisKind.ENVIRONMENT, aggregate_environment([run.record for run in runs]), runs)

    def analyze_skimmers(self, *, images: Any, instruction: str | None = None) -> AnalysisOutcome:
        runs = self._run_many(AnalysisKind.SKIMMER, images, instruction=instruction)
        return self._outcome(AnalysisKind.SKIMMER, aggregate_skimmers([run.record for run in runs]), runs)

    def analyze_deck(self, *, images: Any, instruction: str | None = None) -> AnalysisOutcome:
        runs = self._run_many(AnalysisKind.DECK, images, instruction=instruction)
        return self._outcome(AnalysisKind.DECK, aggregate_deck([run.record for run in runs]), runs)

    def analyze(self, kind: AnalysisKind | str, *, images: Any, **options: Any) -> AnalysisOutcome:
        analysis_kind = AnalysisKind(kind)
        if analysis_kind is AnalysisKind.EQUIPMENT:
            return self.analyze_equipment(images=images, **options)
        if analysis_kind is AnalysisKind.ENVIRONMENT:
            return self.analyze_environment(images=images, **options)
        if analysis_kind is AnalysisKind.SKIMMER:
            return self.analyze_skimmers(images=images, **options)
        if analysis_kind is AnalysisKind.DECK:
            return self.analyze_deck(images=images, **options)
        loaded = self._load_images(images)
        if len(loaded) != 1:
            raise PoolAnalysisError(f"{analysis_kind.value} analysis takes exactly one image.")
        return self._analyze_single(analysis_kind, loaded[0], **options)

    def _analyze_single(
        self,
        kind: AnalysisKind,
        image: Any,
        *,
        instruction: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> AnalysisOutcome:
        loaded = self._load_images([image])[0]
        result = self._dispatch(kind, loaded, instruction=instruction or get_prompt(kind), deadline=self._deadline())
        run = _ImageRun(image=loaded, record=result.value, dispatch=result)
        return self._outcome(kind, result.value, [run], context=context)

    def _run_many(self, kind: AnalysisKind, images: Any, *, instruction: str | None) -> list[_ImageRun]:
        loaded = self._load_images(images)
        prompt = instruction or get_prompt(kind)
        deadline = self._deadline()
        workers = max(1, min(self.settings.max_concurrency, len(loaded)))

        def _run(image: ImageInput) -> _ImageRun:
            try:
                result = self._dispatch(kind, image, instruction=prompt, deadline=deadline)
            except AllProvidersExhausted as exc:
                logger.warning("%s analysis of %s fell back to defaults: %s", kind.value, image.label, exc)
                return _ImageRun(image=image, record=default_record(kind), error=exc)
            return _ImageRun(image=image, record=result.value, dispatch=result)

        if workers == 1:
            runs = [_run(image) for image in loaded]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"poolvision-{kind.value}") as executor:
                runs = list(executor.map(_run, loaded))

        if all(run.dispatch is None for run in runs):
            last = runs[-1].error
            attempts = [attempt for run in runs if run.error for attempt in run.error.attempts]
            raise AllProvidersExhausted(
                f"All AI providers failed for every {kind.value} image. Last error: {last.last_error if last else None}",
                last_error=last.last_error if last else None,
                attempts=attempts,
            )
        return runs

    def _dispatch(
        self,
        kind: AnalysisKind,
        image: ImageInput,
        *,
        instruction: str,
        deadline: float | None,
    ) -> DispatchResult:
        profile = profile_for(kind)
        return self.dispatcher.dispatch(
            profile.call_class,
            instruction=instruction,
            image=image,
            interpret=lambda raw: interpret_response(kind, raw),
            deadline=deadline,
        )

    def _load_images(self, images: Any) -> list[ImageInput]:
        return load_image_inputs(
            images,
            http_client=self.http_client,
            timeout_seconds=self.settings.image_fetch_timeout_seconds,
        )

    def _deadline(self) -> float | None:
        if self.settings.request_deadline_seconds is None:
            return None
        return self.registry.tracker.now() + self.settings.request_deadline_seconds

    def _outcome(
        self,
        kind: AnalysisKind,
        record: Any,
        runs: list[_ImageRun],
        *,
        context: dict[str, Any] | None = None,
    ) -> AnalysisOutcome:
        provider_name = next((run.dispatch.provider_name for run in runs if run.dispatch is not None), None)
        return AnalysisOutcome(
            kind=kind,
            record=record,
            provider_name=provider_name,
            image_count=len(runs),
            attempts=[_attempt_summary(run) for run in runs],
            analyzed_at=_now_iso(),
            context=dict(context or {}),
        )


def _attempt_summary(run: _ImageRun) -> dict[str, Any]:
    attempts: list[AttemptRecord] = run.dispatch.attempts if run.dispatch is not None else run.error.attempts
    return {
        "image": run.image.label,
        "provider": run.dispatch.provider_name if run.dispatch is not None else None,
        "error": str(run.error) if run.error is not None else None,
        "attempts": [attempt.to_dict() for attempt in attempts],
    }


def _now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )
