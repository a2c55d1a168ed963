from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import httpx
import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from poolvision.dispatch import AllProvidersExhausted  # noqa: E402
from poolvision.equipment_search import EquipmentSearchService  # noqa: E402
from poolvision.pool_analysis import PoolAnalysisError, PoolAnalysisService  # noqa: E402
from poolvision.satellite_imagery import SatelliteImageryClient  # noqa: E402
from poolvision.settings import PoolVisionSettings  # noqa: E402
from poolvision.vision_providers import VisionProviderError, VisionProviderResult  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 128
FILTER_JSON = '{"equipment_type": "filter", "brand": "Jandy", "model": "CS150", "condition": "good"}'
SURFACE_JSON = '{"material": "pebble", "condition": "fair"}'


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _FakeProvider:
    def __init__(self, route_id: str, responses: list[Any]) -> None:
        self.route_id = route_id
        self.label = route_id.title()
        self.configured = True
        self.responses = list(responses)
        self.prompts: list[str] = []

    def model_for(self, call_class: str) -> str:
        return f"{self.route_id}-{call_class}"

    def availability(self) -> dict[str, Any]:
        return {"id": self.route_id, "label": self.label, "configured": True}

    def analyze(self, *, prompt, image, model_override=None, generation_options=None, timeout_seconds=None):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else "{}"
        if isinstance(response, BaseException):
            raise response
        return VisionProviderResult(
            text=response,
            raw_response={"text": response},
            model_used=model_override or "",
            base_url_used="http://fake",
            request_metadata={},
        )


def _service(
    gemini: list[Any],
    claude: list[Any],
    *,
    clock: _FakeClock | None = None,
    **kwargs: Any,
) -> PoolAnalysisService:
    providers = {"gemini": _FakeProvider("gemini", gemini), "claude": _FakeProvider("claude", claude)}
    return PoolAnalysisService(
        settings=PoolVisionSettings(provider_order=("gemini", "claude"), max_concurrency=1),
        providers=providers,
        clock=clock or _FakeClock(),
        **kwargs,
    )


def test_failed_image_falls_back_to_default_record():
    service = _service(
        [FILTER_JSON, VisionProviderError("boom", status_code=500)],
        [VisionProviderError("down", status_code=503)],
    )

    outcome = service.analyze_equipment(images=[PNG_BYTES, PNG_BYTES])

    assert outcome.provider_name == "gemini"
    assert outcome.image_count == 2
    assert outcome.record.images_analyzed == 2
    assert outcome.record.primary.brand == "Jandy"
    assert outcome.attempts[0]["error"] is None
    assert "All AI providers failed" in outcome.attempts[1]["error"]
    assert [attempt["provider"] for attempt in outcome.attempts[1]["attempts"]] == ["gemini", "claude"]
    payload = outcome.to_dict()
    assert payload["kind"] == "equipment"
    assert payload["result"]["images_analyzed"] == 2


def test_every_image_failing_raises():
    service = _service(
        [VisionProviderError("boom", status_code=500)] * 2,
        [VisionProviderError("down", status_code=500)] * 2,
    )
    with pytest.raises(AllProvidersExhausted) as exc_info:
        service.analyze_deck(images=[PNG_BYTES, PNG_BYTES])

    assert str(exc_info.value).startswith("All AI providers failed for every deck image.")
    assert len(exc_info.value.attempts) == 4


def test_provider_health_reflects_cooldown():
    clock = _FakeClock()
    service = _service([VisionProviderError("quota", status_code=429)], [SURFACE_JSON], clock=clock)

    outcome = service.analyze_surface(image=PNG_BYTES)
    assert outcome.provider_name == "claude"
    assert outcome.record.material == "pebble"

    health = service.provider_health()
    assert health["order"] == ["gemini", "claude"]
    assert health["available"] == ["claude"]
    gemini = next(entry for entry in health["providers"] if entry["id"] == "gemini")
    assert gemini["in_rotation"] is True
    assert gemini["status"]["cooldown_remaining_seconds"] == 60.0

    clock.now = 61.0
    assert service.provider_health()["available"] == ["gemini", "claude"]


def test_equipment_is_enriched_from_cartridge_table():
    service = _service([FILTER_JSON], [], equipment_search=EquipmentSearchService())
    outcome = service.analyze("equipment", images=[PNG_BYTES], equipment_type="filter")

    assert outcome.record.components["filter"].replacement_cartridge == "C-7469"
    assert outcome.context == {"equipment_type": "filter"}
    assert "The technician says this is a filter." in service.providers["gemini"].prompts[0]


def test_single_image_kinds_reject_multiple_images():
    service = _service([SURFACE_JSON], [])
    with pytest.raises(PoolAnalysisError):
        service.analyze("surface", images=[PNG_BYTES, PNG_BYTES])


def test_satellite_requires_configured_client():
    service = _service([], [])
    with pytest.raises(PoolAnalysisError):
        service.analyze_satellite(address="1 Pool Lane")


def test_satellite_analysis_carries_geocoded_context():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/geocode/json"):
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "results": [
                        {
                            "formatted_address": "1 Pool Lane, Phoenix, AZ",
                            "geometry": {"location": {"lat": 33.45, "lng": -112.07}},
                        }
                    ],
                },
            )
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})

    satellite = SatelliteImageryClient(
        api_key="maps-key",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    service = _service(['{"pool_presence": true, "pool_shape": "oval"}'], [], satellite_client=satellite)

    outcome = service.analyze_satellite(address="1 Pool Lane")

    assert outcome.record.pool_detected is True
    assert outcome.record.pool_shape == "oval"
    assert outcome.context["address"] == "1 Pool Lane, Phoenix, AZ"
    assert outcome.context["location"] == {
        "lat": 33.45,
        "lng": -112.07,
        "formatted_address": "1 Pool Lane, Phoenix, AZ",
    }
