from __future__ import annotations

import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from poolvision.analysis_pipeline import interpret_response  # noqa: E402
from poolvision.dispatch import AllProvidersExhausted, FallbackDispatcher  # noqa: E402
from poolvision.image_inputs import ImageInput  # noqa: E402
from poolvision.provider_registry import CallClass, build_provider_registry  # noqa: E402
from poolvision.vision_providers import VisionProviderError, VisionProviderResult  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 128
SURFACE_JSON = '{"material": "plaster", "condition": "good", "issues": {"stains": "light"}}'


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _FakeProvider:
    def __init__(self, route_id: str, responses: list[Any], *, configured: bool = True, on_call=None) -> None:
        self.route_id = route_id
        self.label = route_id.title()
        self.configured = configured
        self.responses = list(responses)
        self.on_call = on_call
        self.calls: list[dict[str, Any]] = []

    def model_for(self, call_class: str) -> str:
        return f"{self.route_id}-{call_class}"

    def availability(self) -> dict[str, Any]:
        return {"id": self.route_id, "label": self.label, "configured": self.configured}

    def analyze(self, *, prompt, image, model_override=None, generation_options=None, timeout_seconds=None):
        self.calls.append(
            {
                "prompt": prompt,
                "model": model_override,
                "generation_options": generation_options,
                "timeout_seconds": timeout_seconds,
            }
        )
        if self.on_call is not None:
            self.on_call()
        response = self.responses.pop(0) if self.responses else "{}"
        if isinstance(response, BaseException):
            raise response
        return VisionProviderResult(
            text=response,
            raw_response={"text": response},
            model_used=model_override or "",
            base_url_used="http://fake",
            request_metadata={"provider": self.route_id},
        )


def _image() -> ImageInput:
    return ImageInput(data=PNG_BYTES, media_type="image/png", label="image_1")


def _dispatcher(providers: list[_FakeProvider], clock: _FakeClock | None = None) -> FallbackDispatcher:
    registry = build_provider_registry(
        {provider.route_id: provider for provider in providers},
        order=[provider.route_id for provider in providers],
        clock=clock or _FakeClock(),
    )
    return FallbackDispatcher(registry)


def test_first_provider_success_stops_the_sequence():
    first = _FakeProvider("gemini", [SURFACE_JSON])
    second = _FakeProvider("claude", [SURFACE_JSON])
    result = _dispatcher([first, second]).dispatch(CallClass.RAW, instruction="look", image=_image())

    assert result.provider_name == "gemini"
    assert len(first.calls) == 1
    assert second.calls == []


def test_falls_back_in_order_until_a_provider_succeeds():
    first = _FakeProvider("gemini", [VisionProviderError("upstream 500", status_code=500)])
    second = _FakeProvider("claude", ["Sorry, I cannot help with that."])
    third = _FakeProvider("openai", [SURFACE_JSON])
    dispatcher = _dispatcher([first, second, third])

    result = dispatcher.dispatch(
        CallClass.RAW,
        instruction="look",
        image=_image(),
        interpret=lambda raw: interpret_response("surface", raw),
    )

    assert result.provider_name == "openai"
    assert result.value.material == "plaster"
    assert [attempt.provider_name for attempt in result.attempts] == ["gemini", "claude", "openai"]
    assert [attempt.outcome for attempt in result.attempts] == ["failed", "failed", "succeeded"]
    assert result.attempts[1].failure_class == "extraction"
    # a transient failure does not cool the provider down
    assert dispatcher.registry.is_available("gemini") is True


def test_quota_failure_skips_provider_on_the_next_call():
    clock = _FakeClock()
    first = _FakeProvider("gemini", [VisionProviderError("quota", status_code=429), SURFACE_JSON])
    second = _FakeProvider("claude", [SURFACE_JSON, SURFACE_JSON])
    dispatcher = _dispatcher([first, second], clock)

    assert dispatcher.dispatch(CallClass.RAW, instruction="a", image=_image()).provider_name == "claude"

    clock.now = 1.0
    result = dispatcher.dispatch(CallClass.RAW, instruction="b", image=_image())
    assert result.provider_name == "claude"
    assert result.attempts[0].outcome == "skipped"
    assert len(first.calls) == 1

    clock.now = 61.0
    assert dispatcher.dispatch(CallClass.RAW, instruction="c", image=_image()).provider_name == "gemini"


def test_cooldown_is_shared_between_call_classes():
    first = _FakeProvider("gemini", [VisionProviderError("forbidden", status_code=403)])
    second = _FakeProvider("claude", ['{"readings": {"ph": 7.4}}', '{"readings": {"ph": 7.2}}'])
    dispatcher = _dispatcher([first, second])

    dispatcher.dispatch(CallClass.RAW, instruction="raw", image=_image())
    parsed = dispatcher.dispatch(CallClass.PARSED, instruction="parsed", image=_image())

    assert parsed.provider_name == "claude"
    assert parsed.value == {"readings": {"ph": 7.2}}
    assert len(first.calls) == 1


def test_parsed_call_class_uses_parsed_model_and_options():
    provider = _FakeProvider("gemini", ['```json\n{"readings": {"ph": 7.4}}\n```'])
    result = _dispatcher([provider]).dispatch(CallClass.PARSED, instruction="strip", image=_image())

    assert result.raw.parsed == {"readings": {"ph": 7.4}}
    assert provider.calls[0]["model"] == "gemini-parsed"
    assert provider.calls[0]["generation_options"]["temperature"] == 0.1


def test_all_failures_raise_with_last_error():
    first = _FakeProvider("gemini", [VisionProviderError("quota", status_code=429)])
    second = _FakeProvider("claude", [VisionProviderError("timed out", timed_out=True)])
    dispatcher = _dispatcher([first, second])

    with pytest.raises(AllProvidersExhausted) as exc_info:
        dispatcher.dispatch(CallClass.RAW, instruction="look", image=_image())

    assert str(exc_info.value) == "All AI providers failed. Last error: timed out"
    assert exc_info.value.last_error == "timed out"
    assert len(exc_info.value.attempts) == 2


def test_every_provider_cooling_down_is_reported():
    first = _FakeProvider("gemini", [VisionProviderError("quota", status_code=429)])
    dispatcher = _dispatcher([first])
    with pytest.raises(AllProvidersExhausted):
        dispatcher.dispatch(CallClass.RAW, instruction="a", image=_image())

    with pytest.raises(AllProvidersExhausted) as exc_info:
        dispatcher.dispatch(CallClass.RAW, instruction="b", image=_image())
    assert "cooling down" in str(exc_info.value)
    assert len(first.calls) == 1


def test_unconfigured_providers_are_left_out_of_rotation():
    configured = _FakeProvider("claude", [SURFACE_JSON])
    missing_key = _FakeProvider("gemini", [SURFACE_JSON], configured=False)
    dispatcher = _dispatcher([missing_key, configured])

    assert dispatcher.registry.provider_names() == ["claude"]
    assert dispatcher.dispatch(CallClass.RAW, instruction="a", image=_image()).provider_name == "claude"
    assert missing_key.calls == []


def test_no_configured_provider_raises():
    dispatcher = _dispatcher([_FakeProvider("gemini", [], configured=False)])
    with pytest.raises(AllProvidersExhausted) as exc_info:
        dispatcher.dispatch(CallClass.RAW, instruction="a", image=_image())
    assert "configured" in str(exc_info.value)


def test_deadline_stops_further_attempts():
    clock = _FakeClock()

    def _slow_call() -> None:
        clock.now += 10.0

    first = _FakeProvider("gemini", [VisionProviderError("slow", timed_out=True)], on_call=_slow_call)
    second = _FakeProvider("claude", [SURFACE_JSON])
    dispatcher = _dispatcher([first, second], clock)

    with pytest.raises(AllProvidersExhausted) as exc_info:
        dispatcher.dispatch(CallClass.RAW, instruction="a", image=_image(), deadline=5.0)

    assert first.calls[0]["timeout_seconds"] == pytest.approx(5.0)
    assert second.calls == []
    assert "deadline" in str(exc_info.value)


def test_surface_scenario_times_out_then_repairs_fenced_response():
    first = _FakeProvider("gemini", [VisionProviderError("timed out", timed_out=True)])
    second = _FakeProvider(
        "claude",
        ['Here you go:\n```json\n{"material": "Diamond Brite", "condition": "good"}\n```'],
    )
    result = _dispatcher([first, second]).dispatch(
        CallClass.RAW,
        instruction="look",
        image=_image(),
        interpret=lambda raw: interpret_response("surface", raw),
    )

    record = result.value
    assert result.provider_name == "claude"
    assert result.attempts[0].failure_class == "transient"
    assert record.material == "plaster"
    assert record.condition == "good"
    assert asdict(record.issues) == {
        "stains": "none",
        "cracks": "none",
        "roughness": "smooth",
        "discoloration": "none",
        "etching": "none",
        "scaling": "none",
        "chipping": "none",
        "hollow_spots": "none",
    }
    assert record.confidence == 0.85


def test_non_finite_numbers_are_mapped_without_escaping():
    first = _FakeProvider("gemini", ['{"vegetation": {"tree_count": Infinity, "trees_present": true}}'])
    second = _FakeProvider("claude", ['{"vegetation": {"tree_count": 2}}'])
    result = _dispatcher([first, second]).dispatch(
        CallClass.RAW,
        instruction="look",
        image=_image(),
        interpret=lambda raw: interpret_response("environment", raw),
    )

    assert result.provider_name == "gemini"
    assert result.value.vegetation.tree_count == 0
    assert result.value.vegetation.trees_present is True
    assert second.calls == []


def test_non_finite_required_field_falls_back_to_next_provider():
    first = _FakeProvider("gemini", ['{"readings": NaN}'])
    second = _FakeProvider("claude", ['{"readings": {"ph": 7.4}}'])
    result = _dispatcher([first, second]).dispatch(
        CallClass.PARSED,
        instruction="strip",
        image=_image(),
        interpret=lambda raw: interpret_response("test_strip", raw),
    )

    assert result.provider_name == "claude"
    assert result.attempts[0].failure_class == "schema"
    assert result.value.readings["ph"] == 7.4
