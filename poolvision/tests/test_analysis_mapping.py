from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from poolvision.analysis_mapping import estimate_tds  # noqa: E402
from poolvision.analysis_pipeline import interpret_response, profile_for  # noqa: E402
from poolvision.analysis_schemas import AnalysisKind  # noqa: E402
from poolvision.domain_records import READING_NAMES, default_record  # noqa: E402
from poolvision.provider_registry import CallClass  # noqa: E402
from poolvision.vision_providers import VisionProviderResult  # noqa: E402


def _result(text: str, parsed: dict | None = None) -> VisionProviderResult:
    return VisionProviderResult(
        text=text,
        raw_response={},
        model_used="fake",
        base_url_used="http://fake",
        request_metadata={},
        parsed=parsed,
    )


def test_surface_end_to_end_normalizes_material_and_defaults_issues():
    record = interpret_response(
        "surface",
        _result('```json\n{"material": "Diamond Brite", "condition": "Like New", "recommendations": "Brush"}\n```'),
    )
    assert record.material == "plaster"
    assert record.condition == "excellent"
    assert record.issues.stains == "none"
    assert record.issues.roughness == "smooth"
    assert record.recommendations == ["Brush"]
    assert record.confidence == 0.85


def test_surface_reported_confidence_is_kept_when_in_range():
    record = interpret_response("surface", {"material": "liner", "confidence": 0.62})
    assert record.material == "vinyl"
    assert record.confidence == 0.62

    record = interpret_response("surface", {"material": "granite", "confidence": 7})
    assert record.material == "unknown"
    assert record.confidence == 0.85


def test_equipment_timer_without_brand_gets_generic_defaults():
    record = interpret_response(
        "equipment",
        {
            "equipment_type": "timer",
            "brand": "",
            "timer_settings": {"on_time": "8:00 AM", "off_time": "4:00 PM"},
            "pressure_reading": "18 psi",
        },
    )
    assert record.brand == "Generic"
    assert record.model == "Mechanical Timer"
    assert record.timer_settings.on_time == "8:00 AM"
    assert record.timer_settings.duration == ""
    assert record.pressure_reading == 18.0
    assert record.confidence == 0.85


def test_environment_sun_exposure_and_defaults():
    record = interpret_response(
        "environment",
        {"environmental_factors": {"sun_exposure": "Partial Shade"}, "vegetation": {"tree_count": "3"}},
    )
    assert record.environmental_factors.sun_exposure == "partial shade"
    assert record.environmental_factors.wind_exposure == "moderate"
    assert record.vegetation.tree_count == 3
    assert record.ground_conditions.surface_type == "grass"


def test_skimmer_camel_case_entries():
    record = interpret_response(
        "skimmer",
        {
            "detectedSkimmerCount": 2,
            "skimmers": [{"basketCondition": "dirty", "lidCondition": "cracked", "visibleDamage": True}],
            "overallCondition": "fair",
        },
    )
    assert record.detected_skimmer_count == 2
    assert record.skimmers[0].basket_condition == "dirty"
    assert record.skimmers[0].visible_damage is True
    assert record.skimmers[0].weir_door_condition == "unknown"
    assert record.overall_condition == "fair"


def test_deck_material_underscore_is_replaced():
    record = interpret_response("deck", {"material": "stamped concrete", "cleanliness": "Dirty"})
    assert record.material == "stamped concrete"
    assert record.cleanliness == "dirty"
    assert record.condition == "unknown"


def test_satellite_alias_repair_and_metric_dimensions():
    record = interpret_response(
        "satellite",
        {
            "pool_present": True,
            "poolShape": "Kidney",
            "approximate_dimensions": {"length": "10m", "width": "15 ft"},
            "features": ["Spa", "waterfall"],
            "deck_material_condition": "Travertine pavers, good condition",
            "surrounding_landscape": "Lawn with 4 trees along the fence",
        },
    )
    assert record.pool_detected is True
    assert record.pool_shape == "kidney"
    assert record.pool_dimensions.length == 33.0
    assert record.pool_dimensions.width == 15.0
    assert record.pool_dimensions.surface_area == 495.0
    assert record.pool_features.has_spa is True
    assert record.pool_features.has_water_feature is True
    assert record.pool_features.has_deck is True
    assert record.pool_features.deck_material == "pavers"
    assert record.property_features.tree_count == 4
    assert record.confidence == 0.85


def test_satellite_without_pool_has_zero_confidence():
    record = interpret_response("satellite", {"pool_presence": False, "pool_shape": "none", "surrounding_landscape": ""})
    assert record.pool_detected is False
    assert record.dimensions_detected is False
    assert record.pool_shape == "rectangle"
    assert record.confidence == 0.0


def test_test_strip_uses_parsed_payload_and_estimates_tds():
    record = interpret_response(
        "test_strip",
        _result(
            "ignored",
            parsed={
                "readings": {"freeChlorine": 3, "ph": 7.4, "alkalinity": 100, "totalHardness": 250, "cyanuricAcid": 40},
                "stripInfo": {"detectedChemicals": ["FC", "pH"], "padCount": 5},
                "confidence": 0.9,
            },
        ),
    )
    assert record.readings["calcium"] == 250
    assert record.readings["tds"] == 977
    assert record.tds_estimated is True
    assert "copper" in record.unmeasured
    assert "free_chlorine" not in record.unmeasured
    assert record.strip_info.pad_count == 5
    assert record.confidence == 0.9


def test_test_strip_out_of_range_readings_are_clamped_before_tds():
    record = interpret_response("test_strip", {"readings": {"ph": 9.1, "free_chlorine": -2, "tds": 900}})
    assert record.readings["ph"] == 8.4
    assert record.readings["free_chlorine"] == 0
    assert sorted(record.clamped_readings) == ["free_chlorine", "ph"]
    assert record.tds_estimated is False
    assert record.readings["tds"] == 900


def test_tds_estimate_requires_ph_and_rounds_half_up():
    assert estimate_tds({"calcium": 100}) is None
    assert estimate_tds({"ph": 7.2, "salt": 1}) == 201


@pytest.mark.parametrize("kind", list(AnalysisKind))
def test_default_records_are_complete_and_deterministic(kind: AnalysisKind):
    first = default_record(kind)
    second = default_record(kind)
    assert first.to_dict() == second.to_dict()
    assert first.confidence == 0.0
    assert all(value is not None for value in first.to_dict().values())


def test_default_test_strip_lists_every_reading_as_unmeasured():
    record = default_record("test_strip")
    assert record.readings == {}
    assert record.unmeasured == list(READING_NAMES)


def test_kind_profiles_pick_call_class():
    assert profile_for("test_strip").call_class is CallClass.PARSED
    assert profile_for("surface").call_class is CallClass.RAW
    assert profile_for("equipment").multi_image is True
    assert profile_for("satellite").multi_image is False


def test_non_finite_numbers_fall_back_to_defaults():
    surface = interpret_response("surface", '{"material": "plaster", "confidence": NaN}')
    assert surface.confidence == 0.85

    surface = interpret_response("surface", {"material": "plaster", "confidence": float("nan")})
    assert surface.confidence == 0.85

    skimmer = interpret_response("skimmer", '{"detectedSkimmerCount": 1e400}')
    assert skimmer.detected_skimmer_count == 0

    skimmer = interpret_response("skimmer", {"detected_skimmer_count": float("inf")})
    assert skimmer.detected_skimmer_count == 0

    environment = interpret_response("environment", '{"vegetation": {"tree_count": -Infinity}}')
    assert environment.vegetation.tree_count == 0

    satellite = interpret_response(
        "satellite",
        {"pool_presence": True, "approximate_dimensions": {"length": float("inf"), "width": "12 ft"}},
    )
    assert satellite.pool_dimensions.length == 0.0
    assert satellite.pool_dimensions.width == 12.0
    assert satellite.pool_dimensions.surface_area == 0.0


def test_huge_integer_reading_is_treated_as_unmeasured():
    record = interpret_response("test_strip", {"readings": {"ph": 7.4, "salt": 10**400}})
    assert "salt" in record.unmeasured
    assert record.readings["ph"] == 7.4


def test_tds_estimate_uses_clamped_readings():
    record = interpret_response("test_strip", {"readings": {"ph": 9.1, "salt": 1}})
    assert record.tds_estimated is True
    assert record.readings["tds"] == estimate_tds({"ph": 8.4, "salt": 1.0})
