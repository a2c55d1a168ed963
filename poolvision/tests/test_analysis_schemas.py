from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from poolvision.analysis_schemas import (  # noqa: E402
    AnalysisKind,
    EquipmentResponse,
    SatelliteResponse,
    SchemaInvalid,
    SurfaceResponse,
    validate_with_repair,
)


def test_valid_payload_needs_no_repair():
    payload = {
        "material": "pebble",
        "condition": "fair",
        "issues": {
            "stains": "moderate",
            "cracks": "none",
            "roughness": "very rough",
            "discoloration": "minor",
            "etching": "none",
            "scaling": "light",
            "chipping": "none",
            "hollow_spots": "few",
        },
        "recommendations": ["acid wash"],
    }
    model = validate_with_repair(AnalysisKind.SURFACE, payload)
    assert isinstance(model, SurfaceResponse)
    assert model.issues.hollow_spots == "few"


def test_missing_surface_issues_are_filled_with_defaults():
    model = validate_with_repair("surface", {"material": "plaster", "issues": {"stains": "Heavy"}})
    assert model.issues.stains == "heavy"
    assert model.issues.cracks == "none"
    assert model.issues.roughness == "smooth"
    assert model.issues.hollow_spots == "none"


def test_unknown_surface_level_is_replaced_by_default():
    model = validate_with_repair("surface", {"issues": {"stains": "everywhere", "cracks": None}})
    assert model.issues.stains == "none"
    assert model.issues.cracks == "none"


def test_scalar_string_is_wrapped_into_list():
    model = validate_with_repair("surface", {"issues": {}, "recommendations": "Brush weekly"})
    assert model.recommendations == ["Brush weekly"]


def test_unrecognised_optional_vocabulary_is_dropped():
    model = validate_with_repair("equipment", {"equipment_type": "pump", "condition": "needs love"})
    assert isinstance(model, EquipmentResponse)
    assert model.condition is None
    assert model.equipment_type == "pump"


def test_equipment_aliases_and_detected_type_default():
    model = validate_with_repair(
        "equipment",
        {
            "equipment_type": "Filter",
            "maintenanceNeeded": ["replace gauge"],
            "detected_equipment": [{"brand": "Jandy"}, {"type": "pump", "brand": "Pentair"}],
        },
    )
    assert model.equipment_type == "filter"
    assert model.maintenance_needed == ["replace gauge"]
    assert [item.type for item in model.detected_equipment] == ["unknown", "pump"]


def test_satellite_aliases_repair_required_fields():
    model = validate_with_repair("satellite", {"pool_present": True, "poolShape": "kidney"})
    assert isinstance(model, SatelliteResponse)
    assert model.pool_presence is True
    assert model.pool_shape == "kidney"
    assert model.surrounding_landscape == "No landscape description available"


def test_satellite_without_presence_defaults_to_false():
    model = validate_with_repair("satellite", {"approximate_dimensions": {"length": "30 ft"}})
    assert model.pool_presence is False
    assert model.pool_shape == "unknown"
    assert model.approximate_dimensions.length == "30 ft"
    assert model.approximate_dimensions.width == 0


def test_test_strip_without_readings_is_not_repairable():
    with pytest.raises(SchemaInvalid) as exc_info:
        validate_with_repair("test_strip", {"confidence": 0.9})
    paths = [error.path for error in exc_info.value.field_errors]
    assert "readings" in paths
    assert exc_info.value.kind == "test_strip"


def test_test_strip_camel_case_readings_are_accepted():
    model = validate_with_repair(
        "test_strip",
        {"readings": {"freeChlorine": "3 ppm", "ph": 7.4, "cyanuricAcid": None}, "stripInfo": {"padCount": 5}},
    )
    assert model.readings.free_chlorine == 3.0
    assert model.readings.cyanuric_acid is None
    assert model.strip_info.pad_count == 5.0


def test_non_object_payload_raises_schema_invalid():
    with pytest.raises(SchemaInvalid):
        validate_with_repair("deck", ["not", "an", "object"])  # type: ignore[arg-type]
