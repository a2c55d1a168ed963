from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from poolvision.analysis_schemas import AnalysisKind  # noqa: E402
from poolvision.prompts import (  # noqa: E402
    CURRENT_SURFACE_PROMPT_VERSION,
    JSON_ONLY_LINE,
    SURFACE_PROMPTS,
    get_prompt,
    get_surface_prompt,
)


def test_current_surface_prompt_is_latest_version():
    assert CURRENT_SURFACE_PROMPT_VERSION == "1.4.0"
    assert get_surface_prompt() == SURFACE_PROMPTS["1.4.0"].prompt
    assert get_surface_prompt("1.3.0") != get_surface_prompt()
    assert SURFACE_PROMPTS["1.4.0"].changes


def test_unknown_surface_version_raises():
    with pytest.raises(KeyError):
        get_surface_prompt("0.1.0")


def test_equipment_prompt_carries_type_hint():
    assert "this is a heater" in get_prompt("equipment", equipment_type="heater")
    assert "The technician says" not in get_prompt("equipment")


@pytest.mark.parametrize("kind", list(AnalysisKind))
def test_every_kind_has_a_json_only_prompt(kind: AnalysisKind):
    prompt = get_prompt(kind)
    assert JSON_ONLY_LINE in prompt
    assert "{" in prompt


def test_test_strip_prompt_uses_camel_case_keys():
    assert "freeChlorine" in get_prompt(AnalysisKind.TEST_STRIP)
