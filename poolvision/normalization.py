from __future__ import annotations

import math
import re
from typing import Any, Iterable

METERS_TO_FEET = 3.28084

# Substring matches, checked in order.
SURFACE_MATERIAL_ALIASES: tuple[tuple[str, str], ...] = (
    ("fiberglass", "fiberglass"),
    ("fibreglass", "fiberglass"),
    ("plaster", "plaster"),
    ("diamond brite", "plaster"),
    ("marcite", "plaster"),
    ("pebble", "pebble"),
    ("pebbletec", "pebble"),
    ("pebblecrete", "pebble"),
    ("tile", "tile"),
    ("ceramic", "tile"),
    ("glass", "tile"),
    ("vinyl", "vinyl"),
    ("liner", "vinyl"),
)

CONDITION_ALIASES: dict[str, str] = {
    "excellent": "excellent",
    "like new": "excellent",
    "good": "good",
    "fair": "fair",
    "average": "fair",
    "poor": "poor",
    "bad": "poor",
    "needs resurfacing": "poor",
}

# Ordered worst to best.
CONDITION_ORDER: tuple[str, ...] = ("poor", "fair", "good", "excellent")
CLEANLINESS_ORDER: tuple[str, ...] = ("filthy", "dirty", "clean", "pristine")
DRAINAGE_ORDER: tuple[str, ...] = ("poor", "fair", "good")

# Ordered least to most severe.
RISK_ORDER: tuple[str, ...] = ("none", "low", "medium", "high")
PROXIMITY_ORDER: tuple[str, ...] = ("far", "moderate", "close")

SURFACE_ISSUE_LEVELS: dict[str, tuple[str, ...]] = {
    "stains": ("none", "light", "moderate", "heavy"),
    "cracks": ("none", "minor", "major"),
    "roughness": ("smooth", "slightly rough", "very rough"),
    "discoloration": ("none", "minor", "significant"),
    "etching": ("none", "minor", "moderate", "severe"),
    "scaling": ("none", "light", "moderate", "heavy"),
    "chipping": ("none", "minor", "moderate", "severe"),
    "hollow_spots": ("none", "few", "many"),
}

POOL_SHAPES: tuple[str, ...] = ("rectangle", "oval", "kidney", "freeform", "round")
SATELLITE_DECK_MATERIALS: tuple[str, ...] = ("concrete", "pavers", "wood", "composite", "stone", "tile")
WATER_FEATURES: frozenset[str] = frozenset({"waterfall", "fountain", "water feature"})

_LEADING_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_METRIC_MARKER = re.compile(r"\d\s*(?:m|meters?|metres?)\b", flags=re.IGNORECASE)
_TREE_COUNT = re.compile(r"(\d+)\s*tree", flags=re.IGNORECASE)


def normalize_surface_material(raw_value: Any) -> str:
    if not isinstance(raw_value, str):
        return "unknown"
    normalized = raw_value.strip().lower()
    for needle, material in SURFACE_MATERIAL_ALIASES:
        if needle in normalized:
            return material
    return "unknown"


def normalize_condition(raw_value: Any) -> str:
    if not isinstance(raw_value, str):
        return "unknown"
    return CONDITION_ALIASES.get(raw_value.strip().lower(), "unknown")


def normalize_level(raw_value: Any, levels: tuple[str, ...]) -> str:
    if raw_value is None:
        return levels[0]
    normalized = str(raw_value).strip().lower()
    return normalized if normalized in levels else levels[0]


def parse_distance(value: Any) -> float:
    """Parse a distance in feet from a number or a unit-suffixed string.

    ``"15m"`` -> 49, ``"15 ft"`` -> 15, ``""`` -> 0. Metric values are
    converted to feet and rounded to the nearest foot.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return finite_float(value) or 0.0
    if not isinstance(value, str):
        return 0.0
    text = value.strip().replace(",", "")
    match = _LEADING_NUMBER.search(text)
    if not match:
        return 0.0
    number = finite_float(match.group(0))
    if number is None or not math.isfinite(number * METERS_TO_FEET):
        return 0.0
    if _METRIC_MARKER.search(text):
        return float(round_half_up(number * METERS_TO_FEET))
    return number


def finite_float(value: Any) -> float | None:
    try:
        number = float(value)
    except (OverflowError, TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def worst_of(values: Iterable[Any], order: tuple[str, ...], *, fallback: str = "unknown") -> str:
    ranked = [value for value in values if isinstance(value, str) and value in order]
    if not ranked:
        return fallback
    return min(ranked, key=order.index)


def highest_of(values: Iterable[Any], order: tuple[str, ...], *, fallback: str) -> str:
    ranked = [value for value in values if isinstance(value, str) and value in order]
    if not ranked:
        return fallback
    return max(ranked, key=order.index)


def unique_strings(*groups: Iterable[Any]) -> list[str]:
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for item in group:
            if not isinstance(item, str):
                continue
            text = item.strip()
            if not text or text in seen:
                continue
            seen.add(text)
            merged.append(text)
    return merged


def normalize_pool_shape(raw_value: Any) -> str:
    if not isinstance(raw_value, str):
        return "rectangle"
    normalized = raw_value.strip().lower()
    return normalized if normalized in POOL_SHAPES else "rectangle"


def extract_deck_material(raw_value: Any) -> str:
    if not isinstance(raw_value, str):
        return "concrete"
    lowered = raw_value.lower()
    for material in SATELLITE_DECK_MATERIALS:
        if material in lowered:
            return material
    return "concrete"


def extract_tree_count(landscape: Any) -> int:
    if not isinstance(landscape, str):
        return 0
    match = _TREE_COUNT.search(landscape)
    return int(match.group(1)) if match else 0


def clean_text(raw_value: Any, *, fallback: str = "") -> str:
    if raw_value is None:
        return fallback
    text = str(raw_value).strip()
    return text or fallback


def replace_first_underscore(raw_value: str) -> str:
    return raw_value.replace("_", " ", 1)


def unit_interval(raw_value: Any) -> float | None:
    if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
        return None
    value = finite_float(raw_value)
    if value is None or not 0 <= value <= 1:
        return None
    return value
