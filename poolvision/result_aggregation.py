from __future__ import annotations

from typing import Iterable

from .domain_records import (
    AggregatedDeckAnalysis,
    AggregatedEnvironmentAnalysis,
    AggregatedEquipmentAnalysis,
    AggregatedSkimmerAnalysis,
    DeckAnalysis,
    DeckIssueFlags,
    DetectedComponent,
    EnvironmentAnalysis,
    EquipmentAnalysis,
    EquipmentComponent,
    ExposureProfile,
    GroundProfile,
    SkimmerAnalysis,
    TimerSchedule,
    VegetationProfile,
)
from .normalization import (
    CLEANLINESS_ORDER,
    CONDITION_ORDER,
    DRAINAGE_ORDER,
    PROXIMITY_ORDER,
    RISK_ORDER,
    highest_of,
    unique_strings,
    worst_of,
)

SANITIZER_TYPES = frozenset({"chlorinator", "sanitizer"})

COMPONENT_DEFAULT_TYPES = {
    "pump": "single-speed",
    "filter": "cartridge",
    "heater": "gas",
    "timer": "mechanical",
}


def worst_condition(conditions: Iterable[str]) -> str:
    return worst_of(conditions, CONDITION_ORDER)


def max_confidence(confidences: Iterable[float]) -> float:
    return max((value for value in confidences if value is not None), default=0.0)


def aggregate_equipment(records: list[EquipmentAnalysis]) -> AggregatedEquipmentAnalysis:
    if not records:
        return AggregatedEquipmentAnalysis()

    by_category: dict[str, list[EquipmentAnalysis]] = {}
    for record in records:
        category = "sanitizer" if record.equipment_type in SANITIZER_TYPES else record.equipment_type
        by_category.setdefault(category, []).append(record)

    components: dict[str, EquipmentComponent] = {}
    for category in ("pump", "filter", "heater", "sanitizer", "timer"):
        matches = by_category.get(category)
        if matches:
            components[category] = _build_component(category, matches)

    pump = by_category.get("pump", [None])[0]
    filter_record = by_category.get("filter", [None])[0]
    primary = pump or filter_record or records[0]

    detected: list[DetectedComponent] = []
    for index, record in enumerate(records):
        if record.equipment_type != "unknown":
            detected.append(
                DetectedComponent(
                    type=record.equipment_type,
                    brand=record.brand,
                    model=record.model,
                    condition=record.condition,
                    image_index=index,
                )
            )
        for extra in record.detected_equipment:
            detected.append(
                DetectedComponent(
                    type=extra.type,
                    brand=extra.brand,
                    model=extra.model,
                    condition=extra.condition,
                    image_index=index,
                )
            )

    return AggregatedEquipmentAnalysis(
        primary=primary,
        components=components,
        detected_equipment=detected,
        overall_condition=worst_condition(record.condition for record in records),
        maintenance_needed=unique_strings(*(record.maintenance_needed for record in records)),
        recommendations=unique_strings(*(record.recommendations for record in records)),
        confidence=max_confidence(record.confidence for record in records),
        images_analyzed=len(records),
        per_image=list(records),
    )


def _build_component(category: str, matches: list[EquipmentAnalysis]) -> EquipmentComponent:
    record = matches[0]
    serial_number = record.serial_number or next(
        (match.serial_number for match in matches if match.serial_number),
        "",
    )
    if category == "sanitizer":
        component_type = record.equipment_type
    elif record.equipment_subtype and record.equipment_subtype != "unknown":
        component_type = record.equipment_subtype
    else:
        component_type = COMPONENT_DEFAULT_TYPES.get(category, "unknown")
    return EquipmentComponent(
        category=category,
        brand=record.brand,
        model=record.model,
        serial_number=serial_number if category != "timer" else "",
        type=component_type,
        condition=record.condition,
        age=record.age,
        horsepower=record.specifications.horsepower if category == "pump" else "",
        size=record.specifications.filter_size if category == "filter" else "",
        capacity=record.specifications.capacity if category == "heater" else "",
        replacement_cartridge=record.replacement_cartridge if category == "filter" else "",
        timer_settings=record.timer_settings if category == "timer" else TimerSchedule(),
    )


def aggregate_skimmers(records: list[SkimmerAnalysis]) -> AggregatedSkimmerAnalysis:
    if not records:
        return AggregatedSkimmerAnalysis()
    skimmers = [skimmer for record in records for skimmer in record.skimmers]
    reported_count = sum(record.detected_skimmer_count for record in records)
    return AggregatedSkimmerAnalysis(
        detected_skimmer_count=max(reported_count, len(skimmers)),
        skimmers=skimmers,
        overall_condition=worst_condition(record.overall_condition for record in records),
        maintenance_needed=unique_strings(*(record.maintenance_needed for record in records)),
        recommendations=unique_strings(*(record.recommendations for record in records)),
        confidence=max_confidence(record.confidence for record in records),
        images_analyzed=len(records),
        per_image=list(records),
    )


def aggregate_deck(records: list[DeckAnalysis]) -> AggregatedDeckAnalysis:
    if not records:
        return AggregatedDeckAnalysis()
    material = next((record.material for record in records if record.material != "unknown"), "unknown")
    return AggregatedDeckAnalysis(
        material=material,
        condition=worst_condition(record.condition for record in records),
        cleanliness=worst_of((record.cleanliness for record in records), CLEANLINESS_ORDER),
        issues=DeckIssueFlags(
            cracks=any(record.issues.cracks for record in records),
            stains=any(record.issues.stains for record in records),
            algae_growth=any(record.issues.algae_growth for record in records),
            uneven_surfaces=any(record.issues.uneven_surfaces for record in records),
            drainage_issues=any(record.issues.drainage_issues for record in records),
        ),
        safety_concerns=unique_strings(*(record.safety_concerns for record in records)),
        maintenance_needed=unique_strings(*(record.maintenance_needed for record in records)),
        recommendations=unique_strings(*(record.recommendations for record in records)),
        confidence=max_confidence(record.confidence for record in records),
        images_analyzed=len(records),
        per_image=list(records),
    )


def aggregate_environment(records: list[EnvironmentAnalysis]) -> AggregatedEnvironmentAnalysis:
    if not records:
        return AggregatedEnvironmentAnalysis()
    analyzed = [record for record in records if record.confidence > 0] or list(records)
    lead = analyzed[0]
    vegetation = [record.vegetation for record in analyzed]
    ground = [record.ground_conditions for record in analyzed]
    return AggregatedEnvironmentAnalysis(
        vegetation=VegetationProfile(
            trees_present=any(item.trees_present for item in vegetation),
            tree_count=max(item.tree_count for item in vegetation),
            tree_types=unique_strings(*(item.tree_types for item in vegetation)),
            proximity_to_pool=highest_of((item.proximity_to_pool for item in vegetation), PROXIMITY_ORDER, fallback="far"),
            overhang_risk=highest_of((item.overhang_risk for item in vegetation), RISK_ORDER, fallback="none"),
            debris_risk=highest_of((item.debris_risk for item in vegetation), RISK_ORDER, fallback="low"),
        ),
        ground_conditions=GroundProfile(
            surface_type=lead.ground_conditions.surface_type,
            drainage=worst_of((item.drainage for item in ground), DRAINAGE_ORDER, fallback="good"),
            erosion_risk=highest_of((item.erosion_risk for item in ground), RISK_ORDER, fallback="none"),
            sprinklers_present=any(item.sprinklers_present for item in ground),
        ),
        environmental_factors=ExposureProfile(
            sun_exposure=lead.environmental_factors.sun_exposure,
            wind_exposure=lead.environmental_factors.wind_exposure,
            privacy_level=lead.environmental_factors.privacy_level,
        ),
        maintenance_challenges=unique_strings(*(record.maintenance_challenges for record in records)),
        recommendations=unique_strings(*(record.recommendations for record in records)),
        confidence=max_confidence(record.confidence for record in records),
        images_analyzed=len(records),
        per_image=list(records),
    )
