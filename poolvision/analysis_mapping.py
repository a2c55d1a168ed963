from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import BaseModel

from .analysis_schemas import (
    AnalysisKind,
    DeckResponse,
    EnvironmentResponse,
    EquipmentResponse,
    SatelliteResponse,
    SkimmerResponse,
    StripResponse,
    SurfaceResponse,
)
from .domain_records import (
    READING_NAMES,
    DeckAnalysis,
    DeckIssueFlags,
    DetectedComponent,
    EnvironmentAnalysis,
    EquipmentAnalysis,
    EquipmentIssueFlags,
    EquipmentSpecs,
    ExposureProfile,
    GroundProfile,
    PoolFootprint,
    SatelliteAnalysis,
    SatellitePoolFeatures,
    SatellitePropertyFeatures,
    SkimmerAnalysis,
    SkimmerCondition,
    StripDetails,
    SurfaceAnalysis,
    SurfaceIssueLevels,
    TestStripAnalysis,
    TimerSchedule,
    VegetationProfile,
)
from .normalization import (
    SURFACE_ISSUE_LEVELS,
    WATER_FEATURES,
    clean_text,
    extract_deck_material,
    extract_tree_count,
    finite_float,
    normalize_condition,
    normalize_level,
    normalize_pool_shape,
    normalize_surface_material,
    parse_distance,
    replace_first_underscore,
    round_half_up,
    unique_strings,
    unit_interval,
)

logger = logging.getLogger(__name__)

PARSED_CONFIDENCE = 0.85

READING_RANGES: dict[str, tuple[float, float]] = {
    "free_chlorine": (0, 10),
    "total_chlorine": (0, 10),
    "bromine": (0, 20),
    "ph": (6.2, 8.4),
    "alkalinity": (0, 240),
    "total_hardness": (0, 1000),
    "calcium": (0, 1000),
    "cyanuric_acid": (0, 300),
    "copper": (0, 3),
    "iron": (0, 3),
    "nitrate": (0, 50),
    "nitrite": (0, 10),
    "phosphates": (0, 2500),
    "salt": (0, 6000),
    "biguanide": (0, 50),
    "ammonia": (0, 6),
    "tds": (0, 3000),
    "orp": (0, 900),
}


def map_surface(data: SurfaceResponse) -> SurfaceAnalysis:
    issues = data.issues.model_dump()
    return SurfaceAnalysis(
        material=normalize_surface_material(data.material),
        condition=normalize_condition(data.condition),
        issues=SurfaceIssueLevels(
            **{name: normalize_level(issues.get(name), levels) for name, levels in SURFACE_ISSUE_LEVELS.items()}
        ),
        recommendations=unique_strings(data.recommendations),
        confidence=unit_interval(data.confidence) or PARSED_CONFIDENCE,
    )


def map_equipment(data: EquipmentResponse) -> EquipmentAnalysis:
    issues = data.issues
    specs = data.specifications
    timer = data.timer_settings
    equipment_type = data.equipment_type or "unknown"
    brand = clean_text(data.brand)
    model = clean_text(data.model)
    if equipment_type == "timer":
        brand = brand or "Generic"
        model = model or "Mechanical Timer"
    return EquipmentAnalysis(
        equipment_type=equipment_type,
        equipment_subtype=clean_text(data.equipment_subtype, fallback="unknown"),
        brand=brand or "unknown",
        model=model or "unknown",
        serial_number=clean_text(data.serial_number),
        age=clean_text(data.age, fallback="unknown"),
        condition=data.condition or "unknown",
        replacement_cartridge=clean_text(data.replacement_cartridge),
        issues=EquipmentIssueFlags(
            rust=bool(issues and issues.rust),
            leaks=bool(issues and issues.leaks),
            cracks=bool(issues and issues.cracks),
            electrical_issues=bool(issues and issues.electrical_issues),
            missing_parts=bool(issues and issues.missing_parts),
            noise=bool(issues and issues.noise),
        ),
        specifications=EquipmentSpecs(
            horsepower=clean_text(specs.horsepower if specs else None),
            voltage=clean_text(specs.voltage if specs else None),
            filter_size=clean_text(specs.filter_size if specs else None),
            flow_rate=clean_text(specs.flow_rate if specs else None),
            capacity=clean_text(specs.capacity if specs else None),
        ),
        maintenance_needed=unique_strings(data.maintenance_needed),
        recommendations=unique_strings(data.recommendations),
        detected_equipment=[
            DetectedComponent(
                type=clean_text(item.type, fallback="unknown"),
                brand=clean_text(item.brand, fallback="unknown"),
                model=clean_text(item.model, fallback="unknown"),
                condition=normalize_condition(item.condition),
            )
            for item in data.detected_equipment
        ],
        pressure_reading=data.pressure_reading or 0.0,
        timer_settings=TimerSchedule(
            on_time=clean_text(timer.on_time if timer else None),
            off_time=clean_text(timer.off_time if timer else None),
            duration=clean_text(timer.duration if timer else None),
        ),
        confidence=PARSED_CONFIDENCE,
    )


def map_environment(data: EnvironmentResponse) -> EnvironmentAnalysis:
    vegetation = data.vegetation
    ground = data.ground_conditions
    factors = data.environmental_factors
    sun_exposure = factors.sun_exposure if factors else None
    return EnvironmentAnalysis(
        vegetation=VegetationProfile(
            trees_present=bool(vegetation and vegetation.trees_present),
            tree_count=int(vegetation.tree_count or 0) if vegetation else 0,
            tree_types=unique_strings(vegetation.tree_types) if vegetation else [],
            proximity_to_pool=(vegetation.proximity_to_pool if vegetation else None) or "far",
            overhang_risk=(vegetation.overhang_risk if vegetation else None) or "none",
            debris_risk=(vegetation.debris_risk if vegetation else None) or "low",
        ),
        ground_conditions=GroundProfile(
            surface_type=(ground.surface_type if ground else None) or "grass",
            drainage=(ground.drainage if ground else None) or "good",
            erosion_risk=(ground.erosion_risk if ground else None) or "none",
            sprinklers_present=bool(ground and ground.sprinklers_present),
        ),
        environmental_factors=ExposureProfile(
            sun_exposure=replace_first_underscore(sun_exposure) if sun_exposure else "full sun",
            wind_exposure=(factors.wind_exposure if factors else None) or "moderate",
            privacy_level=(factors.privacy_level if factors else None) or "partial",
        ),
        maintenance_challenges=unique_strings(data.maintenance_challenges),
        recommendations=unique_strings(data.recommendations),
        confidence=PARSED_CONFIDENCE,
    )


def map_skimmer(data: SkimmerResponse) -> SkimmerAnalysis:
    return SkimmerAnalysis(
        detected_skimmer_count=int(data.detected_skimmer_count or 0),
        skimmers=[
            SkimmerCondition(
                basket_condition=entry.basket_condition or "unknown",
                lid_condition=entry.lid_condition or "unknown",
                weir_door_condition=entry.weir_door_condition or "unknown",
                housing_condition=entry.housing_condition or "unknown",
                visible_damage=bool(entry.visible_damage),
                debris_level=entry.debris_level or "none",
            )
            for entry in data.skimmers
        ],
        overall_condition=data.overall_condition or "unknown",
        maintenance_needed=unique_strings(data.maintenance_needed),
        recommendations=unique_strings(data.recommendations),
        confidence=PARSED_CONFIDENCE,
    )


def map_deck(data: DeckResponse) -> DeckAnalysis:
    issues = data.issues
    return DeckAnalysis(
        material=replace_first_underscore(data.material) if data.material else "unknown",
        condition=data.condition or "unknown",
        cleanliness=data.cleanliness or "unknown",
        issues=DeckIssueFlags(
            cracks=bool(issues and issues.cracks),
            stains=bool(issues and issues.stains),
            algae_growth=bool(issues and issues.algae_growth),
            uneven_surfaces=bool(issues and issues.uneven_surfaces),
            drainage_issues=bool(issues and issues.drainage_issues),
        ),
        safety_concerns=unique_strings(data.safety_concerns),
        maintenance_needed=unique_strings(data.maintenance_needed),
        recommendations=unique_strings(data.recommendations),
        confidence=PARSED_CONFIDENCE,
    )


def map_satellite(data: SatelliteResponse) -> SatelliteAnalysis:
    pool_detected = bool(data.pool_presence or data.pool_present)
    dimensions = data.pool_dimensions or data.approximate_dimensions
    footprint = PoolFootprint()
    if dimensions is not None:
        length = parse_distance(dimensions.length)
        width = parse_distance(dimensions.width)
        footprint = PoolFootprint(length=length, width=width, surface_area=finite_float(length * width) or 0.0)

    features = [item.strip().lower() for item in data.features]
    spa_waterfeature = [item.strip().lower() for item in data.spa_waterfeature]
    fallback_confidence = PARSED_CONFIDENCE if pool_detected else 0.0
    return SatelliteAnalysis(
        pool_detected=pool_detected,
        dimensions_detected=dimensions is not None,
        pool_dimensions=footprint,
        pool_shape=normalize_pool_shape(data.pool_shape or data.pool_shape_alias),
        pool_features=SatellitePoolFeatures(
            has_spillover="spillover" in features,
            has_spa="spa" in features or "spa" in spa_waterfeature,
            has_water_feature=any(item in WATER_FEATURES for item in features),
            has_deck=True if data.deck_present is None else data.deck_present,
            deck_material=extract_deck_material(data.deck_material_condition),
        ),
        property_features=SatellitePropertyFeatures(
            tree_count=int(data.tree_count or 0) or extract_tree_count(data.surrounding_landscape),
            tree_proximity="close" if data.trees_near_pool else "far",
            landscape_type=clean_text(data.landscape_type, fallback="unknown"),
            property_size=clean_text(data.property_size, fallback="medium"),
        ),
        surrounding_landscape=clean_text(data.surrounding_landscape),
        confidence=unit_interval(data.confidence) or fallback_confidence,
    )


def map_test_strip(data: StripResponse) -> TestStripAnalysis:
    raw_readings = data.readings.model_dump()
    readings: dict[str, float] = {
        name: float(raw_readings[name]) for name in READING_NAMES if raw_readings.get(name) is not None
    }
    if "calcium" not in readings and "total_hardness" in readings:
        readings["calcium"] = readings["total_hardness"]

    clamped: list[str] = []
    for name, (minimum, maximum) in READING_RANGES.items():
        value = readings.get(name)
        if value is None or minimum <= value <= maximum:
            continue
        logger.warning("%s value %s outside normal range [%s-%s]", name, value, minimum, maximum)
        readings[name] = max(minimum, min(maximum, value))
        clamped.append(name)

    tds_estimated = False
    if "tds" not in readings:
        estimated = estimate_tds(readings)
        if estimated is not None:
            readings["tds"] = float(estimated)
            tds_estimated = True

    strip = data.strip_info
    return TestStripAnalysis(
        readings=readings,
        unmeasured=[name for name in READING_NAMES if name not in readings],
        strip_info=StripDetails(
            detected_chemicals=unique_strings(strip.detected_chemicals) if strip else [],
            pad_count=int(strip.pad_count or 0) if strip else 0,
            brand=clean_text(strip.brand if strip else None),
            notes=clean_text(strip.notes if strip else None),
        ),
        tds_estimated=tds_estimated,
        clamped_readings=clamped,
        confidence=unit_interval(data.confidence) or PARSED_CONFIDENCE,
        analysis_notes=clean_text(data.analysis_notes),
    )


def estimate_tds(readings: dict[str, float]) -> int | None:
    if not readings.get("ph"):
        return None
    total = 200.0
    total += readings.get("calcium", 0.0) * 2.5
    total += readings.get("alkalinity", 0.0) * 1.2
    total += readings.get("salt", 0.0) * 0.5
    total += readings.get("cyanuric_acid", 0.0) * 0.8
    return round_half_up(total)


MAPPERS: dict[AnalysisKind, Callable[[Any], Any]] = {
    AnalysisKind.SURFACE: map_surface,
    AnalysisKind.EQUIPMENT: map_equipment,
    AnalysisKind.ENVIRONMENT: map_environment,
    AnalysisKind.SKIMMER: map_skimmer,
    AnalysisKind.DECK: map_deck,
    AnalysisKind.SATELLITE: map_satellite,
    AnalysisKind.TEST_STRIP: map_test_strip,
}


def map_record(kind: AnalysisKind | str, data: BaseModel) -> Any:
    return MAPPERS[AnalysisKind(kind)](data)
