from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from .analysis_schemas import AnalysisKind

READING_NAMES: tuple[str, ...] = (
    "free_chlorine",
    "total_chlorine",
    "bromine",
    "ph",
    "alkalinity",
    "total_hardness",
    "calcium",
    "cyanuric_acid",
    "copper",
    "iron",
    "nitrate",
    "nitrite",
    "phosphates",
    "salt",
    "biguanide",
    "ammonia",
    "tds",
    "orp",
    "temperature",
)


class _Record:
    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# surface


@dataclass
class SurfaceIssueLevels:
    stains: str = "none"
    cracks: str = "none"
    roughness: str = "smooth"
    discoloration: str = "none"
    etching: str = "none"
    scaling: str = "none"
    chipping: str = "none"
    hollow_spots: str = "none"


@dataclass
class SurfaceAnalysis(_Record):
    material: str = "unknown"
    condition: str = "unknown"
    issues: SurfaceIssueLevels = field(default_factory=SurfaceIssueLevels)
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0


# equipment


@dataclass
class EquipmentIssueFlags:
    rust: bool = False
    leaks: bool = False
    cracks: bool = False
    electrical_issues: bool = False
    missing_parts: bool = False
    noise: bool = False


@dataclass
class EquipmentSpecs:
    horsepower: str = ""
    voltage: str = ""
    filter_size: str = ""
    flow_rate: str = ""
    capacity: str = ""


@dataclass
class TimerSchedule:
    on_time: str = ""
    off_time: str = ""
    duration: str = ""


@dataclass
class DetectedComponent:
    type: str = "unknown"
    brand: str = "unknown"
    model: str = "unknown"
    condition: str = "unknown"
    image_index: int = -1


@dataclass
class EquipmentAnalysis(_Record):
    equipment_type: str = "unknown"
    equipment_subtype: str = "unknown"
    brand: str = "unknown"
    model: str = "unknown"
    serial_number: str = ""
    age: str = "unknown"
    condition: str = "unknown"
    replacement_cartridge: str = ""
    issues: EquipmentIssueFlags = field(default_factory=EquipmentIssueFlags)
    specifications: EquipmentSpecs = field(default_factory=EquipmentSpecs)
    maintenance_needed: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    detected_equipment: list[DetectedComponent] = field(default_factory=list)
    pressure_reading: float = 0.0
    timer_settings: TimerSchedule = field(default_factory=TimerSchedule)
    confidence: float = 0.0


@dataclass
class EquipmentComponent:
    category: str
    brand: str = "unknown"
    model: str = "unknown"
    serial_number: str = ""
    type: str = "unknown"
    condition: str = "unknown"
    age: str = "unknown"
    horsepower: str = ""
    size: str = ""
    capacity: str = ""
    replacement_cartridge: str = ""
    timer_settings: TimerSchedule = field(default_factory=TimerSchedule)


@dataclass
class AggregatedEquipmentAnalysis(_Record):
    primary: EquipmentAnalysis = field(default_factory=EquipmentAnalysis)
    components: dict[str, EquipmentComponent] = field(default_factory=dict)
    detected_equipment: list[DetectedComponent] = field(default_factory=list)
    overall_condition: str = "unknown"
    maintenance_needed: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0
    images_analyzed: int = 0
    per_image: list[EquipmentAnalysis] = field(default_factory=list)


# environment


@dataclass
class VegetationProfile:
    trees_present: bool = False
    tree_count: int = 0
    tree_types: list[str] = field(default_factory=list)
    proximity_to_pool: str = "far"
    overhang_risk: str = "none"
    debris_risk: str = "low"


@dataclass
class GroundProfile:
    surface_type: str = "grass"
    drainage: str = "good"
    erosion_risk: str = "none"
    sprinklers_present: bool = False


@dataclass
class ExposureProfile:
    sun_exposure: str = "full sun"
    wind_exposure: str = "moderate"
    privacy_level: str = "partial"


@dataclass
class EnvironmentAnalysis(_Record):
    vegetation: VegetationProfile = field(default_factory=VegetationProfile)
    ground_conditions: GroundProfile = field(default_factory=GroundProfile)
    environmental_factors: ExposureProfile = field(default_factory=ExposureProfile)
    maintenance_challenges: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class AggregatedEnvironmentAnalysis(_Record):
    vegetation: VegetationProfile = field(default_factory=VegetationProfile)
    ground_conditions: GroundProfile = field(default_factory=GroundProfile)
    environmental_factors: ExposureProfile = field(default_factory=ExposureProfile)
    maintenance_challenges: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0
    images_analyzed: int = 0
    per_image: list[EnvironmentAnalysis] = field(default_factory=list)


# skimmer


@dataclass
class SkimmerCondition:
    basket_condition: str = "unknown"
    lid_condition: str = "unknown"
    weir_door_condition: str = "unknown"
    housing_condition: str = "unknown"
    visible_damage: bool = False
    debris_level: str = "none"


@dataclass
class SkimmerAnalysis(_Record):
    detected_skimmer_count: int = 0
    skimmers: list[SkimmerCondition] = field(default_factory=list)
    overall_condition: str = "unknown"
    maintenance_needed: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class AggregatedSkimmerAnalysis(_Record):
    detected_skimmer_count: int = 0
    skimmers: list[SkimmerCondition] = field(default_factory=list)
    overall_condition: str = "unknown"
    maintenance_needed: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0
    images_analyzed: int = 0
    per_image: list[SkimmerAnalysis] = field(default_factory=list)


# deck


@dataclass
class DeckIssueFlags:
    cracks: bool = False
    stains: bool = False
    algae_growth: bool = False
    uneven_surfaces: bool = False
    drainage_issues: bool = False


@dataclass
class DeckAnalysis(_Record):
    material: str = "unknown"
    condition: str = "unknown"
    cleanliness: str = "unknown"
    issues: DeckIssueFlags = field(default_factory=DeckIssueFlags)
    safety_concerns: list[str] = field(default_factory=list)
    maintenance_needed: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class AggregatedDeckAnalysis(_Record):
    material: str = "unknown"
    condition: str = "unknown"
    cleanliness: str = "unknown"
    issues: DeckIssueFlags = field(default_factory=DeckIssueFlags)
    safety_concerns: list[str] = field(default_factory=list)
    maintenance_needed: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0
    images_analyzed: int = 0
    per_image: list[DeckAnalysis] = field(default_factory=list)


# satellite


@dataclass
class PoolFootprint:
    length: float = 0.0
    width: float = 0.0
    surface_area: float = 0.0


@dataclass
class SatellitePoolFeatures:
    has_spillover: bool = False
    has_spa: bool = False
    has_water_feature: bool = False
    has_deck: bool = False
    deck_material: str = "unknown"


@dataclass
class SatellitePropertyFeatures:
    tree_count: int = 0
    tree_proximity: str = "far"
    landscape_type: str = "unknown"
    property_size: str = "unknown"


@dataclass
class SatelliteAnalysis(_Record):
    pool_detected: bool = False
    dimensions_detected: bool = False
    pool_dimensions: PoolFootprint = field(default_factory=PoolFootprint)
    pool_shape: str = "rectangle"
    pool_features: SatellitePoolFeatures = field(default_factory=SatellitePoolFeatures)
    property_features: SatellitePropertyFeatures = field(default_factory=SatellitePropertyFeatures)
    surrounding_landscape: str = ""
    confidence: float = 0.0


# test strip


@dataclass
class StripDetails:
    detected_chemicals: list[str] = field(default_factory=list)
    pad_count: int = 0
    brand: str = ""
    notes: str = ""


@dataclass
class TestStripAnalysis(_Record):
    __test__ = False

    readings: dict[str, float] = field(default_factory=dict)
    unmeasured: list[str] = field(default_factory=lambda: list(READING_NAMES))
    strip_info: StripDetails = field(default_factory=StripDetails)
    tds_estimated: bool = False
    clamped_readings: list[str] = field(default_factory=list)
    confidence: float = 0.0
    analysis_notes: str = ""


RECORD_TYPES: dict[AnalysisKind, type[_Record]] = {
    AnalysisKind.SURFACE: SurfaceAnalysis,
    AnalysisKind.EQUIPMENT: EquipmentAnalysis,
    AnalysisKind.ENVIRONMENT: EnvironmentAnalysis,
    AnalysisKind.SKIMMER: SkimmerAnalysis,
    AnalysisKind.DECK: DeckAnalysis,
    AnalysisKind.SATELLITE: SatelliteAnalysis,
    AnalysisKind.TEST_STRIP: TestStripAnalysis,
}


def default_record(kind: AnalysisKind | str) -> Any:
    return RECORD_TYPES[AnalysisKind(kind)]()
