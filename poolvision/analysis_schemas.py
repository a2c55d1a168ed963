from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Callable, Literal

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from .normalization import finite_float

logger = logging.getLogger(__name__)


class AnalysisKind(str, Enum):
    SURFACE = "surface"
    EQUIPMENT = "equipment"
    ENVIRONMENT = "environment"
    SKIMMER = "skimmer"
    DECK = "deck"
    SATELLITE = "satellite"
    TEST_STRIP = "test_strip"


@dataclass(frozen=True)
class FieldError:
    path: str
    message: str
    error_type: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message, "type": self.error_type}


class SchemaInvalid(RuntimeError):
    def __init__(self, kind: str, field_errors: list[FieldError]) -> None:
        summary = "; ".join(f"{item.path}: {item.message}" for item in field_errors[:5])
        super().__init__(f"{kind} response failed schema validation after repair: {summary}")
        self.kind = kind
        self.field_errors = field_errors


def _fold(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _fold_underscored(value: Any) -> Any:
    if isinstance(value, str):
        return re.sub(r"[\s-]+", "_", value.strip().lower())
    return value


_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")


def _loose_number(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return finite_float(value)
    if isinstance(value, str):
        match = _NUMBER_PATTERN.search(value.replace(",", ""))
        return finite_float(match.group(0)) if match else None
    return None


Folded = BeforeValidator(_fold)
LooseNumber = Annotated[float | None, BeforeValidator(_loose_number)]

ConditionLevel = Annotated[Literal["excellent", "good", "fair", "poor"], Folded]


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _string_list(*aliases: str) -> Any:
    if aliases:
        return Field(default_factory=list, validation_alias=AliasChoices(*aliases))
    return Field(default_factory=list)


# surface


class SurfaceIssues(_Schema):
    stains: Annotated[Literal["none", "light", "moderate", "heavy"], Folded]
    cracks: Annotated[Literal["none", "minor", "major"], Folded]
    roughness: Annotated[Literal["smooth", "slightly rough", "very rough"], Folded]
    discoloration: Annotated[Literal["none", "minor", "significant"], Folded]
    etching: Annotated[Literal["none", "minor", "moderate", "severe"], Folded]
    scaling: Annotated[Literal["none", "light", "moderate", "heavy"], Folded]
    chipping: Annotated[Literal["none", "minor", "moderate", "severe"], Folded]
    hollow_spots: Annotated[Literal["none", "few", "many"], Folded]


class SurfaceResponse(_Schema):
    material: str | None = None
    condition: str | None = None
    issues: SurfaceIssues
    recommendations: list[str] = _string_list()
    confidence: LooseNumber = None


# equipment


class EquipmentIssues(_Schema):
    rust: bool | None = None
    leaks: bool | None = None
    cracks: bool | None = None
    electrical_issues: bool | None = None
    missing_parts: bool | None = None
    noise: bool | None = None


class EquipmentSpecifications(_Schema):
    horsepower: str | None = None
    voltage: str | None = None
    filter_size: str | None = None
    flow_rate: str | None = None
    capacity: str | None = None


class TimerSettings(_Schema):
    on_time: str | None = None
    off_time: str | None = None
    duration: str | None = None


class DetectedEquipment(_Schema):
    type: str
    brand: str | None = None
    model: str | None = None
    condition: str | None = None


class EquipmentResponse(_Schema):
    equipment_type: Annotated[
        Literal["pump", "filter", "heater", "chlorinator", "automation", "valve", "timer", "other"] | None,
        Folded,
    ] = None
    brand: str | None = None
    model: str | None = None
    serial_number: str | None = None
    age: str | None = None
    condition: ConditionLevel | None = None
    equipment_subtype: str | None = None
    replacement_cartridge: str | None = None
    issues: EquipmentIssues | None = None
    specifications: EquipmentSpecifications | None = None
    maintenance_needed: list[str] = _string_list("maintenance_needed", "maintenanceNeeded")
    recommendations: list[str] = _string_list()
    detected_equipment: list[DetectedEquipment] = Field(default_factory=list)
    pressure_reading: LooseNumber = None
    timer_settings: TimerSettings | None = None


# environment


class Vegetation(_Schema):
    trees_present: bool | None = None
    tree_count: LooseNumber = None
    tree_types: list[str] = _string_list()
    proximity_to_pool: Annotated[Literal["close", "moderate", "far"] | None, Folded] = None
    overhang_risk: Annotated[Literal["none", "low", "medium", "high"] | None, Folded] = None
    debris_risk: Annotated[Literal["low", "medium", "high"] | None, Folded] = None


class GroundConditions(_Schema):
    surface_type: Annotated[Literal["grass", "dirt", "both", "concrete", "mulch"] | None, Folded] = None
    drainage: Annotated[Literal["good", "fair", "poor"] | None, Folded] = None
    erosion_risk: Annotated[Literal["none", "low", "medium", "high"] | None, Folded] = None
    sprinklers_present: bool | None = None


class EnvironmentalFactors(_Schema):
    sun_exposure: Annotated[
        Literal["full_sun", "partial_shade", "heavy_shade"] | None,
        BeforeValidator(_fold_underscored),
    ] = None
    wind_exposure: Annotated[Literal["low", "moderate", "high"] | None, Folded] = None
    privacy_level: Annotated[Literal["open", "partial", "private"] | None, Folded] = None


class EnvironmentResponse(_Schema):
    vegetation: Vegetation | None = None
    ground_conditions: GroundConditions | None = None
    environmental_factors: EnvironmentalFactors | None = None
    maintenance_challenges: list[str] = _string_list()
    recommendations: list[str] = _string_list()


# skimmer


class SkimmerEntry(_Schema):
    basket_condition: Annotated[Literal["clean", "dirty", "damaged", "missing"] | None, Folded] = Field(
        default=None, validation_alias=AliasChoices("basketCondition", "basket_condition")
    )
    lid_condition: Annotated[Literal["intact", "cracked", "missing"] | None, Folded] = Field(
        default=None, validation_alias=AliasChoices("lidCondition", "lid_condition")
    )
    weir_door_condition: Annotated[Literal["good", "stuck", "missing"] | None, Folded] = Field(
        default=None, validation_alias=AliasChoices("weirDoorCondition", "weir_door_condition")
    )
    housing_condition: ConditionLevel | None = Field(
        default=None, validation_alias=AliasChoices("housingCondition", "housing_condition")
    )
    visible_damage: bool | None = Field(
        default=None, validation_alias=AliasChoices("visibleDamage", "visible_damage")
    )
    debris_level: Annotated[Literal["none", "light", "moderate", "heavy"] | None, Folded] = Field(
        default=None, validation_alias=AliasChoices("debrisLevel", "debris_level")
    )


class SkimmerResponse(_Schema):
    detected_skimmer_count: LooseNumber = Field(
        default=None,
        validation_alias=AliasChoices("detectedSkimmerCount", "detected_skimmer_count"),
    )
    skimmers: list[SkimmerEntry] = Field(default_factory=list)
    overall_condition: ConditionLevel | None = Field(
        default=None, validation_alias=AliasChoices("overallCondition", "overall_condition")
    )
    maintenance_needed: list[str] = _string_list("maintenanceNeeded", "maintenance_needed")
    recommendations: list[str] = _string_list()


# deck


class DeckIssues(_Schema):
    cracks: bool | None = None
    stains: bool | None = None
    algae_growth: bool | None = None
    uneven_surfaces: bool | None = None
    drainage_issues: bool | None = None


class DeckResponse(_Schema):
    material: Annotated[
        Literal[
            "pavers",
            "stamped_concrete",
            "concrete",
            "natural_stone",
            "tile",
            "wood",
            "composite",
            "other",
        ]
        | None,
        BeforeValidator(_fold_underscored),
    ] = None
    condition: ConditionLevel | None = None
    cleanliness: Annotated[Literal["pristine", "clean", "dirty", "filthy"] | None, Folded] = None
    issues: DeckIssues | None = None
    safety_concerns: list[str] = _string_list()
    maintenance_needed: list[str] = _string_list()
    recommendations: list[str] = _string_list()


# satellite


class PoolDimensions(_Schema):
    length: float | str
    width: float | str
    surface_area: float | str | None = None


class SatelliteResponse(_Schema):
    pool_presence: bool
    pool_present: bool | None = None
    approximate_dimensions: PoolDimensions | None = None
    pool_dimensions: PoolDimensions | None = None
    pool_shape: str
    pool_shape_alias: str | None = Field(default=None, alias="poolShape")
    deck_material_condition: str | None = None
    deck_present: bool | None = None
    features: list[str] = _string_list()
    spa_waterfeature: list[str] = _string_list()
    surrounding_landscape: str
    tree_count: LooseNumber = None
    trees_near_pool: bool | None = None
    landscape_type: str | None = None
    property_size: str | None = None
    confidence: LooseNumber = None


# test strip


def _reading(camel_name: str, snake_name: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(camel_name, snake_name))


class StripReadings(_Schema):
    free_chlorine: LooseNumber = _reading("freeChlorine", "free_chlorine")
    total_chlorine: LooseNumber = _reading("totalChlorine", "total_chlorine")
    bromine: LooseNumber = None
    ph: LooseNumber = _reading("ph", "pH")
    alkalinity: LooseNumber = None
    total_hardness: LooseNumber = _reading("totalHardness", "total_hardness")
    calcium: LooseNumber = None
    cyanuric_acid: LooseNumber = _reading("cyanuricAcid", "cyanuric_acid")
    copper: LooseNumber = None
    iron: LooseNumber = None
    nitrate: LooseNumber = None
    nitrite: LooseNumber = None
    phosphates: LooseNumber = None
    salt: LooseNumber = None
    biguanide: LooseNumber = None
    ammonia: LooseNumber = None
    tds: LooseNumber = None
    orp: LooseNumber = None
    temperature: LooseNumber = None


class StripInfo(_Schema):
    detected_chemicals: list[str] = _string_list("detectedChemicals", "detected_chemicals")
    pad_count: LooseNumber = _reading("padCount", "pad_count")
    brand: str | None = None
    notes: str | None = None


class StripResponse(_Schema):
    readings: StripReadings
    strip_info: StripInfo | None = Field(default=None, validation_alias=AliasChoices("stripInfo", "strip_info"))
    confidence: LooseNumber = None
    analysis_notes: str | None = Field(
        default=None, validation_alias=AliasChoices("analysisNotes", "analysis_notes")
    )


SCHEMAS: dict[AnalysisKind, type[BaseModel]] = {
    AnalysisKind.SURFACE: SurfaceResponse,
    AnalysisKind.EQUIPMENT: EquipmentResponse,
    AnalysisKind.ENVIRONMENT: EnvironmentResponse,
    AnalysisKind.SKIMMER: SkimmerResponse,
    AnalysisKind.DECK: DeckResponse,
    AnalysisKind.SATELLITE: SatelliteResponse,
    AnalysisKind.TEST_STRIP: StripResponse,
}

SURFACE_ISSUE_DEFAULTS: dict[str, str] = {
    "stains": "none",
    "cracks": "none",
    "roughness": "smooth",
    "discoloration": "none",
    "etching": "none",
    "scaling": "none",
    "chipping": "none",
    "hollow_spots": "none",
}

RepairDefault = Callable[[dict[str, Any]], Any]

# Paths are dotted; "*" matches every element of a list.
REPAIR_DEFAULTS: dict[AnalysisKind, dict[str, RepairDefault]] = {
    AnalysisKind.SURFACE: {
        "issues": lambda payload: {},
        **{f"issues.{name}": (lambda payload, value=value: value) for name, value in SURFACE_ISSUE_DEFAULTS.items()},
    },
    AnalysisKind.EQUIPMENT: {
        "detected_equipment.*.type": lambda payload: "unknown",
    },
    AnalysisKind.ENVIRONMENT: {},
    AnalysisKind.SKIMMER: {},
    AnalysisKind.DECK: {},
    AnalysisKind.SATELLITE: {
        "pool_presence": lambda payload: bool(payload.get("pool_present") or False),
        "surrounding_landscape": lambda payload: "No landscape description available",
        "pool_shape": lambda payload: payload.get("poolShape") or "unknown",
        "approximate_dimensions.length": lambda payload: 0,
        "approximate_dimensions.width": lambda payload: 0,
        "pool_dimensions.length": lambda payload: 0,
        "pool_dimensions.width": lambda payload: 0,
    },
    AnalysisKind.TEST_STRIP: {},
}


def validate_with_repair(kind: AnalysisKind | str, payload: dict[str, Any]) -> BaseModel:
    analysis_kind = AnalysisKind(kind)
    schema = SCHEMAS[analysis_kind]
    if not isinstance(payload, dict):
        raise SchemaInvalid(
            analysis_kind.value,
            [FieldError(path="$", message="Expected a JSON object.", error_type="dict_type")],
        )

    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        first_errors = exc.errors()

    logger.info(
        "%s response failed validation (%d errors); attempting repair",
        analysis_kind.value,
        len(first_errors),
    )
    repaired = repair_payload(analysis_kind, payload, first_errors)
    try:
        return schema.model_validate(repaired)
    except ValidationError as exc:
        raise SchemaInvalid(analysis_kind.value, _field_errors(exc)) from exc


def repair_payload(
    kind: AnalysisKind,
    payload: dict[str, Any],
    errors: list[Any],
) -> dict[str, Any]:
    defaults = REPAIR_DEFAULTS[kind]
    repaired = _drop_nulls(copy.deepcopy(payload))
    for error in errors:
        loc = tuple(error.get("loc", ()))
        error_type = error.get("type")
        if error_type == "list_type" and isinstance(error.get("input"), str):
            _set_path(repaired, loc, [error["input"]])
        elif error_type == "literal_error":
            default_factory = defaults.get(_pattern_for(loc))
            if default_factory is not None:
                _set_path(repaired, loc, default_factory(repaired))
            else:
                _delete_path(repaired, loc)
    for path, default_factory in defaults.items():
        _fill_missing(repaired, path.split("."), default_factory, root=repaired)
    return repaired


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _drop_nulls(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [_drop_nulls(item) for item in value if item is not None]
    return value


def _fill_missing(
    node: Any,
    parts: list[str],
    default_factory: RepairDefault,
    *,
    root: dict[str, Any],
) -> None:
    head, rest = parts[0], parts[1:]
    if head == "*":
        if isinstance(node, list):
            for item in node:
                _fill_missing(item, rest, default_factory, root=root)
        return
    if not isinstance(node, dict):
        return
    if not rest:
        if head not in node:
            node[head] = default_factory(root)
        return
    if head in node:
        _fill_missing(node[head], rest, default_factory, root=root)


def _pattern_for(loc: tuple[Any, ...]) -> str:
    return ".".join("*" if isinstance(part, int) else str(part) for part in loc)


def _set_path(payload: dict[str, Any], loc: tuple[Any, ...], value: Any) -> None:
    node: Any = payload
    for part in loc[:-1]:
        try:
            node = node[part]
        except (KeyError, IndexError, TypeError):
            return
    if loc and isinstance(node, dict):
        node[loc[-1]] = value


def _delete_path(payload: dict[str, Any], loc: tuple[Any, ...]) -> None:
    node: Any = payload
    for part in loc[:-1]:
        try:
            node = node[part]
        except (KeyError, IndexError, TypeError):
            return
    if loc and isinstance(node, dict):
        node.pop(loc[-1], None)


def _field_errors(exc: ValidationError) -> list[FieldError]:
    return [
        FieldError(
            path=".".join(str(part) for part in error.get("loc", ())) or "$",
            message=str(error.get("msg", "invalid")),
            error_type=str(error.get("type", "unknown")),
        )
        for error in exc.errors()
    ]
