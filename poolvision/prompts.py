from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from .analysis_schemas import AnalysisKind

JSON_ONLY_LINE = "Return JSON only. No markdown, no code fences, no commentary."


@dataclass(frozen=True)
class PromptVersion:
    version: str
    created: date
    prompt: str
    changes: tuple[str, ...] = field(default_factory=tuple)


_SURFACE_SCHEMA = (
    "{\n"
    '  "material": "plaster|pebble|tile|vinyl|fiberglass",\n'
    '  "condition": "excellent|good|fair|poor",\n'
    '  "issues": {\n'
    '    "stains": "none|light|moderate|heavy",\n'
    '    "cracks": "none|minor|major",\n'
    '    "roughness": "smooth|slightly rough|very rough",\n'
    '    "discoloration": "none|minor|significant",\n'
    '    "etching": "none|minor|moderate|severe",\n'
    '    "scaling": "none|light|moderate|heavy",\n'
    '    "chipping": "none|minor|moderate|severe",\n'
    '    "hollow_spots": "none|few|many"\n'
    "  },\n"
    '  "recommendations": ["specific maintenance suggestion"],\n'
    '  "confidence": 0.9\n'
    "}"
)

SURFACE_PROMPTS: dict[str, PromptVersion] = {
    "1.3.0": PromptVersion(
        version="1.3.0",
        created=date(2025, 7, 1),
        changes=(
            "Separate waterline tile from the interior finish",
            "Shorter response schema",
        ),
        prompt=(
            "You are a pool inspector looking at a photo of a swimming pool interior.\n"
            "The surface is the finish on the floor and walls below the waterline.\n"
            "A band of tile at the water's edge is decoration, not the surface.\n"
            "Tile only at the waterline with a smooth finish below means plaster.\n"
            "A sparkly smooth finish is plaster with quartz aggregate.\n"
            "Exposed small stones across the floor mean pebble.\n\n"
            f"{JSON_ONLY_LINE}\n"
            f"{_SURFACE_SCHEMA}"
        ),
    ),
    "1.4.0": PromptVersion(
        version="1.4.0",
        created=date(2025, 7, 1),
        changes=(
            "Stricter JSON-only instruction",
            "Material identification guide",
            "Confidence score in the response",
        ),
        prompt=(
            "You are a pool inspector looking at a photo of a swimming pool interior.\n"
            "Judge only the finish on the floor and walls below the waterline.\n"
            "Ignore waterline tile, coping and the surrounding deck.\n\n"
            "Material guide:\n"
            "- plaster: smooth and uniform, sometimes with sparkle\n"
            "- pebble: rough, stones visible throughout\n"
            "- tile: grout lines on every surface including the floor\n"
            "- vinyl: soft plastic liner, seams may show\n"
            "- fiberglass: glossy gel coat, very smooth\n"
            "Tile at the waterline over a smooth finish is plaster.\n\n"
            f"{JSON_ONLY_LINE}\n"
            f"{_SURFACE_SCHEMA}"
        ),
    ),
}

CURRENT_SURFACE_PROMPT_VERSION = "1.4.0"


def get_surface_prompt(version: str | None = None) -> str:
    resolved = version or CURRENT_SURFACE_PROMPT_VERSION
    try:
        return SURFACE_PROMPTS[resolved].prompt
    except KeyError as exc:
        raise KeyError(f"Unknown surface prompt version: {resolved}") from exc


def _equipment_prompt(equipment_type: str | None) -> str:
    hint = f"The technician says this is a {equipment_type}.\n" if equipment_type else ""
    return (
        "You are a pool equipment technician looking at a photo of pool equipment.\n"
        f"{hint}"
        "Read every visible label and data plate.\n\n"
        "equipment_type is one of pump, filter, heater, chlorinator, automation, valve, timer, other.\n"
        "equipment_subtype for pumps: single-speed, two-speed, variable-speed.\n"
        "equipment_subtype for filters: cartridge, DE, sand.\n"
        "equipment_subtype for heaters: gas, electric, heat-pump.\n"
        "Salt systems are chlorinators.\n"
        'A timer without a visible brand is brand "Generic", model "Mechanical Timer".\n'
        "For dial timers read the on and off trippers.\n\n"
        f"{JSON_ONLY_LINE}\n"
        "{\n"
        '  "equipment_type": "pump",\n'
        '  "equipment_subtype": "variable-speed",\n'
        '  "brand": "", "model": "", "serial_number": "", "age": "",\n'
        '  "condition": "excellent|good|fair|poor",\n'
        '  "replacement_cartridge": "",\n'
        '  "issues": {"rust": false, "leaks": false, "cracks": false,\n'
        '             "electrical_issues": false, "missing_parts": false, "noise": false},\n'
        '  "specifications": {"horsepower": "", "voltage": "", "filter_size": "",\n'
        '                     "flow_rate": "", "capacity": ""},\n'
        '  "timer_settings": {"on_time": "", "off_time": "", "duration": ""},\n'
        '  "pressure_reading": 0,\n'
        '  "detected_equipment": [{"type": "", "brand": "", "model": "", "condition": ""}],\n'
        '  "maintenance_needed": [],\n'
        '  "recommendations": []\n'
        "}"
    )


_ENVIRONMENT_PROMPT = (
    "You are assessing the yard around a residential pool from a photo.\n"
    "Count trees, judge how close they are and whether branches hang over the water.\n"
    "Describe the ground, drainage, sprinklers and exposure to sun and wind.\n\n"
    f"{JSON_ONLY_LINE}\n"
    "{\n"
    '  "vegetation": {"trees_present": true, "tree_count": 0, "tree_types": [],\n'
    '                 "proximity_to_pool": "close|moderate|far",\n'
    '                 "overhang_risk": "none|low|medium|high", "debris_risk": "low|medium|high"},\n'
    '  "ground_conditions": {"surface_type": "grass|dirt|both|concrete|mulch",\n'
    '                        "drainage": "good|fair|poor", "erosion_risk": "none|low|medium|high",\n'
    '                        "sprinklers_present": false},\n'
    '  "environmental_factors": {"sun_exposure": "full_sun|partial_shade|heavy_shade",\n'
    '                            "wind_exposure": "low|moderate|high",\n'
    '                            "privacy_level": "open|partial|private"},\n'
    '  "maintenance_challenges": [],\n'
    '  "recommendations": []\n'
    "}"
)

_SKIMMER_PROMPT = (
    "You are inspecting pool skimmers from a photo.\n"
    "Report each skimmer you can see separately.\n\n"
    f"{JSON_ONLY_LINE}\n"
    "{\n"
    '  "detected_skimmer_count": 1,\n'
    '  "skimmers": [{"basket_condition": "clean|dirty|damaged|missing",\n'
    '                "lid_condition": "intact|cracked|missing",\n'
    '                "weir_door_condition": "good|stuck|missing",\n'
    '                "housing_condition": "excellent|good|fair|poor",\n'
    '                "visible_damage": false,\n'
    '                "debris_level": "none|light|moderate|heavy"}],\n'
    '  "overall_condition": "excellent|good|fair|poor",\n'
    '  "maintenance_needed": [],\n'
    '  "recommendations": []\n'
    "}"
)

_DECK_PROMPT = (
    "You are inspecting the deck around a pool from a photo.\n"
    "Identify the deck material and note anything that is a slip or trip hazard.\n\n"
    f"{JSON_ONLY_LINE}\n"
    "{\n"
    '  "material": "pavers|stamped_concrete|concrete|natural_stone|tile|wood|composite|other",\n'
    '  "condition": "excellent|good|fair|poor",\n'
    '  "cleanliness": "pristine|clean|dirty|filthy",\n'
    '  "issues": {"cracks": false, "stains": false, "algae_growth": false,\n'
    '             "uneven_surfaces": false, "drainage_issues": false},\n'
    '  "safety_concerns": [],\n'
    '  "maintenance_needed": [],\n'
    '  "recommendations": []\n'
    "}"
)

_SATELLITE_PROMPT = (
    "You are reading an overhead satellite image of a residential property.\n"
    "Decide whether a swimming pool is visible. If so estimate its size in feet,\n"
    "its shape and the features around it.\n\n"
    f"{JSON_ONLY_LINE}\n"
    "{\n"
    '  "pool_presence": true,\n'
    '  "approximate_dimensions": {"length": "30 ft", "width": "15 ft"},\n'
    '  "pool_shape": "rectangle|oval|kidney|freeform|round|L-shaped|lap|other",\n'
    '  "deck_present": true,\n'
    '  "deck_material_condition": "concrete deck in good condition",\n'
    '  "features": ["spa", "waterfall"],\n'
    '  "surrounding_landscape": "short description",\n'
    '  "tree_count": 0,\n'
    '  "trees_near_pool": false,\n'
    '  "landscape_type": "",\n'
    '  "property_size": "small|medium|large",\n'
    '  "confidence": 0.9\n'
    "}"
)

_TEST_STRIP_PROMPT = (
    "You are a pool water chemistry analyst reading a test strip photo.\n"
    "Use the reference chart in the photo to work out which chemicals this strip tests.\n"
    "Count the pads and match each pad colour to the chart.\n"
    "Report a number only for chemicals that are on this strip. Use null for every other chemical.\n\n"
    f"{JSON_ONLY_LINE}\n"
    "{\n"
    '  "readings": {"freeChlorine": null, "totalChlorine": null, "ph": null, "alkalinity": null,\n'
    '               "totalHardness": null, "cyanuricAcid": null, "copper": null, "iron": null,\n'
    '               "phosphates": null, "salt": null, "bromine": null},\n'
    '  "stripInfo": {"detectedChemicals": [], "padCount": 0, "brand": "", "notes": ""},\n'
    '  "confidence": 0.8,\n'
    '  "analysisNotes": ""\n'
    "}"
)

_STATIC_PROMPTS: dict[AnalysisKind, str] = {
    AnalysisKind.ENVIRONMENT: _ENVIRONMENT_PROMPT,
    AnalysisKind.SKIMMER: _SKIMMER_PROMPT,
    AnalysisKind.DECK: _DECK_PROMPT,
    AnalysisKind.SATELLITE: _SATELLITE_PROMPT,
    AnalysisKind.TEST_STRIP: _TEST_STRIP_PROMPT,
}


def get_prompt(kind: AnalysisKind | str, *, equipment_type: str | None = None) -> str:
    analysis_kind = AnalysisKind(kind)
    if analysis_kind is AnalysisKind.SURFACE:
        return get_surface_prompt()
    if analysis_kind is AnalysisKind.EQUIPMENT:
        return _equipment_prompt(equipment_type)
    return _STATIC_PROMPTS[analysis_kind]
