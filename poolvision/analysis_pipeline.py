from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .analysis_mapping import map_record
from .analysis_schemas import AnalysisKind, validate_with_repair
from .provider_registry import CallClass
from .response_extraction import extract_json_object, preview_text
from .vision_providers import VisionProviderResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KindProfile:
    kind: AnalysisKind
    call_class: CallClass
    multi_image: bool


KIND_PROFILES: dict[AnalysisKind, KindProfile] = {
    AnalysisKind.SURFACE: KindProfile(AnalysisKind.SURFACE, CallClass.RAW, multi_image=False),
    AnalysisKind.EQUIPMENT: KindProfile(AnalysisKind.EQUIPMENT, CallClass.RAW, multi_image=True),
    AnalysisKind.ENVIRONMENT: KindProfile(AnalysisKind.ENVIRONMENT, CallClass.RAW, multi_image=True),
    AnalysisKind.SKIMMER: KindProfile(AnalysisKind.SKIMMER, CallClass.RAW, multi_image=True),
    AnalysisKind.DECK: KindProfile(AnalysisKind.DECK, CallClass.RAW, multi_image=True),
    AnalysisKind.SATELLITE: KindProfile(AnalysisKind.SATELLITE, CallClass.RAW, multi_image=False),
    AnalysisKind.TEST_STRIP: KindProfile(AnalysisKind.TEST_STRIP, CallClass.PARSED, multi_image=False),
}


def profile_for(kind: AnalysisKind | str) -> KindProfile:
    return KIND_PROFILES[AnalysisKind(kind)]


def interpret_response(kind: AnalysisKind | str, response: VisionProviderResult | dict[str, Any] | str) -> Any:
    """Turn one provider response into the kind's domain record.

    Raises ``NoJsonFound`` or ``SchemaInvalid``; both are treated by the
    dispatcher as a failure of the provider that produced the response.
    """
    analysis_kind = AnalysisKind(kind)
    if isinstance(response, VisionProviderResult):
        payload = response.parsed if response.parsed is not None else extract_json_object(response.text)
    else:
        payload = extract_json_object(response)
    logger.debug("%s payload preview: %s", analysis_kind.value, preview_text(payload))
    validated = validate_with_repair(analysis_kind, payload)
    return map_record(analysis_kind, validated)