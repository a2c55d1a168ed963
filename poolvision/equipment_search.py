from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, replace
from typing import Any

import httpx

from .domain_records import EquipmentAnalysis
from .vision_providers import USER_AGENT, _parse_timeout_seconds

logger = logging.getLogger(__name__)

CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"

# (brand, model fragment) -> replacement cartridge, most specific first.
CARTRIDGE_TABLE: tuple[tuple[str, str, str], ...] = (
    ("jandy", "cs100", "C-7468"),
    ("jandy", "cs150", "C-7469"),
    ("jandy", "cs200", "C-7470"),
    ("jandy", "cs250", "C-7471"),
    ("pentair", "clean & clear 320", "C-7471"),
    ("pentair", "clean & clear 420", "C-7472"),
    ("hayward", "c3030", "C-7483"),
    ("hayward", "c4030", "CX580XRE"),
)

CARTRIDGE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b4\s*x\s*(c-\d{4})\b", re.IGNORECASE),
    re.compile(r"\b(c-\d{4,5})\b", re.IGNORECASE),
    re.compile(r"\b(pjan[\s-]?\d{2,3})\b", re.IGNORECASE),
    re.compile(r"\b(cx\d{3,4}\w*)\b", re.IGNORECASE),
    re.compile(r"\b(r\d{6})\b", re.IGNORECASE),
    re.compile(r"\b(fc-\d{4})\b", re.IGNORECASE),
)

_CARTRIDGE_CONTEXT = ("replacement cartridge", "filter cartridge")


@dataclass(frozen=True)
class EquipmentLookup:
    actual_brand: str | None = None
    replacement_cartridge: str | None = None
    source: str = "table"

    def to_dict(self) -> dict[str, Any]:
        return {
            "actual_brand": self.actual_brand,
            "replacement_cartridge": self.replacement_cartridge,
            "source": self.source,
        }


def lookup_cartridge(brand: str, model: str) -> str | None:
    brand_key = (brand or "").strip().lower()
    model_key = re.sub(r"\s+", " ", (model or "").strip().lower())
    if not model_key:
        return None
    for table_brand, fragment, cartridge in CARTRIDGE_TABLE:
        if fragment in model_key and (not brand_key or table_brand in brand_key or brand_key == "unknown"):
            return cartridge
    return None


def extract_cartridge_number(text: str) -> str | None:
    for pattern in CARTRIDGE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).upper()
    return None


class EquipmentSearchService:
    def __init__(
        self,
        *,
        api_key: str = "",
        search_engine_id: str = "",
        timeout_seconds: float = 15.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key.strip()
        self.search_engine_id = search_engine_id.strip()
        self.timeout_seconds = timeout_seconds
        self.http_client = http_client

    @classmethod
    def from_env(cls, *, http_client: httpx.Client | None = None) -> "EquipmentSearchService":
        return cls(
            api_key=os.getenv("GOOGLE_CSE_API_KEY", ""),
            search_engine_id=os.getenv("GOOGLE_CSE_ID", ""),
            timeout_seconds=_parse_timeout_seconds(os.getenv("GOOGLE_CSE_TIMEOUT_SECONDS"), fallback=15.0),
            http_client=http_client,
        )

    @property
    def search_configured(self) -> bool:
        return bool(self.api_key and self.search_engine_id)

    def lookup(self, brand: str, model: str) -> EquipmentLookup | None:
        cartridge = lookup_cartridge(brand, model)
        if cartridge:
            return EquipmentLookup(replacement_cartridge=cartridge, source="table")
        if not self.search_configured:
            logger.debug("Custom search not configured; no lookup for %s %s", brand, model)
            return None
        return self.search(brand, model)

    def search(self, brand: str, model: str) -> EquipmentLookup | None:
        query = f"{brand} {model} pool equipment specifications"
        logger.info("Searching equipment info: %s", query)
        params = {"key": self.api_key, "cx": self.search_engine_id, "q": query, "num": "5"}
        headers = {"User-Agent": USER_AGENT}
        try:
            if self.http_client is not None:
                response = self.http_client.get(
                    CUSTOM_SEARCH_URL, params=params, headers=headers, timeout=self.timeout_seconds
                )
            else:
                response = httpx.get(CUSTOM_SEARCH_URL, params=params, headers=headers, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            logger.warning("Equipment search failed for %s %s: %s", brand, model, exc)
            return None
        if response.status_code >= 400:
            if response.status_code == 403:
                logger.error(
                    "Custom search rejected the request (403); check the API is enabled and the engine id: %s",
                    response.text[:300],
                )
            logger.warning("Equipment search failed for %s %s: HTTP %s", brand, model, response.status_code)
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Equipment search returned invalid JSON for %s %s", brand, model)
            return None
        items = payload.get("items") if isinstance(payload, dict) else None
        return self._extract(items or [], model=model)

    def _extract(self, items: list[Any], *, model: str) -> EquipmentLookup | None:
        if not items:
            return None
        actual_brand: str | None = None
        cartridge: str | None = None
        for item in items:
            if not isinstance(item, dict):
                continue
            combined = f"{item.get('title') or ''} {item.get('snippet') or ''}".lower()
            if "ichlor" in (model or "").lower() and "pentair" in combined:
                actual_brand = "Pentair"
            if cartridge is None and any(marker in combined for marker in _CARTRIDGE_CONTEXT):
                cartridge = extract_cartridge_number(combined)
        if actual_brand is None and cartridge is None:
            return None
        return EquipmentLookup(actual_brand=actual_brand, replacement_cartridge=cartridge, source="search")

    def enrich(self, record: EquipmentAnalysis) -> EquipmentAnalysis:
        if record.equipment_type != "filter":
            return record
        if record.brand in ("", "unknown") and record.model in ("", "unknown"):
            return record
        found = self.lookup(record.brand, record.model)
        if found is None:
            return record
        updates: dict[str, Any] = {}
        if found.actual_brand and found.actual_brand != record.brand:
            logger.info("Correcting brand from %s to %s", record.brand, found.actual_brand)
            updates["brand"] = found.actual_brand
        if found.replacement_cartridge:
            logger.info("Found replacement cartridge: %s", found.replacement_cartridge)
            updates["replacement_cartridge"] = found.replacement_cartridge
        return replace(record, **updates) if updates else record
