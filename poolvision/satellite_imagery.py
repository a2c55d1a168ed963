from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from .image_inputs import ImageInput
from .vision_providers import USER_AGENT, _parse_timeout_seconds

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
STATIC_MAP_URL = "https://maps.googleapis.com/maps/api/staticmap"

STATIC_MAP_ZOOM = 20
STATIC_MAP_SIZE = "640x640"
STATIC_MAP_SCALE = 2


class SatelliteImageryError(RuntimeError):
    pass


class AddressNotFoundError(SatelliteImageryError):
    pass


@dataclass(frozen=True)
class GeocodedLocation:
    latitude: float
    longitude: float
    formatted_address: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "lat": self.latitude,
            "lng": self.longitude,
            "formatted_address": self.formatted_address,
        }


class SatelliteImageryClient:
    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key.strip()
        self.timeout_seconds = timeout_seconds
        self.http_client = http_client

    @classmethod
    def from_env(cls, *, http_client: httpx.Client | None = None) -> "SatelliteImageryClient":
        return cls(
            api_key=os.getenv("GOOGLE_MAPS_API_KEY", ""),
            timeout_seconds=_parse_timeout_seconds(
                os.getenv("VISION_REQUEST_TIMEOUT_SECONDS"),
                fallback=30.0,
            ),
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def geocode(self, address: str) -> GeocodedLocation:
        cleaned = (address or "").strip()
        if not cleaned:
            raise AddressNotFoundError("Address is required for satellite analysis.")
        self._require_key()

        response = self._get(GEOCODE_URL, params={"address": cleaned, "key": self.api_key})
        try:
            payload = response.json()
        except ValueError as exc:
            raise SatelliteImageryError(f"Geocoding response was not valid JSON: {exc}") from exc

        status = payload.get("status") if isinstance(payload, dict) else None
        results = payload.get("results") if isinstance(payload, dict) else None
        if status == "ZERO_RESULTS":
            raise AddressNotFoundError(f"Address not found: {cleaned}")
        if status not in (None, "OK"):
            detail = payload.get("error_message") or status
            raise SatelliteImageryError(f"Geocoding failed: {detail}")
        if not results:
            raise AddressNotFoundError(f"Address not found: {cleaned}")

        first = results[0]
        location = (first.get("geometry") or {}).get("location") or {}
        try:
            latitude = float(location["lat"])
            longitude = float(location["lng"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SatelliteImageryError("Geocoding result is missing coordinates.") from exc

        geocoded = GeocodedLocation(
            latitude=latitude,
            longitude=longitude,
            formatted_address=str(first.get("formatted_address") or cleaned),
        )
        logger.info("Geocoded %r to %.6f,%.6f", cleaned, latitude, longitude)
        return geocoded

    def static_map_params(self, location: GeocodedLocation) -> dict[str, str]:
        return {
            "center": f"{location.latitude},{location.longitude}",
            "zoom": str(STATIC_MAP_ZOOM),
            "size": STATIC_MAP_SIZE,
            "scale": str(STATIC_MAP_SCALE),
            "maptype": "satellite",
            "key": self.api_key,
        }

    def fetch_static_map(self, location: GeocodedLocation) -> ImageInput:
        self._require_key()
        response = self._get(STATIC_MAP_URL, params=self.static_map_params(location))
        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if not content_type.startswith("image/"):
            raise SatelliteImageryError(
                f"Static map request returned {content_type or 'no content type'} instead of an image."
            )
        return ImageInput(
            data=response.content,
            media_type=content_type,
            label="satellite",
            source_url=STATIC_MAP_URL,
        )

    def fetch_for_address(self, address: str) -> tuple[GeocodedLocation, ImageInput]:
        location = self.geocode(address)
        return location, self.fetch_static_map(location)

    def _require_key(self) -> None:
        if not self.api_key:
            raise SatelliteImageryError("Satellite imagery is not configured (missing GOOGLE_MAPS_API_KEY).")

    def _get(self, url: str, *, params: dict[str, str]) -> httpx.Response:
        headers = {"User-Agent": USER_AGENT}
        try:
            if self.http_client is not None:
                response = self.http_client.get(url, params=params, headers=headers, timeout=self.timeout_seconds)
            else:
                response = httpx.get(url, params=params, headers=headers, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            raise SatelliteImageryError(f"Maps request failed: {exc}") from exc
        if response.status_code >= 400:
            raise SatelliteImageryError(f"Maps request failed ({response.status_code}): {response.text[:300]}")
        return response
