from __future__ import annotations

import base64
import binascii
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

MIN_IMAGE_BYTES = 64
DEFAULT_MEDIA_TYPE = "image/jpeg"
EXTENSION_MAP = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
}

_DATA_URL_PATTERN = re.compile(
    r"^\s*data:(?P<media>image/[a-zA-Z0-9.+-]+);base64,(?P<data>.+)\s*$",
    flags=re.IGNORECASE | re.DOTALL,
)


class ImageInputError(RuntimeError):
    pass


@dataclass(frozen=True)
class ImageInput:
    data: bytes
    media_type: str
    label: str
    source_url: str | None = None

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.to_base64()}"

    def describe(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "media_type": self.media_type,
            "size_bytes": len(self.data),
            "source_url": self.source_url,
        }


def load_image_input(
    reference: Any,
    *,
    label: str | None = None,
    http_client: httpx.Client | None = None,
    timeout_seconds: float = 30.0,
) -> ImageInput:
    """Resolve one image reference into raw bytes.

    Accepted references: an existing ``ImageInput``, raw ``bytes``, a ``Path``,
    a ``data:image/...;base64,`` URL, a bare base64 string, or an ``http(s)``
    URL of an already-hosted image.
    """
    if isinstance(reference, ImageInput):
        return reference

    if isinstance(reference, (bytes, bytearray)):
        data = bytes(reference)
        _require_min_size(data)
        return ImageInput(
            data=data,
            media_type=_sniff_media_type(data),
            label=label or "image",
        )

    if isinstance(reference, Path):
        return _load_path(reference, label=label)

    if not isinstance(reference, str):
        raise ImageInputError(f"Unsupported image reference type: {type(reference).__name__}")

    value = reference.strip()
    if not value:
        raise ImageInputError("Image reference was empty.")

    if value.lower().startswith(("http://", "https://")):
        return _fetch_url(
            value,
            label=label,
            http_client=http_client,
            timeout_seconds=timeout_seconds,
        )

    if value.lower().startswith("data:"):
        media_type, data = decode_image_data_url(value)
        return ImageInput(data=data, media_type=media_type, label=label or "image")

    data = _decode_base64(value)
    return ImageInput(data=data, media_type=_sniff_media_type(data), label=label or "image")


def load_image_inputs(
    references: Any,
    *,
    http_client: httpx.Client | None = None,
    timeout_seconds: float = 30.0,
) -> list[ImageInput]:
    if references is None:
        raise ImageInputError("At least one image is required.")
    if not isinstance(references, (list, tuple)):
        references = [references]
    images = [
        load_image_input(
            reference,
            label=f"image_{index}",
            http_client=http_client,
            timeout_seconds=timeout_seconds,
        )
        for index, reference in enumerate(references, start=1)
    ]
    if not images:
        raise ImageInputError("At least one image is required.")
    return images


def decode_image_data_url(data_url: str) -> tuple[str, bytes]:
    match = _DATA_URL_PATTERN.match(data_url)
    if not match:
        raise ImageInputError("Images must be base64 data URLs.")
    media_type = match.group("media").lower()
    if media_type == "image/jpg":
        media_type = "image/jpeg"
    return media_type, _decode_base64(match.group("data"))


def extension_for_media_type(media_type: str) -> str:
    return EXTENSION_MAP.get(media_type.lower(), ".jpg")


def _decode_base64(raw_value: str) -> bytes:
    encoded_data = re.sub(r"\s+", "", raw_value)
    try:
        data = base64.b64decode(encoded_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageInputError("Image payload contains invalid base64 data.") from exc
    _require_min_size(data)
    return data


def _require_min_size(data: bytes) -> None:
    if not data:
        raise ImageInputError("Image payload was empty.")
    if len(data) < MIN_IMAGE_BYTES:
        raise ImageInputError("Image payload is too small to be a photo.")


def _load_path(path: Path, *, label: str | None) -> ImageInput:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ImageInputError(f"Failed to read image '{path.name}': {exc}") from exc
    _require_min_size(data)
    guessed_type, _ = mimetypes.guess_type(path.name)
    if isinstance(guessed_type, str) and guessed_type.startswith("image/"):
        media_type = guessed_type
    else:
        media_type = _sniff_media_type(data)
    return ImageInput(data=data, media_type=media_type, label=label or path.stem)


def _fetch_url(
    url: str,
    *,
    label: str | None,
    http_client: httpx.Client | None,
    timeout_seconds: float,
) -> ImageInput:
    try:
        if http_client is not None:
            response = http_client.get(url, timeout=timeout_seconds)
        else:
            response = httpx.get(url, timeout=timeout_seconds, follow_redirects=True)
    except httpx.HTTPError as exc:
        raise ImageInputError(f"Failed to download image: {exc}") from exc
    if response.status_code >= 400:
        raise ImageInputError(f"Failed to download image ({response.status_code}).")

    data = response.content
    _require_min_size(data)
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    media_type = content_type if content_type.startswith("image/") else _sniff_media_type(data)
    return ImageInput(data=data, media_type=media_type, label=label or "image", source_url=url)


def _sniff_media_type(data: bytes) -> str:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data.startswith(b"BM"):
        return "image/bmp"
    return DEFAULT_MEDIA_TYPE
