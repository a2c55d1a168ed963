from __future__ import annotations

import logging

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .analysis_schemas import AnalysisKind
from .dispatch import AllProvidersExhausted
from .image_inputs import ImageInput, ImageInputError
from .pool_analysis import AnalysisOutcome, PoolAnalysisError, PoolAnalysisService
from .satellite_imagery import AddressNotFoundError, SatelliteImageryError
from .settings import PoolVisionSettings

settings = PoolVisionSettings.from_env()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

analysis_service = PoolAnalysisService.from_env(settings=settings)

app = FastAPI(title="PoolVision Analysis Service", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class AnalyzeImagesBody(BaseModel):
    images: list[str] = Field(default_factory=list)
    image: str | None = None
    instruction: str | None = None
    equipment_type: str | None = None


class AnalyzeSatelliteBody(BaseModel):
    address: str
    instruction: str | None = None


def _resolve_kind(kind: str) -> AnalysisKind:
    normalized = kind.strip().lower().replace("-", "_")
    if normalized == "skimmers":
        normalized = AnalysisKind.SKIMMER.value
    try:
        return AnalysisKind(normalized)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown analysis kind: {kind}") from exc


def _run_analysis(
    kind: AnalysisKind,
    images: list[object],
    *,
    instruction: str | None,
    equipment_type: str | None,
) -> dict:
    options: dict[str, object] = {"instruction": instruction}
    if kind is AnalysisKind.EQUIPMENT:
        options["equipment_type"] = equipment_type
    try:
        outcome: AnalysisOutcome = analysis_service.analyze(kind, images=images, **options)
    except AllProvidersExhausted as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except (ImageInputError, PoolAnalysisError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return outcome.to_dict()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/api/ai/health")
def ai_health() -> dict:
    return analysis_service.provider_health()


@app.post("/api/ai/analyze/satellite")
def analyze_satellite(body: AnalyzeSatelliteBody) -> dict:
    try:
        outcome = analysis_service.analyze_satellite(address=body.address, instruction=body.instruction)
    except AddressNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SatelliteImageryError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except AllProvidersExhausted as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except PoolAnalysisError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return outcome.to_dict()


@app.post("/api/ai/analyze/{kind}")
def analyze_images(kind: str, body: AnalyzeImagesBody) -> dict:
    analysis_kind = _resolve_kind(kind)
    images: list[object] = list(body.images)
    if body.image:
        images.insert(0, body.image)
    if not images:
        raise HTTPException(status_code=400, detail="Provide at least one image.")
    return _run_analysis(
        analysis_kind,
        images,
        instruction=body.instruction,
        equipment_type=body.equipment_type,
    )


@app.post("/api/ai/analyze/{kind}/upload")
async def analyze_uploads(
    kind: str,
    files: list[UploadFile] = File(...),
    instruction: str | None = Form(None),
    equipment_type: str | None = Form(None),
) -> dict:
    analysis_kind = _resolve_kind(kind)
    images: list[object] = []
    for index, upload in enumerate(files, start=1):
        data = await upload.read()
        media_type = (upload.content_type or "").lower()
        if not media_type.startswith("image/"):
            raise HTTPException(status_code=400, detail=f"File '{upload.filename}' is not an image.")
        if not data:
            raise HTTPException(status_code=400, detail=f"File '{upload.filename}' was empty.")
        images.append(ImageInput(data=data, media_type=media_type, label=upload.filename or f"image_{index}"))
    if not images:
        raise HTTPException(status_code=400, detail="Provide at least one image.")
    return _run_analysis(
        analysis_kind,
        images,
        instruction=instruction,
        equipment_type=equipment_type,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("poolvision.main:app", host="0.0.0.0", port=8000, reload=True)
