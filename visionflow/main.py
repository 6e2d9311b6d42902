from __future__ import annotations

from typing import Any

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .pattern_analysis import PatternAnalysisService
from .pattern_config import PatternAnalysisConfig
from .pattern_errors import (
    ConfigurationError,
    EmptyResponseError,
    ImagePreparationError,
    InvalidStructureError,
    MalformedResponseError,
    ModelUnavailableError,
    PatternAnalysisError,
)
from .pattern_images import MAX_UPLOAD_BYTES, decode_image_data_url
from .pattern_models import AnalysisResult
from .pattern_store import PatternAnalysisStore, PatternResultNotFoundError

CONFIG = PatternAnalysisConfig.from_env()

pattern_service = PatternAnalysisService(config=CONFIG)
pattern_store = PatternAnalysisStore(root=CONFIG.data_dir)

app = FastAPI(title="VisionFlow Pattern Service", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class AnalyzeImageBody(BaseModel):
    image: str
    persist: bool | None = None


def _status_for_error(exc: PatternAnalysisError) -> int:
    if isinstance(exc, ImagePreparationError):
        return 400
    if isinstance(exc, PatternResultNotFoundError):
        return 404
    if isinstance(exc, (ConfigurationError, ModelUnavailableError)):
        return 503
    if isinstance(exc, (EmptyResponseError, MalformedResponseError, InvalidStructureError)):
        return 502
    return 500


def _http_error(exc: PatternAnalysisError) -> HTTPException:
    return HTTPException(status_code=_status_for_error(exc), detail=exc.to_detail())


def _read_upload(file: UploadFile) -> bytes:
    image_bytes = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(image_bytes) > MAX_UPLOAD_BYTES:
        raise ImagePreparationError("Image is too large. Maximum size is 10MB.")
    return image_bytes


def _run_analysis(image_bytes: bytes, *, persist: bool | None) -> dict[str, Any]:
    try:
        result: AnalysisResult = pattern_service.analyze_pattern(image_bytes)
        response = result.to_dict()
        should_persist = CONFIG.persist_results if persist is None else persist
        if should_persist:
            response["analysisId"] = pattern_store.save_result(result)
    except PatternAnalysisError as exc:
        raise _http_error(exc)
    return response


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/patterns/providers")
async def list_pattern_providers():
    return pattern_service.list_providers()


@app.post("/api/patterns/analyze")
def analyze_pattern_upload(file: UploadFile = File(...)):
    try:
        image_bytes = _read_upload(file)
    except ImagePreparationError as exc:
        raise _http_error(exc)
    return _run_analysis(image_bytes, persist=None)


@app.post("/api/patterns/analyze-base64")
def analyze_pattern_base64(body: AnalyzeImageBody):
    try:
        image_bytes = decode_image_data_url(body.image)
    except ImagePreparationError as exc:
        raise _http_error(exc)
    return _run_analysis(image_bytes, persist=body.persist)


@app.get("/api/patterns/analyses")
async def list_pattern_analyses():
    try:
        return {"analyses": pattern_store.list_results()}
    except PatternAnalysisError as exc:
        raise _http_error(exc)


@app.get("/api/patterns/analyses/{analysis_id}")
async def get_pattern_analysis(analysis_id: str):
    try:
        return pattern_store.get_result(analysis_id)
    except PatternAnalysisError as exc:
        raise _http_error(exc)


@app.delete("/api/patterns/analyses/{analysis_id}")
async def delete_pattern_analysis(analysis_id: str):
    try:
        pattern_store.delete_result(analysis_id)
    except PatternAnalysisError as exc:
        raise _http_error(exc)
    return {"deleted": analysis_id}
