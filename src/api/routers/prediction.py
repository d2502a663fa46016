"""
Prediction Router
=================

Handles model scoring endpoints:
- POST /api/model/predict  - Batch CTR prediction (routed per record)
- GET  /api/model/info     - Static metadata of one model version
- GET  /api/model/versions - Registered versions and routing summary

Uses the BatchCoordinator from src.api.serving for inference.
"""

import time
import logging
from typing import Any, Dict, List, Optional

import numpy as np
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.api.dependencies import get_coordinator, get_registry, get_router, get_settings
from src.api.errors import ValidationError
from src.api.settings import ServingSettings
from src.api.serving.models.condition_router import ConditionRouter
from src.api.serving.models.model_registry import ModelRegistry
from src.api.serving.scoring.score_pipeline import BatchCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/model", tags=["Prediction"])


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

def _to_raw(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _json_score(score: np.float32) -> float:
    """Shortest decimal that round-trips the float32, so 0.1 is sent as 0.1."""
    return float(np.format_float_positional(np.float32(score), trim="-"))


class PredictRequest(BaseModel):
    """Batch of raw feature records."""
    model_config = ConfigDict(populate_by_name=True)

    request_id: Optional[str] = Field(None, alias="requestId")
    features: List[Dict[str, str]] = Field(default_factory=list)

    @field_validator("features", mode="before")
    @classmethod
    def _coerce_values(cls, v):
        # Records are raw strings; JSON numbers and booleans arrive typed
        if not isinstance(v, list):
            return v
        return [
            {str(k): _to_raw(val) for k, val in record.items()} if isinstance(record, dict) else record
            for record in v
        ]


class PredictResponse(BaseModel):
    """Scores aligned 1:1 with the request features."""
    model_config = ConfigDict(populate_by_name=True)

    request_id: Optional[str] = Field(None, alias="requestId")
    scores: List[float]
    degraded: bool = False
    latency_ms: float = Field(0.0, alias="latencyMs")


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/predict", response_model=PredictResponse, response_model_by_alias=True)
def predict(
    request: PredictRequest,
    coordinator: BatchCoordinator = Depends(get_coordinator),
    settings: ServingSettings = Depends(get_settings),
):
    """
    Score a batch of raw records.

    Each record is routed to a model version; records whose group fails get
    the failure score -1.0 instead of failing the request.
    """
    if not request.features:
        raise ValidationError("Prediction features must not be empty", request_id=request.request_id)
    if len(request.features) > settings.max_batch_size:
        raise ValidationError(
            f"Batch size {len(request.features)} exceeds maximum {settings.max_batch_size}",
            request_id=request.request_id,
        )

    start_time = time.time()
    result = coordinator.score_with_report(request.features)
    latency_ms = (time.time() - start_time) * 1000

    logger.info(
        f"Request {request.request_id}: scored {len(request.features)} record(s) "
        f"in {latency_ms:.2f}ms (degraded={result.degraded})"
    )
    return PredictResponse(
        request_id=request.request_id,
        scores=[_json_score(s) for s in result.scores],
        degraded=result.degraded,
        latency_ms=round(latency_ms, 2),
    )


@router.get("/info")
def model_info(
    model_version: str = Query("", alias="modelVersion", description="Registered model version"),
    registry: ModelRegistry = Depends(get_registry),
):
    """Static metadata of one registered model version."""
    if not model_version.strip():
        raise ValidationError("modelVersion must not be blank")
    return registry.get(model_version.strip()).to_dict()


@router.get("/versions")
def model_versions(
    registry: ModelRegistry = Depends(get_registry),
    condition_router: ConditionRouter = Depends(get_router),
):
    """Registered model versions and the active routing table."""
    return {
        "versions": registry.versions(),
        "routing": condition_router.summary(),
    }
