"""
Online Serving Layer
====================

Feature preprocessing, model routing and inference.

Submodules:
    features: Feature schemas and the record -> vector preprocessor
    models: Model registry, loading and condition routing
    scoring: Scoring engine, per-version orchestrator and batch pipeline
    telemetry: Prometheus metrics recording
    jobs: Scheduled batch replay

Usage:
    from src.api.serving import BatchCoordinator, ConditionRouter, PredictionOrchestrator

    coordinator = BatchCoordinator(router, orchestrator)
    scores = coordinator.score(records)
"""

from src.api.serving.config import ServingConfig, RoutingConfig, ModelConfig
from src.api.serving.features.schema import FeatureSchema
from src.api.serving.features.preprocessor import FeaturePreprocessor
from src.api.serving.models.model_registry import ModelRegistry, ModelContext
from src.api.serving.models.condition_router import ConditionRouter
from src.api.serving.scoring.orchestrator import PredictionOrchestrator
from src.api.serving.scoring.score_pipeline import (
    BatchCoordinator,
    BatchScoringResult,
    PREDICTION_FAILURE_SCORE,
)

__all__ = [
    "ServingConfig",
    "RoutingConfig",
    "ModelConfig",
    "FeatureSchema",
    "FeaturePreprocessor",
    "ModelRegistry",
    "ModelContext",
    "ConditionRouter",
    "PredictionOrchestrator",
    "BatchCoordinator",
    "BatchScoringResult",
    "PREDICTION_FAILURE_SCORE",
]
