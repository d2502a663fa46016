"""
FastAPI Dependency Injection
============================

Provides dependency injection for the serving components.

The whole serving graph (engine, registry, schemas, router, orchestrator,
coordinator) is built once from the model configuration and cached. Endpoints
depend on the small provider functions below, which tests override:

    app.dependency_overrides[get_coordinator] = lambda: fake_coordinator

Usage:
    from fastapi import Depends
    from src.api.dependencies import get_coordinator

    @router.post("/api/model/predict")
    def predict(coordinator: BatchCoordinator = Depends(get_coordinator)):
        ...
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

from src.api.settings import ServingSettings, get_serving_settings
from src.api.serving.config import ServingConfig
from src.api.serving.features.preprocessor import FeaturePreprocessor
from src.api.serving.features.schema import FeatureSchema
from src.api.serving.jobs.scheduled_batch import ScheduledBatchRunner
from src.api.serving.models.condition_router import ConditionRouter
from src.api.serving.models.model_loader import ModelLoader
from src.api.serving.models.model_registry import ModelRegistry
from src.api.serving.scoring.engine import OnnxScoringEngine, ScoringEngine
from src.api.serving.scoring.orchestrator import PredictionOrchestrator
from src.api.serving.scoring.score_pipeline import BatchCoordinator
from src.api.serving.telemetry.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


@dataclass
class ServingRuntime:
    """Everything a request needs, wired together."""
    config: ServingConfig
    engine: ScoringEngine
    registry: ModelRegistry
    schemas: Dict[str, FeatureSchema]
    router: ConditionRouter
    orchestrator: PredictionOrchestrator
    coordinator: BatchCoordinator
    scheduler: Optional[ScheduledBatchRunner] = None

    @classmethod
    def build(
        cls,
        settings: ServingSettings,
        config: Optional[ServingConfig] = None,
        engine: Optional[ScoringEngine] = None,
    ) -> "ServingRuntime":
        config = config or ServingConfig.from_yaml(settings.models_config_path)
        engine = engine or OnnxScoringEngine()
        metrics = MetricsRecorder()

        loaded = ModelLoader(engine, metrics=metrics).load_all(config)
        router = ConditionRouter(config.routing)
        orchestrator = PredictionOrchestrator(
            registry=loaded.registry,
            schemas=loaded.schemas,
            engine=engine,
            preprocessor=FeaturePreprocessor(metrics=metrics),
            timeout_seconds=settings.inference_timeout_seconds,
            workers=settings.engine_workers,
        )
        coordinator = BatchCoordinator(
            router=router,
            orchestrator=orchestrator,
            parallel_groups=settings.parallel_groups,
            group_workers=settings.group_workers,
            metrics=metrics,
        )

        scheduler = None
        if settings.enable_scheduled_batch and config.schedule.enabled:
            scheduler = ScheduledBatchRunner(coordinator, config.schedule, metrics=metrics)

        return cls(
            config=config,
            engine=engine,
            registry=loaded.registry,
            schemas=loaded.schemas,
            router=router,
            orchestrator=orchestrator,
            coordinator=coordinator,
            scheduler=scheduler,
        )

    def close(self):
        if self.scheduler is not None:
            self.scheduler.stop()
        self.coordinator.close()
        self.orchestrator.close()
        self.registry.close(self.engine)
        logger.info("[DI] ServingRuntime closed")


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings() -> ServingSettings:
    """
    Get serving settings.

    Can be overridden in tests:
        app.dependency_overrides[get_settings] = lambda: ServingSettings(max_batch_size=2)
    """
    return get_serving_settings()


# =============================================================================
# Runtime Dependencies
# =============================================================================

@lru_cache(maxsize=1)
def _create_runtime() -> ServingRuntime:
    """Create and cache the ServingRuntime."""
    runtime = ServingRuntime.build(get_serving_settings())
    logger.info(f"[DI] ServingRuntime initialized with models: {runtime.registry.versions()}")
    return runtime


def get_runtime() -> ServingRuntime:
    return _create_runtime()


def get_coordinator() -> BatchCoordinator:
    return get_runtime().coordinator


def get_registry() -> ModelRegistry:
    return get_runtime().registry


def get_router() -> ConditionRouter:
    return get_runtime().router


def shutdown_runtime():
    """Release sessions and pools; next access rebuilds the runtime."""
    if _create_runtime.cache_info().currsize:
        _create_runtime().close()
    _create_runtime.cache_clear()
