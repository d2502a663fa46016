"""
Model Loader
============

Builds the ModelRegistry and the per-version FeatureSchemas at startup.

Features:
- Disabled models are skipped
- One broken model (missing artifact, bad schema, engine failure) is logged
  and skipped; the remaining versions still load
- The returned registry is frozen
"""

import os
import time
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from src.api.errors import ConfigError
from src.api.serving.config import ModelConfig, ServingConfig, SessionOptionsConfig
from src.api.serving.features.schema import FeatureSchema
from src.api.serving.models.model_registry import ModelContext, ModelRegistry
from src.api.serving.scoring.engine import ScoringEngine
from src.api.serving.telemetry.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


@dataclass
class LoadedModels:
    """Registry plus the schema of every registered version."""
    registry: ModelRegistry
    schemas: Dict[str, FeatureSchema] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)


class ModelLoader:
    """
    Loads every enabled model of a ServingConfig through a ScoringEngine.

    Usage:
        loaded = ModelLoader(OnnxScoringEngine()).load_all(config)
        context = loaded.registry.get("ctr_v1")
    """

    def __init__(self, engine: ScoringEngine, metrics: Optional[MetricsRecorder] = None):
        self.engine = engine
        self.metrics = metrics

    def load_model(
        self,
        version: str,
        model_config: ModelConfig,
        session_options: Optional[SessionOptionsConfig] = None,
    ) -> ModelContext:
        """
        Load one model version.

        Raises:
            ConfigError: artifact missing
        """
        if not model_config.path or not os.path.isfile(model_config.path):
            raise ConfigError(f"Model file does not exist: {model_config.path}", model_version=version)

        start = time.time()
        session = self.engine.create_session(model_config.path, session_options)
        description = self.engine.describe(session)

        context = ModelContext(
            model_version=version,
            session=session,
            input_node_name=model_config.input_node,
            output_node_name=model_config.output_node,
            enabled=model_config.enabled,
            model_id=f"{model_config.name or version}:{model_config.version or version}",
            model_name=model_config.name or version,
            model_type=model_config.type,
            model_path=model_config.path,
            description=model_config.description,
            input_shapes=description.get("inputs", {}),
            output_shapes=description.get("outputs", {}),
        )

        inputs = context.input_shapes
        if inputs and context.input_node_name not in inputs:
            logger.warning(
                f"Configured input node '{context.input_node_name}' not found in {version}, "
                f"model inputs: {list(inputs)}"
            )

        logger.info(f"Model loaded: {version} in {(time.time() - start) * 1000:.0f}ms ({context})")
        return context

    def load_all(self, config: ServingConfig) -> LoadedModels:
        registry = ModelRegistry(metrics=self.metrics)
        loaded = LoadedModels(registry=registry)

        for version, model_config in config.models.items():
            if not model_config.enabled:
                logger.info(f"Model {version} is disabled, skip loading")
                continue

            context = None
            try:
                schema = FeatureSchema.load(
                    model_config.preprocessor_path,
                    version=version,
                    validation_mode=model_config.validation_mode,
                )
                context = self.load_model(version, model_config, config.session)
            except Exception as e:
                logger.error(f"Failed to load model {version}: {e}")
                loaded.failed[version] = str(e)
                continue

            if registry.register(version, context):
                loaded.schemas[version] = schema
            else:
                context.release(self.engine)
                loaded.failed[version] = "invalid model context"

        registry.freeze()
        if not len(registry):
            logger.error("No model loaded successfully, every request will receive the failure score")
        else:
            logger.info(f"Loaded {len(registry)} model(s): {registry.versions()}")
        return loaded
