"""
Model Registry
==============

Maps a model version to its loaded ModelContext.

The registry is populated once at startup, then frozen. After freeze() it is
read-only, so concurrent lookups need no locking. A reload builds a new
registry and swaps the reference; entries are never mutated in place.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.api.errors import ConfigError, ModelInvalidError, ModelNotFoundError
from src.api.serving.config import DEFAULT_INPUT_NODE, DEFAULT_OUTPUT_NODE
from src.api.serving.telemetry.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


@dataclass
class ModelContext:
    """A loaded model version and the metadata needed to invoke it."""
    model_version: str
    session: Any = None
    input_node_name: str = DEFAULT_INPUT_NODE
    output_node_name: str = DEFAULT_OUTPUT_NODE
    enabled: bool = True
    model_id: Optional[str] = None
    model_name: Optional[str] = None
    model_type: Optional[str] = None
    model_path: Optional[str] = None
    description: Optional[str] = None
    input_shapes: Dict[str, List[Any]] = field(default_factory=dict)
    output_shapes: Dict[str, List[Any]] = field(default_factory=dict)
    load_timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def is_valid(self) -> bool:
        return (
            self.session is not None
            and bool(self.input_node_name and self.input_node_name.strip())
            and bool(self.output_node_name and self.output_node_name.strip())
            and self.enabled
        )

    def release(self, engine) -> None:
        """Hand the session back to the engine."""
        if self.session is None:
            return
        try:
            engine.release(self.session)
        finally:
            self.session = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelId": self.model_id,
            "modelName": self.model_name,
            "modelVersion": self.model_version,
            "modelType": self.model_type,
            "modelPath": self.model_path,
            "description": self.description,
            "enabled": self.enabled,
            "inputNodeName": self.input_node_name,
            "outputNodeName": self.output_node_name,
            "inputShapes": self.input_shapes,
            "outputShapes": self.output_shapes,
            "loadTimestamp": self.load_timestamp,
            "valid": self.is_valid,
        }

    def __str__(self) -> str:
        return (
            f"ModelContext(version={self.model_version}, type={self.model_type}, "
            f"input={self.input_node_name}, output={self.output_node_name}, "
            f"enabled={self.enabled}, valid={self.is_valid})"
        )


class ModelRegistry:
    """
    Version -> ModelContext lookup.

    Usage:
        registry = ModelRegistry()
        registry.register("ctr_v1", context)
        registry.freeze()
        context = registry.get("ctr_v1")
    """

    def __init__(self, metrics: Optional[MetricsRecorder] = None):
        self._contexts: Dict[str, ModelContext] = {}
        self._frozen = False
        self._lock = threading.Lock()
        self.metrics = metrics or MetricsRecorder(enabled=False)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, version: str, context: Optional[ModelContext]) -> bool:
        """
        Add a context under version.

        Returns False (and logs) when the context is invalid.

        Raises:
            ConfigError: registry already frozen
        """
        with self._lock:
            if self._frozen:
                raise ConfigError(
                    f"Model registry is frozen, cannot register {version}",
                    model_version=version,
                )

            if context is None or not context.is_valid:
                logger.warning(f"Invalid model context, skip registration: {version} ({context})")
                return False

            if version in self._contexts:
                logger.warning(f"Model {version} already registered, replacing")
            self._contexts[version] = context

        logger.info(f"Model registered: {version} ({context.model_type})")
        return True

    def freeze(self) -> "ModelRegistry":
        with self._lock:
            self._frozen = True
        self.metrics.record_registry({v: c.model_type for v, c in self._contexts.items()})
        logger.info(f"Model registry frozen with {len(self._contexts)} version(s): {self.versions()}")
        return self

    def get(self, version: str) -> ModelContext:
        """
        Raises:
            ModelNotFoundError: version not registered
            ModelInvalidError: version registered but not usable
        """
        context = self._contexts.get(version)
        if context is None:
            raise ModelNotFoundError(
                f"Model not found: {version}, available models: {self.versions()}",
                model_version=version,
                available=self.versions(),
            )
        if not context.is_valid:
            raise ModelInvalidError(
                f"Model context is invalid: {version}",
                model_version=version,
            )
        return context

    def versions(self) -> List[str]:
        return sorted(self._contexts)

    def info(self, version: str) -> Dict[str, Any]:
        """Model metadata, or {"error": message} when unavailable."""
        try:
            return self.get(version).to_dict()
        except (ModelNotFoundError, ModelInvalidError) as e:
            return {"error": e.message}

    def close(self, engine) -> None:
        """Release every session; the registry is empty afterwards."""
        with self._lock:
            contexts = list(self._contexts.items())
            self._contexts = {}

        for version, context in contexts:
            try:
                context.release(engine)
                logger.info(f"Released model session: {version}")
            except Exception as e:
                logger.error(f"Failed to release model session {version}: {e}")

    def __contains__(self, version: str) -> bool:
        return version in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)
