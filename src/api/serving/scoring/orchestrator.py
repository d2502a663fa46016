"""
Prediction Orchestrator
=======================

Scores a batch of records against one model version:

1. Preprocess records with the version's FeatureSchema
2. Look up the ModelContext
3. Build the [N, D] float32 input tensor
4. Invoke the scoring engine (optionally under a deadline)
5. Parse the output into exactly N scores

Every engine failure surfaces as InferenceError (or a subclass) carrying the
model version, so the coordinator can isolate it to one group.
"""

import time
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, List, Mapping, Optional, Sequence

import numpy as np

from src.api.errors import (
    InferenceError,
    InvalidInputError,
    ModelNotFoundError,
    ResultCountMismatchError,
    UnsupportedOutputShapeError,
)
from src.api.serving.features.preprocessor import FeaturePreprocessor, Record
from src.api.serving.features.schema import FeatureSchema
from src.api.serving.models.model_registry import ModelContext, ModelRegistry
from src.api.serving.scoring.engine import ScoringEngine

logger = logging.getLogger(__name__)


class PredictionOrchestrator:
    """
    Per-version scoring.

    Holds no per-request state; one instance serves all concurrent requests.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        schemas: Mapping[str, FeatureSchema],
        engine: ScoringEngine,
        preprocessor: Optional[FeaturePreprocessor] = None,
        timeout_seconds: Optional[float] = None,
        workers: int = 4,
    ):
        self.registry = registry
        self.schemas = schemas
        self.engine = engine
        self.preprocessor = preprocessor or FeaturePreprocessor()
        self.timeout_seconds = timeout_seconds
        self._executor = (
            ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="inference")
            if timeout_seconds
            else None
        )

    def schema_for(self, version: str) -> FeatureSchema:
        schema = self.schemas.get(version)
        if schema is None:
            raise ModelNotFoundError(
                f"No feature schema loaded for model: {version}, available: {sorted(self.schemas)}",
                model_version=version,
            )
        return schema

    def predict(self, records: Sequence[Record], version: str) -> np.ndarray:
        """
        Score records with one model version.

        Returns:
            float32 array of length len(records), scores[i] belongs to records[i]

        Raises:
            InvalidInputError: empty batch or malformed matrix
            ModelNotFoundError / ModelInvalidError: version not usable
            InferenceError: engine failure, timeout or bad output
        """
        if not records:
            raise InvalidInputError("Input data for prediction is empty", model_version=version)

        start = time.time()
        matrix = None
        tensor = None
        outputs = None
        try:
            matrix = self.preprocessor.batch_preprocess(records, self.schema_for(version))
            context = self.registry.get(version)
            tensor = self._build_input_tensor(matrix, self.schema_for(version).dimension)

            outputs = self._invoke(context, tensor)
            scores = self._parse_output(outputs, len(records), version)

            logger.debug(
                f"Predicted {len(records)} record(s) with {version} "
                f"in {(time.time() - start) * 1000:.2f}ms"
            )
            return scores
        finally:
            del matrix, tensor, outputs

    def _build_input_tensor(self, rows: Any, dimension: int) -> np.ndarray:
        """Contiguous row-major float32 [N, D]."""
        try:
            tensor = np.ascontiguousarray(rows, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Feature rows are ragged or non-numeric: {e}")

        if tensor.ndim != 2 or tensor.shape[1] != dimension:
            raise InvalidInputError(
                f"Feature matrix shape {tensor.shape} does not match expected [N, {dimension}]",
                shape=list(tensor.shape),
                dimension=dimension,
            )
        return tensor

    def _run_engine(self, context: ModelContext, tensor: np.ndarray) -> List[Any]:
        return self.engine.run(
            context.session,
            {context.input_node_name: tensor},
            [context.output_node_name],
        )

    def _invoke(self, context: ModelContext, tensor: np.ndarray) -> List[Any]:
        version = context.model_version
        try:
            if self._executor is None:
                return self._run_engine(context, tensor)

            future = self._executor.submit(self._run_engine, context, tensor)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FuturesTimeoutError as e:
                # No-op once the call is running; the worker stays busy until it returns
                future.cancel()
                raise InferenceError(
                    f"Model inference timed out after {self.timeout_seconds}s (Model version: {version})",
                    model_version=version,
                    cause=e,
                    error_code="INFERENCE_TIMEOUT",
                )
        except InferenceError:
            raise
        except Exception as e:
            logger.error(f"Model inference failed (Model version: {version}): {e}")
            raise InferenceError(
                f"Model inference failed (Model version: {version})",
                model_version=version,
                cause=e,
            ) from e

    def _parse_output(self, outputs: Sequence[Any], expected: int, version: str) -> np.ndarray:
        """[N, k>=1] -> column 0, [N] -> as is, anything else rejected."""
        if outputs is None or len(outputs) == 0:
            raise UnsupportedOutputShapeError(
                f"Model returned no output (Model version: {version})",
                model_version=version,
            )

        try:
            raw = np.asarray(outputs[0], dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise UnsupportedOutputShapeError(
                f"Unsupported model output type: {type(outputs[0]).__name__} (Model version: {version})",
                model_version=version,
                reason=str(e),
            )

        if raw.ndim == 2:
            if raw.shape[0] != expected:
                raise ResultCountMismatchError(expected, raw.shape[0], version)
            if raw.shape[1] == 0:
                raise UnsupportedOutputShapeError(
                    f"Model output rows are empty (Model version: {version})",
                    model_version=version,
                    shape=list(raw.shape),
                )
            scores = raw[:, 0]
        elif raw.ndim == 1:
            if raw.shape[0] != expected:
                raise ResultCountMismatchError(expected, raw.shape[0], version)
            scores = raw
        else:
            raise UnsupportedOutputShapeError(
                f"Unsupported model output shape: {list(raw.shape)} (Model version: {version})",
                model_version=version,
                shape=list(raw.shape),
            )

        return np.array(scores, dtype=np.float32, copy=True)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
