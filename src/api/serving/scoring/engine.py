"""
Scoring Engine
==============

Boundary between the serving layer and the numeric inference backend.

The orchestrator only talks to the ScoringEngine protocol, so tests can swap
in an in-memory engine. OnnxScoringEngine is the production implementation.
"""

import os
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
import onnxruntime as ort

from src.api.serving.config import SessionOptionsConfig

logger = logging.getLogger(__name__)


_OPTIMIZATION_LEVELS = {
    "disable": ort.GraphOptimizationLevel.ORT_DISABLE_ALL,
    "basic": ort.GraphOptimizationLevel.ORT_ENABLE_BASIC,
    "extended": ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED,
    "all": ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
}


@runtime_checkable
class ScoringEngine(Protocol):
    """
    Minimal interface the serving layer needs from an inference backend.

    Sessions are opaque to callers; only the engine that created a session
    may run or release it.
    """

    def create_session(self, model_path: str, options: Optional[SessionOptionsConfig] = None) -> Any:
        """Load a model artifact and return a session handle."""
        ...

    def run(self, session: Any, inputs: Mapping[str, np.ndarray], output_names: Sequence[str]) -> List[Any]:
        """Run the session; returns one output per requested name."""
        ...

    def describe(self, session: Any) -> Dict[str, Dict[str, List[Any]]]:
        """Return {"inputs": {name: shape}, "outputs": {name: shape}}."""
        ...

    def release(self, session: Any) -> None:
        ...


def default_thread_counts(cpu_count: Optional[int] = None) -> Dict[str, int]:
    """Inter-op threads at half the cores (at least 1), intra-op at all of them."""
    cpus = cpu_count or os.cpu_count() or 1
    return {"inter_op_threads": max(1, cpus // 2), "intra_op_threads": cpus}


class OnnxScoringEngine:
    """ONNX Runtime backed ScoringEngine (CPU provider)."""

    providers = ["CPUExecutionProvider"]

    def build_session_options(self, options: Optional[SessionOptionsConfig] = None) -> ort.SessionOptions:
        options = options or SessionOptionsConfig()
        defaults = default_thread_counts()

        session_options = ort.SessionOptions()
        session_options.inter_op_num_threads = options.inter_op_threads or defaults["inter_op_threads"]
        session_options.intra_op_num_threads = options.intra_op_threads or defaults["intra_op_threads"]
        session_options.graph_optimization_level = _OPTIMIZATION_LEVELS.get(
            options.graph_optimization.lower(),
            ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
        )
        return session_options

    def create_session(self, model_path: str, options: Optional[SessionOptionsConfig] = None) -> ort.InferenceSession:
        session_options = self.build_session_options(options)
        session = ort.InferenceSession(model_path, sess_options=session_options, providers=self.providers)
        logger.info(
            f"ONNX session created: {model_path} "
            f"(inter_op={session_options.inter_op_num_threads}, intra_op={session_options.intra_op_num_threads})"
        )
        return session

    def run(self, session: ort.InferenceSession, inputs: Mapping[str, np.ndarray], output_names: Sequence[str]) -> List[Any]:
        return session.run(list(output_names), dict(inputs))

    def describe(self, session: ort.InferenceSession) -> Dict[str, Dict[str, List[Any]]]:
        return {
            "inputs": {node.name: list(node.shape) for node in session.get_inputs()},
            "outputs": {node.name: list(node.shape) for node in session.get_outputs()},
        }

    def release(self, session: ort.InferenceSession) -> None:
        # InferenceSession frees native memory when the last reference drops
        del session
