"""
Shared test fixtures for the CTR model serving service.
"""

import os
import sys
from typing import Any, Dict, List

import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Metric objects are created at import time
os.environ.setdefault("PROMETHEUS_METRICS", "false")

from src.api.serving.config import RoutingConfig, ServingConfig
from src.api.serving.features.schema import FeatureSchema
from src.api.serving.models.model_registry import ModelContext, ModelRegistry


# =============================================================================
# ENVIRONMENT SETUP
# =============================================================================

@pytest.fixture(autouse=True)
def mock_environment(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("PROMETHEUS_METRICS", "false")
    monkeypatch.setenv("SERVING_ENABLE_SCHEDULED_BATCH", "false")


# =============================================================================
# FAKE ENGINE
# =============================================================================

class FakeEngine:
    """
    In-memory ScoringEngine.

    The session is a callable taking the [N, D] input tensor and returning the
    output list, so each test decides what the "model" computes.
    """

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.released: List[Any] = []

    def create_session(self, model_path, options=None):
        return lambda tensor: [tensor.sum(axis=1, keepdims=True)]

    def run(self, session, inputs, output_names):
        self.calls.append({"inputs": dict(inputs), "output_names": list(output_names)})
        (tensor,) = inputs.values()
        return session(tensor)

    def describe(self, session):
        return {"inputs": {"input": [-1, 3]}, "outputs": {"output": [-1, 1]}}

    def release(self, session):
        self.released.append(session)


@pytest.fixture
def fake_engine():
    return FakeEngine()


def _make_context(version: str, session=None, **kwargs) -> ModelContext:
    """ModelContext whose session echoes the first feature as the score."""
    if session is None:
        session = lambda tensor: [tensor[:, :1].copy()]
    return ModelContext(model_version=version, session=session, model_type="DeepFM", **kwargs)


@pytest.fixture
def make_context():
    return _make_context


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def schema_document() -> Dict[str, Any]:
    """Preprocessor document in the training-export layout."""
    return {
        "config": {"num_cols": ["I1", "I2"], "cat_cols": ["C1"]},
        "num_params": {
            "I1": {"mean": 0.0, "median": 0.0, "scale": 1.0},
            "I2": {"mean": 3.0, "median": 5.0, "scale": 1.0},
        },
        "cat_params": {
            "C1": {
                "high_freq": ["a", "b", "c"],
                "code_map": {"UNK": 7, "a": 1, "b": 2},
                "defaultCode": -1,
            },
        },
    }


@pytest.fixture
def sample_schema(schema_document) -> FeatureSchema:
    return FeatureSchema.from_dict(schema_document, version="ctr_v1")


@pytest.fixture
def sample_records() -> List[Dict[str, str]]:
    return [
        {"I1": "0", "I2": "", "C1": "a"},
        {"I1": "1", "I2": "2", "C1": "zzz"},
        {"I1": "oops", "I2": "3", "C1": "c"},
    ]


@pytest.fixture
def routing_config() -> RoutingConfig:
    return RoutingConfig(
        enabled=True,
        default_model="ctr_v1",
        rules=[
            {"name": "ios", "target_model": "ctr_v2", "conditions": [{"field": "C1", "value": "b"}]},
        ],
    )


@pytest.fixture
def registry() -> ModelRegistry:
    """Frozen registry holding ctr_v1 and ctr_v2."""
    reg = ModelRegistry()
    reg.register("ctr_v1", _make_context("ctr_v1"))
    reg.register("ctr_v2", _make_context("ctr_v2"))
    return reg.freeze()


@pytest.fixture
def serving_config_dict(tmp_path, schema_document) -> Dict[str, Any]:
    """Model configuration with real files on disk for ctr_v1 and ctr_v2."""
    import json

    for version in ("ctr_v1", "ctr_v2"):
        (tmp_path / f"{version}.onnx").write_bytes(b"onnx")
        (tmp_path / f"{version}.json").write_text(json.dumps(schema_document))

    return {
        "models": {
            "ctr_v1": {
                "path": str(tmp_path / "ctr_v1.onnx"),
                "preprocessor_path": str(tmp_path / "ctr_v1.json"),
                "type": "DeepFM",
            },
            "ctr_v2": {
                "path": str(tmp_path / "ctr_v2.onnx"),
                "preprocessor_path": str(tmp_path / "ctr_v2.json"),
                "type": "DCN",
            },
        },
        "routing": {
            "default_model": "ctr_v1",
            "rules": [
                {"name": "b_traffic", "target_model": "ctr_v2", "conditions": [{"field": "C1", "value": "b"}]},
            ],
        },
    }


@pytest.fixture
def serving_config(serving_config_dict) -> ServingConfig:
    return ServingConfig.from_dict(serving_config_dict)

