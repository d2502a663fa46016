"""
Unit tests for api.serving.scoring.orchestrator module.

Tests tensor construction, engine invocation, output parsing and error
wrapping of PredictionOrchestrator.
"""

import math
import threading
import time

import numpy as np
import pytest

from src.api.errors import (
    InferenceError,
    InvalidInputError,
    ModelNotFoundError,
    ResultCountMismatchError,
    UnsupportedOutputShapeError,
)
from src.api.serving.models.model_registry import ModelRegistry
from src.api.serving.scoring.orchestrator import PredictionOrchestrator


@pytest.fixture
def orchestrator(registry, sample_schema, fake_engine):
    return PredictionOrchestrator(
        registry=registry,
        schemas={"ctr_v1": sample_schema, "ctr_v2": sample_schema},
        engine=fake_engine,
    )


def _single_model(make_context, sample_schema, fake_engine, session, **kwargs):
    registry = ModelRegistry()
    registry.register("ctr_v1", make_context("ctr_v1", session=session))
    registry.freeze()
    return PredictionOrchestrator(
        registry=registry,
        schemas={"ctr_v1": sample_schema},
        engine=fake_engine,
        **kwargs,
    )


class TestPredict:
    """Tests for the happy path."""

    def test_scores_align_with_records(self, orchestrator, sample_records):
        scores = orchestrator.predict(sample_records, "ctr_v1")

        assert scores.dtype == np.float32
        assert scores.shape == (3,)
        assert scores[0] == 0.0
        assert scores[1] == pytest.approx(math.log1p(1.0), abs=1e-6)
        # unparsable I1 falls back to the median
        assert scores[2] == 0.0

    def test_engine_receives_contiguous_tensor(self, orchestrator, fake_engine, sample_records):
        orchestrator.predict(sample_records, "ctr_v1")

        call = fake_engine.calls[0]
        tensor = call["inputs"]["input"]
        assert call["output_names"] == ["output"]
        assert tensor.shape == (3, 3)
        assert tensor.dtype == np.float32
        assert tensor.flags["C_CONTIGUOUS"]

    def test_one_dimensional_output(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, lambda t: [np.arange(t.shape[0], dtype=np.float32)]
        )

        scores = orchestrator.predict(sample_records, "ctr_v1")

        np.testing.assert_array_equal(scores, [0.0, 1.0, 2.0])

    def test_multi_column_output_uses_first_column(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, lambda t: [np.tile([[0.25, 0.75]], (t.shape[0], 1))]
        )

        scores = orchestrator.predict(sample_records, "ctr_v1")

        np.testing.assert_array_equal(scores, [0.25, 0.25, 0.25])

    def test_list_output_is_accepted(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, lambda t: [[[0.5]] * t.shape[0]]
        )

        scores = orchestrator.predict(sample_records, "ctr_v1")

        np.testing.assert_array_equal(scores, [0.5, 0.5, 0.5])


class TestPredictErrors:
    """Tests for request and inference errors."""

    def test_empty_input(self, orchestrator):
        with pytest.raises(InvalidInputError):
            orchestrator.predict([], "ctr_v1")

    def test_unknown_version(self, orchestrator, sample_records):
        with pytest.raises(ModelNotFoundError):
            orchestrator.predict(sample_records, "ctr_v9")

    def test_schema_without_registered_model(self, registry, sample_schema, fake_engine, sample_records):
        orchestrator = PredictionOrchestrator(
            registry=registry,
            schemas={"ctr_v5": sample_schema},
            engine=fake_engine,
        )

        with pytest.raises(ModelNotFoundError):
            orchestrator.predict(sample_records, "ctr_v5")

    def test_engine_failure_is_wrapped(self, make_context, sample_schema, fake_engine, sample_records):
        def boom(tensor):
            raise RuntimeError("session crashed")

        orchestrator = _single_model(make_context, sample_schema, fake_engine, boom)

        with pytest.raises(InferenceError) as exc:
            orchestrator.predict(sample_records, "ctr_v1")

        assert exc.value.model_version == "ctr_v1"
        assert isinstance(exc.value.cause, RuntimeError)

    def test_count_mismatch(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, lambda t: [np.zeros((t.shape[0] - 1, 1), dtype=np.float32)]
        )

        with pytest.raises(ResultCountMismatchError) as exc:
            orchestrator.predict(sample_records, "ctr_v1")

        assert "Prediction count mismatch - Input: 3, Output: 2" in exc.value.message
        assert isinstance(exc.value, InferenceError)

    def test_one_dimensional_count_mismatch(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, lambda t: [np.zeros(t.shape[0] + 1, dtype=np.float32)]
        )

        with pytest.raises(ResultCountMismatchError):
            orchestrator.predict(sample_records, "ctr_v1")

    def test_empty_rows_unsupported(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, lambda t: [np.zeros((t.shape[0], 0), dtype=np.float32)]
        )

        with pytest.raises(UnsupportedOutputShapeError):
            orchestrator.predict(sample_records, "ctr_v1")

    def test_higher_rank_unsupported(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, lambda t: [np.zeros((t.shape[0], 1, 1), dtype=np.float32)]
        )

        with pytest.raises(UnsupportedOutputShapeError):
            orchestrator.predict(sample_records, "ctr_v1")

    def test_no_output_unsupported(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(make_context, sample_schema, fake_engine, lambda t: [])

        with pytest.raises(UnsupportedOutputShapeError):
            orchestrator.predict(sample_records, "ctr_v1")

    def test_timeout(self, make_context, sample_schema, fake_engine, sample_records):
        def slow(tensor):
            time.sleep(0.5)
            return [np.zeros((tensor.shape[0], 1), dtype=np.float32)]

        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, slow, timeout_seconds=0.05
        )

        try:
            with pytest.raises(InferenceError) as exc:
                orchestrator.predict(sample_records, "ctr_v1")
            assert exc.value.error_code == "INFERENCE_TIMEOUT"
        finally:
            orchestrator.close()

    def test_hung_call_holds_only_its_worker(self, make_context, sample_schema, fake_engine, sample_records):
        release = threading.Event()
        calls = []

        def hangs_first(tensor):
            calls.append(tensor.shape[0])
            if len(calls) == 1:
                release.wait(2)
            return [tensor[:, :1]]

        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, hangs_first, timeout_seconds=0.1, workers=2
        )

        try:
            with pytest.raises(InferenceError) as exc:
                orchestrator.predict(sample_records, "ctr_v1")
            assert exc.value.error_code == "INFERENCE_TIMEOUT"

            assert orchestrator.predict(sample_records, "ctr_v1").shape == (3,)
        finally:
            release.set()
            orchestrator.close()

    def test_deadline_not_hit(self, make_context, sample_schema, fake_engine, sample_records):
        orchestrator = _single_model(
            make_context, sample_schema, fake_engine, lambda t: [t[:, :1]], timeout_seconds=5.0
        )

        try:
            assert orchestrator.predict(sample_records, "ctr_v1").shape == (3,)
        finally:
            orchestrator.close()


class TestBuildInputTensor:
    """Tests for _build_input_tensor."""

    def test_ragged_rows_rejected(self, orchestrator):
        with pytest.raises(InvalidInputError):
            orchestrator._build_input_tensor([[1.0, 2.0], [1.0]], 2)

    def test_wrong_width_rejected(self, orchestrator):
        with pytest.raises(InvalidInputError):
            orchestrator._build_input_tensor(np.zeros((2, 4)), 3)

    def test_casts_to_float32(self, orchestrator):
        tensor = orchestrator._build_input_tensor([[1, 2, 3]], 3)

        assert tensor.dtype == np.float32
        assert tensor.flags["C_CONTIGUOUS"]
