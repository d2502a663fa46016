"""
Scoring Pipeline
================

Orchestrates the complete batch scoring flow:
1. Route every record to a model version (ConditionRouter)
2. Score each version group (PredictionOrchestrator), in parallel when enabled
3. Merge scores back into request order
4. Telemetry recording

A failing group never fails the request: its positions receive
PREDICTION_FAILURE_SCORE and the remaining groups are unaffected.

This is the main entry point for the serving layer.
"""

import time
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from src.api.errors import APIError, InvalidInputError
from src.api.serving.features.preprocessor import Record
from src.api.serving.models.condition_router import ConditionRouter, IndexedRecord
from src.api.serving.scoring.orchestrator import PredictionOrchestrator
from src.api.serving.telemetry.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


PREDICTION_FAILURE_SCORE = -1.0


@dataclass
class GroupOutcome:
    """Result of scoring one model version group."""
    version: str
    size: int
    success: bool = True
    error: Optional[str] = None
    error_code: Optional[str] = None
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "size": self.size,
            "success": self.success,
            "error": self.error,
            "error_code": self.error_code,
            "latency_ms": round(self.latency_ms, 2),
        }


@dataclass
class BatchScoringResult:
    """Result of the scoring pipeline."""
    scores: np.ndarray
    groups: List[GroupOutcome] = field(default_factory=list)
    total_latency_ms: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def degraded(self) -> bool:
        """True when at least one group was filled with the failure score."""
        return any(not g.success for g in self.groups)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": [float(s) for s in self.scores],
            "groups": [g.to_dict() for g in self.groups],
            "degraded": self.degraded,
            "total_latency_ms": round(self.total_latency_ms, 2),
            "timestamp": self.timestamp,
        }


class BatchCoordinator:
    """
    Main scoring pipeline.

    Usage:
        coordinator = BatchCoordinator(router, orchestrator)
        scores = coordinator.score(records)
    """

    def __init__(
        self,
        router: ConditionRouter,
        orchestrator: PredictionOrchestrator,
        parallel_groups: bool = True,
        group_workers: int = 4,
        metrics: Optional[MetricsRecorder] = None,
    ):
        self.router = router
        self.orchestrator = orchestrator
        self.parallel_groups = parallel_groups
        self.metrics = metrics or MetricsRecorder(enabled=False)
        self._executor = (
            ThreadPoolExecutor(max_workers=max(1, group_workers), thread_name_prefix="score-group")
            if parallel_groups
            else None
        )

    def score(self, records: Sequence[Record]) -> np.ndarray:
        """Score records; result[i] belongs to records[i]."""
        return self.score_with_report(records).scores

    def score_with_report(self, records: Sequence[Record]) -> BatchScoringResult:
        """
        Score records and report the per-group outcome.

        Raises:
            InvalidInputError: empty batch
        """
        if not records:
            raise InvalidInputError("Input data for prediction is empty")

        start = time.time()
        self.metrics.record_batch_size(len(records))

        groups = self.router.group(records)
        scores = np.full(len(records), PREDICTION_FAILURE_SCORE, dtype=np.float32)

        if self._executor is not None and len(groups) > 1:
            futures = {
                version: self._executor.submit(self._score_group, version, items)
                for version, items in groups.items()
            }
            results = [(groups[version], futures[version].result()) for version in groups]
        else:
            results = [(items, self._score_group(version, items)) for version, items in groups.items()]

        outcomes = []
        for items, (group_scores, outcome) in results:
            outcomes.append(outcome)
            if group_scores is None:
                continue
            for item, value in zip(items, group_scores):
                scores[item.index] = value

        total_ms = (time.time() - start) * 1000
        result = BatchScoringResult(scores=scores, groups=outcomes, total_latency_ms=total_ms)

        if result.degraded:
            failed = [g.version for g in outcomes if not g.success]
            logger.warning(
                f"Batch scored with failed group(s) {failed}: "
                f"{len(records)} record(s) in {total_ms:.2f}ms"
            )
        else:
            logger.info(f"Batch scored: {len(records)} record(s), {len(groups)} group(s) in {total_ms:.2f}ms")
        return result

    def _score_group(self, version: str, items: List[IndexedRecord]):
        """Returns (scores or None, GroupOutcome); never raises."""
        start = time.time()
        outcome = GroupOutcome(version=version, size=len(items))
        try:
            group_scores = self.orchestrator.predict([item.record for item in items], version)
        except Exception as e:
            outcome.success = False
            outcome.error = e.message if isinstance(e, APIError) else str(e)
            outcome.error_code = e.error_code if isinstance(e, APIError) else type(e).__name__
            outcome.latency_ms = (time.time() - start) * 1000
            logger.error(
                f"Model {version} prediction failed for {len(items)} record(s), "
                f"filling with {PREDICTION_FAILURE_SCORE}: {outcome.error}"
            )
            self.metrics.record_group(version, False, len(items), outcome.latency_ms / 1000, outcome.error_code)
            return None, outcome

        outcome.latency_ms = (time.time() - start) * 1000
        self.metrics.record_group(version, True, len(items), outcome.latency_ms / 1000)
        return group_scores, outcome

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
