"""
Scoring Pipeline
================

Orchestrates the full scoring flow:
1. Routing records to model versions
2. Preprocessing per version
3. Inference through the scoring engine
4. Order-preserving merge with per-group failure isolation

Usage:
    from src.api.serving.scoring import BatchCoordinator

    coordinator = BatchCoordinator(router, orchestrator)
    result = coordinator.score_with_report(records)
"""

from src.api.serving.scoring.engine import ScoringEngine, OnnxScoringEngine
from src.api.serving.scoring.orchestrator import PredictionOrchestrator
from src.api.serving.scoring.score_pipeline import (
    BatchCoordinator,
    BatchScoringResult,
    GroupOutcome,
    PREDICTION_FAILURE_SCORE,
)

__all__ = [
    "ScoringEngine",
    "OnnxScoringEngine",
    "PredictionOrchestrator",
    "BatchCoordinator",
    "BatchScoringResult",
    "GroupOutcome",
    "PREDICTION_FAILURE_SCORE",
]
