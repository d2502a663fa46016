"""
Prometheus Metrics Recorder
============================

Records serving metrics to Prometheus.

Wraps the src/api/metrics.py module for clean integration with the
serving layer. A disabled recorder is a no-op, which is what tests use.
"""

import logging

from src.api import metrics as _metrics

logger = logging.getLogger(__name__)


class MetricsRecorder:
    """
    Records serving metrics to Prometheus.

    Metric failures are logged and never interrupt scoring.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled and _metrics.PROMETHEUS_ENABLED

    def record_group(
        self,
        model_version: str,
        success: bool,
        count: int,
        latency_seconds: float,
        error_code: str = None,
    ):
        """Record the outcome of one model group."""
        if not self.enabled:
            return

        try:
            status = "success" if success else "failure"
            _metrics.track_group_prediction(
                model_version=model_version,
                status=status,
                count=count,
                latency=latency_seconds,
            )
            if not success:
                _metrics.track_group_failure(
                    model_version=model_version,
                    error_code=error_code or "UNKNOWN",
                )
        except Exception as e:
            logger.warning(f"Failed to record group metric: {e}")

    def record_batch_size(self, size: int):
        if not self.enabled:
            return

        try:
            _metrics.track_batch_size(size)
        except Exception as e:
            logger.warning(f"Failed to record batch size metric: {e}")

    def record_fallback(self, column_kind: str, reason: str):
        """Record a feature value replaced by its fallback."""
        if not self.enabled:
            return

        try:
            _metrics.track_preprocess_fallback(column_kind=column_kind, reason=reason)
        except Exception as e:
            logger.warning(f"Failed to record fallback metric: {e}")

    def record_registry(self, versions: dict):
        """Record registered versions ({version: model_type})."""
        if not self.enabled:
            return

        try:
            _metrics.update_registered_models(len(versions))
            for version, model_type in versions.items():
                _metrics.set_model_info(model_version=version, model_type=model_type or "UNKNOWN")
        except Exception as e:
            logger.warning(f"Failed to record registry metric: {e}")

    def record_scheduled_run(self, outcome: str):
        if not self.enabled:
            return

        try:
            _metrics.track_scheduled_run(outcome)
        except Exception as e:
            logger.warning(f"Failed to record scheduled run metric: {e}")
