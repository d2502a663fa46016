"""
Telemetry Module
================

Prometheus metrics for the serving layer.

Usage:
    from src.api.serving.telemetry import MetricsRecorder

    recorder = MetricsRecorder()
    recorder.record_group("ctr_v1", success=True, count=20, latency_seconds=0.012)
"""

from src.api.serving.telemetry.metrics import MetricsRecorder

__all__ = ["MetricsRecorder"]
