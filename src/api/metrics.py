"""
Prometheus Metrics for the Model Serving API
============================================

Simplified metrics module using a registry pattern.
Metric definitions are data-driven; set PROMETHEUS_METRICS=false to disable.
"""

import os
from typing import Dict, Any, List

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST, REGISTRY

PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_METRICS", "true").lower() == "true"


# =============================================================================
# METRIC FACTORY
# =============================================================================

def _get_or_create(metric_class, name: str, desc: str, labels: List[str] = None, **kwargs):
    """Get existing metric or create new one."""
    if not PROMETHEUS_ENABLED:
        return None
    try:
        return metric_class(name, desc, labels or [], **kwargs) if labels else metric_class(name, desc, **kwargs)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# =============================================================================
# METRIC DEFINITIONS (Data-Driven)
# =============================================================================

METRIC_DEFS = {
    # Scoring
    "prediction_counter": ("counter", "model_predictions_total", "Scored records", ["model_version", "status"]),
    "prediction_latency": ("histogram", "model_prediction_latency_seconds", "Per-group prediction latency", ["model_version"], [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]),
    "group_failures": ("counter", "model_group_failures_total", "Sentinel-filled model groups", ["model_version", "error_code"]),
    "batch_size": ("histogram", "model_request_batch_size", "Records per scoring request", [], [1, 5, 10, 50, 100, 500, 1000]),

    # Preprocessing
    "preprocess_fallbacks": ("counter", "preprocess_fallbacks_total", "Feature values replaced by a fallback", ["column_kind", "reason"]),

    # Registry
    "models_registered": ("gauge", "model_registry_models", "Registered model versions", []),
    "model_info": ("gauge", "model_info", "Model version info", ["model_version", "model_type"]),

    # Scheduled batch
    "scheduled_runs": ("counter", "scheduled_batch_runs_total", "Scheduled batch runs", ["outcome"]),
}


# =============================================================================
# METRIC REGISTRY
# =============================================================================

class MetricRegistry:
    """Central registry for all metrics."""

    def __init__(self):
        self._metrics: Dict[str, Any] = {}
        self._init_metrics()

    def _init_metrics(self):
        """Initialize all metrics from definitions."""
        for key, defn in METRIC_DEFS.items():
            metric_type, name, desc, labels = defn[0], defn[1], defn[2], defn[3]
            buckets = defn[4] if len(defn) > 4 else None

            if metric_type == "counter":
                self._metrics[key] = _get_or_create(Counter, name, desc, labels)
            elif metric_type == "gauge":
                self._metrics[key] = _get_or_create(Gauge, name, desc, labels)
            elif metric_type == "histogram":
                self._metrics[key] = _get_or_create(Histogram, name, desc, labels, buckets=buckets) if buckets else _get_or_create(Histogram, name, desc, labels)

    def get(self, key: str):
        """Get metric by key, returns None if not available."""
        return self._metrics.get(key)

    def inc(self, key: str, amount: float = 1.0, **labels):
        """Increment counter."""
        m = self.get(key)
        if m:
            m.labels(**labels).inc(amount) if labels else m.inc(amount)

    def observe(self, key: str, value: float, **labels):
        """Observe histogram value."""
        m = self.get(key)
        if m:
            m.labels(**labels).observe(value) if labels else m.observe(value)

    def set(self, key: str, value: float, **labels):
        """Set gauge value."""
        m = self.get(key)
        if m:
            m.labels(**labels).set(value) if labels else m.set(value)


# Singleton
_registry = MetricRegistry() if PROMETHEUS_ENABLED else None


# =============================================================================
# PUBLIC API
# =============================================================================

def track_group_prediction(model_version: str, status: str, count: int, latency: float):
    """Track one model group of a scoring request."""
    if not _registry:
        return
    _registry.inc("prediction_counter", count, model_version=model_version, status=status)
    _registry.observe("prediction_latency", latency, model_version=model_version)


def track_group_failure(model_version: str, error_code: str):
    if _registry:
        _registry.inc("group_failures", model_version=model_version, error_code=error_code)


def track_batch_size(size: int):
    if _registry:
        _registry.observe("batch_size", size)


def track_preprocess_fallback(column_kind: str, reason: str):
    if _registry:
        _registry.inc("preprocess_fallbacks", column_kind=column_kind, reason=reason)


def update_registered_models(count: int):
    if _registry:
        _registry.set("models_registered", count)


def set_model_info(model_version: str, model_type: str):
    if _registry:
        _registry.set("model_info", 1, model_version=model_version, model_type=model_type)


def track_scheduled_run(outcome: str):
    if _registry:
        _registry.inc("scheduled_runs", outcome=outcome)


def get_metrics_response():
    """Generate Prometheus metrics response."""
    if not PROMETHEUS_ENABLED:
        return "# Prometheus metrics disabled", "text/plain"
    return generate_latest(), CONTENT_TYPE_LATEST
