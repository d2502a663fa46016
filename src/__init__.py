"""
CTR Model Serving - Source Package
==================================

This package contains all source code for the service:
- api: REST API, configuration and the online serving layer

Quick Imports:
    from src.api.serving import BatchCoordinator, ConditionRouter, FeaturePreprocessor
    from src.api.settings import get_serving_settings
"""

__all__ = ["api"]
