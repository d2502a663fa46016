"""
CTR Model Serving API Module
============================

Direct imports from canonical paths:
    from src.api.serving.features.preprocessor import FeaturePreprocessor
    from src.api.serving.models.model_registry import ModelRegistry
    from src.api.serving.scoring.score_pipeline import BatchCoordinator
    from src.api.settings import get_serving_settings
    from src.api.errors import APIError, api_exception_handler
"""
