"""
Model Registry and Routing
==========================

Provides:
- ModelRegistry: frozen version -> ModelContext lookup
- ModelLoader: builds the registry from the model configuration
- ConditionRouter: first-match-wins rule routing of records to versions

Usage:
    from src.api.serving.models import ModelLoader, ConditionRouter

    loaded = ModelLoader(engine).load_all(config)
    router = ConditionRouter(config.routing)
"""

from src.api.serving.models.model_registry import ModelRegistry, ModelContext
from src.api.serving.models.model_loader import ModelLoader, LoadedModels
from src.api.serving.models.condition_router import ConditionRouter, IndexedRecord

__all__ = [
    "ModelRegistry",
    "ModelContext",
    "ModelLoader",
    "LoadedModels",
    "ConditionRouter",
    "IndexedRecord",
]
