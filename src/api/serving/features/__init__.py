"""
Feature Preprocessing Layer
===========================

Reproduces the offline feature engineering for online requests:
- FeatureSchema: per-version columns and fitted parameters
- FeaturePreprocessor: raw string records -> float32 feature matrix

Usage:
    from src.api.serving.features import FeatureSchema, FeaturePreprocessor

    schema = FeatureSchema.load("preprocessors/ctr_v1.json", version="ctr_v1")
    matrix = FeaturePreprocessor().batch_preprocess(records, schema)
"""

from src.api.serving.features.schema import (
    FeatureSchema,
    NumericFeatureParam,
    CategoricalFeatureParam,
    ValidationMode,
)
from src.api.serving.features.preprocessor import FeaturePreprocessor, UNK_MARKER

__all__ = [
    "FeatureSchema",
    "NumericFeatureParam",
    "CategoricalFeatureParam",
    "ValidationMode",
    "FeaturePreprocessor",
    "UNK_MARKER",
]
