"""
Feature Schema
==============

Per-model-version definition of the ordered numeric and categorical columns
and the parameters fitted for them at training time.

The schema is built once at startup from the trained preprocessor document
and shared read-only by every concurrent preprocessing call.

Document layout (as exported by the training job):

    {
        "config": {"num_cols": ["I1", ...], "cat_cols": ["C1", ...]},
        "num_params": {"I1": {"mean": 1.2, "median": 0.7, "scale": 1.1}},
        "cat_params": {"C1": {"high_freq": ["a", "b"], "code_map": {"UNK": 0, "a": 1}, "defaultCode": -1}}
    }

The flat camelCase layout (numericColumns, categoricalColumns, numericParams,
categoricalParams with highFreqValues / codeMap / defaultCode) is accepted too.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, Optional, Tuple, Mapping, FrozenSet

from src.api.errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_CATEGORICAL_CODE = -1


class ValidationMode(str, Enum):
    """How a record missing a schema column is treated."""
    LENIENT = "lenient"   # warn, treat as blank
    STRICT = "strict"     # reject the record


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present (and not None) in data."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class NumericFeatureParam:
    """Fitted statistics for one numeric column."""
    mean: float = 0.0
    median: float = 0.0
    scale: float = 1.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NumericFeatureParam":
        data = data or {}
        try:
            return cls(
                mean=float(_first(data, "mean", default=0.0)),
                median=float(_first(data, "median", default=0.0)),
                scale=float(_first(data, "scale", "std", default=1.0)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric parameter: {e}", params=data)

    def to_dict(self) -> Dict[str, float]:
        return {"mean": self.mean, "median": self.median, "scale": self.scale}


@dataclass(frozen=True)
class CategoricalFeatureParam:
    """Fitted vocabulary for one categorical column."""
    high_freq_values: FrozenSet[str] = frozenset()
    code_map: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    default_code: int = DEFAULT_CATEGORICAL_CODE

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CategoricalFeatureParam":
        data = data or {}
        high_freq = _first(data, "high_freq", "highFreqValues", "high_freq_values", default=[])
        code_map = _first(data, "code_map", "codeMap", default={})
        default_code = _first(data, "defaultCode", "default_code", default=DEFAULT_CATEGORICAL_CODE)

        if not isinstance(code_map, dict):
            raise ConfigError("Categorical code_map must be an object", params=data)

        try:
            return cls(
                high_freq_values=frozenset(str(v) for v in high_freq),
                code_map=MappingProxyType({str(k): int(v) for k, v in code_map.items()}),
                default_code=int(default_code),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid categorical parameter: {e}", params=data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "high_freq_values": sorted(self.high_freq_values),
            "code_map": dict(self.code_map),
            "default_code": self.default_code,
        }


@dataclass(frozen=True)
class FeatureSchema:
    """
    Ordered columns plus trained parameters for one model version.

    Vector layout is always [numeric columns][categorical columns], each in
    declared order, so `dimension` never changes for the schema's lifetime.
    """
    version: str
    numeric_columns: Tuple[str, ...]
    categorical_columns: Tuple[str, ...]
    numeric_params: Mapping[str, NumericFeatureParam]
    categorical_params: Mapping[str, CategoricalFeatureParam]
    validation_mode: ValidationMode = ValidationMode.LENIENT

    @property
    def dimension(self) -> int:
        return len(self.numeric_columns) + len(self.categorical_columns)

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.numeric_columns + self.categorical_columns

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        version: str = "unknown",
        validation_mode: ValidationMode = ValidationMode.LENIENT,
    ) -> "FeatureSchema":
        """Build a schema from a preprocessor document."""
        if not isinstance(data, dict):
            raise ConfigError("Feature schema document must be an object", model_version=version)

        config = data.get("config") or {}
        if not isinstance(config, dict):
            raise ConfigError("Feature schema 'config' block must be an object", model_version=version)
        numeric_columns = _first(config, "num_cols", default=None)
        if numeric_columns is None:
            numeric_columns = _first(data, "numericColumns", "numeric_columns", "num_cols", default=None)
        categorical_columns = _first(config, "cat_cols", default=None)
        if categorical_columns is None:
            categorical_columns = _first(data, "categoricalColumns", "categorical_columns", "cat_cols", default=None)

        if numeric_columns is None and categorical_columns is None:
            raise ConfigError("Feature schema has no column definition", model_version=version)

        numeric_columns = tuple(str(c) for c in (numeric_columns or []))
        categorical_columns = tuple(str(c) for c in (categorical_columns or []))
        cls._validate_columns(numeric_columns, categorical_columns, version)

        raw_numeric = _first(data, "num_params", "numericParams", "numeric_params", default={})
        raw_categorical = _first(data, "cat_params", "categoricalParams", "categorical_params", default={})
        if not isinstance(raw_numeric, dict) or not isinstance(raw_categorical, dict):
            raise ConfigError("Feature params must be objects keyed by column", model_version=version)

        if len(raw_numeric) != len(numeric_columns):
            logger.warning(
                f"[{version}] Numeric param count mismatch "
                f"(config has: {len(raw_numeric)}, required: {len(numeric_columns)})"
            )
        if len(raw_categorical) != len(categorical_columns):
            logger.warning(
                f"[{version}] Categorical param count mismatch "
                f"(config has: {len(raw_categorical)}, required: {len(categorical_columns)})"
            )

        numeric_params = {}
        for column in numeric_columns:
            if column not in raw_numeric:
                logger.warning(f"[{version}] No numeric param found for column '{column}', use default")
            numeric_params[column] = NumericFeatureParam.from_dict(raw_numeric.get(column))

        categorical_params = {}
        for column in categorical_columns:
            if column not in raw_categorical:
                logger.warning(f"[{version}] No categorical param found for column '{column}', use default")
            categorical_params[column] = CategoricalFeatureParam.from_dict(raw_categorical.get(column))

        schema = cls(
            version=version,
            numeric_columns=numeric_columns,
            categorical_columns=categorical_columns,
            numeric_params=MappingProxyType(numeric_params),
            categorical_params=MappingProxyType(categorical_params),
            validation_mode=ValidationMode(validation_mode),
        )

        logger.info(
            f"Feature schema loaded for {version}: "
            f"numeric={len(numeric_columns)}, categorical={len(categorical_columns)}, "
            f"mode={schema.validation_mode.value}"
        )
        return schema

    @classmethod
    def load(
        cls,
        path: str,
        version: str = "unknown",
        validation_mode: ValidationMode = ValidationMode.LENIENT,
    ) -> "FeatureSchema":
        """Load a schema from a JSON preprocessor document."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load preprocessing configuration. File path: {path}: {e}")
            raise ConfigError(
                f"Preprocessing configuration file loading failed: {path}",
                model_version=version,
                path=str(path),
            ) from e
        return cls.from_dict(data, version=version, validation_mode=validation_mode)

    @staticmethod
    def _validate_columns(numeric: Tuple[str, ...], categorical: Tuple[str, ...], version: str):
        if not numeric and not categorical:
            raise ConfigError("Feature schema declares no columns", model_version=version)

        for kind, cols in (("numeric", numeric), ("categorical", categorical)):
            if len(set(cols)) != len(cols):
                raise ConfigError(f"Duplicate {kind} columns in feature schema", model_version=version)

        overlap = set(numeric) & set(categorical)
        if overlap:
            raise ConfigError(
                f"Columns declared both numeric and categorical: {sorted(overlap)}",
                model_version=version,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "numeric_columns": list(self.numeric_columns),
            "categorical_columns": list(self.categorical_columns),
            "dimension": self.dimension,
            "validation_mode": self.validation_mode.value,
        }
