"""
Feature Preprocessor
====================

Turns raw string-keyed records into the fixed-length float32 vectors the
trained models expect, reproducing the offline feature engineering exactly.

One general-purpose routine consumes a FeatureSchema; there are no
per-version subclasses. Differences between model versions live entirely in
their schema documents.

Numeric column:
    blank / missing     -> median
    unparsable          -> median (logged, counted)
    x'  = max(x, -0.999)
    out = (log1p(x') - median) / max(scale, 1e-9), rounded half-up to 6 digits

Categorical column:
    blank / missing     -> "UNK"
    not in high_freq    -> "UNK" (only when high_freq is non-empty)
    out = code_map.get(token, default_code)

Usage:
    preprocessor = FeaturePreprocessor()
    matrix = preprocessor.batch_preprocess(records, schema)   # float32 [N, D]
"""

import math
import logging
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import List, Mapping, Optional, Sequence

import numpy as np

from src.api.errors import PreprocessRecoverableError, ValidationError
from src.api.serving.features.schema import (
    FeatureSchema,
    NumericFeatureParam,
    CategoricalFeatureParam,
    ValidationMode,
)
from src.api.serving.telemetry.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


UNK_MARKER = "UNK"
LOG1P_LOWER_BOUND = -0.999
MIN_SCALE = 1e-9
ROUNDING_DIGITS = 6

# Beyond this magnitude a float64 carries no fractional digits worth rounding.
_ROUNDING_LIMIT = 1e15
_QUANTUM = Decimal(1).scaleb(-ROUNDING_DIGITS)

Record = Mapping[str, Optional[str]]


def round_half_up(value: float) -> float:
    """Round to ROUNDING_DIGITS decimals, half away from zero, on the exact binary value."""
    if not math.isfinite(value) or abs(value) >= _ROUNDING_LIMIT:
        return value
    with localcontext() as ctx:
        ctx.prec = 40
        return float(Decimal(value).quantize(_QUANTUM, rounding=ROUND_HALF_UP))


def _is_blank(raw: Optional[str]) -> bool:
    return raw is None or not str(raw).strip()


def parse_numeric(raw: str, column: str) -> float:
    """
    Parse a non-blank raw numeric value.

    Raises:
        PreprocessRecoverableError: value is not a finite number
    """
    try:
        value = float(str(raw).strip())
    except ValueError:
        raise PreprocessRecoverableError(
            f"Failed to parse numeric value for column '{column}'",
            column=column,
            raw_value=raw,
        )
    if not math.isfinite(value):
        raise PreprocessRecoverableError(
            f"Non-finite numeric value for column '{column}'",
            column=column,
            raw_value=raw,
        )
    return value


class FeaturePreprocessor:
    """
    Schema-driven record -> vector transformer.

    Holds no per-request state, so a single instance is shared by every
    concurrent request and every model version.
    """

    def __init__(self, metrics: Optional[MetricsRecorder] = None):
        self.metrics = metrics or MetricsRecorder(enabled=False)

    # -------------------------------------------------------------------------
    # Column transforms
    # -------------------------------------------------------------------------

    def process_numeric(self, raw: Optional[str], column: str, param: NumericFeatureParam) -> float:
        """Transform one numeric value; never raises."""
        if _is_blank(raw):
            value = param.median
            self.metrics.record_fallback("numeric", "blank")
        else:
            try:
                value = parse_numeric(raw, column)
            except PreprocessRecoverableError as e:
                logger.warning(f"{e.message}: '{raw}', use median: {param.median}")
                self.metrics.record_fallback("numeric", "unparsable")
                value = param.median

        value = max(value, LOG1P_LOWER_BOUND)
        log_value = math.log1p(value)
        safe_scale = max(param.scale, MIN_SCALE)
        return round_half_up((log_value - param.median) / safe_scale)

    def process_categorical(self, raw: Optional[str], column: str, param: CategoricalFeatureParam) -> int:
        """Encode one categorical value; never raises."""
        token = UNK_MARKER if _is_blank(raw) else str(raw).strip()

        if param.high_freq_values and token not in param.high_freq_values:
            logger.debug(f"Low-frequency value '{token}' for column '{column}' replaced with UNK")
            token = UNK_MARKER

        code = param.code_map.get(token)
        if code is None:
            logger.debug(
                f"Value '{token}' for column '{column}' not in code_map, use default code: {param.default_code}"
            )
            self.metrics.record_fallback("categorical", "unmapped")
            code = param.default_code
        return code

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def validate_sample(self, record: Record, schema: FeatureSchema) -> List[str]:
        """
        Check the record carries every schema column.

        Returns the missing columns (lenient mode). In strict mode a missing
        column rejects the whole record.

        Raises:
            ValidationError: strict schema and at least one column missing
        """
        missing = [column for column in schema.columns if column not in record]
        if not missing:
            return missing

        if schema.validation_mode == ValidationMode.STRICT:
            raise ValidationError(
                f"Record is missing required features for {schema.version}: {missing}",
                model_version=schema.version,
                missing=missing,
            )

        logger.warning(
            f"[{schema.version}] Missing features {missing}, will use empty value handling"
        )
        return missing

    def single_preprocess(self, record: Record, schema: FeatureSchema) -> np.ndarray:
        """Preprocess one record into a float32 vector of length schema.dimension."""
        self.validate_sample(record, schema)

        vector = np.empty(schema.dimension, dtype=np.float32)
        index = 0

        for column in schema.numeric_columns:
            vector[index] = self.process_numeric(record.get(column), column, schema.numeric_params[column])
            index += 1

        for column in schema.categorical_columns:
            vector[index] = self.process_categorical(record.get(column), column, schema.categorical_params[column])
            index += 1

        return vector

    def batch_preprocess(self, records: Sequence[Record], schema: FeatureSchema) -> np.ndarray:
        """
        Preprocess records into a float32 matrix [N, D].

        Row i always corresponds to records[i]. An empty batch yields a
        (0, D) matrix.
        """
        matrix = np.zeros((len(records), schema.dimension), dtype=np.float32)
        if not records:
            logger.info("Batch preprocessing: no raw samples provided, return empty feature array")
            return matrix

        for i, record in enumerate(records):
            matrix[i] = self.single_preprocess(record, schema)

        logger.debug(
            f"Batch preprocessing finished for {schema.version}: "
            f"sample count={matrix.shape[0]}, total feature dimension={matrix.shape[1]}"
        )
        return matrix

