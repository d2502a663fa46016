"""
Standardized Serving Error Handling
===================================

Provides the error taxonomy for the serving layer and consistent error
responses across all API endpoints.

Usage:
    from src.api.errors import (
        APIError,
        ModelNotFoundError,
        InferenceError,
        api_exception_handler,
    )

    # Raise custom errors
    raise ModelNotFoundError("Model not found: ctr_v9", model_version="ctr_v9")

    # Register handler with FastAPI
    app.add_exception_handler(APIError, api_exception_handler)

Propagation:
    - field level (PreprocessRecoverableError): recovered inside the preprocessor
    - group level (InferenceError and subclasses, ModelNotFoundError, ...):
      isolated by the BatchCoordinator and sentinel-filled
    - request level (ValidationError, InvalidInputError): surfaced to the caller
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime
import logging
import traceback

logger = logging.getLogger(__name__)


# =============================================================================
# ERROR RESPONSE MODELS
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    error_code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: str
    request_id: Optional[str] = None


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class APIError(Exception):
    """Base serving error class."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        return ErrorResponse(
            error=self.__class__.__name__,
            error_code=self.error_code,
            message=self.message,
            details=self.details,
            timestamp=datetime.now().isoformat(),
            request_id=request_id,
        )


ServingError = APIError


class ConfigError(APIError):
    """Bad or missing schema, model artifact or configuration document."""

    def __init__(self, message: str = "Configuration error", **details):
        super().__init__(
            message=message,
            error_code="CONFIG_ERROR",
            status_code=500,
            details=details,
        )


class ValidationError(APIError):
    """Request validation error."""

    def __init__(self, message: str = "Validation failed", error_code: str = "VALIDATION_ERROR", **details):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details,
        )


class InvalidInputError(ValidationError):
    """Empty or malformed prediction input."""

    def __init__(self, message: str = "Invalid input", **details):
        super().__init__(message=message, error_code="INVALID_INPUT", **details)


class PreprocessRecoverableError(APIError):
    """
    A single bad field value.

    Raised and caught inside the preprocessor, which substitutes the
    documented fallback. Never reaches a caller.
    """

    def __init__(self, message: str = "Unparsable feature value", column: str = None, raw_value: str = None):
        details = {}
        if column:
            details["column"] = column
        if raw_value is not None:
            details["raw_value"] = raw_value
        super().__init__(
            message=message,
            error_code="PREPROCESS_RECOVERABLE",
            status_code=400,
            details=details,
        )


class ModelNotFoundError(APIError):
    """Model version not found in registry."""

    def __init__(self, message: str = "Model not found", model_version: str = None, **details):
        if model_version:
            details["model_version"] = model_version
        super().__init__(
            message=message,
            error_code="MODEL_NOT_FOUND",
            status_code=404,
            details=details,
        )


class ModelInvalidError(APIError):
    """Model version registered but misconfigured or disabled."""

    def __init__(self, message: str = "Model context is invalid", model_version: str = None, **details):
        if model_version:
            details["model_version"] = model_version
        super().__init__(
            message=message,
            error_code="MODEL_INVALID",
            status_code=503,
            details=details,
        )


class InferenceError(APIError):
    """Scoring engine invocation failed for one model version."""

    def __init__(
        self,
        message: str = "Inference failed",
        model_version: str = None,
        cause: Optional[BaseException] = None,
        error_code: str = "INFERENCE_ERROR",
        **details,
    ):
        if model_version:
            details["model_version"] = model_version
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        self.model_version = model_version
        self.cause = cause
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=500,
            details=details,
        )


class UnsupportedOutputShapeError(InferenceError):
    """Engine returned an output whose rank is neither [N] nor [N, k]."""

    def __init__(self, message: str = "Unsupported output shape", model_version: str = None, **details):
        super().__init__(
            message=message,
            model_version=model_version,
            error_code="UNSUPPORTED_OUTPUT_SHAPE",
            **details,
        )


class ResultCountMismatchError(InferenceError):
    """Engine returned a different number of scores than input rows."""

    def __init__(self, expected: int, actual: int, model_version: str = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=(
                f"Prediction count mismatch - Input: {expected}, Output: {actual} "
                f"(Model version: {model_version})"
            ),
            model_version=model_version,
            error_code="RESULT_COUNT_MISMATCH",
            expected=expected,
            actual=actual,
        )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

async def api_exception_handler(request: Request, exc: APIError) -> JSONResponse:
    """
    Handle APIError exceptions.

    Register with FastAPI:
        app.add_exception_handler(APIError, api_exception_handler)
    """
    request_id = getattr(request.state, "request_id", None)

    logger.warning(
        f"API Error: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "request_id": request_id,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(request_id).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Register with FastAPI:
        app.add_exception_handler(Exception, generic_exception_handler)
    """
    request_id = getattr(request.state, "request_id", None)

    logger.error(
        f"Unexpected error: {str(exc)}",
        extra={
            "request_id": request_id,
            "traceback": traceback.format_exc(),
        },
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="InternalServerError",
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred",
            details={"error": str(exc)} if logger.isEnabledFor(logging.DEBUG) else None,
            timestamp=datetime.now().isoformat(),
            request_id=request_id,
        ).model_dump(),
    )
