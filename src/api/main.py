"""
CTR Model Serving API
================================================================================

Feature preprocessing, condition-based model routing and ONNX inference
behind a small HTTP surface.

Endpoints:
  POST /api/model/predict    - Batch prediction (records routed per version)
  GET  /api/model/info       - Model version metadata
  GET  /api/model/versions   - Registered versions and routing table
  GET  /health/ping          - Liveness probe
  GET  /metrics              - Prometheus metrics

Run:
  uvicorn src.api.main:app --host 0.0.0.0 --port 8080
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from src.api.dependencies import get_runtime, shutdown_runtime
from src.api.errors import APIError, api_exception_handler, generic_exception_handler
from src.api.routers import monitoring_router, prediction_router
from src.api.settings import get_serving_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_serving_settings()
    configure_logging(settings.log_level)

    runtime = get_runtime()
    if runtime.scheduler is not None:
        runtime.scheduler.start()
    logger.info(f"CTR Model Serving API started with models: {runtime.registry.versions()}")

    yield

    shutdown_runtime()
    logger.info("CTR Model Serving API stopped")


app = FastAPI(
    title="CTR Model Serving API",
    version="1.0.0",
    description="Feature preprocessing, model routing and ONNX inference for CTR models",
    lifespan=lifespan,
)

app.add_exception_handler(APIError, api_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(prediction_router)
app.include_router(monitoring_router)


if __name__ == "__main__":
    settings = get_serving_settings()
    uvicorn.run("src.api.main:app", host=settings.api_host, port=settings.api_port)
