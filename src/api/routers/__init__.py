"""
API Routers
===========

Modular FastAPI routers for the CTR Model Serving API.

Routers:
- prediction: /api/model/* endpoints
- monitoring: /health/ping, /metrics endpoints

Usage:
    from src.api.routers import prediction_router, monitoring_router

    app.include_router(prediction_router)
    app.include_router(monitoring_router)
"""

from src.api.routers.prediction import router as prediction_router
from src.api.routers.monitoring import router as monitoring_router

__all__ = [
    "prediction_router",
    "monitoring_router",
]
