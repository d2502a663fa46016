"""
API Configuration Settings
==========================

Centralized, type-safe runtime configuration for the model serving API.

Model artifacts, feature schemas and routing rules live in the YAML document
pointed to by `models_config_path` (see src.api.serving.config); this module
only holds process-level knobs.

Usage:
    from src.api.settings import get_serving_settings

    settings = get_serving_settings()
    max_batch = settings.max_batch_size
"""

from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ServingSettings(BaseSettings):
    """
    Serving configuration.

    All settings can be overridden via environment variables (SERVING_ prefix).
    """

    # Model configuration document
    models_config_path: str = "config/models.yaml"

    # Logging
    log_level: str = "INFO"

    # Request limits
    max_batch_size: int = 1000

    # Inference
    inference_timeout_seconds: Optional[float] = None
    # A timed-out engine call cannot be interrupted and keeps its worker until
    # it returns; later calls queue behind it. Size above the expected number
    # of concurrently hung calls.
    engine_workers: int = 4
    parallel_groups: bool = True
    group_workers: int = 4

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Scheduled batch replay (also requires schedule.enabled in the YAML)
    enable_scheduled_batch: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SERVING_",
        extra="ignore",
        protected_namespaces=('settings_',),
    )


@lru_cache(maxsize=1)
def get_serving_settings() -> ServingSettings:
    """
    Get cached serving settings instance.

    Returns:
        ServingSettings singleton
    """
    return ServingSettings()
