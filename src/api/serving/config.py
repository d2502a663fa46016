"""
Model Configuration
===================

YAML document describing the deployed model versions, how traffic is routed
between them, the engine session options and the scheduled batch replay.

Example (config/models.yaml):

    models:
      ctr_v1:
        path: models/ctr_v1.onnx
        preprocessor_path: preprocessors/ctr_v1.json
        type: DeepFM
      ctr_v2:
        path: models/ctr_v2.onnx
        preprocessor_path: preprocessors/ctr_v2.json
        validation_mode: strict

    routing:
      enabled: true
      default_model: ctr_v1
      rules:
        - name: ios_traffic
          target_model: ctr_v2
          conditions:
            - {field: C1, value: "ios"}

Relative paths are resolved against the directory holding the YAML file.
"""

import logging
import os
from typing import Dict, Any, Optional, Tuple, List

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from src.api.errors import ConfigError
from src.api.serving.features.schema import ValidationMode

logger = logging.getLogger(__name__)


DEFAULT_INPUT_NODE = "input"
DEFAULT_OUTPUT_NODE = "output"


class ModelConfig(BaseModel):
    """One deployable model version."""
    model_config = ConfigDict(protected_namespaces=())

    path: str
    preprocessor_path: str
    input_node: str = DEFAULT_INPUT_NODE
    output_node: str = DEFAULT_OUTPUT_NODE
    enabled: bool = True
    name: Optional[str] = None
    version: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    validation_mode: ValidationMode = ValidationMode.LENIENT

    @field_validator("input_node", "output_node", mode="before")
    @classmethod
    def _blank_node_to_default(cls, v, info):
        if v is None or not str(v).strip():
            return DEFAULT_INPUT_NODE if info.field_name == "input_node" else DEFAULT_OUTPUT_NODE
        return str(v).strip()


class Condition(BaseModel):
    """Exact string equality on one record field."""
    model_config = ConfigDict(frozen=True)

    field: str
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v):
        # YAML turns 1 / true into int / bool; records always carry strings
        if isinstance(v, bool):
            return str(v).lower()
        return v if v is None else str(v)


class ConditionRule(BaseModel):
    """Ordered routing rule; every condition must hold."""
    model_config = ConfigDict(frozen=True)

    name: str = ""
    target_model: str
    conditions: Tuple[Condition, ...] = ()
    enabled: bool = True


class RoutingConfig(BaseModel):
    """First-match-wins routing table."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    default_model: str
    rules: Tuple[ConditionRule, ...] = ()

    def targets(self) -> List[str]:
        """Every version this table can route to."""
        targets = [self.default_model]
        for rule in self.rules:
            if rule.target_model not in targets:
                targets.append(rule.target_model)
        return targets


class SessionOptionsConfig(BaseModel):
    """Engine session tuning. None means derive from the CPU count."""
    inter_op_threads: Optional[int] = Field(default=None, ge=1)
    intra_op_threads: Optional[int] = Field(default=None, ge=1)
    graph_optimization: str = "all"


class ScheduleConfig(BaseModel):
    """Periodic replay of a delimited test file through the scoring cycle."""
    enabled: bool = False
    interval_seconds: float = Field(default=60.0, gt=0)
    data_path: Optional[str] = None
    separator: str = "\t"
    max_records: int = Field(default=20, ge=1)
    columns: List[str] = Field(default_factory=list)
    sample_id_field: str = "sampleId"


class ServingConfig(BaseModel):
    """Root of the model configuration document."""
    models: Dict[str, ModelConfig] = Field(default_factory=dict)
    routing: RoutingConfig
    session: SessionOptionsConfig = Field(default_factory=SessionOptionsConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @model_validator(mode="after")
    def _check_routing_targets(self):
        for target in self.routing.targets():
            if target not in self.models:
                logger.warning(
                    f"Routing target '{target}' is not a configured model; "
                    f"records routed to it will receive the failure score"
                )
        return self

    def enabled_models(self) -> Dict[str, ModelConfig]:
        return {version: cfg for version, cfg in self.models.items() if cfg.enabled}

    def resolve_paths(self, base_dir: str) -> "ServingConfig":
        """Return a copy with relative artifact paths anchored at base_dir."""

        def _resolve(path: Optional[str]) -> Optional[str]:
            if not path or os.path.isabs(path):
                return path
            return os.path.normpath(os.path.join(base_dir, path))

        models = {
            version: cfg.model_copy(update={
                "path": _resolve(cfg.path),
                "preprocessor_path": _resolve(cfg.preprocessor_path),
            })
            for version, cfg in self.models.items()
        }
        schedule = self.schedule.model_copy(update={"data_path": _resolve(self.schedule.data_path)})
        return self.model_copy(update={"models": models, "schedule": schedule})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServingConfig":
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid model configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: str) -> "ServingConfig":
        """
        Load and validate the YAML document.

        Raises:
            ConfigError: file unreadable, not YAML, or not a valid document
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read model configuration: {path}", path=str(path)) from e

        if not isinstance(data, dict):
            raise ConfigError(f"Model configuration must be a mapping: {path}", path=str(path))

        config = cls.from_dict(data)
        base_dir = os.path.dirname(os.path.abspath(path))
        logger.info(
            f"Loaded model configuration from {path}: "
            f"{len(config.models)} model(s), {len(config.routing.rules)} routing rule(s)"
        )
        return config.resolve_paths(base_dir)
