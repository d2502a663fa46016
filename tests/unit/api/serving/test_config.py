"""
Unit tests for api.serving.config module and the runtime settings.
"""

import os

import pytest
import yaml

from src.api.errors import ConfigError
from src.api.serving.config import ModelConfig, ServingConfig
from src.api.serving.features.schema import ValidationMode
from src.api.settings import ServingSettings


class TestModelConfig:
    """Tests for ModelConfig defaults."""

    def test_defaults(self):
        cfg = ModelConfig(path="m.onnx", preprocessor_path="p.json")

        assert cfg.input_node == "input"
        assert cfg.output_node == "output"
        assert cfg.enabled is True
        assert cfg.validation_mode == ValidationMode.LENIENT

    def test_blank_node_names_use_defaults(self):
        cfg = ModelConfig(path="m.onnx", preprocessor_path="p.json", input_node="", output_node=None)

        assert cfg.input_node == "input"
        assert cfg.output_node == "output"


class TestServingConfig:
    """Tests for loading the YAML model configuration."""

    def test_from_yaml_resolves_relative_paths(self, tmp_path):
        doc = {
            "models": {"ctr_v1": {"path": "models/ctr_v1.onnx", "preprocessor_path": "pre/ctr_v1.json"}},
            "routing": {"default_model": "ctr_v1"},
            "schedule": {"enabled": True, "data_path": "data/test.tsv"},
        }
        path = tmp_path / "models.yaml"
        path.write_text(yaml.safe_dump(doc))

        config = ServingConfig.from_yaml(str(path))

        assert config.models["ctr_v1"].path == os.path.join(str(tmp_path), "models", "ctr_v1.onnx")
        assert config.models["ctr_v1"].preprocessor_path == os.path.join(str(tmp_path), "pre", "ctr_v1.json")
        assert config.schedule.data_path == os.path.join(str(tmp_path), "data", "test.tsv")

    def test_absolute_paths_unchanged(self, serving_config_dict, tmp_path):
        path = tmp_path / "models.yaml"
        path.write_text(yaml.safe_dump(serving_config_dict))

        config = ServingConfig.from_yaml(str(path))

        assert config.models["ctr_v1"].path == serving_config_dict["models"]["ctr_v1"]["path"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ServingConfig.from_yaml(str(tmp_path / "absent.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("models: [unclosed")

        with pytest.raises(ConfigError):
            ServingConfig.from_yaml(str(path))

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            ServingConfig.from_yaml(str(path))

    def test_missing_routing_rejected(self):
        with pytest.raises(ConfigError):
            ServingConfig.from_dict({"models": {}})

    def test_unknown_routing_target_is_allowed(self, serving_config_dict):
        serving_config_dict["routing"]["default_model"] = "ctr_v9"

        config = ServingConfig.from_dict(serving_config_dict)

        assert config.routing.default_model == "ctr_v9"

    def test_enabled_models(self, serving_config_dict):
        serving_config_dict["models"]["ctr_v2"]["enabled"] = False

        config = ServingConfig.from_dict(serving_config_dict)

        assert list(config.enabled_models()) == ["ctr_v1"]

    def test_routing_targets(self, serving_config):
        assert serving_config.routing.targets() == ["ctr_v1", "ctr_v2"]

    def test_schedule_defaults(self, serving_config):
        assert serving_config.schedule.enabled is False
        assert serving_config.schedule.max_records == 20
        assert serving_config.schedule.separator == "\t"


class TestServingSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SERVING_ENABLE_SCHEDULED_BATCH", raising=False)
        settings = ServingSettings(_env_file=None)

        assert settings.max_batch_size == 1000
        assert settings.inference_timeout_seconds is None
        assert settings.enable_scheduled_batch is True

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SERVING_MAX_BATCH_SIZE", "10")
        monkeypatch.setenv("SERVING_INFERENCE_TIMEOUT_SECONDS", "0.5")

        settings = ServingSettings(_env_file=None)

        assert settings.max_batch_size == 10
        assert settings.inference_timeout_seconds == 0.5
