"""
Unit tests for api.serving.models.model_registry module.
"""

import pytest

from src.api.errors import ConfigError, ModelInvalidError, ModelNotFoundError
from src.api.serving.models.model_registry import ModelContext, ModelRegistry


class TestModelContext:
    """Tests for ModelContext validity and payload."""

    def test_valid_context(self, make_context):
        assert make_context("ctr_v1").is_valid

    def test_missing_session_is_invalid(self):
        assert not ModelContext(model_version="v", session=None).is_valid

    def test_blank_node_names_are_invalid(self, make_context):
        assert not make_context("v", input_node_name=" ").is_valid
        assert not make_context("v", output_node_name="").is_valid

    def test_disabled_is_invalid(self, make_context):
        assert not make_context("v", enabled=False).is_valid

    def test_to_dict(self, make_context):
        data = make_context("ctr_v1", model_name="ctr").to_dict()

        assert data["modelVersion"] == "ctr_v1"
        assert data["modelName"] == "ctr"
        assert data["modelType"] == "DeepFM"
        assert data["inputNodeName"] == "input"
        assert data["valid"] is True

    def test_release_hands_session_to_engine(self, make_context, fake_engine):
        context = make_context("v")
        session = context.session

        context.release(fake_engine)

        assert fake_engine.released == [session]
        assert context.session is None


class TestModelRegistry:
    """Tests for ModelRegistry."""

    def test_register_and_get(self, make_context):
        registry = ModelRegistry()
        context = make_context("ctr_v1")

        assert registry.register("ctr_v1", context) is True
        assert registry.get("ctr_v1") is context
        assert "ctr_v1" in registry
        assert len(registry) == 1

    def test_invalid_context_is_skipped(self, make_context):
        registry = ModelRegistry()

        assert registry.register("bad", make_context("bad", enabled=False)) is False
        assert registry.register("none", None) is False
        assert "bad" not in registry
        assert len(registry) == 0

    def test_unknown_version_raises_not_found(self, registry):
        with pytest.raises(ModelNotFoundError) as exc:
            registry.get("ctr_v9")

        assert "ctr_v1" in exc.value.message
        assert exc.value.status_code == 404

    def test_context_invalidated_after_registration(self, make_context):
        registry = ModelRegistry()
        context = make_context("v")
        registry.register("v", context)

        context.enabled = False

        with pytest.raises(ModelInvalidError):
            registry.get("v")

    def test_frozen_registry_rejects_registration(self, registry, make_context):
        assert registry.frozen

        with pytest.raises(ConfigError):
            registry.register("ctr_v3", make_context("ctr_v3"))

    def test_versions_sorted(self, registry):
        assert registry.versions() == ["ctr_v1", "ctr_v2"]

    def test_info_never_raises(self, registry):
        assert registry.info("ctr_v1")["modelVersion"] == "ctr_v1"
        assert "error" in registry.info("missing")

    def test_close_releases_every_session(self, registry, fake_engine):
        registry.close(fake_engine)

        assert len(fake_engine.released) == 2
        assert len(registry) == 0
