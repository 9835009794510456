"""
Tests for Configuration
=======================
"""

import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent))

from modules.utils.config import Config


@pytest.fixture(autouse=True)
def fresh_config():
    Config.reset()
    yield
    Config.reset()


class TestConfig:
    """Test suite for the configuration singleton."""

    def test_default_file_loads(self):
        """Shipped config.yaml loads without schema warnings."""
        config = Config().load()
        assert config._validate() == []
        assert config.get("temporal.time_window") == 1.5
        assert config.recognition["feature_width"] == 30

    def test_singleton(self):
        assert Config() is Config()

    def test_missing_file_uses_defaults(self, tmp_path):
        config = Config().load(config_path=str(tmp_path / "missing.yaml"))
        assert config.get("temporal.time_window", 2.0) == 2.0
        assert config.temporal == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("temporal: [unclosed")
        config = Config().load(config_path=str(path))
        assert config.get_section("temporal") == {}

    def test_overrides_deep_merge(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"temporal": {"time_window": 1.5, "max_history": 50}}))
        config = Config().load(config_path=str(path),
                               overrides={"temporal": {"max_history": 10}})
        assert config.get("temporal.time_window") == 1.5
        assert config.get("temporal.max_history") == 10

    def test_schema_warnings(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"temporal": {"min_stable_frames": "two"}}))
        warnings = Config().load(config_path=str(path))._validate()
        assert any("temporal.min_stable_frames" in w for w in warnings)
        assert any("Missing config section: 'recording'" in w for w in warnings)

    def test_set_dot_path(self, tmp_path):
        config = Config().load(config_path=str(tmp_path / "missing.yaml"))
        config.set("recording.samples_file", "/tmp/samples.json")
        assert config.recording["samples_file"] == "/tmp/samples.json"

    def test_resolve_path(self):
        config = Config()
        assert config.resolve_path("/abs/file.json") == "/abs/file.json"
        assert config.resolve_path(None) is None
        resolved = config.resolve_path("data/samples/gestures.json")
        assert resolved.startswith(config.base_dir)
