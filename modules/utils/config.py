"""
Centralized configuration manager.
Loads the YAML config and provides dot-path access with defaults.

Schema problems are logged as warnings; every component carries its own
defaults, so a partial or missing config file still yields a working
pipeline.
"""

import os
import yaml
import logging

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_CONFIG_DIR = os.path.join(_BASE_DIR, "config")

# Schema: expected sections and the types of their critical fields
_CONFIG_SCHEMA = {
    "recognition": {
        "feature_width": int,
        "inference_timeout_ms": int,
        "inference_workers": int,
        "confidence_thresholds": dict,
    },
    "temporal": {
        "time_window": float,
        "min_confidence_threshold": float,
        "min_stable_frames": int,
        "required_consensus_ratio": float,
        "max_history": int,
        "high_confidence_cutoff": float,
    },
    "features": {
        "indices_file": str,
    },
    "recording": {
        "samples_file": str,
        "frame_skip": int,
        "min_hand_presence": float,
        "min_visible_landmarks": int,
        "min_frame_distance": float,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Singleton configuration manager."""

    _instance = None
    _data = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load(self, config_path=None, overrides=None):
        """Load configuration from a YAML file, then apply overrides."""
        config_path = config_path or os.path.join(_CONFIG_DIR, "config.yaml")

        try:
            with open(config_path, "r") as f:
                self._data = yaml.safe_load(f) or {}
            logger.info("Loaded config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s, using defaults", config_path)
            self._data = {}
        except yaml.YAMLError as e:
            logger.error("Config file %s is not valid YAML (%s), using defaults", config_path, e)
            self._data = {}

        if overrides:
            self._data = _deep_merge(self._data, overrides)

        self._validate()
        return self

    def _validate(self):
        """Validate critical config fields against schema."""
        warnings = []
        for section_name, fields in _CONFIG_SCHEMA.items():
            section = self._data.get(section_name)
            if section is None:
                warnings.append(f"Missing config section: '{section_name}'")
                continue
            if not isinstance(section, dict):
                warnings.append(f"Section '{section_name}' should be a dict, got {type(section).__name__}")
                continue
            for field_name, expected_type in fields.items():
                if field_name in section:
                    value = section[field_name]
                    # Allow int where float is expected
                    if expected_type is float and isinstance(value, (int, float)):
                        continue
                    if not isinstance(value, expected_type):
                        warnings.append(
                            f"{section_name}.{field_name}: expected {expected_type.__name__}, "
                            f"got {type(value).__name__} ({value!r})"
                        )

        if warnings:
            for w in warnings:
                logger.warning("Config validation: %s", w)
        else:
            logger.debug("Config validation passed")
        return warnings

    def get(self, key_path: str, default=None):
        """Get nested config value using dot notation: 'temporal.time_window'."""
        keys = key_path.split(".")
        value = self._data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value):
        """Set a nested value (used for command-line overrides)."""
        keys = key_path.split(".")
        node = self._data
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        node[keys[-1]] = value

    def get_section(self, section: str) -> dict:
        """Get an entire config section."""
        return self._data.get(section, {})

    @property
    def recognition(self) -> dict:
        return self._data.get("recognition", {})

    @property
    def temporal(self) -> dict:
        return self._data.get("temporal", {})

    @property
    def features(self) -> dict:
        return self._data.get("features", {})

    @property
    def recording(self) -> dict:
        return self._data.get("recording", {})

    @property
    def pipeline(self) -> dict:
        return self._data.get("pipeline", {})

    @property
    def base_dir(self) -> str:
        return _BASE_DIR

    def resolve_path(self, path):
        """Resolve a config-relative path against the project root."""
        if not path or os.path.isabs(path):
            return path
        return os.path.join(_BASE_DIR, path)

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
        cls._data = {}
