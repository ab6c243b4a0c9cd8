"""
Configuration management for USB Tree.

Handles loading and saving of the YAML configuration: the per-platform
threshold table, parser settings and report/server options.
"""

from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Optional
import yaml
from pydantic import ValidationError

from .classifier import validate_thresholds
from .errors import ConfigError
from .models import AppConfig, StabilityThreshold

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "USB_TREE_CONFIG"

# Use absolute path based on project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "config" / "usb_tree.yaml"


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)


class ConfigManager:
    """Manages application configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        env_path = os.environ.get(CONFIG_ENV_VAR)
        self.config_path = Path(config_path or env_path or DEFAULT_CONFIG_PATH)
        self._config: Optional[AppConfig] = None
        self._thresholds: dict[str, StabilityThreshold] = {}

    @property
    def config(self) -> AppConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        return self._config  # type: ignore

    def load(self) -> AppConfig:
        """Load configuration from file.

        A missing or unreadable file falls back to defaults. A file that
        reads fine but describes an invalid threshold table raises
        ConfigError, since every later verdict would depend on it.
        """
        data: dict = {}
        if self.config_path.exists():
            try:
                with open(self.config_path) as f:
                    data = yaml.safe_load(f) or {}
                if not isinstance(data, dict):
                    raise ValueError("top level must be a mapping")
                logger.info(f"Loaded configuration from {self.config_path}")
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.exception(f"Error loading config from {self.config_path}: {e}")
                data = {}
        else:
            logger.info(f"No config file found at {self.config_path}, using defaults")

        try:
            config = AppConfig(**data)
        except ValidationError as e:
            raise ConfigError(_format_validation_error(e), str(self.config_path)) from e

        self._thresholds = validate_thresholds(config.thresholds)
        self._config = config
        return self._config

    def save(self) -> bool:
        """Save current configuration to file, returning whether it was written."""
        if self._config is None:
            return False

        data = self._config.model_dump(mode="json")

        try:
            # Ensure directory exists
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            logger.info(f"Saved configuration to {self.config_path}")
            return True
        except OSError as e:
            logger.exception(f"Error saving config to {self.config_path}: {e}")
            return False

    def get_thresholds(self) -> dict[str, StabilityThreshold]:
        """Get the validated platform -> threshold table."""
        if self._config is None:
            self.load()
        return self._thresholds.copy()

    def set_threshold(self, platform_name: str, recommended: int, absolute: int) -> StabilityThreshold:
        """Add or replace a platform threshold and persist it."""
        if self._config is None:
            self.load()

        try:
            threshold = StabilityThreshold(
                platform_name=platform_name,
                recommended_max_hops=recommended,
                absolute_max_hops=absolute,
            )
        except ValidationError as e:
            raise ConfigError(_format_validation_error(e)) from e

        thresholds = list(self._config.thresholds)  # type: ignore
        for i, existing in enumerate(thresholds):
            if existing.platform_name == platform_name:
                thresholds[i] = threshold
                break
        else:
            thresholds.append(threshold)
        self._config = self._config.model_copy(update={"thresholds": thresholds})  # type: ignore
        self._thresholds = validate_thresholds(thresholds)
        if not self.save():
            raise ConfigError("could not write the configuration file", str(self.config_path))
        return threshold


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[Path] = None) -> ConfigManager:
    """Get or create the global config manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_path)
    return _config_manager


def reset_config_manager() -> None:
    """Drop the global instance so the next call reloads from disk."""
    global _config_manager
    _config_manager = None
