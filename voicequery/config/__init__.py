"""Simple YAML configuration loader for voicequery."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..errors import ConfigError
from .settings import WhisperSettings, default_model_path

logger = logging.getLogger(__name__)

__all__ = ["VoiceQueryConfig", "WhisperSettings", "default_model_path"]


class VoiceQueryConfig:
    """voicequery configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used and nothing is read from disk.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config: Dict[str, Any] = {}
            return

        if not self.config_file.exists():
            raise ConfigError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to load configuration: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level")

        # Resolve relative paths
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        # Resolve model storage directory
        whisper = config.get('whisper')
        if isinstance(whisper, dict) and 'model_path' in whisper:
            model_path = os.path.expanduser(str(whisper['model_path']))
            if not os.path.isabs(model_path):
                model_path = str(config_dir / model_path)
            whisper['model_path'] = model_path

        # Resolve log file path
        if 'logging' in config and 'file_path' in config['logging']:
            log_path = config['logging']['file_path']
            if not os.path.isabs(log_path):
                config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'whisper.model').

        Args:
            key_path: Dot-separated key path (e.g., 'whisper.silence_threshold')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'whisper.model')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        # Set the final value
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def settings(self, **overrides: Any) -> WhisperSettings:
        """Build settings from the current 'whisper' section.

        The section is read on every call so that values changed with
        set() apply to the next operation.
        """
        section = self.get('whisper', {}) or {}
        if not isinstance(section, dict):
            raise ConfigError("'whisper' configuration section must be a mapping")
        return WhisperSettings.from_mapping(section).override(**overrides)
