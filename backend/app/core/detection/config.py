"""
Configuration management for duplicate detection system.
"""

import json
import os
from dataclasses import asdict, fields
from enum import Enum
from typing import Dict, Any, Optional, List
import logging

from .errors import InvalidConfigError
from .models import (
    ClusteringMethod, DetectionConfig, KeepStrategy, Sensitivity, SimilarityMetric
)

_ENUM_FIELDS = {
    'clustering_method': ClusteringMethod,
    'metric': SimilarityMetric,
    'keep_strategy': KeepStrategy,
}


class ConfigManager:
    """Manages configuration for duplicate detection system."""

    def __init__(self, config_file: Optional[str] = None, settings: Optional[Any] = None):
        self.config_file = config_file or "detection_config.json"
        self.settings = settings
        self.logger = logging.getLogger(self.__class__.__name__)
        self._default_config = self.get_default_config()

    def load_config(self, config_data: Optional[Dict[str, Any]] = None) -> DetectionConfig:
        """
        Load configuration from file or provided data.

        Args:
            config_data: Optional configuration dictionary to use instead of file

        Returns:
            DetectionConfig instance

        Raises:
            InvalidConfigError: If ``config_data`` is given and invalid
        """
        if config_data is not None:
            return self.create_config_from_dict(config_data)

        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r') as f:
                    data = json.load(f)
                return self.create_config_from_dict(data)
            except (OSError, ValueError) as e:
                self.logger.error(f"Failed to load config from {self.config_file}: {e}")
                self.logger.info("Using default configuration")

        return self._default_config

    def save_config(self, config: DetectionConfig) -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration to save
        """
        config_dict = self.config_to_dict(config)
        with open(self.config_file, 'w') as f:
            json.dump(config_dict, f, indent=2)
        self.logger.info(f"Configuration saved to {self.config_file}")

    def validate_config(self, config: DetectionConfig) -> List[str]:
        """
        Validate configuration and return list of errors.

        Args:
            config: Configuration to validate

        Returns:
            List of validation error messages
        """
        return config.validate()

    def get_default_config(self) -> DetectionConfig:
        """Get default configuration, derived from settings when available."""
        if self.settings is not None:
            return DetectionConfig.from_settings(self.settings)
        return DetectionConfig()

    def get_config_for_sensitivity(self, sensitivity: Sensitivity) -> DetectionConfig:
        """
        Get configuration with the threshold preset for a sensitivity level.

        Args:
            sensitivity: HIGH keeps only very close matches, LOW accepts looser ones

        Returns:
            Configuration with text and image thresholds set from the preset
        """
        if self.settings is None:
            from ..config import settings
            return DetectionConfig.from_settings(settings, sensitivity)
        return DetectionConfig.from_settings(self.settings, sensitivity)

    def create_config_from_dict(self, data: Dict[str, Any]) -> DetectionConfig:
        """
        Create DetectionConfig from dictionary.

        Unknown keys are ignored; enum fields accept their string values.

        Raises:
            InvalidConfigError: If a value cannot be parsed or the result is invalid
        """
        valid_keys = {f.name for f in fields(DetectionConfig)}
        filtered_data = {k: v for k, v in data.items() if k in valid_keys}

        for key, enum_class in _ENUM_FIELDS.items():
            if key in filtered_data and not isinstance(filtered_data[key], enum_class):
                try:
                    filtered_data[key] = enum_class(filtered_data[key])
                except ValueError:
                    raise InvalidConfigError(
                        f"Invalid {key} {filtered_data[key]!r}, expected one of "
                        f"{[e.value for e in enum_class]}"
                    ) from None

        config = DetectionConfig(**filtered_data)

        errors = self.validate_config(config)
        if errors:
            raise InvalidConfigError(f"Invalid detection configuration: {'; '.join(errors)}", errors)

        return config

    def config_to_dict(self, config: DetectionConfig) -> Dict[str, Any]:
        """Convert DetectionConfig to a JSON-serialisable dictionary."""
        return {
            key: value.value if isinstance(value, Enum) else value
            for key, value in asdict(config).items()
        }

    def merge_configs(self, base_config: DetectionConfig, override_data: Dict[str, Any]) -> DetectionConfig:
        """
        Merge base configuration with override data.

        Args:
            base_config: Base configuration
            override_data: Data to override base config

        Returns:
            Merged configuration
        """
        base_dict = self.config_to_dict(base_config)
        base_dict.update(override_data)
        return self.create_config_from_dict(base_dict)
