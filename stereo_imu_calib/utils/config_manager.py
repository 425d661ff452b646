"""
Configuration Management System

Handles loading, validation, and management of calibration handling parameters.
"""

import yaml
from typing import Dict, Any, Optional
from pathlib import Path


VALID_MAP_TYPES = ('CV_32FC1', 'CV_32FC2', 'CV_16SC2')


class ConfigManager:
    """Manages configuration parameters for calibration loading and rectification."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, uses default config.
        """
        self.config_path = config_path or self._get_default_config_path()
        self.config = self._load_config()
        self._validate_config()

    def _get_default_config_path(self) -> str:
        """Get path to default configuration file."""
        package_dir = Path(__file__).parent.parent
        return str(package_dir / "config" / "default_config.yaml")

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as file:
                config = yaml.safe_load(file)
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing configuration file: {e}")

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ValueError(f"Configuration root must be a mapping: {self.config_path}")
        return config

    def _validate_config(self) -> None:
        """Validate configuration parameters for consistency and feasibility."""
        # Validate baseline limits
        rect = self.config.get('rectification', {})
        min_baseline = float(rect.get('min_baseline', 1e-3))
        max_baseline = float(rect.get('max_baseline', 2.0))
        if min_baseline <= 0:
            raise ValueError("rectification.min_baseline must be positive")
        if min_baseline >= max_baseline:
            raise ValueError("min_baseline must be less than max_baseline")

        # Validate rectification scaling
        alpha = float(rect.get('alpha', 0.0))
        if not -1.0 <= alpha <= 1.0:
            raise ValueError("rectification.alpha must be in [-1, 1]")
        balance = float(rect.get('fisheye_balance', 0.0))
        if not 0.0 <= balance <= 1.0:
            raise ValueError("rectification.fisheye_balance must be in [0, 1]")
        if float(rect.get('fisheye_fov_scale', 1.0)) <= 0:
            raise ValueError("rectification.fisheye_fov_scale must be positive")

        map_type = rect.get('map_type', 'CV_32FC1')
        if map_type not in VALID_MAP_TYPES:
            raise ValueError(f"rectification.map_type must be one of {VALID_MAP_TYPES}")

        # Validate invariant tolerances
        val = self.config.get('validation', {})
        if float(val.get('rigid_tolerance', 1e-3)) <= 0:
            raise ValueError("validation.rigid_tolerance must be positive")

        calib = self.config.get('calibration', {})
        if not isinstance(calib.get('device_calib_files') or {}, dict):
            raise ValueError("calibration.device_calib_files must be a mapping")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'rectification.alpha')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'rectification.alpha')
            value: Value to set
        """
        keys = key.split('.')
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref or config_ref[k] is None:
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value
        self._validate_config()

    def save(self, output_path: Optional[str] = None) -> None:
        """
        Save current configuration to file.

        Args:
            output_path: Path to save configuration. If None, overwrites current file.
        """
        save_path = output_path or self.config_path

        with open(save_path, 'w') as file:
            yaml.dump(self.config, file, default_flow_style=False, indent=2)

    def register_device(self, device_id: str, calib_file: str) -> None:
        """
        Map a device identifier to an explicit calibration file.

        Args:
            device_id: Device identifier
            calib_file: Path of the calibration document for that device
        """
        files = dict(self.get('calibration.device_calib_files') or {})
        files[device_id] = calib_file
        self.set('calibration.device_calib_files', files)

    def get_calibration_params(self) -> Dict[str, Any]:
        """Get calibration file lookup parameters as a dictionary."""
        return self.config.get('calibration') or {}

    def get_rectification_params(self) -> Dict[str, Any]:
        """Get rectification parameters as a dictionary."""
        return self.config.get('rectification') or {}

    def get_validation_params(self) -> Dict[str, Any]:
        """Get invariant validation parameters as a dictionary."""
        return self.config.get('validation') or {}
