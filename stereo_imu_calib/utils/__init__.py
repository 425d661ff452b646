"""
Utility Functions and Helpers

Common utilities for calibration handling.
"""

from .config_manager import ConfigManager
from .transforms import is_rigid, is_rotation, inverse_rigid, make_transform, relative_transform

__all__ = ['ConfigManager', 'is_rigid', 'is_rotation', 'inverse_rigid', 'make_transform',
           'relative_transform']
