"""
Calibration Module

Invariant validation and stereo rectification for stereo + IMU rigs.
"""

from .calibration_validator import CalibrationValidator
from .stereo_rectifier import StereoRectifier, StereoRectification

__all__ = ['CalibrationValidator', 'StereoRectifier', 'StereoRectification']
