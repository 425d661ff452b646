"""
Parameter Persistence Module

Typed parameter sets with native YAML and legacy OpenCV document support.
"""

from .param_base import ParamBase
from .algorithm_param import AlgorithmParam
from .duo_calib_param import DuoCalibParam
from .calib_lookup import (
    get_calib_file_from_device_id, load_imu_calib_param,
    load_camera_calib_param, save_camera_calib_param
)

__all__ = ['ParamBase', 'AlgorithmParam', 'DuoCalibParam',
           'get_calib_file_from_device_id', 'load_imu_calib_param',
           'load_camera_calib_param', 'save_camera_calib_param']
