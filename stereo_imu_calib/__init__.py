"""
Stereo + IMU Calibration Parameters

Calibration state for a stereo camera + IMU sensor rig used by a
visual-inertial tracking pipeline.

This package implements:
- Typed IMU and per-eye camera calibration records
- Loading and saving in a native YAML layout and a legacy OpenCV FileStorage layout
- Derivation of stereo rectification and undistortion maps for pinhole and fisheye lenses
- Device identifier to calibration file resolution
- Feature detection and tracking tuning parameters
"""

__version__ = "1.0.0"
__author__ = "Stereo IMU Calibration Team"

from .calibration import CalibrationValidator, StereoRectifier, StereoRectification
from .params import (
    ParamBase, AlgorithmParam, DuoCalibParam,
    get_calib_file_from_device_id, load_imu_calib_param,
    load_camera_calib_param, save_camera_calib_param
)
from .data_models import (
    SensorType, SlaveDetMode, Dialect, FeatDetParam, Tracking, Imu, Camera
)
from .exceptions import (
    CalibrationError, MissingFileError, MalformedDocumentError, MissingRequiredFieldError,
    UnrecognizedDeviceIdError, DegenerateGeometryError, DegenerateTargetSizeError, WriteFailureError,
    RectificationUnavailableError
)

__all__ = [
    # Calibration
    'CalibrationValidator', 'StereoRectifier', 'StereoRectification',
    # Parameters
    'ParamBase', 'AlgorithmParam', 'DuoCalibParam',
    'get_calib_file_from_device_id', 'load_imu_calib_param',
    'load_camera_calib_param', 'save_camera_calib_param',
    # Data Models
    'SensorType', 'SlaveDetMode', 'Dialect', 'FeatDetParam', 'Tracking', 'Imu', 'Camera',
    # Errors
    'CalibrationError', 'MissingFileError', 'MalformedDocumentError', 'MissingRequiredFieldError',
    'UnrecognizedDeviceIdError', 'DegenerateGeometryError', 'DegenerateTargetSizeError',
    'WriteFailureError', 'RectificationUnavailableError'
]
