"""
Calibration File Resolution

Maps device identifiers to calibration documents and wires them to the
DuoCalibParam loaders and writers.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..data_models import Dialect
from ..exceptions import CalibrationError, UnrecognizedDeviceIdError
from ..utils.config_manager import ConfigManager
from .documents import detect_dialect
from .duo_calib_param import DuoCalibParam

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _resolve_calib_file(device_id: str, config: ConfigManager) -> str:
    """
    Resolve the calibration document of a device.

    The explicit ``calibration.device_calib_files`` table wins; otherwise
    ``<calib_root>/<device_id>/<calib_file_name>`` is used when that file exists.

    Raises:
        UnrecognizedDeviceIdError: If neither source knows the device
    """
    calib_config = config.get_calibration_params()

    table = calib_config.get('device_calib_files') or {}
    if device_id and device_id in table:
        calib_file = str(Path(table[device_id]).expanduser())
        logger.debug(f"Device {device_id} mapped to {calib_file}")
        return calib_file

    calib_root = calib_config.get('calib_root')
    if device_id and calib_root:
        candidate = Path(calib_root).expanduser() / device_id / calib_config.get('calib_file_name', 'calib.yaml')
        if candidate.is_file():
            logger.debug(f"Device {device_id} resolved to {candidate}")
            return str(candidate)

    raise UnrecognizedDeviceIdError(f"No calibration file for device '{device_id}'", {'device_id': device_id})


def get_calib_file_from_device_id(device_id: str,
                                  config_manager: Optional[ConfigManager] = None) -> Optional[str]:
    """
    Resolve the calibration document of a device.

    Args:
        device_id: Device identifier
        config_manager: Configuration manager instance

    Returns:
        Path of the calibration document, or None if the device is unknown
    """
    try:
        return _resolve_calib_file(device_id, config_manager or ConfigManager())
    except UnrecognizedDeviceIdError as e:
        logger.error(e.message)
        return None


def load_imu_calib_param(device_id: str, duo_calib_param: DuoCalibParam) -> bool:
    """
    Load the IMU block of a device's calibration.

    Args:
        device_id: Device identifier
        duo_calib_param: Calibration to populate

    Returns:
        True on success
    """
    try:
        calib_file = _resolve_calib_file(device_id, duo_calib_param.config)
    except UnrecognizedDeviceIdError as e:
        return duo_calib_param._fail(f"Failed to load IMU calibration of device '{device_id}'", e)
    return duo_calib_param.load_imu_calib_from_yaml(calib_file)


def load_camera_calib_param(calib_file: PathLike, duo_calib_param: DuoCalibParam) -> bool:
    """
    Load a full calibration document in whichever dialect it is written.

    Args:
        calib_file: Calibration document
        duo_calib_param: Calibration to populate

    Returns:
        True on success
    """
    try:
        dialect = detect_dialect(calib_file)
    except CalibrationError as e:
        return duo_calib_param._fail(f"Failed to load calibration from {calib_file}", e)
    return duo_calib_param.load(calib_file, dialect)


def save_camera_calib_param(calib_file: PathLike,
                            duo_calib_param: DuoCalibParam,
                            dialect: Dialect = Dialect.NATIVE) -> bool:
    """
    Persist a calibration.

    Args:
        calib_file: Destination document
        duo_calib_param: Calibration to write
        dialect: Layout of the written document

    Returns:
        True on success
    """
    return duo_calib_param.save(calib_file, dialect)
