"""
Pytest configuration and fixtures for calibration tests.
"""

import pytest
import numpy as np
import yaml
from pathlib import Path

from stereo_imu_calib.params.duo_calib_param import DuoCalibParam
from stereo_imu_calib.utils.config_manager import ConfigManager

BASELINE = 0.06  # meters
IMAGE_SIZE = (640, 480)


def pytest_configure(config):
    config.addinivalue_line("markers", "property: property-based tests driven by hypothesis")


def rotation_y(degrees: float) -> np.ndarray:
    """Rotation about the camera y axis."""
    a = np.radians(degrees)
    return np.array([
        [np.cos(a), 0.0, np.sin(a)],
        [0.0, 1.0, 0.0],
        [-np.sin(a), 0.0, np.cos(a)]
    ])


def build_native_calib_document():
    """A two-eye pinhole calibration in the native layout, 6 cm baseline."""
    D_T_C_right = np.eye(4)
    D_T_C_right[:3, :3] = rotation_y(0.5)
    D_T_C_right[:3, 3] = [BASELINE, 0.0, 0.0]

    return {
        'device_id': 'XP3-0001',
        'sensor_type': 'XP3',
        'C_R_B': [[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]],
        'C_p_B': [0.01, 0.0, -0.02],
        'Imu': {
            'accel_TK': [[1.01, 0.002, 0.0], [0.0, 0.99, 0.001], [0.0, 0.0, 1.0]],
            'accel_bias': [0.05, -0.02, 0.11],
            'gyro_TK': [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
            'gyro_bias': [0.001, -0.002, 0.0005],
            'accel_noise_var': [0.0004, 0.0004, 0.0004],
            'angv_noise_var': [1.0e-5, 1.0e-5, 1.0e-5],
            'D_T_I': [[1.0, 0.0, 0.0, 0.005], [0.0, -1.0, 0.0, 0.002],
                      [0.0, 0.0, -1.0, 0.0], [0.0, 0.0, 0.0, 1.0]],
        },
        'Camera': {
            'fisheye': False,
            'image_size': list(IMAGE_SIZE),
            'cameras': [
                {
                    'D_T_C': np.eye(4).tolist(),
                    'K': [[450.0, 0.0, 320.0], [0.0, 452.0, 240.0], [0.0, 0.0, 1.0]],
                    'distortion': [0.01, -0.02, 0.001, 0.0005, 0.0],
                    'lurd': [0.0, 0.0, 640.0, 480.0],
                },
                {
                    'D_T_C': D_T_C_right.tolist(),
                    'K': [[448.0, 0.0, 318.0], [0.0, 449.5, 242.0], [0.0, 0.0, 1.0]],
                    'distortion': [0.012, -0.018, 0.0008, -0.0004, 0.0],
                    'lurd': [0.0, 0.0, 640.0, 480.0],
                },
            ],
        },
    }


@pytest.fixture
def config_manager():
    """Fixture providing a configuration manager instance."""
    return ConfigManager()


@pytest.fixture
def native_calib_document():
    """Fixture providing a fresh native calibration document."""
    return build_native_calib_document()


@pytest.fixture
def write_yaml(tmp_path):
    """Fixture providing a helper that dumps a mapping to a YAML file."""
    def _write(document, name="calib.yaml") -> Path:
        path = tmp_path / name
        with open(path, 'w') as file:
            yaml.safe_dump(document, file)
        return path
    return _write


@pytest.fixture
def native_calib_file(native_calib_document, write_yaml):
    """Fixture providing a native calibration file on disk."""
    return write_yaml(native_calib_document)


@pytest.fixture
def sample_calib_param(native_calib_file, config_manager):
    """Fixture providing a calibration loaded from the native sample file."""
    param = DuoCalibParam(config_manager)
    assert param.load_from_yaml(native_calib_file)
    return param


@pytest.fixture
def fisheye_calib_param(native_calib_document, write_yaml, config_manager):
    """Fixture providing a fisheye variant of the sample calibration."""
    native_calib_document['Camera']['fisheye'] = True
    for eye in native_calib_document['Camera']['cameras']:
        eye['distortion'] = [0.02, -0.006, 0.001, -0.0002]
    param = DuoCalibParam(config_manager)
    assert param.load_from_yaml(write_yaml(native_calib_document, "fisheye.yaml"))
    return param


@pytest.fixture
def synthetic_stereo_pair():
    """Fixture providing synthetic stereo image pair."""
    height, width = IMAGE_SIZE[1], IMAGE_SIZE[0]
    rng = np.random.default_rng(7)
    left_img = rng.integers(0, 255, (height, width), dtype=np.uint8)
    right_img = np.zeros_like(left_img)
    right_img[:, 20:] = left_img[:, :-20]
    return left_img, right_img
