"""
Data Models for Stereo + IMU Calibration

Defines the typed blocks held by the parameter classes.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional, Tuple
import numpy as np


class SensorType(IntEnum):
    """Hardware family of the sensor rig."""
    UNKNOWN = 0
    LI = 2
    XP = 3
    XP2 = 4
    XP3 = 5


class SlaveDetMode(str, Enum):
    """Feature detection strategy used on the slave (right) eye."""
    DIRECT = "direct"
    ORB = "orb"
    OPTICAL_FLOW = "optical_flow"


class Dialect(str, Enum):
    """Document layout used when loading or saving parameters."""
    NATIVE = "native"
    CV = "cv"


@dataclass
class FeatDetParam:
    """Feature detection tuning."""
    request_feat_num: int = 70
    pyra_level: int = 2
    fast_det_thresh: int = 10
    uniform_radius: int = 40
    min_feature_distance_over_baseline_ratio: float = 3.0
    max_feature_distance_over_baseline_ratio: float = 3000.0
    feature_track_length_thresh: int = 25
    feature_track_dropout_rate: float = 0.3


@dataclass
class Tracking:
    """Tracking and imaging tuning."""
    max_feature_search_range: float = 10.0 / 400.0
    orb_match_dist_thresh: float = 0.3 * 255
    orb_match_thresh_test_ratio: float = 0.9
    feature_uncertainty: float = 5.0
    imaging_FPS: int = 20
    imaging_exposure: int = 100
    imaging_gain: int = 100
    aec_index: int = 100
    use_of_id: bool = True
    use_april_tag: bool = False
    slave_det: SlaveDetMode = SlaveDetMode.DIRECT
    undistort_before_vio: bool = True


@dataclass
class Imu:
    """IMU intrinsic model and its mounting on the device."""
    accel_TK: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))  # scale and cross-coupling
    accel_bias: np.ndarray = field(default_factory=lambda: np.zeros(3))
    gyro_TK: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    gyro_bias: np.ndarray = field(default_factory=lambda: np.zeros(3))
    accel_noise_var: np.ndarray = field(default_factory=lambda: np.zeros(3))  # (m/s^2)^2
    angv_noise_var: np.ndarray = field(default_factory=lambda: np.zeros(3))  # (rad/s)^2
    D_T_I: np.ndarray = field(default_factory=lambda: np.eye(4))  # IMU -> device
    undist_D_T_I: Optional[np.ndarray] = None  # IMU -> rectified device


@dataclass
class Camera:
    """
    Per-eye camera calibration, index 0 is the left eye and 1 the right eye.

    The intrinsics are kept once, in ``camera_K_lr``; ``cv_camera_K_lr`` converts
    them for OpenCV calls. Fields below ``img_size`` are produced by
    ``DuoCalibParam.init_undistort_map``.
    """
    D_T_C_lr: List[np.ndarray] = field(default_factory=list)  # camera -> device, 4x4
    camera_K_lr: List[np.ndarray] = field(default_factory=list)  # 3x3
    cv_dist_coeff_lr: List[np.ndarray] = field(default_factory=list)
    lurd_lr: List[np.ndarray] = field(default_factory=list)  # left, top, right, bottom in pixels
    fisheye: bool = False
    calib_img_size: Tuple[int, int] = (0, 0)  # (width, height) the intrinsics refer to

    img_size: Tuple[int, int] = (0, 0)  # (width, height) of the derived maps
    undistort_map_op1_lr: List[np.ndarray] = field(default_factory=list)
    undistort_map_op2_lr: List[np.ndarray] = field(default_factory=list)
    cv_undist_K_lr: List[np.ndarray] = field(default_factory=list)
    undist_D_T_C_lr: List[np.ndarray] = field(default_factory=list)
    Q: Optional[np.ndarray] = None  # 4x4 disparity-to-depth, see cv2.reprojectImageTo3D

    @property
    def num_eyes(self) -> int:
        return len(self.camera_K_lr)

    @property
    def cv_camera_K_lr(self) -> List[np.ndarray]:
        """Intrinsic matrices as contiguous float64 arrays for OpenCV."""
        return [np.ascontiguousarray(K, dtype=np.float64) for K in self.camera_K_lr]

    def clear_derived(self) -> None:
        """Drop every field produced by the undistortion map derivation."""
        self.undistort_map_op1_lr = []
        self.undistort_map_op2_lr = []
        self.cv_undist_K_lr = []
        self.undist_D_T_C_lr = []
        self.Q = None
