"""
Stereo Rectifier

Computes rectifying rotations, rectified intrinsics, the disparity-to-depth
matrix and per-eye remap tables for pinhole and fisheye stereo rigs.
"""

import cv2
import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

from ..exceptions import DegenerateGeometryError, DegenerateTargetSizeError, RectificationUnavailableError
from ..utils.config_manager import ConfigManager
from ..utils.transforms import is_rotation, rotation_angle_degrees


@dataclass
class StereoRectification:
    """Output of a stereo rectification for one target image size."""
    R_lr: List[np.ndarray]  # rectifying rotations, x_rect = R @ x_cam
    P_lr: List[np.ndarray]  # 3x4 projection matrices in the rectified frames
    Q: np.ndarray  # 4x4 disparity-to-depth matrix
    map1_lr: List[np.ndarray]
    map2_lr: List[np.ndarray]
    image_size: Tuple[int, int]  # (width, height)

    @property
    def K_lr(self) -> List[np.ndarray]:
        return [P[:3, :3].copy() for P in self.P_lr]


class StereoRectifier:
    """Wraps the OpenCV pinhole and fisheye stereo rectification primitives."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """
        Initialize stereo rectifier.

        Args:
            config_manager: Configuration manager instance
        """
        self.config = config_manager or ConfigManager()
        self.logger = logging.getLogger(__name__)

        rect_config = self.config.get_rectification_params()
        self.min_baseline = float(rect_config.get('min_baseline', 1e-3))  # meters
        self.max_baseline = float(rect_config.get('max_baseline', 2.0))  # meters
        self.alpha = float(rect_config.get('alpha', 0.0))
        self.fisheye_balance = float(rect_config.get('fisheye_balance', 0.0))
        self.fisheye_fov_scale = float(rect_config.get('fisheye_fov_scale', 1.0))
        self.map_type = getattr(cv2, rect_config.get('map_type', 'CV_32FC1'))

    def compute_rectification(self,
                              K_lr: Sequence[np.ndarray],
                              dist_lr: Sequence[np.ndarray],
                              C1_T_C0: np.ndarray,
                              source_size: Tuple[int, int],
                              target_size: Tuple[int, int],
                              fisheye: bool = False) -> StereoRectification:
        """
        Rectify a stereo pair and build remap tables for the target size.

        Args:
            K_lr: Left and right 3x3 intrinsic matrices at source_size
            dist_lr: Left and right distortion coefficients
            C1_T_C0: 4x4 transform taking left camera points into the right camera frame
            source_size: (width, height) the intrinsics refer to
            target_size: (width, height) of the rectified output
            fisheye: Use the fisheye lens model instead of pinhole

        Returns:
            Rectification outputs for target_size
        """
        target_w, target_h = int(target_size[0]), int(target_size[1])
        if target_w <= 0 or target_h <= 0:
            raise DegenerateTargetSizeError(f"Invalid target image size: {target_size}",
                                            {'size': tuple(target_size)})
        source_w, source_h = int(source_size[0]), int(source_size[1])
        if source_w <= 0 or source_h <= 0:
            raise DegenerateGeometryError(f"Invalid source image size: {source_size}",
                                          {'size': tuple(source_size)})

        R = np.ascontiguousarray(C1_T_C0[:3, :3], dtype=np.float64)
        t = np.ascontiguousarray(C1_T_C0[:3, 3], dtype=np.float64).reshape(3, 1)
        self._validate_stereo_geometry(R, t, float(np.linalg.norm(t)))

        K0, K1 = (np.ascontiguousarray(K, dtype=np.float64) for K in K_lr)
        source = (source_w, source_h)
        target = (target_w, target_h)

        try:
            if fisheye:
                D0, D1 = (np.asarray(D, dtype=np.float64).reshape(4, 1) for D in dist_lr)
                R1, R2, P1, P2, Q = cv2.fisheye.stereoRectify(
                    K0, D0, K1, D1, source, R, t, cv2.CALIB_ZERO_DISPARITY,
                    newImageSize=target,
                    balance=self.fisheye_balance,
                    fov_scale=self.fisheye_fov_scale
                )
                maps = [
                    cv2.fisheye.initUndistortRectifyMap(K, D, Rr, P, target, self.map_type)
                    for K, D, Rr, P in ((K0, D0, R1, P1), (K1, D1, R2, P2))
                ]
            else:
                D0, D1 = (np.asarray(D, dtype=np.float64).reshape(-1) for D in dist_lr)
                R1, R2, P1, P2, Q, _, _ = cv2.stereoRectify(
                    K0, D0, K1, D1, source, R, t,
                    flags=cv2.CALIB_ZERO_DISPARITY,
                    alpha=self.alpha,
                    newImageSize=target
                )
                maps = [
                    cv2.initUndistortRectifyMap(K, D, Rr, P, target, self.map_type)
                    for K, D, Rr, P in ((K0, D0, R1, P1), (K1, D1, R2, P2))
                ]
        except cv2.error as e:
            raise DegenerateGeometryError(f"Stereo rectification failed: {e}")

        outputs = (R1, R2, P1, P2, Q)
        if not all(np.all(np.isfinite(m)) for m in outputs) or Q[3, 2] == 0:
            raise DegenerateGeometryError("Stereo rectification produced a degenerate projection")

        self.logger.info(
            f"Rectification computed: {source_w}x{source_h} -> {target_w}x{target_h}, "
            f"{'fisheye' if fisheye else 'pinhole'} model"
        )

        return StereoRectification(
            R_lr=[R1, R2],
            P_lr=[P1, P2],
            Q=Q,
            map1_lr=[maps[0][0], maps[1][0]],
            map2_lr=[maps[0][1], maps[1][1]],
            image_size=target
        )

    def rectify_image_pair(self,
                           left_image: np.ndarray,
                           right_image: np.ndarray,
                           param) -> Tuple[np.ndarray, np.ndarray]:
        """
        Rectify a stereo image pair using the derived maps of a calibration.

        Args:
            left_image: Left camera image
            right_image: Right camera image
            param: DuoCalibParam with valid rectification state

        Returns:
            Tuple of (rectified_left, rectified_right)

        Raises:
            RectificationUnavailableError: If the maps are missing or stale
        """
        if not param.rectification_valid:
            raise RectificationUnavailableError(
                "Calibration has no valid undistortion maps, call init_undistort_map first"
            )

        camera = param.camera
        rectified_left = cv2.remap(
            left_image,
            camera.undistort_map_op1_lr[0],
            camera.undistort_map_op2_lr[0],
            cv2.INTER_LINEAR
        )

        rectified_right = cv2.remap(
            right_image,
            camera.undistort_map_op1_lr[1],
            camera.undistort_map_op2_lr[1],
            cv2.INTER_LINEAR
        )

        return rectified_left, rectified_right

    def _validate_stereo_geometry(self, R: np.ndarray, T: np.ndarray, baseline: float) -> None:
        """
        Validate stereo geometry parameters.

        Args:
            R: Rotation matrix between cameras
            T: Translation vector between cameras
            baseline: Distance between camera centers
        """
        if not np.isfinite(baseline) or baseline < self.min_baseline:
            raise DegenerateGeometryError(f"Baseline too small: {baseline:.6f}m < {self.min_baseline}m",
                                          {'baseline': baseline})

        if baseline > self.max_baseline:
            self.logger.warning(f"Large baseline: {baseline:.4f}m > {self.max_baseline}m")

        if not is_rotation(R):
            raise DegenerateGeometryError(f"Invalid rotation matrix: det(R) = {np.linalg.det(R):.4f}")

        rotation_degrees = rotation_angle_degrees(R)
        if rotation_degrees > 45:
            self.logger.warning(f"Large rotation between cameras: {rotation_degrees:.1f} degrees")

        self.logger.debug(f"Stereo geometry validation passed: baseline={baseline:.4f}m, rotation={rotation_degrees:.1f} deg")
