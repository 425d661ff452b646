"""
Calibration Invariant Validator

Checks loaded calibration blocks against the structural invariants of the
rig model and reports suspicious values.
"""

import numpy as np
import logging
from typing import Dict, Any, List, Optional

from ..data_models import Camera, Imu
from ..utils.config_manager import ConfigManager
from ..utils.transforms import is_rigid, is_rotation, relative_transform, rotation_angle_degrees

PINHOLE_DISTORTION_LENGTHS = (4, 5, 8, 12, 14)
FISHEYE_DISTORTION_LENGTH = 4


def _new_results() -> Dict[str, Any]:
    return {
        'is_valid': True,
        'errors': [],
        'warnings': [],
        'metrics': {}
    }


def _add_error(results: Dict[str, Any], message: str) -> None:
    results['errors'].append(message)
    results['is_valid'] = False


class CalibrationValidator:
    """Validates IMU and camera calibration blocks."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """
        Initialize calibration validator.

        Args:
            config_manager: Configuration manager instance
        """
        self.config = config_manager or ConfigManager()
        self.logger = logging.getLogger(__name__)

        validation_config = self.config.get_validation_params()
        self.rigid_tolerance = float(validation_config.get('rigid_tolerance', 1e-3))
        self.min_focal_length = float(validation_config.get('min_focal_length', 100.0))
        self.max_focal_length = float(validation_config.get('max_focal_length', 3000.0))

        rect_config = self.config.get_rectification_params()
        self.min_baseline = float(rect_config.get('min_baseline', 1e-3))
        self.max_baseline = float(rect_config.get('max_baseline', 2.0))

    def validate_imu(self, imu: Imu) -> Dict[str, Any]:
        """
        Validate the IMU block.

        Args:
            imu: IMU calibration to validate

        Returns:
            Dictionary with validation results
        """
        results = _new_results()

        shapes = {
            'accel_TK': (3, 3), 'gyro_TK': (3, 3),
            'accel_bias': (3,), 'gyro_bias': (3,),
            'accel_noise_var': (3,), 'angv_noise_var': (3,),
            'D_T_I': (4, 4),
        }
        for name, shape in shapes.items():
            value = np.asarray(getattr(imu, name))
            if value.shape != shape:
                _add_error(results, f"Imu.{name} has shape {value.shape}, expected {shape}")
            elif not np.all(np.isfinite(value)):
                _add_error(results, f"Imu.{name} contains non-finite values")

        if not results['is_valid']:
            return results

        for name in ('accel_noise_var', 'angv_noise_var'):
            if np.any(np.asarray(getattr(imu, name)) < 0):
                _add_error(results, f"Imu.{name} must be non-negative")

        if not is_rigid(imu.D_T_I, self.rigid_tolerance):
            _add_error(results, "Imu.D_T_I is not a rigid transform")

        if imu.undist_D_T_I is not None and not is_rigid(imu.undist_D_T_I, self.rigid_tolerance):
            _add_error(results, "Imu.undist_D_T_I is not a rigid transform")

        results['metrics']['accel_bias_norm'] = float(np.linalg.norm(imu.accel_bias))
        results['metrics']['gyro_bias_norm'] = float(np.linalg.norm(imu.gyro_bias))

        return results

    def validate_camera(self, camera: Camera) -> Dict[str, Any]:
        """
        Validate the per-eye camera block.

        Args:
            camera: Camera calibration to validate

        Returns:
            Dictionary with validation results and stereo metrics
        """
        results = _new_results()

        per_eye = {
            'D_T_C_lr': camera.D_T_C_lr,
            'camera_K_lr': camera.camera_K_lr,
            'cv_dist_coeff_lr': camera.cv_dist_coeff_lr,
            'lurd_lr': camera.lurd_lr,
        }
        for name, values in per_eye.items():
            if len(values) != 2:
                _add_error(results, f"Camera.{name} has {len(values)} entries, expected 2 (stereo rig)")
        if not results['is_valid']:
            return results

        width, height = camera.calib_img_size
        if width <= 0 or height <= 0:
            _add_error(results, f"Invalid calibration image size: {camera.calib_img_size}")

        for lr in range(2):
            self._validate_eye(camera, lr, results)

        if not results['is_valid']:
            return results

        C1_T_C0 = relative_transform(camera.D_T_C_lr[0], camera.D_T_C_lr[1])
        baseline = float(np.linalg.norm(C1_T_C0[:3, 3]))
        results['metrics']['baseline'] = baseline
        results['metrics']['rotation_angle_degrees'] = rotation_angle_degrees(C1_T_C0[:3, :3])

        if baseline < self.min_baseline:
            results['warnings'].append(f"Baseline too small for rectification: {baseline:.4f}m")
        elif baseline > self.max_baseline:
            results['warnings'].append(f"Large baseline: {baseline:.4f}m")

        return results

    def _validate_eye(self, camera: Camera, lr: int, results: Dict[str, Any]) -> None:
        eye = "left" if lr == 0 else "right"

        if not is_rigid(camera.D_T_C_lr[lr], self.rigid_tolerance):
            _add_error(results, f"D_T_C of {eye} camera is not a rigid transform")

        K = np.asarray(camera.camera_K_lr[lr])
        if K.shape != (3, 3) or not np.all(np.isfinite(K)):
            _add_error(results, f"Intrinsic matrix of {eye} camera must be a finite 3x3 matrix")
        else:
            fx, fy = K[0, 0], K[1, 1]
            if fx <= 0 or fy <= 0:
                _add_error(results, f"Non-positive focal length for {eye} camera: ({fx}, {fy})")
            if not np.allclose(K[2], [0.0, 0.0, 1.0]) or K[1, 0] != 0:
                _add_error(results, f"Intrinsic matrix of {eye} camera is not upper triangular with K[2,2] = 1")
            if fx < self.min_focal_length or fx > self.max_focal_length:
                results['warnings'].append(f"Unusual focal length fx for {eye} camera: {fx:.1f} pixels")
            results['metrics'][f'focal_length_{eye}'] = (float(fx), float(fy))

        dist = np.asarray(camera.cv_dist_coeff_lr[lr]).reshape(-1)
        allowed = (FISHEYE_DISTORTION_LENGTH,) if camera.fisheye else PINHOLE_DISTORTION_LENGTHS
        if dist.size not in allowed:
            model = "fisheye" if camera.fisheye else "pinhole"
            _add_error(results, f"{eye} camera has {dist.size} distortion coefficients, {model} expects {allowed}")
        elif not np.all(np.isfinite(dist)):
            _add_error(results, f"Distortion coefficients of {eye} camera are not finite")

        lurd = np.asarray(camera.lurd_lr[lr]).reshape(-1)
        if lurd.size != 4:
            _add_error(results, f"Image boundary of {eye} camera must have 4 values")
        elif not np.all(np.isfinite(lurd)):
            _add_error(results, f"Image boundary of {eye} camera is not finite: {lurd.tolist()}")
        elif lurd[0] >= lurd[2] or lurd[1] >= lurd[3]:
            _add_error(results, f"Image boundary of {eye} camera is empty: {lurd.tolist()}")

    def validate_calibration(self, param) -> Dict[str, Any]:
        """
        Validate a complete DuoCalibParam.

        Args:
            param: Calibration to validate

        Returns:
            Merged validation results of all blocks
        """
        results = _new_results()

        if not is_rotation(param.C_R_B, self.rigid_tolerance):
            _add_error(results, "C_R_B is not a rotation matrix")
        if np.asarray(param.C_p_B).shape != (3,):
            _add_error(results, "C_p_B must be a 3-vector")

        for block in (self.validate_imu(param.imu), self.validate_camera(param.camera)):
            results['is_valid'] = results['is_valid'] and block['is_valid']
            results['errors'].extend(block['errors'])
            results['warnings'].extend(block['warnings'])
            results['metrics'].update(block['metrics'])

        if results['is_valid']:
            self.logger.info(f"Calibration of device '{param.device_id}' valid")
        else:
            self.logger.error(f"Calibration of device '{param.device_id}' invalid: {len(results['errors'])} errors")

        for warning in results['warnings']:
            self.logger.warning(warning)

        return results

    def generate_calibration_report(self, param, validation_results: Dict[str, Any]) -> str:
        """
        Generate a calibration summary report.

        Args:
            param: Calibration parameters
            validation_results: Results of validate_calibration

        Returns:
            Formatted calibration report
        """
        report: List[str] = []
        report.append("=" * 60)
        report.append("STEREO + IMU CALIBRATION REPORT")
        report.append("=" * 60)

        status = "VALID" if validation_results['is_valid'] else "INVALID"
        report.append(f"Status: {status}")
        report.append(f"Device: {param.device_id or '<unset>'} ({param.sensor_type.name})")
        report.append("")

        camera = param.camera
        report.append("CAMERA PARAMETERS")
        report.append("-" * 30)
        report.append(f"Lens model: {'fisheye' if camera.fisheye else 'pinhole'}")
        report.append(f"Calibration image size: {camera.calib_img_size[0]}x{camera.calib_img_size[1]}")
        for eye in ("Left", "Right"):
            key = f'focal_length_{eye.lower()}'
            if key in validation_results['metrics']:
                fx, fy = validation_results['metrics'][key]
                report.append(f"{eye} focal length: {fx:.1f} x {fy:.1f} pixels")
        report.append("")

        report.append("STEREO GEOMETRY")
        report.append("-" * 30)
        if 'baseline' in validation_results['metrics']:
            report.append(f"Baseline: {validation_results['metrics']['baseline']:.4f} meters")
        if 'rotation_angle_degrees' in validation_results['metrics']:
            rotation = validation_results['metrics']['rotation_angle_degrees']
            report.append(f"Camera rotation: {rotation:.2f} degrees")
        if param.rectification_valid:
            report.append(f"Rectified for: {camera.img_size[0]}x{camera.img_size[1]}")
        else:
            report.append("Rectified for: <not derived>")
        report.append("")

        report.append("IMU")
        report.append("-" * 30)
        report.append(f"Accel noise var: {np.asarray(param.imu.accel_noise_var).tolist()}")
        report.append(f"Gyro noise var:  {np.asarray(param.imu.angv_noise_var).tolist()}")
        report.append("")

        if validation_results['errors']:
            report.append("ERRORS")
            report.append("-" * 30)
            for error in validation_results['errors']:
                report.append(f"  - {error}")
            report.append("")

        if validation_results['warnings']:
            report.append("WARNINGS")
            report.append("-" * 30)
            for warning in validation_results['warnings']:
                report.append(f"  - {warning}")
            report.append("")

        report.append("=" * 60)

        return "\n".join(report)
