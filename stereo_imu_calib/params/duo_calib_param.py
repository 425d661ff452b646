"""
Stereo + IMU Rig Calibration

Holds the calibration of one physical device: IMU model, per-eye camera
intrinsics/extrinsics and the rectification state derived from them.
"""

import hashlib
import math
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from ..calibration.calibration_validator import CalibrationValidator
from ..calibration.stereo_rectifier import StereoRectifier
from ..data_models import Camera, Imu, SensorType
from ..exceptions import (
    CalibrationError, DegenerateGeometryError, DegenerateTargetSizeError,
    MalformedDocumentError, MissingRequiredFieldError
)
from ..utils.config_manager import ConfigManager
from ..utils.transforms import is_rigid, make_transform, relative_transform
from .documents import CvDocumentReader, CvDocumentWriter, read_native_document, to_array, to_plain
from .param_base import ParamBase

PathLike = Union[str, Path]

IMU_MATRIX_KEYS = (('accel_TK', (3, 3)), ('accel_bias', (3,)), ('gyro_TK', (3, 3)),
                   ('gyro_bias', (3,)), ('accel_noise_var', (3,)), ('angv_noise_var', (3,)),
                   ('D_T_I', (4, 4)))

EYE_SUFFIXES = ('l', 'r')

# Legacy CV documents of these families may omit lurd_* and fish_eye
CV_OPTIONAL_LAYOUT_SENSORS = (SensorType.UNKNOWN, SensorType.LI, SensorType.XP, SensorType.XP2)


def _require(mapping: Dict[str, Any], key: str, prefix: str) -> Any:
    if key not in mapping or mapping[key] is None:
        name = f"{prefix}.{key}" if prefix else key
        raise MissingRequiredFieldError(f"Missing required key '{name}'", {'key': name})
    return mapping[key]


def _require_section(mapping: Dict[str, Any], key: str, prefix: str = "") -> Dict[str, Any]:
    section = _require(mapping, key, prefix)
    if not isinstance(section, dict):
        raise MalformedDocumentError(f"'{key}' must be a mapping", {'key': key})
    return section


def _to_vector(value: Any, key: str) -> np.ndarray:
    try:
        vector = np.asarray(value, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError):
        raise MalformedDocumentError(f"'{key}' is not a numeric array", {'key': key})
    return vector


def _to_size(value: Any, key: str) -> Tuple[int, int]:
    if (not isinstance(value, (list, tuple)) or len(value) != 2
            or not all(isinstance(v, int) and not isinstance(v, bool) for v in value)):
        raise MalformedDocumentError(f"'{key}' must be [width, height] integers", {'key': key})
    return int(value[0]), int(value[1])


def _parse_sensor_type(value: Any) -> SensorType:
    """Accept a family name ("XP3") or the legacy integer code (5)."""
    try:
        if isinstance(value, str):
            return SensorType[value.strip().upper()]
        if (isinstance(value, (int, float)) and not isinstance(value, bool)
                and math.isfinite(value) and value == int(value)):
            return SensorType(int(value))
    except (KeyError, ValueError):
        pass
    raise MalformedDocumentError(f"Unrecognized sensor_type: {value!r}", {'key': 'sensor_type'})


class DuoCalibParam(ParamBase):
    """Calibration record of a stereo camera + IMU device."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        super().__init__()
        self.config = config_manager or ConfigManager()
        self.validator = CalibrationValidator(self.config)
        self.rectifier = StereoRectifier(self.config)

        self.imu = Imu()
        self.camera = Camera()
        self.C_R_B = np.eye(3)  # body -> left camera rotation
        self.C_p_B = np.zeros(3)  # body origin in the left camera frame
        self.device_id = ""
        self.sensor_type = SensorType.UNKNOWN
        self._rectification_token: Optional[str] = None

    def _fresh(self) -> "DuoCalibParam":
        return DuoCalibParam(self.config)

    def _adopt(self, other: "DuoCalibParam") -> None:
        self.imu = other.imu
        self.camera = other.camera
        self.C_R_B = other.C_R_B
        self.C_p_B = other.C_p_B
        self.device_id = other.device_id
        self.sensor_type = other.sensor_type
        self._rectification_token = other._rectification_token

    # -- derived state --------------------------------------------------------

    def _derivation_token(self) -> str:
        """Fingerprint of every input the undistortion maps depend on."""
        camera = self.camera
        digest = hashlib.sha1()
        for group in (camera.D_T_C_lr, camera.camera_K_lr, camera.cv_dist_coeff_lr, [self.imu.D_T_I]):
            digest.update(str(len(group)).encode())
            for value in group:
                digest.update(np.ascontiguousarray(value, dtype=np.float64).tobytes())
        digest.update(repr((bool(camera.fisheye), tuple(camera.calib_img_size),
                            tuple(camera.img_size))).encode())
        return digest.hexdigest()

    @property
    def rectification_valid(self) -> bool:
        """True while the derived fields match the current raw calibration and img_size."""
        return (self._rectification_token is not None
                and self.camera.Q is not None
                and self._rectification_token == self._derivation_token())

    def _reset_derived(self) -> None:
        self.camera.clear_derived()
        self.camera.img_size = self.camera.calib_img_size
        self.imu.undist_D_T_I = None
        self._rectification_token = None

    def init_undistort_map(self, new_img_size: Tuple[int, int]) -> bool:
        """
        Derive rectified intrinsics, extrinsics, Q and remap tables.

        Args:
            new_img_size: (width, height) of the rectified output images

        Returns:
            True on success. On failure previously derived fields are left
            untouched and ``last_error`` holds the reason.
        """
        try:
            self._derive(new_img_size)
        except CalibrationError as e:
            return self._fail(f"Failed to initialize undistortion maps for {new_img_size}", e)

        self.last_error = None
        return True

    def _derive(self, new_img_size: Tuple[int, int]) -> None:
        try:
            width, height = (int(v) for v in new_img_size)
        except (TypeError, ValueError, OverflowError):
            raise DegenerateTargetSizeError(f"Invalid target image size: {new_img_size!r}")
        if width <= 0 or height <= 0:
            raise DegenerateTargetSizeError(f"Invalid target image size: {new_img_size}",
                                            {'size': (width, height)})

        camera = self.camera
        if not camera.camera_K_lr or not camera.cv_dist_coeff_lr or not camera.D_T_C_lr:
            raise MissingRequiredFieldError("Camera intrinsics, distortion and extrinsics must be loaded first")
        if min(camera.calib_img_size) <= 0:
            raise MissingRequiredFieldError("Calibration image size is not set")

        eye_counts = {len(camera.camera_K_lr), len(camera.cv_dist_coeff_lr), len(camera.D_T_C_lr)}
        if eye_counts != {2}:
            raise DegenerateGeometryError(f"Stereo rectification needs exactly 2 cameras, got {sorted(eye_counts)}")
        if not all(is_rigid(T, self.validator.rigid_tolerance) for T in camera.D_T_C_lr):
            raise DegenerateGeometryError("Camera extrinsics are not rigid transforms")

        C1_T_C0 = relative_transform(camera.D_T_C_lr[0], camera.D_T_C_lr[1])
        rect = self.rectifier.compute_rectification(
            camera.cv_camera_K_lr, camera.cv_dist_coeff_lr, C1_T_C0,
            camera.calib_img_size, (width, height), camera.fisheye
        )

        # Rectified device frame: the device frame turned like the left camera.
        R_dc0 = camera.D_T_C_lr[0][:3, :3]
        Dr_T_D = make_transform(R_dc0 @ rect.R_lr[0] @ R_dc0.T, np.zeros(3))
        undist_D_T_C_lr = [
            Dr_T_D @ D_T_C @ make_transform(R_rect.T, np.zeros(3))
            for D_T_C, R_rect in zip(camera.D_T_C_lr, rect.R_lr)
        ]
        undist_D_T_I = Dr_T_D @ self.imu.D_T_I

        camera.undistort_map_op1_lr = rect.map1_lr
        camera.undistort_map_op2_lr = rect.map2_lr
        camera.cv_undist_K_lr = rect.K_lr
        camera.undist_D_T_C_lr = undist_D_T_C_lr
        camera.Q = rect.Q
        camera.img_size = (width, height)
        self.imu.undist_D_T_I = undist_D_T_I
        self._rectification_token = self._derivation_token()

    def _rederive_stored(self, size: Tuple[int, int], stored_Q: Optional[np.ndarray]) -> None:
        """Reproduce derived state recorded in a document."""
        try:
            self._derive(size)
        except CalibrationError as e:
            self.logger.warning(f"Stored rectification for {size} could not be reproduced: {e.message}")
            return
        if stored_Q is not None and not np.allclose(stored_Q, self.camera.Q, rtol=1e-6, atol=1e-6):
            self.logger.warning("Stored Q differs from the re-derived one, keeping the re-derived matrix")

    def _check_invariants(self) -> None:
        results = self.validator.validate_calibration(self)
        if not results['is_valid']:
            raise MalformedDocumentError("; ".join(results['errors']), {'errors': results['errors']})

    # -- native dialect -------------------------------------------------------

    def _parse_native_imu(self, section: Dict[str, Any]) -> Imu:
        imu = Imu()
        for key, shape in IMU_MATRIX_KEYS:
            value = _require(section, key, 'Imu')
            setattr(imu, key, to_array(value, shape, f"Imu.{key}"))
        return imu

    def _parse_native_camera(self, section: Dict[str, Any]) -> Camera:
        camera = Camera()
        fisheye = _require(section, 'fisheye', 'Camera')
        if not isinstance(fisheye, bool):
            raise MalformedDocumentError("'Camera.fisheye' must be a boolean", {'key': 'Camera.fisheye'})
        camera.fisheye = fisheye
        camera.calib_img_size = _to_size(_require(section, 'image_size', 'Camera'), 'Camera.image_size')
        camera.img_size = camera.calib_img_size

        eyes = _require(section, 'cameras', 'Camera')
        if not isinstance(eyes, list):
            raise MalformedDocumentError("'Camera.cameras' must be a list", {'key': 'Camera.cameras'})
        if len(eyes) != 2:
            raise MalformedDocumentError(
                f"'Camera.cameras' has {len(eyes)} entries, only stereo rigs (2) are supported",
                {'key': 'Camera.cameras'}
            )

        for lr, eye in enumerate(eyes):
            prefix = f"Camera.cameras[{lr}]"
            if not isinstance(eye, dict):
                raise MalformedDocumentError(f"'{prefix}' must be a mapping", {'key': prefix})
            camera.D_T_C_lr.append(to_array(_require(eye, 'D_T_C', prefix), (4, 4), f"{prefix}.D_T_C"))
            camera.camera_K_lr.append(to_array(_require(eye, 'K', prefix), (3, 3), f"{prefix}.K"))
            camera.cv_dist_coeff_lr.append(_to_vector(_require(eye, 'distortion', prefix), f"{prefix}.distortion"))
            camera.lurd_lr.append(to_array(_require(eye, 'lurd', prefix), (4,), f"{prefix}.lurd"))
        return camera

    def _read_native(self, document: Dict[str, Any]) -> None:
        self.device_id = str(document.get('device_id') or "")
        self.sensor_type = _parse_sensor_type(document.get('sensor_type', SensorType.UNKNOWN.name))
        if document.get('C_R_B') is not None:
            self.C_R_B = to_array(document['C_R_B'], (3, 3), 'C_R_B')
        if document.get('C_p_B') is not None:
            self.C_p_B = to_array(document['C_p_B'], (3,), 'C_p_B')

        self.imu = self._parse_native_imu(_require_section(document, 'Imu'))
        self.camera = self._parse_native_camera(_require_section(document, 'Camera'))
        self._check_invariants()

        rectification = document.get('rectification')
        if isinstance(rectification, dict) and 'image_size' in rectification:
            size = _to_size(rectification['image_size'], 'rectification.image_size')
            stored_Q = rectification.get('Q')
            self._rederive_stored(size, None if stored_Q is None else to_array(stored_Q, (4, 4), 'rectification.Q'))

    def _build_native(self) -> Dict[str, Any]:
        imu = self.imu
        camera = self.camera
        document = {
            'device_id': self.device_id,
            'sensor_type': self.sensor_type.name,
            'C_R_B': to_plain(np.asarray(self.C_R_B)),
            'C_p_B': to_plain(np.asarray(self.C_p_B)),
            'Imu': {key: to_plain(np.asarray(getattr(imu, key))) for key, _ in IMU_MATRIX_KEYS},
            'Camera': {
                'fisheye': bool(camera.fisheye),
                'image_size': [int(v) for v in camera.calib_img_size],
                'cameras': [
                    {
                        'D_T_C': to_plain(np.asarray(D_T_C)),
                        'K': to_plain(np.asarray(K)),
                        'distortion': to_plain(np.asarray(dist).reshape(-1)),
                        'lurd': to_plain(np.asarray(lurd).reshape(-1)),
                    }
                    for D_T_C, K, dist, lurd in zip(camera.D_T_C_lr, camera.camera_K_lr,
                                                    camera.cv_dist_coeff_lr, camera.lurd_lr)
                ],
            },
        }

        if self.rectification_valid:
            document['rectification'] = {
                'image_size': [int(v) for v in camera.img_size],
                'Q': to_plain(camera.Q),
                'undist_D_T_I': to_plain(imu.undist_D_T_I),
                'cameras': [
                    {'K': to_plain(K), 'D_T_C': to_plain(D_T_C)}
                    for K, D_T_C in zip(camera.cv_undist_K_lr, camera.undist_D_T_C_lr)
                ],
            }
        elif camera.Q is not None:
            self.logger.warning("Derived rectification is stale and will not be written")

        return document

    # -- legacy CV dialect ----------------------------------------------------

    def _read_cv(self, reader: CvDocumentReader) -> None:
        if reader.has('device_id'):
            self.device_id = reader.string('device_id')
        if reader.has('sensor_type'):
            raw_type = reader.string('sensor_type') if reader.is_string('sensor_type') \
                else reader.real('sensor_type')
            self.sensor_type = _parse_sensor_type(raw_type)
        if reader.has('C_R_B'):
            self.C_R_B = reader.matrix('C_R_B', (3, 3))
        if reader.has('C_p_B'):
            self.C_p_B = reader.matrix('C_p_B', (3,))

        imu = Imu()
        for key, shape in IMU_MATRIX_KEYS:
            setattr(imu, key, reader.matrix(f"imu_{key}", shape))
        self.imu = imu

        lenient = self.sensor_type in CV_OPTIONAL_LAYOUT_SENSORS
        camera = Camera()
        width, height = reader.integer('image_width'), reader.integer('image_height')
        camera.calib_img_size = (width, height)
        camera.img_size = camera.calib_img_size
        if lenient and not reader.has('fish_eye'):
            camera.fisheye = False
        else:
            fish_eye = reader.integer('fish_eye')
            if fish_eye not in (0, 1):
                raise MalformedDocumentError("'fish_eye' must be 0 or 1", {'key': 'fish_eye'})
            camera.fisheye = bool(fish_eye)

        for suffix in EYE_SUFFIXES:
            camera.D_T_C_lr.append(reader.matrix(f"D_T_C_{suffix}", (4, 4)))
            camera.camera_K_lr.append(reader.matrix(f"K_{suffix}", (3, 3)))
            camera.cv_dist_coeff_lr.append(reader.vector(f"dist_{suffix}"))
            if lenient and not reader.has(f"lurd_{suffix}"):
                camera.lurd_lr.append(np.array([0.0, 0.0, float(width), float(height)]))
            else:
                camera.lurd_lr.append(reader.matrix(f"lurd_{suffix}", (4,)))
        self.camera = camera
        self._check_invariants()

        if reader.has('rect_image_width') and reader.has('rect_image_height'):
            size = (reader.integer('rect_image_width'), reader.integer('rect_image_height'))
            stored_Q = reader.matrix('Q', (4, 4)) if reader.has('Q') else None
            self._rederive_stored(size, stored_Q)

    def _write_cv(self, writer: CvDocumentWriter) -> None:
        imu = self.imu
        camera = self.camera

        if self.device_id:
            writer.string('device_id', self.device_id)
        writer.string('sensor_type', self.sensor_type.name)
        writer.matrix('C_R_B', self.C_R_B)
        writer.matrix('C_p_B', self.C_p_B)
        for key, _ in IMU_MATRIX_KEYS:
            writer.matrix(f"imu_{key}", getattr(imu, key))

        writer.integer('image_width', camera.calib_img_size[0])
        writer.integer('image_height', camera.calib_img_size[1])
        writer.integer('fish_eye', int(bool(camera.fisheye)))
        for lr, suffix in enumerate(EYE_SUFFIXES[:camera.num_eyes]):
            writer.matrix(f"D_T_C_{suffix}", camera.D_T_C_lr[lr])
            writer.matrix(f"K_{suffix}", camera.camera_K_lr[lr])
            writer.matrix(f"dist_{suffix}", np.asarray(camera.cv_dist_coeff_lr[lr]).reshape(-1))
            writer.matrix(f"lurd_{suffix}", np.asarray(camera.lurd_lr[lr]).reshape(-1))

        if self.rectification_valid:
            writer.integer('rect_image_width', camera.img_size[0])
            writer.integer('rect_image_height', camera.img_size[1])
            writer.matrix('Q', camera.Q)
            writer.matrix('imu_undist_D_T_I', imu.undist_D_T_I)
            for lr, suffix in enumerate(EYE_SUFFIXES):
                writer.matrix(f"undist_K_{suffix}", camera.cv_undist_K_lr[lr])
                writer.matrix(f"undist_D_T_C_{suffix}", camera.undist_D_T_C_lr[lr])
        elif camera.Q is not None:
            self.logger.warning("Derived rectification is stale and will not be written")

    # -- single block loaders -------------------------------------------------

    def load_cam_calib_from_yaml(self, filename: PathLike) -> bool:
        """
        Load only the Camera block from a native document.

        Args:
            filename: Document holding a ``Camera`` section

        Returns:
            True on success; the IMU block and device metadata are untouched
        """
        try:
            section = _require_section(read_native_document(filename), 'Camera')
            camera = self._parse_native_camera(section)
            results = self.validator.validate_camera(camera)
            if not results['is_valid']:
                raise MalformedDocumentError("; ".join(results['errors']), {'errors': results['errors']})
        except CalibrationError as e:
            return self._fail(f"Failed to load camera calibration from {filename}", e)

        self.camera = camera
        self._reset_derived()
        self.last_error = None
        self.logger.info(f"Loaded camera calibration from {filename}")
        return True

    def load_imu_calib_from_yaml(self, filename: PathLike) -> bool:
        """
        Load only the Imu block from a native document.

        Args:
            filename: Document holding an ``Imu`` section

        Returns:
            True on success; the camera block and device metadata are untouched
        """
        try:
            section = _require_section(read_native_document(filename), 'Imu')
            imu = self._parse_native_imu(section)
            results = self.validator.validate_imu(imu)
            if not results['is_valid']:
                raise MalformedDocumentError("; ".join(results['errors']), {'errors': results['errors']})
        except CalibrationError as e:
            return self._fail(f"Failed to load IMU calibration from {filename}", e)

        self.imu = imu
        self._reset_derived()
        self.last_error = None
        self.logger.info(f"Loaded IMU calibration from {filename}")
        return True
