"""
Rigid Transform Helpers

Small numpy helpers for 4x4 homogeneous transforms.
"""

import numpy as np


def is_rotation(R: np.ndarray, tol: float = 1e-3) -> bool:
    """Check that R is a proper 3x3 rotation within tolerance."""
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3) or not np.all(np.isfinite(R)):
        return False
    if np.max(np.abs(R.T @ R - np.eye(3))) > tol:
        return False
    return abs(np.linalg.det(R) - 1.0) <= tol


def is_rigid(T: np.ndarray, tol: float = 1e-3) -> bool:
    """Check that T is a 4x4 homogeneous rigid transform."""
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (4, 4) or not np.all(np.isfinite(T)):
        return False
    if np.max(np.abs(T[3] - np.array([0.0, 0.0, 0.0, 1.0]))) > tol:
        return False
    return is_rotation(T[:3, :3], tol)


def make_transform(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Assemble a 4x4 transform from rotation and translation."""
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
    return T


def inverse_rigid(T: np.ndarray) -> np.ndarray:
    """Invert a rigid transform without a general matrix inverse."""
    R = T[:3, :3]
    t = T[:3, 3]
    return make_transform(R.T, -R.T @ t)


def relative_transform(A_T_B: np.ndarray, A_T_C: np.ndarray) -> np.ndarray:
    """Return C_T_B, the transform taking frame B coordinates into frame C."""
    return inverse_rigid(A_T_C) @ A_T_B


def rotation_angle_degrees(R: np.ndarray) -> float:
    """Angle of the rotation R in degrees."""
    cos_angle = np.clip((np.trace(R) - 1.0) / 2.0, -1.0, 1.0)
    return float(np.degrees(np.arccos(cos_angle)))
