"""Rigid-body transforms: SO(3) and SE(3) exponential and logarithm maps."""

from __future__ import annotations

import math

import numpy as np

_SMALL_ANGLE = 1e-8


def _vec(values, size: int, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have shape ({size},), got {arr.shape}")
    return arr


def _rotation(values) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.shape != (3, 3):
        raise ValueError(f"rotation must have shape (3, 3), got {arr.shape}")
    return arr


def hat(v) -> np.ndarray:
    """Return the skew-symmetric matrix K with K @ u == cross(v, u)."""
    x, y, z = _vec(v, 3, "vector")
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def so3_exp(omega) -> np.ndarray:
    """Rotation matrix for a rotation vector (Rodrigues' formula)."""
    omega = _vec(omega, 3, "rotation vector")
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + k + 0.5 * (k @ k)
    a = math.sin(theta) / theta
    b = (1.0 - math.cos(theta)) / (theta * theta)
    return np.eye(3) + a * k + b * (k @ k)


def _quaternion(r: np.ndarray) -> np.ndarray:
    """Unit quaternion (w, x, y, z) with w >= 0 for a rotation matrix."""
    diagonal_sum = float(r[0, 0] + r[1, 1] + r[2, 2])
    if diagonal_sum > 0.0:
        s = 2.0 * math.sqrt(diagonal_sum + 1.0)
        q = [0.25 * s, (r[2, 1] - r[1, 2]) / s, (r[0, 2] - r[2, 0]) / s, (r[1, 0] - r[0, 1]) / s]
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = 2.0 * math.sqrt(max(1.0 + r[0, 0] - r[1, 1] - r[2, 2], 0.0))
        q = [(r[2, 1] - r[1, 2]) / s, 0.25 * s, (r[0, 1] + r[1, 0]) / s, (r[0, 2] + r[2, 0]) / s]
    elif r[1, 1] > r[2, 2]:
        s = 2.0 * math.sqrt(max(1.0 + r[1, 1] - r[0, 0] - r[2, 2], 0.0))
        q = [(r[0, 2] - r[2, 0]) / s, (r[0, 1] + r[1, 0]) / s, 0.25 * s, (r[1, 2] + r[2, 1]) / s]
    else:
        s = 2.0 * math.sqrt(max(1.0 + r[2, 2] - r[0, 0] - r[1, 1], 0.0))
        q = [(r[1, 0] - r[0, 1]) / s, (r[0, 2] + r[2, 0]) / s, (r[1, 2] + r[2, 1]) / s, 0.25 * s]
    quat = np.asarray(q, dtype=float)
    quat /= np.linalg.norm(quat)
    return -quat if quat[0] < 0.0 else quat


def so3_log(rotation) -> np.ndarray:
    """Rotation vector (angle in [0, pi]) of a rotation matrix."""
    quat = _quaternion(_rotation(rotation))
    w, vec = quat[0], quat[1:]
    n = float(np.linalg.norm(vec))
    if n < _SMALL_ANGLE:
        return 2.0 * vec / w
    angle = 2.0 * math.atan2(n, w)
    return angle / n * vec


def _left_jacobian(omega: np.ndarray) -> np.ndarray:
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + 0.5 * k + (k @ k) / 6.0
    b = (1.0 - math.cos(theta)) / (theta * theta)
    c = (theta - math.sin(theta)) / (theta ** 3)
    return np.eye(3) + b * k + c * (k @ k)


class SE3:
    """A rigid transform p -> R p + t."""

    __slots__ = ("rotation", "translation")

    def __init__(self, rotation=None, translation=None):
        r = np.eye(3) if rotation is None else _rotation(rotation).copy()
        t = np.zeros(3) if translation is None else _vec(translation, 3, "translation").copy()
        r.flags.writeable = False
        t.flags.writeable = False
        self.rotation = r
        self.translation = t

    @classmethod
    def identity(cls) -> SE3:
        return cls()

    @classmethod
    def exp(cls, xi) -> SE3:
        """Transform for a twist ordered as (translation part, rotation part)."""
        xi = _vec(xi, 6, "twist")
        upsilon, omega = xi[:3], xi[3:]
        return cls(so3_exp(omega), _left_jacobian(omega) @ upsilon)

    @classmethod
    def from_rotation_vector(cls, rotvec, translation) -> SE3:
        return cls(so3_exp(rotvec), translation)

    def log(self) -> np.ndarray:
        """Twist (translation part, rotation part) with exp(log(T)) == T."""
        omega = so3_log(self.rotation)
        upsilon = np.linalg.solve(_left_jacobian(omega), self.translation)
        return np.concatenate([upsilon, omega])

    def inverse(self) -> SE3:
        r_t = self.rotation.T
        return SE3(r_t, -(r_t @ self.translation))

    def matrix(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    def __mul__(self, other):
        if isinstance(other, SE3):
            return SE3(self.rotation @ other.rotation, self.rotation @ other.translation + self.translation)
        points = np.asarray(other, dtype=float)
        if points.shape == (3,):
            return self.rotation @ points + self.translation
        if points.ndim == 2 and points.shape[1] == 3:
            return points @ self.rotation.T + self.translation
        raise ValueError(f"cannot transform an array of shape {points.shape}")

    def __repr__(self) -> str:
        return f"SE3(rotation={self.rotation.tolist()}, translation={self.translation.tolist()})"