"""Error terms for pose and point optimisation with analytic Jacobians.

Pose Jacobians are taken with respect to a left-multiplied increment
``exp(delta) * T`` whose six components are ordered rotation first, then
translation.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .camera import Camera
from .se3 import SE3, hat


def _array(values, shape: tuple[int, ...], name: str) -> np.ndarray:
    arr = np.array(values, dtype=float)
    if arr.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {arr.shape}")
    return arr


def _pose_jacobian(p_cam: np.ndarray) -> np.ndarray:
    """Jacobian of ``measurement - T p`` with respect to the pose increment."""
    return np.hstack([hat(p_cam), -np.eye(3)])


@dataclass
class EdgeProjectXYZRGBD:
    """A 3-D measurement of a point vertex seen from a pose vertex."""

    measurement: np.ndarray
    information: np.ndarray = field(default_factory=lambda: np.eye(3))

    def __post_init__(self):
        self.measurement = _array(self.measurement, (3,), "measurement")
        self.information = _array(self.information, (3, 3), "information")

    def error(self, point, pose: SE3) -> np.ndarray:
        return self.measurement - pose * _array(point, (3,), "point")

    def jacobians(self, point, pose: SE3) -> tuple[np.ndarray, np.ndarray]:
        """Jacobians of the error with respect to the point and to the pose."""
        p_cam = pose * _array(point, (3,), "point")
        return -np.array(pose.rotation), _pose_jacobian(p_cam)


@dataclass
class EdgeProjectXYZRGBDPoseOnly:
    """A 3-D measurement of a fixed world point; only the pose is optimised."""

    point: np.ndarray
    measurement: np.ndarray
    information: np.ndarray = field(default_factory=lambda: np.eye(3))

    def __post_init__(self):
        self.point = _array(self.point, (3,), "point")
        self.measurement = _array(self.measurement, (3,), "measurement")
        self.information = _array(self.information, (3, 3), "information")

    def error(self, pose: SE3) -> np.ndarray:
        return self.measurement - pose * self.point

    def jacobian(self, pose: SE3) -> np.ndarray:
        return _pose_jacobian(pose * self.point)


@dataclass
class EdgeProjectXYZ2UVPoseOnly:
    """A pixel observation of a fixed world point; only the pose is optimised."""

    point: np.ndarray
    measurement: np.ndarray
    camera: Camera
    information: np.ndarray = field(default_factory=lambda: np.eye(2))

    def __post_init__(self):
        self.point = _array(self.point, (3,), "point")
        self.measurement = _array(self.measurement, (2,), "measurement")
        self.information = _array(self.information, (2, 2), "information")

    def error(self, pose: SE3) -> np.ndarray:
        return self.measurement - self.camera.camera2pixel(pose * self.point)

    def jacobian(self, pose: SE3) -> np.ndarray:
        x, y, z = pose * self.point
        z2 = z * z
        fx, fy = self.camera.fx, self.camera.fy
        return np.array(
            [
                [x * y / z2 * fx, -(1.0 + x * x / z2) * fx, y / z * fx, -1.0 / z * fx, 0.0, x / z2 * fx],
                [(1.0 + y * y / z2) * fy, -x * y / z2 * fy, -x / z * fy, 0.0, -1.0 / z * fy, y / z2 * fy],
            ]
        )