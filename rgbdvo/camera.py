"""Pinhole RGB-D camera model and coordinate conversions."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .se3 import SE3


@dataclass(frozen=True)
class Camera:
    """Pinhole intrinsics plus the scale that turns raw depth into metres."""

    fx: float
    fy: float
    cx: float
    cy: float
    depth_scale: float = 0.0

    @classmethod
    def from_config(cls, config) -> Camera:
        return cls(
            fx=float(config["camera.fx"]),
            fy=float(config["camera.fy"]),
            cx=float(config["camera.cx"]),
            cy=float(config["camera.cy"]),
            depth_scale=float(config["camera.depth_scale"]),
        )

    @property
    def intrinsics(self) -> np.ndarray:
        """The 3x3 intrinsic matrix K."""
        return np.array([[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]])

    def world2camera(self, p_w, T_c_w: SE3) -> np.ndarray:
        return T_c_w * p_w

    def camera2world(self, p_c, T_c_w: SE3) -> np.ndarray:
        return T_c_w.inverse() * p_c

    def camera2pixel(self, p_c) -> np.ndarray:
        """Project camera-frame points; a zero depth yields infinite coordinates."""
        p = np.asarray(p_c, dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            u = self.fx * p[..., 0] / p[..., 2] + self.cx
            v = self.fy * p[..., 1] / p[..., 2] + self.cy
        return np.stack([u, v], axis=-1)

    def pixel2camera(self, p_p, depth=1.0) -> np.ndarray:
        p = np.asarray(p_p, dtype=float)
        d = np.asarray(depth, dtype=float)
        x = (p[..., 0] - self.cx) * d / self.fx
        y = (p[..., 1] - self.cy) * d / self.fy
        return np.stack([x, y, np.broadcast_to(d, x.shape)], axis=-1)

    def world2pixel(self, p_w, T_c_w: SE3) -> np.ndarray:
        return self.camera2pixel(self.world2camera(p_w, T_c_w))

    def pixel2world(self, p_p, T_c_w: SE3, depth=1.0) -> np.ndarray:
        return self.camera2world(self.pixel2camera(p_p, depth), T_c_w)