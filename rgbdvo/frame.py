"""Camera frames: an RGB-D image pair with its pose."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import ClassVar

import numpy as np

from .camera import Camera
from .se3 import SE3

# Offsets tried, in order, when the depth at a keypoint is missing.
_NEIGHBOURS = ((-1, 0), (0, -1), (1, 0), (0, 1))


@dataclass(eq=False)
class Frame:
    """One RGB-D frame; ``T_c_w`` maps world coordinates into this camera."""

    id: int = -1
    time_stamp: float = -1.0
    T_c_w: SE3 = field(default_factory=SE3)
    camera: Camera | None = None
    color: np.ndarray | None = None
    depth: np.ndarray | None = None
    is_key_frame: bool = False

    _ids: ClassVar[itertools.count] = itertools.count()

    @classmethod
    def create(cls, camera=None, color=None, depth=None, time_stamp=0.0) -> Frame:
        """Make a frame with the next id from the shared frame counter."""
        return cls(
            id=next(cls._ids),
            time_stamp=float(time_stamp),
            camera=camera,
            color=color,
            depth=depth,
        )

    def _require_camera(self) -> Camera:
        if self.camera is None:
            raise ValueError(f"frame {self.id} has no camera")
        return self.camera

    def _raw_depth(self, x: int, y: int) -> int:
        rows, cols = self.depth.shape[:2]
        if not (0 <= x < cols and 0 <= y < rows):
            return 0
        return int(self.depth[y, x])

    def find_depth(self, point) -> float:
        """Depth in metres at a keypoint, or -1.0 when neither it nor a neighbour has one.

        ``point`` is an ``(x, y)`` pixel position or any object with a ``pt``
        attribute holding one. Pixels outside the depth image count as missing.
        """
        camera = self._require_camera()
        if self.depth is None:
            raise ValueError(f"frame {self.id} has no depth image")
        px, py = getattr(point, "pt", point)
        x, y = int(round(float(px))), int(round(float(py)))
        for dx, dy in ((0, 0), *_NEIGHBOURS):
            d = self._raw_depth(x + dx, y + dy)
            if d != 0:
                return d / camera.depth_scale
        return -1.0

    def set_pose(self, T_c_w: SE3) -> None:
        self.T_c_w = T_c_w

    def camera_center(self) -> np.ndarray:
        """Position of the camera's optical centre in world coordinates."""
        return np.array(self.T_c_w.inverse().translation)

    def is_in_frame(self, pt_world) -> bool:
        """True if a world point lies in front of the camera and inside the image."""
        camera = self._require_camera()
        p_cam = camera.world2camera(pt_world, self.T_c_w)
        if p_cam[2] < 0:
            return False
        u, v = camera.world2pixel(pt_world, self.T_c_w)
        if self.color is None:
            rows = cols = 0
        else:
            rows, cols = self.color.shape[:2]
        return bool(u > 0 and v > 0 and u < cols and v < rows)