"""Frame-to-frame RGB-D visual odometry against the previous reference frame."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

import numpy as np

from .edges import EdgeProjectXYZ2UVPoseOnly
from .features import DESCRIPTOR_BYTES, OrbExtractor, match_descriptors, select_good_matches
from .frame import Frame
from .optimizer import optimize_pose
from .pnp import MIN_POINTS, solve_pnp_ransac
from .se3 import SE3
from .slam_map import Map
from .visual_odometry import VOState

_log = logging.getLogger(__name__)

_MAX_MOTION = 5.0
_PNP_ITERATIONS = 100
_PNP_REPROJECTION_ERROR = 4.0
_PNP_CONFIDENCE = 0.99
_BA_ITERATIONS = 10


@contextmanager
def _timed(what: str):
    start = time.perf_counter()
    yield
    _log.debug("%s cost time: %.6f", what, time.perf_counter() - start)


def _empty_descriptors() -> np.ndarray:
    return np.empty((0, DESCRIPTOR_BYTES), dtype=np.uint8)


class FrameToFrameOdometry:
    """Estimates each frame's motion relative to the last accepted frame."""

    def __init__(
        self,
        num_of_features: int = 500,
        scale_factor: float = 1.2,
        level_pyramid: int = 8,
        match_ratio: float = 2.0,
        max_num_lost: int = 10,
        min_inliers: int = 10,
        key_frame_min_rot: float = 0.1,
        key_frame_min_trans: float = 0.1,
    ):
        self.num_of_features = int(num_of_features)
        self.scale_factor = float(scale_factor)
        self.level_pyramid = int(level_pyramid)
        self.match_ratio = float(match_ratio)
        self.max_num_lost = int(max_num_lost)
        self.min_inliers = int(min_inliers)
        self.key_frame_min_rot = float(key_frame_min_rot)
        self.key_frame_min_trans = float(key_frame_min_trans)

        self.state = VOState.INITIALIZING
        self.map = Map()
        self.ref: Frame | None = None
        self.curr: Frame | None = None
        self.orb = OrbExtractor(self.num_of_features, self.scale_factor, self.level_pyramid)
        self.pts_3d_ref = np.empty((0, 3), dtype=np.float32)
        self.keypoints_curr: list = []
        self.descriptors_curr = _empty_descriptors()
        self.descriptors_ref = _empty_descriptors()
        self.feature_matches: list = []
        self.T_c_r_estimated = SE3()
        self.num_inliers = 0
        self.num_lost = 0

    @classmethod
    def from_config(cls, config) -> FrameToFrameOdometry:
        return cls(
            num_of_features=int(config["number_of_features"]),
            scale_factor=float(config["scale_factor"]),
            level_pyramid=int(config["level_pyramid"]),
            match_ratio=float(config["match_ratio"]),
            max_num_lost=int(float(config["max_num_lost"])),
            min_inliers=int(config["min_inliers"]),
            key_frame_min_rot=float(config["keyframe_rotation"]),
            key_frame_min_trans=float(config["keyframe_translation"]),
        )

    def add_frame(self, frame: Frame) -> bool:
        """Track a new frame; False when its pose estimate was rejected."""
        if self.state is VOState.INITIALIZING:
            self.state = VOState.OK
            self.curr = self.ref = frame
            self.map.insert_keyframe(frame)
            self._extract_features()
            self._set_ref_3d_points()
        elif self.state is VOState.OK:
            self.curr = frame
            self._extract_features()
            self._feature_matching()
            self._pose_estimation_pnp()
            if not self._check_estimated_pose():
                self.num_lost += 1
                if self.num_lost > self.max_num_lost:
                    self.state = VOState.LOST
                return False
            self.curr.T_c_w = self.T_c_r_estimated * self.ref.T_c_w
            self.ref = self.curr
            self._set_ref_3d_points()
            self.num_lost = 0
            if self._check_key_frame():
                self._add_key_frame()
        else:
            _log.info("vo has lost.")
        return True

    def _extract_features(self) -> None:
        with _timed("extract keypoints"):
            keypoints = self.orb.detect(self.curr.color)
        with _timed("descriptor computation"):
            self.keypoints_curr, self.descriptors_curr = self.orb.compute(self.curr.color, keypoints)

    def _feature_matching(self) -> None:
        with _timed("match"):
            matches = match_descriptors(self.descriptors_ref, self.descriptors_curr)
            self.feature_matches = select_good_matches(matches, self.match_ratio)
        _log.debug("good matches: %d", len(self.feature_matches))

    def _set_ref_3d_points(self) -> None:
        """Keep the current keypoints that have a depth, as 3-D points in the reference camera."""
        camera = self.ref.camera
        points, rows = [], []
        for kp, descriptor in zip(self.keypoints_curr, self.descriptors_curr):
            d = self.ref.find_depth(kp)
            if d > 0:
                points.append(camera.pixel2camera(np.array(kp.pt, dtype=float), d))
                rows.append(descriptor)
        self.pts_3d_ref = np.array(points, dtype=np.float32).reshape(-1, 3)
        self.descriptors_ref = np.array(rows, dtype=np.uint8).reshape(-1, DESCRIPTOR_BYTES)

    def _pose_estimation_pnp(self) -> None:
        pts3d = np.array([self.pts_3d_ref[m.query_idx] for m in self.feature_matches], dtype=float).reshape(-1, 3)
        pts2d = np.array([self.keypoints_curr[m.train_idx].pt for m in self.feature_matches], dtype=float).reshape(
            -1, 2
        )
        self.num_inliers = 0
        self.T_c_r_estimated = SE3()
        if len(pts3d) < MIN_POINTS:
            return
        try:
            result = solve_pnp_ransac(
                pts3d, pts2d, self.ref.camera, _PNP_ITERATIONS, _PNP_REPROJECTION_ERROR, _PNP_CONFIDENCE
            )
        except ValueError:
            return
        self.num_inliers = len(result.inliers)
        _log.debug("pnp inliers: %d", self.num_inliers)
        edges = [
            EdgeProjectXYZ2UVPoseOnly(point=pts3d[i], measurement=pts2d[i], camera=self.curr.camera)
            for i in result.inliers
        ]
        self.T_c_r_estimated = optimize_pose(result.pose, edges, _BA_ITERATIONS)

    def _check_estimated_pose(self) -> bool:
        if self.num_inliers < self.min_inliers:
            _log.info("reject because inlier is too small: %d", self.num_inliers)
            return False
        motion = float(np.linalg.norm(self.T_c_r_estimated.log()))
        if motion > _MAX_MOTION:
            _log.info("reject because motion is too large: %f", motion)
            return False
        return True

    def _check_key_frame(self) -> bool:
        d = self.T_c_r_estimated.log()
        trans, rot = d[:3], d[3:]
        return bool(np.linalg.norm(rot) > self.key_frame_min_rot or np.linalg.norm(trans) > self.key_frame_min_trans)

    def _add_key_frame(self) -> None:
        _log.info("adding a key-frame")
        self.map.insert_keyframe(self.curr)