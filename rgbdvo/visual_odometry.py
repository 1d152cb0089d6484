"""Frame-to-map RGB-D visual odometry."""

from __future__ import annotations

import enum
import logging
import math
import time
from contextlib import contextmanager

import numpy as np

from .edges import EdgeProjectXYZ2UVPoseOnly
from .features import OrbExtractor, match_descriptors, select_good_matches
from .frame import Frame
from .mappoint import MapPoint
from .optimizer import optimize_pose
from .pnp import MIN_POINTS, solve_pnp_ransac
from .se3 import SE3
from .slam_map import Map

_log = logging.getLogger(__name__)

_MAX_MOTION = 5.0
_MAX_VIEW_ANGLE = math.pi / 6.0
_FEW_MATCHES = 100
_MAX_MAP_POINTS = 1000
_ERASE_RATIO_STEP = 0.05
_DEFAULT_ERASE_RATIO = 0.1
_PNP_ITERATIONS = 100
_PNP_REPROJECTION_ERROR = 4.0
_PNP_CONFIDENCE = 0.99
_BA_ITERATIONS = 10


class VOState(enum.IntEnum):
    INITIALIZING = -1
    OK = 0
    LOST = 1


@contextmanager
def _timed(what: str):
    start = time.perf_counter()
    yield
    _log.debug("%s cost time: %.6f", what, time.perf_counter() - start)


def _normalized(v: np.ndarray) -> np.ndarray:
    n = float(np.linalg.norm(v))
    return v / n if n > 0.0 else v


def view_angle(frame: Frame, point: MapPoint) -> float:
    """Angle between a point's viewing normal and the ray from the frame's camera."""
    n = _normalized(point.pos - frame.camera_center())
    return math.acos(float(np.clip(n @ point.norm, -1.0, 1.0)))


class VisualOdometry:
    """Tracks frames against a local map of landmarks and grows that map."""

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
        map_point_erase_ratio: float = _DEFAULT_ERASE_RATIO,
    ):
        self.num_of_features = int(num_of_features)
        self.scale_factor = float(scale_factor)
        self.level_pyramid = int(level_pyramid)
        self.match_ratio = float(match_ratio)
        self.max_num_lost = int(max_num_lost)
        self.min_inliers = int(min_inliers)
        self.key_frame_min_rot = float(key_frame_min_rot)
        self.key_frame_min_trans = float(key_frame_min_trans)
        self.map_point_erase_ratio = float(map_point_erase_ratio)

        self.state = VOState.INITIALIZING
        self.map = Map()
        self.ref: Frame | None = None
        self.curr: Frame | None = None
        self.orb = OrbExtractor(self.num_of_features, self.scale_factor, self.level_pyramid)
        self.keypoints_curr: list = []
        self.descriptors_curr = np.empty((0, 32), dtype=np.uint8)
        self.match_3dpts: list[MapPoint] = []
        self.match_2dkp_index: list[int] = []
        self.T_c_w_estimated = SE3()
        self.num_inliers = 0
        self.num_lost = 0

    @classmethod
    def from_config(cls, config) -> VisualOdometry:
        return cls(
            num_of_features=int(config["number_of_features"]),
            scale_factor=float(config["scale_factor"]),
            level_pyramid=int(config["level_pyramid"]),
            match_ratio=float(config["match_ratio"]),
            max_num_lost=int(float(config["max_num_lost"])),
            min_inliers=int(config["min_inliers"]),
            key_frame_min_rot=float(config["keyframe_rotation"]),
            key_frame_min_trans=float(config["keyframe_translation"]),
            map_point_erase_ratio=float(config["map_point_erase_ratio"]),
        )

    def add_frame(self, frame: Frame) -> bool:
        """Track a new frame; False when its pose estimate was rejected."""
        if self.state is VOState.INITIALIZING:
            self.state = VOState.OK
            self.curr = self.ref = frame
            self._extract_features()
            self._add_key_frame()
        elif self.state is VOState.OK:
            self.curr = frame
            self.curr.T_c_w = self.ref.T_c_w
            self._extract_features()
            self._feature_matching()
            self._pose_estimation_pnp()
            if not self._check_estimated_pose():
                self.num_lost += 1
                if self.num_lost > self.max_num_lost:
                    self.state = VOState.LOST
                return False
            self.curr.T_c_w = self.T_c_w_estimated
            self._optimize_map()
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
            candidates = []
            for point in self.map.map_points.values():
                if self.curr.is_in_frame(point.pos):
                    point.visible_times += 1
                    candidates.append(point)
            descriptors = [p.descriptor for p in candidates if p.descriptor is not None]
            if len(descriptors) == len(candidates) and descriptors:
                matches = match_descriptors(np.vstack(descriptors), self.descriptors_curr)
            else:
                matches = []
            good = select_good_matches(matches, self.match_ratio)
            self.match_3dpts = [candidates[m.query_idx] for m in good]
            self.match_2dkp_index = [m.train_idx for m in good]
        _log.debug("good matches: %d", len(self.match_3dpts))

    def _pose_estimation_pnp(self) -> None:
        pts2d = np.array([self.keypoints_curr[i].pt for i in self.match_2dkp_index], dtype=float).reshape(-1, 2)
        pts3d = np.array([p.position_f32 for p in self.match_3dpts], dtype=float).reshape(-1, 3)
        self.num_inliers = 0
        self.T_c_w_estimated = self.curr.T_c_w
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
        edges = []
        for index in result.inliers:
            edges.append(
                EdgeProjectXYZ2UVPoseOnly(point=pts3d[index], measurement=pts2d[index], camera=self.curr.camera)
            )
            self.match_3dpts[index].matched_times += 1
        self.T_c_w_estimated = optimize_pose(result.pose, edges, _BA_ITERATIONS)
        _log.debug("T_c_w_estimated:\n%s", self.T_c_w_estimated.matrix())

    def _motion_from_reference(self) -> np.ndarray:
        return (self.ref.T_c_w * self.T_c_w_estimated.inverse()).log()

    def _check_estimated_pose(self) -> bool:
        if self.num_inliers < self.min_inliers:
            _log.info("reject because inlier is too small: %d", self.num_inliers)
            return False
        motion = float(np.linalg.norm(self._motion_from_reference()))
        if motion > _MAX_MOTION:
            _log.info("reject because motion is too large: %f", motion)
            return False
        return True

    def _check_key_frame(self) -> bool:
        d = self._motion_from_reference()
        trans, rot = d[:3], d[3:]
        return bool(np.linalg.norm(rot) > self.key_frame_min_rot or np.linalg.norm(trans) > self.key_frame_min_trans)

    def _create_map_points(self, skip: set[int]) -> None:
        camera = self.ref.camera
        center = self.ref.camera_center()
        for i, kp in enumerate(self.keypoints_curr):
            if i in skip:
                continue
            d = self.curr.find_depth(kp)
            if d < 0:
                continue
            p_world = camera.pixel2world(np.array(kp.pt, dtype=float), self.curr.T_c_w, d)
            normal = _normalized(p_world - center)
            self.map.insert_map_point(
                MapPoint.create(p_world, normal, self.descriptors_curr[i].copy(), self.curr)
            )

    def _add_key_frame(self) -> None:
        if not self.map.keyframes:
            self._create_map_points(set())
        self.map.insert_keyframe(self.curr)
        self.ref = self.curr

    def _add_map_points(self) -> None:
        self._create_map_points(set(self.match_2dkp_index))

    def _optimize_map(self) -> None:
        for key, point in list(self.map.map_points.items()):
            if not self.curr.is_in_frame(point.pos):
                del self.map.map_points[key]
                continue
            if point.matched_times / point.visible_times < self.map_point_erase_ratio:
                del self.map.map_points[key]
                continue
            if view_angle(self.curr, point) > _MAX_VIEW_ANGLE:
                del self.map.map_points[key]
                continue
        if len(self.match_2dkp_index) < _FEW_MATCHES:
            self._add_map_points()
        if len(self.map.map_points) > _MAX_MAP_POINTS:
            self.map_point_erase_ratio += _ERASE_RATIO_STEP
        else:
            self.map_point_erase_ratio = _DEFAULT_ERASE_RATIO
        _log.debug("map points: %d", len(self.map.map_points))