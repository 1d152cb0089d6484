"""Camera pose from 3-D to 2-D correspondences, with RANSAC outlier rejection."""

from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np

from .camera import Camera
from .edges import EdgeProjectXYZ2UVPoseOnly
from .optimizer import optimize_pose
from .se3 import SE3

MIN_POINTS = 6
_REFINE_ITERATIONS = 20
_SEED = 0


class PnPResult(NamedTuple):
    pose: SE3
    inliers: np.ndarray


def _prepare(points3d, points2d) -> tuple[np.ndarray, np.ndarray]:
    p3 = np.asarray(points3d, dtype=float).reshape(-1, 3) if np.size(points3d) else np.empty((0, 3))
    p2 = np.asarray(points2d, dtype=float).reshape(-1, 2) if np.size(points2d) else np.empty((0, 2))
    if len(p3) != len(p2):
        raise ValueError(f"got {len(p3)} 3-D points but {len(p2)} 2-D points")
    if len(p3) < MIN_POINTS:
        raise ValueError(f"at least {MIN_POINTS} correspondences are needed, got {len(p3)}")
    return p3, p2


def _dlt(p3: np.ndarray, p2: np.ndarray, camera: Camera) -> SE3:
    """Linear pose estimate from normalised image rays."""
    rays = (p2 - [camera.cx, camera.cy]) / [camera.fx, camera.fy]
    centroid = p3.mean(axis=0)
    spread = float(np.linalg.norm(p3 - centroid, axis=1).mean())
    if spread == 0.0:
        raise ValueError("all 3-D points coincide")
    s = math.sqrt(3.0) / spread
    xh = np.hstack([(p3 - centroid) * s, np.ones((len(p3), 1))])
    a = np.zeros((2 * len(p3), 12))
    a[0::2, 0:4] = xh
    a[0::2, 8:12] = -rays[:, 0:1] * xh
    a[1::2, 4:8] = xh
    a[1::2, 8:12] = -rays[:, 1:2] * xh
    _, _, vt = np.linalg.svd(a)
    pn = vt[-1].reshape(3, 4)
    p = np.empty((3, 4))
    p[:, :3] = s * pn[:, :3]
    p[:, 3] = pn[:, 3] - s * pn[:, :3] @ centroid
    if np.linalg.det(p[:, :3]) < 0.0:
        p = -p
    u, sv, vt = np.linalg.svd(p[:, :3])
    scale = float(sv.mean())
    if not scale > 0.0:
        raise ValueError("degenerate correspondences")
    return SE3(u @ vt, p[:, 3] / scale)


def _reprojection_errors(pose: SE3, p3: np.ndarray, p2: np.ndarray, camera: Camera) -> np.ndarray:
    p_cam = pose * p3
    errors = np.linalg.norm(camera.camera2pixel(p_cam) - p2, axis=1)
    errors[(p_cam[:, 2] <= 0.0) | ~np.isfinite(errors)] = np.inf
    return errors


def solve_pnp(points3d, points2d, camera: Camera) -> SE3:
    """Pose mapping world points into the camera, refined by reprojection error."""
    p3, p2 = _prepare(points3d, points2d)
    pose = _dlt(p3, p2, camera)
    edges = [EdgeProjectXYZ2UVPoseOnly(point=x, measurement=u, camera=camera) for x, u in zip(p3, p2)]
    return optimize_pose(pose, edges, _REFINE_ITERATIONS)


def _iterations_needed(inlier_ratio: float, confidence: float, limit: int) -> int:
    p_good = inlier_ratio**MIN_POINTS
    if p_good >= 1.0:
        return 1
    if p_good <= 0.0:
        return limit
    needed = math.log(1.0 - confidence) / math.log(1.0 - p_good)
    return min(limit, max(1, math.ceil(needed)))


def solve_pnp_ransac(
    points3d,
    points2d,
    camera: Camera,
    iterations: int = 100,
    reprojection_error: float = 4.0,
    confidence: float = 0.99,
) -> PnPResult:
    """Robust pose estimate; returns the pose and the indices of the inliers.

    When no hypothesis gathers enough inliers, the identity pose and an empty
    inlier array are returned.
    """
    if iterations < 1:
        raise ValueError("iterations must be at least 1")
    if not 0.0 < confidence < 1.0:
        raise ValueError("confidence must lie strictly between 0 and 1")
    p3, p2 = _prepare(points3d, points2d)
    n = len(p3)
    rng = np.random.default_rng(_SEED)
    best_inliers = np.empty(0, dtype=int)
    best_pose = SE3()
    limit = iterations
    done = 0
    while done < limit:
        done += 1
        sample = rng.choice(n, MIN_POINTS, replace=False)
        try:
            pose = _dlt(p3[sample], p2[sample], camera)
        except (np.linalg.LinAlgError, ValueError):
            continue
        inliers = np.flatnonzero(_reprojection_errors(pose, p3, p2, camera) <= reprojection_error)
        if len(inliers) > len(best_inliers):
            best_inliers, best_pose = inliers, pose
            limit = _iterations_needed(len(inliers) / n, confidence, iterations)
    if len(best_inliers) < MIN_POINTS:
        return PnPResult(SE3(), np.empty(0, dtype=int))
    refined = solve_pnp(p3[best_inliers], p2[best_inliers], camera)
    refined_inliers = np.flatnonzero(_reprojection_errors(refined, p3, p2, camera) <= reprojection_error)
    if len(refined_inliers) >= len(best_inliers):
        return PnPResult(refined, refined_inliers)
    return PnPResult(best_pose, best_inliers)