import numpy as np
import pytest

from rgbdvo.camera import Camera
from rgbdvo.pnp import solve_pnp, solve_pnp_ransac
from rgbdvo.se3 import SE3


@pytest.fixture
def camera():
    return Camera(fx=517.3, fy=516.5, cx=325.1, cy=249.7)


@pytest.fixture
def true_pose():
    return SE3.from_rotation_vector([0.05, -0.1, 0.02], [0.1, -0.2, 0.3])


@pytest.fixture
def points():
    rng = np.random.default_rng(1)
    xy = rng.uniform(-1.0, 1.0, size=(40, 2))
    z = rng.uniform(4.0, 8.0, size=(40, 1))
    return np.hstack([xy, z])


def test_solve_pnp_recovers_pose(camera, true_pose, points):
    pixels = camera.world2pixel(points, true_pose)
    pose = solve_pnp(points, pixels, camera)
    np.testing.assert_allclose(pose.matrix(), true_pose.matrix(), atol=1e-6)


def test_solve_pnp_result_reprojects_onto_measurements(camera, true_pose, points):
    rng = np.random.default_rng(5)
    pixels = camera.world2pixel(points, true_pose) + rng.normal(0.0, 0.5, size=(len(points), 2))
    pose = solve_pnp(points, pixels, camera)
    residual = np.linalg.norm(camera.world2pixel(points, pose) - pixels, axis=1)
    assert residual.mean() < 1.5


def test_too_few_points_raise(camera, true_pose, points):
    pixels = camera.world2pixel(points[:5], true_pose)
    with pytest.raises(ValueError):
        solve_pnp(points[:5], pixels, camera)
    with pytest.raises(ValueError):
        solve_pnp_ransac(points[:5], pixels, camera)


def test_mismatched_lengths_raise(camera, true_pose, points):
    pixels = camera.world2pixel(points, true_pose)
    with pytest.raises(ValueError):
        solve_pnp(points, pixels[:-1], camera)


def test_ransac_rejects_outliers(camera, true_pose, points):
    pixels = camera.world2pixel(points, true_pose)
    outliers = np.arange(0, 40, 5)
    pixels[outliers] += np.array([60.0, -45.0])
    pose, inliers = solve_pnp_ransac(points, pixels, camera, 100, 4.0, 0.99)
    expected = np.setdiff1d(np.arange(40), outliers)
    np.testing.assert_array_equal(np.sort(inliers), expected)
    np.testing.assert_allclose(pose.matrix(), true_pose.matrix(), atol=1e-6)


def test_ransac_all_inliers_on_clean_data(camera, true_pose, points):
    pixels = camera.world2pixel(points, true_pose)
    _, inliers = solve_pnp_ransac(points, pixels, camera, 100, 4.0, 0.99)
    np.testing.assert_array_equal(np.sort(inliers), np.arange(len(points)))


def test_ransac_invalid_confidence_raises(camera, true_pose, points):
    pixels = camera.world2pixel(points, true_pose)
    with pytest.raises(ValueError):
        solve_pnp_ransac(points, pixels, camera, 100, 4.0, 1.0)
    with pytest.raises(ValueError):
        solve_pnp_ransac(points, pixels, camera, 0, 4.0, 0.99)