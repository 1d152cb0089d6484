import numpy as np
import pytest

from rgbdvo.camera import Camera
from rgbdvo.edges import (
    EdgeProjectXYZ2UVPoseOnly,
    EdgeProjectXYZRGBD,
    EdgeProjectXYZRGBDPoseOnly,
)
from rgbdvo.se3 import SE3


@pytest.fixture
def camera():
    return Camera(fx=500.0, fy=480.0, cx=320.0, cy=240.0, depth_scale=1000.0)


@pytest.fixture
def pose():
    return SE3.from_rotation_vector([0.1, -0.2, 0.05], [0.3, -0.1, 0.5])


def _perturb(pose, delta):
    d = np.asarray(delta, dtype=float)
    return SE3.exp(np.concatenate([d[3:], d[:3]])) * pose


def _numeric_pose_jacobian(error_of_pose, pose, h=1e-6):
    cols = []
    for k in range(6):
        step = np.zeros(6)
        step[k] = h
        cols.append((error_of_pose(_perturb(pose, step)) - error_of_pose(_perturb(pose, -step))) / (2 * h))
    return np.stack(cols, axis=1)


def test_rgbd_error_vanishes_at_exact_measurement(pose):
    point = np.array([0.5, -0.3, 3.0])
    edge = EdgeProjectXYZRGBD(measurement=pose * point)
    np.testing.assert_allclose(edge.error(point, pose), np.zeros(3), atol=1e-12)


def test_rgbd_error_is_measurement_minus_mapped_point(pose):
    point = np.array([0.5, -0.3, 3.0])
    measurement = np.array([1.0, 2.0, 3.0])
    edge = EdgeProjectXYZRGBD(measurement=measurement)
    np.testing.assert_allclose(edge.error(point, pose) + pose * point, measurement)


def test_rgbd_point_jacobian_is_negative_rotation(pose):
    edge = EdgeProjectXYZRGBD(measurement=[0.0, 0.0, 1.0])
    j_point, _ = edge.jacobians([1.0, 2.0, 3.0], pose)
    np.testing.assert_allclose(j_point, -pose.rotation)


def test_rgbd_jacobians_match_numeric(pose):
    point = np.array([0.4, 0.2, 2.5])
    edge = EdgeProjectXYZRGBD(measurement=[0.1, 0.2, 2.0])
    j_point, j_pose = edge.jacobians(point, pose)
    numeric_pose = _numeric_pose_jacobian(lambda p: edge.error(point, p), pose)
    np.testing.assert_allclose(j_pose, numeric_pose, atol=1e-6)
    h = 1e-6
    numeric_point = np.stack(
        [
            (edge.error(point + h * e, pose) - edge.error(point - h * e, pose)) / (2 * h)
            for e in np.eye(3)
        ],
        axis=1,
    )
    np.testing.assert_allclose(j_point, numeric_point, atol=1e-6)


def test_pose_only_rgbd_jacobian_layout_at_identity():
    edge = EdgeProjectXYZRGBDPoseOnly(point=[1.0, 2.0, 4.0], measurement=[0.0, 0.0, 0.0])
    expected = np.array(
        [
            [0.0, -4.0, 2.0, -1.0, 0.0, 0.0],
            [4.0, 0.0, -1.0, 0.0, -1.0, 0.0],
            [-2.0, 1.0, 0.0, 0.0, 0.0, -1.0],
        ]
    )
    np.testing.assert_allclose(edge.jacobian(SE3.identity()), expected)


def test_pose_only_rgbd_jacobian_matches_numeric(pose):
    edge = EdgeProjectXYZRGBDPoseOnly(point=[0.3, -0.7, 4.0], measurement=[0.0, 0.0, 4.0])
    numeric = _numeric_pose_jacobian(edge.error, pose)
    np.testing.assert_allclose(edge.jacobian(pose), numeric, atol=1e-6)


def test_uv_error_vanishes_at_projection(camera, pose):
    point = np.array([0.2, 0.1, 3.0])
    edge = EdgeProjectXYZ2UVPoseOnly(point=point, measurement=camera.world2pixel(point, pose), camera=camera)
    np.testing.assert_allclose(edge.error(pose), np.zeros(2), atol=1e-9)


def test_uv_jacobian_matches_numeric(camera, pose):
    edge = EdgeProjectXYZ2UVPoseOnly(point=[0.2, 0.1, 3.0], measurement=[300.0, 200.0], camera=camera)
    numeric = _numeric_pose_jacobian(edge.error, pose)
    np.testing.assert_allclose(edge.jacobian(pose), numeric, rtol=1e-5, atol=1e-4)


def test_uv_jacobian_has_structural_zeros(camera, pose):
    edge = EdgeProjectXYZ2UVPoseOnly(point=[0.2, 0.1, 3.0], measurement=[300.0, 200.0], camera=camera)
    j = edge.jacobian(pose)
    assert j.shape == (2, 6)
    assert j[0, 4] == 0.0
    assert j[1, 3] == 0.0


def test_default_information_is_identity(camera):
    edge = EdgeProjectXYZ2UVPoseOnly(point=[0.0, 0.0, 1.0], measurement=[0.0, 0.0], camera=camera)
    np.testing.assert_array_equal(edge.information, np.eye(2))


def test_bad_measurement_shape_raises(camera):
    with pytest.raises(ValueError):
        EdgeProjectXYZ2UVPoseOnly(point=[0.0, 0.0, 1.0], measurement=[0.0, 0.0, 0.0], camera=camera)
    with pytest.raises(ValueError):
        EdgeProjectXYZRGBD(measurement=[1.0, 2.0])