import math

import numpy as np
import pytest

from rgbdvo.se3 import SE3, hat, so3_exp, so3_log


def test_hat_matches_cross_product():
    a = np.array([0.3, -1.2, 2.0])
    b = np.array([1.5, 0.4, -0.7])
    np.testing.assert_allclose(hat(a) @ b, np.cross(a, b))


def test_hat_is_skew_symmetric():
    k = hat([1.0, 2.0, 3.0])
    np.testing.assert_allclose(k, -k.T)


def test_hat_rejects_wrong_shape():
    with pytest.raises(ValueError):
        hat([1.0, 2.0])


def test_so3_exp_of_zero_is_identity():
    np.testing.assert_allclose(so3_exp([0.0, 0.0, 0.0]), np.eye(3))


def test_so3_exp_quarter_turn_about_z():
    r = so3_exp([0.0, 0.0, math.pi / 2])
    np.testing.assert_allclose(r @ np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12)


def test_so3_exp_is_orthonormal():
    r = so3_exp([0.4, -0.9, 1.3])
    np.testing.assert_allclose(r @ r.T, np.eye(3), atol=1e-12)
    assert np.linalg.det(r) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "omega",
    [[0.1, 0.2, -0.3], [1e-10, 0.0, 2e-10], [0.0, 2.5, 0.0], [1.0, -1.0, 1.0]],
)
def test_so3_log_inverts_exp(omega):
    np.testing.assert_allclose(so3_log(so3_exp(omega)), omega, atol=1e-9)


def test_so3_log_half_turn_round_trip():
    r = np.diag([1.0, -1.0, -1.0])
    omega = so3_log(r)
    assert np.linalg.norm(omega) == pytest.approx(math.pi)
    np.testing.assert_allclose(so3_exp(omega), r, atol=1e-12)


def test_so3_log_rejects_wrong_shape():
    with pytest.raises(ValueError):
        so3_log(np.eye(2))


def test_identity_leaves_points_unchanged():
    p = np.array([1.0, -2.0, 3.5])
    np.testing.assert_allclose(SE3.identity() * p, p)


def test_log_of_identity_is_zero():
    np.testing.assert_allclose(SE3.identity().log(), np.zeros(6))


@pytest.mark.parametrize(
    "xi",
    [
        [0.1, -0.2, 0.3, 0.05, 0.1, -0.2],
        [1.0, 2.0, 3.0, 0.0, 0.0, 0.0],
        [0.5, 0.0, -0.5, 1.2, -0.4, 0.9],
    ],
)
def test_exp_log_round_trip(xi):
    np.testing.assert_allclose(SE3.exp(xi).log(), xi, atol=1e-9)


def test_exp_with_zero_rotation_is_pure_translation():
    t = SE3.exp([1.0, 2.0, 3.0, 0.0, 0.0, 0.0])
    np.testing.assert_allclose(t.rotation, np.eye(3))
    np.testing.assert_allclose(t.translation, [1.0, 2.0, 3.0])


def test_inverse_composes_to_identity():
    t = SE3.exp([0.3, -0.1, 0.7, 0.2, -0.5, 0.1])
    np.testing.assert_allclose((t * t.inverse()).matrix(), np.eye(4), atol=1e-12)
    np.testing.assert_allclose((t.inverse() * t).matrix(), np.eye(4), atol=1e-12)


def test_composition_matches_matrix_product():
    a = SE3.exp([0.3, -0.1, 0.7, 0.2, -0.5, 0.1])
    b = SE3.exp([-1.0, 0.4, 0.2, 0.0, 0.3, 0.6])
    np.testing.assert_allclose((a * b).matrix(), a.matrix() @ b.matrix(), atol=1e-12)


def test_point_transform_matches_homogeneous_matrix():
    t = SE3.exp([0.3, -0.1, 0.7, 0.2, -0.5, 0.1])
    p = np.array([1.0, 2.0, 3.0])
    expected = (t.matrix() @ np.append(p, 1.0))[:3]
    np.testing.assert_allclose(t * p, expected)


def test_batch_transform_matches_single():
    t = SE3.exp([0.3, -0.1, 0.7, 0.2, -0.5, 0.1])
    pts = np.array([[1.0, 2.0, 3.0], [-1.0, 0.5, 4.0]])
    batch = t * pts
    for row, p in zip(batch, pts):
        np.testing.assert_allclose(row, t * p)


def test_matrix_bottom_row():
    m = SE3.exp([0.3, -0.1, 0.7, 0.2, -0.5, 0.1]).matrix()
    np.testing.assert_allclose(m[3], [0.0, 0.0, 0.0, 1.0])


def test_from_rotation_vector_matches_so3_exp():
    rotvec = [0.1, 0.2, 0.3]
    t = SE3.from_rotation_vector(rotvec, [4.0, 5.0, 6.0])
    np.testing.assert_allclose(t.rotation, so3_exp(rotvec))
    np.testing.assert_allclose(t.translation, [4.0, 5.0, 6.0])


def test_rejects_bad_shapes():
    with pytest.raises(ValueError):
        SE3(np.eye(3), [1.0, 2.0])
    with pytest.raises(ValueError):
        SE3.exp([0.0] * 5)
    with pytest.raises(ValueError):
        SE3.identity() * np.zeros(4)


def test_stored_arrays_are_read_only():
    t = SE3(np.eye(3), [1.0, 2.0, 3.0])
    with pytest.raises(ValueError):
        t.translation[0] = 9.0
    assert t.translation.tolist() == [1.0, 2.0, 3.0]