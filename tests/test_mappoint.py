import numpy as np
import pytest

from rgbdvo.frame import Frame
from rgbdvo.mappoint import MapPoint


def test_default_point():
    point = MapPoint()
    assert point.id == -1
    assert point.good is True
    assert point.visible_times == 0
    assert point.matched_times == 0
    np.testing.assert_array_equal(point.pos, np.zeros(3))
    np.testing.assert_array_equal(point.norm, np.zeros(3))
    assert point.observed_frames == []


def test_create_gives_consecutive_ids():
    first = MapPoint.create()
    second = MapPoint.create()
    assert second.id == first.id + 1


def test_create_without_arguments_counts_one_observation():
    point = MapPoint.create()
    assert point.visible_times == 1
    assert point.matched_times == 1
    np.testing.assert_array_equal(point.pos, np.zeros(3))


def test_create_keeps_its_arguments():
    frame = Frame.create()
    descriptor = np.arange(32, dtype=np.uint8)
    point = MapPoint.create([1.0, 2.0, 3.0], [0.0, 0.0, 1.0], descriptor, frame)
    np.testing.assert_array_equal(point.pos, [1.0, 2.0, 3.0])
    np.testing.assert_array_equal(point.norm, [0.0, 0.0, 1.0])
    np.testing.assert_array_equal(point.descriptor, descriptor)
    assert point.observed_frames == [frame]
    assert point.good is True


def test_position_is_copied():
    source = np.array([1.0, 1.0, 1.0])
    point = MapPoint.create(source, [0.0, 0.0, 1.0])
    source[0] = 9.0
    assert point.pos[0] == 1.0


def test_position_f32():
    point = MapPoint.create([0.5, -0.25, 2.0])
    assert point.position_f32.dtype == np.float32
    np.testing.assert_array_equal(point.position_f32, [0.5, -0.25, 2.0])


def test_bad_position_shape_raises():
    with pytest.raises(ValueError):
        MapPoint.create([1.0, 2.0])