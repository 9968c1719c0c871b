"""Tests for the transform tree."""

import math
import threading
import time

import pytest

from local_planner.errors import ConnectivityError, ExtrapolationError, LookupTransformError
from local_planner.geometry import Pose, Transform2D
from local_planner.transforms import TransformBuffer


@pytest.fixture
def tree():
    buf = TransformBuffer()
    buf.set_transform(Transform2D(1.0, 0.0, 0.0, "map", "odom", 0.0), is_static=True)
    buf.set_transform(Transform2D(0.0, 0.0, 0.0, "odom", "base_link", 1.0))
    buf.set_transform(Transform2D(2.0, 0.0, math.pi / 2, "odom", "base_link", 2.0))
    return buf


class TestLookup:
    def test_chain_through_static_edge(self, tree):
        transform = tree.lookup_transform("map", "base_link")
        assert transform.stamp == 2.0
        assert transform.x == pytest.approx(3.0)
        assert transform.theta == pytest.approx(math.pi / 2)

    def test_interpolates_between_samples(self, tree):
        transform = tree.lookup_transform("odom", "base_link", 1.5)
        assert transform.x == pytest.approx(1.0)
        assert transform.theta == pytest.approx(math.pi / 4)

    def test_reverse_direction_is_inverse(self, tree):
        transform = tree.lookup_transform("base_link", "map")
        pose = transform.apply(Pose(3.0, 0.0, 0.0, "map"))
        assert pose.x == pytest.approx(0.0, abs=1e-12)
        assert pose.y == pytest.approx(0.0, abs=1e-12)

    def test_sibling_frames(self, tree):
        tree.set_transform(Transform2D(0.0, 1.0, 0.0, "map", "marker", 0.0), is_static=True)
        transform = tree.lookup_transform("marker", "odom")
        assert transform.x == pytest.approx(1.0)
        assert transform.y == pytest.approx(-1.0)

    def test_same_frame_is_identity(self, tree):
        transform = tree.lookup_transform("odom", "odom")
        assert (transform.x, transform.y, transform.theta) == (0.0, 0.0, 0.0)

    def test_transform_pose_uses_pose_stamp(self, tree):
        pose = tree.transform_pose("odom", Pose(0.0, 0.0, 0.0, "base_link", 1.0))
        assert pose.x == pytest.approx(0.0)
        assert pose.frame_id == "odom"


class TestFailures:
    def test_unknown_frame(self, tree):
        with pytest.raises(LookupTransformError):
            tree.lookup_transform("map", "gripper")

    def test_disconnected_trees(self, tree):
        tree.set_transform(Transform2D(0.0, 0.0, 0.0, "world", "camera", 0.0), is_static=True)
        with pytest.raises(ConnectivityError):
            tree.lookup_transform("map", "camera")

    def test_extrapolation_into_future(self, tree):
        with pytest.raises(ExtrapolationError):
            tree.lookup_transform("odom", "base_link", 5.0)

    def test_reparenting_is_rejected(self, tree):
        with pytest.raises(ValueError):
            tree.set_transform(Transform2D(0.0, 0.0, 0.0, "map", "base_link", 3.0))

    def test_self_transform_is_rejected(self, tree):
        with pytest.raises(ValueError):
            tree.set_transform(Transform2D(0.0, 0.0, 0.0, "map", "map", 0.0))


class TestHistory:
    def test_old_samples_are_trimmed(self):
        buf = TransformBuffer(cache_time=1.0)
        for stamp in (0.0, 0.5, 1.0, 1.5, 2.0):
            buf.set_transform(Transform2D(stamp, 0.0, 0.0, "odom", "base_link", stamp))
        with pytest.raises(ExtrapolationError):
            buf.lookup_transform("odom", "base_link", 0.5)
        assert buf.lookup_transform("odom", "base_link", 1.0).x == pytest.approx(1.0)

    def test_lookup_waits_for_late_transform(self):
        buf = TransformBuffer()
        buf.set_transform(Transform2D(0.0, 0.0, 0.0, "odom", "base_link", 0.0))

        def publish():
            time.sleep(0.05)
            buf.set_transform(Transform2D(1.0, 0.0, 0.0, "odom", "base_link", 1.0))

        thread = threading.Thread(target=publish)
        thread.start()
        transform = buf.lookup_transform("odom", "base_link", 1.0, timeout=2.0)
        thread.join()
        assert transform.x == pytest.approx(1.0)
