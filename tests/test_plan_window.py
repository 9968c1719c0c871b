"""Tests for plan windowing and pruning."""

import pytest

from local_planner.errors import EmptyPlanError, TransformError
from local_planner.geometry import Pose, Transform2D
from local_planner.plan_window import prune_plan, transform_global_plan, window_radius

from .conftest import straight_plan


def odom_poses(*xs):
    return [Pose(x, 0.0, 0.0, "odom", 0.0) for x in xs]


def window(plan, buffer, radius=1.0):
    return transform_global_plan(plan, buffer, "odom", "base_link", radius)


class TestTransformGlobalPlan:
    def test_window_radius_is_half_the_larger_extent(self):
        assert window_radius(10.0, 4.0) == 5.0
        assert window_radius(2.0, 6.0) == 3.0

    def test_skips_prefix_outside_radius(self, buffer):
        plan = odom_poses(-3.0, -2.0, -0.5, 0.5)
        result = window(plan, buffer)
        assert [p.x for p in result] == [-0.5, 0.5]

    def test_radius_is_inclusive(self, buffer):
        result = window(odom_poses(0.0, 1.0, 1.5), buffer)
        assert [p.x for p in result] == [0.0, 1.0]

    def test_window_stops_at_first_waypoint_leaving_radius(self, buffer):
        # The plan leaves the radius at 3.0 and comes back at 0.3; the
        # returning section is not part of the window
        plan = odom_poses(0.1, 0.2, 3.0, 0.3, 0.4)
        result = window(plan, buffer)
        assert [p.x for p in result] == [0.1, 0.2]

    def test_no_waypoint_in_radius_gives_empty_window(self, buffer):
        assert window(odom_poses(4.0, 5.0), buffer) == []

    def test_plan_is_expressed_in_operating_frame(self, buffer):
        buffer.set_transform(Transform2D(1.0, 0.0, 0.0, "map", "odom", 0.0), is_static=True)
        plan = [Pose(1.0, 0.0, 0.0, "map", 0.0), Pose(1.5, 0.0, 0.0, "map", 0.0)]
        result = window(plan, buffer)
        assert [p.x for p in result] == pytest.approx([0.0, 0.5])
        assert all(p.frame_id == "odom" for p in result)

    def test_distances_measured_from_robot(self, buffer):
        buffer.set_transform(Transform2D(2.0, 0.0, 0.0, "odom", "base_link", 1.0))
        result = window(odom_poses(0.0, 1.5, 2.0, 2.5, 3.5), buffer)
        assert [p.x for p in result] == [1.5, 2.0, 2.5]

    def test_empty_plan_raises(self, buffer):
        with pytest.raises(EmptyPlanError):
            window([], buffer)

    def test_unknown_plan_frame_raises(self, buffer):
        with pytest.raises(TransformError):
            window([Pose(0.0, 0.0, 0.0, "map", 0.0)], buffer)


class TestPrunePlan:
    def test_prunes_waypoints_closer_than_one_meter(self):
        plan = odom_poses(-0.5, 0.0, 0.5, 1.0, 1.5)
        global_plan = list(plan)
        pruned = prune_plan(Pose(0.0, 0.0), plan, global_plan)
        assert pruned == 3
        assert [p.x for p in plan] == [1.0, 1.5]
        assert [p.x for p in global_plan] == [1.0, 1.5]

    def test_stops_at_first_far_waypoint(self):
        plan = odom_poses(2.0, 0.1, 0.2)
        global_plan = list(plan)
        assert prune_plan(Pose(0.0, 0.0), plan, global_plan) == 0
        assert len(plan) == 3

    def test_goal_is_never_pruned(self):
        plan = odom_poses(0.0, 0.1, 0.2)
        global_plan = list(plan)
        prune_plan(Pose(0.0, 0.0), plan, global_plan)
        assert [p.x for p in plan] == [0.2]
        assert [p.x for p in global_plan] == [0.2]

    def test_global_plan_keeps_unwindowed_tail(self):
        global_plan = straight_plan(length=8.0, spacing=0.5)
        plan = global_plan[:11]
        prune_plan(Pose(0.0, 0.0), plan, global_plan)
        assert plan[0].x == 1.0
        assert len(global_plan) == 17 - 2
        assert global_plan[-1].x == 8.0

    @pytest.mark.parametrize(
        "robot_x, xs",
        [
            (0.0, [0.0, 0.3, 0.6, 0.9, 1.2]),
            (1.0, [0.0, 0.5, 1.0, 2.5, 1.1]),
            (-2.0, [0.0, 0.5, 1.0]),
            (0.5, [0.5, 0.5, 0.5]),
        ],
    )
    def test_prune_invariants(self, robot_x, xs):
        robot = Pose(robot_x, 0.0)
        plan = odom_poses(*xs)
        global_plan = list(plan) + odom_poses(5.0)
        before = list(plan)

        pruned = prune_plan(robot, plan, global_plan)

        for removed in before[:pruned]:
            assert robot.squared_distance_to(removed) < 1.0
        assert len(global_plan) >= len(plan)
        assert plan
