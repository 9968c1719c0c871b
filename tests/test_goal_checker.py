"""Tests for goal tolerances and the controller state."""

import math

import pytest

from local_planner.geometry import Pose, Velocity
from local_planner.goal_checker import (
    ControllerState,
    GoalChecker,
    is_stopped,
    orientation_reached,
    position_reached,
)
from local_planner.odometry import SharedVelocityEstimate


class TestPredicates:
    def test_position_boundary_is_inclusive(self):
        assert position_reached(Pose(0.1, 0.0), 0.0, 0.0, 0.1)
        assert position_reached(Pose(0.0, -0.25), 0.0, 0.0, 0.25)
        assert not position_reached(Pose(0.1001, 0.0), 0.0, 0.0, 0.1)

    def test_orientation_uses_shortest_angle(self):
        pose = Pose(0.0, 0.0, math.radians(179))
        assert orientation_reached(pose, math.radians(-179), 0.05)
        assert not orientation_reached(pose, math.radians(-170), 0.05)

    def test_orientation_boundary_is_inclusive(self):
        assert orientation_reached(Pose(0.0, 0.0, 0.0), 0.5, 0.5)

    @pytest.mark.parametrize(
        "velocity, stopped",
        [
            (Velocity(), True),
            (Velocity(0.01, -0.01, 0.01), True),
            (Velocity(0.02, 0.0, 0.0), False),
            (Velocity(0.0, 0.02, 0.0), False),
            (Velocity(0.0, 0.0, -0.02), False),
        ],
    )
    def test_is_stopped(self, velocity, stopped):
        assert is_stopped(velocity, 0.01, 0.01) is stopped


class TestGoalChecker:
    @pytest.fixture
    def estimate(self):
        return SharedVelocityEstimate()

    @pytest.fixture
    def checker(self, estimate):
        return GoalChecker(estimate, xy_goal_tolerance=0.1, yaw_goal_tolerance=0.05)

    def test_starts_seeking(self, checker):
        assert checker.state == ControllerState.SEEKING
        assert not checker.rotating_to_goal

    def test_goal_reached_at_goal_and_stopped(self, checker):
        assert checker.goal_reached(Pose(0.0, 0.0, 0.0), Pose(0.0, 0.0, 0.0))

    def test_goal_not_reached_while_moving(self, checker, estimate):
        estimate.update(Velocity(0.2, 0.0, 0.0))
        assert not checker.goal_reached(Pose(0.0, 0.0, 0.0), Pose(0.0, 0.0, 0.0))

    def test_goal_not_reached_with_wrong_heading(self, checker):
        assert not checker.goal_reached(Pose(0.0, 0.0, 0.0), Pose(0.0, 0.0, math.pi / 2))

    def test_stopped_prefers_given_velocity(self, checker, estimate):
        estimate.update(Velocity(1.0, 0.0, 0.0))
        assert checker.stopped(Velocity())
        assert not checker.stopped()

    def test_transitions(self, checker):
        checker.enter_rotation()
        assert checker.rotating_to_goal
        checker.mark_reached()
        assert checker.state == ControllerState.REACHED
        assert not checker.rotating_to_goal
        checker.reset()
        assert checker.state == ControllerState.SEEKING

    def test_mark_reached_logs_once(self, checker, caplog):
        with caplog.at_level("INFO", logger="local_planner.goal_checker"):
            checker.mark_reached()
            checker.mark_reached()
        assert [r.getMessage() for r in caplog.records].count("Goal reached") == 1
