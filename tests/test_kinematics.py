"""Tests for stop and rotate-in-place command synthesis."""

import math

import pytest

from local_planner.geometry import ZERO_VELOCITY, Pose, Velocity
from local_planner.kinematics import (
    KinematicCommandSynthesizer,
    KinematicLimits,
    decelerate,
    in_place_rotation_speed,
)

from .conftest import StubEvaluator

LIMITS = KinematicLimits()


@pytest.fixture
def synthesizer():
    return KinematicCommandSynthesizer(StubEvaluator(accept=True), LIMITS, dt=0.1)


class TestDecelerate:
    @pytest.mark.parametrize("velocity", [0.5, -0.5, 1.2, -0.26, 2.0])
    def test_decreases_by_exactly_one_step(self, velocity):
        result = decelerate(velocity, 2.5, 0.1)
        assert abs(result) == pytest.approx(abs(velocity) - 0.25)
        assert math.copysign(1.0, result) == math.copysign(1.0, velocity)

    @pytest.mark.parametrize("velocity", [0.0, 0.1, -0.2, 0.25])
    def test_never_crosses_zero(self, velocity):
        assert decelerate(velocity, 2.5, 0.1) == 0.0


class TestStop:
    def test_decelerates_every_axis(self, synthesizer):
        cmd, valid = synthesizer.stop_with_acc_limits(Pose(), Velocity(0.5, -0.3, 1.0))
        assert valid
        assert cmd.vx == pytest.approx(0.25)
        assert cmd.vy == pytest.approx(-0.05)
        assert cmd.omega == pytest.approx(0.68)

    def test_magnitudes_never_grow(self, synthesizer):
        robot_vel = Velocity(0.05, 0.4, -2.0)
        cmd, _ = synthesizer.stop_with_acc_limits(Pose(), robot_vel)
        for before, after in zip(
            (robot_vel.vx, robot_vel.vy, robot_vel.omega), (cmd.vx, cmd.vy, cmd.omega)
        ):
            assert abs(after) <= abs(before)

    def test_candidate_is_checked(self, synthesizer):
        cmd, _ = synthesizer.stop_with_acc_limits(Pose(), Velocity(0.5, 0.0, 0.0))
        assert synthesizer.evaluator.checked == [cmd]

    def test_rejected_stop_commands_zero(self):
        synthesizer = KinematicCommandSynthesizer(StubEvaluator(accept=False), LIMITS)
        assert synthesizer.stop_with_acc_limits(Pose(), Velocity(0.5, 0.0, 0.0)) == (ZERO_VELOCITY, False)


class TestRotate:
    def test_quarter_turn_from_rest(self, synthesizer):
        cmd, valid = synthesizer.rotate_to_goal(Pose(0.0, 0.0, 0.0), Velocity(), math.pi / 2)
        bound = max(0.4, min(LIMITS.max_vel_th, math.sqrt(2 * 3.2 * math.pi / 2)))
        assert valid
        assert 0.0 < cmd.omega <= bound
        assert cmd.vx == 0.0 and cmd.vy == 0.0

    def test_acceleration_limits_first_step(self):
        assert in_place_rotation_speed(math.pi / 2, 0.0, LIMITS, 0.1) == pytest.approx(0.32)

    def test_minimum_in_place_speed(self):
        assert in_place_rotation_speed(0.2, 0.4, LIMITS, 0.1) == pytest.approx(0.4)

    def test_negative_error_turns_clockwise(self, synthesizer):
        cmd, _ = synthesizer.rotate_to_goal(Pose(0.0, 0.0, 0.0), Velocity(0.0, 0.0, -0.5), -1.0)
        assert cmd.omega == pytest.approx(-0.82)

    def test_shortest_way_around(self, synthesizer):
        cmd, _ = synthesizer.rotate_to_goal(
            Pose(0.0, 0.0, math.radians(170)), Velocity(), math.radians(-170)
        )
        assert cmd.omega > 0.0

    @pytest.mark.parametrize("ang_diff", [0.01, -0.01, 0.05, -0.3, 1.0, -3.0])
    @pytest.mark.parametrize("current_omega", [0.0, 0.5, -1.0])
    def test_sign_and_stopping_cap(self, ang_diff, current_omega):
        omega = in_place_rotation_speed(ang_diff, current_omega, LIMITS, 0.1)
        assert math.copysign(1.0, omega) == math.copysign(1.0, ang_diff)
        assert abs(omega) <= math.sqrt(2 * LIMITS.acc_lim_theta * abs(ang_diff)) + 1e-12

    def test_rejected_rotation_commands_zero(self):
        synthesizer = KinematicCommandSynthesizer(StubEvaluator(accept=False), LIMITS)
        assert synthesizer.rotate_to_goal(Pose(), Velocity(), 1.0) == (ZERO_VELOCITY, False)
