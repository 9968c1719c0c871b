"""Kinematic Command Synthesizer.

Closed-form commands for the two maneuvers the controller runs near the goal:
- stop_with_acc_limits: decelerate every axis as hard as the limits allow
- rotate_to_goal: turn in place onto the goal heading without overshooting

Both maneuvers look one control period ahead (CONTROL_PERIOD) when applying
acceleration limits, and both hand the resulting command to the trajectory
evaluator so the footprint is checked against the current occupancy snapshot
before anything is sent to the base.
"""

import logging
import math
from dataclasses import dataclass
from typing import Tuple

from . import config
from .config import PlannerConfig
from .geometry import ZERO_VELOCITY, Pose, Velocity, shortest_angular_distance, sign

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KinematicLimits:
    """Velocity and acceleration limits of the base.

    Args:
        acc_lim_x: Forward acceleration limit (m/s²)
        acc_lim_y: Lateral acceleration limit (m/s²)
        acc_lim_theta: Angular acceleration limit (rad/s²)
        max_vel_th: Maximum angular velocity (rad/s)
        min_vel_th: Minimum (most negative) angular velocity (rad/s)
        min_in_place_vel_th: Slowest in-place rotation speed (rad/s)
        max_vel_x: Maximum forward velocity (m/s)
        min_vel_x: Minimum forward velocity (m/s)
    """

    acc_lim_x: float = config.ACC_LIM_X
    acc_lim_y: float = config.ACC_LIM_Y
    acc_lim_theta: float = config.ACC_LIM_THETA
    max_vel_th: float = config.MAX_ROTATIONAL_VEL
    min_vel_th: float = -config.MAX_ROTATIONAL_VEL
    min_in_place_vel_th: float = config.MIN_IN_PLACE_ROTATIONAL_VEL
    max_vel_x: float = config.MAX_VEL_X
    min_vel_x: float = config.MIN_VEL_X

    @classmethod
    def from_config(cls, cfg: PlannerConfig) -> "KinematicLimits":
        return cls(
            acc_lim_x=cfg.acc_lim_x,
            acc_lim_y=cfg.acc_lim_y,
            acc_lim_theta=cfg.acc_lim_th,
            max_vel_th=cfg.max_vel_th,
            min_vel_th=cfg.min_vel_th,
            min_in_place_vel_th=cfg.min_in_place_rotational_vel,
            max_vel_x=cfg.max_vel_x,
            min_vel_x=cfg.min_vel_x,
        )


def decelerate(velocity: float, acc_lim: float, dt: float = config.CONTROL_PERIOD) -> float:
    """One step of maximum deceleration toward zero, never crossing it."""
    return sign(velocity) * max(0.0, abs(velocity) - acc_lim * dt)


def in_place_rotation_speed(
    ang_diff: float,
    current_omega: float,
    limits: KinematicLimits,
    dt: float = config.CONTROL_PERIOD,
) -> float:
    """Angular velocity for turning in place through ang_diff.

    The speed is the error itself, raised to at least the minimum in-place
    speed and capped at the maximum, then limited to one acceleration step
    from the current angular speed, and finally capped so the base can still
    stop exactly on the goal heading:

        |ω| <= sqrt(2 * acc_lim_theta * |ang_diff|)

    Args:
        ang_diff: Signed shortest angle from current to goal heading (rad)
        current_omega: Current angular velocity (rad/s)
        limits: Kinematic limits of the base
        dt: Acceleration step period (seconds)

    Returns:
        Signed angular velocity (rad/s), same sign as ang_diff
    """
    if ang_diff > 0.0:
        v_theta_samp = min(limits.max_vel_th, max(limits.min_in_place_vel_th, ang_diff))
    else:
        v_theta_samp = max(limits.min_vel_th, min(-1.0 * limits.min_in_place_vel_th, ang_diff))

    # Stay within one acceleration step of the current angular speed
    max_acc_vel = abs(current_omega) + limits.acc_lim_theta * dt
    min_acc_vel = abs(current_omega) - limits.acc_lim_theta * dt
    v_theta_samp = sign(v_theta_samp) * min(max(abs(v_theta_samp), min_acc_vel), max_acc_vel)

    # Leave room to decelerate onto the goal heading
    max_speed_to_stop = math.sqrt(2.0 * limits.acc_lim_theta * abs(ang_diff))
    return sign(v_theta_samp) * min(max_speed_to_stop, abs(v_theta_samp))


class KinematicCommandSynthesizer:
    """Builds stop and rotate-in-place commands and validates them.

    Attributes:
        evaluator: Trajectory evaluator used to check candidate commands
        limits: Kinematic limits of the base
        dt: Acceleration step period (seconds)
    """

    def __init__(self, evaluator, limits: KinematicLimits, dt: float = config.CONTROL_PERIOD):
        self.evaluator = evaluator
        self.limits = limits
        self.dt = dt

    def stop_with_acc_limits(self, pose: Pose, robot_vel: Velocity) -> Tuple[Velocity, bool]:
        """Slow down on every axis with the maximum allowed deceleration.

        Args:
            pose: Robot pose in the operating frame
            robot_vel: Current robot velocity

        Returns:
            Tuple of (command, valid). When the evaluator rejects the
            deceleration command the returned command is zero and valid is False.
        """
        vx = decelerate(robot_vel.vx, self.limits.acc_lim_x, self.dt)
        vy = decelerate(robot_vel.vy, self.limits.acc_lim_y, self.dt)
        vth = decelerate(robot_vel.omega, self.limits.acc_lim_theta, self.dt)
        candidate = Velocity(vx, vy, vth)

        valid_cmd = self.evaluator.check_trajectory(pose, robot_vel, candidate)
        if valid_cmd:
            logger.debug(f"Slowing down... using vx, vy, vth: {vx:.2f}, {vy:.2f}, {vth:.2f}")
            return candidate, True

        logger.warning(
            f"Deceleration command ({vx:.2f}, {vy:.2f}, {vth:.2f}) rejected, commanding zero"
        )
        return ZERO_VELOCITY, False

    def rotate_to_goal(
        self, pose: Pose, robot_vel: Velocity, goal_th: float
    ) -> Tuple[Velocity, bool]:
        """Turn in place toward goal_th.

        Args:
            pose: Robot pose in the operating frame
            robot_vel: Current robot velocity
            goal_th: Goal heading in the operating frame (rad)

        Returns:
            Tuple of (command, valid). The command has zero linear velocity;
            on rejection it is entirely zero and valid is False.
        """
        ang_diff = shortest_angular_distance(pose.theta, goal_th)
        v_theta_samp = in_place_rotation_speed(ang_diff, robot_vel.omega, self.limits, self.dt)
        candidate = Velocity(0.0, 0.0, v_theta_samp)

        valid_cmd = self.evaluator.check_trajectory(pose, robot_vel, candidate)
        logger.debug(
            f"Moving to desired goal orientation, th cmd: {v_theta_samp:.2f}, valid_cmd: {valid_cmd}"
        )

        if valid_cmd:
            return candidate, True
        return ZERO_VELOCITY, False
