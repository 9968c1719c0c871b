"""Goal Arrival State Machine.

Classifies the controller's relation to the goal on every tick:

    SEEKING ──(position reached)──> ROTATING_TO_GOAL ──(heading reached)──> REACHED

ROTATING_TO_GOAL is sticky: once the robot starts turning in place it keeps
turning rather than falling back to decelerating just because odometry shows a
little residual motion. REACHED holds until a new plan is set or the robot
is pushed off the goal position.
"""

import enum
import logging
from typing import Optional

from . import config
from .geometry import Pose, Velocity, distance, shortest_angular_distance
from .odometry import SharedVelocityEstimate

logger = logging.getLogger(__name__)


class ControllerState(enum.Enum):
    SEEKING = "seeking"
    ROTATING_TO_GOAL = "rotating_to_goal"
    REACHED = "reached"


def position_reached(pose: Pose, goal_x: float, goal_y: float, xy_tolerance: float) -> bool:
    """True if the robot is within xy_tolerance of the goal position (inclusive)."""
    return abs(distance(pose.x, pose.y, goal_x, goal_y)) <= xy_tolerance


def orientation_reached(pose: Pose, goal_th: float, yaw_tolerance: float) -> bool:
    """True if the shortest rotation onto goal_th is within yaw_tolerance."""
    return abs(shortest_angular_distance(pose.theta, goal_th)) <= yaw_tolerance


def is_stopped(velocity: Velocity, trans_stopped: float, rot_stopped: float) -> bool:
    """True if every velocity component is within its stopped threshold."""
    return (
        abs(velocity.omega) <= rot_stopped
        and abs(velocity.vx) <= trans_stopped
        and abs(velocity.vy) <= trans_stopped
    )


class GoalChecker:
    """Goal tolerances plus the sticky rotate-in-place state.

    Attributes:
        xy_goal_tolerance: Position tolerance (meters)
        yaw_goal_tolerance: Heading tolerance (radians)
        trans_stopped_velocity: Stopped threshold for vx and vy (m/s)
        rot_stopped_velocity: Stopped threshold for omega (rad/s)
        state: Current controller state
    """

    def __init__(
        self,
        velocity_estimate: SharedVelocityEstimate,
        xy_goal_tolerance: float = config.XY_GOAL_TOLERANCE,
        yaw_goal_tolerance: float = config.YAW_GOAL_TOLERANCE,
        trans_stopped_velocity: float = config.TRANS_STOPPED_VELOCITY,
        rot_stopped_velocity: float = config.ROT_STOPPED_VELOCITY,
    ):
        self.velocity_estimate = velocity_estimate
        self.xy_goal_tolerance = xy_goal_tolerance
        self.yaw_goal_tolerance = yaw_goal_tolerance
        self.trans_stopped_velocity = trans_stopped_velocity
        self.rot_stopped_velocity = rot_stopped_velocity
        self.state = ControllerState.SEEKING

    @property
    def rotating_to_goal(self) -> bool:
        return self.state == ControllerState.ROTATING_TO_GOAL

    def position_reached(self, pose: Pose, goal: Pose) -> bool:
        return position_reached(pose, goal.x, goal.y, self.xy_goal_tolerance)

    def orientation_reached(self, pose: Pose, goal: Pose) -> bool:
        return orientation_reached(pose, goal.theta, self.yaw_goal_tolerance)

    def stopped(self, velocity: Optional[Velocity] = None) -> bool:
        """Check the given velocity, or a fresh snapshot of the shared estimate."""
        if velocity is None:
            velocity = self.velocity_estimate.snapshot()
        return is_stopped(velocity, self.trans_stopped_velocity, self.rot_stopped_velocity)

    def goal_reached(self, pose: Pose, goal: Pose) -> bool:
        """Position, heading and stopped checks all pass."""
        return (
            self.position_reached(pose, goal)
            and self.orientation_reached(pose, goal)
            and self.stopped()
        )

    def enter_rotation(self) -> None:
        if self.state != ControllerState.ROTATING_TO_GOAL:
            logger.debug("Goal position reached, rotating in place to goal heading")
        self.state = ControllerState.ROTATING_TO_GOAL

    def mark_reached(self) -> None:
        if self.state != ControllerState.REACHED:
            logger.info("Goal reached")
        self.state = ControllerState.REACHED

    def reset(self) -> None:
        """Forget previous goal decisions; called when a new plan arrives."""
        self.state = ControllerState.SEEKING
