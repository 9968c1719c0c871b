"""Configuration parameters for the local planner.

This module centralizes all configuration parameters including:
- Goal tolerances and stopped-velocity thresholds
- Kinematic limits (velocity and acceleration)
- Trajectory evaluator parameters
- Visualization colors
- WebSocket bridge parameters

Module-level constants are the defaults. A running controller is configured
through a PlannerConfig built from a plain mapping of parameter names, so the
same names can come from a JSON file, a WebSocket message, or a test.
"""

import json
import logging
import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


# ============================================================================
# Goal Tolerances
# ============================================================================

XY_GOAL_TOLERANCE = 0.10
"""Radius around the goal position that counts as arrived (meters)."""

YAW_GOAL_TOLERANCE = 0.05
"""Heading error that counts as aligned with the goal (radians)."""

TRANS_STOPPED_VELOCITY = 1e-2
"""Linear speed below which the robot is considered stopped (m/s)."""

ROT_STOPPED_VELOCITY = 1e-2
"""Angular speed below which the robot is considered stopped (rad/s)."""


# ============================================================================
# Plan Window
# ============================================================================

PRUNE_PLAN = True
"""Drop waypoints near the robot from the stored plan every tick."""

PRUNE_DISTANCE_SQ = 1.0
"""Squared radius around the robot inside which waypoints are pruned (m²)."""


# ============================================================================
# Kinematic Limits
# ============================================================================

CONTROL_PERIOD = 0.1
"""Period used for single-step acceleration limiting (seconds).

Stop and rotate-in-place commands move at most one acceleration step away
from the current velocity over this period, independent of the rate the
control loop actually runs at.
"""

ACC_LIM_X = 2.5
"""Forward acceleration limit (m/s²)."""

ACC_LIM_Y = 2.5
"""Lateral acceleration limit (m/s²)."""

ACC_LIM_THETA = 3.2
"""Angular acceleration limit (rad/s²)."""

MAX_VEL_X = 0.5
"""Maximum forward velocity (m/s)."""

MIN_VEL_X = 0.1
"""Minimum forward velocity used when sampling (m/s)."""

MAX_ROTATIONAL_VEL = 1.0
"""Maximum angular speed (rad/s). Minimum angular velocity is its negation."""

MIN_IN_PLACE_ROTATIONAL_VEL = 0.4
"""Slowest angular speed commanded while rotating in place (rad/s).

Below this, most bases stall against static friction.
"""

BACKUP_VEL = -0.1
"""Velocity used when escaping (m/s). Must be negative."""


# ============================================================================
# Trajectory Evaluator Parameters
# ============================================================================

SIM_TIME = 1.0
"""Forward simulation horizon for candidate trajectories (seconds)."""

SIM_GRANULARITY = 0.025
"""Distance between simulated trajectory points (meters)."""

VX_SAMPLES = 3
"""Number of forward velocity samples."""

VTHETA_SAMPLES = 20
"""Number of angular velocity samples."""

PATH_DISTANCE_BIAS = 0.6
"""Weight on distance from the local plan."""

GOAL_DISTANCE_BIAS = 0.8
"""Weight on distance to the local goal."""

OCCDIST_SCALE = 0.01
"""Weight on obstacle cost."""

HEADING_LOOKAHEAD = 0.325
"""Lookahead distance along the local plan used to steer (meters)."""

OSCILLATION_RESET_DIST = 0.05
"""Distance the robot must travel before oscillation flags reset (meters)."""

ESCAPE_RESET_DIST = 0.10
"""Distance the robot must travel before leaving escape mode (meters)."""

ESCAPE_RESET_THETA = math.pi / 4.0
"""Rotation the robot must make before leaving escape mode (radians)."""

HOLONOMIC_ROBOT = True
"""Whether lateral velocity samples are considered."""

WORLD_MODEL = "costmap"
"""World model used to check footprints. Only "costmap" is supported."""

DWA = True
"""Sample velocities from the dynamic window instead of the full range."""

HEADING_SCORING = False
"""Score trajectories by heading instead of goal distance."""

HEADING_SCORING_TIMESTEP = 0.8
"""How far ahead heading scoring looks (seconds)."""

Y_VELS = [-0.3, -0.1, 0.1, 0.3]
"""Lateral velocity samples used for holonomic bases (m/s)."""

MAX_SENSOR_RANGE = 2.0
"""Point grid: maximum sensor range (meters)."""

MIN_PT_SEPARATION = 0.01
"""Point grid: minimum separation between stored points (meters)."""

MAX_OBSTACLE_HEIGHT = 2.0
"""Point grid: tallest obstacle considered (meters)."""

GRID_RESOLUTION = 0.2
"""Point grid: cell size (meters)."""


# ============================================================================
# Costmap Defaults
# ============================================================================

GLOBAL_FRAME = "odom"
"""Operating frame of the controller."""

ROBOT_BASE_FRAME = "base_link"
"""Frame attached to the robot base."""

COSTMAP_SIZE_CELLS = 200
"""Local costmap width and height (cells)."""

COSTMAP_RESOLUTION = 0.05
"""Local costmap resolution (meters/cell). 200 × 0.05 gives a 10m window."""

COSTMAP_ROLLING_WINDOW = True
"""Keep the local costmap centred on the robot as it moves."""

ROBOT_RADIUS = 0.2
"""Circumscribed radius of the robot footprint (meters)."""


# ============================================================================
# Visualization Colors
# ============================================================================

GLOBAL_PLAN_COLOR = (0.0, 1.0, 0.0, 0.0)
"""RGBA tag of the published global plan window."""

LOCAL_PLAN_COLOR = (0.0, 0.0, 1.0, 0.0)
"""RGBA tag of the published local trajectory."""

PLOT_ORANGE = "#f74823"
"""Primary plot color - robot trajectory."""

PLOT_BLUE = "#2374f7"
"""Secondary plot color - reference plan."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for grids and obstacles."""

# Terminal color codes (ANSI escape sequences)
TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for orange status lines."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for blue status lines."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# WebSocket Configuration
# ============================================================================

WS_URI = "ws://localhost:8765"
"""WebSocket server URI of the robot bridge."""

WS_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed WebSocket connections (seconds)."""

WS_MAX_RETRY_DELAY_SECONDS = 60
"""Maximum retry delay with exponential backoff (seconds)."""

WS_TIMEOUT_SECONDS = 5.0
"""Timeout for WebSocket message reception (seconds)."""

CONTROL_FREQUENCY = 10.0
"""Rate at which the bridge ticks the controller (Hz)."""


# ============================================================================
# Runtime configuration
# ============================================================================

DEPRECATED_NAMES = {
    "acc_limit_x": "acc_lim_x",
    "acc_limit_y": "acc_lim_y",
    "acc_limit_th": "acc_lim_th",
}
"""Retired parameter names and the names that replaced them."""


@dataclass
class PlannerConfig:
    """Parameters recognized by the controller's initialize().

    Field names match the parameter names accepted by from_mapping(), except
    for the point grid parameters which are read from "point_grid/<name>".
    """

    prune_plan: bool = PRUNE_PLAN
    xy_goal_tolerance: float = XY_GOAL_TOLERANCE
    yaw_goal_tolerance: float = YAW_GOAL_TOLERANCE
    trans_stopped_velocity: float = TRANS_STOPPED_VELOCITY
    rot_stopped_velocity: float = ROT_STOPPED_VELOCITY

    acc_lim_x: float = ACC_LIM_X
    acc_lim_y: float = ACC_LIM_Y
    acc_lim_th: float = ACC_LIM_THETA

    sim_time: float = SIM_TIME
    sim_granularity: float = SIM_GRANULARITY
    vx_samples: int = VX_SAMPLES
    vtheta_samples: int = VTHETA_SAMPLES
    path_distance_bias: float = PATH_DISTANCE_BIAS
    goal_distance_bias: float = GOAL_DISTANCE_BIAS
    occdist_scale: float = OCCDIST_SCALE
    heading_lookahead: float = HEADING_LOOKAHEAD
    oscillation_reset_dist: float = OSCILLATION_RESET_DIST
    escape_reset_dist: float = ESCAPE_RESET_DIST
    escape_reset_theta: float = ESCAPE_RESET_THETA
    holonomic_robot: bool = HOLONOMIC_ROBOT

    max_vel_x: float = MAX_VEL_X
    min_vel_x: float = MIN_VEL_X
    max_rotational_vel: float = MAX_ROTATIONAL_VEL
    min_in_place_rotational_vel: float = MIN_IN_PLACE_ROTATIONAL_VEL
    backup_vel: float = BACKUP_VEL

    world_model: str = WORLD_MODEL
    dwa: bool = DWA
    heading_scoring: bool = HEADING_SCORING
    heading_scoring_timestep: float = HEADING_SCORING_TIMESTEP
    y_vels: List[float] = field(default_factory=lambda: list(Y_VELS))

    max_sensor_range: float = MAX_SENSOR_RANGE
    min_pt_separation: float = MIN_PT_SEPARATION
    max_obstacle_height: float = MAX_OBSTACLE_HEIGHT
    grid_resolution: float = GRID_RESOLUTION

    @property
    def max_vel_th(self) -> float:
        return self.max_rotational_vel

    @property
    def min_vel_th(self) -> float:
        return -1.0 * self.max_rotational_vel

    @classmethod
    def from_mapping(cls, params: Optional[Mapping[str, Any]] = None) -> "PlannerConfig":
        """Build a configuration from a mapping of parameter names.

        Unknown keys are ignored with a debug message. Retired names are
        reported as errors and their values ignored.

        Args:
            params: Parameter names to values. None gives all defaults.

        Returns:
            PlannerConfig with the given overrides applied

        Raises:
            ConfigurationError: If y_vels is not a list of numbers.
        """
        params = dict(params or {})

        for old_name, new_name in DEPRECATED_NAMES.items():
            if old_name in params:
                logger.error(
                    f"You are using {old_name} where you should be using {new_name}. "
                    "Please change your configuration files appropriately."
                )
                params.pop(old_name)

        # Point grid parameters live in their own namespace
        for name in ("max_sensor_range", "min_pt_separation", "max_obstacle_height", "grid_resolution"):
            key = f"point_grid/{name}"
            if key in params:
                params[name] = params.pop(key)

        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in params.items():
            if key in known:
                kwargs[key] = value
            else:
                logger.debug(f"Ignoring unknown planner parameter: {key}")

        if "y_vels" in kwargs:
            kwargs["y_vels"] = load_y_vels(kwargs["y_vels"])

        return cls(**kwargs)

    def validate(self) -> List[str]:
        """Report nonsensical values without correcting them.

        Returns:
            List of warning messages, each also logged
        """
        warnings = []

        if self.backup_vel >= 0.0:
            warnings.append(
                "You've specified a positive backup velocity. This is probably not what you want "
                "and will cause the robot to move forward instead of backward. You should probably "
                "change your backup_vel parameter to be negative"
            )

        if self.min_in_place_rotational_vel > self.max_rotational_vel:
            warnings.append(
                f"min_in_place_rotational_vel ({self.min_in_place_rotational_vel}) exceeds "
                f"max_rotational_vel ({self.max_rotational_vel})"
            )

        for message in warnings:
            logger.warning(message)

        return warnings

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_y_vels(value: Any) -> List[float]:
    """Validate the lateral velocity sample list.

    Args:
        value: Configured y_vels value

    Returns:
        List of floats

    Raises:
        ConfigurationError: If value is not a list of numbers.
    """
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError("The y velocities to explore must be specified as a list")

    y_vels = []
    for vel in value:
        if isinstance(vel, bool) or not isinstance(vel, (int, float)):
            raise ConfigurationError(f"y velocity entries must be numbers, got {vel!r}")
        y_vels.append(float(vel))
    return y_vels


def load_params(filepath: Optional[Union[str, Path]]) -> Optional[Dict[str, Any]]:
    """Read planner parameter overrides from a JSON file.

    The result is handed to the planner's initialize(), which applies the
    same checks as for parameters given in code.

    Args:
        filepath: Path to a JSON object of parameter names, or None

    Returns:
        Parameter mapping, or None if no file was given

    Raises:
        ConfigurationError: If the file does not hold a JSON object.
    """
    if filepath is None:
        return None
    with open(filepath) as f:
        params = json.load(f)
    if not isinstance(params, dict):
        raise ConfigurationError(f"Expected a JSON object in {filepath}")
    return params
