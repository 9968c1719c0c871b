"""Trajectory Evaluator interface and a pure pursuit reference evaluator.

The controller treats the evaluator as an opaque collaborator with three
operations:
- update_plan(window): refresh the plan the evaluator scores against
- check_trajectory(pose, current_vel, candidate_vel): is the candidate feasible?
- find_best_path(pose, current_vel): best trajectory and its drive command

A negative trajectory cost means no feasible trajectory was found.

PurePursuitEvaluator is the evaluator shipped with the package. It steers
toward a lookahead point on the local plan with the pure pursuit curvature
law, rolls the command out over the simulation horizon, and rejects rollouts
whose footprint touches an obstacle in the occupancy snapshot. If the pure
pursuit command is blocked it falls back to slower forward samples, then
lateral samples on holonomic bases.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from . import config
from .costmap import OccupancyGrid
from .geometry import Pose, Velocity, normalize_angle, sign
from .kinematics import KinematicLimits

logger = logging.getLogger(__name__)


class Trajectory:
    """Simulated rollout of one velocity command.

    Attributes:
        xv: Commanded forward velocity (m/s)
        yv: Commanded lateral velocity (m/s)
        thetav: Commanded angular velocity (rad/s)
        cost: Score of the rollout, negative if infeasible
        points: Rollout poses as (x, y, theta) tuples in the operating frame
    """

    def __init__(self, xv: float = 0.0, yv: float = 0.0, thetav: float = 0.0, cost: float = -1.0):
        self.xv = xv
        self.yv = yv
        self.thetav = thetav
        self.cost = cost
        self.points: List[Tuple[float, float, float]] = []

    @property
    def velocity(self) -> Velocity:
        return Velocity(self.xv, self.yv, self.thetav)

    def add_point(self, x: float, y: float, th: float) -> None:
        self.points.append((x, y, th))

    def __repr__(self) -> str:
        return (
            f"Trajectory(xv={self.xv:.3f}, yv={self.yv:.3f}, thetav={self.thetav:.3f}, "
            f"cost={self.cost:.3f}, points={len(self.points)})"
        )


class TrajectoryEvaluator:
    """Interface the controller uses to validate and rank motions."""

    def update_plan(self, plan: Sequence[Pose]) -> None:
        raise NotImplementedError

    def update_costmap(self, costmap: OccupancyGrid) -> None:
        """Replace the occupancy snapshot used for footprint checks."""
        raise NotImplementedError

    def check_trajectory(self, pose: Pose, current_vel: Velocity, candidate: Velocity) -> bool:
        raise NotImplementedError

    def find_best_path(self, pose: Pose, current_vel: Velocity) -> Tuple[Trajectory, Velocity]:
        raise NotImplementedError


class PurePursuitEvaluator(TrajectoryEvaluator):
    """Pure pursuit steering with footprint-checked rollouts.

    Attributes:
        limits: Kinematic limits of the base
        sim_time: Rollout horizon (seconds)
        sim_granularity: Distance between rollout points (meters)
        vx_samples: Forward speeds tried when the preferred command is blocked
        heading_lookahead: Minimum lookahead distance along the plan (meters)
        robot_radius: Footprint radius (meters)
        holonomic_robot: Whether lateral samples are tried
        y_vels: Lateral velocity samples (m/s)
    """

    def __init__(
        self,
        limits: KinematicLimits,
        robot_radius: float = config.ROBOT_RADIUS,
        sim_time: float = config.SIM_TIME,
        sim_granularity: float = config.SIM_GRANULARITY,
        vx_samples: int = config.VX_SAMPLES,
        path_distance_bias: float = config.PATH_DISTANCE_BIAS,
        goal_distance_bias: float = config.GOAL_DISTANCE_BIAS,
        occdist_scale: float = config.OCCDIST_SCALE,
        heading_lookahead: float = config.HEADING_LOOKAHEAD,
        holonomic_robot: bool = config.HOLONOMIC_ROBOT,
        dwa: bool = config.DWA,
        y_vels: Optional[Sequence[float]] = None,
        lookahead_time: float = 0.8,
        max_lookahead: float = 2.0,
    ):
        self.limits = limits
        self.robot_radius = robot_radius
        self.sim_time = sim_time
        self.sim_granularity = sim_granularity
        self.vx_samples = max(1, vx_samples)
        self.path_distance_bias = path_distance_bias
        self.goal_distance_bias = goal_distance_bias
        self.occdist_scale = occdist_scale
        self.heading_lookahead = heading_lookahead
        self.holonomic_robot = holonomic_robot
        self.dwa = dwa
        self.y_vels = list(y_vels) if y_vels is not None else list(config.Y_VELS)
        self.lookahead_time = lookahead_time
        self.max_lookahead = max_lookahead

        self.costmap: Optional[OccupancyGrid] = None
        self.path_x = np.zeros(0)
        self.path_y = np.zeros(0)

    @classmethod
    def from_config(cls, cfg: config.PlannerConfig, robot_radius: float) -> "PurePursuitEvaluator":
        return cls(
            KinematicLimits.from_config(cfg),
            robot_radius=robot_radius,
            sim_time=cfg.sim_time,
            sim_granularity=cfg.sim_granularity,
            vx_samples=cfg.vx_samples,
            path_distance_bias=cfg.path_distance_bias,
            goal_distance_bias=cfg.goal_distance_bias,
            occdist_scale=cfg.occdist_scale,
            heading_lookahead=cfg.heading_lookahead,
            holonomic_robot=cfg.holonomic_robot,
            dwa=cfg.dwa,
            y_vels=cfg.y_vels,
        )

    def update_plan(self, plan: Sequence[Pose]) -> None:
        self.path_x = np.array([p.x for p in plan], dtype=float)
        self.path_y = np.array([p.y for p in plan], dtype=float)

    def update_costmap(self, costmap: OccupancyGrid) -> None:
        self.costmap = costmap

    # ------------------------------------------------------------------
    # Rollout
    # ------------------------------------------------------------------

    def _ramp(self, current: float, target: float, acc_lim: float, dt: float) -> float:
        step = acc_lim * dt
        return current + max(-step, min(step, target - current))

    def generate_trajectory(
        self, pose: Pose, current_vel: Velocity, candidate: Velocity
    ) -> Trajectory:
        """Roll out candidate from pose, ramping from current_vel under the acceleration limits.

        Returns:
            Trajectory whose cost is the worst footprint cost along the rollout,
            or -1.0 if the footprint hits an obstacle or leaves the map
        """
        traj = Trajectory(candidate.vx, candidate.vy, candidate.omega, cost=0.0)

        # Enough steps that neither translation nor rotation skips a granule
        linear = max(abs(candidate.vx), abs(candidate.vy)) * self.sim_time
        angular = abs(candidate.omega) * self.sim_time * self.robot_radius
        num_steps = max(1, int(math.ceil(max(linear, angular) / self.sim_granularity)))
        dt = self.sim_time / num_steps

        x, y, th = pose.x, pose.y, pose.theta
        vx, vy, vth = current_vel.vx, current_vel.vy, current_vel.omega

        worst = 0.0
        for _ in range(num_steps):
            if self.costmap is not None:
                cost = self.costmap.footprint_cost(x, y, self.robot_radius)
                if cost < 0.0:
                    traj.cost = -1.0
                    return traj
                worst = max(worst, cost)
            traj.add_point(x, y, th)

            vx = self._ramp(vx, candidate.vx, self.limits.acc_lim_x, dt)
            vy = self._ramp(vy, candidate.vy, self.limits.acc_lim_y, dt)
            vth = self._ramp(vth, candidate.omega, self.limits.acc_lim_theta, dt)

            x += (vx * math.cos(th) - vy * math.sin(th)) * dt
            y += (vx * math.sin(th) + vy * math.cos(th)) * dt
            th = normalize_angle(th + vth * dt)

        traj.cost = worst
        return traj

    def check_trajectory(self, pose: Pose, current_vel: Velocity, candidate: Velocity) -> bool:
        traj = self.generate_trajectory(pose, current_vel, candidate)
        return traj.cost >= 0.0

    # ------------------------------------------------------------------
    # Pure pursuit
    # ------------------------------------------------------------------

    def compute_lookahead(self, velocity: float) -> float:
        """Velocity-proportional lookahead, never shorter than heading_lookahead."""
        lookahead = self.lookahead_time * abs(velocity) + self.heading_lookahead
        return max(self.heading_lookahead, min(self.max_lookahead, lookahead))

    def find_closest_point(self, x: float, y: float) -> int:
        distances = np.hypot(self.path_x - x, self.path_y - y)
        return int(np.argmin(distances))

    def find_lookahead_point(
        self, x: float, y: float, start_idx: int, lookahead: float
    ) -> Tuple[float, float, int]:
        """First plan point at least lookahead away, searching forward from start_idx.

        Returns the last plan point if none is far enough.
        """
        for i in range(start_idx, len(self.path_x)):
            if math.hypot(self.path_x[i] - x, self.path_y[i] - y) >= lookahead:
                return float(self.path_x[i]), float(self.path_y[i]), i
        return float(self.path_x[-1]), float(self.path_y[-1]), len(self.path_x) - 1

    def _score(self, traj: Trajectory, target_x: float, target_y: float) -> float:
        end_x, end_y, _ = traj.points[-1]
        path_dist = float(np.min(np.hypot(self.path_x - end_x, self.path_y - end_y)))
        goal_dist = math.hypot(target_x - end_x, target_y - end_y)
        return (
            self.path_distance_bias * path_dist
            + self.goal_distance_bias * goal_dist
            + self.occdist_scale * traj.cost
        )

    def _preferred_speed(self, current_vx: float) -> float:
        speed = self.limits.max_vel_x
        if self.dwa:
            # Reachable within one control period
            speed = min(speed, abs(current_vx) + self.limits.acc_lim_x * config.CONTROL_PERIOD)
        return max(self.limits.min_vel_x, speed)

    def _candidates(self, pose: Pose, current_vel: Velocity, target: Tuple[float, float]):
        target_x, target_y = target
        alpha = normalize_angle(math.atan2(target_y - pose.y, target_x - pose.x) - pose.theta)
        actual_distance = math.hypot(target_x - pose.x, target_y - pose.y)

        if abs(alpha) > math.pi / 2.0:
            # Target is behind: turn in place first
            omega = sign(alpha) * max(self.limits.min_in_place_vel_th, min(self.limits.max_vel_th, abs(alpha)))
            yield Velocity(0.0, 0.0, omega)
            return

        curvature = 2.0 * math.sin(alpha) / actual_distance if actual_distance > 0.01 else 0.0
        top_speed = self._preferred_speed(current_vel.vx)
        for speed in np.linspace(top_speed, self.limits.min_vel_x, self.vx_samples):
            omega = max(self.limits.min_vel_th, min(self.limits.max_vel_th, speed * curvature))
            yield Velocity(float(speed), 0.0, float(omega))

    def _lateral_candidates(self):
        if self.holonomic_robot:
            for vy in self.y_vels:
                yield Velocity(0.0, float(vy), 0.0)

    def _best_of(self, candidates, pose: Pose, current_vel: Velocity, target_x: float, target_y: float):
        best: Optional[Trajectory] = None
        best_score = math.inf
        for candidate in candidates:
            traj = self.generate_trajectory(pose, current_vel, candidate)
            if traj.cost < 0.0 or not traj.points:
                continue
            score = self._score(traj, target_x, target_y)
            if score < best_score:
                best, best_score = traj, score
        return best, best_score

    def find_best_path(self, pose: Pose, current_vel: Velocity) -> Tuple[Trajectory, Velocity]:
        """Best-scoring feasible rollout toward the plan's lookahead point.

        Returns:
            Tuple of (trajectory, drive command). The trajectory cost is
            negative and the command zero if every candidate is blocked.
        """
        if len(self.path_x) == 0:
            logger.warning("No plan to follow, cannot find a path")
            return Trajectory(), Velocity()

        lookahead = self.compute_lookahead(current_vel.vx)
        closest = self.find_closest_point(pose.x, pose.y)
        target_x, target_y, _ = self.find_lookahead_point(pose.x, pose.y, closest, lookahead)

        best, best_score = self._best_of(
            self._candidates(pose, current_vel, (target_x, target_y)), pose, current_vel, target_x, target_y
        )
        if best is None:
            # Sidestep only when nothing forward is feasible
            best, best_score = self._best_of(
                self._lateral_candidates(), pose, current_vel, target_x, target_y
            )

        if best is None:
            logger.debug("Every candidate trajectory is blocked")
            return Trajectory(), Velocity()

        best.cost = best_score
        return best, best.velocity
