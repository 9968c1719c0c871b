"""Offline kinematic simulation for the local planner.

Runs a controller against a simulated base without any external runtime:
- the base integrates the commanded velocity under its acceleration limits
- odometry (odom -> base_link) is written into a TransformBuffer every step
- velocity samples reach the controller either inline, once per step, or from
  a separate OdometryProducer thread running at its own rate
- the plan lives in the "map" frame, linked to "odom" by a static transform,
  so every tick exercises the plan window's frame handling

Used by the command-line interface and by the end-to-end tests.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from . import config
from .controller import TrajectoryPlannerController
from .costmap import Costmap
from .data_collector import DataCollector
from .geometry import Pose, Transform2D, Velocity, normalize_angle
from .registry import create_planner
from .transforms import TransformBuffer

logger = logging.getLogger(__name__)

MAP_FRAME = "map"
"""Frame the simulated global plan is expressed in."""


class SimulatedBase:
    """Planar base that tracks velocity commands under acceleration limits.

    State is kept in the odom frame; velocities are in the base frame.
    """

    def __init__(
        self,
        x: float = 0.0,
        y: float = 0.0,
        theta: float = 0.0,
        acc_lim_x: float = config.ACC_LIM_X,
        acc_lim_y: float = config.ACC_LIM_Y,
        acc_lim_theta: float = config.ACC_LIM_THETA,
    ):
        self.x = x
        self.y = y
        self.theta = theta
        self.velocity = Velocity()
        self.acc_lim_x = acc_lim_x
        self.acc_lim_y = acc_lim_y
        self.acc_lim_theta = acc_lim_theta
        self._lock = threading.Lock()

    @staticmethod
    def _ramp(current: float, target: float, step: float) -> float:
        return current + max(-step, min(step, target - current))

    def step(self, cmd: Velocity, dt: float) -> None:
        with self._lock:
            v = self.velocity
            vx = self._ramp(v.vx, cmd.vx, self.acc_lim_x * dt)
            vy = self._ramp(v.vy, cmd.vy, self.acc_lim_y * dt)
            vth = self._ramp(v.omega, cmd.omega, self.acc_lim_theta * dt)
            self.velocity = Velocity(vx, vy, vth)

            self.x += (vx * math.cos(self.theta) - vy * math.sin(self.theta)) * dt
            self.y += (vx * math.sin(self.theta) + vy * math.cos(self.theta)) * dt
            self.theta = normalize_angle(self.theta + vth * dt)

    def odom_transform(self, frame: str, base_frame: str, stamp: float) -> Transform2D:
        with self._lock:
            return Transform2D(self.x, self.y, self.theta, frame, base_frame, stamp)

    def current_velocity(self) -> Velocity:
        with self._lock:
            return self.velocity


class OdometryProducer(threading.Thread):
    """Delivers the base velocity to the controller from its own thread."""

    def __init__(self, base: SimulatedBase, controller: TrajectoryPlannerController, rate: float = 50.0):
        super().__init__(name="odometry", daemon=True)
        self.base = base
        self.controller = controller
        self.period = 1.0 / rate
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            self.controller.odom_callback(self.base.current_velocity())
            self._stop_event.wait(self.period)

    def stop(self) -> None:
        self._stop_event.set()


@dataclass
class SimulationResult:
    """Outcome of a simulated run."""

    reached: bool
    duration: float
    ticks: int
    failed_ticks: int
    trajectory: Dict[str, np.ndarray] = field(default_factory=dict)
    states: List[str] = field(default_factory=list)


def make_plan(points: Sequence[Tuple[float, float]], frame_id: str = MAP_FRAME, final_heading: Optional[float] = None, spacing: float = 0.05) -> List[Pose]:
    """Densify a polyline into plan poses whose headings follow the path.

    Args:
        points: Polyline corners (x, y)
        frame_id: Frame of the plan
        final_heading: Heading of the goal pose. Defaults to the last segment's direction.
        spacing: Distance between consecutive poses (meters)

    Returns:
        Plan poses ending exactly on the last corner
    """
    if len(points) == 1:
        x, y = points[0]
        return [Pose(x, y, final_heading or 0.0, frame_id, 0.0)]

    plan = []
    heading = 0.0
    for (x0, y0), (x1, y1) in zip(points[:-1], points[1:]):
        length = math.hypot(x1 - x0, y1 - y0)
        heading = math.atan2(y1 - y0, x1 - x0)
        steps = max(1, int(length / spacing))
        for i in range(steps):
            ratio = i / steps
            plan.append(Pose(x0 + ratio * (x1 - x0), y0 + ratio * (y1 - y0), heading, frame_id, 0.0))

    x, y = points[-1]
    plan.append(Pose(x, y, final_heading if final_heading is not None else heading, frame_id, 0.0))
    return plan


class Simulation:
    """Closed-loop run of a local planner against a SimulatedBase.

    Attributes:
        buffer: Transform tree (map -> odom -> base_link)
        costmap: Local costmap in the odom frame
        controller: Planner under test
        base: Simulated robot
        time: Simulated time (seconds)
    """

    def __init__(
        self,
        plan: Sequence[Pose],
        start: Tuple[float, float, float] = (0.0, 0.0, 0.0),
        params: Optional[Mapping[str, Any]] = None,
        obstacles: Optional[Sequence[Tuple[float, float]]] = None,
        map_to_odom: Tuple[float, float, float] = (0.0, 0.0, 0.0),
        dt: float = config.CONTROL_PERIOD,
        planner_name: str = "trajectory_planner",
        threaded_odometry: bool = False,
        odometry_rate: float = 50.0,
    ):
        self.dt = dt
        self.time = 0.0
        self.threaded_odometry = threaded_odometry
        self.odometry_rate = odometry_rate

        cfg = config.PlannerConfig.from_mapping(params)
        self.base = SimulatedBase(*start, acc_lim_x=cfg.acc_lim_x, acc_lim_y=cfg.acc_lim_y, acc_lim_theta=cfg.acc_lim_th)

        self.buffer = TransformBuffer()
        mx, my, mth = map_to_odom
        self.buffer.set_transform(Transform2D(mx, my, mth, MAP_FRAME, config.GLOBAL_FRAME, 0.0), is_static=True)
        self._publish_odometry()

        self.costmap = Costmap(self.buffer)
        self.costmap.update_map()
        self.obstacles = np.array(obstacles if obstacles else [], dtype=float).reshape(-1, 2)
        self._sense_obstacles()

        self.controller = create_planner(planner_name, clock=lambda: self.time)
        if not self.controller.initialize("local_planner", self.buffer, self.costmap, params):
            raise RuntimeError("Planner failed to initialize")
        self.controller.set_plan(plan)
        self.plan = list(plan)

    def _publish_odometry(self) -> None:
        self.buffer.set_transform(
            self.base.odom_transform(config.GLOBAL_FRAME, config.ROBOT_BASE_FRAME, self.time)
        )

    def _sense_obstacles(self) -> None:
        # Obstacles outside the rolling window are dropped, so re-mark them every step
        if len(self.obstacles):
            self.costmap.mark_obstacles(map(tuple, self.obstacles))

    def step(self) -> Tuple[Velocity, bool]:
        """Advance one control period: odometry, obstacles, tick, integrate."""
        if not self.threaded_odometry:
            self.controller.odom_callback(self.base.current_velocity(), self.time)
        self._sense_obstacles()

        cmd, success = self.controller.compute_velocity_commands()
        self.base.step(cmd, self.dt)
        self.time += self.dt
        self._publish_odometry()
        return cmd, success

    def run(
        self,
        max_time: float = 60.0,
        collector: Optional[DataCollector] = None,
        realtime: bool = False,
    ) -> SimulationResult:
        """Run until the goal is reached or max_time elapses.

        Args:
            max_time: Simulated time limit (seconds)
            collector: Optional CSV logger
            realtime: Sleep between steps so the run takes wall-clock time

        Returns:
            SimulationResult with the robot trajectory and tick statistics
        """
        producer = None
        if self.threaded_odometry:
            producer = OdometryProducer(self.base, self.controller, self.odometry_rate)
            producer.start()

        rows: Dict[str, List[float]] = {k: [] for k in ("t", "x", "y", "theta", "vx", "vy", "omega")}
        states: List[str] = []
        ticks = failed = 0
        reached = False

        try:
            while self.time < max_time:
                cmd, success = self.step()
                ticks += 1
                failed += 0 if success else 1

                state = self.controller.state.value
                states.append(state)
                rows["t"].append(self.time)
                rows["x"].append(self.base.x)
                rows["y"].append(self.base.y)
                rows["theta"].append(self.base.theta)
                rows["vx"].append(cmd.vx)
                rows["vy"].append(cmd.vy)
                rows["omega"].append(cmd.omega)

                if collector is not None:
                    collector.log_tick(
                        self.time,
                        self.costmap.get_robot_pose(),
                        cmd,
                        success,
                        state,
                        len(self.controller.global_plan),
                        len(self.controller.last_transformed_plan),
                    )
                    collector.log_odometry(self.time, self.base.current_velocity())

                if self.controller.is_goal_reached():
                    reached = True
                    logger.info(f"Goal reached after {self.time:.1f}s ({ticks} ticks)")
                    break

                if realtime:
                    time.sleep(self.dt)
        finally:
            if producer is not None:
                producer.stop()
                producer.join(timeout=1.0)

        if not reached:
            logger.warning(f"Goal not reached within {max_time:.1f}s")

        return SimulationResult(
            reached=reached,
            duration=self.time,
            ticks=ticks,
            failed_ticks=failed,
            trajectory={k: np.array(v) for k, v in rows.items()},
            states=states,
        )
