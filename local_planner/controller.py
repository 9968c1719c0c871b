"""Control loop of the trajectory planner.

TrajectoryPlannerController ties the planner components together and runs one
control tick per compute_velocity_commands() call:

1. Look up the robot pose in the operating frame
2. Window the global plan around the robot and prune the traversed prefix
3. Re-centre the costmap on the robot and refresh the occupancy snapshot
   the evaluator checks footprints against
4. Snapshot the odometry velocity
5. Near the goal: stop, then rotate in place onto the goal heading
6. Otherwise: ask the trajectory evaluator for the best command
7. Publish the plan window and the chosen local trajectory

Every failure is contained within its tick: the tick logs what went wrong
and returns (zero velocity, False). No exception leaves a public method.
"""

import logging
import threading
import time
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from . import config
from .base import LocalPlanner
from .config import PlannerConfig
from .costmap import Costmap
from .errors import (
    ConfigurationError,
    EmptyPlanError,
    ExtrapolationError,
    InvalidCommandError,
    PlannerError,
    TransformError,
    UninitializedError,
)
from .evaluator import PurePursuitEvaluator, Trajectory, TrajectoryEvaluator
from .geometry import ZERO_VELOCITY, Pose, Velocity
from .goal_checker import ControllerState, GoalChecker
from .kinematics import KinematicCommandSynthesizer, KinematicLimits
from .odometry import SharedVelocityEstimate
from .plan_window import prune_plan, transform_global_plan, window_radius
from .registry import register_planner
from .transforms import TransformGateway
from .visualization import PathPublisher

logger = logging.getLogger(__name__)


@register_planner("trajectory_planner")
class TrajectoryPlannerController(LocalPlanner):
    """Local planner that follows a global plan and settles on its goal.

    Attributes:
        name: Name given at initialize()
        config: Active planner configuration
        global_plan: Stored plan; its last pose is the goal
        velocity_estimate: Latest odometry velocity shared with the odometry producer
        goal_checker: Goal tolerances and controller state
        evaluator: Trajectory evaluator
        synthesizer: Stop and rotate-in-place command builder
        g_plan_pub: Output for the windowed global plan
        l_plan_pub: Output for the chosen local trajectory
    """

    def __init__(
        self,
        evaluator: Optional[TrajectoryEvaluator] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Create an uninitialized controller.

        Args:
            evaluator: Trajectory evaluator to use. If None, a
                PurePursuitEvaluator is built from the configuration at
                initialize() time.
            clock: Source of the stamps put on published local plans
        """
        self.name = ""
        self.initialized = False
        self.clock = clock

        self.transform_gateway: Optional[TransformGateway] = None
        self.costmap: Optional[Costmap] = None
        self.config = PlannerConfig()
        self.global_frame = config.GLOBAL_FRAME
        self.robot_base_frame = config.ROBOT_BASE_FRAME

        self.global_plan: List[Pose] = []
        self._plan_lock = threading.Lock()

        self.velocity_estimate = SharedVelocityEstimate()
        self.goal_checker = GoalChecker(self.velocity_estimate)
        self.evaluator = evaluator
        self.synthesizer: Optional[KinematicCommandSynthesizer] = None

        self.g_plan_pub: Optional[PathPublisher] = None
        self.l_plan_pub: Optional[PathPublisher] = None

        # Outputs of the last tick, kept for logging
        self.last_transformed_plan: List[Pose] = []
        self.last_local_plan: List[Pose] = []

    @property
    def state(self) -> ControllerState:
        return self.goal_checker.state

    @property
    def rotating_to_goal(self) -> bool:
        return self.goal_checker.rotating_to_goal

    def initialize(
        self,
        name: str,
        transform_gateway: TransformGateway,
        costmap: Costmap,
        params: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Set the planner up. Calling it a second time does nothing.

        Args:
            name: Planner name, used to name the plan outputs
            transform_gateway: Resolves poses between frames
            costmap: Map collaborator giving the robot pose and occupancy
            params: Parameter overrides, see PlannerConfig

        Returns:
            True if the planner is initialized after the call
        """
        if self.initialized:
            logger.warning(
                "This planner has already been initialized, you can't call it twice, doing nothing"
            )
            return True

        try:
            cfg = PlannerConfig.from_mapping(params)
        except ConfigurationError as e:
            logger.error(f"Invalid planner configuration: {e}")
            return False
        cfg.validate()

        if cfg.world_model != "costmap":
            logger.error(
                f"World model '{cfg.world_model}' is not supported. At this time, only costmap "
                "world models are supported by this controller"
            )
            return False

        self.name = name
        self.config = cfg
        self.transform_gateway = transform_gateway
        self.costmap = costmap
        self.global_frame = costmap.global_frame
        self.robot_base_frame = costmap.robot_base_frame

        self.g_plan_pub = PathPublisher(f"{name}/global_plan", self.global_frame)
        self.l_plan_pub = PathPublisher(f"{name}/local_plan", self.global_frame)

        self.goal_checker = GoalChecker(
            self.velocity_estimate,
            xy_goal_tolerance=cfg.xy_goal_tolerance,
            yaw_goal_tolerance=cfg.yaw_goal_tolerance,
            trans_stopped_velocity=cfg.trans_stopped_velocity,
            rot_stopped_velocity=cfg.rot_stopped_velocity,
        )

        if self.evaluator is None:
            self.evaluator = PurePursuitEvaluator.from_config(cfg, costmap.circumscribed_radius)
        self.evaluator.update_costmap(costmap.get_costmap_copy())

        self.synthesizer = KinematicCommandSynthesizer(self.evaluator, KinematicLimits.from_config(cfg))

        self.initialized = True
        logger.info(
            f"Initialized local planner '{name}' in frame {self.global_frame} "
            f"(xy tolerance {cfg.xy_goal_tolerance:.2f}m, yaw tolerance {cfg.yaw_goal_tolerance:.2f}rad)"
        )
        logger.debug(f"Planner configuration: {cfg.to_dict()}")
        return True

    def odom_callback(self, velocity: Velocity, stamp: Optional[float] = None) -> None:
        """Record the latest odometry velocity, expressed in the base frame."""
        self.velocity_estimate.update(velocity, stamp)

    def set_plan(self, plan: Sequence[Pose]) -> bool:
        """Replace the stored plan.

        The new plan also clears any previous goal decision, including the
        sticky rotate-in-place state.
        """
        if not self.initialized:
            logger.error(str(UninitializedError()))
            return False

        new_plan = list(plan)
        with self._plan_lock:
            self.global_plan = new_plan
            self.goal_checker.reset()

        logger.debug(f"Received plan with {len(new_plan)} waypoints")
        return True

    def is_goal_reached(self) -> bool:
        if not self.initialized:
            logger.error(str(UninitializedError()))
            return False

        with self._plan_lock:
            plan = self.global_plan
            if not plan:
                logger.error(str(EmptyPlanError()))
                return False
            plan_goal = plan[-1]

        try:
            goal_pose = self._to_global_frame(plan_goal, len(plan))
        except TransformError:
            return False

        global_pose = self.costmap.get_robot_pose()
        if global_pose is None:
            return False

        return self.goal_checker.goal_reached(global_pose, goal_pose)

    def compute_velocity_commands(self) -> Tuple[Velocity, bool]:
        """Run one control tick.

        Returns:
            Tuple of (command, success). The command is zero whenever success
            is False.
        """
        try:
            return self._tick()
        except UninitializedError as e:
            logger.error(str(e))
        except EmptyPlanError as e:
            logger.error(str(e))
        except TransformError:
            logger.warning("Could not transform the global plan to the frame of the controller")
        except InvalidCommandError as e:
            logger.warning(str(e))
        except PlannerError as e:
            logger.error(f"Control tick failed: {e}")
        return ZERO_VELOCITY, False

    def _to_global_frame(self, pose: Pose, plan_size: int) -> Pose:
        """Latest-available transform of a plan pose into the operating frame."""
        try:
            transform = self.transform_gateway.lookup_transform(
                self.global_frame, pose.frame_id, None, self.costmap.transform_timeout
            )
        except ExtrapolationError as e:
            logger.error(f"Extrapolation Error: {e}")
            logger.error(
                f"Global Frame: {self.global_frame} Plan Frame size {plan_size}: {pose.frame_id}"
            )
            raise
        except TransformError as e:
            logger.error(f"{type(e).__name__}: {e}")
            raise
        return transform.apply(pose)

    def _tick(self) -> Tuple[Velocity, bool]:
        if not self.initialized:
            raise UninitializedError()

        global_pose = self.costmap.get_robot_pose()
        if global_pose is None:
            return ZERO_VELOCITY, False

        with self._plan_lock:
            try:
                transformed_plan = transform_global_plan(
                    self.global_plan,
                    self.transform_gateway,
                    self.global_frame,
                    self.robot_base_frame,
                    window_radius(self.costmap.size_in_meters_x, self.costmap.size_in_meters_y),
                    self.costmap.transform_timeout,
                )
            except ExtrapolationError as e:
                logger.error(f"Extrapolation Error: {e}")
                if self.global_plan:
                    logger.error(
                        f"Global Frame: {self.global_frame} Plan Frame size {len(self.global_plan)}: "
                        f"{self.global_plan[0].frame_id}"
                    )
                raise
            except TransformError as e:
                logger.error(f"{type(e).__name__}: {e}")
                raise

            if self.config.prune_plan:
                prune_plan(global_pose, transformed_plan, self.global_plan)

        # Follow the robot, clear its footprint and take this tick's occupancy snapshot
        self.costmap.update_map(global_pose)
        self.costmap.clear_robot_footprint(global_pose)
        self.evaluator.update_costmap(self.costmap.get_costmap_copy())

        robot_vel = self.velocity_estimate.snapshot()

        self.last_transformed_plan = transformed_plan
        self.last_local_plan = []

        if not transformed_plan:
            logger.debug("No waypoints of the global plan are near the robot")
            return ZERO_VELOCITY, False

        # The goal is the last pose of the plan
        goal_point = transformed_plan[-1]

        if self.goal_checker.position_reached(global_pose, goal_point):
            if self.goal_checker.orientation_reached(global_pose, goal_point):
                cmd_vel = ZERO_VELOCITY
                self.goal_checker.mark_reached()
            else:
                # Keeps the evaluator's distance fields current
                self.evaluator.update_plan(transformed_plan)

                if not self.goal_checker.rotating_to_goal and not self.goal_checker.stopped(robot_vel):
                    cmd_vel, valid = self.synthesizer.stop_with_acc_limits(global_pose, robot_vel)
                    if not valid:
                        raise InvalidCommandError("Could not find a valid command to stop the robot")
                else:
                    self.goal_checker.enter_rotation()
                    cmd_vel, valid = self.synthesizer.rotate_to_goal(
                        global_pose, robot_vel, goal_point.theta
                    )
                    if not valid:
                        raise InvalidCommandError("Could not find a valid command to rotate to the goal")

            # No local trajectory while settling on the goal
            self._publish(transformed_plan, [])
            return cmd_vel, True

        if self.goal_checker.state == ControllerState.REACHED:
            self.goal_checker.reset()

        self.evaluator.update_plan(transformed_plan)
        path, drive_cmds = self.evaluator.find_best_path(global_pose, robot_vel)

        if path.cost < 0.0:
            self._publish(transformed_plan, [])
            logger.warning("No feasible trajectory found, the robot cannot move")
            return ZERO_VELOCITY, False

        local_plan = self._trajectory_to_plan(path)
        self.last_local_plan = local_plan
        self._publish(transformed_plan, local_plan)
        return drive_cmds, True

    def _trajectory_to_plan(self, path: Trajectory) -> List[Pose]:
        now = self.clock()
        return [Pose(x, y, th, self.global_frame, now) for x, y, th in path.points]

    def _publish(self, transformed_plan: List[Pose], local_plan: List[Pose]) -> None:
        self.g_plan_pub.publish_plan(transformed_plan, config.GLOBAL_PLAN_COLOR)
        self.l_plan_pub.publish_plan(local_plan, config.LOCAL_PLAN_COLOR)
