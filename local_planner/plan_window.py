"""Plan Window Manager.

Brings the stored global plan into the controller's operating frame and trims
it down to the part that matters for the current tick:
- transform_global_plan: windows the plan around the robot's position
- prune_plan: drops the already-traversed prefix from both the window and the
  stored plan

The window is always one contiguous run of the global plan. If the plan leaves
the search radius and later comes back into it, the later section is not part
of the window.
"""

import logging
from typing import List, Sequence

from .config import PRUNE_DISTANCE_SQ
from .errors import EmptyPlanError
from .geometry import Pose
from .transforms import TransformGateway

logger = logging.getLogger(__name__)


def window_radius(size_in_meters_x: float, size_in_meters_y: float) -> float:
    """Search radius of the plan window: half the larger map extent."""
    return max(size_in_meters_x / 2.0, size_in_meters_y / 2.0)


def transform_global_plan(
    global_plan: Sequence[Pose],
    transform_gateway: TransformGateway,
    global_frame: str,
    robot_base_frame: str,
    dist_threshold: float,
    timeout: float = 0.0,
) -> List[Pose]:
    """Transform the part of the plan around the robot into the operating frame.

    Args:
        global_plan: Stored plan, all poses in the same frame
        transform_gateway: Resolves transforms between frames
        global_frame: Operating frame of the controller
        robot_base_frame: Frame attached to the robot base
        dist_threshold: Search radius around the robot (meters)
        timeout: Longest time to wait for a transform (seconds)

    Returns:
        Consecutive plan poses within the search radius, in global_frame.
        Empty if no waypoint lies within the radius.

    Raises:
        EmptyPlanError: If global_plan is empty.
        TransformError: If the plan frame or the robot base cannot be resolved.
    """
    if not global_plan:
        raise EmptyPlanError()

    plan_frame = global_plan[0].frame_id

    # Transform taking plan coordinates into the operating frame, latest available
    transform = transform_gateway.lookup_transform(global_frame, plan_frame, None, timeout)

    # Robot position expressed in the plan's frame
    robot_pose = transform_gateway.transform_pose(
        plan_frame, Pose(0.0, 0.0, 0.0, robot_base_frame, None), timeout
    )

    sq_dist_threshold = dist_threshold * dist_threshold

    # Skip to the first waypoint within the search radius
    i = 0
    while i < len(global_plan) and robot_pose.squared_distance_to(global_plan[i]) > sq_dist_threshold:
        i += 1

    # Collect until the plan leaves the radius
    transformed_plan = []
    while i < len(global_plan) and robot_pose.squared_distance_to(global_plan[i]) <= sq_dist_threshold:
        transformed_plan.append(transform.apply(global_plan[i]))
        i += 1

    logger.debug(
        f"Plan window holds {len(transformed_plan)} of {len(global_plan)} waypoints "
        f"(radius {dist_threshold:.2f}m)"
    )
    return transformed_plan


def prune_plan(robot_pose: Pose, plan: List[Pose], global_plan: List[Pose]) -> int:
    """Remove the traversed prefix of the plan in place.

    Waypoints are removed from the front of both lists while they lie closer
    than one meter to the robot; the first waypoint at or beyond that distance
    stops the pruning. The last waypoint is the goal and is never removed.

    Args:
        robot_pose: Robot pose in the plan window's frame
        plan: Plan window, modified in place
        global_plan: Stored global plan, modified in place

    Returns:
        Number of waypoints removed from each list
    """
    assert len(global_plan) >= len(plan), "global plan must not be shorter than its window"

    pruned = 0
    while len(plan) > 1:
        w = plan[0]
        if robot_pose.squared_distance_to(w) >= PRUNE_DISTANCE_SQ:
            logger.debug(
                f"Nearest unpruned waypoint to <{robot_pose.x:f}, {robot_pose.y:f}> "
                f"is <{w.x:f}, {w.y:f}>"
            )
            break
        del plan[0]
        del global_plan[0]
        pruned += 1

    return pruned
