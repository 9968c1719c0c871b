"""Interface every local planner implements.

A host (the simulator, the WebSocket bridge, or any other runtime) drives a
local planner only through these four operations, so planners can be swapped
by name through local_planner.registry.
"""

import abc
from typing import Any, Mapping, Optional, Sequence, Tuple

from .geometry import Pose, Velocity


class LocalPlanner(abc.ABC):
    """Capability set of a local planner."""

    @abc.abstractmethod
    def initialize(
        self,
        name: str,
        transform_gateway: Any,
        costmap: Any,
        params: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """One-time setup. Returns False if the planner could not be set up."""

    @abc.abstractmethod
    def set_plan(self, plan: Sequence[Pose]) -> bool:
        """Replace the stored global plan. Returns False on failure."""

    @abc.abstractmethod
    def compute_velocity_commands(self) -> Tuple[Velocity, bool]:
        """Run one control tick. Returns (command, success)."""

    @abc.abstractmethod
    def is_goal_reached(self) -> bool:
        """True once the robot sits on the goal pose and has stopped."""
