"""Shared fixtures for the local planner tests."""

import matplotlib

matplotlib.use("Agg")

import pytest

from local_planner import config
from local_planner.controller import TrajectoryPlannerController
from local_planner.costmap import Costmap
from local_planner.evaluator import Trajectory, TrajectoryEvaluator
from local_planner.geometry import Pose, Transform2D, Velocity
from local_planner.transforms import TransformBuffer


class StubEvaluator(TrajectoryEvaluator):
    """Evaluator whose answers are set by the test.

    Attributes:
        accept: Result of check_trajectory
        best: (trajectory, command) returned by find_best_path
        checked: Candidates passed to check_trajectory
        plans: Plans passed to update_plan
        last_costmap: Most recent occupancy snapshot
    """

    def __init__(self, accept=True, best=None):
        self.accept = accept
        self.best = best if best is not None else (Trajectory(0.3, 0.0, 0.1, cost=1.0), Velocity(0.3, 0.0, 0.1))
        self.checked = []
        self.plans = []
        self.costmaps = 0
        self.last_costmap = None

    def update_plan(self, plan):
        self.plans.append(list(plan))

    def update_costmap(self, costmap):
        self.costmaps += 1
        self.last_costmap = costmap

    def check_trajectory(self, pose, current_vel, candidate):
        self.checked.append(candidate)
        return self.accept

    def find_best_path(self, pose, current_vel):
        return self.best


def set_robot_pose(buffer, x, y, theta, stamp=0.0):
    """Place base_link in odom."""
    buffer.set_transform(Transform2D(x, y, theta, config.GLOBAL_FRAME, config.ROBOT_BASE_FRAME, stamp))


def straight_plan(length=3.0, spacing=0.1, frame_id=config.GLOBAL_FRAME, heading=0.0):
    count = int(round(length / spacing))
    return [Pose(i * spacing, 0.0, heading, frame_id, 0.0) for i in range(count + 1)]


@pytest.fixture
def buffer():
    buf = TransformBuffer()
    set_robot_pose(buf, 0.0, 0.0, 0.0)
    return buf


@pytest.fixture
def costmap(buffer):
    return Costmap(buffer)


@pytest.fixture
def stub_evaluator():
    return StubEvaluator()


@pytest.fixture
def controller(buffer, costmap, stub_evaluator):
    planner = TrajectoryPlannerController(evaluator=stub_evaluator, clock=lambda: 42.0)
    assert planner.initialize("test_planner", buffer, costmap)
    return planner
