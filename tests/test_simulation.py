"""End-to-end runs against the kinematic simulator."""

import math
import time

import numpy as np
import pytest

from local_planner.costmap import LETHAL_OBSTACLE
from local_planner.data_collector import DataCollector
from local_planner.geometry import Velocity
from local_planner.goal_checker import ControllerState
from local_planner.simulation import MAP_FRAME, OdometryProducer, SimulatedBase, Simulation, make_plan


class TestMakePlan:
    def test_densifies_segments(self):
        plan = make_plan([(0.0, 0.0), (1.0, 0.0)], spacing=0.1)
        assert len(plan) == 11
        assert plan[-1].x == 1.0
        assert all(p.frame_id == MAP_FRAME for p in plan)

    def test_headings_follow_path_and_final_heading(self):
        plan = make_plan([(0.0, 0.0), (0.0, 1.0)], final_heading=0.3)
        assert plan[0].theta == pytest.approx(math.pi / 2)
        assert plan[-1].theta == 0.3

    def test_single_point(self):
        plan = make_plan([(1.0, 2.0)])
        assert len(plan) == 1
        assert (plan[0].x, plan[0].y) == (1.0, 2.0)


class TestSimulatedBase:
    def test_velocity_ramps_under_limits(self):
        base = SimulatedBase(acc_lim_x=2.5)
        base.step(Velocity(1.0, 0.0, 0.0), 0.1)
        assert base.current_velocity().vx == pytest.approx(0.25)
        assert base.x == pytest.approx(0.025)

    def test_odom_transform(self):
        base = SimulatedBase(1.0, 2.0, 0.5)
        transform = base.odom_transform("odom", "base_link", 3.0)
        assert (transform.x, transform.y, transform.theta) == pytest.approx((1.0, 2.0, 0.5))
        assert transform.stamp == 3.0


class TestClosedLoop:
    def test_reaches_goal_on_straight_plan(self):
        plan = make_plan([(0.0, 0.0), (2.0, 0.0)])
        sim = Simulation(plan)
        result = sim.run(max_time=60.0)

        assert result.reached
        assert math.hypot(sim.base.x - 2.0, sim.base.y) <= 0.1
        assert sim.controller.state == ControllerState.REACHED
        assert result.ticks == len(result.trajectory["t"])

    def test_settles_on_goal_heading(self):
        plan = make_plan([(0.0, 0.0), (1.5, 0.0)], final_heading=math.pi / 2)
        sim = Simulation(plan)
        result = sim.run(max_time=60.0)

        assert result.reached
        assert abs(math.atan2(math.sin(sim.base.theta - math.pi / 2), math.cos(sim.base.theta - math.pi / 2))) <= 0.05
        assert ControllerState.ROTATING_TO_GOAL.value in result.states

    def test_plan_in_shifted_map_frame(self):
        plan = make_plan([(0.5, -0.3), (1.5, 0.5)])
        sim = Simulation(plan, map_to_odom=(0.5, -0.3, 0.0))
        result = sim.run(max_time=60.0)

        assert result.reached
        # Goal (1.5, 0.5) in map is (1.0, 0.8) in odom
        assert math.hypot(sim.base.x - 1.0, sim.base.y - 0.8) <= 0.1

    def test_travels_beyond_half_the_costmap(self):
        plan = make_plan([(0.0, 0.0), (8.0, 0.0)])
        sim = Simulation(plan, obstacles=[(7.02, 3.02)])
        result = sim.run(max_time=60.0)

        assert result.reached
        assert math.hypot(sim.base.x - 8.0, sim.base.y) <= 0.1
        assert np.all(result.trajectory["vy"] == 0.0)
        # Window now centred near the goal, with the obstacle sensed on the way
        assert sim.costmap.origin_x > 0.0
        assert sim.costmap.get_costmap_copy().cost_at(7.02, 3.02) == LETHAL_OBSTACLE

    def test_starts_away_from_odom_origin(self):
        plan = make_plan([(6.0, 0.0), (7.0, 0.0)])
        sim = Simulation(plan, start=(6.0, 0.0, 0.0))
        result = sim.run(max_time=30.0)

        assert result.reached
        assert result.failed_ticks == 0
        assert math.hypot(sim.base.x - 7.0, sim.base.y) <= 0.1

    def test_run_is_logged(self, tmp_path):
        plan = make_plan([(0.0, 0.0), (1.0, 0.0)])
        sim = Simulation(plan)
        with DataCollector(run_dir=str(tmp_path / "run")) as collector:
            result = sim.run(max_time=30.0, collector=collector)

        lines = collector.tick_output_path.read_text().strip().splitlines()
        assert len(lines) == result.ticks + 1

    def test_time_limit(self):
        plan = make_plan([(0.0, 0.0), (3.0, 0.0)])
        result = Simulation(plan).run(max_time=1.0)
        assert not result.reached
        assert result.duration == pytest.approx(1.0, abs=0.11)

    def test_invalid_parameters_fail_to_start(self):
        with pytest.raises(RuntimeError):
            Simulation(make_plan([(0.0, 0.0), (1.0, 0.0)]), params={"world_model": "voxel"})


def test_odometry_producer_feeds_controller():
    plan = make_plan([(0.0, 0.0), (1.0, 0.0)])
    sim = Simulation(plan)
    sim.base.velocity = Velocity(0.2, 0.0, 0.0)

    producer = OdometryProducer(sim.base, sim.controller, rate=200.0)
    producer.start()
    try:
        deadline = time.monotonic() + 2.0
        while sim.controller.velocity_estimate.updates == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        producer.stop()
        producer.join(timeout=1.0)

    assert not producer.is_alive()
    assert sim.controller.velocity_estimate.snapshot() == Velocity(0.2, 0.0, 0.0)
