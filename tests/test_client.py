"""Tests for the WebSocket bridge message handling (no network)."""

import asyncio
import json
import logging

import pytest

from local_planner.client import CustomFormatter, PlannerClient
from local_planner.costmap import LETHAL_OBSTACLE
from local_planner.geometry import Velocity


@pytest.fixture
def client():
    return PlannerClient("ws://localhost:8765")


def odom_message(x=0.0, y=0.0, theta=0.0, vx=0.0, omega=0.0, timestamp=0.0):
    return json.dumps(
        {
            "message_type": "odom",
            "timestamp": timestamp,
            "x": x,
            "y": y,
            "theta": theta,
            "vx": vx,
            "vy": 0.0,
            "omega": omega,
        }
    )


def plan_message(poses, frame_id="odom"):
    return json.dumps({"message_type": "plan", "frame_id": frame_id, "timestamp": 0.0, "poses": poses})


@pytest.mark.parametrize("uri", ["", "http://localhost:8765", "localhost:8765"])
def test_invalid_uri(uri):
    with pytest.raises(ValueError):
        PlannerClient(uri)


def test_failed_initialization():
    with pytest.raises(RuntimeError):
        PlannerClient("ws://localhost:8765", params={"world_model": "voxel"})


def test_odom_updates_pose_and_velocity(client):
    client.parse_and_route_message(odom_message(x=1.0, y=0.5, theta=0.2, vx=0.3, timestamp=2.0))
    pose = client.costmap.get_robot_pose()
    assert (pose.x, pose.y, pose.theta) == pytest.approx((1.0, 0.5, 0.2))
    assert client.controller.velocity_estimate.snapshot() == Velocity(0.3, 0.0, 0.0)
    assert client.last_odom_stamp == 2.0


def test_bytes_messages_are_decoded(client):
    client.parse_and_route_message(odom_message(x=1.0).encode("utf-8"))
    assert client.costmap.get_robot_pose().x == pytest.approx(1.0)


def test_plan_message(client):
    client.parse_and_route_message(odom_message())
    client.parse_and_route_message(plan_message([[0.0, 0.0, 0.0], [1.0, 0.0], [2.0, 0.0, 0.0]]))
    plan = client.controller.global_plan
    assert len(plan) == 3
    assert plan[1].theta == 0.0
    assert all(p.frame_id == "odom" for p in plan)


def test_transform_message(client):
    client.parse_and_route_message(odom_message())
    client.parse_and_route_message(
        json.dumps(
            {"message_type": "transform", "parent": "map", "child": "odom", "x": 1.0, "y": 0.0, "theta": 0.0, "static": True}
        )
    )
    transform = client.buffer.lookup_transform("map", "base_link")
    assert transform.x == pytest.approx(1.0)


def test_obstacles_message(client):
    client.parse_and_route_message(json.dumps({"message_type": "obstacles", "points": [[1.0, 1.0]]}))
    assert client.costmap.get_costmap_copy().cost_at(1.0, 1.0) == LETHAL_OBSTACLE

    client.parse_and_route_message(json.dumps({"message_type": "obstacles", "points": [[2.0, 2.0]], "replace": True}))
    grid = client.costmap.get_costmap_copy()
    assert grid.cost_at(1.0, 1.0) == 0
    assert grid.cost_at(2.0, 2.0) == LETHAL_OBSTACLE


def test_malformed_messages_are_logged(client, caplog):
    with caplog.at_level(logging.ERROR):
        client.parse_and_route_message("{not json")
        client.parse_and_route_message(json.dumps({"message_type": "odom", "x": 1.0}))
    assert "Error parsing JSON" in caplog.text
    assert "Error processing message data" in caplog.text


def test_unknown_messages_are_ignored(client):
    client.parse_and_route_message(json.dumps({"message_type": "battery", "level": 0.5}))
    assert client.controller.global_plan == []


def test_tick_at_goal(client):
    client.parse_and_route_message(odom_message())
    client.parse_and_route_message(plan_message([[0.0, 0.0, 0.0]]))

    command = client.tick()
    assert command == {
        "message_type": "cmd_vel",
        "vx": 0.0,
        "vy": 0.0,
        "omega": 0.0,
        "success": True,
        "goal_reached": True,
        "state": "reached",
    }
    assert client.goal_reached


def test_tick_without_plan_fails(client, caplog):
    client.parse_and_route_message(odom_message())
    with caplog.at_level(logging.DEBUG):
        command = client.tick()
    assert command["success"] is False
    assert command["goal_reached"] is False
    assert (command["vx"], command["vy"], command["omega"]) == (0.0, 0.0, 0.0)
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


def test_empty_plan_is_still_reported(client, caplog):
    client.parse_and_route_message(odom_message())
    client.parse_and_route_message(plan_message([]))
    command = client.tick()
    assert command["success"] is False
    assert "zero length" in caplog.text


def test_send_command():
    class FakeWebSocket:
        def __init__(self):
            self.sent = []

        async def send(self, message):
            self.sent.append(message)

    websocket = FakeWebSocket()
    client = PlannerClient("ws://localhost:8765")
    command = {"message_type": "cmd_vel", "vx": 0.1, "vy": 0.0, "omega": 0.2}
    asyncio.run(client.send_command(websocket, command))
    assert json.loads(websocket.sent[0]) == command


def test_custom_formatter_drops_timestamp_for_info():
    formatter = CustomFormatter()
    info = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
    warning = logging.LogRecord("x", logging.WARNING, __file__, 1, "careful", None, None)
    assert formatter.format(info) == "hello"
    assert formatter.format(warning).endswith("WARNING - careful")
