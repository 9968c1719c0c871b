#!/usr/bin/env python3
"""
WebSocket Bridge for Running the Local Planner Against a Robot

This module connects the local planner to a robot bridge server over
WebSocket. The server streams odometry, transforms, obstacles and plans as
JSON messages; the client ticks the controller at the control frequency and
sends back velocity commands.

Incoming messages (by "message_type"):
    odom        {"timestamp", "x", "y", "theta", "vx", "vy", "omega"}
    transform   {"timestamp", "parent", "child", "x", "y", "theta", "static"}
    plan        {"frame_id", "poses": [[x, y, theta], ...]}
    obstacles   {"points": [[x, y], ...], "replace": bool}

Outgoing messages:
    cmd_vel     {"vx", "vy", "omega", "success", "goal_reached", "state"}
"""

import asyncio
import json
import logging
import signal
import time
from typing import Any, Dict, Optional, Union

import websockets

from .config import (
    CONTROL_FREQUENCY,
    GLOBAL_FRAME,
    ROBOT_BASE_FRAME,
    TERM_BLUE,
    TERM_RESET,
    WS_MAX_RETRY_DELAY_SECONDS,
    WS_RETRY_DELAY_SECONDS,
    WS_URI,
)
from .costmap import Costmap
from .data_collector import DataCollector
from .geometry import ZERO_VELOCITY, Pose, Transform2D, Velocity
from .registry import create_planner
from .transforms import TransformBuffer


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            return record.getMessage()
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


class PlannerClient:
    """Local planner driven by a WebSocket robot bridge.

    Attributes:
        uri: WebSocket URI to connect to.
        buffer: Transform tree fed by odom and transform messages.
        costmap: Local costmap fed by obstacle messages.
        controller: Local planner being driven.
        data_collector: Optional CSV logger.
        should_stop: Flag indicating whether to stop the control loop.
    """

    def __init__(
        self,
        uri: str,
        params: Optional[Dict[str, Any]] = None,
        planner_name: str = "trajectory_planner",
        control_frequency: float = CONTROL_FREQUENCY,
        data_collector: Optional[DataCollector] = None,
    ) -> None:
        """Initialize the client.

        Args:
            uri: WebSocket URI to connect to (must start with ws:// or wss://).
            params: Planner parameter overrides.
            planner_name: Registered planner to create.
            control_frequency: Tick rate (Hz).
            data_collector: Optional CSV logger for ticks and odometry.

        Raises:
            ValueError: If URI format is invalid.
            RuntimeError: If the planner fails to initialize.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri: str = uri
        self.should_stop: bool = False
        self.control_period: float = 1.0 / control_frequency
        self.data_collector = data_collector

        self.buffer = TransformBuffer()
        self.costmap = Costmap(self.buffer)
        self.controller = create_planner(planner_name)
        if not self.controller.initialize("local_planner", self.buffer, self.costmap, params):
            raise RuntimeError(f"Planner '{planner_name}' failed to initialize")

        self.plan_received: bool = False
        self.goal_reached: bool = False
        self.last_odom_stamp: Optional[float] = None

    def process_odom_message(self, data: Dict[str, Any]) -> None:
        """Feed an odometry message into the transform tree and velocity estimate."""
        stamp = float(data["timestamp"])
        self.buffer.set_transform(
            Transform2D(
                float(data["x"]), float(data["y"]), float(data["theta"]),
                GLOBAL_FRAME, ROBOT_BASE_FRAME, stamp,
            )
        )
        velocity = Velocity(float(data.get("vx", 0.0)), float(data.get("vy", 0.0)), float(data.get("omega", 0.0)))
        self.controller.odom_callback(velocity, stamp)
        self.last_odom_stamp = stamp

        if self.data_collector is not None:
            self.data_collector.log_odometry(stamp, velocity)

    def process_transform_message(self, data: Dict[str, Any]) -> None:
        self.buffer.set_transform(
            Transform2D(
                float(data["x"]), float(data["y"]), float(data["theta"]),
                data["parent"], data["child"], float(data.get("timestamp", 0.0)),
            ),
            is_static=bool(data.get("static", False)),
        )

    def process_plan_message(self, data: Dict[str, Any]) -> None:
        frame_id = data.get("frame_id", GLOBAL_FRAME)
        stamp = data.get("timestamp")
        poses = data.get("poses", [])
        if not isinstance(poses, list):
            logging.warning(f"Invalid plan poses type: expected list, got {type(poses)}")
            return

        plan = [Pose(float(p[0]), float(p[1]), float(p[2]) if len(p) > 2 else 0.0, frame_id, stamp) for p in poses]
        if self.controller.set_plan(plan):
            self.plan_received = True
            self.goal_reached = False
            logging.info(f"{TERM_BLUE}✓ Received plan with {len(plan)} waypoints in {frame_id}{TERM_RESET}")

    def process_obstacles_message(self, data: Dict[str, Any]) -> None:
        """Mark obstacle points. Points outside the rolling costmap window are dropped."""
        if data.get("replace", False):
            self.costmap.clear()
        marked = self.costmap.mark_obstacles((float(p[0]), float(p[1])) for p in data.get("points", []))
        logging.debug(f"Marked {marked} obstacle cells")

    def parse_and_route_message(self, message: Union[str, bytes]) -> None:
        """Parse incoming message and route to appropriate handler.

        Args:
            message: Raw JSON message string or bytes from WebSocket.
        """
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            data = json.loads(message)

            message_type = data.get("message_type")
            handlers = {
                "odom": self.process_odom_message,
                "transform": self.process_transform_message,
                "plan": self.process_plan_message,
                "obstacles": self.process_obstacles_message,
            }
            handler = handlers.get(message_type)
            if handler is None:
                logging.debug(f"\nReceived unknown message: {json.dumps(data, indent=2)}\n")
                return
            handler(data)

        except json.JSONDecodeError as e:
            logging.error(f"Error parsing JSON: {e}")
        except (KeyError, TypeError, ValueError, IndexError) as e:
            logging.error(f"Error processing message data: {e}")

    def tick(self) -> Dict[str, Any]:
        """Run one control tick and build the command message.

        Until the first plan arrives the controller is not ticked and the
        command is zero.
        """
        if not self.plan_received:
            logging.debug("Waiting for a plan")
            cmd, success, reached = ZERO_VELOCITY, False, False
        else:
            cmd, success = self.controller.compute_velocity_commands()
            reached = self.controller.is_goal_reached()
        if reached and not self.goal_reached:
            logging.info(f"{TERM_BLUE}\033[1m→ Goal reached{TERM_RESET}")
        self.goal_reached = reached

        if self.data_collector is not None:
            self.data_collector.log_tick(
                self.last_odom_stamp if self.last_odom_stamp is not None else time.time(),
                self.costmap.get_robot_pose(),
                cmd,
                success,
                self.controller.state.value,
                len(self.controller.global_plan),
                len(self.controller.last_transformed_plan),
            )

        return {
            "message_type": "cmd_vel",
            "vx": cmd.vx,
            "vy": cmd.vy,
            "omega": cmd.omega,
            "success": success,
            "goal_reached": reached,
            "state": self.controller.state.value,
        }

    async def send_command(self, websocket: Any, command: Dict[str, Any]) -> None:
        await websocket.send(json.dumps(command))
        logging.debug(
            f"Sent command: vx={command['vx']:.3f}, vy={command['vy']:.3f}, omega={command['omega']:.3f}"
        )

    async def run_control_loop(self) -> None:
        """Connect to WebSocket and run the control loop.

        Maintains a connection to the WebSocket server with automatic retry logic
        and exponential backoff. Messages are handled as they arrive; a command
        is sent once per control period.
        """
        retry_delay = WS_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Connected to server{TERM_RESET}")
                    retry_delay = WS_RETRY_DELAY_SECONDS

                    next_tick = time.monotonic()
                    while not self.should_stop:
                        timeout = max(0.0, next_tick - time.monotonic())
                        try:
                            message = await asyncio.wait_for(websocket.recv(), timeout=timeout)
                            self.parse_and_route_message(message)
                        except asyncio.TimeoutError:
                            pass
                        except websockets.exceptions.ConnectionClosed:
                            logging.warning("Connection closed by server")
                            break

                        if time.monotonic() >= next_tick:
                            await self.send_command(websocket, self.tick())
                            next_tick += self.control_period
                            # Skip ticks missed while a slow message was handled
                            next_tick = max(next_tick, time.monotonic())

            except (OSError, websockets.exceptions.WebSocketException) as e:
                if self.should_stop:
                    break
                logging.error(f"Connection error: {e}")
                logging.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, WS_MAX_RETRY_DELAY_SECONDS)

    def stop(self) -> None:
        """Signal the client to stop."""
        self.should_stop = True


async def main(uri: str = WS_URI, params: Optional[Dict[str, Any]] = None, output_dir: Optional[str] = None) -> None:
    """Main entry point for the WebSocket bridge.

    Args:
        uri: Bridge server URI.
        params: Planner parameter overrides.
        output_dir: If given, log ticks and odometry as CSV under this directory.
    """
    collector = DataCollector(output_dir=output_dir) if output_dir else None
    if collector is not None:
        collector.setup()

    try:
        client = PlannerClient(uri, params=params, data_collector=collector)

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            client.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        await client.run_control_loop()
    finally:
        if collector is not None:
            collector.cleanup()
