"""Data collection and CSV logging for local planner runs.

This module provides CSV data logging for:
- Control ticks (robot pose, command, success flag, controller state)
- Odometry samples (velocity reported by the base)
- Plan sizes (stored plan and window lengths per tick)
"""

import csv
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO

from .geometry import Pose, Velocity


class DataCollector:
    """Manages CSV file creation and logging for planner runs.

    Attributes:
        run_dir: Directory path for this run's output files.
        tick_output_path: CSV of control ticks.
        odom_output_path: CSV of odometry samples.
    """

    TICK_HEADER = [
        "timestamp", "x", "y", "theta", "cmd_vx", "cmd_vy", "cmd_omega",
        "success", "state", "plan_size", "window_size",
    ]
    ODOM_HEADER = ["timestamp", "vx", "vy", "omega"]

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the data collector.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates timestamped
                directory. Can also be set via RUN_DIR environment variable.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.tick_csv_file: Optional[TextIO] = None
        self.tick_csv_writer: Any = None
        self.odom_csv_file: Optional[TextIO] = None
        self.odom_csv_writer: Any = None

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.tick_output_path: Path = self.run_dir / "ticks.csv"
        self.odom_output_path: Path = self.run_dir / "odometry.csv"

    def setup(self) -> None:
        """Create the CSV files and write their headers. Must be called before logging."""
        self.tick_csv_file = open(self.tick_output_path, "w", newline="")
        self.tick_csv_writer = csv.writer(self.tick_csv_file)
        self.tick_csv_writer.writerow(self.TICK_HEADER)
        self.tick_csv_file.flush()

        self.odom_csv_file = open(self.odom_output_path, "w", newline="")
        self.odom_csv_writer = csv.writer(self.odom_csv_file)
        self.odom_csv_writer.writerow(self.ODOM_HEADER)
        self.odom_csv_file.flush()

    def log_tick(
        self,
        timestamp: float,
        pose: Optional[Pose],
        cmd: Velocity,
        success: bool,
        state: str,
        plan_size: int,
        window_size: int,
    ) -> None:
        """Log one control tick.

        Args:
            timestamp: Tick time (seconds)
            pose: Robot pose in the operating frame, None if unavailable
            cmd: Command produced by the tick
            success: Whether the tick succeeded
            state: Controller state name after the tick
            plan_size: Stored plan length after pruning
            window_size: Plan window length
        """
        if self.tick_csv_writer is None:
            return

        x, y, theta = (pose.x, pose.y, pose.theta) if pose is not None else ("", "", "")
        self.tick_csv_writer.writerow(
            [
                f"{timestamp:.3f}",
                x, y, theta,
                cmd.vx, cmd.vy, cmd.omega,
                int(success), state, plan_size, window_size,
            ]
        )
        self.tick_csv_file.flush()

    def log_odometry(self, timestamp: float, velocity: Velocity) -> None:
        if self.odom_csv_writer is None:
            return
        self.odom_csv_writer.writerow([f"{timestamp:.3f}", velocity.vx, velocity.vy, velocity.omega])
        self.odom_csv_file.flush()

    def cleanup(self) -> None:
        """Close all open CSV files."""
        for handle in (self.tick_csv_file, self.odom_csv_file):
            if handle is not None and not handle.closed:
                handle.close()
        self.tick_csv_writer = None
        self.odom_csv_writer = None

    def __enter__(self) -> "DataCollector":
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cleanup()
