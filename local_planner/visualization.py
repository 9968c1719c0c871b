"""Plan publishing and run plots.

The controller publishes two paths every tick for observers: the windowed
global plan and the local trajectory the evaluator picked. Each published
path is a PathMessage tagged with an RGBA color for rendering. Publishing is
purely observational; nothing in the control contract depends on it.

The plotting helpers turn a finished run (from the simulator or from the CSV
files written by DataCollector) into a matplotlib figure.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from .config import PLOT_BLUE, PLOT_ORANGE, PLOT_TAUPE
from .geometry import Pose

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float, float]


@dataclass
class PathMessage:
    """Timestamped path in one frame, tagged with a display color.

    Args:
        frame_id: Frame every pose is expressed in
        stamp: Stamp of the first pose
        poses: Ordered poses
        color: RGBA display color
    """

    frame_id: str
    stamp: Optional[float]
    poses: List[Pose] = field(default_factory=list)
    color: Color = (0.0, 0.0, 0.0, 0.0)


class PathPublisher:
    """Named output for PathMessages with callback subscribers.

    Attributes:
        topic: Name of the output
        frame_id: Frame stamped on every message
        last_message: Most recently published message
        count: Number of messages published
    """

    def __init__(self, topic: str, frame_id: str):
        self.topic = topic
        self.frame_id = frame_id
        self.last_message: Optional[PathMessage] = None
        self.count = 0
        self._subscribers: List[Callable[[PathMessage], None]] = []

    def subscribe(self, callback: Callable[[PathMessage], None]) -> None:
        self._subscribers.append(callback)

    def publish_plan(self, path: Sequence[Pose], color: Color) -> Optional[PathMessage]:
        """Publish a path. Empty paths are not published.

        Returns:
            The published message, or None for an empty path
        """
        if not path:
            return None

        # All poses are assumed to be in the same frame
        message = PathMessage(
            frame_id=self.frame_id,
            stamp=path[0].stamp,
            poses=list(path),
            color=color,
        )
        self.last_message = message
        self.count += 1

        for callback in self._subscribers:
            try:
                callback(message)
            except Exception as e:
                logger.error(f"Subscriber of {self.topic} failed: {e}", exc_info=True)
        return message


def poses_to_arrays(poses: Sequence[Pose]) -> Dict[str, np.ndarray]:
    return {
        "x": np.array([p.x for p in poses], dtype=float),
        "y": np.array([p.y for p in poses], dtype=float),
        "theta": np.array([p.theta for p in poses], dtype=float),
    }


def plot_run_summary(
    trajectory: Dict[str, np.ndarray],
    plan: Sequence[Pose],
    obstacles: Optional[np.ndarray] = None,
    title: str = "Local planner run",
    output_path: Optional[Path] = None,
    show_plot: bool = False,
) -> Figure:
    """Plot the robot path against the plan, plus command history.

    Args:
        trajectory: Arrays 't', 'x', 'y', 'theta', 'vx', 'vy', 'omega' from a run
        plan: Reference plan poses
        obstacles: Optional N×2 array of obstacle points
        title: Figure title
        output_path: If given, save the figure here
        show_plot: Whether to display the figure

    Returns:
        The created figure
    """
    fig, (ax_xy, ax_cmd) = plt.subplots(1, 2, figsize=(14, 6))
    fig.suptitle(title)

    plan_xy = poses_to_arrays(plan)
    ax_xy.plot(plan_xy["x"], plan_xy["y"], "--", color=PLOT_BLUE, label="Plan", linewidth=1.5)
    ax_xy.plot(trajectory["x"], trajectory["y"], "-", color=PLOT_ORANGE, label="Robot", linewidth=2)
    if len(trajectory["x"]):
        ax_xy.plot(trajectory["x"][0], trajectory["y"][0], "o", color=PLOT_ORANGE, label="Start")
    if len(plan_xy["x"]):
        ax_xy.plot(plan_xy["x"][-1], plan_xy["y"][-1], "*", color=PLOT_BLUE, markersize=14, label="Goal")
    if obstacles is not None and len(obstacles):
        ax_xy.scatter(obstacles[:, 0], obstacles[:, 1], s=4, color=PLOT_TAUPE, label="Obstacles")
    ax_xy.set_xlabel("x (m)")
    ax_xy.set_ylabel("y (m)")
    ax_xy.set_aspect("equal", adjustable="datalim")
    ax_xy.grid(True, alpha=0.3)
    ax_xy.legend(loc="best")

    ax_cmd.plot(trajectory["t"], trajectory["vx"], color=PLOT_ORANGE, label="vx (m/s)")
    ax_cmd.plot(trajectory["t"], trajectory["vy"], color=PLOT_TAUPE, label="vy (m/s)")
    ax_cmd.plot(trajectory["t"], trajectory["omega"], color=PLOT_BLUE, label="ω (rad/s)")
    ax_cmd.set_xlabel("Time (s)")
    ax_cmd.set_ylabel("Command")
    ax_cmd.grid(True, alpha=0.3)
    ax_cmd.legend(loc="best")

    fig.tight_layout()

    if output_path is not None:
        fig.savefig(output_path, dpi=150)
        logger.info(f"Saved plot to {output_path}")
    if show_plot:
        plt.show()

    return fig
