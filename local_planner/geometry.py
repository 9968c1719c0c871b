"""Planar geometry primitives for the local planner.

This module provides the value types passed between planner components:
- Pose: position and heading tagged with a reference frame and timestamp
- Velocity: linear (vx, vy) and angular (omega) velocity
- Transform2D: rigid 2D transform between two frames

Plus a handful of angle helpers shared by the goal checker and the
kinematic command synthesizer.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np


def normalize_angle(angle: float) -> float:
    """Wrap an angle to [-π, π].

    Args:
        angle: Angle in radians

    Returns:
        Equivalent angle in [-π, π]
    """
    return math.atan2(math.sin(angle), math.cos(angle))


def shortest_angular_distance(from_angle: float, to_angle: float) -> float:
    """Signed shortest rotation that takes from_angle onto to_angle.

    Example:
        >>> round(math.degrees(shortest_angular_distance(math.radians(179), math.radians(-179))))
        2
    """
    return normalize_angle(to_angle - from_angle)


def sign(value: float) -> float:
    """Return -1.0 for negative values, 1.0 otherwise."""
    return -1.0 if value < 0.0 else 1.0


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    """Euclidean distance between two points."""
    return math.hypot(x2 - x1, y2 - y1)


@dataclass(frozen=True)
class Pose:
    """Planar pose in a named reference frame.

    Args:
        x: X coordinate (m)
        y: Y coordinate (m)
        theta: Heading (rad)
        frame_id: Reference frame the pose is expressed in
        stamp: Time the pose refers to (seconds). None means "latest available".
    """

    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0
    frame_id: str = ""
    stamp: Optional[float] = None

    def squared_distance_to(self, other: "Pose") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        return dx * dx + dy * dy

    def distance_to(self, other: "Pose") -> float:
        return math.sqrt(self.squared_distance_to(other))


@dataclass(frozen=True)
class Velocity:
    """Planar velocity in the robot base frame.

    Args:
        vx: Forward velocity (m/s)
        vy: Lateral velocity (m/s), non-zero only for holonomic bases
        omega: Angular velocity (rad/s), positive is counter-clockwise
    """

    vx: float = 0.0
    vy: float = 0.0
    omega: float = 0.0


ZERO_VELOCITY = Velocity()


class Transform2D:
    """Rigid 2D transform taking coordinates in child_frame into parent_frame.

    The transform is stored as a 3×3 homogeneous matrix so that chains of
    transforms compose with a matrix product.

    Attributes:
        parent_frame: Frame the transform maps into
        child_frame: Frame the transform maps from
        stamp: Time the transform is valid at (seconds)
        matrix: Homogeneous transform matrix (3×3)
    """

    def __init__(
        self,
        x: float = 0.0,
        y: float = 0.0,
        theta: float = 0.0,
        parent_frame: str = "",
        child_frame: str = "",
        stamp: float = 0.0,
    ):
        self.parent_frame = parent_frame
        self.child_frame = child_frame
        self.stamp = stamp

        cos_t = math.cos(theta)
        sin_t = math.sin(theta)
        self.matrix = np.array(
            [
                [cos_t, -sin_t, x],
                [sin_t, cos_t, y],
                [0.0, 0.0, 1.0],
            ]
        )

    @classmethod
    def from_matrix(
        cls, matrix: np.ndarray, parent_frame: str, child_frame: str, stamp: float
    ) -> "Transform2D":
        transform = cls(parent_frame=parent_frame, child_frame=child_frame, stamp=stamp)
        transform.matrix = np.array(matrix, dtype=float)
        return transform

    @classmethod
    def identity(cls, frame_id: str, stamp: float = 0.0) -> "Transform2D":
        return cls(parent_frame=frame_id, child_frame=frame_id, stamp=stamp)

    @property
    def x(self) -> float:
        return float(self.matrix[0, 2])

    @property
    def y(self) -> float:
        return float(self.matrix[1, 2])

    @property
    def theta(self) -> float:
        return math.atan2(self.matrix[1, 0], self.matrix[0, 0])

    def inverse(self) -> "Transform2D":
        """Transform taking parent_frame coordinates back into child_frame."""
        rotation = self.matrix[:2, :2]
        translation = self.matrix[:2, 2]

        inv = np.eye(3)
        inv[:2, :2] = rotation.T
        inv[:2, 2] = -rotation.T @ translation
        return Transform2D.from_matrix(inv, self.child_frame, self.parent_frame, self.stamp)

    def compose(self, other: "Transform2D") -> "Transform2D":
        """Chain self (b→a) with other (c→b) into a single c→a transform.

        The resulting stamp is the older of the two stamps.
        """
        return Transform2D.from_matrix(
            self.matrix @ other.matrix,
            self.parent_frame,
            other.child_frame,
            min(self.stamp, other.stamp),
        )

    def apply(self, pose: Pose) -> Pose:
        """Express a child_frame pose in parent_frame.

        The returned pose carries the transform's stamp and parent frame.
        """
        point = self.matrix @ np.array([pose.x, pose.y, 1.0])
        return Pose(
            x=float(point[0]),
            y=float(point[1]),
            theta=normalize_angle(pose.theta + self.theta),
            frame_id=self.parent_frame,
            stamp=self.stamp,
        )

    def __repr__(self) -> str:
        return (
            f"Transform2D({self.child_frame!r} -> {self.parent_frame!r}, "
            f"x={self.x:.3f}, y={self.y:.3f}, theta={self.theta:.3f}, stamp={self.stamp})"
        )
