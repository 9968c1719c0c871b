"""Local costmap used by the controller and the trajectory evaluator.

The costmap is an occupancy grid in the controller's operating frame. As a
rolling window it follows the robot: each tick the grid is re-centred on the
robot pose, cells it shares with the previous window keep their cost and
cells scrolled into view start free. It exposes the few things the controller
needs from its map collaborator:
- the robot's pose in the operating frame (resolved through the transform gateway)
- the map's extents, which bound the plan window
- a snapshot of the grid for the trajectory evaluator, refreshed every tick
- clearing of the cells under the robot footprint
"""

import logging
import math
import threading
from typing import Iterable, Optional, Tuple

import numpy as np

from . import config
from .errors import TransformError
from .geometry import Pose

logger = logging.getLogger(__name__)

FREE_SPACE = 0
"""Cost of a cell known to be free."""

INSCRIBED_INFLATED_OBSTACLE = 253
"""Cost of a cell inside the robot's inscribed radius of an obstacle."""

LETHAL_OBSTACLE = 254
"""Cost of a cell containing an obstacle."""


class OccupancyGrid:
    """Immutable snapshot of costmap cells.

    Attributes:
        data: Cell costs indexed [row (y), column (x)]
        resolution: Cell size (meters)
        origin_x: World x of the lower-left corner of cell (0, 0)
        origin_y: World y of the lower-left corner of cell (0, 0)
        frame_id: Frame the grid is expressed in
    """

    def __init__(
        self, data: np.ndarray, resolution: float, origin_x: float, origin_y: float, frame_id: str
    ):
        self.data = data
        self.resolution = resolution
        self.origin_x = origin_x
        self.origin_y = origin_y
        self.frame_id = frame_id

    @property
    def size_in_cells_x(self) -> int:
        return int(self.data.shape[1])

    @property
    def size_in_cells_y(self) -> int:
        return int(self.data.shape[0])

    def world_to_map(self, wx: float, wy: float) -> Optional[Tuple[int, int]]:
        """Convert world coordinates to (mx, my) cell indices, or None if off the map."""
        if wx < self.origin_x or wy < self.origin_y:
            return None
        mx = int((wx - self.origin_x) / self.resolution)
        my = int((wy - self.origin_y) / self.resolution)
        if mx >= self.size_in_cells_x or my >= self.size_in_cells_y:
            return None
        return mx, my

    def cost_at(self, wx: float, wy: float) -> Optional[int]:
        cell = self.world_to_map(wx, wy)
        if cell is None:
            return None
        mx, my = cell
        return int(self.data[my, mx])

    def footprint_cost(self, wx: float, wy: float, radius: float) -> float:
        """Highest cell cost under a circular footprint.

        Returns:
            Maximum cost, or -1.0 if the footprint leaves the map or hits a
            lethal obstacle
        """
        center = self.world_to_map(wx, wy)
        if center is None:
            return -1.0

        cells = int(math.ceil(radius / self.resolution))
        mx, my = center
        x0, x1 = max(0, mx - cells), min(self.size_in_cells_x, mx + cells + 1)
        y0, y1 = max(0, my - cells), min(self.size_in_cells_y, my + cells + 1)

        ys, xs = np.mgrid[y0:y1, x0:x1]
        cx = self.origin_x + (xs + 0.5) * self.resolution
        cy = self.origin_y + (ys + 0.5) * self.resolution
        inside = (cx - wx) ** 2 + (cy - wy) ** 2 <= radius**2
        if not inside.any():
            inside[my - y0, mx - x0] = True

        window = self.data[y0:y1, x0:x1][inside]
        worst = int(window.max()) if window.size else FREE_SPACE
        if worst >= LETHAL_OBSTACLE:
            return -1.0
        return float(worst)


class Costmap:
    """Occupancy grid with robot pose lookup, kept in the operating frame.

    Obstacle producers and the control loop may run on different threads,
    so the grid is guarded by a lock and the evaluator only ever sees copies.

    Attributes:
        transform_gateway: Used to resolve the robot base into the global frame
        global_frame: Operating frame of the grid
        robot_base_frame: Frame attached to the robot base
        resolution: Cell size (meters)
        robot_radius: Circumscribed footprint radius (meters)
        rolling_window: Re-centre the grid on the robot in update_map()
    """

    def __init__(
        self,
        transform_gateway,
        global_frame: str = config.GLOBAL_FRAME,
        robot_base_frame: str = config.ROBOT_BASE_FRAME,
        size_in_cells_x: int = config.COSTMAP_SIZE_CELLS,
        size_in_cells_y: int = config.COSTMAP_SIZE_CELLS,
        resolution: float = config.COSTMAP_RESOLUTION,
        origin_x: Optional[float] = None,
        origin_y: Optional[float] = None,
        robot_radius: float = config.ROBOT_RADIUS,
        transform_timeout: float = 0.0,
        rolling_window: bool = config.COSTMAP_ROLLING_WINDOW,
    ):
        self.transform_gateway = transform_gateway
        self.global_frame = global_frame
        self.robot_base_frame = robot_base_frame
        self.resolution = resolution
        self.robot_radius = robot_radius
        self.transform_timeout = transform_timeout
        self.rolling_window = rolling_window

        # Centred on the frame origin until the first update_map()
        self.origin_x = origin_x if origin_x is not None else -size_in_cells_x * resolution / 2.0
        self.origin_y = origin_y if origin_y is not None else -size_in_cells_y * resolution / 2.0

        self._data = np.full((size_in_cells_y, size_in_cells_x), FREE_SPACE, dtype=np.uint8)
        self._lock = threading.Lock()

    @property
    def size_in_cells_x(self) -> int:
        return int(self._data.shape[1])

    @property
    def size_in_cells_y(self) -> int:
        return int(self._data.shape[0])

    @property
    def size_in_meters_x(self) -> float:
        return self.size_in_cells_x * self.resolution

    @property
    def size_in_meters_y(self) -> float:
        return self.size_in_cells_y * self.resolution

    @property
    def circumscribed_radius(self) -> float:
        return self.robot_radius

    def get_robot_pose(self) -> Optional[Pose]:
        """Robot base pose in the global frame at the latest available time.

        Returns:
            Pose, or None if the transform is unavailable
        """
        origin = Pose(0.0, 0.0, 0.0, self.robot_base_frame, None)
        try:
            return self.transform_gateway.transform_pose(
                self.global_frame, origin, timeout=self.transform_timeout
            )
        except TransformError as e:
            logger.warning(f"Unable to get robot pose in {self.global_frame}: {e}")
            return None

    def mark_obstacles(self, points: Iterable[Tuple[float, float]]) -> int:
        """Mark world points as lethal obstacles.

        Returns:
            Number of points that landed on the map
        """
        marked = 0
        with self._lock:
            snapshot = self._as_grid(self._data)
            for wx, wy in points:
                cell = snapshot.world_to_map(wx, wy)
                if cell is None:
                    continue
                mx, my = cell
                self._data[my, mx] = LETHAL_OBSTACLE
                marked += 1
        return marked

    def clear(self) -> None:
        with self._lock:
            self._data.fill(FREE_SPACE)

    def clear_robot_footprint(self, pose: Optional[Pose] = None) -> None:
        """Free every cell under the robot footprint.

        Args:
            pose: Robot pose in the global frame. Looked up if not given.
        """
        if pose is None:
            pose = self.get_robot_pose()
            if pose is None:
                return

        cells = int(math.ceil(self.robot_radius / self.resolution))
        with self._lock:
            mx = int((pose.x - self.origin_x) / self.resolution)
            my = int((pose.y - self.origin_y) / self.resolution)
            for dy in range(-cells, cells + 1):
                for dx in range(-cells, cells + 1):
                    x, y = mx + dx, my + dy
                    if not (0 <= x < self.size_in_cells_x and 0 <= y < self.size_in_cells_y):
                        continue
                    cx = self.origin_x + (x + 0.5) * self.resolution
                    cy = self.origin_y + (y + 0.5) * self.resolution
                    if (cx - pose.x) ** 2 + (cy - pose.y) ** 2 <= self.robot_radius**2:
                        self._data[y, x] = FREE_SPACE

    def update_map(self, pose: Optional[Pose] = None) -> None:
        """Re-centre a rolling window on the robot.

        Args:
            pose: Robot pose in the global frame. Looked up if not given.
        """
        if not self.rolling_window:
            return
        if pose is None:
            pose = self.get_robot_pose()
            if pose is None:
                return
        self.update_origin(pose.x - self.size_in_meters_x / 2.0, pose.y - self.size_in_meters_y / 2.0)

    def update_origin(self, new_origin_x: float, new_origin_y: float) -> None:
        """Move the grid to a new origin, snapped to the nearest whole cell.

        Cells covered by both the old and the new window keep their cost;
        the rest of the new window starts free.
        """
        with self._lock:
            cell_ox = round((new_origin_x - self.origin_x) / self.resolution)
            cell_oy = round((new_origin_y - self.origin_y) / self.resolution)
            if cell_ox == 0 and cell_oy == 0:
                return

            size_y, size_x = self._data.shape
            shifted = np.full_like(self._data, FREE_SPACE)
            # Overlap in old cell indices; new index = old index - offset
            x0, x1 = max(0, cell_ox), min(size_x, size_x + cell_ox)
            y0, y1 = max(0, cell_oy), min(size_y, size_y + cell_oy)
            if x0 < x1 and y0 < y1:
                shifted[y0 - cell_oy : y1 - cell_oy, x0 - cell_ox : x1 - cell_ox] = self._data[y0:y1, x0:x1]

            self._data = shifted
            self.origin_x += cell_ox * self.resolution
            self.origin_y += cell_oy * self.resolution
        logger.debug(f"Costmap origin moved to ({self.origin_x:.2f}, {self.origin_y:.2f})")

    def get_costmap_copy(self) -> OccupancyGrid:
        """Snapshot of the current grid for one control tick."""
        with self._lock:
            return self._as_grid(self._data.copy())

    def _as_grid(self, data: np.ndarray) -> OccupancyGrid:
        return OccupancyGrid(data, self.resolution, self.origin_x, self.origin_y, self.global_frame)
