"""Frame Transform Gateway.

Resolves poses expressed in one reference frame into another. The planner only
depends on the TransformGateway interface; TransformBuffer is the in-process
implementation used by the simulator, the WebSocket bridge, and the tests.

Frames form a tree: every frame except the root has exactly one parent, and
each parent→child edge keeps a short, time-ordered history of transforms.
A lookup walks both frames up to their common ancestor and composes the edges
at the requested time. Lookups fail with:
- LookupTransformError: a frame has never been seen
- ConnectivityError: both frames exist but live in different trees
- ExtrapolationError: the requested time is outside an edge's history
"""

import bisect
import logging
import threading
import time
from typing import Dict, List, Optional

from .errors import ConnectivityError, ExtrapolationError, LookupTransformError
from .geometry import Pose, Transform2D, normalize_angle, shortest_angular_distance

logger = logging.getLogger(__name__)


class TransformGateway:
    """Interface for resolving transforms between frames.

    A stamp of None requests the latest time at which the lookup can be
    answered for every edge in the chain.
    """

    def lookup_transform(
        self,
        target_frame: str,
        source_frame: str,
        stamp: Optional[float] = None,
        timeout: float = 0.0,
    ) -> Transform2D:
        """Transform taking source_frame coordinates into target_frame.

        Raises:
            TransformError: If the transform cannot be resolved.
        """
        raise NotImplementedError

    def transform_pose(self, target_frame: str, pose: Pose, timeout: float = 0.0) -> Pose:
        """Express pose in target_frame at the pose's own stamp.

        Raises:
            TransformError: If the transform cannot be resolved.
        """
        if pose.frame_id == target_frame:
            return pose
        transform = self.lookup_transform(target_frame, pose.frame_id, pose.stamp, timeout)
        return transform.apply(pose)


class _EdgeHistory:
    """Time-ordered transforms for one parent→child edge."""

    def __init__(self, parent_frame: str, is_static: bool):
        self.parent_frame = parent_frame
        self.is_static = is_static
        self.stamps: List[float] = []
        self.transforms: List[Transform2D] = []

    def insert(self, transform: Transform2D, cache_time: float) -> None:
        if self.is_static:
            self.stamps = [transform.stamp]
            self.transforms = [transform]
            return

        idx = bisect.bisect_right(self.stamps, transform.stamp)
        self.stamps.insert(idx, transform.stamp)
        self.transforms.insert(idx, transform)

        # Drop history older than the cache window
        cutoff = self.stamps[-1] - cache_time
        drop = bisect.bisect_left(self.stamps, cutoff)
        if drop > 0:
            del self.stamps[:drop]
            del self.transforms[:drop]

    @property
    def latest_stamp(self) -> float:
        return self.stamps[-1]

    def at(self, stamp: float, child_frame: str) -> Transform2D:
        """Interpolated transform at stamp.

        Raises:
            ExtrapolationError: If stamp lies outside the stored history.
        """
        if self.is_static:
            latest = self.transforms[-1]
            return Transform2D.from_matrix(latest.matrix, self.parent_frame, child_frame, stamp)

        if stamp > self.stamps[-1] or stamp < self.stamps[0]:
            raise ExtrapolationError(
                f"Lookup would require extrapolation at time {stamp:.3f}, but only time "
                f"[{self.stamps[0]:.3f}, {self.stamps[-1]:.3f}] is available for "
                f"{self.parent_frame} -> {child_frame}"
            )

        idx = bisect.bisect_left(self.stamps, stamp)
        if self.stamps[idx] == stamp:
            return self.transforms[idx]

        before = self.transforms[idx - 1]
        after = self.transforms[idx]
        ratio = (stamp - before.stamp) / (after.stamp - before.stamp)

        x = before.x + ratio * (after.x - before.x)
        y = before.y + ratio * (after.y - before.y)
        theta = normalize_angle(
            before.theta + ratio * shortest_angular_distance(before.theta, after.theta)
        )
        return Transform2D(x, y, theta, self.parent_frame, child_frame, stamp)


class TransformBuffer(TransformGateway):
    """Thread-safe transform tree with a bounded history per edge.

    Producers call set_transform() from any thread; lookups may wait up to a
    timeout for a transform to become available.

    Attributes:
        cache_time: Seconds of history retained per edge.
    """

    def __init__(self, cache_time: float = 10.0):
        self.cache_time = cache_time
        self._edges: Dict[str, _EdgeHistory] = {}
        self._condition = threading.Condition()

    def set_transform(self, transform: Transform2D, is_static: bool = False) -> None:
        """Insert a parent→child transform.

        Raises:
            ValueError: If the child already has a different parent or the
                transform maps a frame onto itself.
        """
        if transform.parent_frame == transform.child_frame:
            raise ValueError(f"Transform maps {transform.child_frame} onto itself")

        with self._condition:
            edge = self._edges.get(transform.child_frame)
            if edge is None:
                edge = _EdgeHistory(transform.parent_frame, is_static)
                self._edges[transform.child_frame] = edge
            elif edge.parent_frame != transform.parent_frame:
                raise ValueError(
                    f"Frame {transform.child_frame} already has parent {edge.parent_frame}, "
                    f"cannot reparent to {transform.parent_frame}"
                )
            edge.insert(transform, self.cache_time)
            self._condition.notify_all()

    def _chain_to_root(self, frame: str) -> List[str]:
        chain = [frame]
        while chain[-1] in self._edges:
            chain.append(self._edges[chain[-1]].parent_frame)
        return chain

    def _known(self, frame: str) -> bool:
        return frame in self._edges or any(e.parent_frame == frame for e in self._edges.values())

    def _resolve(
        self, target_frame: str, source_frame: str, stamp: Optional[float]
    ) -> Transform2D:
        for frame in (target_frame, source_frame):
            if not self._known(frame):
                raise LookupTransformError(f'"{frame}" passed to lookup_transform does not exist')

        if target_frame == source_frame:
            if stamp is None:
                edge = self._edges.get(target_frame)
                stamp = edge.latest_stamp if edge is not None else 0.0
            return Transform2D.identity(target_frame, stamp)

        source_chain = self._chain_to_root(source_frame)
        target_chain = self._chain_to_root(target_frame)
        common = next((f for f in source_chain if f in target_chain), None)
        if common is None:
            raise ConnectivityError(
                f"Could not find a connection between '{target_frame}' and '{source_frame}' "
                "because they are not part of the same tree"
            )

        source_edges = source_chain[: source_chain.index(common)]
        target_edges = target_chain[: target_chain.index(common)]

        if stamp is None:
            # Latest time every non-static edge in the chain can answer for
            dynamic = [
                self._edges[f].latest_stamp
                for f in source_edges + target_edges
                if not self._edges[f].is_static
            ]
            stamp = min(dynamic) if dynamic else max(
                (self._edges[f].latest_stamp for f in source_edges + target_edges), default=0.0
            )

        # source -> common
        source_to_common = Transform2D.identity(common, stamp)
        for child in reversed(source_edges):
            edge = self._edges[child]
            source_to_common = source_to_common.compose(edge.at(stamp, child))
        source_to_common = Transform2D.from_matrix(
            source_to_common.matrix, common, source_frame, stamp
        )

        # target -> common, then inverted
        target_to_common = Transform2D.identity(common, stamp)
        for child in reversed(target_edges):
            edge = self._edges[child]
            target_to_common = target_to_common.compose(edge.at(stamp, child))
        common_to_target = Transform2D.from_matrix(
            target_to_common.matrix, common, target_frame, stamp
        ).inverse()

        result = common_to_target.compose(source_to_common)
        return Transform2D.from_matrix(result.matrix, target_frame, source_frame, stamp)

    def lookup_transform(
        self,
        target_frame: str,
        source_frame: str,
        stamp: Optional[float] = None,
        timeout: float = 0.0,
    ) -> Transform2D:
        deadline = time.monotonic() + timeout
        with self._condition:
            while True:
                try:
                    return self._resolve(target_frame, source_frame, stamp)
                except (LookupTransformError, ConnectivityError, ExtrapolationError):
                    remaining = deadline - time.monotonic()
                    if remaining <= 0.0:
                        raise
                    logger.debug(
                        f"Waiting up to {remaining:.3f}s for {source_frame} -> {target_frame}"
                    )
                    self._condition.wait(remaining)
