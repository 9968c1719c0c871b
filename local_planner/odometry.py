"""Shared velocity estimate written by odometry and read by the control loop.

Odometry arrives on its own thread at its own rate; the control loop reads the
most recent sample once per tick. Every access holds the estimate's lock for
the whole read or write so a reader never sees a half-updated sample.
"""

import logging
import threading
from typing import Optional

from .geometry import Velocity

logger = logging.getLogger(__name__)


class SharedVelocityEstimate:
    """Most recent odometry velocity, last writer wins.

    Attributes:
        updates: Number of samples received so far
    """

    def __init__(self, initial: Optional[Velocity] = None):
        self._lock = threading.Lock()
        self._velocity = initial if initial is not None else Velocity()
        self.updates = 0

    def update(self, velocity: Velocity, stamp: Optional[float] = None) -> None:
        """Store a new odometry sample (producer side)."""
        with self._lock:
            self._velocity = Velocity(velocity.vx, velocity.vy, velocity.omega)
            self.updates += 1
        logger.debug(
            f"Odometry velocity at {stamp}: ({velocity.vx:.2f}, {velocity.vy:.2f}, {velocity.omega:.2f})"
        )

    def snapshot(self) -> Velocity:
        """Owned copy of the latest sample (consumer side)."""
        with self._lock:
            velocity = self._velocity
        return velocity
