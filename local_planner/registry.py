"""Name-keyed factory for local planners.

Planners register a constructor under a name; hosts create them by name
without importing the implementing module directly.

Example:
    >>> planner = create_planner("trajectory_planner")
    >>> planner.initialize("local", buffer, costmap, {"xy_goal_tolerance": 0.2})
"""

import logging
from typing import Any, Callable, Dict, List, Type

from .base import LocalPlanner

logger = logging.getLogger(__name__)

_REGISTRY: Dict[str, Callable[..., LocalPlanner]] = {}


def register_planner(name: str) -> Callable[[Type[LocalPlanner]], Type[LocalPlanner]]:
    """Class decorator registering a LocalPlanner under name.

    Raises:
        ValueError: If name is already taken by a different class.
    """

    def decorator(cls: Type[LocalPlanner]) -> Type[LocalPlanner]:
        existing = _REGISTRY.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"A planner is already registered as '{name}'")
        _REGISTRY[name] = cls
        logger.debug(f"Registered local planner '{name}' -> {cls.__name__}")
        return cls

    return decorator


def create_planner(name: str, **kwargs: Any) -> LocalPlanner:
    """Instantiate the planner registered under name.

    Keyword arguments go to the planner's constructor, e.g. the clock a
    TrajectoryPlannerController stamps its local plans with.

    Raises:
        KeyError: If no planner is registered under name.
    """
    # Importing the package registers the built-in planners
    from . import controller  # noqa: F401

    try:
        factory = _REGISTRY[name]
    except KeyError:
        raise KeyError(
            f"Unknown local planner '{name}'. Available: {', '.join(available_planners())}"
        ) from None
    return factory(**kwargs)


def available_planners() -> List[str]:
    return sorted(_REGISTRY)
