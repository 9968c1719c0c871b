"""Local Planner - Plan Following and Goal Settling for Mobile Bases

The local motion-control layer of a mobile robot. Given a global plan (a
sequence of poses ending at a goal) and a stream of odometry, it produces a
velocity command every control tick and reports when the goal pose has been
reached.

## Architecture Overview

Each control tick runs the same pipeline:

### Plan Window (plan_window.py)
Transforms the part of the global plan near the robot into the operating frame
and prunes the waypoints the robot has already passed. The goal pose is never
pruned.

### Goal Arrival (goal_checker.py)
Position and heading tolerances, the "stopped" test, and the controller state:
SEEKING -> ROTATING_TO_GOAL -> REACHED. Rotation to the goal heading is sticky:
once entered it lasts until the heading tolerance is met or a new plan arrives.

### Command Synthesis (kinematics.py)
Stop and rotate-in-place commands that respect the acceleration limits, each
checked by the trajectory evaluator before being issued.

### Trajectory Evaluation (evaluator.py)
Scores sampled velocity rollouts against the plan and the costmap. The built-in
PurePursuitEvaluator steers toward a lookahead point on the plan.

### Control Loop (controller.py)
TrajectoryPlannerController ties the layers together behind the LocalPlanner
interface (base.py), obtainable by name from registry.py.

## Modules

### Core
- `config.py` - Parameters with documented defaults and PlannerConfig
- `geometry.py` - Pose, Velocity, Transform2D and angle helpers
- `transforms.py` - Frame tree with timestamped transform history
- `costmap.py` - Local occupancy grid and robot pose lookup
- `odometry.py` - Thread-safe latest-velocity store
- `errors.py` - Planner error hierarchy

### Running
- `simulation.py` - Kinematic simulator for closed-loop runs
- `client.py` - WebSocket bridge to a robot
- `data_collector.py` - CSV logging of ticks and odometry
- `visualization.py` - Plan publishing and run plots

## Quick Start

```python
from local_planner.simulation import Simulation, make_plan

sim = Simulation(make_plan([(0.0, 0.0), (2.0, 0.0)]))
result = sim.run()
print(result.reached, result.duration)
```

Or use the command-line interface:
```bash
python -m local_planner simulate --waypoints 0,0 2,0 2,1.5,1.57
python -m local_planner connect --uri ws://localhost:8765
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

# Export key classes for convenience
from .base import LocalPlanner
from .config import PlannerConfig
from .controller import TrajectoryPlannerController
from .costmap import Costmap
from .geometry import ZERO_VELOCITY, Pose, Transform2D, Velocity
from .goal_checker import ControllerState
from .registry import available_planners, create_planner
from .transforms import TransformBuffer

__all__ = [
    "LocalPlanner",
    "PlannerConfig",
    "TrajectoryPlannerController",
    "Costmap",
    "Pose",
    "Velocity",
    "Transform2D",
    "ZERO_VELOCITY",
    "ControllerState",
    "TransformBuffer",
    "create_planner",
    "available_planners",
]
