"""Error taxonomy for the local planner.

Components raise these exceptions; the controller catches them at the
boundary of each public operation, logs them, and reports a failure flag.
None of them is allowed to escape a control tick.
"""


class PlannerError(Exception):
    """Base class for all local planner errors."""


class UninitializedError(PlannerError):
    """A public operation was called before initialize() completed."""

    def __init__(self, message: str = "This planner has not been initialized, please call initialize() before using this planner"):
        super().__init__(message)


class TransformError(PlannerError):
    """A pose could not be resolved into the requested frame."""


class LookupTransformError(TransformError):
    """No transform is known for one of the requested frames."""


class ConnectivityError(TransformError):
    """Both frames are known but no chain of transforms links them."""


class ExtrapolationError(TransformError):
    """The requested time lies outside the buffered transform history."""


class EmptyPlanError(PlannerError):
    """An operation needed a plan but the stored plan has zero length."""

    def __init__(self, message: str = "Received plan with zero length"):
        super().__init__(message)


class InvalidCommandError(PlannerError):
    """A synthesized command was rejected by the trajectory evaluator."""


class ConfigurationError(PlannerError):
    """A configuration value is nonsensical or uses a retired name."""
