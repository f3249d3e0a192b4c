class GoalCoachError(Exception):
    """Base class for errors raised by the goal coach core."""


class StorageError(GoalCoachError):
    """The document store could not be read or written."""


class DelegateError(GoalCoachError):
    """The text or plan generation delegate failed or returned nothing usable."""


class FlowError(GoalCoachError):
    """A user action is not allowed in the current flow stage."""
