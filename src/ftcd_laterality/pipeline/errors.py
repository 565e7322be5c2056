"""File-scoped failures raised by the lateralization pipeline."""


class LateralityError(Exception):
    """Base class; the batch runner catches this and marks the file unscored."""


class MalformedInputError(LateralityError):
    """Too few samples, missing columns, bad timings or irregular markers."""


class NoMarkersFoundError(LateralityError):
    """No trial onsets could be detected in the marker channel."""


class InsufficientHeartbeatsError(LateralityError):
    """Not enough heartbeat cycles for integration or the regression design."""


class ModelFitError(LateralityError):
    """The regression could not be fitted (rank deficiency, numerical failure)."""
