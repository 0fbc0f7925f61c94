"""
Exception base classes for TangibleCameraInput.

Component-specific errors are defined next to the component that raises
them and derive from TangibleInputError, so a host can catch every
camera-input failure in one place.
"""


class TangibleInputError(Exception):
    """Base class for all camera-input errors."""
    pass


class PipelineStateError(TangibleInputError):
    """Raised when a pipeline lifecycle operation is called out of order."""
    pass
