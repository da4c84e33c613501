"""
Exceptions raised when a pipeline stage is driven out of order.

Degenerate geometry is never reported through these; it is skipped where it
occurs. These only signal caller contract violations.
"""


class FacadeError(Exception):
    """Base exception for facade pipeline errors."""
    pass


class MissingPrerequisiteError(FacadeError):
    """A stage was requested before its upstream input exists."""
    pass


class ReconstructionStateError(FacadeError):
    """Volumetric reconstructor step called in the wrong state."""
    pass
