"""Exception types raised by targetvision components."""


class TargetVisionError(Exception):
    """Base class for all targetvision exceptions."""


class PipeParamsError(TargetVisionError, ValueError):
    """Raised by ``CVPipe.set_params`` when a parameter object is invalid.

    The pipe keeps its previous parameters when this is raised, so the
    running pipeline is not affected by a rejected configuration change.
    """

    def __init__(self, pipe_name: str, message: str):
        super().__init__(f"{pipe_name}: {message}")
        self.pipe_name = pipe_name


class ReleasedBufferError(TargetVisionError, RuntimeError):
    """Raised when an image buffer is accessed after it was released."""


class CalibrationError(TargetVisionError, RuntimeError):
    """Raised when a camera calibration cannot be computed."""
