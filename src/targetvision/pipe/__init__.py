"""Individual timed processing stages.

Each pipe has a name, an immutable parameter object replaced through
``set_params``, and ``run(input) -> CVPipeResult``.
"""

from .base import CVPipe, CVPipeResult, Releasable
from .calibration import FindBoardCornersPipe, calibrate_camera
from .contours import (
    FilterContoursPipe,
    FilterShapesPipe,
    FindContoursPipe,
    GroupContoursPipe,
    SortContoursPipe,
    SpeckleRejectPipe,
)
from .draw import (
    Draw2dAprilTagsPipe,
    Draw2dArucoPipe,
    Draw2dCrosshairPipe,
    Draw2dTargetsPipe,
    Draw3dAprilTagsPipe,
    Draw3dArucoPipe,
    Draw3dTargetsPipe,
    DrawCalibrationPipe,
)
from .fiducial import FiducialDetection, FiducialDetectionPipe
from .output import CalculateFPSPipe, OutputMatPipe, ResizeImagePipe
from .pose import SolvePNPPipe, TagPoseEstimatorPipe
from .targets import Collect2dTargetsPipe, CollectFiducialTargetsPipe, CornerDetectionPipe
from .threshold import GrayscalePipe, HSVParams, HSVPipe, RotateImagePipe, threshold_hsv

__all__ = [
    "CVPipe",
    "CVPipeResult",
    "Releasable",
    "HSVParams",
    "HSVPipe",
    "GrayscalePipe",
    "RotateImagePipe",
    "threshold_hsv",
    "FindContoursPipe",
    "SpeckleRejectPipe",
    "FilterContoursPipe",
    "FilterShapesPipe",
    "GroupContoursPipe",
    "SortContoursPipe",
    "Collect2dTargetsPipe",
    "CollectFiducialTargetsPipe",
    "CornerDetectionPipe",
    "SolvePNPPipe",
    "TagPoseEstimatorPipe",
    "FiducialDetection",
    "FiducialDetectionPipe",
    "FindBoardCornersPipe",
    "calibrate_camera",
    "ResizeImagePipe",
    "OutputMatPipe",
    "CalculateFPSPipe",
    "Draw2dCrosshairPipe",
    "Draw2dTargetsPipe",
    "Draw3dTargetsPipe",
    "Draw2dAprilTagsPipe",
    "Draw3dAprilTagsPipe",
    "Draw2dArucoPipe",
    "Draw3dArucoPipe",
    "DrawCalibrationPipe",
]
