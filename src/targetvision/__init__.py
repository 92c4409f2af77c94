"""Camera target detection with configurable vision pipelines."""

from .config import CameraConfig, RuntimeConfig, VisionConfig
from .dataflow import DataChangeService, OutgoingUIEvent
from .errors import (
    CalibrationError,
    PipeParamsError,
    ReleasedBufferError,
    TargetVisionError,
)
from .frame import (
    CameraCalibration,
    CVMat,
    Frame,
    FrameStaticProperties,
    FrameThresholdType,
)
from .pipeline import CVPipelineResult, create_pipeline
from .processes import PipelineManager, VisionRunner
from .settings import PipelineSettings, PipelineType
from .target import TrackedTarget

__version__ = "0.1.0"

__all__ = [
    "CVMat",
    "CVPipelineResult",
    "CalibrationError",
    "CameraCalibration",
    "CameraConfig",
    "DataChangeService",
    "Frame",
    "FrameStaticProperties",
    "FrameThresholdType",
    "OutgoingUIEvent",
    "PipeParamsError",
    "PipelineManager",
    "PipelineSettings",
    "PipelineType",
    "ReleasedBufferError",
    "RuntimeConfig",
    "TargetVisionError",
    "TrackedTarget",
    "VisionConfig",
    "VisionRunner",
    "create_pipeline",
]
