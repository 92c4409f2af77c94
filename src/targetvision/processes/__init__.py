"""Long-lived processes: pipeline ownership, frame sources and the vision loop."""

from .frame_provider import FileFrameProvider, FrameProvider, VideoCaptureFrameProvider
from .pipeline_manager import (
    CAL_3D_INDEX,
    DRIVER_MODE_INDEX,
    PipelineManager,
    create_unique_name,
)
from .vision_runner import VisionRunner

__all__ = [
    "CAL_3D_INDEX",
    "DRIVER_MODE_INDEX",
    "FileFrameProvider",
    "FrameProvider",
    "PipelineManager",
    "VideoCaptureFrameProvider",
    "VisionRunner",
    "create_unique_name",
]
