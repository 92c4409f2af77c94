"""Pipelines: ordered compositions of pipes producing one result per frame."""

import logging

from ..settings import PipelineSettings, PipelineType
from .base import CVPipeline, CVPipelineResult
from .calibrate import Calibrate3dPipeline
from .colored_shape import ColoredShapePipeline
from .driver_mode import DriverModePipeline
from .fiducial import AprilTagPipeline, ArucoPipeline
from .output_stream import OutputStreamPipeline
from .reflective import ReflectivePipeline

logger = logging.getLogger(__name__)


def create_pipeline(settings: PipelineSettings) -> CVPipeline:
    """Construct the pipeline matching the kind of ``settings``.

    Raises:
        ValueError: If ``settings`` describes a built-in kind.
    """
    pipeline_type = settings.pipeline_type
    if pipeline_type == PipelineType.REFLECTIVE:
        logger.debug("Creating Reflective pipeline")
        return ReflectivePipeline(settings)
    elif pipeline_type == PipelineType.COLORED_SHAPE:
        logger.debug("Creating ColoredShape pipeline")
        return ColoredShapePipeline(settings)
    elif pipeline_type == PipelineType.APRILTAG:
        logger.debug("Creating AprilTag pipeline")
        return AprilTagPipeline(settings)
    elif pipeline_type == PipelineType.ARUCO:
        logger.debug("Creating Aruco pipeline")
        return ArucoPipeline(settings)
    raise ValueError(f"{pipeline_type.value} is not a user pipeline kind")


__all__ = [
    "CVPipeline",
    "CVPipelineResult",
    "ReflectivePipeline",
    "ColoredShapePipeline",
    "AprilTagPipeline",
    "ArucoPipeline",
    "DriverModePipeline",
    "Calibrate3dPipeline",
    "OutputStreamPipeline",
    "create_pipeline",
]
