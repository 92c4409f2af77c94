"""Built-in driver camera pipeline: no detection, stream only."""

import logging

from ..frame import Frame, FrameStaticProperties, FrameThresholdType
from ..settings import DriverModePipelineSettings, PipelineType
from .base import CVPipeline, CVPipelineResult

logger = logging.getLogger(__name__)


class DriverModePipeline(CVPipeline[DriverModePipelineSettings]):
    PIPELINE_TYPE = PipelineType.DRIVER_MODE
    THRESHOLD_TYPE = FrameThresholdType.NONE

    def __init__(self, settings: DriverModePipelineSettings | None = None):
        super().__init__(settings or DriverModePipelineSettings())

    def set_pipe_params(
        self, props: FrameStaticProperties, settings: DriverModePipelineSettings
    ) -> None:
        pass

    def process(
        self, frame: Frame, settings: DriverModePipelineSettings
    ) -> CVPipelineResult:
        return self.build_result(frame, [], self.new_profile())
