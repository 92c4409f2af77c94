"""Retroreflective tape pipeline."""

import logging

from ..frame import Frame, FrameStaticProperties, FrameThresholdType
from ..pipe import (
    Collect2dTargetsPipe,
    CornerDetectionPipe,
    FilterContoursPipe,
    FindContoursPipe,
    GroupContoursPipe,
    SolvePNPPipe,
    SortContoursPipe,
    SpeckleRejectPipe,
)
from ..pipe.contours import GroupContoursParams
from ..pipe.pose import SolvePNPParams
from ..settings import PipelineType, ReflectivePipelineSettings
from .base import CVPipeline, CVPipelineResult
from .helpers import contour_pipe_params

logger = logging.getLogger(__name__)


class ReflectivePipeline(CVPipeline[ReflectivePipelineSettings]):
    """Track retroreflective tape lit by the camera's LEDs."""

    PIPELINE_TYPE = PipelineType.REFLECTIVE
    THRESHOLD_TYPE = FrameThresholdType.HSV
    PROFILE_STAGES = (
        "find_contours",
        "speckle_reject",
        "filter_contours",
        "group_contours",
        "sort_contours",
        "collect_2d_targets",
        "corner_detection",
        "solve_pnp",
    )

    def __init__(self, settings: ReflectivePipelineSettings | None = None):
        super().__init__(settings or ReflectivePipelineSettings())
        self.find_contours_pipe = FindContoursPipe()
        self.speckle_reject_pipe = SpeckleRejectPipe()
        self.filter_contours_pipe = FilterContoursPipe()
        self.group_contours_pipe = GroupContoursPipe()
        self.sort_contours_pipe = SortContoursPipe()
        self.collect_2d_targets_pipe = Collect2dTargetsPipe()
        self.corner_detection_pipe = CornerDetectionPipe()
        self.solve_pnp_pipe = SolvePNPPipe()

    def set_pipe_params(
        self, props: FrameStaticProperties, settings: ReflectivePipelineSettings
    ) -> None:
        params = contour_pipe_params(settings, props)
        self.find_contours_pipe.set_params(params["find_contours"])
        self.speckle_reject_pipe.set_params(params["speckle_reject"])
        self.filter_contours_pipe.set_params(params["filter_contours"])
        self.group_contours_pipe.set_params(
            GroupContoursParams(settings.contour_grouping_mode, settings.contour_intersection)
        )
        self.sort_contours_pipe.set_params(params["sort_contours"])
        self.collect_2d_targets_pipe.set_params(params["collect_2d_targets"])
        self.corner_detection_pipe.set_params(params["corner_detection"])

        calibration = self.pose_calibration()
        if calibration is not None:
            self.solve_pnp_pipe.set_params(SolvePNPParams(calibration, settings.target_model))

    def process(
        self, frame: Frame, settings: ReflectivePipelineSettings
    ) -> CVPipelineResult:
        profile = self.new_profile()

        contours = self.run_stage(
            profile, "find_contours", self.find_contours_pipe, frame.processed_image.mat
        )
        contours = self.run_stage(profile, "speckle_reject", self.speckle_reject_pipe, contours)
        contours = self.run_stage(
            profile, "filter_contours", self.filter_contours_pipe, contours
        )
        potentials = self.run_stage(
            profile, "group_contours", self.group_contours_pipe, contours
        )
        potentials = self.run_stage(
            profile, "sort_contours", self.sort_contours_pipe, potentials
        )
        targets = self.run_stage(
            profile, "collect_2d_targets", self.collect_2d_targets_pipe, potentials
        )

        if self.pose_calibration() is not None:
            targets = self.run_stage(
                profile, "corner_detection", self.corner_detection_pipe, targets
            )
            targets = self.run_stage(profile, "solve_pnp", self.solve_pnp_pipe, targets)

        return self.build_result(frame, targets, profile)
