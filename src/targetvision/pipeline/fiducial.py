"""AprilTag and ArUco pipelines.

Both decode markers with ``cv2.aruco``, turn each detection into a tracked
target and optionally estimate square-tag poses. They differ only in the
dictionary and corner-refinement configuration.
"""

import logging

from ..frame import Frame, FrameStaticProperties, FrameThresholdType
from ..pipe import CollectFiducialTargetsPipe, FiducialDetectionPipe, TagPoseEstimatorPipe
from ..pipe.fiducial import (
    APRILTAG_DICTIONARIES,
    ARUCO_DICTIONARIES,
    CornerRefinement,
    FiducialDetectorParams,
)
from ..pipe.pose import TagEstimatorConfig, TagPoseEstimatorParams
from ..settings import (
    AprilTagPipelineSettings,
    ArucoPipelineSettings,
    PipelineSettings,
    PipelineType,
)
from .base import CVPipeline, CVPipelineResult, S
from .helpers import fiducial_collect_params, max_targets, tag_size

logger = logging.getLogger(__name__)


class FiducialPipeline(CVPipeline[S]):
    THRESHOLD_TYPE = FrameThresholdType.GREYSCALE
    PROFILE_STAGES = ("fiducial_detection", "collect_targets", "pose_estimation")

    def __init__(self, settings: S):
        super().__init__(settings)
        self.fiducial_detection_pipe = FiducialDetectionPipe()
        self.collect_targets_pipe = CollectFiducialTargetsPipe()
        self.pose_estimator_pipe = TagPoseEstimatorPipe()

    def detector_params(self, settings: S) -> FiducialDetectorParams:
        raise NotImplementedError

    def set_pipe_params(self, props: FrameStaticProperties, settings: S) -> None:
        self.fiducial_detection_pipe.set_params(self.detector_params(settings))
        self.collect_targets_pipe.set_params(fiducial_collect_params(settings, props))

        calibration = self.pose_calibration()
        if calibration is not None:
            self.pose_estimator_pipe.set_params(
                TagPoseEstimatorParams(
                    config=TagEstimatorConfig(tag_size(settings), calibration),
                    num_iterations=settings.num_iterations,
                )
            )

    def process(self, frame: Frame, settings: PipelineSettings) -> CVPipelineResult:
        profile = self.new_profile()

        detections = self.run_stage(
            profile,
            "fiducial_detection",
            self.fiducial_detection_pipe,
            frame.processed_image.mat,
        )
        targets = self.run_stage(
            profile, "collect_targets", self.collect_targets_pipe, detections
        )
        targets = sorted(targets, key=lambda t: t.area, reverse=True)[: max_targets(settings)]

        if self.pose_calibration() is not None:
            targets = self.run_stage(
                profile, "pose_estimation", self.pose_estimator_pipe, targets
            )

        return self.build_result(frame, targets, profile)


class AprilTagPipeline(FiducialPipeline[AprilTagPipelineSettings]):
    """Detect AprilTags of one family."""

    PIPELINE_TYPE = PipelineType.APRILTAG

    def __init__(self, settings: AprilTagPipelineSettings | None = None):
        super().__init__(settings or AprilTagPipelineSettings())

    def detector_params(self, settings: AprilTagPipelineSettings) -> FiducialDetectorParams:
        return FiducialDetectorParams(
            dictionary=APRILTAG_DICTIONARIES[settings.tag_family],
            corner_refinement=(
                CornerRefinement.APRILTAG if settings.refine_edges else CornerRefinement.NONE
            ),
            error_correction_rate=settings.error_correction_rate,
            decimate=settings.decimate,
            blur=settings.blur,
        )


class ArucoPipeline(FiducialPipeline[ArucoPipelineSettings]):
    """Detect ArUco markers of one dictionary."""

    PIPELINE_TYPE = PipelineType.ARUCO

    def __init__(self, settings: ArucoPipelineSettings | None = None):
        super().__init__(settings or ArucoPipelineSettings())

    def detector_params(self, settings: ArucoPipelineSettings) -> FiducialDetectorParams:
        return FiducialDetectorParams(
            dictionary=ARUCO_DICTIONARIES[settings.dictionary],
            corner_refinement=(
                CornerRefinement.SUBPIX
                if settings.use_corner_refinement
                else CornerRefinement.NONE
            ),
            refine_window_size=settings.refine_window_size,
            error_correction_rate=settings.error_correction_rate,
        )
