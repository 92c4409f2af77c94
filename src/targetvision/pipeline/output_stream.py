"""Annotated stream images for the current pipeline's results.

This pipeline is not persisted and not managed by the pipeline manager. It
resizes the frame's images for streaming and draws overlays that match the
kind of pipeline that produced the targets.
"""

import logging

from ..frame import CameraCalibration, Frame, FrameStaticProperties
from ..pipe import (
    CalculateFPSPipe,
    Draw2dAprilTagsPipe,
    Draw2dArucoPipe,
    Draw2dCrosshairPipe,
    Draw2dTargetsPipe,
    Draw3dAprilTagsPipe,
    Draw3dArucoPipe,
    Draw3dTargetsPipe,
    DrawCalibrationPipe,
    OutputMatPipe,
    ResizeImagePipe,
)
from ..pipe.draw import (
    Draw2dCrosshairParams,
    Draw2dFiducialsParams,
    Draw2dTargetsParams,
    Draw3dFiducialsParams,
    Draw3dTargetsParams,
    DrawCalibrationParams,
)
from ..pipe.output import OutputMatParams, ResizeImageParams
from ..settings import Calibration3dPipelineSettings, PipelineSettings, PipelineType
from ..target import TrackedTarget
from .base import CVPipelineResult
from .helpers import robot_offset_params, tag_size

logger = logging.getLogger(__name__)


class OutputStreamPipeline:
    """Fixed stream-preparation pipeline with a 12-slot profile."""

    PROFILE_STAGES = (
        "resize_input",
        "resize_output",
        "output_mat",
        "crosshair_input",
        "crosshair_output",
        "draw_2d_targets",
        "draw_3d_targets",
        "draw_2d_apriltags",
        "draw_3d_apriltags",
        "draw_2d_aruco",
        "draw_3d_aruco",
        "draw_calibration",
    )

    def __init__(self):
        self.resize_image_pipe = ResizeImagePipe()
        self.output_mat_pipe = OutputMatPipe()
        self.draw_2d_crosshair_pipe = Draw2dCrosshairPipe()
        self.draw_2d_targets_pipe = Draw2dTargetsPipe()
        self.draw_3d_targets_pipe = Draw3dTargetsPipe()
        self.draw_2d_apriltags_pipe = Draw2dAprilTagsPipe()
        self.draw_3d_apriltags_pipe = Draw3dAprilTagsPipe()
        self.draw_2d_aruco_pipe = Draw2dArucoPipe()
        self.draw_3d_aruco_pipe = Draw3dArucoPipe()
        self.draw_calibration_pipe = DrawCalibrationPipe()
        self.calculate_fps_pipe = CalculateFPSPipe()
        self.output_mat_pipe.set_params(OutputMatParams())

    def set_pipe_params(
        self, props: FrameStaticProperties, settings: PipelineSettings
    ) -> CameraCalibration | None:
        """Derive draw parameters; returns the calibration 3-D overlays use."""
        divisor = settings.streaming_frame_divisor
        show_multiple = settings.output_show_multiple_targets

        self.resize_image_pipe.set_params(ResizeImageParams(divisor))
        self.draw_2d_crosshair_pipe.set_params(
            Draw2dCrosshairParams(
                robot_offset=robot_offset_params(settings),
                frame_static_properties=props,
                divisor=divisor,
            )
        )
        self.draw_2d_targets_pipe.set_params(
            Draw2dTargetsParams(show_multiple=show_multiple, divisor=divisor)
        )
        fiducial_2d = Draw2dFiducialsParams(divisor=divisor)
        self.draw_2d_apriltags_pipe.set_params(fiducial_2d)
        self.draw_2d_aruco_pipe.set_params(fiducial_2d)

        if isinstance(settings, Calibration3dPipelineSettings):
            self.draw_calibration_pipe.set_params(
                DrawCalibrationParams(settings.board_width, settings.board_height, divisor)
            )

        calibration = props.calibration if settings.solve_pnp_enabled else None
        if calibration is not None:
            self.draw_3d_targets_pipe.set_params(
                Draw3dTargetsParams(
                    calibration=calibration,
                    target_model=settings.target_model,
                    show_multiple=show_multiple,
                    divisor=divisor,
                )
            )
            fiducial_3d = Draw3dFiducialsParams(
                calibration=calibration, tag_size=tag_size(settings), divisor=divisor
            )
            self.draw_3d_apriltags_pipe.set_params(fiducial_3d)
            self.draw_3d_aruco_pipe.set_params(fiducial_3d)
        return calibration

    def process(
        self,
        frame: Frame,
        settings: PipelineSettings,
        targets: list[TrackedTarget],
    ) -> CVPipelineResult:
        """Resize and annotate ``frame`` in place.

        Args:
            frame: Frame whose images are turned into stream images.
            settings: Settings of the pipeline that produced ``targets``.
            targets: Targets to draw.

        Returns:
            Result wrapping the same frame, with this pipeline's profile.
        """
        profile = [0] * len(self.PROFILE_STAGES)

        def stage(name: str, pipe, in_) -> None:
            profile[self.PROFILE_STAGES.index(name)] = pipe.run(in_).nanos_elapsed

        props = frame.static_properties
        in_mat = frame.color_image
        out_mat = frame.processed_image

        if props is not None:
            calibration = self.set_pipe_params(props, settings)

            if not in_mat.empty():
                stage("resize_input", self.resize_image_pipe, in_mat)
            if not out_mat.empty():
                stage("resize_output", self.resize_image_pipe, out_mat)

            if settings.output_should_draw:
                if not in_mat.empty():
                    stage("crosshair_input", self.draw_2d_crosshair_pipe, (in_mat, targets))
                if not out_mat.empty():
                    if out_mat.channels() == 1:
                        stage("output_mat", self.output_mat_pipe, out_mat)
                    self._draw_output(stage, settings, calibration, (out_mat, targets))

        fps = self.calculate_fps_pipe.run(None).output
        return CVPipelineResult(
            sequence_id=frame.sequence_id,
            processing_nanos=sum(profile),
            fps=fps,
            targets=targets,
            input_and_output_frame=frame,
            profile_nanos=profile,
            profile_stages=self.PROFILE_STAGES,
        )

    def _draw_output(self, stage, settings, calibration, draw_input) -> None:
        pipeline_type = settings.pipeline_type
        use_3d = calibration is not None

        if pipeline_type == PipelineType.APRILTAG:
            if use_3d:
                stage("draw_3d_apriltags", self.draw_3d_apriltags_pipe, draw_input)
            else:
                stage("draw_2d_apriltags", self.draw_2d_apriltags_pipe, draw_input)
        elif pipeline_type == PipelineType.ARUCO:
            if use_3d:
                stage("draw_3d_aruco", self.draw_3d_aruco_pipe, draw_input)
            else:
                stage("draw_2d_aruco", self.draw_2d_aruco_pipe, draw_input)
        elif pipeline_type == PipelineType.CALIB_3D:
            stage("draw_calibration", self.draw_calibration_pipe, draw_input)
        else:
            stage("crosshair_output", self.draw_2d_crosshair_pipe, draw_input)
            if use_3d:
                stage("draw_3d_targets", self.draw_3d_targets_pipe, draw_input)
            else:
                stage("draw_2d_targets", self.draw_2d_targets_pipe, draw_input)
