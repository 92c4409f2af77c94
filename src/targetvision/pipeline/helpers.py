"""Helper functions deriving pipe parameters from pipeline settings."""

import logging

from ..frame import FrameStaticProperties
from ..pipe.contours import (
    MAX_MULTI_TARGET_RESULTS,
    FilterContoursParams,
    FindContoursParams,
    SortContoursParams,
    SpeckleRejectParams,
)
from ..pipe.targets import (
    Collect2dTargetsParams,
    CollectFiducialTargetsParams,
    CornerDetectionParams,
    RobotOffsetParams,
)
from ..settings import AdvancedPipelineSettings, PipelineSettings

logger = logging.getLogger(__name__)


def robot_offset_params(settings: PipelineSettings) -> RobotOffsetParams:
    """Crosshair placement configured in ``settings``."""
    return RobotOffsetParams(
        mode=settings.offset_robot_offset_mode,
        single_point=tuple(settings.offset_single_point),
        dual_point_a=tuple(settings.offset_dual_point_a),
        dual_point_a_area=settings.offset_dual_point_a_area,
        dual_point_b=tuple(settings.offset_dual_point_b),
        dual_point_b_area=settings.offset_dual_point_b_area,
    )


def max_targets(settings: PipelineSettings) -> int:
    return MAX_MULTI_TARGET_RESULTS if settings.output_show_multiple_targets else 1


def contour_pipe_params(
    settings: AdvancedPipelineSettings, props: FrameStaticProperties
) -> dict[str, object]:
    """Parameters of the stages shared by the contour-based pipelines.

    Args:
        settings: Settings of a reflective or colored-shape pipeline.
        props: Static properties of the frame about to be processed.

    Returns:
        Stage name to parameter object mapping.
    """
    return {
        "find_contours": FindContoursParams(),
        "speckle_reject": SpeckleRejectParams(settings.contour_speckle_percentage),
        "filter_contours": FilterContoursParams(
            area=tuple(settings.contour_area),
            ratio=tuple(settings.contour_ratio),
            fullness=tuple(settings.contour_fullness),
            orientation=settings.contour_target_orientation,
            frame_static_properties=props,
        ),
        "sort_contours": SortContoursParams(
            sort_mode=settings.contour_sort_mode,
            max_targets=max_targets(settings),
            frame_static_properties=props,
        ),
        "collect_2d_targets": Collect2dTargetsParams(
            offset_point_edge=settings.contour_target_offset_point_edge,
            robot_offset=robot_offset_params(settings),
            frame_static_properties=props,
        ),
        "corner_detection": CornerDetectionParams(
            use_convex_hulls=settings.corner_detection_use_convex_hulls,
            exact_side_count=settings.corner_detection_exact_side_count,
            side_count=settings.corner_detection_side_count,
            accuracy_percentage=settings.corner_detection_accuracy_percentage,
        ),
    }


def fiducial_collect_params(
    settings: PipelineSettings, props: FrameStaticProperties
) -> CollectFiducialTargetsParams:
    return CollectFiducialTargetsParams(
        robot_offset=robot_offset_params(settings),
        frame_static_properties=props,
    )


def tag_size(settings: PipelineSettings) -> float:
    """Edge length of the square tag described by the target model (meters)."""
    vertices = settings.target_model.vertices
    return float(vertices[:, 0].max() - vertices[:, 0].min())
