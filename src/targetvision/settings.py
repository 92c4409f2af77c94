"""Persisted per-pipeline settings and the closed set of pipeline kinds."""

import copy
import logging
from enum import Enum
from typing import Annotated, ClassVar, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .frame import FrameDivisor, ImageRotationMode
from .target import (
    ContourGroupingMode,
    ContourIntersectionDirection,
    ContourShape,
    ContourSortMode,
    RobotOffsetPointMode,
    TargetModel,
    TargetOffsetPointEdge,
    TargetOrientation,
)

logger = logging.getLogger(__name__)


class PipelineType(str, Enum):
    """Kinds of pipeline a camera can run.

    ``base_index`` is the stable integer id used by external callers when
    requesting a kind change. Built-in kinds have negative ids.
    """

    CALIB_3D = "calib_3d"
    DRIVER_MODE = "driver_mode"
    REFLECTIVE = "reflective"
    COLORED_SHAPE = "colored_shape"
    APRILTAG = "apriltag"
    ARUCO = "aruco"

    @property
    def base_index(self) -> int:
        return _BASE_INDEXES[self]

    @property
    def is_builtin(self) -> bool:
        return self.base_index < 0

    @classmethod
    def from_base_index(cls, base_index: int) -> "PipelineType | None":
        for pipeline_type, index in _BASE_INDEXES.items():
            if index == base_index:
                return pipeline_type
        return None


_BASE_INDEXES = {
    PipelineType.CALIB_3D: -2,
    PipelineType.DRIVER_MODE: -1,
    PipelineType.REFLECTIVE: 0,
    PipelineType.COLORED_SHAPE: 1,
    PipelineType.APRILTAG: 2,
    PipelineType.ARUCO: 3,
}


class AprilTagFamily(str, Enum):
    TAG_36H11 = "tag36h11"
    TAG_25H9 = "tag25h9"
    TAG_16H5 = "tag16h5"


class ArucoDictionary(str, Enum):
    DICT_4X4_50 = "4x4_50"
    DICT_5X5_100 = "5x5_100"
    DICT_6X6_250 = "6x6_250"
    DICT_7X7_1000 = "7x7_1000"


# Never copied when a pipeline changes kind. Identity fields are set
# explicitly and each kind keeps its own default target model.
COPY_EXEMPT_FIELDS = frozenset(
    {"pipeline_index", "pipeline_type", "pipeline_nickname", "target_model"}
)


def _check_range(name: str, value: tuple[float, float]) -> tuple[float, float]:
    low, high = value
    if low < 0 or high < low:
        raise ValueError(f"{name} must satisfy 0 <= min <= max, got {value}")
    return value


class PipelineSettings(BaseModel):
    """Settings shared by every pipeline kind.

    Attributes:
        pipeline_index: Position of this pipeline in the camera's user list.
        pipeline_type: Kind of pipeline these settings configure.
        pipeline_nickname: User-facing name, unique within a camera.
        input_image_rotation_mode: Rotation applied to captured images.
        camera_exposure_raw: Manual exposure in camera-native units.
        camera_auto_exposure: Let the camera control exposure.
        camera_brightness: Brightness, 0-100.
        camera_gain: Gain, 0-100.
        output_should_draw: Draw overlays on the output stream.
        output_show_multiple_targets: Report and draw more than one target.
        streaming_frame_divisor: Downscale factor for the output stream.
        offset_robot_offset_mode: How the crosshair position is derived.
        offset_single_point: Crosshair in pixels for single-point mode.
        offset_dual_point_a: First calibrated crosshair for dual-point mode.
        offset_dual_point_a_area: Target area at which point A was taken.
        offset_dual_point_b: Second calibrated crosshair for dual-point mode.
        offset_dual_point_b_area: Target area at which point B was taken.
        solve_pnp_enabled: Estimate 3-D target poses.
        target_model: Target geometry used for pose estimation.
    """

    model_config = ConfigDict(extra="allow")

    SHARED_FIELDS: ClassVar[tuple[str, ...]] = (
        "pipeline_index",
        "pipeline_type",
        "pipeline_nickname",
        "input_image_rotation_mode",
        "camera_exposure_raw",
        "camera_auto_exposure",
        "camera_brightness",
        "camera_gain",
        "output_should_draw",
        "output_show_multiple_targets",
        "streaming_frame_divisor",
        "offset_robot_offset_mode",
        "offset_single_point",
        "offset_dual_point_a",
        "offset_dual_point_a_area",
        "offset_dual_point_b",
        "offset_dual_point_b_area",
        "solve_pnp_enabled",
        "target_model",
    )

    pipeline_index: int = 0
    pipeline_type: PipelineType = PipelineType.REFLECTIVE
    pipeline_nickname: str = "New Pipeline"

    input_image_rotation_mode: ImageRotationMode = ImageRotationMode.DEG_0
    camera_exposure_raw: float = 20.0
    camera_auto_exposure: bool = False
    camera_brightness: int = 50
    camera_gain: int = 75

    output_should_draw: bool = True
    output_show_multiple_targets: bool = False
    streaming_frame_divisor: FrameDivisor = FrameDivisor.NONE

    offset_robot_offset_mode: RobotOffsetPointMode = RobotOffsetPointMode.NONE
    offset_single_point: tuple[float, float] = (0.0, 0.0)
    offset_dual_point_a: tuple[float, float] = (0.0, 0.0)
    offset_dual_point_a_area: float = 0.0
    offset_dual_point_b: tuple[float, float] = (0.0, 0.0)
    offset_dual_point_b_area: float = 0.0

    solve_pnp_enabled: bool = False
    target_model: TargetModel = TargetModel.K2020_HIGH_GOAL_OUTER

    @field_validator("camera_brightness", "camera_gain")
    @classmethod
    def validate_percentage(cls, v: int) -> int:
        """Validate that brightness/gain are within 0-100."""
        if not 0 <= v <= 100:
            raise ValueError(f"must be within 0-100, got {v}")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "PipelineSettings":
        """Warn about unknown settings keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown settings keys in %s (ignored): %s",
                type(self).__name__,
                list(self.__pydantic_extra__.keys()),
            )
        return self

    def clone(self) -> "PipelineSettings":
        """Deep copy of these settings."""
        return self.model_copy(deep=True)


class AdvancedPipelineSettings(PipelineSettings):
    """Settings shared by the target-detecting pipeline kinds.

    Attributes:
        hsv_hue: Hue range, 0-180. Wraps around when min > max.
        hsv_saturation: Saturation range, 0-255.
        hsv_value: Value range, 0-255.
        hue_inverted: Select hues outside of ``hsv_hue`` instead of inside.
        contour_area: Accepted contour area, percent of image area.
        contour_ratio: Accepted width/height ratio of the bounding rectangle.
        contour_fullness: Accepted contour/rectangle area ratio, percent.
        contour_speckle_percentage: Contours smaller than this percentage of
            the average contour area are rejected.
        contour_sort_mode: Target ordering.
        contour_target_orientation: Expected target orientation.
        contour_target_offset_point_edge: Rectangle point reported as the
            target location.
        corner_detection_use_convex_hulls: Approximate the convex hull rather
            than the raw contour.
        corner_detection_exact_side_count: Require exactly
            ``corner_detection_side_count`` corners.
        corner_detection_side_count: Expected corner count.
        corner_detection_accuracy_percentage: Polygon approximation epsilon as
            a percentage of the contour perimeter.
    """

    SHARED_FIELDS: ClassVar[tuple[str, ...]] = PipelineSettings.SHARED_FIELDS + (
        "hsv_hue",
        "hsv_saturation",
        "hsv_value",
        "hue_inverted",
        "contour_area",
        "contour_ratio",
        "contour_fullness",
        "contour_speckle_percentage",
        "contour_sort_mode",
        "contour_target_orientation",
        "contour_target_offset_point_edge",
        "corner_detection_use_convex_hulls",
        "corner_detection_exact_side_count",
        "corner_detection_side_count",
        "corner_detection_accuracy_percentage",
    )

    hsv_hue: tuple[int, int] = (50, 180)
    hsv_saturation: tuple[int, int] = (50, 255)
    hsv_value: tuple[int, int] = (50, 255)
    hue_inverted: bool = False

    contour_area: tuple[float, float] = (0.0, 100.0)
    contour_ratio: tuple[float, float] = (0.0, 20.0)
    contour_fullness: tuple[float, float] = (0.0, 100.0)
    contour_speckle_percentage: int = 5
    contour_sort_mode: ContourSortMode = ContourSortMode.LARGEST
    contour_target_orientation: TargetOrientation = TargetOrientation.LANDSCAPE
    contour_target_offset_point_edge: TargetOffsetPointEdge = TargetOffsetPointEdge.CENTER

    corner_detection_use_convex_hulls: bool = True
    corner_detection_exact_side_count: bool = False
    corner_detection_side_count: int = 4
    corner_detection_accuracy_percentage: float = 10.0

    @field_validator("hsv_hue")
    @classmethod
    def validate_hue(cls, v: tuple[int, int]) -> tuple[int, int]:
        """Validate hue bounds (either order is allowed)."""
        if not all(0 <= h <= 180 for h in v):
            raise ValueError(f"hue bounds must be within 0-180, got {v}")
        return v

    @field_validator("hsv_saturation", "hsv_value")
    @classmethod
    def validate_sv(cls, v: tuple[int, int]) -> tuple[int, int]:
        """Validate saturation/value bounds."""
        if not all(0 <= c <= 255 for c in v) or v[0] > v[1]:
            raise ValueError(f"bounds must satisfy 0 <= min <= max <= 255, got {v}")
        return v

    @field_validator("contour_area", "contour_ratio", "contour_fullness")
    @classmethod
    def validate_contour_range(
        cls, v: tuple[float, float], info: ValidationInfo
    ) -> tuple[float, float]:
        return _check_range(info.field_name, v)


class ReflectivePipelineSettings(AdvancedPipelineSettings):
    """Settings for retroreflective tape targets."""

    pipeline_type: Literal[PipelineType.REFLECTIVE] = PipelineType.REFLECTIVE

    contour_grouping_mode: ContourGroupingMode = ContourGroupingMode.SINGLE
    contour_intersection: ContourIntersectionDirection = ContourIntersectionDirection.UP


class ColoredShapePipelineSettings(AdvancedPipelineSettings):
    """Settings for solid-colored shape targets.

    Attributes:
        contour_shape: Shape a contour must have to be kept.
        accuracy_percentage: Polygon approximation epsilon for shape
            classification, percent of the contour perimeter.
        circle_accuracy: Minimum circularity (contour area over enclosing
            circle area), percent.
    """

    pipeline_type: Literal[PipelineType.COLORED_SHAPE] = PipelineType.COLORED_SHAPE

    contour_shape: ContourShape = ContourShape.CIRCLE
    accuracy_percentage: float = 4.0
    circle_accuracy: float = 70.0


class AprilTagPipelineSettings(AdvancedPipelineSettings):
    """Settings for AprilTag detection.

    Attributes:
        tag_family: AprilTag family to decode.
        decimate: Integer downscale factor applied before detection.
        blur: Gaussian blur sigma applied before detection (0 disables).
        refine_edges: Refine corners with the AprilTag edge method.
        error_correction_rate: Fraction of the family's correction
            capability used while decoding, 0-1.
        num_iterations: Iteration limit for the pose solver.
    """

    pipeline_type: Literal[PipelineType.APRILTAG] = PipelineType.APRILTAG
    solve_pnp_enabled: bool = True
    output_show_multiple_targets: bool = True
    target_model: TargetModel = TargetModel.K_APRILTAG_6P5IN_36H11

    tag_family: AprilTagFamily = AprilTagFamily.TAG_36H11
    decimate: int = 1
    blur: float = 0.0
    refine_edges: bool = True
    error_correction_rate: float = 0.6
    num_iterations: int = 40

    @field_validator("decimate", "num_iterations")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v


class ArucoPipelineSettings(AdvancedPipelineSettings):
    """Settings for ArUco marker detection."""

    pipeline_type: Literal[PipelineType.ARUCO] = PipelineType.ARUCO
    solve_pnp_enabled: bool = True
    output_show_multiple_targets: bool = True
    target_model: TargetModel = TargetModel.K_APRILTAG_6IN_16H5

    dictionary: ArucoDictionary = ArucoDictionary.DICT_4X4_50
    use_corner_refinement: bool = True
    refine_window_size: int = 5
    error_correction_rate: float = 0.6
    num_iterations: int = 40


class DriverModePipelineSettings(PipelineSettings):
    """Settings for the built-in driver camera view."""

    pipeline_type: Literal[PipelineType.DRIVER_MODE] = PipelineType.DRIVER_MODE
    pipeline_index: int = -1
    pipeline_nickname: str = "Driver Mode"
    camera_auto_exposure: bool = True


class Calibration3dPipelineSettings(PipelineSettings):
    """Settings for the built-in chessboard calibration pipeline.

    Attributes:
        board_width: Inner corners per chessboard row.
        board_height: Inner corners per chessboard column.
        square_size: Chessboard square edge length in meters.
        min_snapshots: Snapshots required before calibrating.
    """

    pipeline_type: Literal[PipelineType.CALIB_3D] = PipelineType.CALIB_3D
    pipeline_index: int = -2
    pipeline_nickname: str = "Calibration"

    board_width: int = 7
    board_height: int = 7
    square_size: float = 0.0254
    min_snapshots: int = 12

    @field_validator("board_width", "board_height")
    @classmethod
    def validate_board(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"board needs at least 2 inner corners per side, got {v}")
        return v


UserPipelineSettings = Annotated[
    Union[
        ReflectivePipelineSettings,
        ColoredShapePipelineSettings,
        AprilTagPipelineSettings,
        ArucoPipelineSettings,
    ],
    Field(discriminator="pipeline_type"),
]

USER_SETTINGS_CLASSES: dict[PipelineType, type[AdvancedPipelineSettings]] = {
    PipelineType.REFLECTIVE: ReflectivePipelineSettings,
    PipelineType.COLORED_SHAPE: ColoredShapePipelineSettings,
    PipelineType.APRILTAG: AprilTagPipelineSettings,
    PipelineType.ARUCO: ArucoPipelineSettings,
}


def create_settings_for_type(
    pipeline_type: PipelineType, nickname: str
) -> PipelineSettings | None:
    """Fresh default settings for a user pipeline kind.

    Returns None (and logs) for built-in kinds, which cannot be user pipelines.
    """
    settings_cls = USER_SETTINGS_CLASSES.get(pipeline_type)
    if settings_cls is None:
        logger.error("Got invalid pipeline type: %s", pipeline_type)
        return None
    return settings_cls(pipeline_nickname=nickname)


def copy_shared_settings(
    old: PipelineSettings, new: PipelineSettings
) -> PipelineSettings:
    """Copy the shared fields of ``old`` onto ``new``.

    Only fields declared in both classes' ``SHARED_FIELDS`` and not listed
    in ``COPY_EXEMPT_FIELDS`` are copied. Kind-specific fields of ``old``
    are left behind.

    Returns:
        ``new``, for chaining.
    """
    old_shared = set(old.SHARED_FIELDS)
    for name in new.SHARED_FIELDS:
        if name in COPY_EXEMPT_FIELDS or name not in old_shared:
            continue
        value = copy.deepcopy(getattr(old, name))
        logger.debug("Copying setting %s = %r", name, value)
        setattr(new, name, value)
    return new
