"""Target geometry: contours, target models, poses and tracked targets."""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any

import cv2
import numpy as np

logger = logging.getLogger(__name__)

INCHES_TO_METERS = 0.0254

# OpenCV camera frame (x right, y down, z forward) to NWU (x forward, y left, z up)
_CV_TO_NWU = np.array(
    [[0.0, 0.0, 1.0], [-1.0, 0.0, 0.0], [0.0, -1.0, 0.0]], dtype=np.float64
)


class TargetOrientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class TargetOffsetPointEdge(str, Enum):
    """Point of a target's bounding rectangle reported as its location."""

    CENTER = "center"
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


class RobotOffsetPointMode(str, Enum):
    """How the crosshair (yaw/pitch origin) is placed in the image."""

    NONE = "none"
    SINGLE = "single"
    DUAL = "dual"


class ContourSortMode(str, Enum):
    LARGEST = "largest"
    SMALLEST = "smallest"
    HIGHEST = "highest"
    LOWEST = "lowest"
    LEFTMOST = "leftmost"
    RIGHTMOST = "rightmost"
    CENTERMOST = "centermost"


class ContourGroupingMode(str, Enum):
    SINGLE = "single"
    DUAL = "dual"
    TWO_OR_MORE = "two_or_more"


class ContourIntersectionDirection(str, Enum):
    NONE = "none"
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


class ContourShape(str, Enum):
    CUSTOM = "custom"
    CIRCLE = "circle"
    TRIANGLE = "triangle"
    QUADRILATERAL = "quadrilateral"

    @property
    def side_count(self) -> int | None:
        return {
            ContourShape.TRIANGLE: 3,
            ContourShape.QUADRILATERAL: 4,
        }.get(self)


def _square_tag(size_m: float) -> np.ndarray:
    half = size_m / 2.0
    # Same corner order as cv2.aruco detections and SOLVEPNP_IPPE_SQUARE
    return np.array(
        [
            [-half, half, 0.0],
            [half, half, 0.0],
            [half, -half, 0.0],
            [-half, -half, 0.0],
        ],
        dtype=np.float64,
    )


def _inches(points: list[tuple[float, float]]) -> np.ndarray:
    return np.array(
        [[x * INCHES_TO_METERS, y * INCHES_TO_METERS, 0.0] for x, y in points],
        dtype=np.float64,
    )


_TARGET_VERTICES: dict[str, np.ndarray] = {
    "2020_high_goal_outer": _inches(
        [(-19.625, 8.5), (19.625, 8.5), (9.8125, -8.5), (-9.8125, -8.5)]
    ),
    "2019_dual_target": _inches(
        [(-5.936, 2.662), (5.936, 2.662), (7.313, -2.662), (-7.313, -2.662)]
    ),
    "apriltag_6p5in_36h11": _square_tag(6.5 * INCHES_TO_METERS),
    "apriltag_6in_16h5": _square_tag(6.0 * INCHES_TO_METERS),
}


class TargetModel(str, Enum):
    """Known 3-D target geometries used for pose estimation.

    Vertices are in meters, ordered top-left, top-right, bottom-right,
    bottom-left as seen from the camera, with x right and y up.
    """

    K2020_HIGH_GOAL_OUTER = "2020_high_goal_outer"
    K2019_DUAL_TARGET = "2019_dual_target"
    K_APRILTAG_6P5IN_36H11 = "apriltag_6p5in_36h11"
    K_APRILTAG_6IN_16H5 = "apriltag_6in_16h5"

    @property
    def vertices(self) -> np.ndarray:
        return _TARGET_VERTICES[self.value].copy()

    @property
    def box_depth(self) -> float:
        """Extrusion depth used to draw 3-D boxes around this model (meters)."""
        v = _TARGET_VERTICES[self.value]
        return float(np.ptp(v[:, 0]) / 2.0)

    @property
    def is_square_tag(self) -> bool:
        return self.value.startswith("apriltag")


@dataclass
class Pose3d:
    """Camera-to-target transform in the NWU camera frame.

    Attributes:
        translation: Target origin in meters, shape (3,).
        rotation: Rotation matrix, shape (3, 3).
        rvec: OpenCV rotation vector of the original solve (camera frame).
        tvec: OpenCV translation vector of the original solve (camera frame).
    """

    translation: np.ndarray
    rotation: np.ndarray
    rvec: np.ndarray
    tvec: np.ndarray

    @classmethod
    def from_opencv(cls, rvec: np.ndarray, tvec: np.ndarray) -> "Pose3d":
        rvec = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
        tvec = np.asarray(tvec, dtype=np.float64).reshape(3, 1)
        R_cv, _ = cv2.Rodrigues(rvec)
        return cls(
            translation=(_CV_TO_NWU @ tvec).reshape(3),
            rotation=_CV_TO_NWU @ R_cv,
            rvec=rvec,
            tvec=tvec,
        )

    @property
    def distance(self) -> float:
        return float(np.linalg.norm(self.translation))

    def to_dict(self) -> dict[str, Any]:
        return {
            "translation": [float(v) for v in self.translation],
            "rotation": [[float(v) for v in row] for row in self.rotation],
        }


class Contour:
    """A single contour with lazily computed geometric properties.

    Args:
        points: OpenCV contour points, shape (N, 1, 2) or (N, 2).
    """

    def __init__(self, points: np.ndarray):
        self.points = np.asarray(points, dtype=np.int32).reshape(-1, 1, 2)

    @cached_property
    def area(self) -> float:
        return float(cv2.contourArea(self.points))

    @cached_property
    def min_area_rect(self) -> tuple[tuple[float, float], tuple[float, float], float]:
        return cv2.minAreaRect(self.points)

    @cached_property
    def bounding_rect(self) -> tuple[int, int, int, int]:
        return tuple(int(v) for v in cv2.boundingRect(self.points))

    @cached_property
    def convex_hull(self) -> np.ndarray:
        return cv2.convexHull(self.points)

    @cached_property
    def center(self) -> tuple[float, float]:
        m = cv2.moments(self.points)
        if m["m00"] == 0:
            (cx, cy), _, _ = self.min_area_rect
            return float(cx), float(cy)
        return m["m10"] / m["m00"], m["m01"] / m["m00"]

    def fit_line(self) -> tuple[float, float, float, float]:
        vx, vy, x0, y0 = cv2.fitLine(self.points, cv2.DIST_L2, 0, 0.01, 0.01).ravel()
        return float(vx), float(vy), float(x0), float(y0)

    def is_intersecting(
        self, other: "Contour", direction: ContourIntersectionDirection
    ) -> bool:
        """Whether the fitted lines of two contours meet on the given side.

        The side is judged relative to the midpoint of the two contour
        centres. Parallel lines never intersect.
        """
        if direction == ContourIntersectionDirection.NONE:
            return True

        vx1, vy1, x1, y1 = self.fit_line()
        vx2, vy2, x2, y2 = other.fit_line()
        det = vx2 * vy1 - vx1 * vy2
        if abs(det) < 1e-9:
            return False
        t = (vx2 * (y2 - y1) - vy2 * (x2 - x1)) / det
        ix = x1 + t * vx1
        iy = y1 + t * vy1

        mid_x = (self.center[0] + other.center[0]) / 2.0
        mid_y = (self.center[1] + other.center[1]) / 2.0
        if direction == ContourIntersectionDirection.UP:
            return iy < mid_y
        if direction == ContourIntersectionDirection.DOWN:
            return iy > mid_y
        if direction == ContourIntersectionDirection.LEFT:
            return ix < mid_x
        return ix > mid_x

    @classmethod
    def combine(cls, contours: list["Contour"]) -> "Contour":
        """Single contour made of the convex hull of several contours."""
        stacked = np.vstack([c.points for c in contours])
        return cls(cv2.convexHull(stacked))


@dataclass
class PotentialTarget:
    """A contour, or group of contours, that may become a tracked target."""

    main_contour: Contour
    sub_contours: list[Contour] = field(default_factory=list)
    shape: ContourShape | None = None


@dataclass
class TrackedTarget:
    """One detected object.

    Attributes:
        yaw: Horizontal angle from the crosshair to the target (degrees,
            positive right).
        pitch: Vertical angle from the crosshair to the target (degrees,
            positive up).
        area: Target area as a percentage of the image area.
        skew: Rotation of the minimum-area rectangle (degrees).
        center: Target location in pixels (offset point applied).
        min_area_rect_corners: Corners of the minimum-area rectangle, (4, 2).
        contour: Source contour, or None for fiducials.
        sub_contours: Individual contours of a grouped target.
        target_corners: Refined corners used for pose estimation, (N, 2), or
            None when corners were not found.
        fiducial_id: Decoded fiducial id, -1 for non-fiducial targets.
        best_camera_to_target: Best pose estimate, if solved.
        alt_camera_to_target: Alternate pose for planar ambiguity, if any.
        pose_ambiguity: Ratio of best to alternate reprojection error, or -1.
        robot_offset_point: Crosshair location used for yaw/pitch, in pixels.
    """

    yaw: float = 0.0
    pitch: float = 0.0
    area: float = 0.0
    skew: float = 0.0
    center: tuple[float, float] = (0.0, 0.0)
    min_area_rect_corners: np.ndarray | None = None
    contour: Contour | None = None
    sub_contours: list[Contour] = field(default_factory=list)
    target_corners: np.ndarray | None = None
    fiducial_id: int = -1
    best_camera_to_target: Pose3d | None = None
    alt_camera_to_target: Pose3d | None = None
    pose_ambiguity: float = -1.0
    robot_offset_point: tuple[float, float] = (0.0, 0.0)

    @property
    def has_pose(self) -> bool:
        return self.best_camera_to_target is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly plain Python types."""
        data: dict[str, Any] = {
            "yaw": float(self.yaw),
            "pitch": float(self.pitch),
            "area": float(self.area),
            "skew": float(self.skew),
            "center": [float(self.center[0]), float(self.center[1])],
            "fiducial_id": int(self.fiducial_id),
            "pose_ambiguity": float(self.pose_ambiguity),
        }
        if self.target_corners is not None:
            data["corners"] = [
                [float(x), float(y)] for x, y in np.asarray(self.target_corners)
            ]
        if self.best_camera_to_target is not None:
            data["best_camera_to_target"] = self.best_camera_to_target.to_dict()
        if self.alt_camera_to_target is not None:
            data["alt_camera_to_target"] = self.alt_camera_to_target.to_dict()
        return data


def calculate_yaw(offset_center_x: float, target_center_x: float, focal_length: float) -> float:
    if focal_length <= 0.0:
        return 0.0
    return math.degrees(math.atan((target_center_x - offset_center_x) / focal_length))


def calculate_pitch(
    offset_center_y: float, target_center_y: float, focal_length: float
) -> float:
    if focal_length <= 0.0:
        return 0.0
    # Image y grows downward; positive pitch is up
    return -math.degrees(math.atan((target_center_y - offset_center_y) / focal_length))


def order_quad_corners(points: np.ndarray) -> np.ndarray:
    """Order four points as top-left, top-right, bottom-right, bottom-left."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    sums = pts.sum(axis=1)
    diffs = pts[:, 0] - pts[:, 1]
    return np.array(
        [
            pts[np.argmin(sums)],
            pts[np.argmax(diffs)],
            pts[np.argmax(sums)],
            pts[np.argmin(diffs)],
        ],
        dtype=np.float64,
    )
