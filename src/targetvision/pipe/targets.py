"""Conversion of contours and fiducial detections into tracked targets."""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from ..frame import FrameStaticProperties
from ..target import (
    PotentialTarget,
    RobotOffsetPointMode,
    TargetOffsetPointEdge,
    TrackedTarget,
    calculate_pitch,
    calculate_yaw,
    order_quad_corners,
)
from .base import CVPipe
from .fiducial import FiducialDetection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RobotOffsetParams:
    """Crosshair placement.

    Attributes:
        mode: NONE uses the image centre, SINGLE a fixed point, DUAL a point
            interpolated between two calibrated points by target area.
        single_point: Crosshair for SINGLE mode, in pixels.
        dual_point_a: First DUAL-mode crosshair, in pixels.
        dual_point_a_area: Target area percentage at which point A applies.
        dual_point_b: Second DUAL-mode crosshair, in pixels.
        dual_point_b_area: Target area percentage at which point B applies.
    """

    mode: RobotOffsetPointMode = RobotOffsetPointMode.NONE
    single_point: tuple[float, float] = (0.0, 0.0)
    dual_point_a: tuple[float, float] = (0.0, 0.0)
    dual_point_a_area: float = 0.0
    dual_point_b: tuple[float, float] = (0.0, 0.0)
    dual_point_b_area: float = 0.0

    def crosshair(
        self, props: FrameStaticProperties, target_area: float
    ) -> tuple[float, float]:
        """Crosshair location for a target of ``target_area`` percent."""
        if self.mode == RobotOffsetPointMode.SINGLE:
            return self.single_point
        if self.mode == RobotOffsetPointMode.DUAL:
            span = self.dual_point_b_area - self.dual_point_a_area
            if span == 0:
                return self.dual_point_a
            t = (target_area - self.dual_point_a_area) / span
            ax, ay = self.dual_point_a
            bx, by = self.dual_point_b
            return ax + t * (bx - ax), ay + t * (by - ay)
        return props.center_x, props.center_y


def _edge_point(
    box: np.ndarray, edge: TargetOffsetPointEdge
) -> tuple[float, float]:
    if edge == TargetOffsetPointEdge.CENTER:
        cx, cy = box.mean(axis=0)
        return float(cx), float(cy)
    if edge in (TargetOffsetPointEdge.TOP, TargetOffsetPointEdge.BOTTOM):
        by_y = box[np.argsort(box[:, 1])]
        pair = by_y[:2] if edge == TargetOffsetPointEdge.TOP else by_y[2:]
    else:
        by_x = box[np.argsort(box[:, 0])]
        pair = by_x[:2] if edge == TargetOffsetPointEdge.LEFT else by_x[2:]
    px, py = pair.mean(axis=0)
    return float(px), float(py)


def _angles(
    target: TrackedTarget, props: FrameStaticProperties, offset: RobotOffsetParams
) -> None:
    crosshair = offset.crosshair(props, target.area)
    target.robot_offset_point = (float(crosshair[0]), float(crosshair[1]))
    target.yaw = calculate_yaw(
        crosshair[0], target.center[0], props.horizontal_focal_length
    )
    target.pitch = calculate_pitch(
        crosshair[1], target.center[1], props.vertical_focal_length
    )


@dataclass(frozen=True)
class Collect2dTargetsParams:
    offset_point_edge: TargetOffsetPointEdge
    robot_offset: RobotOffsetParams
    frame_static_properties: FrameStaticProperties


class Collect2dTargetsPipe(
    CVPipe[list[PotentialTarget], list[TrackedTarget], Collect2dTargetsParams]
):
    """Measure yaw, pitch, area and skew of each potential target."""

    def process(self, in_: list[PotentialTarget]) -> list[TrackedTarget]:
        props = self.params.frame_static_properties
        targets = []
        for potential in in_:
            contour = potential.main_contour
            rect = contour.min_area_rect
            box = cv2.boxPoints(rect)
            target = TrackedTarget(
                area=contour.area / props.image_area * 100.0,
                skew=float(rect[2]),
                center=_edge_point(box, self.params.offset_point_edge),
                min_area_rect_corners=box.astype(np.float64),
                contour=contour,
                sub_contours=list(potential.sub_contours),
            )
            _angles(target, props, self.params.robot_offset)
            targets.append(target)
        return targets


@dataclass(frozen=True)
class CollectFiducialTargetsParams:
    robot_offset: RobotOffsetParams
    frame_static_properties: FrameStaticProperties


class CollectFiducialTargetsPipe(
    CVPipe[list[FiducialDetection], list[TrackedTarget], CollectFiducialTargetsParams]
):
    """Tracked targets from decoded fiducials, corners kept in detector order."""

    def process(self, in_: list[FiducialDetection]) -> list[TrackedTarget]:
        props = self.params.frame_static_properties
        targets = []
        for detection in in_:
            corners = np.asarray(detection.corners, dtype=np.float64).reshape(4, 2)
            rect = cv2.minAreaRect(corners.astype(np.float32))
            cx, cy = corners.mean(axis=0)
            target = TrackedTarget(
                area=float(cv2.contourArea(corners.astype(np.float32)))
                / props.image_area
                * 100.0,
                skew=float(rect[2]),
                center=(float(cx), float(cy)),
                min_area_rect_corners=cv2.boxPoints(rect).astype(np.float64),
                target_corners=corners,
                fiducial_id=detection.id,
            )
            _angles(target, props, self.params.robot_offset)
            targets.append(target)
        return targets


@dataclass(frozen=True)
class CornerDetectionParams:
    """Polygon approximation used to find the corners of a target.

    Attributes:
        use_convex_hulls: Approximate the convex hull instead of the contour.
        exact_side_count: Reject targets whose polygon does not have exactly
            ``side_count`` vertices.
        side_count: Expected vertex count.
        accuracy_percentage: approxPolyDP epsilon as a percentage of the
            perimeter.
    """

    use_convex_hulls: bool
    exact_side_count: bool
    side_count: int
    accuracy_percentage: float


class CornerDetectionPipe(
    CVPipe[list[TrackedTarget], list[TrackedTarget], CornerDetectionParams]
):
    """Fill ``target_corners`` with four ordered corners, or None.

    Targets are updated in place and returned.
    """

    def check_params(self, params: CornerDetectionParams) -> None:
        if params.side_count < 3:
            raise self.fail(f"side count must be >= 3, got {params.side_count}")
        if params.accuracy_percentage <= 0:
            raise self.fail(
                f"accuracy percentage must be positive, got {params.accuracy_percentage}"
            )

    def process(self, in_: list[TrackedTarget]) -> list[TrackedTarget]:
        for target in in_:
            target.target_corners = self._detect(target)
        return in_

    def _detect(self, target: TrackedTarget) -> np.ndarray | None:
        if target.contour is None:
            return None
        points = (
            target.contour.convex_hull
            if self.params.use_convex_hulls
            else target.contour.points
        )
        perimeter = cv2.arcLength(points, True)
        epsilon = self.params.accuracy_percentage / 100.0 * perimeter
        approx = cv2.approxPolyDP(points, epsilon, True).reshape(-1, 2)

        if self.params.exact_side_count and len(approx) != self.params.side_count:
            return None
        if len(approx) < 4:
            return None
        return order_quad_corners(approx)
