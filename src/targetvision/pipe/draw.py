"""Overlay stages drawing crosshairs and targets onto stream images.

Every draw pipe takes ``(image, targets)``, draws in place, and scales
pixel coordinates by the streaming divisor because the stream image has
already been downscaled when overlays are drawn.
"""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from ..frame import CameraCalibration, CVMat, FrameDivisor, FrameStaticProperties
from ..target import TargetModel, TrackedTarget
from .base import CVPipe
from .targets import RobotOffsetParams

logger = logging.getLogger(__name__)

DrawInput = tuple[CVMat, list[TrackedTarget]]

# BGR
GREEN = (0, 255, 0)
RED = (0, 0, 255)
BLUE = (255, 0, 0)


def _scale(points: np.ndarray, divisor: FrameDivisor) -> np.ndarray:
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2) / int(divisor)
    return np.round(pts).astype(np.int32)


def _point(xy: tuple[float, float], divisor: FrameDivisor) -> tuple[int, int]:
    return int(round(xy[0] / int(divisor))), int(round(xy[1] / int(divisor)))


def _project(
    points: np.ndarray, target: TrackedTarget, calibration: CameraCalibration
) -> np.ndarray:
    pose = target.best_camera_to_target
    projected, _ = cv2.projectPoints(
        np.asarray(points, dtype=np.float64),
        pose.rvec,
        pose.tvec,
        calibration.camera_matrix,
        calibration.dist_coeffs,
    )
    return projected.reshape(-1, 2)


def _visible(targets: list[TrackedTarget], show_multiple: bool) -> list[TrackedTarget]:
    return targets if show_multiple else targets[:1]


@dataclass(frozen=True)
class Draw2dCrosshairParams:
    robot_offset: RobotOffsetParams
    frame_static_properties: FrameStaticProperties
    divisor: FrameDivisor = FrameDivisor.NONE
    color: tuple[int, int, int] = GREEN
    size: int = 10


class Draw2dCrosshairPipe(CVPipe[DrawInput, None, Draw2dCrosshairParams]):
    """Draw the yaw/pitch origin of the best target, or the default crosshair."""

    def process(self, in_: DrawInput) -> None:
        image, targets = in_
        if image.empty():
            return
        if targets:
            center = targets[0].robot_offset_point
        else:
            center = self.params.robot_offset.crosshair(
                self.params.frame_static_properties, 0.0
            )
        x, y = _point(center, self.params.divisor)
        size = self.params.size
        mat = image.mat
        cv2.line(mat, (x - size, y), (x + size, y), self.params.color, 1)
        cv2.line(mat, (x, y - size), (x, y + size), self.params.color, 1)


@dataclass(frozen=True)
class Draw2dTargetsParams:
    show_multiple: bool = False
    divisor: FrameDivisor = FrameDivisor.NONE
    draw_contours: bool = True
    box_color: tuple[int, int, int] = RED
    contour_color: tuple[int, int, int] = BLUE
    center_color: tuple[int, int, int] = GREEN


class Draw2dTargetsPipe(CVPipe[DrawInput, None, Draw2dTargetsParams]):
    """Draw minimum-area rectangles, contours and centres."""

    def process(self, in_: DrawInput) -> None:
        image, targets = in_
        if image.empty():
            return
        mat = image.mat
        p = self.params
        for target in _visible(targets, p.show_multiple):
            if p.draw_contours and target.contour is not None:
                cv2.polylines(
                    mat, [_scale(target.contour.points, p.divisor)], True, p.contour_color, 1
                )
            if target.min_area_rect_corners is not None:
                cv2.polylines(
                    mat, [_scale(target.min_area_rect_corners, p.divisor)], True, p.box_color, 2
                )
            cv2.circle(mat, _point(target.center, p.divisor), 3, p.center_color, -1)


@dataclass(frozen=True)
class Draw3dTargetsParams:
    calibration: CameraCalibration
    target_model: TargetModel
    show_multiple: bool = False
    divisor: FrameDivisor = FrameDivisor.NONE
    bottom_color: tuple[int, int, int] = BLUE
    top_color: tuple[int, int, int] = GREEN


class Draw3dTargetsPipe(CVPipe[DrawInput, None, Draw3dTargetsParams]):
    """Draw the target model extruded into a box at each solved pose.

    Targets without a pose fall back to their 2-D corners.
    """

    def check_params(self, params: Draw3dTargetsParams) -> None:
        if params.calibration is None:
            raise self.fail("a camera calibration is required")

    def process(self, in_: DrawInput) -> None:
        image, targets = in_
        if image.empty():
            return
        mat = image.mat
        p = self.params
        bottom = p.target_model.vertices
        top = bottom.copy()
        top[:, 2] = p.target_model.box_depth

        for target in _visible(targets, p.show_multiple):
            if not target.has_pose:
                if target.target_corners is not None:
                    cv2.polylines(
                        mat, [_scale(target.target_corners, p.divisor)], True, p.bottom_color, 2
                    )
                continue
            bottom_px = _scale(_project(bottom, target, p.calibration), p.divisor)
            top_px = _scale(_project(top, target, p.calibration), p.divisor)
            cv2.polylines(mat, [bottom_px], True, p.bottom_color, 2)
            for b, t in zip(bottom_px, top_px):
                cv2.line(mat, tuple(int(v) for v in b), tuple(int(v) for v in t), p.top_color, 2)
            cv2.polylines(mat, [top_px], True, p.top_color, 2)


@dataclass(frozen=True)
class Draw2dFiducialsParams:
    divisor: FrameDivisor = FrameDivisor.NONE
    show_ids: bool = True
    color: tuple[int, int, int] = GREEN
    text_color: tuple[int, int, int] = RED


class Draw2dFiducialsPipe(CVPipe[DrawInput, None, Draw2dFiducialsParams]):
    """Outline each decoded marker and label it with its id."""

    def process(self, in_: DrawInput) -> None:
        image, targets = in_
        if image.empty():
            return
        mat = image.mat
        p = self.params
        for target in targets:
            if target.target_corners is None:
                continue
            corners = _scale(target.target_corners, p.divisor)
            cv2.polylines(mat, [corners], True, p.color, 2)
            if p.show_ids:
                cv2.putText(
                    mat,
                    str(target.fiducial_id),
                    _point(target.center, p.divisor),
                    cv2.FONT_HERSHEY_SIMPLEX,
                    0.6,
                    p.text_color,
                    2,
                )


class Draw2dAprilTagsPipe(Draw2dFiducialsPipe):
    pass


class Draw2dArucoPipe(Draw2dFiducialsPipe):
    pass


@dataclass(frozen=True)
class Draw3dFiducialsParams:
    calibration: CameraCalibration
    tag_size: float
    divisor: FrameDivisor = FrameDivisor.NONE
    outline_color: tuple[int, int, int] = GREEN


class Draw3dFiducialsPipe(CVPipe[DrawInput, None, Draw3dFiducialsParams]):
    """Draw each marker outline plus its pose axes (x red, y green, z blue)."""

    def check_params(self, params: Draw3dFiducialsParams) -> None:
        if params.calibration is None:
            raise self.fail("a camera calibration is required")
        if params.tag_size <= 0:
            raise self.fail(f"tag size must be positive, got {params.tag_size}")

    def process(self, in_: DrawInput) -> None:
        image, targets = in_
        if image.empty():
            return
        mat = image.mat
        p = self.params
        length = p.tag_size / 2.0
        axes = np.array(
            [[0, 0, 0], [length, 0, 0], [0, length, 0], [0, 0, length]], dtype=np.float64
        )
        for target in targets:
            if target.target_corners is not None:
                cv2.polylines(
                    mat, [_scale(target.target_corners, p.divisor)], True, p.outline_color, 2
                )
            if not target.has_pose:
                continue
            origin, x_end, y_end, z_end = (
                tuple(int(v) for v in pt)
                for pt in _scale(_project(axes, target, p.calibration), p.divisor)
            )
            cv2.line(mat, origin, x_end, RED, 2)
            cv2.line(mat, origin, y_end, GREEN, 2)
            cv2.line(mat, origin, z_end, BLUE, 2)


class Draw3dAprilTagsPipe(Draw3dFiducialsPipe):
    pass


class Draw3dArucoPipe(Draw3dFiducialsPipe):
    pass


@dataclass(frozen=True)
class DrawCalibrationParams:
    board_width: int
    board_height: int
    divisor: FrameDivisor = FrameDivisor.NONE


class DrawCalibrationPipe(CVPipe[DrawInput, None, DrawCalibrationParams]):
    """Draw detected chessboard corners."""

    def process(self, in_: DrawInput) -> None:
        image, targets = in_
        if image.empty():
            return
        pattern = (self.params.board_width, self.params.board_height)
        for target in targets:
            if target.target_corners is None:
                continue
            corners = (
                np.asarray(target.target_corners, dtype=np.float32).reshape(-1, 1, 2)
                / int(self.params.divisor)
            )
            cv2.drawChessboardCorners(image.mat, pattern, corners, True)
