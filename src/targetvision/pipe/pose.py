"""3-D pose estimation of targets with known geometry."""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from ..frame import CameraCalibration
from ..target import Pose3d, TargetModel, TrackedTarget
from .base import CVPipe, Releasable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolvePNPParams:
    calibration: CameraCalibration
    target_model: TargetModel


class SolvePNPPipe(CVPipe[list[TrackedTarget], list[TrackedTarget], SolvePNPParams]):
    """Solve the camera-to-target pose of targets with four corners.

    Targets without corners, or whose solve fails, keep no pose. Targets are
    updated in place and returned.
    """

    def check_params(self, params: SolvePNPParams) -> None:
        if params.calibration is None:
            raise self.fail("a camera calibration is required")
        if len(params.target_model.vertices) != 4:
            raise self.fail(f"{params.target_model.value} does not have four vertices")

    def process(self, in_: list[TrackedTarget]) -> list[TrackedTarget]:
        object_points = self.params.target_model.vertices
        calibration = self.params.calibration
        for target in in_:
            if target.target_corners is None or len(target.target_corners) != 4:
                continue
            image_points = np.asarray(target.target_corners, dtype=np.float64).reshape(4, 1, 2)
            ok, rvec, tvec = cv2.solvePnP(
                object_points,
                image_points,
                calibration.camera_matrix,
                calibration.dist_coeffs,
                flags=cv2.SOLVEPNP_ITERATIVE,
            )
            if not ok:
                logger.debug("solvePnP did not converge for target at %s", target.center)
                continue
            target.best_camera_to_target = Pose3d.from_opencv(rvec, tvec)
            target.alt_camera_to_target = None
            target.pose_ambiguity = 0.0
        return in_


@dataclass(frozen=True)
class TagEstimatorConfig:
    """Everything the tag pose solver depends on.

    Attributes:
        tag_size: Tag edge length in meters.
        calibration: Camera intrinsics.
    """

    tag_size: float
    calibration: CameraCalibration


@dataclass(frozen=True)
class TagPoseEstimatorParams:
    config: TagEstimatorConfig
    num_iterations: int = 40


class TagPoseEstimatorPipe(
    CVPipe[list[TrackedTarget], list[TrackedTarget], TagPoseEstimatorParams], Releasable
):
    """Square-tag pose with both planar solutions and their ambiguity.

    Uses ``SOLVEPNP_IPPE_SQUARE``, which returns the two candidate poses of a
    planar square. The pose with the lower reprojection error is reported as
    best, and ``pose_ambiguity`` is the ratio of the best to the alternate
    error. The tag model points are rebuilt only when the estimator config
    changes.
    """

    def __init__(self, name: str | None = None):
        super().__init__(name)
        self._config: TagEstimatorConfig | None = None
        self._object_points: np.ndarray | None = None

    def check_params(self, params: TagPoseEstimatorParams) -> None:
        if params.config.calibration is None:
            raise self.fail("a camera calibration is required")
        if params.config.tag_size <= 0:
            raise self.fail(f"tag size must be positive, got {params.config.tag_size}")
        if params.num_iterations < 1:
            raise self.fail(f"num_iterations must be >= 1, got {params.num_iterations}")

    def _update_config(self) -> None:
        config = self.params.config
        if config == self._config:
            return
        half = config.tag_size / 2.0
        self._object_points = np.array(
            [
                [-half, half, 0.0],
                [half, half, 0.0],
                [half, -half, 0.0],
                [-half, -half, 0.0],
            ],
            dtype=np.float64,
        )
        self._config = config

    def process(self, in_: list[TrackedTarget]) -> list[TrackedTarget]:
        self._update_config()
        calibration = self.params.config.calibration
        criteria = (
            cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_COUNT,
            self.params.num_iterations,
            1e-6,
        )
        for target in in_:
            if target.target_corners is None:
                continue
            image_points = np.asarray(target.target_corners, dtype=np.float64).reshape(4, 1, 2)
            count, rvecs, tvecs, errors = cv2.solvePnPGeneric(
                self._object_points,
                image_points,
                calibration.camera_matrix,
                calibration.dist_coeffs,
                flags=cv2.SOLVEPNP_IPPE_SQUARE,
            )
            if count < 1:
                continue

            errors = np.asarray(errors, dtype=np.float64).ravel()
            order = np.argsort(errors[:count])
            best = order[0]
            rvec, tvec = cv2.solvePnPRefineLM(
                self._object_points,
                image_points,
                calibration.camera_matrix,
                calibration.dist_coeffs,
                rvecs[best].copy(),
                tvecs[best].copy(),
                criteria=criteria,
            )
            target.best_camera_to_target = Pose3d.from_opencv(rvec, tvec)

            if count > 1:
                alt = order[1]
                target.alt_camera_to_target = Pose3d.from_opencv(rvecs[alt], tvecs[alt])
                alt_error = errors[alt]
                target.pose_ambiguity = (
                    float(errors[best] / alt_error) if alt_error > 0 else 0.0
                )
            else:
                target.alt_camera_to_target = None
                target.pose_ambiguity = 0.0
        return in_

    def release(self) -> None:
        self._config = None
        self._object_points = None
