"""Chessboard detection and intrinsic camera calibration."""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from ..errors import CalibrationError
from ..frame import CameraCalibration
from .base import CVPipe

logger = logging.getLogger(__name__)

_FIND_FLAGS = (
    cv2.CALIB_CB_ADAPTIVE_THRESH + cv2.CALIB_CB_NORMALIZE_IMAGE + cv2.CALIB_CB_FAST_CHECK
)
_SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.001)


def board_object_points(board_width: int, board_height: int, square_size: float) -> np.ndarray:
    """Inner-corner positions of a chessboard on the z=0 plane.

    Returns:
        Points (board_width * board_height, 3) float32, row-major.
    """
    grid = np.zeros((board_width * board_height, 3), dtype=np.float32)
    grid[:, :2] = np.mgrid[0:board_width, 0:board_height].T.reshape(-1, 2)
    return grid * square_size


@dataclass
class BoardObservation:
    """Chessboard corners found in one image.

    Attributes:
        image_points: Refined corners, shape (N, 1, 2) float32.
        object_points: Matching board points, shape (N, 3) float32.
        image_size: Size of the source image as (width, height).
    """

    image_points: np.ndarray
    object_points: np.ndarray
    image_size: tuple[int, int]


@dataclass(frozen=True)
class FindBoardCornersParams:
    board_width: int
    board_height: int
    square_size: float


class FindBoardCornersPipe(
    CVPipe[np.ndarray, BoardObservation | None, FindBoardCornersParams]
):
    """Locate and sub-pixel refine the inner corners of a chessboard."""

    def check_params(self, params: FindBoardCornersParams) -> None:
        if params.board_width < 2 or params.board_height < 2:
            raise self.fail(
                f"board must be at least 2x2 inner corners, got "
                f"{params.board_width}x{params.board_height}"
            )
        if params.square_size <= 0:
            raise self.fail(f"square size must be positive, got {params.square_size}")

    def process(self, in_: np.ndarray) -> BoardObservation | None:
        pattern = (self.params.board_width, self.params.board_height)
        found, corners = cv2.findChessboardCorners(in_, pattern, flags=_FIND_FLAGS)
        if not found:
            return None
        corners = cv2.cornerSubPix(in_, corners, (11, 11), (-1, -1), _SUBPIX_CRITERIA)
        # Newer OpenCV releases return (N, 2)
        corners = corners.reshape(-1, 1, 2)
        height, width = in_.shape[:2]
        return BoardObservation(
            image_points=corners,
            object_points=board_object_points(
                self.params.board_width, self.params.board_height, self.params.square_size
            ),
            image_size=(width, height),
        )


def calibrate_camera(
    observations: list[BoardObservation], min_snapshots: int
) -> CameraCalibration:
    """Solve camera intrinsics from chessboard snapshots.

    Args:
        observations: Boards captured at a single resolution.
        min_snapshots: Minimum number of observations required.

    Returns:
        Calibration for the observations' image size.

    Raises:
        CalibrationError: If there are too few observations, they do not
            share one resolution, or the solver fails.
    """
    if len(observations) < min_snapshots:
        raise CalibrationError(
            f"need at least {min_snapshots} snapshots, have {len(observations)}"
        )
    sizes = {obs.image_size for obs in observations}
    if len(sizes) != 1:
        raise CalibrationError(f"snapshots span several resolutions: {sorted(sizes)}")
    image_size = sizes.pop()

    try:
        rms, camera_matrix, dist_coeffs, _, _ = cv2.calibrateCamera(
            [obs.object_points for obs in observations],
            [obs.image_points for obs in observations],
            image_size,
            None,
            None,
        )
    except cv2.error as e:
        raise CalibrationError(f"calibrateCamera failed: {e}") from e

    logger.info(
        "Calibrated %dx%d from %d snapshots, RMS error %.3f px",
        image_size[0],
        image_size[1],
        len(observations),
        rms,
    )
    return CameraCalibration(
        resolution=image_size,
        camera_matrix=camera_matrix,
        dist_coeffs=dist_coeffs,
        reprojection_error=float(rms),
    )
