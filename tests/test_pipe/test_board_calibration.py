"""Tests for chessboard detection and intrinsic calibration."""

from unittest.mock import patch

import cv2
import numpy as np
import pytest

from targetvision.errors import CalibrationError, PipeParamsError
from targetvision.pipe import FindBoardCornersPipe, calibrate_camera
from targetvision.pipe.calibration import (
    BoardObservation,
    FindBoardCornersParams,
    board_object_points,
)

POSES = [
    ((0.3, 0.0, 0.0), (-0.08, -0.08, 0.5)),
    ((-0.3, 0.1, 0.0), (-0.07, -0.08, 0.55)),
    ((0.0, 0.4, 0.1), (-0.08, -0.06, 0.5)),
    ((0.2, -0.3, 0.0), (-0.06, -0.07, 0.6)),
    ((-0.1, -0.2, 0.2), (-0.08, -0.08, 0.45)),
    ((0.25, 0.25, -0.1), (-0.07, -0.07, 0.5)),
]


def synthetic_observations(calibration, size=(640, 480)) -> list[BoardObservation]:
    """Board observations projected through a known calibration."""
    object_points = board_object_points(7, 7, 0.0254)
    observations = []
    for rvec, tvec in POSES:
        projected, _ = cv2.projectPoints(
            object_points.astype(np.float64),
            np.array(rvec),
            np.array(tvec),
            calibration.camera_matrix,
            calibration.dist_coeffs,
        )
        observations.append(
            BoardObservation(projected.astype(np.float32), object_points, size)
        )
    return observations


class TestBoardObjectPoints:
    """Tests for board_object_points."""

    def test_grid(self):
        """Test row-major inner corner layout scaled by square size."""
        points = board_object_points(3, 2, 0.5)
        assert points.shape == (6, 3)
        np.testing.assert_allclose(points[1], [0.5, 0.0, 0.0])
        np.testing.assert_allclose(points[3], [0.0, 0.5, 0.0])
        assert np.all(points[:, 2] == 0)


class TestFindBoardCornersPipe:
    """Tests for FindBoardCornersPipe."""

    def test_finds_corners(self, chessboard_image):
        """Test that every inner corner of a rendered board is found."""
        pipe = FindBoardCornersPipe()
        pipe.set_params(FindBoardCornersParams(7, 7, 0.0254))
        observation = pipe.run(cv2.cvtColor(chessboard_image, cv2.COLOR_BGR2GRAY)).output
        assert observation is not None
        assert observation.image_points.shape == (49, 1, 2)
        assert observation.object_points.shape == (49, 3)
        assert observation.image_size == (640, 480)

    def test_flat_corner_layout_normalized(self, chessboard_image):
        """Test that corners returned as (N, 2) are reshaped to (N, 1, 2)."""
        pipe = FindBoardCornersPipe()
        pipe.set_params(FindBoardCornersParams(7, 7, 0.0254))
        flat = np.zeros((49, 2), dtype=np.float32)
        with patch(
            "targetvision.pipe.calibration.cv2.findChessboardCorners",
            return_value=(True, flat),
        ), patch("targetvision.pipe.calibration.cv2.cornerSubPix", return_value=flat):
            observation = pipe.run(cv2.cvtColor(chessboard_image, cv2.COLOR_BGR2GRAY)).output
        assert observation.image_points.shape == (49, 1, 2)

    def test_no_board(self):
        """Test that an empty image yields no observation."""
        pipe = FindBoardCornersPipe()
        pipe.set_params(FindBoardCornersParams(7, 7, 0.0254))
        assert pipe.run(np.full((480, 640), 255, dtype=np.uint8)).output is None

    def test_rejects_small_board(self):
        """Test that boards need at least 2x2 inner corners."""
        with pytest.raises(PipeParamsError):
            FindBoardCornersPipe().set_params(FindBoardCornersParams(1, 7, 0.0254))


class TestCalibrateCamera:
    """Tests for calibrate_camera."""

    def test_recovers_intrinsics(self, calibration):
        """Test that exact observations solve back to the source intrinsics."""
        result = calibrate_camera(synthetic_observations(calibration), min_snapshots=5)
        assert result.resolution == (640, 480)
        assert result.fx == pytest.approx(600.0, rel=0.01)
        assert result.fy == pytest.approx(600.0, rel=0.01)
        assert result.reprojection_error < 0.1

    def test_too_few_snapshots(self, calibration):
        """Test that calibration refuses to run on too few boards."""
        with pytest.raises(CalibrationError, match="at least 12"):
            calibrate_camera(synthetic_observations(calibration)[:2], min_snapshots=12)

    def test_mixed_resolutions(self, calibration):
        """Test that boards from different resolutions are rejected."""
        observations = synthetic_observations(calibration)
        observations[0].image_size = (320, 240)
        with pytest.raises(CalibrationError, match="resolutions"):
            calibrate_camera(observations, min_snapshots=2)
