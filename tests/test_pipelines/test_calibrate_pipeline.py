"""Tests for the chessboard calibration and driver-mode pipelines."""

import cv2
import numpy as np
import pytest

from targetvision.errors import CalibrationError
from targetvision.frame import FrameThresholdType
from targetvision.pipeline import Calibrate3dPipeline, DriverModePipeline
from targetvision.settings import Calibration3dPipelineSettings


@pytest.fixture
def board_frame(make_frame, chessboard_image):
    def _frame(image=None):
        image = chessboard_image if image is None else image
        return make_frame(
            image,
            cv2.cvtColor(image, cv2.COLOR_BGR2GRAY),
            threshold_type=FrameThresholdType.GREYSCALE,
        )

    return _frame


class TestCalibrate3dPipeline:
    """Tests for Calibrate3dPipeline."""

    def test_reports_board(self, board_frame):
        """Test that a visible board is reported as one target with its corners."""
        result = Calibrate3dPipeline().run(board_frame())
        assert len(result.targets) == 1
        target = result.targets[0]
        assert target.target_corners.shape == (49, 2)
        assert target.center == pytest.approx((320.0, 240.0), abs=1.0)
        assert result.profile_stages == ("find_board_corners",)

    def test_no_board(self, board_frame):
        """Test that frames without a board report nothing."""
        blank = np.full((480, 640, 3), 255, dtype=np.uint8)
        assert Calibrate3dPipeline().run(board_frame(blank)).targets == []

    def test_snapshot_taken_on_next_board(self, board_frame):
        """Test that a snapshot request is served by the next detected board."""
        pipeline = Calibrate3dPipeline()
        pipeline.run(board_frame())
        assert pipeline.snapshot_count == 0

        pipeline.take_snapshot()
        pipeline.run(board_frame(np.full((480, 640, 3), 255, dtype=np.uint8)))
        assert pipeline.snapshot_count == 0

        pipeline.run(board_frame())
        pipeline.run(board_frame())
        assert pipeline.snapshot_count == 1

    def test_finish_without_snapshots(self):
        """Test that finishing with nothing captured yields no calibration."""
        assert Calibrate3dPipeline().finish_calibration() is None

    def test_finish_with_too_few_snapshots(self, board_frame):
        """Test that too few snapshots raise and are discarded."""
        pipeline = Calibrate3dPipeline(Calibration3dPipelineSettings(min_snapshots=3))
        pipeline.take_snapshot()
        pipeline.run(board_frame())

        with pytest.raises(CalibrationError, match="at least 3"):
            pipeline.finish_calibration()
        assert pipeline.snapshot_count == 0

    def test_release_clears_snapshots(self, board_frame):
        """Test that release drops captured snapshots."""
        pipeline = Calibrate3dPipeline()
        pipeline.take_snapshot()
        pipeline.run(board_frame())
        pipeline.release()
        assert pipeline.snapshot_count == 0


class TestDriverModePipeline:
    """Tests for DriverModePipeline."""

    def test_passes_frame_through(self, make_frame, green_rect_image):
        """Test that driver mode reports no targets and keeps the frame."""
        frame = make_frame(green_rect_image)
        result = DriverModePipeline().run(frame)
        assert result.targets == []
        assert result.profile_nanos == []
        assert result.input_and_output_frame is frame
        assert result.sequence_id == 1

    def test_threshold_type(self):
        """Test that driver mode needs no thresholding."""
        pipeline = DriverModePipeline()
        assert pipeline.threshold_type == FrameThresholdType.NONE
        assert pipeline.hsv_params() is None
