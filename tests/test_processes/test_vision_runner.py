"""Tests for VisionRunner."""

import logging
from unittest.mock import MagicMock, patch

import cv2
import pytest

from targetvision.errors import PipeParamsError
from targetvision.frame import FrameThresholdType
from targetvision.processes import FileFrameProvider, PipelineManager, VisionRunner
from targetvision.settings import ReflectivePipelineSettings


@pytest.fixture
def provider(tmp_path, green_rect_image):
    path = tmp_path / "target.png"
    cv2.imwrite(str(path), green_rect_image)
    return FileFrameProvider(path, fov=70.0)


@pytest.fixture
def manager():
    return PipelineManager(
        user_pipeline_settings=[ReflectivePipelineSettings(pipeline_nickname="tape")],
        default_index=0,
    )


class TestVisionRunner:
    """Tests for VisionRunner."""

    def test_process_one(self, provider, manager):
        """Test that a frame is thresholded, processed and handed to consumers."""
        results = []
        runner = VisionRunner(provider, manager, consumers=[results.append])
        result = runner.process_one()

        assert result is results[0]
        assert len(result.targets) == 1
        assert result.input_and_output_frame.threshold_type == FrameThresholdType.HSV
        assert result.input_and_output_frame.color_image.released
        assert runner.frames_processed == 1
        assert runner.profile_report.frames == 1

    def test_configures_provider_once_per_pipeline(self, manager):
        """Test that camera settings are pushed only when the pipeline changes."""
        provider = MagicMock()
        provider.get.side_effect = lambda: MagicMock()
        runner = VisionRunner(provider, manager)
        with patch.object(runner.output_stream, "process"):
            runner.process_one()
            runner.process_one()
        provider.apply_camera_settings.assert_called_once()
        provider.request_frame_threshold_type.assert_called_with(FrameThresholdType.HSV)
        provider.request_hsv_settings.assert_called()

        manager.set_driver_mode(True)
        with patch.object(runner.output_stream, "process"):
            runner.process_one()
        assert provider.apply_camera_settings.call_count == 2
        provider.request_frame_threshold_type.assert_called_with(FrameThresholdType.NONE)

    def test_rejected_hsv_settings_logged(self, provider, manager, caplog):
        """Test that a provider rejecting settings does not stop processing."""
        with patch.object(
            provider, "request_hsv_settings", side_effect=PipeParamsError("HSVPipe", "bad")
        ):
            runner = VisionRunner(provider, manager)
            with caplog.at_level(logging.WARNING):
                assert runner.process_one() is not None
        assert "rejected settings of tape" in caplog.text

    def test_pipeline_failure_skips_frame(self, provider, manager, caplog):
        """Test that a failing frame is logged, counted and released."""
        runner = VisionRunner(provider, manager)
        pipeline = manager.get_current_pipeline()
        frames = []
        original_get = provider.get

        def get():
            frames.append(original_get())
            return frames[-1]

        with patch.object(provider, "get", side_effect=get), patch.object(
            pipeline, "run", side_effect=cv2.error("boom")
        ):
            with caplog.at_level(logging.ERROR):
                assert runner.process_one() is None

        assert runner.frames_failed == 1
        assert runner.frames_processed == 0
        assert frames[0].color_image.released
        assert "processing failed" in caplog.text

        # The next frame goes through
        assert runner.process_one() is not None

    def test_consumer_failure_logged(self, provider, manager, caplog):
        """Test that a failing consumer does not stop the others."""
        seen = []

        def broken(result):
            raise RuntimeError("consumer down")

        runner = VisionRunner(provider, manager, consumers=[broken, seen.append])
        with caplog.at_level(logging.ERROR):
            runner.process_one()
        assert len(seen) == 1
        assert "result consumer failed" in caplog.text

    def test_run_stops_at_max_frames(self, provider, manager):
        """Test that the loop ends after max_frames processed frames."""
        runner = VisionRunner(provider, manager, max_frames=3)
        runner.run()
        assert runner.frames_processed == 3
        assert runner.finished

    def test_stop_from_other_thread(self, provider, manager):
        """Test that stop() ends a running thread."""
        runner = VisionRunner(provider, manager)
        runner.start()
        runner.stop()
        runner.join(timeout=5)
        assert not runner.is_alive()

    def test_exhausted_provider_finishes(self, manager):
        """Test that a finite source ends the loop."""
        provider = MagicMock()
        provider.exhausted = True
        runner = VisionRunner(provider, manager)
        runner.run()
        provider.get.assert_not_called()
