"""The single processing thread: frame -> pipeline -> output stream -> consumers."""

import logging
import threading
from typing import Callable

from ..errors import PipeParamsError
from ..pipeline import CVPipeline, CVPipelineResult, OutputStreamPipeline
from ..profiling import ProfileReport, format_profile
from .frame_provider import FrameProvider
from .pipeline_manager import PipelineManager

logger = logging.getLogger(__name__)

ResultConsumer = Callable[[CVPipelineResult], None]


class VisionRunner(threading.Thread):
    """Drain frames from a provider through the manager's current pipeline.

    Pipeline switches requested on other threads take effect at the start of
    the next iteration. Consumers are called on this thread with each
    result; the result's frame is released right after they return.

    Args:
        frame_provider: Source of frames.
        pipeline_manager: Owner of the active pipeline.
        consumers: Called with every successful result.
        stop_event: Set to stop the loop. A private event is created when
            omitted.
        max_frames: Stop after this many processed frames (None = no limit).
    """

    def __init__(
        self,
        frame_provider: FrameProvider,
        pipeline_manager: PipelineManager,
        consumers: list[ResultConsumer] | None = None,
        stop_event: threading.Event | None = None,
        max_frames: int | None = None,
    ):
        super().__init__(name="VisionRunner", daemon=True)
        self.frame_provider = frame_provider
        self.pipeline_manager = pipeline_manager
        self.output_stream = OutputStreamPipeline()
        self.consumers: list[ResultConsumer] = list(consumers or [])
        self.stop_event = stop_event or threading.Event()
        self.max_frames = max_frames
        self.frames_processed = 0
        self.frames_failed = 0
        self.profile_report = ProfileReport()
        self._configured_pipeline: CVPipeline | None = None

    def add_consumer(self, consumer: ResultConsumer) -> None:
        self.consumers.append(consumer)

    def stop(self) -> None:
        self.stop_event.set()

    @property
    def finished(self) -> bool:
        if self.stop_event.is_set() or self.frame_provider.exhausted:
            return True
        return self.max_frames is not None and self.frames_processed >= self.max_frames

    def run(self) -> None:
        """Main loop. Runs until stopped, exhausted or ``max_frames`` is reached."""
        logger.info("Vision runner started")
        while not self.finished:
            self.process_one()
        logger.info(
            "Vision runner stopped after %d frames (%d failed)",
            self.frames_processed,
            self.frames_failed,
        )

    def _configure_provider(self, pipeline: CVPipeline) -> None:
        settings = pipeline.settings
        self.frame_provider.request_frame_threshold_type(pipeline.threshold_type)
        self.frame_provider.request_frame_rotation(settings.input_image_rotation_mode)
        hsv = pipeline.hsv_params()
        if hsv is not None:
            self.frame_provider.request_hsv_settings(hsv)
        if pipeline is not self._configured_pipeline:
            self.frame_provider.apply_camera_settings(settings)
            self._configured_pipeline = pipeline

    def process_one(self) -> CVPipelineResult | None:
        """Run one frame through the current pipeline and the output stream.

        Returns:
            The pipeline result (its frame already released), or None when
            processing failed.
        """
        pipeline = self.pipeline_manager.get_current_pipeline()
        try:
            self._configure_provider(pipeline)
        except PipeParamsError as e:
            logger.warning(
                "Frame provider rejected settings of %s: %s",
                pipeline.settings.pipeline_nickname,
                e,
            )

        frame = self.frame_provider.get()
        try:
            result = pipeline.run(frame)
            stream_result = self.output_stream.process(frame, pipeline.settings, result.targets)
        except Exception:
            logger.exception("Frame %d: processing failed, skipping", frame.sequence_id)
            self.frames_failed += 1
            frame.release()
            return None

        self.frames_processed += 1
        timings = result.profile()
        self.profile_report.record(timings)
        logger.debug(
            "Frame %d: %d targets, %s | stream %s",
            result.sequence_id,
            len(result.targets),
            format_profile(timings),
            format_profile(stream_result.profile()),
        )

        for consumer in self.consumers:
            try:
                consumer(result)
            except Exception:
                logger.exception("Frame %d: result consumer failed", result.sequence_id)
        result.release()
        return result
