"""Pipeline base class and per-frame result container."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

from ..frame import CameraCalibration, Frame, FrameStaticProperties, FrameThresholdType
from ..pipe import CalculateFPSPipe, CVPipe, HSVParams, Releasable
from ..profiling import StageTiming
from ..settings import AdvancedPipelineSettings, PipelineSettings, PipelineType
from ..target import TrackedTarget

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=PipelineSettings)


@dataclass
class CVPipelineResult:
    """Everything one pipeline run produced for one frame.

    Attributes:
        sequence_id: Sequence id of the source frame.
        processing_nanos: Sum of all stage timings.
        fps: Rolling frame rate of the producing pipeline.
        targets: Detected targets, best first.
        input_and_output_frame: The source frame. Released with the result.
        profile_nanos: Per-stage timings, one slot per ``profile_stages``
            entry, zero for stages skipped this frame.
        profile_stages: Stage names of the producing pipeline.
    """

    sequence_id: int
    processing_nanos: int
    fps: float
    targets: list[TrackedTarget]
    input_and_output_frame: Frame
    profile_nanos: list[int] = field(default_factory=list)
    profile_stages: tuple[str, ...] = ()

    @property
    def has_targets(self) -> bool:
        return bool(self.targets)

    @property
    def best_target(self) -> TrackedTarget | None:
        return self.targets[0] if self.targets else None

    @property
    def latency_ms(self) -> float:
        return self.processing_nanos / 1e6

    def profile(self) -> list[StageTiming]:
        return [
            StageTiming(name, nanos)
            for name, nanos in zip(self.profile_stages, self.profile_nanos)
        ]

    def release(self) -> None:
        self.input_and_output_frame.release()

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly plain Python types."""
        return {
            "sequence_id": self.sequence_id,
            "timestamp_ns": self.input_and_output_frame.timestamp_ns,
            "latency_ms": self.latency_ms,
            "fps": self.fps,
            "targets": [t.to_dict() for t in self.targets],
            "profile_ns": dict(zip(self.profile_stages, self.profile_nanos)),
        }


class CVPipeline(ABC, Generic[S]):
    """Ordered composition of pipes that turns a Frame into a result.

    Subclasses declare ``PIPELINE_TYPE``, the image transformation they need
    from the frame provider (``THRESHOLD_TYPE``) and the fixed list of
    profiled stages (``PROFILE_STAGES``). Every profile slot is written on
    every frame.
    """

    PIPELINE_TYPE: ClassVar[PipelineType]
    THRESHOLD_TYPE: ClassVar[FrameThresholdType] = FrameThresholdType.NONE
    PROFILE_STAGES: ClassVar[tuple[str, ...]] = ()

    def __init__(self, settings: S):
        self.settings = settings
        self.frame_static_properties: FrameStaticProperties | None = None
        self.calculate_fps_pipe = CalculateFPSPipe()
        self._warned_no_calibration = False

    @property
    def threshold_type(self) -> FrameThresholdType:
        return self.THRESHOLD_TYPE

    def hsv_params(self) -> HSVParams | None:
        """HSV bounds the frame provider should threshold with, if any."""
        if self.THRESHOLD_TYPE != FrameThresholdType.HSV:
            return None
        if not isinstance(self.settings, AdvancedPipelineSettings):
            return None
        return HSVParams.from_ranges(
            self.settings.hsv_hue,
            self.settings.hsv_saturation,
            self.settings.hsv_value,
            self.settings.hue_inverted,
        )

    def run(self, frame: Frame) -> CVPipelineResult:
        """Process one frame with the current settings.

        A frame without a processed image short-circuits every stage and
        yields a result with no targets and an all-zero profile.
        """
        if self.settings is None:
            raise RuntimeError("No settings provided for pipeline")
        self.frame_static_properties = frame.static_properties

        if frame.processed_image.empty() or frame.static_properties is None:
            return self.build_result(frame, [], self.new_profile())

        self.set_pipe_params(frame.static_properties, self.settings)
        return self.process(frame, self.settings)

    @abstractmethod
    def set_pipe_params(self, props: FrameStaticProperties, settings: S) -> None:
        """Re-derive every pipe's parameters from the current settings."""

    @abstractmethod
    def process(self, frame: Frame, settings: S) -> CVPipelineResult:
        """Run the pipes on a frame with a non-empty processed image."""

    def new_profile(self) -> list[int]:
        return [0] * len(self.PROFILE_STAGES)

    def run_stage(self, profile: list[int], stage: str, pipe: CVPipe, in_):
        """Run ``pipe`` and record its timing in the ``stage`` slot."""
        result = pipe.run(in_)
        profile[self.PROFILE_STAGES.index(stage)] = result.nanos_elapsed
        return result.output

    def pose_calibration(self) -> CameraCalibration | None:
        """Calibration to estimate poses with, or None to stay 2-D.

        Returns None when solve-PNP is off, or when it is on but the current
        resolution has no calibration (warned once per pipeline).
        """
        if not self.settings.solve_pnp_enabled:
            return None
        calibration = (
            self.frame_static_properties.calibration
            if self.frame_static_properties is not None
            else None
        )
        if calibration is None and not self._warned_no_calibration:
            logger.warning(
                "%s: 3-D mode enabled but no calibration for this resolution, "
                "reporting 2-D targets only",
                self.settings.pipeline_nickname,
            )
            self._warned_no_calibration = True
        return calibration

    def build_result(
        self, frame: Frame, targets: list[TrackedTarget], profile: list[int]
    ) -> CVPipelineResult:
        fps = self.calculate_fps_pipe.run(None).output
        return CVPipelineResult(
            sequence_id=frame.sequence_id,
            processing_nanos=sum(profile),
            fps=fps,
            targets=targets,
            input_and_output_frame=frame,
            profile_nanos=profile,
            profile_stages=self.PROFILE_STAGES,
        )

    def release(self) -> None:
        """Release every pipe that owns buffers or native handles."""
        for value in vars(self).values():
            if isinstance(value, Releasable):
                value.release()
