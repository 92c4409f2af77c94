"""Built-in chessboard calibration pipeline."""

import logging
import threading

import numpy as np

from ..frame import CameraCalibration, Frame, FrameStaticProperties, FrameThresholdType
from ..pipe import FindBoardCornersPipe, calibrate_camera
from ..pipe.calibration import BoardObservation, FindBoardCornersParams
from ..settings import Calibration3dPipelineSettings, PipelineType
from ..target import TrackedTarget
from .base import CVPipeline, CVPipelineResult

logger = logging.getLogger(__name__)


class Calibrate3dPipeline(CVPipeline[Calibration3dPipelineSettings]):
    """Capture chessboard snapshots and solve camera intrinsics from them.

    Each frame reports one target per detected board, with the board's inner
    corners in ``target_corners``. :meth:`take_snapshot` may be called from
    any thread; the next detected board is stored. :meth:`finish_calibration`
    runs on the processing thread.
    """

    PIPELINE_TYPE = PipelineType.CALIB_3D
    THRESHOLD_TYPE = FrameThresholdType.GREYSCALE
    PROFILE_STAGES = ("find_board_corners",)

    def __init__(self, settings: Calibration3dPipelineSettings | None = None):
        super().__init__(settings or Calibration3dPipelineSettings())
        self.find_board_corners_pipe = FindBoardCornersPipe()
        self._snapshot_requested = threading.Event()
        self._snapshots: list[BoardObservation] = []

    @property
    def snapshot_count(self) -> int:
        return len(self._snapshots)

    def take_snapshot(self) -> None:
        self._snapshot_requested.set()

    def set_pipe_params(
        self, props: FrameStaticProperties, settings: Calibration3dPipelineSettings
    ) -> None:
        self.find_board_corners_pipe.set_params(
            FindBoardCornersParams(
                board_width=settings.board_width,
                board_height=settings.board_height,
                square_size=settings.square_size,
            )
        )

    def process(
        self, frame: Frame, settings: Calibration3dPipelineSettings
    ) -> CVPipelineResult:
        profile = self.new_profile()
        observation = self.run_stage(
            profile,
            "find_board_corners",
            self.find_board_corners_pipe,
            frame.processed_image.mat,
        )

        targets = []
        if observation is not None:
            corners = observation.image_points.reshape(-1, 2).astype(np.float64)
            cx, cy = corners.mean(axis=0)
            targets.append(TrackedTarget(center=(float(cx), float(cy)), target_corners=corners))

            if self._snapshot_requested.is_set():
                self._snapshot_requested.clear()
                self._snapshots.append(observation)
                logger.info(
                    "Captured calibration snapshot %d/%d",
                    len(self._snapshots),
                    settings.min_snapshots,
                )

        return self.build_result(frame, targets, profile)

    def finish_calibration(self) -> CameraCalibration | None:
        """Solve intrinsics from the captured snapshots and clear them.

        Returns:
            The new calibration, or None when nothing was captured.

        Raises:
            CalibrationError: If too few snapshots were captured or the
                solver fails. The snapshots are discarded either way.
        """
        self._snapshot_requested.clear()
        if not self._snapshots:
            return None
        snapshots, self._snapshots = self._snapshots, []
        return calibrate_camera(snapshots, self.settings.min_snapshots)

    def release(self) -> None:
        super().release()
        self._snapshots = []
