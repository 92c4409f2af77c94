"""Ownership of a camera's pipeline settings and its active pipeline.

Any thread may request a different pipeline or edit the settings list.
The active pipeline is only ever built, released and swapped on the
processing thread, inside :meth:`PipelineManager.get_current_pipeline`.
"""

import logging
import re
import sys
import threading
from typing import Any, Callable

from ..dataflow import DataChangeService, OutgoingUIEvent
from ..errors import CalibrationError
from ..frame import CameraCalibration
from ..pipeline import (
    Calibrate3dPipeline,
    CVPipeline,
    DriverModePipeline,
    create_pipeline,
)
from ..settings import (
    Calibration3dPipelineSettings,
    DriverModePipelineSettings,
    PipelineSettings,
    PipelineType,
    copy_shared_settings,
    create_settings_for_type,
)

logger = logging.getLogger(__name__)

DRIVER_MODE_INDEX = -1
CAL_3D_INDEX = -2

DEFAULT_NICKNAME = "New Pipeline"

_NUMBERED_SUFFIX = re.compile(r"^(.*)\((\d*)\)$")


def create_unique_name(nickname: str, existing: list[PipelineSettings]) -> str:
    """Nickname not used by any of ``existing``.

    A colliding name gets `` (1)`` appended; a name already ending in
    ``(k)`` has ``k`` incremented until there is no collision.
    """
    taken = {s.pipeline_nickname for s in existing}
    unique = nickname
    while unique in taken:
        match = _NUMBERED_SUFFIX.match(unique)
        if match:
            number = int(match.group(2) or 0) + 1
            unique = f"{match.group(1)}({number})"
        else:
            unique = f"{unique} (1)"
    return unique


def _index_after_removal(index: int, removed: int, last: int) -> int:
    """Slot that ``index`` refers to once user slot ``removed`` is gone.

    Built-in indexes are unaffected. An index pointing at the removed slot
    moves to the pipeline now in that slot, or to ``last``.
    """
    if index < 0 or index < removed:
        return index
    if index > removed:
        return index - 1
    return min(removed, last)


class PipelineManager:
    """Persisted user pipelines plus the built-in driver and calibration modes.

    User pipelines are indexed densely from 0. The built-ins live at
    ``DRIVER_MODE_INDEX`` and ``CAL_3D_INDEX`` and are never stored in the
    user list.

    Args:
        driver_mode_settings: Settings of the built-in driver mode pipeline.
        user_pipeline_settings: Persisted user pipelines. A default AprilTag
            pipeline is added when empty.
        default_index: Pipeline to start on.
        calibration_settings: Settings of the built-in calibration pipeline.
        data_change_service: Receives ``fullsettings`` and ``calibration``
            notifications.
        camera_nickname: Camera name included in notifications.
        calibration_callback: Called on the processing thread with each new
            calibration.
    """

    def __init__(
        self,
        driver_mode_settings: DriverModePipelineSettings | None = None,
        user_pipeline_settings: list[PipelineSettings] | None = None,
        default_index: int = DRIVER_MODE_INDEX,
        calibration_settings: Calibration3dPipelineSettings | None = None,
        data_change_service: DataChangeService | None = None,
        camera_nickname: str = "camera",
        calibration_callback: Callable[[CameraCalibration], None] | None = None,
    ):
        self._lock = threading.RLock()
        self.user_pipeline_settings: list[PipelineSettings] = list(
            user_pipeline_settings or []
        )
        self.driver_mode_pipeline = DriverModePipeline(
            driver_mode_settings or DriverModePipelineSettings()
        )
        self.calibration_3d_pipeline = Calibrate3dPipeline(
            calibration_settings or Calibration3dPipelineSettings()
        )
        self.data_change_service = data_change_service
        self.camera_nickname = camera_nickname
        self.calibration_callback = calibration_callback

        self._current_index = DRIVER_MODE_INDEX
        self._current_user_pipeline: CVPipeline | None = None
        self._last_user_pipeline_index = 0
        self._requested_index = default_index
        self._force_rebuild = False
        self._finish_calibration_requested = False

        if not self.user_pipeline_settings:
            self.add_pipeline(PipelineType.APRILTAG)
        else:
            self.reassign_indexes()

        # Nothing is processing yet, so reconcile from this thread
        self.set_index(default_index)
        self._update_pipeline_from_requested()

    @classmethod
    def from_camera_config(
        cls,
        camera,
        data_change_service: DataChangeService | None = None,
        calibration_callback: Callable[[CameraCalibration], None] | None = None,
    ) -> "PipelineManager":
        """Build a manager from a :class:`~targetvision.config.CameraConfig`."""
        return cls(
            driver_mode_settings=camera.driver_mode,
            user_pipeline_settings=list(camera.pipelines),
            default_index=camera.current_pipeline_index,
            calibration_settings=camera.calibration_pipeline,
            data_change_service=data_change_service,
            camera_nickname=camera.nickname,
            calibration_callback=calibration_callback,
        )

    # --- Lookups ---

    def get_pipeline_settings(self, index: int) -> PipelineSettings | None:
        if index == DRIVER_MODE_INDEX:
            return self.driver_mode_pipeline.settings
        if index == CAL_3D_INDEX:
            return self.calibration_3d_pipeline.settings
        with self._lock:
            for settings in self.user_pipeline_settings:
                if settings.pipeline_index == index:
                    return settings
        return None

    def get_pipeline_nickname(self, index: int) -> str | None:
        settings = self.get_pipeline_settings(index)
        return settings.pipeline_nickname if settings is not None else None

    def get_pipeline_nicknames(self) -> list[str]:
        with self._lock:
            return [s.pipeline_nickname for s in self.user_pipeline_settings]

    @property
    def current_pipeline_index(self) -> int:
        return self._current_index

    @property
    def requested_index(self) -> int:
        """Index most recently requested. Not yet active until reconciled."""
        return self._requested_index

    @property
    def last_user_pipeline_index(self) -> int:
        return self._last_user_pipeline_index

    @property
    def driver_mode(self) -> bool:
        return self._current_index == DRIVER_MODE_INDEX

    def get_current_pipeline_settings(self) -> PipelineSettings | None:
        return self.get_pipeline_settings(self._current_index)

    def get_current_pipeline(self) -> CVPipeline:
        """Reconcile pending requests, then return the active pipeline.

        Must only be called from the processing thread.
        """
        self._update_pipeline_from_requested()
        index = self._current_index
        if index == CAL_3D_INDEX:
            return self.calibration_3d_pipeline
        if index == DRIVER_MODE_INDEX or self._current_user_pipeline is None:
            return self.driver_mode_pipeline
        return self._current_user_pipeline

    # --- Requests (any thread) ---

    def set_index(self, index: int) -> None:
        self._requested_index = index

    def set_driver_mode(self, state: bool) -> None:
        """Enter driver mode, or return to the last user pipeline."""
        self._requested_index = (
            DRIVER_MODE_INDEX if state else self._last_user_pipeline_index
        )

    def set_calibration_mode(self, wants_calibration: bool) -> None:
        """Enter calibration mode, or return to the last user pipeline.

        Either way any snapshots captured so far are turned into a
        calibration on the processing thread.
        """
        self._finish_calibration_requested = True
        self._requested_index = (
            CAL_3D_INDEX if wants_calibration else self._last_user_pipeline_index
        )

    def take_calibration_snapshot(self) -> None:
        self.calibration_3d_pipeline.take_snapshot()

    # --- Reconciliation (processing thread) ---

    def _update_pipeline_from_requested(self) -> None:
        if self._finish_calibration_requested:
            self._finish_calibration_requested = False
            self._finish_calibration()

        # Only the choice of target is made under the lock. Building and
        # releasing pipelines happens outside it.
        with self._lock:
            new_index = self._requested_index
            rebuild = self._force_rebuild

            if new_index == self._current_index and not rebuild:
                return

            if not CAL_3D_INDEX <= new_index < len(self.user_pipeline_settings):
                logger.warning(
                    "Requested pipeline index %d does not exist (%d user pipelines)",
                    new_index,
                    len(self.user_pipeline_settings),
                )
                if self._requested_index == new_index:
                    self._requested_index = self._current_index
                if not rebuild:
                    return
                # The settings behind the running pipeline changed; rebuild in place
                new_index = self._current_index

            if new_index < 0 and self._current_index >= 0:
                # Leaving a user pipeline for a built-in one
                self._last_user_pipeline_index = self._current_index

            self._current_index = new_index
            self._force_rebuild = False
            settings = self.user_pipeline_settings[new_index] if new_index >= 0 else None

        try:
            self._replace_user_pipeline(settings)
        except Exception:
            with self._lock:
                self._force_rebuild = True
            raise

        self._publish(OutgoingUIEvent("fullsettings", self.to_dict()))

    def _replace_user_pipeline(self, settings: PipelineSettings | None) -> None:
        if self._current_user_pipeline is not None:
            self._current_user_pipeline.release()
            self._current_user_pipeline = None
        if settings is not None:
            self._current_user_pipeline = create_pipeline(settings)

    def _finish_calibration(self) -> None:
        try:
            calibration = self.calibration_3d_pipeline.finish_calibration()
        except CalibrationError as e:
            logger.warning("Calibration not completed: %s", e)
            return
        if calibration is None:
            return
        if self.calibration_callback is not None:
            try:
                self.calibration_callback(calibration)
            except Exception:
                logger.exception("Calibration callback failed")
        self._publish(OutgoingUIEvent("calibration", calibration.to_dict()))

    def _publish(self, event: OutgoingUIEvent) -> None:
        if self.data_change_service is not None:
            self.data_change_service.publish(event)

    # --- Structural edits (any thread) ---

    def reassign_indexes(self) -> None:
        """Sort user pipelines by index, then renumber them 0..N-1."""
        with self._lock:
            self.user_pipeline_settings.sort(key=lambda s: s.pipeline_index)
            for i, settings in enumerate(self.user_pipeline_settings):
                settings.pipeline_index = i

    def add_pipeline(
        self, pipeline_type: PipelineType, nickname: str = DEFAULT_NICKNAME
    ) -> PipelineSettings | None:
        """Append a new user pipeline of ``pipeline_type``.

        Returns:
            The new settings, or None for built-in kinds.
        """
        settings = create_settings_for_type(pipeline_type, nickname)
        if settings is None:
            return None
        with self._lock:
            settings.pipeline_index = len(self.user_pipeline_settings)
            self.user_pipeline_settings.append(settings)
            self.reassign_indexes()
        return settings

    def remove_pipeline(self, index: int) -> int:
        """Remove a user pipeline.

        A removed active pipeline is replaced by the one now at its slot (or
        the last one), and a pipeline after it shifts down with its slot.
        Removing the only pipeline leaves driver mode active.

        Returns:
            The requested index after removal.
        """
        with self._lock:
            if not 0 <= index < len(self.user_pipeline_settings):
                logger.warning("Cannot remove pipeline %d: no such user pipeline", index)
                return self._requested_index

            del self.user_pipeline_settings[index]
            self.reassign_indexes()

            last = len(self.user_pipeline_settings) - 1
            self._requested_index = _index_after_removal(self._requested_index, index, last)
            self._current_index = _index_after_removal(self._current_index, index, last)
            self._last_user_pipeline_index = max(
                0, _index_after_removal(self._last_user_pipeline_index, index, last)
            )
            self._force_rebuild = True
            return self._requested_index

    def duplicate_pipeline(self, index: int) -> int | None:
        """Copy the user pipeline at ``index`` under a unique nickname.

        Returns:
            Index of the copy, or None if there is no pipeline at ``index``.
        """
        with self._lock:
            if not 0 <= index < len(self.user_pipeline_settings):
                logger.warning("Cannot duplicate pipeline %d: no such user pipeline", index)
                return None

            settings = self.user_pipeline_settings[index]
            copy = settings.clone()
            copy.pipeline_nickname = create_unique_name(
                settings.pipeline_nickname, self.user_pipeline_settings
            )
            copy.pipeline_index = sys.maxsize
            logger.debug("Duplicating pipeline %d to %s", index, copy.pipeline_nickname)
            self.user_pipeline_settings.append(copy)
            self.reassign_indexes()
            return copy.pipeline_index

    def rename_current_pipeline(self, nickname: str) -> None:
        settings = self.get_current_pipeline_settings()
        if settings is not None:
            settings.pipeline_nickname = nickname

    def change_pipeline_type(self, base_index: int) -> None:
        """Replace the active user pipeline's settings with another kind.

        Shared settings, the nickname and the slot index carry over. The
        pipeline is rebuilt on the next reconciliation.
        """
        pipeline_type = PipelineType.from_base_index(base_index)
        if pipeline_type is None:
            logger.error("Could not match type %d to a PipelineType", base_index)
            return

        with self._lock:
            index = self._current_index
            if index < 0:
                logger.error("Cannot replace non-user pipeline")
                return

            old = self.user_pipeline_settings[index]
            if old.pipeline_type == pipeline_type:
                logger.debug("Not changing settings, already %s", pipeline_type.value)
                return

            new = create_settings_for_type(pipeline_type, old.pipeline_nickname)
            if new is None:
                return
            copy_shared_settings(old, new)
            new.pipeline_index = index

            logger.info("Changing pipeline %d to type %s", index, pipeline_type.value)
            self.user_pipeline_settings[index] = new
            self.reassign_indexes()
            self._requested_index = index
            self._force_rebuild = True

    def release(self) -> None:
        """Release every pipeline this manager built."""
        if self._current_user_pipeline is not None:
            self._current_user_pipeline.release()
            self._current_user_pipeline = None
        self.driver_mode_pipeline.release()
        self.calibration_3d_pipeline.release()

    # --- Snapshots ---

    def to_dict(self) -> dict[str, Any]:
        """Plain snapshot of the manager's state for notifications."""
        with self._lock:
            return {
                "camera": self.camera_nickname,
                "current_pipeline_index": self._current_index,
                "requested_index": self._requested_index,
                "driver_mode": self.driver_mode,
                "pipelines": [
                    s.model_dump(mode="json") for s in self.user_pipeline_settings
                ],
                "driver_mode_settings": self.driver_mode_pipeline.settings.model_dump(
                    mode="json"
                ),
            }
