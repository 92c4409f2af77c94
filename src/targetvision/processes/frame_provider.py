"""Sources of timestamped frames.

A provider grabs a BGR image, rotates it, and produces the processed image
the active pipeline asked for (HSV mask, greyscale, or nothing). Requests
may come from any thread and apply from the next ``get()``.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path

import cv2
import numpy as np

from ..frame import (
    CameraCalibration,
    CVMat,
    Frame,
    FrameStaticProperties,
    FrameThresholdType,
    ImageRotationMode,
)
from ..pipe import GrayscalePipe, HSVParams, HSVPipe, RotateImagePipe
from ..pipe.threshold import GrayscaleParams, RotateImageParams
from ..settings import PipelineSettings

logger = logging.getLogger(__name__)

DEFAULT_HSV = HSVParams.from_ranges((50, 180), (50, 255), (50, 255))


class FrameProvider(ABC):
    """Base class for frame sources.

    Args:
        fov: Diagonal field of view in degrees.
        calibrations: Known calibrations, one per resolution.
    """

    def __init__(self, fov: float, calibrations: list[CameraCalibration] | None = None):
        self.fov = fov
        self.calibrations: list[CameraCalibration] = list(calibrations or [])
        self._lock = threading.Lock()
        self._sequence_id = 0
        self._threshold_type = FrameThresholdType.NONE

        self._hsv_pipe = HSVPipe()
        self._hsv_pipe.set_params(DEFAULT_HSV)
        self._grayscale_pipe = GrayscalePipe()
        self._grayscale_pipe.set_params(GrayscaleParams())
        self._rotate_pipe = RotateImagePipe()
        self._rotate_pipe.set_params(RotateImageParams())

    @property
    def exhausted(self) -> bool:
        """True once a finite source has no more frames."""
        return False

    @abstractmethod
    def grab_image(self) -> np.ndarray | None:
        """Next BGR image, or None when nothing could be read."""

    def request_frame_threshold_type(self, threshold_type: FrameThresholdType) -> None:
        with self._lock:
            self._threshold_type = threshold_type

    def request_hsv_settings(self, params: HSVParams) -> None:
        """Set the HSV bounds used for HSV thresholding.

        Raises:
            PipeParamsError: If the bounds are invalid.
        """
        with self._lock:
            self._hsv_pipe.set_params(params)

    def request_frame_rotation(self, rotation: ImageRotationMode) -> None:
        with self._lock:
            self._rotate_pipe.set_params(RotateImageParams(rotation))

    def apply_camera_settings(self, settings: PipelineSettings) -> None:
        """Push exposure, brightness and gain to the camera, if it has any."""

    def add_calibration(self, calibration: CameraCalibration) -> None:
        """Add a calibration, replacing any other for the same resolution."""
        with self._lock:
            self.calibrations = [
                c for c in self.calibrations if c.resolution != calibration.resolution
            ]
            self.calibrations.append(calibration)
        logger.info(
            "Calibration for %dx%d installed",
            calibration.resolution[0],
            calibration.resolution[1],
        )

    def calibration_for(self, width: int, height: int) -> CameraCalibration | None:
        for calibration in self.calibrations:
            if tuple(calibration.resolution) == (width, height):
                return calibration
        return None

    def get(self) -> Frame:
        """Grab, rotate and threshold the next frame.

        Frames carry strictly increasing sequence ids. A failed grab yields a
        frame with empty buffers and no static properties.
        """
        image = self.grab_image()
        timestamp_ns = time.monotonic_ns()

        with self._lock:
            self._sequence_id += 1
            sequence_id = self._sequence_id
            threshold_type = self._threshold_type

            if image is None or image.size == 0:
                return Frame(
                    sequence_id=sequence_id,
                    color_image=CVMat(),
                    processed_image=CVMat(),
                    threshold_type=threshold_type,
                    timestamp_ns=timestamp_ns,
                    static_properties=None,
                )

            height, width = image.shape[:2]
            rotation = self._rotate_pipe.params.rotation
            props = FrameStaticProperties(
                width, height, self.fov, self.calibration_for(width, height)
            ).rotated(rotation)
            color = self._rotate_pipe.run(image).output

            if threshold_type == FrameThresholdType.HSV:
                processed = CVMat(self._hsv_pipe.run(color).output)
            elif threshold_type == FrameThresholdType.GREYSCALE:
                processed = CVMat(self._grayscale_pipe.run(color).output)
            else:
                processed = CVMat()

        return Frame(
            sequence_id=sequence_id,
            color_image=CVMat(color),
            processed_image=processed,
            threshold_type=threshold_type,
            timestamp_ns=timestamp_ns,
            static_properties=props,
        )

    def release(self) -> None:
        pass


class FileFrameProvider(FrameProvider):
    """Serves the same still image on every call.

    Args:
        path: Image file readable by ``cv2.imread``.
        fov: Diagonal field of view in degrees.
        calibrations: Known calibrations.

    Raises:
        FileNotFoundError: If the image cannot be read.
    """

    def __init__(
        self,
        path: str | Path,
        fov: float,
        calibrations: list[CameraCalibration] | None = None,
    ):
        super().__init__(fov, calibrations)
        self.path = Path(path)
        image = cv2.imread(str(self.path), cv2.IMREAD_COLOR)
        if image is None:
            raise FileNotFoundError(f"Could not read image: {self.path}")
        self._image = image
        logger.info(
            "Serving %s (%dx%d)", self.path.name, image.shape[1], image.shape[0]
        )

    def grab_image(self) -> np.ndarray | None:
        if self._image is None:
            return None
        return self._image.copy()

    def release(self) -> None:
        self._image = None


class VideoCaptureFrameProvider(FrameProvider):
    """Frames from a camera device index or a video file.

    Args:
        source: Device index or path/URL understood by ``cv2.VideoCapture``.
        fov: Diagonal field of view in degrees.
        calibrations: Known calibrations.
        loop: Restart video files at the end instead of stopping.

    Raises:
        OSError: If the source cannot be opened.
    """

    def __init__(
        self,
        source: int | str,
        fov: float,
        calibrations: list[CameraCalibration] | None = None,
        loop: bool = False,
    ):
        super().__init__(fov, calibrations)
        self.source = source
        self.loop = loop
        self._capture = cv2.VideoCapture(source)
        if not self._capture.isOpened():
            raise OSError(f"Could not open video source {source!r}")
        self._exhausted = False

    @property
    def is_device(self) -> bool:
        return isinstance(self.source, int)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def grab_image(self) -> np.ndarray | None:
        if self._capture is None:
            return None
        ok, image = self._capture.read()
        if not ok and self.loop and not self.is_device:
            self._capture.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ok, image = self._capture.read()
        if not ok:
            if not self.is_device:
                self._exhausted = True
            return None
        return image

    def apply_camera_settings(self, settings: PipelineSettings) -> None:
        if not self.is_device or self._capture is None:
            return
        # V4L2 convention: 3 = auto, 1 = manual
        self._capture.set(cv2.CAP_PROP_AUTO_EXPOSURE, 3 if settings.camera_auto_exposure else 1)
        if not settings.camera_auto_exposure:
            self._capture.set(cv2.CAP_PROP_EXPOSURE, settings.camera_exposure_raw)
        self._capture.set(cv2.CAP_PROP_BRIGHTNESS, settings.camera_brightness)
        self._capture.set(cv2.CAP_PROP_GAIN, settings.camera_gain)
        logger.debug(
            "Applied camera settings of %s to device %s",
            settings.pipeline_nickname,
            self.source,
        )

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
