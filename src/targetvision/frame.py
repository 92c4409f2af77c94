"""Frame containers, image buffer handles and per-camera static properties."""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

import numpy as np

from .errors import ReleasedBufferError

logger = logging.getLogger(__name__)


class FrameThresholdType(str, Enum):
    """Transformation a frame provider applies to produce the processed image."""

    NONE = "none"
    HSV = "hsv"
    GREYSCALE = "greyscale"


class ImageRotationMode(str, Enum):
    """Counter-clockwise rotation applied to every captured image."""

    DEG_0 = "deg_0"
    DEG_90_CCW = "deg_90_ccw"
    DEG_180_CCW = "deg_180_ccw"
    DEG_270_CCW = "deg_270_ccw"

    @property
    def is_rotated_90(self) -> bool:
        """Whether this rotation swaps image width and height."""
        return self in (ImageRotationMode.DEG_90_CCW, ImageRotationMode.DEG_270_CCW)


class FrameDivisor(IntEnum):
    """Downscale factor applied to images before streaming."""

    NONE = 1
    HALF = 2
    QUARTER = 4
    SIXTH = 6


class CVMat:
    """Owning handle around a single image buffer.

    Buffers are replaced in place by output stages (resize, colour
    conversion) through :attr:`mat`. After :meth:`release` the buffer is
    dropped and every further access raises :class:`ReleasedBufferError`.
    """

    def __init__(self, mat: np.ndarray | None = None):
        self._mat = mat
        self._released = False

    @property
    def mat(self) -> np.ndarray | None:
        if self._released:
            raise ReleasedBufferError("image buffer was already released")
        return self._mat

    @mat.setter
    def mat(self, value: np.ndarray | None) -> None:
        if self._released:
            raise ReleasedBufferError("image buffer was already released")
        self._mat = value

    @property
    def released(self) -> bool:
        return self._released

    def empty(self) -> bool:
        """True when there is no buffer or the buffer holds no pixels."""
        mat = self.mat
        return mat is None or mat.size == 0

    def channels(self) -> int:
        mat = self.mat
        if mat is None or mat.ndim < 3:
            return 1
        return int(mat.shape[2])

    def release(self) -> None:
        self._mat = None
        self._released = True

    def __repr__(self) -> str:
        if self._released:
            return "CVMat(released)"
        shape = None if self._mat is None else self._mat.shape
        return f"CVMat(shape={shape})"


@dataclass(eq=False)
class CameraCalibration:
    """Intrinsic calibration of one camera at one resolution.

    Attributes:
        resolution: Image size the calibration applies to, as (width, height).
        camera_matrix: Intrinsic matrix, shape (3, 3), float64.
        dist_coeffs: Distortion coefficients, shape (N,), float64.
        reprojection_error: RMS reprojection error reported by the solver
            (pixels), or None when unknown.
    """

    resolution: tuple[int, int]
    camera_matrix: np.ndarray
    dist_coeffs: np.ndarray
    reprojection_error: float | None = None

    def __post_init__(self):
        self.camera_matrix = np.asarray(self.camera_matrix, dtype=np.float64).reshape(
            3, 3
        )
        self.dist_coeffs = np.asarray(self.dist_coeffs, dtype=np.float64).reshape(-1)

    @property
    def fx(self) -> float:
        return float(self.camera_matrix[0, 0])

    @property
    def fy(self) -> float:
        return float(self.camera_matrix[1, 1])

    @property
    def cx(self) -> float:
        return float(self.camera_matrix[0, 2])

    @property
    def cy(self) -> float:
        return float(self.camera_matrix[1, 2])

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain Python types for YAML/JSON serialization."""
        return {
            "resolution": [int(self.resolution[0]), int(self.resolution[1])],
            "camera_matrix": self.camera_matrix.tolist(),
            "dist_coeffs": self.dist_coeffs.tolist(),
            "reprojection_error": self.reprojection_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CameraCalibration":
        width, height = data["resolution"]
        return cls(
            resolution=(int(width), int(height)),
            camera_matrix=np.asarray(data["camera_matrix"], dtype=np.float64),
            dist_coeffs=np.asarray(data["dist_coeffs"], dtype=np.float64),
            reprojection_error=data.get("reprojection_error"),
        )


@dataclass
class FrameStaticProperties:
    """Camera properties that stay valid for the lifetime of a frame.

    Focal lengths and the principal point come from the calibration when one
    is present, and are otherwise derived from the diagonal field of view.

    Attributes:
        image_width: Image width in pixels.
        image_height: Image height in pixels.
        fov: Diagonal field of view in degrees.
        calibration: Calibration matching this resolution, if any.
    """

    image_width: int
    image_height: int
    fov: float
    calibration: CameraCalibration | None = None

    center_x: float = field(init=False)
    center_y: float = field(init=False)
    image_area: float = field(init=False)
    horizontal_focal_length: float = field(init=False)
    vertical_focal_length: float = field(init=False)

    def __post_init__(self):
        self.image_area = float(self.image_width * self.image_height)

        if self.calibration is not None:
            self.center_x = self.calibration.cx
            self.center_y = self.calibration.cy
            self.horizontal_focal_length = self.calibration.fx
            self.vertical_focal_length = self.calibration.fy
            return

        # Pinhole model from the diagonal FOV
        self.center_x = (self.image_width / 2.0) - 0.5
        self.center_y = (self.image_height / 2.0) - 0.5
        diagonal = math.hypot(self.image_width, self.image_height)
        half_fov = math.radians(self.fov) / 2.0
        if diagonal == 0.0 or half_fov <= 0.0:
            self.horizontal_focal_length = 0.0
            self.vertical_focal_length = 0.0
            return
        horizontal_view = math.atan(math.tan(half_fov) * (self.image_width / diagonal))
        vertical_view = math.atan(math.tan(half_fov) * (self.image_height / diagonal))
        self.horizontal_focal_length = self.image_width / (2.0 * math.tan(horizontal_view))
        self.vertical_focal_length = self.image_height / (2.0 * math.tan(vertical_view))

    def rotated(self, mode: ImageRotationMode) -> "FrameStaticProperties":
        """Properties of an image rotated by ``mode``.

        A 90/270 degree rotation swaps the image dimensions and drops the
        calibration, whose intrinsics no longer describe the rotated image.
        """
        if not mode.is_rotated_90:
            return self
        return FrameStaticProperties(
            image_width=self.image_height,
            image_height=self.image_width,
            fov=self.fov,
            calibration=None,
        )


@dataclass
class Frame:
    """One camera capture plus its processed image and static properties.

    Owned by the thread that obtained it from the frame provider until
    :meth:`release` is called.
    """

    sequence_id: int
    color_image: CVMat
    processed_image: CVMat
    threshold_type: FrameThresholdType
    timestamp_ns: int
    static_properties: FrameStaticProperties | None

    @classmethod
    def empty_frame(cls) -> "Frame":
        return cls(
            sequence_id=-1,
            color_image=CVMat(),
            processed_image=CVMat(),
            threshold_type=FrameThresholdType.NONE,
            timestamp_ns=0,
            static_properties=None,
        )

    def release(self) -> None:
        self.color_image.release()
        self.processed_image.release()
