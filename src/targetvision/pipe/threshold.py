"""Colour-space conversion, thresholding and rotation of captured images."""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from ..frame import ImageRotationMode
from .base import CVPipe

logger = logging.getLogger(__name__)

HUE_MAX = 180


@dataclass(frozen=True)
class HSVParams:
    """Inclusive HSV bounds.

    Attributes:
        hsv_lower: Lower (hue, saturation, value) bound.
        hsv_upper: Upper (hue, saturation, value) bound.
        hue_inverted: Select hues outside of [lower, upper].
    """

    hsv_lower: tuple[int, int, int]
    hsv_upper: tuple[int, int, int]
    hue_inverted: bool = False

    @classmethod
    def from_ranges(
        cls,
        hue: tuple[int, int],
        saturation: tuple[int, int],
        value: tuple[int, int],
        hue_inverted: bool = False,
    ) -> "HSVParams":
        return cls(
            hsv_lower=(int(hue[0]), int(saturation[0]), int(value[0])),
            hsv_upper=(int(hue[1]), int(saturation[1]), int(value[1])),
            hue_inverted=hue_inverted,
        )

    @property
    def wraps_hue(self) -> bool:
        """Whether the hue range is split around 0/180."""
        return self.hue_inverted or self.hsv_lower[0] > self.hsv_upper[0]


def threshold_hsv(hsv: np.ndarray, params: HSVParams) -> np.ndarray:
    """Binary mask of pixels of an HSV image that fall within ``params``.

    When the hue range wraps (``hue_inverted`` set, or lower hue above upper
    hue) the accepted hues are ``[0, min] ∪ [max, 180]`` where min/max are
    the two hue bounds, both ends inclusive. ``hue_inverted`` with lower hue
    above upper hue therefore selects the same split as lower above upper
    alone, not the union ``[upper, 180] ∪ [0, lower]`` that would accept
    every hue.

    Args:
        hsv: HSV image (H, W, 3) uint8.
        params: Threshold bounds.

    Returns:
        Mask (H, W) uint8 with 255 for in-range pixels.
    """
    lower = np.array(params.hsv_lower, dtype=np.uint8)
    upper = np.array(params.hsv_upper, dtype=np.uint8)

    if not params.wraps_hue:
        return cv2.inRange(hsv, lower, upper)

    low_hue = min(params.hsv_lower[0], params.hsv_upper[0])
    high_hue = max(params.hsv_lower[0], params.hsv_upper[0])

    # Upper slice: [high_hue, 180]
    first_lower = lower.copy()
    first_upper = upper.copy()
    first_lower[0] = high_hue
    first_upper[0] = HUE_MAX
    upper_slice = cv2.inRange(hsv, first_lower, first_upper)

    # Lower slice: [0, low_hue]
    second_lower = lower.copy()
    second_upper = upper.copy()
    second_lower[0] = 0
    second_upper[0] = low_hue
    lower_slice = cv2.inRange(hsv, second_lower, second_upper)

    return cv2.bitwise_or(upper_slice, lower_slice)


class HSVPipe(CVPipe[np.ndarray, np.ndarray, HSVParams]):
    """BGR image to binary mask via HSV range thresholding."""

    def check_params(self, params: HSVParams) -> None:
        for i, (low, high) in enumerate(zip(params.hsv_lower, params.hsv_upper)):
            limit = HUE_MAX if i == 0 else 255
            if not (0 <= low <= limit and 0 <= high <= limit):
                raise self.fail(f"bound {i} outside 0-{limit}: ({low}, {high})")
            if i > 0 and low > high:
                raise self.fail(f"bound {i} has min > max: ({low}, {high})")

    def process(self, in_: np.ndarray) -> np.ndarray:
        hsv = cv2.cvtColor(in_, cv2.COLOR_BGR2HSV)
        return threshold_hsv(hsv, self.params)


@dataclass(frozen=True)
class GrayscaleParams:
    pass


class GrayscalePipe(CVPipe[np.ndarray, np.ndarray, GrayscaleParams]):
    """BGR image to single-channel greyscale."""

    def process(self, in_: np.ndarray) -> np.ndarray:
        if in_.ndim == 2:
            return in_.copy()
        return cv2.cvtColor(in_, cv2.COLOR_BGR2GRAY)


@dataclass(frozen=True)
class RotateImageParams:
    rotation: ImageRotationMode = ImageRotationMode.DEG_0


_ROTATE_CODES = {
    ImageRotationMode.DEG_90_CCW: cv2.ROTATE_90_COUNTERCLOCKWISE,
    ImageRotationMode.DEG_180_CCW: cv2.ROTATE_180,
    ImageRotationMode.DEG_270_CCW: cv2.ROTATE_90_CLOCKWISE,
}


class RotateImagePipe(CVPipe[np.ndarray, np.ndarray, RotateImageParams]):
    """Rotate an image counter-clockwise by a multiple of 90 degrees."""

    def process(self, in_: np.ndarray) -> np.ndarray:
        code = _ROTATE_CODES.get(self.params.rotation)
        if code is None:
            return in_
        return cv2.rotate(in_, code)
