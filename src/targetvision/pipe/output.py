"""Stream preparation stages: resizing, channel conversion and FPS."""

import collections
import logging
import time
from dataclasses import dataclass

import cv2

from ..frame import CVMat, FrameDivisor
from .base import CVPipe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResizeImageParams:
    divisor: FrameDivisor = FrameDivisor.NONE


class ResizeImagePipe(CVPipe[CVMat, None, ResizeImageParams]):
    """Downscale an image buffer in place by an integer divisor."""

    def process(self, in_: CVMat) -> None:
        divisor = int(self.params.divisor)
        if divisor == 1 or in_.empty():
            return
        mat = in_.mat
        height, width = mat.shape[:2]
        size = (max(1, width // divisor), max(1, height // divisor))
        in_.mat = cv2.resize(mat, size, interpolation=cv2.INTER_AREA)


@dataclass(frozen=True)
class OutputMatParams:
    pass


class OutputMatPipe(CVPipe[CVMat, None, OutputMatParams]):
    """Convert a single-channel buffer to BGR in place so overlays show in colour."""

    def process(self, in_: CVMat) -> None:
        if in_.empty() or in_.channels() != 1:
            return
        in_.mat = cv2.cvtColor(in_.mat, cv2.COLOR_GRAY2BGR)


@dataclass(frozen=True)
class CalculateFPSParams:
    window: int = 30


class CalculateFPSPipe(CVPipe[None, float, CalculateFPSParams]):
    """Rolling frames-per-second over the last ``window`` calls."""

    def __init__(self, name: str | None = None):
        super().__init__(name)
        self._stamps: collections.deque[int] = collections.deque()
        self.set_params(CalculateFPSParams())

    def check_params(self, params: CalculateFPSParams) -> None:
        if params.window < 2:
            raise self.fail(f"window must be >= 2, got {params.window}")

    def process(self, in_: None) -> float:
        self._stamps.append(time.monotonic_ns())
        while len(self._stamps) > self.params.window:
            self._stamps.popleft()
        if len(self._stamps) < 2:
            return 0.0
        span = self._stamps[-1] - self._stamps[0]
        if span <= 0:
            return 0.0
        return (len(self._stamps) - 1) * 1e9 / span
