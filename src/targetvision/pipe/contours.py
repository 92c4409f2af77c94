"""Contour extraction, filtering, grouping and ordering."""

import logging
import math
from dataclasses import dataclass

import cv2
import numpy as np

from ..frame import FrameStaticProperties
from ..target import (
    Contour,
    ContourGroupingMode,
    ContourIntersectionDirection,
    ContourShape,
    ContourSortMode,
    PotentialTarget,
    TargetOrientation,
)
from .base import CVPipe

logger = logging.getLogger(__name__)

MAX_MULTI_TARGET_RESULTS = 5


def _check_range(pipe: CVPipe, name: str, value: tuple[float, float]) -> None:
    low, high = value
    if low < 0 or high < low:
        raise pipe.fail(f"{name} must satisfy 0 <= min <= max, got {value}")


@dataclass(frozen=True)
class FindContoursParams:
    pass


class FindContoursPipe(CVPipe[np.ndarray, list[Contour], FindContoursParams]):
    """Outer contours of a binary mask."""

    def process(self, in_: np.ndarray) -> list[Contour]:
        contours, _ = cv2.findContours(in_, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        return [Contour(c) for c in contours]


@dataclass(frozen=True)
class SpeckleRejectParams:
    min_percent_of_avg: float


class SpeckleRejectPipe(CVPipe[list[Contour], list[Contour], SpeckleRejectParams]):
    """Drop contours much smaller than the average contour."""

    def check_params(self, params: SpeckleRejectParams) -> None:
        if not 0 <= params.min_percent_of_avg <= 100:
            raise self.fail(
                f"speckle percentage must be within 0-100, got {params.min_percent_of_avg}"
            )

    def process(self, in_: list[Contour]) -> list[Contour]:
        if not in_:
            return []
        average_area = sum(c.area for c in in_) / len(in_)
        min_allowed = average_area * self.params.min_percent_of_avg / 100.0
        return [c for c in in_ if c.area >= min_allowed]


@dataclass(frozen=True)
class FilterContoursParams:
    """Accepted contour ranges.

    Attributes:
        area: Area as a percentage of the image area.
        ratio: Aspect ratio of the minimum-area rectangle, long side over
            short side for landscape targets and the inverse for portrait.
        fullness: Contour area over rectangle area, percent.
        orientation: Expected target orientation.
        frame_static_properties: Properties of the image being filtered.
    """

    area: tuple[float, float]
    ratio: tuple[float, float]
    fullness: tuple[float, float]
    orientation: TargetOrientation
    frame_static_properties: FrameStaticProperties


class FilterContoursPipe(CVPipe[list[Contour], list[Contour], FilterContoursParams]):
    def check_params(self, params: FilterContoursParams) -> None:
        _check_range(self, "area", params.area)
        _check_range(self, "ratio", params.ratio)
        _check_range(self, "fullness", params.fullness)
        if params.frame_static_properties.image_area <= 0:
            raise self.fail("image area must be positive")

    def process(self, in_: list[Contour]) -> list[Contour]:
        return [c for c in in_ if self._accept(c)]

    def _accept(self, contour: Contour) -> bool:
        p = self.params
        image_area = p.frame_static_properties.image_area

        area_percent = contour.area / image_area * 100.0
        if not p.area[0] <= area_percent <= p.area[1]:
            return False

        _, (w, h), _ = contour.min_area_rect
        rect_area = w * h
        if rect_area <= 0:
            return False

        fullness = contour.area / rect_area * 100.0
        if not p.fullness[0] <= fullness <= p.fullness[1]:
            return False

        long_side, short_side = max(w, h), min(w, h)
        if short_side <= 0:
            return False
        ratio = long_side / short_side
        if p.orientation == TargetOrientation.PORTRAIT:
            ratio = 1.0 / ratio
        return p.ratio[0] <= ratio <= p.ratio[1]


@dataclass(frozen=True)
class FilterShapesParams:
    """Shape classification parameters.

    Attributes:
        shape: Shape to keep. CUSTOM keeps every contour.
        accuracy_percentage: approxPolyDP epsilon as a percentage of the
            contour perimeter.
        circle_accuracy: Minimum contour area over enclosing-circle area,
            percent.
    """

    shape: ContourShape
    accuracy_percentage: float
    circle_accuracy: float


class FilterShapesPipe(
    CVPipe[list[Contour], list[PotentialTarget], FilterShapesParams]
):
    def check_params(self, params: FilterShapesParams) -> None:
        if params.accuracy_percentage <= 0:
            raise self.fail(
                f"accuracy percentage must be positive, got {params.accuracy_percentage}"
            )
        if not 0 <= params.circle_accuracy <= 100:
            raise self.fail(
                f"circle accuracy must be within 0-100, got {params.circle_accuracy}"
            )

    def process(self, in_: list[Contour]) -> list[PotentialTarget]:
        shape = self.params.shape
        return [
            PotentialTarget(c, shape=shape) for c in in_ if self._matches(c, shape)
        ]

    def _matches(self, contour: Contour, shape: ContourShape) -> bool:
        if shape == ContourShape.CUSTOM:
            return True
        if shape == ContourShape.CIRCLE:
            _, radius = cv2.minEnclosingCircle(contour.points)
            circle_area = math.pi * radius * radius
            if circle_area <= 0:
                return False
            return contour.area / circle_area * 100.0 >= self.params.circle_accuracy

        perimeter = cv2.arcLength(contour.points, True)
        epsilon = self.params.accuracy_percentage / 100.0 * perimeter
        approx = cv2.approxPolyDP(contour.points, epsilon, True)
        return len(approx) == shape.side_count


@dataclass(frozen=True)
class GroupContoursParams:
    grouping_mode: ContourGroupingMode
    intersection: ContourIntersectionDirection


class GroupContoursPipe(
    CVPipe[list[Contour], list[PotentialTarget], GroupContoursParams]
):
    """Turn contours into potential targets, pairing them when requested.

    DUAL mode walks the contours left to right and pairs each one with the
    next unused contour whose fitted line meets it on the configured side.
    TWO_OR_MORE merges every contour into a single target when there are at
    least two.
    """

    def process(self, in_: list[Contour]) -> list[PotentialTarget]:
        mode = self.params.grouping_mode
        if mode == ContourGroupingMode.SINGLE:
            return [PotentialTarget(c) for c in in_]

        if mode == ContourGroupingMode.TWO_OR_MORE:
            if len(in_) < 2:
                return []
            return [PotentialTarget(Contour.combine(in_), list(in_))]

        ordered = sorted(in_, key=lambda c: c.center[0])
        used: set[int] = set()
        grouped = []
        for i, first in enumerate(ordered):
            if i in used:
                continue
            for j in range(i + 1, len(ordered)):
                if j in used:
                    continue
                second = ordered[j]
                if first.is_intersecting(second, self.params.intersection):
                    used.update((i, j))
                    grouped.append(
                        PotentialTarget(Contour.combine([first, second]), [first, second])
                    )
                    break
        return grouped


@dataclass(frozen=True)
class SortContoursParams:
    sort_mode: ContourSortMode
    max_targets: int
    frame_static_properties: FrameStaticProperties


class SortContoursPipe(
    CVPipe[list[PotentialTarget], list[PotentialTarget], SortContoursParams]
):
    """Order potential targets and keep at most ``max_targets`` of them."""

    def check_params(self, params: SortContoursParams) -> None:
        if params.max_targets < 1:
            raise self.fail(f"max_targets must be >= 1, got {params.max_targets}")

    def process(self, in_: list[PotentialTarget]) -> list[PotentialTarget]:
        props = self.params.frame_static_properties
        mode = self.params.sort_mode

        def key(target: PotentialTarget) -> float:
            contour = target.main_contour
            x, y = contour.center
            if mode == ContourSortMode.LARGEST:
                return -contour.area
            if mode == ContourSortMode.SMALLEST:
                return contour.area
            if mode == ContourSortMode.HIGHEST:
                return y
            if mode == ContourSortMode.LOWEST:
                return -y
            if mode == ContourSortMode.LEFTMOST:
                return x
            if mode == ContourSortMode.RIGHTMOST:
                return -x
            return (x - props.center_x) ** 2 + (y - props.center_y) ** 2

        return sorted(in_, key=key)[: self.params.max_targets]
