"""AprilTag and ArUco marker detection through ``cv2.aruco``."""

import logging
from dataclasses import dataclass
from enum import Enum

import cv2
import numpy as np

from ..settings import AprilTagFamily, ArucoDictionary
from .base import CVPipe, Releasable

logger = logging.getLogger(__name__)

APRILTAG_DICTIONARIES = {
    AprilTagFamily.TAG_36H11: "DICT_APRILTAG_36h11",
    AprilTagFamily.TAG_25H9: "DICT_APRILTAG_25h9",
    AprilTagFamily.TAG_16H5: "DICT_APRILTAG_16h5",
}

ARUCO_DICTIONARIES = {
    ArucoDictionary.DICT_4X4_50: "DICT_4X4_50",
    ArucoDictionary.DICT_5X5_100: "DICT_5X5_100",
    ArucoDictionary.DICT_6X6_250: "DICT_6X6_250",
    ArucoDictionary.DICT_7X7_1000: "DICT_7X7_1000",
}


class CornerRefinement(str, Enum):
    NONE = "none"
    SUBPIX = "subpix"
    APRILTAG = "apriltag"


@dataclass(frozen=True)
class FiducialDetection:
    """One decoded marker.

    Attributes:
        id: Decoded marker id.
        corners: Corner pixels, shape (4, 2), in detector order (clockwise
            from the marker's top-left).
    """

    id: int
    corners: np.ndarray


@dataclass(frozen=True)
class FiducialDetectorParams:
    """Detector configuration.

    Attributes:
        dictionary: Name of a ``cv2.aruco`` predefined dictionary.
        corner_refinement: Corner refinement method.
        refine_window_size: Window half-size for SUBPIX refinement.
        error_correction_rate: Fraction of the dictionary's correction
            capability used while decoding, 0-1.
        decimate: Quad decimation for APRILTAG refinement.
        blur: Gaussian sigma applied by the AprilTag quad detector.
    """

    dictionary: str
    corner_refinement: CornerRefinement = CornerRefinement.NONE
    refine_window_size: int = 5
    error_correction_rate: float = 0.6
    decimate: int = 1
    blur: float = 0.0


_REFINEMENT_METHODS = {
    CornerRefinement.NONE: "CORNER_REFINE_NONE",
    CornerRefinement.SUBPIX: "CORNER_REFINE_SUBPIX",
    CornerRefinement.APRILTAG: "CORNER_REFINE_APRILTAG",
}


def build_detector(params: FiducialDetectorParams) -> "cv2.aruco.ArucoDetector":
    """Construct an ``ArucoDetector`` for ``params``."""
    dictionary = cv2.aruco.getPredefinedDictionary(getattr(cv2.aruco, params.dictionary))
    detector_params = cv2.aruco.DetectorParameters()
    detector_params.cornerRefinementMethod = getattr(
        cv2.aruco, _REFINEMENT_METHODS[params.corner_refinement]
    )
    detector_params.cornerRefinementWinSize = params.refine_window_size
    detector_params.errorCorrectionRate = params.error_correction_rate
    detector_params.aprilTagQuadDecimate = float(params.decimate)
    detector_params.aprilTagQuadSigma = float(params.blur)
    return cv2.aruco.ArucoDetector(dictionary, detector_params)


class FiducialDetectionPipe(
    CVPipe[np.ndarray, list[FiducialDetection], FiducialDetectorParams], Releasable
):
    """Detect markers in a greyscale image.

    The underlying detector is rebuilt only when the parameters change.
    """

    def __init__(self, name: str | None = None):
        super().__init__(name)
        self._detector = None
        self._detector_params: FiducialDetectorParams | None = None

    def check_params(self, params: FiducialDetectorParams) -> None:
        if not hasattr(cv2.aruco, params.dictionary):
            raise self.fail(f"unknown dictionary {params.dictionary!r}")
        if not 0.0 <= params.error_correction_rate <= 1.0:
            raise self.fail(
                f"error correction rate must be within 0-1, got {params.error_correction_rate}"
            )
        if params.decimate < 1:
            raise self.fail(f"decimate must be >= 1, got {params.decimate}")
        if params.refine_window_size < 1:
            raise self.fail(
                f"refine window size must be >= 1, got {params.refine_window_size}"
            )

    def process(self, in_: np.ndarray) -> list[FiducialDetection]:
        if self._detector is None or self._detector_params != self.params:
            logger.debug("Building fiducial detector for %s", self.params.dictionary)
            self._detector = build_detector(self.params)
            self._detector_params = self.params

        corners, ids, _ = self._detector.detectMarkers(in_)
        if ids is None:
            return []
        return [
            FiducialDetection(int(marker_id), np.asarray(c, dtype=np.float64).reshape(4, 2))
            for c, marker_id in zip(corners, ids.ravel())
        ]

    def release(self) -> None:
        self._detector = None
        self._detector_params = None
