"""Shared pytest fixtures for targetvision tests."""

import cv2
import numpy as np
import pytest

from targetvision.frame import (
    CameraCalibration,
    CVMat,
    Frame,
    FrameStaticProperties,
    FrameThresholdType,
)

WIDTH = 640
HEIGHT = 480

# BGR green, hue 60 in OpenCV's 0-180 scale
GREEN = (0, 255, 0)


@pytest.fixture
def props():
    """Static properties of an uncalibrated 640x480 camera with a 70 degree FOV."""
    return FrameStaticProperties(WIDTH, HEIGHT, 70.0)


@pytest.fixture
def calibration():
    """Ideal pinhole calibration for 640x480."""
    return CameraCalibration(
        resolution=(WIDTH, HEIGHT),
        camera_matrix=np.array(
            [[600.0, 0.0, 319.5], [0.0, 600.0, 239.5], [0.0, 0.0, 1.0]]
        ),
        dist_coeffs=np.zeros(5),
    )


@pytest.fixture
def calibrated_props(calibration):
    return FrameStaticProperties(WIDTH, HEIGHT, 70.0, calibration)


def draw_rects(rects, color=GREEN, size=(WIDTH, HEIGHT)) -> np.ndarray:
    """Black BGR image with filled rectangles given as (x0, y0, x1, y1)."""
    image = np.zeros((size[1], size[0], 3), dtype=np.uint8)
    for x0, y0, x1, y1 in rects:
        cv2.rectangle(image, (x0, y0), (x1, y1), color, thickness=-1)
    return image


def render_marker(dictionary_name: str, marker_id: int, side: int = 160) -> np.ndarray:
    """White BGR image with one marker centred in it."""
    dictionary = cv2.aruco.getPredefinedDictionary(getattr(cv2.aruco, dictionary_name))
    marker = cv2.aruco.generateImageMarker(dictionary, marker_id, side)
    gray = np.full((HEIGHT, WIDTH), 255, dtype=np.uint8)
    x0 = (WIDTH - side) // 2
    y0 = (HEIGHT - side) // 2
    gray[y0 : y0 + side, x0 : x0 + side] = marker
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


def render_chessboard(squares_x: int = 8, squares_y: int = 8, square: int = 40) -> np.ndarray:
    """White BGR image with a chessboard of ``squares_x`` x ``squares_y`` squares."""
    gray = np.full((HEIGHT, WIDTH), 255, dtype=np.uint8)
    x0 = (WIDTH - squares_x * square) // 2
    y0 = (HEIGHT - squares_y * square) // 2
    for row in range(squares_y):
        for col in range(squares_x):
            if (row + col) % 2 == 0:
                y = y0 + row * square
                x = x0 + col * square
                gray[y : y + square, x : x + square] = 0
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


@pytest.fixture
def green_rect_image():
    """One 201x101 green rectangle centred in the image."""
    return draw_rects([(220, 190, 420, 290)])


@pytest.fixture
def aruco_image():
    """ArUco 4x4_50 marker id 7."""
    return render_marker("DICT_4X4_50", 7)


@pytest.fixture
def apriltag_image():
    """AprilTag 36h11 id 3."""
    return render_marker("DICT_APRILTAG_36h11", 3)


@pytest.fixture
def chessboard_image():
    """8x8-square chessboard, 7x7 inner corners."""
    return render_chessboard()


@pytest.fixture
def make_frame():
    """Factory for frames built from in-memory images."""

    def _make(
        color: np.ndarray | None,
        processed: np.ndarray | None = None,
        props: FrameStaticProperties | None = None,
        threshold_type: FrameThresholdType = FrameThresholdType.NONE,
        sequence_id: int = 1,
    ) -> Frame:
        if props is None and color is not None:
            props = FrameStaticProperties(color.shape[1], color.shape[0], 70.0)
        return Frame(
            sequence_id=sequence_id,
            color_image=CVMat(color),
            processed_image=CVMat(processed),
            threshold_type=threshold_type,
            timestamp_ns=0,
            static_properties=props,
        )

    return _make


@pytest.fixture
def hsv_mask():
    """Threshold a BGR image with the default green-friendly HSV bounds."""

    def _mask(image: np.ndarray) -> np.ndarray:
        hsv = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)
        return cv2.inRange(hsv, np.array([50, 50, 50]), np.array([180, 255, 255]))

    return _mask
