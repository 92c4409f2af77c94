"""Tests for target geometry types."""

import numpy as np
import pytest

from targetvision.target import (
    Contour,
    ContourShape,
    Pose3d,
    TargetModel,
    TrackedTarget,
    calculate_pitch,
    calculate_yaw,
    order_quad_corners,
)


def square(x0, y0, size) -> np.ndarray:
    return np.array(
        [[x0, y0], [x0 + size, y0], [x0 + size, y0 + size], [x0, y0 + size]]
    )


def test_yaw_and_pitch_signs():
    """Test that right of and above the crosshair are positive."""
    assert calculate_yaw(320.0, 420.0, 100.0) == pytest.approx(45.0)
    assert calculate_yaw(320.0, 220.0, 100.0) == pytest.approx(-45.0)
    assert calculate_pitch(240.0, 140.0, 100.0) == pytest.approx(45.0)
    assert calculate_pitch(240.0, 340.0, 100.0) == pytest.approx(-45.0)
    assert calculate_yaw(0.0, 10.0, 0.0) == 0.0


def test_order_quad_corners():
    """Test that shuffled corners come back clockwise from the top left."""
    shuffled = np.array([[10, 10], [0, 10], [10, 0], [0, 0]])
    np.testing.assert_array_equal(
        order_quad_corners(shuffled), [[0, 0], [10, 0], [10, 10], [0, 10]]
    )


class TestPose3d:
    """Tests for Pose3d."""

    def test_nwu_translation(self):
        """Test that OpenCV x-right/y-down/z-forward becomes forward/left/up."""
        pose = Pose3d.from_opencv(np.zeros(3), np.array([0.5, -0.25, 2.0]))
        np.testing.assert_allclose(pose.translation, [2.0, -0.5, 0.25])
        assert pose.distance == pytest.approx(np.linalg.norm([0.5, 0.25, 2.0]))
        assert pose.tvec.shape == (3, 1)

    def test_to_dict(self):
        """Test plain-type conversion."""
        data = Pose3d.from_opencv(np.zeros(3), np.array([0.0, 0.0, 1.0])).to_dict()
        assert data["translation"] == [1.0, 0.0, 0.0]
        assert len(data["rotation"]) == 3


class TestTargetModel:
    """Tests for TargetModel."""

    def test_square_tag_size(self):
        """Test that tag models are squares of their nominal size."""
        vertices = TargetModel.K_APRILTAG_6P5IN_36H11.vertices
        assert vertices.shape == (4, 3)
        assert np.ptp(vertices[:, 0]) == pytest.approx(6.5 * 0.0254)
        assert TargetModel.K_APRILTAG_6P5IN_36H11.is_square_tag
        assert not TargetModel.K2020_HIGH_GOAL_OUTER.is_square_tag

    def test_vertices_are_copies(self):
        """Test that callers cannot modify the model table."""
        TargetModel.K2019_DUAL_TARGET.vertices[0, 0] = 99.0
        assert TargetModel.K2019_DUAL_TARGET.vertices[0, 0] != 99.0

    def test_box_depth(self):
        """Test that the box depth is half the model width."""
        model = TargetModel.K2020_HIGH_GOAL_OUTER
        assert model.box_depth == pytest.approx(19.625 * 0.0254)


class TestContour:
    """Tests for Contour."""

    def test_geometry(self):
        """Test area, centre and bounding box of a square."""
        contour = Contour(square(10, 20, 10))
        assert contour.area == pytest.approx(100.0)
        assert contour.center == pytest.approx((15.0, 25.0))
        assert contour.bounding_rect == (10, 20, 11, 11)

    def test_combine(self):
        """Test that combined contours cover both inputs."""
        combined = Contour.combine([Contour(square(0, 0, 10)), Contour(square(20, 0, 10))])
        assert combined.bounding_rect == (0, 0, 31, 11)
        assert combined.area == pytest.approx(300.0)

    def test_side_counts(self):
        """Test the vertex counts of polygon shapes."""
        assert ContourShape.TRIANGLE.side_count == 3
        assert ContourShape.QUADRILATERAL.side_count == 4
        assert ContourShape.CIRCLE.side_count is None


class TestTrackedTarget:
    """Tests for TrackedTarget."""

    def test_to_dict_minimal(self):
        """Test that optional parts are left out."""
        data = TrackedTarget(yaw=1.5, center=(2.0, 3.0)).to_dict()
        assert data["yaw"] == 1.5
        assert data["center"] == [2.0, 3.0]
        assert data["fiducial_id"] == -1
        assert "corners" not in data
        assert "best_camera_to_target" not in data

    def test_to_dict_with_pose(self):
        """Test that corners and poses are included when present."""
        pose = Pose3d.from_opencv(np.zeros(3), np.array([0.0, 0.0, 1.0]))
        target = TrackedTarget(
            target_corners=square(0, 0, 1).astype(float),
            best_camera_to_target=pose,
            alt_camera_to_target=pose,
            pose_ambiguity=0.2,
        )
        data = target.to_dict()
        assert target.has_pose
        assert data["corners"][1] == [1.0, 0.0]
        assert data["best_camera_to_target"]["translation"] == [1.0, 0.0, 0.0]
        assert "alt_camera_to_target" in data
        assert data["pose_ambiguity"] == 0.2
