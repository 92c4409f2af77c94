"""Tests for target collection and corner detection."""

import numpy as np
import pytest

from targetvision.errors import PipeParamsError
from targetvision.pipe import Collect2dTargetsPipe, CollectFiducialTargetsPipe, CornerDetectionPipe
from targetvision.pipe.fiducial import FiducialDetection
from targetvision.pipe.targets import (
    Collect2dTargetsParams,
    CollectFiducialTargetsParams,
    CornerDetectionParams,
    RobotOffsetParams,
)
from targetvision.target import (
    Contour,
    PotentialTarget,
    RobotOffsetPointMode,
    TargetOffsetPointEdge,
    TrackedTarget,
)


def rect_contour(x0, y0, x1, y1) -> Contour:
    return Contour(np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]]))


def collect(potentials, props, edge=TargetOffsetPointEdge.CENTER, offset=None):
    pipe = Collect2dTargetsPipe()
    pipe.set_params(
        Collect2dTargetsParams(edge, offset or RobotOffsetParams(), props)
    )
    return pipe.run(potentials).output


class TestRobotOffsetParams:
    """Tests for crosshair placement."""

    def test_none_uses_image_center(self, props):
        """Test that NONE puts the crosshair at the principal point."""
        assert RobotOffsetParams().crosshair(props, 5.0) == (props.center_x, props.center_y)

    def test_single_point(self, props):
        """Test that SINGLE uses the configured point."""
        offset = RobotOffsetParams(RobotOffsetPointMode.SINGLE, single_point=(12.0, 34.0))
        assert offset.crosshair(props, 5.0) == (12.0, 34.0)

    def test_dual_point_interpolates_by_area(self, props):
        """Test linear interpolation between the two calibrated points."""
        offset = RobotOffsetParams(
            RobotOffsetPointMode.DUAL,
            dual_point_a=(100.0, 100.0),
            dual_point_a_area=10.0,
            dual_point_b=(200.0, 300.0),
            dual_point_b_area=20.0,
        )
        assert offset.crosshair(props, 15.0) == pytest.approx((150.0, 200.0))
        assert offset.crosshair(props, 10.0) == pytest.approx((100.0, 100.0))

    def test_dual_point_same_area(self, props):
        """Test that coincident areas fall back to point A."""
        offset = RobotOffsetParams(
            RobotOffsetPointMode.DUAL,
            dual_point_a=(1.0, 2.0),
            dual_point_a_area=5.0,
            dual_point_b=(3.0, 4.0),
            dual_point_b_area=5.0,
        )
        assert offset.crosshair(props, 7.0) == (1.0, 2.0)


class TestCollect2dTargetsPipe:
    """Tests for Collect2dTargetsPipe."""

    def test_area_is_percentage(self, props):
        """Test that area is reported as a percentage of the image."""
        (target,) = collect([PotentialTarget(rect_contour(270, 190, 370, 290))], props)
        assert target.area == pytest.approx(100 * 100 / (640 * 480) * 100)
        assert target.center == pytest.approx((320.0, 240.0))

    def test_angle_signs(self, props):
        """Test that right is positive yaw and up is positive pitch."""
        (right,) = collect([PotentialTarget(rect_contour(500, 230, 520, 250))], props)
        (up,) = collect([PotentialTarget(rect_contour(310, 20, 330, 40))], props)
        assert right.yaw > 0
        assert right.pitch == pytest.approx(0.0, abs=0.1)
        assert up.pitch > 0
        assert up.yaw == pytest.approx(0.0, abs=0.1)

    def test_offset_point_edge(self, props):
        """Test that the reported location follows the offset edge."""
        potential = PotentialTarget(rect_contour(270, 190, 370, 290))
        (top,) = collect([potential], props, TargetOffsetPointEdge.TOP)
        (left,) = collect([potential], props, TargetOffsetPointEdge.LEFT)
        assert top.center == pytest.approx((320.0, 190.0))
        assert left.center == pytest.approx((270.0, 240.0))

    def test_single_point_offset(self, props):
        """Test that yaw is zero when the crosshair sits on the target."""
        offset = RobotOffsetParams(RobotOffsetPointMode.SINGLE, single_point=(510.0, 240.0))
        (target,) = collect(
            [PotentialTarget(rect_contour(500, 230, 520, 250))], props, offset=offset
        )
        assert target.yaw == pytest.approx(0.0, abs=1e-6)
        assert target.robot_offset_point == (510.0, 240.0)

    def test_keeps_sub_contours(self, props):
        """Test that grouped sub-contours are carried over."""
        a = rect_contour(10, 10, 20, 50)
        b = rect_contour(40, 10, 50, 50)
        (target,) = collect([PotentialTarget(Contour.combine([a, b]), [a, b])], props)
        assert target.sub_contours == [a, b]


class TestCornerDetectionPipe:
    """Tests for CornerDetectionPipe."""

    def detect(self, targets, **overrides):
        params = dict(
            use_convex_hulls=True,
            exact_side_count=False,
            side_count=4,
            accuracy_percentage=10.0,
        )
        params.update(overrides)
        pipe = CornerDetectionPipe()
        pipe.set_params(CornerDetectionParams(**params))
        return pipe.run(targets).output

    def test_rectangle_corners_ordered(self):
        """Test that corners come out top-left, top-right, bottom-right, bottom-left."""
        target = TrackedTarget(contour=rect_contour(100, 50, 300, 150))
        (result,) = self.detect([target])
        assert result is target
        np.testing.assert_allclose(
            result.target_corners,
            [[100, 50], [300, 50], [300, 150], [100, 150]],
        )

    def test_exact_side_count_mismatch(self):
        """Test that a wrong side count clears the corners."""
        target = TrackedTarget(contour=rect_contour(100, 50, 300, 150))
        (result,) = self.detect([target], exact_side_count=True, side_count=3)
        assert result.target_corners is None

    def test_triangle_has_no_corners(self):
        """Test that fewer than four vertices yields no corners."""
        triangle = Contour(np.array([[100, 100], [300, 100], [200, 250]]))
        (result,) = self.detect([TrackedTarget(contour=triangle)])
        assert result.target_corners is None

    def test_target_without_contour(self):
        """Test that fiducial-style targets are left without corners."""
        (result,) = self.detect([TrackedTarget()])
        assert result.target_corners is None

    def test_rejects_small_side_count(self):
        """Test that polygons need at least three sides."""
        with pytest.raises(PipeParamsError):
            CornerDetectionPipe().set_params(CornerDetectionParams(True, False, 2, 10.0))


class TestCollectFiducialTargetsPipe:
    """Tests for CollectFiducialTargetsPipe."""

    def test_detection_to_target(self, props):
        """Test that id and corner order are preserved."""
        corners = np.array([[280, 200], [360, 200], [360, 280], [280, 280]], dtype=np.float64)
        pipe = CollectFiducialTargetsPipe()
        pipe.set_params(CollectFiducialTargetsParams(RobotOffsetParams(), props))
        (target,) = pipe.run([FiducialDetection(5, corners)]).output
        assert target.fiducial_id == 5
        np.testing.assert_allclose(target.target_corners, corners)
        assert target.center == pytest.approx((320.0, 240.0))
        assert target.area == pytest.approx(80 * 80 / (640 * 480) * 100)
        assert target.contour is None
