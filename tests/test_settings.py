"""Tests for pipeline settings and kind changes."""

import logging

import pytest

from targetvision.frame import FrameDivisor
from targetvision.settings import (
    COPY_EXEMPT_FIELDS,
    AprilTagPipelineSettings,
    ArucoPipelineSettings,
    Calibration3dPipelineSettings,
    ColoredShapePipelineSettings,
    DriverModePipelineSettings,
    PipelineType,
    ReflectivePipelineSettings,
    copy_shared_settings,
    create_settings_for_type,
)
from targetvision.target import ContourSortMode, TargetModel


class TestPipelineType:
    """Tests for PipelineType."""

    @pytest.mark.parametrize(
        "pipeline_type,base_index",
        [
            (PipelineType.CALIB_3D, -2),
            (PipelineType.DRIVER_MODE, -1),
            (PipelineType.REFLECTIVE, 0),
            (PipelineType.COLORED_SHAPE, 1),
            (PipelineType.APRILTAG, 2),
            (PipelineType.ARUCO, 3),
        ],
    )
    def test_base_index_round_trip(self, pipeline_type, base_index):
        """Test that base indexes map both ways."""
        assert pipeline_type.base_index == base_index
        assert PipelineType.from_base_index(base_index) is pipeline_type
        assert pipeline_type.is_builtin == (base_index < 0)

    def test_unknown_base_index(self):
        """Test that unknown base indexes map to None."""
        assert PipelineType.from_base_index(9) is None


class TestPipelineSettings:
    """Tests for settings models."""

    def test_kind_defaults(self):
        """Test the per-kind defaults that differ from the base class."""
        assert ReflectivePipelineSettings().solve_pnp_enabled is False
        apriltag = AprilTagPipelineSettings()
        assert apriltag.solve_pnp_enabled is True
        assert apriltag.output_show_multiple_targets is True
        assert apriltag.target_model == TargetModel.K_APRILTAG_6P5IN_36H11
        assert DriverModePipelineSettings().pipeline_index == -1
        assert Calibration3dPipelineSettings().pipeline_index == -2

    def test_hue_may_wrap(self):
        """Test that hue bounds may be given in either order."""
        assert ReflectivePipelineSettings(hsv_hue=(170, 10)).hsv_hue == (170, 10)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("hsv_hue", (0, 181)),
            ("hsv_saturation", (200, 100)),
            ("hsv_value", (0, 256)),
            ("contour_area", (50.0, 10.0)),
            ("camera_brightness", 101),
        ],
    )
    def test_invalid_values(self, field, value):
        """Test that out-of-range settings are rejected."""
        with pytest.raises(ValueError):
            ReflectivePipelineSettings(**{field: value})

    def test_invalid_board(self):
        """Test that calibration boards need 2x2 inner corners."""
        with pytest.raises(ValueError, match="inner corners"):
            Calibration3dPipelineSettings(board_width=1)

    def test_unknown_keys_warn(self, caplog):
        """Test that unknown keys are warned about."""
        with caplog.at_level(logging.WARNING):
            ArucoPipelineSettings(pipeline_nickname="x", exposure=3)
        assert "Unknown settings keys in ArucoPipelineSettings" in caplog.text

    def test_clone_is_deep(self):
        """Test that clones do not share state."""
        settings = ReflectivePipelineSettings(pipeline_nickname="a")
        clone = settings.clone()
        clone.pipeline_nickname = "b"
        assert settings.pipeline_nickname == "a"
        assert clone == ReflectivePipelineSettings(pipeline_nickname="b")


class TestCreateSettingsForType:
    """Tests for create_settings_for_type."""

    @pytest.mark.parametrize(
        "pipeline_type,cls",
        [
            (PipelineType.REFLECTIVE, ReflectivePipelineSettings),
            (PipelineType.COLORED_SHAPE, ColoredShapePipelineSettings),
            (PipelineType.APRILTAG, AprilTagPipelineSettings),
            (PipelineType.ARUCO, ArucoPipelineSettings),
        ],
    )
    def test_user_kinds(self, pipeline_type, cls):
        """Test that each user kind gets fresh defaults with the nickname."""
        settings = create_settings_for_type(pipeline_type, "nick")
        assert type(settings) is cls
        assert settings.pipeline_nickname == "nick"
        assert settings.pipeline_type == pipeline_type

    def test_builtin_kinds(self, caplog):
        """Test that built-in kinds are refused."""
        with caplog.at_level(logging.ERROR):
            assert create_settings_for_type(PipelineType.CALIB_3D, "x") is None
        assert "invalid pipeline type" in caplog.text


class TestCopySharedSettings:
    """Tests for copy_shared_settings."""

    def test_copies_shared_fields(self):
        """Test that fields shared by both kinds are copied."""
        old = ReflectivePipelineSettings(
            hsv_hue=(5, 25),
            contour_sort_mode=ContourSortMode.LEFTMOST,
            streaming_frame_divisor=FrameDivisor.HALF,
            camera_exposure_raw=5.0,
        )
        new = copy_shared_settings(old, ColoredShapePipelineSettings())
        assert new.hsv_hue == (5, 25)
        assert new.contour_sort_mode == ContourSortMode.LEFTMOST
        assert new.streaming_frame_divisor == FrameDivisor.HALF
        assert new.camera_exposure_raw == 5.0

    def test_skips_exempt_fields(self):
        """Test that identity fields and the target model are never copied."""
        old = ReflectivePipelineSettings(
            pipeline_index=4,
            pipeline_nickname="old",
            target_model=TargetModel.K2019_DUAL_TARGET,
        )
        new = copy_shared_settings(old, ArucoPipelineSettings(pipeline_nickname="new"))
        assert {"pipeline_index", "pipeline_nickname", "target_model"} <= COPY_EXEMPT_FIELDS
        assert new.pipeline_index == 0
        assert new.pipeline_nickname == "new"
        assert new.pipeline_type == PipelineType.ARUCO
        assert new.target_model == TargetModel.K_APRILTAG_6IN_16H5

    def test_copies_only_fields_known_to_old(self):
        """Test that fields the old kind lacks keep the new kind's defaults."""
        old = DriverModePipelineSettings(camera_gain=10)
        new = copy_shared_settings(old, ReflectivePipelineSettings(hsv_hue=(1, 2)))
        assert new.camera_gain == 10
        assert new.hsv_hue == (1, 2)

