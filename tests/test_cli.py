"""Tests for CLI init and run commands."""

import json
from pathlib import Path
from unittest.mock import patch

import cv2
import numpy as np
import pytest

from targetvision.cli import init_config, main, run_command
from targetvision.config import CameraConfig, RuntimeConfig, VisionConfig
from targetvision.frame import CameraCalibration
from targetvision.processes import PipelineManager
from targetvision.settings import (
    AprilTagPipelineSettings,
    PipelineType,
    ReflectivePipelineSettings,
)


@pytest.fixture
def image_config(tmp_path: Path, green_rect_image) -> Path:
    """Config running a reflective pipeline on a still image.

    Args:
        tmp_path: Pytest temporary directory fixture.
        green_rect_image: Image with one green target.

    Returns:
        Path to the config YAML file.
    """
    image_path = tmp_path / "target.png"
    cv2.imwrite(str(image_path), green_rect_image)
    config = VisionConfig(
        camera=CameraConfig(
            nickname="front",
            source=str(image_path),
            pipelines=[ReflectivePipelineSettings(pipeline_nickname="tape")],
        ),
        runtime=RuntimeConfig(output_path=str(tmp_path / "out" / "results.jsonl")),
    )
    config_path = tmp_path / "config.yaml"
    config.to_yaml(config_path)
    return config_path


def test_init_default(tmp_path: Path, capsys):
    """Test init writes a loadable config with one AprilTag pipeline."""
    config_path = tmp_path / "config.yaml"
    config = init_config(config_path)

    assert config_path.exists()
    assert "[OK] Configuration saved to" in capsys.readouterr().out

    loaded = VisionConfig.from_yaml(config_path)
    assert loaded == config
    assert len(loaded.camera.pipelines) == 1
    assert isinstance(loaded.camera.pipelines[0], AprilTagPipelineSettings)
    assert loaded.camera.pipelines[0].pipeline_nickname == "New Pipeline"
    assert loaded.camera.source == 0


def test_init_from_command_line(tmp_path: Path):
    """Test the init subcommand parses the kind and a numeric source."""
    config_path = tmp_path / "config.yaml"
    argv = ["targetvision", "init", str(config_path), "--type", "reflective", "--source", "2"]
    with patch("sys.argv", argv):
        main()

    config = VisionConfig.from_yaml(config_path)
    assert config.camera.source == 2
    assert config.camera.pipelines[0].pipeline_type == PipelineType.REFLECTIVE


def test_init_video_source(tmp_path: Path):
    """Test that non-numeric sources are kept as paths."""
    config_path = tmp_path / "config.yaml"
    argv = ["targetvision", "init", str(config_path), "--source", "clip.mp4"]
    with patch("sys.argv", argv):
        main()
    assert VisionConfig.from_yaml(config_path).camera.source == "clip.mp4"


def test_no_command():
    """Test that running without a subcommand exits with an error."""
    with patch("sys.argv", ["targetvision"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
    assert exc_info.value.code == 1


def test_run_missing_config(tmp_path: Path, capsys):
    """Test run exits with error when the config file is missing."""
    with pytest.raises(SystemExit) as exc_info:
        run_command(tmp_path / "missing.yaml")
    assert exc_info.value.code == 1
    assert "Config file not found" in capsys.readouterr().err


def test_run_invalid_config(tmp_path: Path, capsys):
    """Test run exits with error when the config does not validate."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text("camera:\n  fov: 500\n")
    with pytest.raises(SystemExit) as exc_info:
        run_command(config_path)
    assert exc_info.value.code == 1
    assert "Failed to load config" in capsys.readouterr().err


def test_run_unopenable_source(tmp_path: Path, capsys):
    """Test run exits with error when the video source cannot be opened."""
    config_path = tmp_path / "config.yaml"
    VisionConfig(camera=CameraConfig(source=str(tmp_path / "missing.avi"))).to_yaml(
        config_path
    )
    with pytest.raises(SystemExit) as exc_info:
        run_command(config_path, frames=1)
    assert exc_info.value.code == 1
    assert "Could not open" in capsys.readouterr().err


def test_run_still_image_writes_results(image_config: Path, tmp_path: Path):
    """Test a bounded run writes one JSON line per frame."""
    report = run_command(image_config, frames=3)

    assert report.frames == 3
    assert "find_contours" in report.stages

    lines = (tmp_path / "out" / "results.jsonl").read_text().splitlines()
    assert len(lines) == 3
    results = [json.loads(line) for line in lines]
    assert [r["sequence_id"] for r in results] == [1, 2, 3]
    assert len(results[0]["targets"]) == 1
    assert results[0]["targets"][0]["center"] == pytest.approx([320.0, 240.0], abs=1.0)


def test_run_pipeline_override(image_config: Path, tmp_path: Path):
    """Test --pipeline starts on the requested index."""
    report = run_command(image_config, frames=2, pipeline=-1)
    assert report.frames == 2
    assert report.stages == {}

    results = [
        json.loads(line)
        for line in (tmp_path / "out" / "results.jsonl").read_text().splitlines()
    ]
    assert all(r["targets"] == [] for r in results)


def test_run_persists_new_calibration(image_config: Path):
    """Test that a finished calibration is written back to the config file."""
    with patch.object(
        PipelineManager, "from_camera_config", wraps=PipelineManager.from_camera_config
    ) as factory:
        run_command(image_config, frames=1)

    callback = factory.call_args.kwargs["calibration_callback"]
    callback(CameraCalibration((640, 480), np.eye(3) * 500, np.zeros(5), 0.3))

    config = VisionConfig.from_yaml(image_config)
    assert len(config.camera.calibrations) == 1
    assert config.camera.calibrations[0].resolution == (640, 480)
    assert config.camera.calibrations[0].reprojection_error == 0.3
