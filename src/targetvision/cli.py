"""Command-line interface for targetvision."""

import argparse
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from .config import CameraConfig, VisionConfig
from .dataflow import DataChangeService, OutgoingUIEvent
from .frame import CameraCalibration
from .pipeline import CVPipelineResult
from .processes import (
    FileFrameProvider,
    FrameProvider,
    PipelineManager,
    VideoCaptureFrameProvider,
    VisionRunner,
)
from .profiling import ProfileReport, format_report
from .settings import USER_SETTINGS_CLASSES, PipelineType

logger = logging.getLogger(__name__)

USER_PIPELINE_TYPES = [t.value for t in USER_SETTINGS_CLASSES]


def _parse_source(source: str) -> int | str:
    """Device indices arrive as strings on the command line."""
    return int(source) if source.isdigit() else source


def init_config(
    config_path: Path,
    pipeline_type: PipelineType = PipelineType.APRILTAG,
    source: int | str = 0,
) -> VisionConfig:
    """Write a default configuration with a single user pipeline.

    Args:
        config_path: Where the generated YAML is saved.
        pipeline_type: Kind of the initial user pipeline.
        source: Camera device index, video path, or still image path.

    Returns:
        The generated VisionConfig.
    """
    settings_cls = USER_SETTINGS_CLASSES[pipeline_type]
    config = VisionConfig(
        camera=CameraConfig(
            source=source,
            pipelines=[settings_cls(pipeline_nickname="New Pipeline")],
        )
    )
    config.to_yaml(config_path)
    print(f"[OK] Configuration saved to: {config_path}")
    return config


def create_frame_provider(camera: CameraConfig) -> FrameProvider:
    """Open the frame source described by ``camera``.

    Raises:
        FileNotFoundError: If a still image cannot be read.
        OSError: If a device or video cannot be opened.
    """
    calibrations = camera.camera_calibrations()
    if camera.is_still_image:
        return FileFrameProvider(camera.source, camera.fov, calibrations)
    return VideoCaptureFrameProvider(
        camera.source, camera.fov, calibrations, loop=camera.loop
    )


def _run_bounded(runner: VisionRunner, max_frames: int, quiet: bool) -> None:
    with tqdm(
        total=max_frames,
        desc="Processing",
        unit="frame",
        disable=quiet or not sys.stderr.isatty(),
    ) as pbar:
        for _ in range(max_frames):
            if runner.finished:
                break
            runner.process_one()
            pbar.update(1)


def _run_until_stopped(runner: VisionRunner) -> None:
    runner.start()
    try:
        while runner.is_alive():
            runner.join(timeout=0.5)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping vision runner")
        runner.stop()
        runner.join()


def run_command(
    config_path: Path,
    verbose: bool = False,
    frames: int | None = None,
    pipeline: int | None = None,
) -> ProfileReport:
    """Run the vision loop described by a config file.

    Args:
        config_path: Path to the config YAML file.
        verbose: If True, set logging to DEBUG level.
        frames: Optional override of ``runtime.max_frames``.
        pipeline: Optional override of ``camera.current_pipeline_index``.

    Returns:
        Aggregated stage timings of the run.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        sys.exit(1)

    try:
        config = VisionConfig.from_yaml(config_path)
    except Exception as e:
        print(f"Error: Failed to load config: {e}", file=sys.stderr)
        sys.exit(1)

    if frames is not None:
        config.runtime.max_frames = frames
    if pipeline is not None:
        config.camera.current_pipeline_index = pipeline

    try:
        provider = create_frame_provider(config.camera)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    def on_calibration(calibration: CameraCalibration) -> None:
        provider.add_calibration(calibration)
        config.camera.set_calibration(calibration)
        config.to_yaml(config_path)
        logger.info("Calibration saved to %s", config_path)

    def on_event(event: OutgoingUIEvent) -> None:
        logger.debug("Event %s", event.name)

    service = DataChangeService()
    service.subscribe("*", on_event)
    manager = PipelineManager.from_camera_config(
        config.camera,
        data_change_service=service,
        calibration_callback=on_calibration,
    )
    runner = VisionRunner(provider, manager, max_frames=config.runtime.max_frames)

    output_file = None
    if config.runtime.output_path is not None:
        output_path = Path(config.runtime.output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_file = open(output_path, "w")

        def write_result(result: CVPipelineResult) -> None:
            output_file.write(json.dumps(result.to_dict()) + "\n")

        runner.add_consumer(write_result)

    logger.info(
        "Running camera %s on pipeline %d (%s)",
        config.camera.nickname,
        manager.current_pipeline_index,
        manager.get_pipeline_nickname(manager.current_pipeline_index),
    )
    try:
        if config.runtime.max_frames is not None:
            _run_bounded(runner, config.runtime.max_frames, config.runtime.quiet)
        else:
            _run_until_stopped(runner)
    finally:
        manager.release()
        provider.release()
        if output_file is not None:
            output_file.close()

    logger.info(
        "Processed %d frames (%d failed)", runner.frames_processed, runner.frames_failed
    )
    if runner.profile_report.frames:
        logger.info("\n%s", format_report(runner.profile_report))
    return runner.profile_report


def main() -> None:
    """Main entry point for the targetvision CLI."""
    parser = argparse.ArgumentParser(
        prog="targetvision",
        description="Camera target detection with configurable vision pipelines.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init subcommand
    init_parser = subparsers.add_parser(
        "init",
        help="Write a default config file",
    )
    init_parser.add_argument(
        "config",
        type=Path,
        help="Path to output config YAML file",
    )
    init_parser.add_argument(
        "--type",
        type=str,
        choices=USER_PIPELINE_TYPES,
        default=PipelineType.APRILTAG.value,
        help="Kind of the initial pipeline (default: apriltag)",
    )
    init_parser.add_argument(
        "--source",
        type=str,
        default="0",
        help="Camera index, video file, or image file (default: 0)",
    )

    # run subcommand
    run_parser = subparsers.add_parser(
        "run",
        help="Run the vision loop",
    )
    run_parser.add_argument(
        "config",
        type=Path,
        help="Path to config YAML file",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    run_parser.add_argument(
        "--frames",
        type=int,
        default=None,
        help="Stop after this many frames (overrides runtime.max_frames)",
    )
    run_parser.add_argument(
        "--pipeline",
        type=int,
        default=None,
        help="Pipeline index to start on (-1 driver mode, -2 calibration)",
    )

    args = parser.parse_args()

    if args.command == "init":
        init_config(
            config_path=args.config,
            pipeline_type=PipelineType(args.type),
            source=_parse_source(args.source),
        )
    elif args.command == "run":
        run_command(
            config_path=args.config,
            verbose=args.verbose,
            frames=args.frames,
            pipeline=args.pipeline,
        )
    else:
        parser.print_help()
        sys.exit(1)
