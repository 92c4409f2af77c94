"""Configuration management for targetvision cameras and runs."""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .frame import CameraCalibration
from .settings import (
    Calibration3dPipelineSettings,
    DriverModePipelineSettings,
    UserPipelineSettings,
)

logger = logging.getLogger(__name__)

# Image suffixes served by FileFrameProvider rather than VideoCapture
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff"}


class CalibrationConfig(BaseModel):
    """Persisted intrinsic calibration for one resolution.

    Attributes:
        resolution: Image size as [width, height].
        camera_matrix: 3x3 intrinsic matrix, row-major.
        dist_coeffs: Distortion coefficients.
        reprojection_error: RMS reprojection error in pixels, if known.
    """

    model_config = ConfigDict(extra="allow")

    resolution: tuple[int, int]
    camera_matrix: list[list[float]]
    dist_coeffs: list[float] = Field(default_factory=lambda: [0.0] * 5)
    reprojection_error: float | None = None

    @field_validator("resolution")
    @classmethod
    def validate_resolution(cls, v: tuple[int, int]) -> tuple[int, int]:
        """Validate that both dimensions are positive."""
        if v[0] <= 0 or v[1] <= 0:
            raise ValueError(f"resolution must be positive, got {v}")
        return v

    @field_validator("camera_matrix")
    @classmethod
    def validate_camera_matrix(cls, v: list[list[float]]) -> list[list[float]]:
        """Validate that the camera matrix is 3x3."""
        if len(v) != 3 or any(len(row) != 3 for row in v):
            raise ValueError("camera_matrix must be 3x3")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "CalibrationConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in CalibrationConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    def to_calibration(self) -> CameraCalibration:
        return CameraCalibration.from_dict(self.model_dump())

    @classmethod
    def from_calibration(cls, calibration: CameraCalibration) -> "CalibrationConfig":
        return cls.model_validate(calibration.to_dict())


class CameraConfig(BaseModel):
    """One camera: its source, optics and persisted pipelines.

    Attributes:
        nickname: Camera name used in logs and notifications.
        source: Device index, video path/URL, or still image path.
        fov: Diagonal field of view in degrees.
        loop: Restart video files when they end.
        calibrations: Known intrinsic calibrations, one per resolution.
        driver_mode: Settings of the built-in driver mode pipeline.
        calibration_pipeline: Settings of the built-in calibration pipeline.
        pipelines: User pipelines, tagged by ``pipeline_type``.
        current_pipeline_index: Pipeline to start on (-1 driver mode,
            -2 calibration).
    """

    model_config = ConfigDict(extra="allow")

    nickname: str = "camera"
    source: int | str = 0
    fov: float = 70.0
    loop: bool = False

    calibrations: list[CalibrationConfig] = Field(default_factory=list)
    driver_mode: DriverModePipelineSettings = Field(
        default_factory=DriverModePipelineSettings
    )
    calibration_pipeline: Calibration3dPipelineSettings = Field(
        default_factory=Calibration3dPipelineSettings
    )
    pipelines: list[UserPipelineSettings] = Field(default_factory=list)
    current_pipeline_index: int = 0

    @field_validator("fov")
    @classmethod
    def validate_fov(cls, v: float) -> float:
        """Validate that the field of view is within (0, 180)."""
        if not 0 < v < 180:
            raise ValueError(f"fov must be within (0, 180) degrees, got {v}")
        return v

    @field_validator("current_pipeline_index")
    @classmethod
    def validate_current_index(cls, v: int) -> int:
        """Validate that the index is a user slot or a built-in."""
        if v < -2:
            raise ValueError(f"current_pipeline_index must be >= -2, got {v}")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "CameraConfig":
        """Warn about unknown keys and out-of-range start pipelines."""
        if self.current_pipeline_index >= max(len(self.pipelines), 1):
            logger.warning(
                "current_pipeline_index %d is past the %d configured pipelines",
                self.current_pipeline_index,
                len(self.pipelines),
            )
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in CameraConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    @property
    def is_still_image(self) -> bool:
        return (
            isinstance(self.source, str)
            and Path(self.source).suffix.lower() in IMAGE_EXTENSIONS
        )

    def camera_calibrations(self) -> list[CameraCalibration]:
        return [c.to_calibration() for c in self.calibrations]

    def set_calibration(self, calibration: CameraCalibration) -> None:
        """Store ``calibration``, replacing any other for the same resolution."""
        resolution = tuple(calibration.resolution)
        self.calibrations = [
            c for c in self.calibrations if tuple(c.resolution) != resolution
        ]
        self.calibrations.append(CalibrationConfig.from_calibration(calibration))


class RuntimeConfig(BaseModel):
    """Configuration for a single run.

    Attributes:
        max_frames: Stop after this many processed frames (None = no limit).
        output_path: JSON-lines file receiving one result per frame.
        quiet: Suppress progress output.
    """

    model_config = ConfigDict(extra="allow")

    max_frames: int | None = None
    output_path: str | None = None
    quiet: bool = False

    @field_validator("max_frames")
    @classmethod
    def validate_max_frames(cls, v: int | None) -> int | None:
        """Validate that max_frames is positive when set."""
        if v is not None and v <= 0:
            raise ValueError(f"max_frames must be > 0, got {v}")
        return v

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "RuntimeConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in RuntimeConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class VisionConfig(BaseModel):
    """Top-level configuration for the targetvision runner.

    Attributes:
        camera: Camera source, optics and pipelines.
        runtime: Run length and output settings.
    """

    model_config = ConfigDict(extra="allow")

    camera: CameraConfig = Field(default_factory=CameraConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "VisionConfig":
        """Warn about unknown top-level keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in VisionConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "VisionConfig":
        """Load configuration from a YAML file.

        Missing fields use their default values.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Loaded configuration with defaults filled in.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            ValueError: If validation fails (with all errors collected).
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}

        cls._log_default_sections(data)

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            formatted_errors = format_validation_errors(e)
            raise ValueError(
                f"Configuration validation failed:\n{formatted_errors}"
            ) from None

        return config

    @staticmethod
    def _log_default_sections(data: dict[str, Any]) -> None:
        for section in ("camera", "runtime"):
            if section not in data:
                logger.info("Using default: %s (all defaults)", section)

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file.

        All fields including defaults are written for explicitness.

        Args:
            path: Path to output YAML file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json")

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors with YAML-style paths.

    Args:
        error: Pydantic ValidationError.

    Returns:
        Formatted error string with YAML paths and messages.
    """
    lines = []
    for err in error.errors():
        path_parts: list[str] = []
        for part in err["loc"]:
            if isinstance(part, int) and path_parts:
                path_parts[-1] = f"{path_parts[-1]}[{part}]"
            else:
                path_parts.append(str(part))

        path = ".".join(path_parts)
        lines.append(f"  {path}: {err['msg']}")

    return "\n".join(lines)
