#!/usr/bin/env python3
"""
Configuration Management Layer for the CLI

Provides centralized configuration with support for:
- Environment variables (TFT_* prefix)
- Config files (~/.tft_extract_config.json or project-specific)
- Command-line overrides
- Validated defaults

Configuration priority (highest to lowest):
1. Command-line overrides
2. Explicit config file
3. Project config file
4. User config file
5. Environment variables
6. Hardcoded defaults
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from tft_extract.constants import EPSILON_R_SIO2
from tft_extract.derived.tlm import DEFAULT_CONTACT_WIDTH_MM, DEFAULT_DISTANCE_STEP_MM
from tft_extract.models.measurements import DeviceGeometry

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".tft_extract_config.json"
ENV_PREFIX = "TFT_"


class AnalysisConfig(BaseModel):
    """
    Central configuration for TFT and TLM parameter extraction.

    Geometry is kept in the units people type (µm, nm) and converted to
    metres by :meth:`device_geometry`.
    """

    # Device geometry
    channel_width_um: float = Field(
        default=100.0,
        gt=0,
        description="Channel width W in µm"
    )
    channel_length_um: float = Field(
        default=50.0,
        gt=0,
        description="Channel length L in µm"
    )
    oxide_thickness_nm: float = Field(
        default=20.0,
        gt=0,
        description="Gate oxide thickness in nm"
    )
    dielectric_constant: float = Field(
        default=EPSILON_R_SIO2,
        gt=0,
        description="Relative permittivity of the gate dielectric"
    )

    # TLM
    contact_width_mm: float = Field(
        default=DEFAULT_CONTACT_WIDTH_MM,
        gt=0,
        description="TLM contact width in mm"
    )
    distance_step_mm: float = Field(
        default=DEFAULT_DISTANCE_STEP_MM,
        gt=0,
        description="Pad spacing increment used to resolve sheet names"
    )

    # Processing
    parallel_workers: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Number of worker processes for per-sample fusion"
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose logging output"
    )

    # Paths
    output_dir: Path = Field(
        default=Path("results"),
        description="Directory for exported CSV files"
    )
    log_dir: Path = Field(
        default=Path("logs"),
        description="Directory for rotating log files"
    )

    config_version: str = Field(
        default="1.0.0",
        description="Configuration schema version"
    )

    model_config = {
        "validate_assignment": True,
    }

    @field_validator("output_dir", "log_dir", mode="before")
    @classmethod
    def resolve_path(cls, v) -> Path:
        """Resolve relative paths against the current working directory."""
        if v is None:
            return v
        path = Path(v)
        if not path.is_absolute():
            path = Path.cwd() / path
        return path.resolve()

    def device_geometry(self) -> DeviceGeometry:
        """Geometry in SI units for the extractors."""
        return DeviceGeometry.from_user_units(
            width_um=self.channel_width_um,
            length_um=self.channel_length_um,
            tox_nm=self.oxide_thickness_nm,
            epsilon_r=self.dielectric_constant,
        )

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> "AnalysisConfig":
        """
        Load configuration from environment variables.

        Environment variable format: {prefix}{FIELD_NAME}
        Example: TFT_CHANNEL_WIDTH_UM=200, TFT_VERBOSE=true

        Args:
            prefix: Prefix for environment variables (default: "TFT_")

        Returns:
            AnalysisConfig instance with values from environment
        """
        config_dict = {}

        for field_name, field_info in cls.model_fields.items():
            env_value = os.getenv(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue

            field_type = field_info.annotation
            if field_type is bool:
                config_dict[field_name] = env_value.lower() in ("true", "1", "yes", "on")
            elif field_type is int:
                config_dict[field_name] = int(env_value)
            elif field_type is float:
                config_dict[field_name] = float(env_value)
            elif field_type is Path:
                config_dict[field_name] = Path(env_value)
            else:
                config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_file(cls, config_file: Path) -> "AnalysisConfig":
        """
        Load configuration from a JSON config file.

        Unknown keys are ignored so files can carry comments or metadata.

        Raises:
            FileNotFoundError: If config file doesn't exist
            json.JSONDecodeError: If config file is invalid JSON
        """
        config_file = Path(config_file)

        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")

        with open(config_file, "r") as f:
            config_dict = json.load(f)

        config_dict = {k: v for k, v in config_dict.items() if k in cls.model_fields}
        return cls(**config_dict)

    def save(self, config_file: Path, pretty: bool = True) -> None:
        """Save current configuration to a JSON file."""
        config_file = Path(config_file)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(mode="json")

        with open(config_file, "w") as f:
            if pretty:
                json.dump(config_dict, f, indent=2, sort_keys=False)
                f.write("\n")
            else:
                json.dump(config_dict, f)

    def merge_with(self, **overrides) -> "AnalysisConfig":
        """
        Create a new config with specified overrides.

        Args:
            **overrides: Field values to override

        Returns:
            New AnalysisConfig instance with overrides applied
        """
        config_dict = self.model_dump()
        config_dict.update(overrides)
        return AnalysisConfig(**config_dict)

    def get_field_source(self, field_name: str) -> str:
        """Where a field's value most likely came from: "default", "env" or "override"."""
        if getattr(self, field_name) == getattr(AnalysisConfig(), field_name):
            return "default"
        if os.getenv(f"{ENV_PREFIX}{field_name.upper()}") is not None:
            return "env"
        return "override"


def _apply_file(config: AnalysisConfig, path: Path) -> AnalysisConfig:
    try:
        file_config = AnalysisConfig.from_file(path)
    except (json.JSONDecodeError, ValidationError, OSError) as e:
        logger.warning(f"Ignoring config file {path}: {e}")
        return config
    logger.debug(f"Loaded config file {path}")
    return config.merge_with(**file_config.model_dump(exclude_unset=True))


def load_config_with_precedence(
    config_file: Optional[Path] = None,
    check_env: bool = True,
    check_user_config: bool = True,
    check_project_config: bool = True,
    **overrides
) -> AnalysisConfig:
    """
    Load configuration with proper precedence handling.

    Precedence (highest to lowest):
    1. Explicit overrides (**overrides)
    2. Specified config file (config_file parameter)
    3. Project-local config (./.tft_extract_config.json)
    4. User config (~/.tft_extract_config.json)
    5. Environment variables (TFT_*)
    6. Defaults

    Unreadable user or project files are logged and skipped; an explicit
    config file that fails to parse raises.
    """
    config = AnalysisConfig()

    if check_env:
        try:
            config = AnalysisConfig.from_env()
        except (ValueError, ValidationError) as e:
            logger.warning(f"Ignoring {ENV_PREFIX}* environment settings: {e}")

    user_config_path = Path.home() / CONFIG_FILENAME
    if check_user_config and user_config_path.exists():
        config = _apply_file(config, user_config_path)

    project_config_path = Path.cwd() / CONFIG_FILENAME
    if (
        check_project_config
        and project_config_path.exists()
        and project_config_path.resolve() != user_config_path.resolve()
    ):
        config = _apply_file(config, project_config_path)

    if config_file is not None:
        file_config = AnalysisConfig.from_file(Path(config_file))
        config = config.merge_with(**file_config.model_dump(exclude_unset=True))

    if overrides:
        config = config.merge_with(**overrides)

    return config
