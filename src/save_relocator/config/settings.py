"""Configuration settings and models for the save relocator."""

from pathlib import Path
from typing import Union

import yaml
from pydantic import BaseModel, ValidationError, ValidationInfo, field_validator

from ..monitor.process_monitor import DEFAULT_POLL_INTERVAL
from ..utils.file_utils import FileHelper

DEFAULT_PATH_FILE = Path("pathFile.txt")


class ConfigurationError(ValueError):
    """Raised when the configuration is missing or invalid."""


class RelocatorConfig(BaseModel):
    """Main configuration class."""
    local_path: Path
    cloud_path: Path
    process_name: str = ""  # Without the platform executable suffix
    save_extension: str = ".save"
    max_backups: int = 5
    poll_interval: float = DEFAULT_POLL_INTERVAL  # seconds
    log_level: str = "INFO"
    log_file: Path = Path("log.txt")

    @field_validator('local_path', 'cloud_path')
    @classmethod
    def validate_directory(cls, v: Path, info: ValidationInfo) -> Path:
        label = info.field_name.replace('_path', '')
        if not v.is_dir():
            raise ValueError(f"{label} path does not exist: {v}")
        return v

    @field_validator('process_name')
    @classmethod
    def strip_process_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('save_extension')
    @classmethod
    def normalize_extension(cls, v: str) -> str:
        return FileHelper.normalize_extension(v)

    @field_validator('max_backups')
    @classmethod
    def validate_max_backups(cls, v: int) -> int:
        if v < 1:
            raise ValueError('max_backups must be at least 1')
        return v

    @field_validator('poll_interval')
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError('poll_interval must be positive')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'unknown log level: {v}')
        return v

    @property
    def monitoring_enabled(self) -> bool:
        return bool(self.process_name)

    @classmethod
    def from_path_file(cls, path_file: Union[str, Path]) -> "RelocatorConfig":
        """Load configuration from a plain text path file.

        Line 1 is the local save folder, line 2 the cloud folder and the
        optional line 3 names the game process to watch.
        """
        path_file = Path(path_file)
        if not path_file.exists():
            raise ConfigurationError(f"{path_file} not found")

        with open(path_file, 'r', encoding='utf-8-sig') as f:
            lines = [line.strip() for line in f.read().splitlines()]

        if len(lines) < 2 or not lines[0] or not lines[1]:
            raise ConfigurationError(
                f"{path_file} must contain at least two lines (local and cloud paths)"
            )

        data = {
            'local_path': lines[0],
            'cloud_path': lines[1],
            'process_name': lines[2] if len(lines) >= 3 else "",
        }
        return _build(data, path_file)

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "RelocatorConfig":
        """Load configuration from YAML file."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed configuration file {config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

        return _build(config_data, config_path)

    def to_yaml(self, config_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.model_dump(mode='json'), f, default_flow_style=False, indent=2)


def _build(data: dict, source: Path) -> RelocatorConfig:
    try:
        return RelocatorConfig(**data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration in {source}: {problems}") from e


def load_config(config_path: Union[str, Path] = DEFAULT_PATH_FILE) -> RelocatorConfig:
    """Load configuration, choosing the format from the file suffix.

    Args:
        config_path: ``.yaml``/``.yml`` file or plain text path file

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    config_path = Path(config_path)
    if config_path.suffix.lower() in ('.yaml', '.yml'):
        return RelocatorConfig.from_yaml(config_path)
    return RelocatorConfig.from_path_file(config_path)
