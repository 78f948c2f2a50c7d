"""Configuration management for Submodule Guard."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class ProbeConfig(BaseModel):
    """Configuration for remote reachability probes."""

    timeout: float = Field(
        default=30.0, gt=0, description="Per-probe timeout in seconds"
    )
    batch_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Timeout in seconds for the whole batch of probes",
    )
    concurrency: int = Field(
        default=8, ge=1, description="Maximum number of remotes probed in parallel"
    )


class GateConfig(BaseModel):
    """Policy for one enforcement point."""

    block_on_indeterminate: bool = Field(
        default=False,
        description="Exit with code 2 when a remote could not be verified",
    )


def _default_ci_gate() -> GateConfig:
    return GateConfig(block_on_indeterminate=True)


class GuardConfig(BaseModel):
    """Main configuration for Submodule Guard."""

    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    local: GateConfig = Field(default_factory=GateConfig)
    ci: GateConfig = Field(default_factory=_default_ci_gate)
    remote_name: str = Field(
        default="origin",
        description="Superproject remote used to resolve relative submodule URLs",
    )
    error_log_dir: Optional[Path] = Field(
        default=None,
        description="Directory for JSON exception logs (disabled when unset)",
    )

    @field_validator("error_log_dir", mode="before")
    @classmethod
    def convert_path(cls, v: Any) -> Optional[Path]:
        """Convert string paths to Path objects."""
        if v is None or isinstance(v, Path):
            return v
        if isinstance(v, str):
            return Path(v)
        raise ValueError(f"Expected str or Path, got {type(v)}")


class ConfigManager:
    """Loads configuration from ``.submodule-guard/config.json``."""

    CONFIG_DIR_NAME = ".submodule-guard"
    CONFIG_FILE_NAME = "config.json"

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or (
            Path(self.CONFIG_DIR_NAME) / self.CONFIG_FILE_NAME
        )
        self._config: Optional[GuardConfig] = None

    def load(self) -> GuardConfig:
        """Load configuration from file, or defaults when no file exists."""
        if not self.config_path.exists():
            logger.debug(f"No config at {self.config_path}, using defaults")
            self._config = GuardConfig()
            return self._config

        try:
            with open(self.config_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to read config from {self.config_path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file {self.config_path} must contain a JSON object"
            )

        if data.get("error_log_dir"):
            data["error_log_dir"] = str(
                self._resolve_relative_path(str(data["error_log_dir"]))
            )

        try:
            self._config = GuardConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid config in {self.config_path}: {e}"
            ) from e
        return self._config

    def get_config(self) -> GuardConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    @classmethod
    def find_config_path(cls, start_dir: Optional[Path] = None) -> Optional[Path]:
        """Find ``.submodule-guard/config.json`` by walking up the directory tree.

        Args:
            start_dir: Directory to start searching from (default: current directory)

        Returns:
            Path to config.json if found, None otherwise
        """
        current = start_dir or Path.cwd()
        for path in [current] + list(current.parents):
            config_path = path / cls.CONFIG_DIR_NAME / cls.CONFIG_FILE_NAME
            if config_path.exists():
                return config_path
        return None

    @classmethod
    def create_with_backtrack(cls, start_dir: Optional[Path] = None) -> "ConfigManager":
        """Create a ConfigManager for the nearest config file, or the default path."""
        config_path = cls.find_config_path(start_dir)
        if config_path is None:
            start = start_dir or Path.cwd()
            config_path = start / cls.CONFIG_DIR_NAME / cls.CONFIG_FILE_NAME
        return cls(config_path)

    def _resolve_relative_path(self, path_str: str) -> Path:
        """Resolve a path from config relative to the directory holding ``.submodule-guard/``."""
        path = Path(path_str)
        if path.is_absolute():
            return path
        return (self.config_path.parent.parent / path).resolve()
