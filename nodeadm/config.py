"""nodeadm configuration management.

Settings are resolved with the following precedence:
1. Environment variables (a ``.env`` file is honored)
2. Configuration files
3. Default values
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Load environment variables from .env file if it exists
load_dotenv()

logger = logging.getLogger("nodeadm.config")

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/nodeadm/config.yaml"),
    Path("~/.config/nodeadm/config.yaml").expanduser(),
]

DEFAULT_TRACKER_PATH = "/opt/nodeadm/tracker"
DEFAULT_MANIFEST_URL = "https://hybrid-assets.eks.amazonaws.com/manifest.yaml"


def _env(name: str, default: str) -> str:
    return os.getenv(f"NODEADM_{name}", default)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default_factory=lambda: _env("LOG_LEVEL", "INFO"),
        validate_default=True,
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    file: Optional[str] = Field(
        default_factory=lambda: os.getenv("NODEADM_LOG_FILE"),
        description="Path to log file (if None, logs only to stdout)"
    )
    max_size_mb: int = Field(
        default=100,
        description="Maximum log file size in MB before rotation"
    )
    backup_count: int = Field(
        default=5,
        description="Number of backup log files to keep"
    )

    @field_validator('level')
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept log levels in any case."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {v}")
        return level


class RetryConfig(BaseModel):
    """Retry and timeout configuration."""
    backoff_seconds: float = Field(
        default_factory=lambda: float(_env("RETRY_BACKOFF", "5")),
        description="Fixed backoff between retried shell-outs"
    )
    upgrade_timeout_minutes: int = Field(
        default_factory=lambda: int(_env("UPGRADE_TIMEOUT", "20")),
        description="Overall deadline of the upgrade flow"
    )


class PathsConfig(BaseModel):
    """Filesystem locations owned by nodeadm."""
    tracker: str = Field(
        default_factory=lambda: _env("TRACKER_PATH", DEFAULT_TRACKER_PATH),
        description="Location of the installed-artifacts tracker"
    )
    manifest_url: str = Field(
        default_factory=lambda: _env("MANIFEST_URL", DEFAULT_MANIFEST_URL),
        description="Release manifest listing downloadable artifacts"
    )


class NodeadmSettings(BaseModel):
    """nodeadm runtime settings."""
    model_config = ConfigDict(extra="ignore")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    config_paths: List[Path] = Field(
        default_factory=lambda: list(DEFAULT_CONFIG_PATHS),
        exclude=True  # Don't include in serialization
    )

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> 'NodeadmSettings':
        """Load settings from a file, falling back to the default paths."""
        config_data: Dict[str, Any] = {}

        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if config_path.exists():
                config_data = cls._load_config_file(config_path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        return cls(**config_data)

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load settings from a YAML file."""
        try:
            with open(path, 'r') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}

    @property
    def log_level(self) -> int:
        return getattr(logging, self.logging.level)


# Global settings instance
_settings: Optional[NodeadmSettings] = None


def get_settings(config_path: Optional[Union[str, Path]] = None) -> NodeadmSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = NodeadmSettings.load(config_path)
    return _settings


def set_settings(settings: Optional[NodeadmSettings]) -> None:
    """Set (or reset, with None) the global settings instance."""
    global _settings
    _settings = settings
