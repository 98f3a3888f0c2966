"""
Configuration system for the PDF toolkit server.

Provides structured configuration using dataclasses with clear defaults,
validation, and loading from dicts or environment variables.
"""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional
import logging

logger = logging.getLogger(__name__)

LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

# env var -> field name
ENV_VARS = {
    'UPLOAD_DIR': 'upload_dir',
    'MAX_UPLOAD_MB': 'max_upload_mb',
    'RETENTION_HOURS': 'retention_hours',
    'SWEEP_INTERVAL_SECONDS': 'sweep_interval_seconds',
    'PROCESSING_TIMEOUT_SECONDS': 'processing_timeout_seconds',
    'MAX_MERGE_FILES': 'max_merge_files',
    'ALLOWED_ORIGINS': 'allowed_origins',
    'LOG_LEVEL': 'log_level',
    'PORT': 'port',
}


@dataclass
class ServiceConfig:
    """
    Central configuration for the server and its artifact lifecycle.

    Example:
        >>> config = ServiceConfig(upload_dir='/srv/uploads', retention_hours=6)
        >>> config.retention_seconds
        21600.0
    """

    # Artifacts
    upload_dir: str = "uploads"
    download_prefix: str = "/uploads"
    retention_hours: float = 24.0
    sweep_interval_seconds: float = 3600.0

    # Limits
    max_upload_mb: int = 100
    max_merge_files: int = 10
    processing_timeout_seconds: int = 300

    # HTTP
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    port: int = 5000

    # Logging
    log_level: str = "INFO"

    @property
    def retention_seconds(self) -> float:
        return self.retention_hours * 3600

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            True if all values are valid, False otherwise
        """
        if not self.upload_dir:
            logger.error("upload_dir must not be empty")
            return False

        if self.max_upload_mb < 1:
            logger.error("max_upload_mb must be at least 1 MB")
            return False

        if self.retention_hours <= 0:
            logger.error("retention_hours must be positive")
            return False

        if self.sweep_interval_seconds <= 0:
            logger.error("sweep_interval_seconds must be positive")
            return False

        if self.processing_timeout_seconds < 1:
            logger.error("processing_timeout_seconds must be at least 1 second")
            return False

        if self.max_merge_files < 2:
            logger.error("max_merge_files must allow at least 2 files")
            return False

        if not 0 < self.port < 65536:
            logger.error(f"port {self.port} is out of range")
            return False

        if self.log_level.upper() not in LOG_LEVELS:
            logger.error(f"Unknown log_level '{self.log_level}'")
            return False

        return True

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Useful for serialization, logging, and debugging.
        """
        return {
            'upload_dir': self.upload_dir,
            'download_prefix': self.download_prefix,
            'retention_hours': self.retention_hours,
            'sweep_interval_seconds': self.sweep_interval_seconds,
            'max_upload_mb': self.max_upload_mb,
            'max_merge_files': self.max_merge_files,
            'processing_timeout_seconds': self.processing_timeout_seconds,
            'allowed_origins': list(self.allowed_origins),
            'port': self.port,
            'log_level': self.log_level,
        }

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ServiceConfig':
        """
        Create ServiceConfig from dictionary.

        Unknown keys are ignored with a warning.
        """
        valid_keys = {f.name for f in fields(cls)}

        filtered_config = {}
        for key, value in config.items():
            if key in valid_keys:
                filtered_config[key] = value
            else:
                logger.warning(f"Unknown config key '{key}' will be ignored")

        return cls(**filtered_config)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ServiceConfig':
        """
        Build configuration from environment variables, falling back to defaults.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        environ = os.environ if environ is None else environ
        defaults = cls()
        values: Dict[str, Any] = {}

        for env_name, field_name in ENV_VARS.items():
            raw = environ.get(env_name)
            if raw is None or raw.strip() == "":
                continue
            raw = raw.strip()

            if field_name == 'allowed_origins':
                values[field_name] = [origin.strip() for origin in raw.split(",") if origin.strip()]
                continue

            current = getattr(defaults, field_name)
            try:
                if isinstance(current, str):
                    values[field_name] = raw
                elif isinstance(current, int):
                    values[field_name] = int(raw)
                else:
                    values[field_name] = float(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {env_name}: {raw!r}")

        return cls.from_dict(values)

    @classmethod
    def default(cls) -> 'ServiceConfig':
        """Create configuration with default values."""
        return cls()

    def __repr__(self) -> str:
        return (
            f"ServiceConfig("
            f"upload_dir={self.upload_dir!r}, "
            f"max_upload={self.max_upload_mb}MB, "
            f"retention={self.retention_hours:g}h, "
            f"timeout={self.processing_timeout_seconds}s, "
            f"port={self.port})"
        )


__all__ = ['ServiceConfig', 'ENV_VARS']
