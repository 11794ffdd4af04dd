"""
Configuration management for certreloader.

This module provides a unified configuration system that supports:
- YAML configuration files
- Environment variable overrides (``CERTRELOADER_`` prefix, ``__`` nesting)
- Type validation and conversion
"""

import threading
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TLSVersion(str, Enum):
    """Minimum TLS protocol version accepted by the example server."""

    TLS_1_2 = "TLSv1.2"
    TLS_1_3 = "TLSv1.3"


class ReloaderConfig(BaseModel):
    """Watched files and polling interval."""

    cert_path: Path = Field(..., description="Certificate (chain) file in PEM format")
    key_path: Path = Field(..., description="Private key file in PEM format")
    interval_seconds: float = Field(
        default=300.0,
        gt=0,
        le=threading.TIMEOUT_MAX,
        allow_inf_nan=False,
        description="Seconds between reload attempts",
    )
    key_password: Optional[SecretStr] = Field(
        default=None, description="Password for an encrypted private key"
    )

    def password_bytes(self) -> Optional[bytes]:
        """Return the key password encoded for cryptography/ssl, if any."""
        if self.key_password is None:
            return None
        return self.key_password.get_secret_value().encode()


class ObservabilityConfig(BaseModel):
    """Logging and metrics configuration."""

    service_name: str = Field(default="certreloader", description="Service name")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(default="json", description="Log format (json|console)")
    log_file: Optional[str] = Field(default=None, description="Optional log file")
    first_error_only: bool = Field(
        default=True, description="Report only the first of repeated identical failures"
    )
    enable_metrics: bool = Field(default=False, description="Enable Prometheus metrics")
    metrics_port: int = Field(default=9000, description="Metrics server port")

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in {"json", "console"}:
            raise ValueError(f"Invalid log format '{value}'. Choose json or console.")
        return value


class ServerConfig(BaseModel):
    """Example HTTPS server configuration."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8443, ge=0, le=65535, description="Bind port")
    minimum_tls_version: TLSVersion = Field(default=TLSVersion.TLS_1_2)


class CertReloaderConfig(BaseSettings):
    """Top-level configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CERTRELOADER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    reloader: ReloaderConfig
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def from_yaml(cls, file_path: str | Path) -> "CertReloaderConfig":
        """Load configuration from YAML file."""
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {file_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML configuration: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "CertReloaderConfig":
        """Load configuration from environment variables."""
        try:
            return cls(**overrides)
        except ValidationError as e:
            raise ConfigurationError(
                f"Environment configuration validation failed: {e}"
            )

    def to_yaml(self, file_path: str | Path) -> None:
        """Save configuration to YAML file. Secrets are not written."""
        data = self.model_dump(mode="json", exclude={"reloader": {"key_password"}})
        try:
            with open(file_path, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}")


def load_config(yaml_file: str | Path | None = None, **overrides: Any) -> CertReloaderConfig:
    """
    Load configuration.

    Priority order:
    1. Keyword overrides
    2. YAML file (if provided; a missing file raises ConfigurationError)
    3. Environment variables
    4. Defaults
    """
    if yaml_file:
        config = CertReloaderConfig.from_yaml(yaml_file)
        if overrides:
            merged = config.model_dump()
            for section, values in overrides.items():
                merged.setdefault(section, {}).update(values)
            try:
                config = CertReloaderConfig(**merged)
            except ValidationError as e:
                raise ConfigurationError(f"Configuration validation failed: {e}")
        return config
    return CertReloaderConfig.from_env(**overrides)
