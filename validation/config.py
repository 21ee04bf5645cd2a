"""
Configuration validation for HatchSync.

Settings come from pydantic-settings with env var and YAML file support,
validated with pydantic v2 field validators for fail-fast behavior and
sensible defaults.

Precedence (highest to lowest):
1. Explicit keyword arguments (validate_config / tests)
2. HATCHSYNC_-prefixed environment variables
3. YAML config file (hatchsync.yml in the working directory, or the path
   in HATCHSYNC_CONFIG_FILE)
4. Defaults defined below
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

log = logging.getLogger('HatchSync.config')

DEFAULT_CONFIG_FILE = "hatchsync.yml"


class HatchSyncSettings(BaseSettings):
    """
    HatchSync configuration with validation.

    Required:
        backend_url: Backend project URL (e.g., https://abc.supabase.co)
        backend_api_key: Backend anon/service key sent as apikey + bearer token

    Optional tunables:
        data_dir: Queue data directory (default: HATCHSYNC_DATA or ~/.hatchsync/data)
        settle_delay: Seconds to wait after reconnect before auto-sync (default: 2.0, range: 0-60)
        request_timeout: Backend request timeout in seconds (default: 10.0, range: 1-120)
        poll_interval: Connectivity poll interval in seconds (default: 5.0, range: 0.5-300)
        max_sync_attempts: Failed replays before an entry is dead-lettered
                           (default: None = retry forever, range: 1-1000)
        dlq_retention_days: Days to retain dead-lettered entries (default: 30, range: 1-365)
        log_level: Root log level (default: info)
        json_logs: Structured JSON log output (default: True)
    """

    model_config = SettingsConfigDict(
        env_prefix="HATCHSYNC_",
        yaml_file=os.environ.get("HATCHSYNC_CONFIG_FILE", DEFAULT_CONFIG_FILE),
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    # Required fields
    backend_url: str
    backend_api_key: str

    data_dir: Optional[str] = None

    # Auto-sync
    settle_delay: float = Field(default=2.0, ge=0.0, le=60.0)
    poll_interval: float = Field(default=5.0, ge=0.5, le=300.0)

    # Backend connection
    request_timeout: float = Field(default=10.0, ge=1.0, le=120.0)

    # Retry / DLQ policy
    max_sync_attempts: Optional[int] = Field(
        default=None,
        ge=1,
        le=1000,
        description="Dead-letter entries after this many failed replays. None keeps retrying forever."
    )
    dlq_retention_days: int = Field(default=30, ge=1, le=365)

    # Logging
    log_level: str = "info"
    json_logs: bool = True

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Return sources in priority order: init > env > YAML."""
        return (init_settings, env_settings, YamlConfigSettingsSource(settings_cls))

    @field_validator('backend_url', mode='after')
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        """Validate backend_url is a valid HTTP/HTTPS URL."""
        if not v:
            raise ValueError('backend_url is required')
        if not v.startswith(('http://', 'https://')):
            raise ValueError('backend_url must start with http:// or https://')
        return v.rstrip('/')  # Normalize: remove trailing slash

    @field_validator('backend_api_key', mode='after')
    @classmethod
    def validate_backend_api_key(cls, v: str) -> str:
        """Validate backend_api_key is present and reasonable length."""
        if not v:
            raise ValueError('backend_api_key is required')
        if len(v) < 20:
            raise ValueError('backend_api_key appears invalid (too short)')
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log_level is one of: trace, debug, info, warning, error."""
        valid = ('trace', 'debug', 'info', 'warning', 'error')
        if isinstance(v, str) and v.lower() in valid:
            return v.lower()
        raise ValueError(f"log_level must be one of {valid}, got: {v}")

    @field_validator('json_logs', mode='before')
    @classmethod
    def validate_booleans(cls, v):
        """Ensure boolean fields are actual booleans, not truthy strings."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            lower = v.lower()
            if lower in ('true', '1', 'yes'):
                return True
            if lower in ('false', '0', 'no'):
                return False
            raise ValueError(f"Invalid boolean value: {v}")
        raise ValueError(f"Expected boolean, got {type(v).__name__}")

    def log_config(self) -> None:
        """Log configuration with masked API key."""
        masked = self.backend_api_key[:4] + '****' + self.backend_api_key[-4:]
        retry_policy = (
            f"max_sync_attempts={self.max_sync_attempts}"
            if self.max_sync_attempts is not None
            else "max_sync_attempts=unlimited"
        )
        log.info(
            f"HatchSync config: url={self.backend_url}, key={masked}, "
            f"settle_delay={self.settle_delay}s, "
            f"request_timeout={self.request_timeout}s, "
            f"poll_interval={self.poll_interval}s, "
            f"{retry_policy}, "
            f"dlq_retention_days={self.dlq_retention_days}"
        )
        if self.max_sync_attempts is None:
            log.info("No retry cap configured: failing entries stay queued until they succeed or are cleared")


def validate_config(config_dict: dict) -> tuple[Optional[HatchSyncSettings], Optional[str]]:
    """
    Validate configuration dictionary and return HatchSyncSettings or error message.

    Environment variables and the YAML file still fill in fields missing
    from ``config_dict``.

    Args:
        config_dict: Dictionary containing configuration values

    Returns:
        Tuple of (HatchSyncSettings, None) on success,
        or (None, error_message) on validation failure
    """
    try:
        config = HatchSyncSettings(**config_dict)
        return (config, None)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            field = '.'.join(str(loc) for loc in error['loc'])
            msg = error['msg']
            errors.append(f"{field}: {msg}")
        error_message = '; '.join(errors)
        return (None, error_message)


__all__ = ['HatchSyncSettings', 'validate_config', 'ValidationError']
