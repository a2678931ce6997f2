"""
Relay configuration.

Every knob is a pydantic-settings field, read case-insensitively from the
environment, then from ``.env``, then from an optional YAML or JSON file
named by ``TETHER_CONFIG_FILE``. Sections mirror the parts of the service
they configure.
"""

import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class ServiceConfig(BaseSettings):
    """Identity of this relay deployment."""

    service_name: str = Field(
        'tether',
        json_schema_extra={'env': 'SERVICE_NAME'},
        description="Name used in startup logs"
    )

    model_config = ConfigDict(env_prefix='')


class LoggingConfig(BaseSettings):
    """Where and how the relay logs."""

    log_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        'INFO',
        json_schema_extra={'env': 'LOG_LEVEL'},
        description="Root log level"
    )
    log_format: Literal['json', 'human'] = Field(
        'human',
        json_schema_extra={'env': 'LOG_FORMAT'},
        description="json for log shippers, human for consoles"
    )
    log_output: str = Field(
        'stdout',
        json_schema_extra={'env': 'LOG_OUTPUT'},
        description="stdout, stderr or a file path"
    )

    model_config = ConfigDict(env_prefix='')


class RelayConfig(BaseSettings):
    """Session relay limits."""

    session_ttl: int = Field(
        600,
        json_schema_extra={'env': 'SESSION_TTL'},
        ge=1,
        le=86400,
        description="Inactivity window in seconds after which a session is permanently expired"
    )
    max_messages: int = Field(
        60,
        json_schema_extra={'env': 'MAX_MESSAGES'},
        ge=1,
        le=10000,
        description="Maximum number of messages a session may hold"
    )
    max_body_bytes: int = Field(
        64 * 1024,
        json_schema_extra={'env': 'MAX_BODY_BYTES'},
        ge=1,
        le=16 * 1024 * 1024,
        description="Maximum serialized message body size in bytes"
    )
    registry_sweep_interval: float = Field(
        300.0,
        json_schema_extra={'env': 'REGISTRY_SWEEP_INTERVAL'},
        gt=0,
        description="Seconds between sweeps of idle session actor handles"
    )
    conflict_retries: int = Field(
        3,
        json_schema_extra={'env': 'CONFLICT_RETRIES'},
        ge=0,
        le=20,
        description="Times an operation is re-run after losing a cross-process write race"
    )

    model_config = ConfigDict(env_prefix='')


class StoreConfig(BaseSettings):
    """Backing store for session records."""

    store_backend: Literal['memory', 'redis'] = Field(
        'memory',
        json_schema_extra={'env': 'STORE_BACKEND'},
        description="Session record store (memory is single-process only)"
    )
    REDIS_URL: Optional[str] = Field(
        None,
        description="Connection URL for the redis backend"
    )
    redis_key_prefix: str = Field(
        'tether:session:',
        json_schema_extra={'env': 'REDIS_KEY_PREFIX'},
        description="Prefix for session keys in Redis"
    )
    redis_max_connections: int = Field(
        50,
        json_schema_extra={'env': 'REDIS_MAX_CONNECTIONS'},
        ge=1,
        le=1000,
        description="Redis connection pool size"
    )
    record_retention_seconds: int = Field(
        86400,
        json_schema_extra={'env': 'RECORD_RETENTION_SECONDS'},
        ge=0,
        description="Physical retention of a record after its last write (0 = keep forever)"
    )

    @property
    def redis_url(self) -> str:
        """Configured Redis URL, or a local default."""
        return self.REDIS_URL or 'redis://localhost:6379/0'

    model_config = ConfigDict(env_prefix='')


class APIConfig(BaseSettings):
    """HTTP surface of the relay."""

    host: str = Field(
        '0.0.0.0',
        json_schema_extra={'env': 'HOST'},
        description="Bind address"
    )
    port: int = Field(
        8787,
        json_schema_extra={'env': 'PORT'},
        ge=1,
        le=65535,
        description="Bind port"
    )
    allowed_origins: str = Field(
        '',
        json_schema_extra={'env': 'ALLOWED_ORIGINS'},
        description="Comma-separated CORS allow-list; empty allows every origin"
    )
    docs_enabled: bool = Field(
        False,
        json_schema_extra={'env': 'DOCS_ENABLED'},
        description="Serve /docs and /openapi.json"
    )

    @property
    def allowed_origin_list(self) -> list[str]:
        """Parse the allow-list into trimmed, non-empty origins."""
        return [origin.strip() for origin in self.allowed_origins.split(',') if origin.strip()]

    model_config = ConfigDict(env_prefix='')


def read_config_file(path: Path) -> dict:
    """Parse a YAML or JSON settings file into a dict of sections."""
    text = path.read_text(encoding='utf-8')
    if path.suffix == '.json':
        return json.loads(text)
    if path.suffix in ('.yml', '.yaml'):
        return yaml.safe_load(text) or {}
    raise ValueError(f"Unsupported config file format: {path}")


class Settings(BaseSettings):
    """All configuration sections plus deployment metadata."""

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    environment: Literal['development', 'testing', 'production'] = Field(
        'development',
        json_schema_extra={'env': 'ENVIRONMENT'},
        description="Deployment environment; production enables extra warnings"
    )
    config_file: Optional[Path] = Field(
        None,
        json_schema_extra={'env': 'TETHER_CONFIG_FILE'},
        description="YAML or JSON file with settings sections"
    )

    @model_validator(mode='before')
    @classmethod
    def merge_config_file(cls, values):
        """Fill in values the environment left unset from the config file."""
        if not isinstance(values, dict):
            return values

        config_file = values.get('config_file') or os.getenv('TETHER_CONFIG_FILE')
        if not config_file:
            return values

        path = Path(config_file)
        if not path.exists():
            return values

        for key, value in read_config_file(path).items():
            if values.get(key) is None:
                values[key] = value
        return values

    @field_validator('environment', mode='before')
    @classmethod
    def normalize_environment(cls, v):
        return v.lower() if isinstance(v, str) else v

    def validate_configuration(self) -> list[str]:
        """Return human-readable warnings about risky combinations."""
        warnings = []

        if self.environment == 'production':
            if not self.api.allowed_origin_list:
                warnings.append("CORS allows all origins in production environment")
            if self.store.store_backend == 'memory':
                warnings.append("In-memory session store in production loses sessions on restart")

        if self.store.store_backend == 'redis' and not self.store.REDIS_URL:
            warnings.append(f"REDIS_URL not set, using {self.store.redis_url}")

        if 0 < self.store.record_retention_seconds < self.relay.session_ttl:
            warnings.append(
                f"Record retention ({self.store.record_retention_seconds}s) is shorter than "
                f"session TTL ({self.relay.session_ttl}s); live sessions may vanish"
            )

        return warnings

    model_config = ConfigDict(
        env_prefix='',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, loaded and checked on first use."""
    global _settings

    if _settings is None:
        _settings = Settings()

        logger = logging.getLogger('tether.config.settings')
        for warning in _settings.validate_configuration():
            logger.warning(f"Configuration warning: {warning}")

    return _settings


def reload_settings() -> Settings:
    """Drop the cached settings and load them again."""
    global _settings
    _settings = None
    return get_settings()
