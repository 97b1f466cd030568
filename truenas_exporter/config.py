# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

from typing import Any, Dict, Optional
import logging
import os

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from truenas_exporter.errors import ConfigError

logger = logging.getLogger(__name__)

TLS_VALIDATION_MODES = ('strict', 'normal', 'none')

# Delay between the DDP handshake and the auth call. Heuristic, not a guarantee.
DEFAULT_AUTH_DELAY_SECONDS = 2.0


class TrueNasConfig(BaseModel):
    host: str
    api_key: SecretStr
    use_tls: bool = False
    tls_validation: str = "strict"
    tls_ca: Optional[str] = None
    auth_delay_seconds: float = Field(default=DEFAULT_AUTH_DELAY_SECONDS, ge=0)

    @field_validator('host')
    @classmethod
    def _host_not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("host must not be empty")
        return value

    @field_validator('api_key')
    @classmethod
    def _api_key_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("api_key must not be empty")
        return value

    @field_validator('tls_validation')
    @classmethod
    def _known_tls_mode(cls, value: str) -> str:
        value = value.lower()
        if value not in TLS_VALIDATION_MODES:
            raise ValueError(f"tls_validation must be one of {', '.join(TLS_VALIDATION_MODES)}")
        return value


class ServerConfig(BaseModel):
    addr: str = "0.0.0.0"
    port: int = Field(default=9100, ge=1, le=65535)


class MetricsConfig(BaseModel):
    scrape_interval_seconds: int = Field(default=60, ge=1)
    collect_pool_metrics: bool = True
    collect_system_metrics: bool = True
    threads: int = Field(default=1, ge=1)


class ExporterConfig(BaseModel):
    truenas: TrueNasConfig
    server: ServerConfig = Field(default_factory=ServerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


class EnvConfig(BaseSettings):
    """
    Raw environment layer, e.g. TRUENAS_EXPORTER_TRUENAS__HOST=nas.local:443.
    Values stay untyped here; ExporterConfig does the validation after merging.
    """
    truenas: Dict[str, Any] = Field(default_factory=dict)
    server: Dict[str, Any] = Field(default_factory=dict)
    metrics: Dict[str, Any] = Field(default_factory=dict)

    model_config = SettingsConfigDict(
        env_prefix='TRUENAS_EXPORTER_',
        env_nested_delimiter='__',
        case_sensitive=False,
        extra='ignore',
    )


def read_config_file(config_file: Optional[str]) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        config_file: Path to the YAML file, or None

    Returns:
        Parsed mapping; empty when no file is given or the file does not exist

    Raises:
        ConfigError: If the file cannot be parsed or is not a mapping
    """
    if not config_file:
        return {}
    if not os.path.exists(config_file):
        logger.warning(f"Config file not found: {config_file}, using environment only")
        return {}

    try:
        with open(config_file, 'r') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file {config_file}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_file} must contain a mapping at the top level")

    logger.debug(f"Loaded configuration from file: {config_file}")
    return data


def _deep_merge(base: Dict[str, Any], *layers: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for layer in layers:
        for key, value in layer.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
    return merged


def load_config(config_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> ExporterConfig:
    """
    Build the exporter configuration.

    Precedence, lowest to highest: YAML file, TRUENAS_EXPORTER_* environment
    variables, explicit overrides (CLI flags).

    Args:
        config_file: Optional YAML file path
        overrides: Nested mapping of values that win over every other source

    Returns:
        Validated ExporterConfig

    Raises:
        ConfigError: If the merged configuration does not validate
    """
    file_data = read_config_file(config_file)
    env_data = EnvConfig().model_dump(exclude_unset=True)
    data = _deep_merge(file_data, env_data, overrides or {})

    try:
        config = ExporterConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.debug(f"Configuration resolved for host {config.truenas.host}")
    return config
