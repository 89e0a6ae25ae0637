"""Configuration of Azure blob storage buckets."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import yaml

from objstore.transport import HTTPConfig, _mapping, _to_bool, _to_duration, _to_int, _to_str

DEFAULT_ENDPOINT = "blob.core.windows.net"

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


class ConfigError(ValueError):
    """The Azure configuration cannot be parsed or is not valid."""


@dataclass
class ReaderConfig:
    """Retry settings for reading blobs."""

    max_retry_requests: int = 0


@dataclass
class PipelineConfig:
    """Retry settings for requests; durations are in seconds."""

    max_tries: int = 0
    try_timeout: float = 0.0
    retry_delay: float = 0.0
    max_retry_delay: float = 0.0


@dataclass
class Config:
    """Account, container and connection settings of an Azure bucket."""

    storage_account_name: str = ""
    storage_account_key: str = ""
    storage_connection_string: str = ""
    storage_create_container: bool = True
    container_name: str = ""
    endpoint: str = DEFAULT_ENDPOINT
    user_assigned_id: str = ""
    max_retries: int = 0
    reader_config: ReaderConfig = field(default_factory=ReaderConfig)
    pipeline_config: PipelineConfig = field(default_factory=PipelineConfig)
    http_config: HTTPConfig = field(default_factory=HTTPConfig)
    # Deprecated: set automatically by the storage service.
    msi_resource: str = ""

    def validate(self) -> None:
        """Raise ConfigError listing every problem with the settings."""
        problems = []
        if self.user_assigned_id and self.storage_account_key:
            problems.append("user_assigned_id cannot be set when using storage_account_key authentication")
        if self.user_assigned_id and self.storage_connection_string:
            problems.append("user_assigned_id cannot be set when using storage_connection_string authentication")
        if self.storage_account_key and self.storage_connection_string:
            problems.append("storage_account_key and storage_connection_string cannot both be set")
        if not self.storage_account_name:
            problems.append("storage_account_name is required but not configured")
        if not self.container_name:
            problems.append("no container specified")
        if self.pipeline_config.max_tries < 0:
            problems.append("The value of max_tries must be greater than or equal to 0 in the config file")
        if self.reader_config.max_retry_requests < 0:
            problems.append(
                "The value of max_retry_requests must be greater than or equal to 0 in the config file"
            )
        if problems:
            raise ConfigError(", ".join(problems))

    def container_url(self) -> str:
        """Return the address of the container for account-based access."""
        return f"https://{self.storage_account_name}.{self.endpoint}/{self.container_name}"


def _to_int32(key: str, value: Any) -> int:
    number = _to_int(key, value)
    if not _INT32_MIN <= number <= _INT32_MAX:
        raise ValueError(f"{key}: {number} does not fit in 32 bits")
    return number


_READER_FIELDS: dict[str, tuple[str, Callable[[str, Any], Any]]] = {
    "max_retry_requests": ("max_retry_requests", _to_int),
}

_PIPELINE_FIELDS: dict[str, tuple[str, Callable[[str, Any], Any]]] = {
    "max_tries": ("max_tries", _to_int32),
    "try_timeout": ("try_timeout", _to_duration),
    "retry_delay": ("retry_delay", _to_duration),
    "max_retry_delay": ("max_retry_delay", _to_duration),
}


def _convert(data: Any, type_name: str, fields: dict[str, tuple[str, Callable[[str, Any], Any]]]) -> dict[str, Any]:
    raw = _mapping(data, type_name, fields)
    values = {}
    for key, value in raw.items():
        attr, convert = fields[key]
        values[attr] = convert(key, value)
    return values


def _reader_config(key: str, value: Any) -> ReaderConfig:
    return ReaderConfig(**_convert(value, "ReaderConfig", _READER_FIELDS))


def _pipeline_config(key: str, value: Any) -> PipelineConfig:
    return PipelineConfig(**_convert(value, "PipelineConfig", _PIPELINE_FIELDS))


def _http_config(key: str, value: Any) -> HTTPConfig:
    return HTTPConfig.from_dict(value)


_CONFIG_FIELDS: dict[str, tuple[str, Callable[[str, Any], Any]]] = {
    "storage_account": ("storage_account_name", _to_str),
    "storage_account_key": ("storage_account_key", _to_str),
    "storage_connection_string": ("storage_connection_string", _to_str),
    "storage_create_container": ("storage_create_container", _to_bool),
    "container": ("container_name", _to_str),
    "endpoint": ("endpoint", _to_str),
    "user_assigned_id": ("user_assigned_id", _to_str),
    "max_retries": ("max_retries", _to_int),
    "reader_config": ("reader_config", _reader_config),
    "pipeline_config": ("pipeline_config", _pipeline_config),
    "http_config": ("http_config", _http_config),
    "msi_resource": ("msi_resource", _to_str),
}


def parse_config(data: bytes | str) -> Config:
    """Parse YAML settings on top of the defaults, rejecting unknown keys.

    A positive ``max_retries`` fills in retry counts that are not set explicitly.
    """
    try:
        raw = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise ConfigError(f"parsing azure config: {exc}") from exc
    try:
        values = _convert(raw, "Config", _CONFIG_FIELDS)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    config = Config(**values)

    if config.max_retries > 0:
        if config.pipeline_config.max_tries == 0:
            config.pipeline_config.max_tries = config.max_retries
        if config.reader_config.max_retry_requests == 0:
            config.reader_config.max_retry_requests = config.max_retries
    return config