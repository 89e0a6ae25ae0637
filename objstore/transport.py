"""HTTP transport settings for storage clients and the transport built from them."""

from __future__ import annotations

import ssl
import urllib.request
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from objstore.durations import parse_duration
from objstore.tlsconfig import TLSConfig, new_tls_config


def _mapping(data: Any, type_name: str, allowed: Mapping[str, Any]) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"cannot unmarshal {type(data).__name__} into {type_name}")
    for key in data:
        if key not in allowed:
            raise ValueError(f"field {key} not found in type {type_name}")
    return data


def _to_duration(key: str, value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"{key}: cannot unmarshal {value!r} into a duration")
    try:
        return parse_duration(str(value))
    except ValueError as exc:
        raise ValueError(f"{key}: {exc}") from exc


def _to_int(key: str, value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: cannot unmarshal {value!r} into an integer")
    return value


def _to_bool(key: str, value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"{key}: cannot unmarshal {value!r} into a boolean")
    return value


def _to_str(key: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ValueError(f"{key}: cannot unmarshal {value!r} into a string")


_TLS_FIELDS: dict[str, tuple[str, Callable[[str, Any], Any]]] = {
    "ca_file": ("ca_file", _to_str),
    "cert_file": ("cert_file", _to_str),
    "key_file": ("key_file", _to_str),
    "server_name": ("server_name", _to_str),
    "insecure_skip_verify": ("insecure_skip_verify", _to_bool),
}


def _tls_config_from_dict(key: str, value: Any) -> TLSConfig:
    raw = _mapping(value, "TLSConfig", _TLS_FIELDS)
    values = {}
    for name, item in raw.items():
        attr, convert = _TLS_FIELDS[name]
        values[attr] = convert(name, item)
    return TLSConfig(**values)


_HTTP_FIELDS: dict[str, tuple[str, Callable[[str, Any], Any]]] = {
    "idle_conn_timeout": ("idle_conn_timeout", _to_duration),
    "response_header_timeout": ("response_header_timeout", _to_duration),
    "insecure_skip_verify": ("insecure_skip_verify", _to_bool),
    "tls_handshake_timeout": ("tls_handshake_timeout", _to_duration),
    "expect_continue_timeout": ("expect_continue_timeout", _to_duration),
    "max_idle_conns": ("max_idle_conns", _to_int),
    "max_idle_conns_per_host": ("max_idle_conns_per_host", _to_int),
    "max_conns_per_host": ("max_conns_per_host", _to_int),
    "tls_config": ("tls_config", _tls_config_from_dict),
    "disable_compression": ("disable_compression", _to_bool),
}


@dataclass
class HTTPConfig:
    """Connection settings for storage clients; timeouts are in seconds."""

    idle_conn_timeout: float = 90.0
    response_header_timeout: float = 120.0
    insecure_skip_verify: bool = False
    tls_handshake_timeout: float = 10.0
    expect_continue_timeout: float = 1.0
    max_idle_conns: int = 100
    max_idle_conns_per_host: int = 100
    max_conns_per_host: int = 0
    # A caller-supplied round tripper; never read from configuration files.
    transport: Any = field(default=None, repr=False)
    tls_config: TLSConfig = field(default_factory=TLSConfig)
    disable_compression: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> HTTPConfig:
        """Build settings from a parsed YAML mapping, keeping defaults for missing keys.

        Unknown keys and values of the wrong type raise ValueError.
        """
        raw = _mapping(data, "HTTPConfig", _HTTP_FIELDS)
        values = {}
        for key, value in raw.items():
            attr, convert = _HTTP_FIELDS[key]
            values[attr] = convert(key, value)
        return cls(**values)


DEFAULT_HTTP_CONFIG = HTTPConfig()


@dataclass(frozen=True)
class Transport:
    """Settings an HTTP client applies to its connections; timeouts are in seconds."""

    tls_context: ssl.SSLContext
    server_name: str
    proxies: dict[str, str]
    max_idle_conns: int
    max_idle_conns_per_host: int
    max_conns_per_host: int
    idle_conn_timeout: float
    tls_handshake_timeout: float
    expect_continue_timeout: float
    response_header_timeout: float
    dial_timeout: float = 30.0
    keep_alive: float = 30.0

    @property
    def insecure_skip_verify(self) -> bool:
        """Whether server certificates go unchecked."""
        return self.tls_context.verify_mode == ssl.CERT_NONE


def default_transport(config: HTTPConfig) -> Transport:
    """Build a transport from ``config``.

    The top-level ``insecure_skip_verify`` decides verification, whatever the
    TLS section says.
    """
    context = new_tls_config(config.tls_config)
    if config.insecure_skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    else:
        context.verify_mode = ssl.CERT_REQUIRED
        context.check_hostname = True

    return Transport(
        tls_context=context,
        server_name=config.tls_config.server_name,
        proxies=dict(urllib.request.getproxies()),
        max_idle_conns=config.max_idle_conns,
        max_idle_conns_per_host=config.max_idle_conns_per_host,
        max_conns_per_host=config.max_conns_per_host,
        idle_conn_timeout=config.idle_conn_timeout,
        tls_handshake_timeout=config.tls_handshake_timeout,
        expect_continue_timeout=config.expect_continue_timeout,
        response_header_timeout=config.response_header_timeout,
    )