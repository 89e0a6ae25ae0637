"""Client-side TLS settings and the SSL context built from them."""

from __future__ import annotations

import json
import ssl
from dataclasses import dataclass


class TLSConfigError(ValueError):
    """The TLS settings cannot be turned into a usable SSL context."""


@dataclass
class TLSConfig:
    """Files and options for TLS connections to a storage endpoint.

    ``server_name`` is not stored in the SSL context; it is the host name
    to pass as ``server_hostname`` when a connection is wrapped.
    """

    ca_file: str = ""
    cert_file: str = ""
    key_file: str = ""
    server_name: str = ""
    insecure_skip_verify: bool = False


def _read_ca_file(path: str) -> str:
    try:
        with open(path, "rb") as handle:
            return handle.read().decode("latin-1")
    except OSError as exc:
        raise TLSConfigError(f"unable to load specified CA cert {path}: {exc}") from exc


def new_tls_config(cfg: TLSConfig) -> ssl.SSLContext:
    """Build a client SSL context from ``cfg``.

    A CA file replaces the system trust store; a client certificate needs
    both its certificate and its key file.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    if cfg.insecure_skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if cfg.ca_file:
        pem = _read_ca_file(cfg.ca_file)
        try:
            context.load_verify_locations(cadata=pem)
        except (ssl.SSLError, ValueError, TypeError) as exc:
            raise TLSConfigError(f"unable to use specified CA cert {cfg.ca_file}") from exc
    else:
        context.load_default_certs()

    if cfg.cert_file and not cfg.key_file:
        raise TLSConfigError(
            f"client cert file {json.dumps(cfg.cert_file)} specified without client key file"
        )
    if cfg.key_file and not cfg.cert_file:
        raise TLSConfigError(
            f"client key file {json.dumps(cfg.key_file)} specified without client cert file"
        )
    if cfg.cert_file and cfg.key_file:
        try:
            context.load_cert_chain(cfg.cert_file, cfg.key_file)
        except (OSError, ssl.SSLError) as exc:
            raise TLSConfigError(
                f"unable to use specified client cert ({cfg.cert_file}) & key ({cfg.key_file}): {exc}"
            ) from exc

    return context