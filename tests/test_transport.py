import ssl

import pytest

from objstore.tlsconfig import TLSConfig, TLSConfigError
from objstore.transport import HTTPConfig, default_transport


def test_default_transport_carries_default_settings():
    transport = default_transport(HTTPConfig())
    assert transport.idle_conn_timeout == 90.0
    assert transport.response_header_timeout == 120.0
    assert transport.tls_handshake_timeout == 10.0
    assert transport.expect_continue_timeout == 1.0
    assert transport.max_idle_conns == 100
    assert transport.max_idle_conns_per_host == 100
    assert transport.max_conns_per_host == 0


def test_dialer_timeouts():
    transport = default_transport(HTTPConfig())
    assert transport.dial_timeout == 30.0
    assert transport.keep_alive == 30.0


def test_top_level_insecure_overrides_tls_section():
    config = HTTPConfig(insecure_skip_verify=True, tls_config=TLSConfig(insecure_skip_verify=False))
    transport = default_transport(config)
    assert transport.insecure_skip_verify is True
    assert transport.tls_context.verify_mode == ssl.CERT_NONE


def test_top_level_secure_overrides_tls_section():
    config = HTTPConfig(insecure_skip_verify=False, tls_config=TLSConfig(insecure_skip_verify=True))
    transport = default_transport(config)
    assert transport.insecure_skip_verify is False
    assert transport.tls_context.check_hostname is True


def test_server_name_is_carried():
    transport = default_transport(HTTPConfig(tls_config=TLSConfig(server_name="server")))
    assert transport.server_name == "server"


def test_proxies_from_environment(monkeypatch):
    monkeypatch.setenv("HTTPS_PROXY", "http://proxy.example.com:3128")
    transport = default_transport(HTTPConfig())
    assert transport.proxies.get("https") == "http://proxy.example.com:3128"


def test_bad_ca_file_fails(tmp_path):
    config = HTTPConfig(tls_config=TLSConfig(ca_file=str(tmp_path / "none.crt")))
    with pytest.raises(TLSConfigError):
        default_transport(config)


def test_from_dict_parses_durations_and_keeps_defaults():
    config = HTTPConfig.from_dict({"idle_conn_timeout": "1m30s", "max_conns_per_host": 7})
    assert config.idle_conn_timeout == 90.0
    assert config.max_conns_per_host == 7
    assert config.response_header_timeout == HTTPConfig().response_header_timeout


def test_from_dict_nested_tls():
    config = HTTPConfig.from_dict(
        {"tls_config": {"ca_file": "/certs/ca.crt", "server_name": "server", "insecure_skip_verify": True}}
    )
    assert config.tls_config == TLSConfig(ca_file="/certs/ca.crt", server_name="server", insecure_skip_verify=True)


def test_from_dict_empty_gives_defaults():
    assert HTTPConfig.from_dict(None) == HTTPConfig()


def test_from_dict_rejects_unknown_key():
    with pytest.raises(ValueError, match="field bogus not found"):
        HTTPConfig.from_dict({"bogus": 1})


def test_from_dict_rejects_duration_without_unit():
    with pytest.raises(ValueError, match="idle_conn_timeout"):
        HTTPConfig.from_dict({"idle_conn_timeout": 10})


def test_from_dict_rejects_wrong_types():
    with pytest.raises(ValueError):
        HTTPConfig.from_dict({"max_idle_conns": True})
    with pytest.raises(ValueError):
        HTTPConfig.from_dict({"disable_compression": "yes please"})
    with pytest.raises(ValueError):
        HTTPConfig.from_dict(["not", "a", "mapping"])