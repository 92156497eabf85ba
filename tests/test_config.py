from __future__ import annotations

import ssl

import httpx
import pytest

from requestkit import (
    AsyncClient,
    Client,
    ClientConfig,
    ConfigurationError,
    TLSMaterial,
    TransportSettings,
    build_config,
    options_from_env,
    with_base_url,
    with_default_headers,
    with_retry,
    with_timeout,
    with_tls_config,
    with_transport,
)


def test_default_configuration() -> None:
    config = build_config()
    assert config.timeout is None
    assert config.retries == 3
    assert config.retry_interval == 0.0
    assert config.base_url is None
    assert config.default_headers == {}
    assert config.tls is None
    assert config.custom_transport is None


def test_later_options_overwrite_earlier_ones() -> None:
    config = build_config(
        with_retry(5, 2.0),
        with_timeout(3.0),
        with_retry(1),
        with_base_url("https://a.test"),
        with_base_url("https://b.test"),
    )
    assert config.retries == 1
    assert config.retry_interval == 0.0
    assert config.timeout == 3.0
    assert config.base_url == "https://b.test"


def test_default_headers_merge_per_key() -> None:
    config = build_config(
        with_default_headers({"User-Agent": "one", "Accept": "application/json"}),
        with_default_headers({"User-Agent": "two"}),
    )
    assert config.default_headers == {"User-Agent": "two", "Accept": "application/json"}


def test_options_do_not_mutate_the_base_config() -> None:
    base = ClientConfig()
    derived = build_config(with_retry(7), base=base)
    assert base.retries == 3
    assert derived.retries == 7


@pytest.mark.parametrize(
    "option",
    [
        with_retry(-1),
        with_retry(2, -0.5),
        with_timeout(0),
        with_base_url("ftp://files.test"),
        with_base_url("not a url"),
        with_default_headers({"Bad Header": "x"}),
        with_transport("pooled"),
    ],
)
def test_invalid_options_fail_construction(option) -> None:
    with pytest.raises(ConfigurationError):
        Client(option)


def test_missing_tls_material_fails_construction(tmp_path) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        Client(
            with_timeout(5.0),
            with_tls_config(tmp_path / "cert.pem", tmp_path / "key.pem", tmp_path / "ca.pem"),
        )
    assert isinstance(excinfo.value.cause, OSError)


def test_unparseable_certificate_fails_construction(tmp_path) -> None:
    cert = tmp_path / "cert.pem"
    key = tmp_path / "key.pem"
    cert.write_text("not a certificate")
    key.write_text("not a key")
    with pytest.raises(ConfigurationError, match="failed to load TLS material"):
        TLSMaterial.load(cert, key)


def test_with_tls_constructor_surfaces_errors(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        Client.with_tls(5.0, 2, tmp_path / "cert.pem", tmp_path / "key.pem", tmp_path / "ca.pem")


def test_tls_floor_rejects_legacy_versions(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="below 1.2"):
        build_config(
            with_tls_config(tmp_path / "cert.pem", tmp_path / "key.pem", min_version=ssl.TLSVersion.TLSv1_1)
        )


def test_transport_settings_map_to_pool_limits() -> None:
    settings = TransportSettings(max_idle_connections=10, max_idle_connections_per_host=5, idle_timeout=30.0)
    limits = settings.limits()
    assert limits.max_keepalive_connections == 10
    assert limits.keepalive_expiry == 30.0
    assert limits.max_connections is None


def test_pool_settings_replace_custom_transport() -> None:
    mock = httpx.MockTransport(lambda request: httpx.Response(200))
    config = build_config(with_transport(mock))
    assert config.custom_transport is mock

    settings = TransportSettings(max_idle_connections=1)
    config = build_config(with_transport(mock), with_transport(settings))
    assert config.custom_transport is None
    assert config.transport == settings


def test_clients_reject_transport_of_the_wrong_flavor() -> None:
    with pytest.raises(ConfigurationError):
        Client(with_transport(httpx.AsyncHTTPTransport()))
    with pytest.raises(ConfigurationError):
        AsyncClient(with_transport(httpx.HTTPTransport()))


def test_options_from_env() -> None:
    environ = {
        "REQUESTKIT_TIMEOUT": "2.5",
        "REQUESTKIT_RETRIES": "4",
        "REQUESTKIT_BASE_URL": "https://env.test",
    }
    config = build_config(*options_from_env(environ=environ))
    assert config.timeout == 2.5
    assert config.retries == 4
    assert config.retry_interval == 0.0
    assert config.base_url == "https://env.test"


def test_options_from_env_custom_prefix_and_interval() -> None:
    config = build_config(*options_from_env("SVC_", environ={"SVC_RETRY_INTERVAL": "0.2"}))
    assert config.retries == 3
    assert config.retry_interval == 0.2


def test_options_from_env_rejects_malformed_numbers() -> None:
    with pytest.raises(ConfigurationError, match="REQUESTKIT_RETRIES"):
        options_from_env(environ={"REQUESTKIT_RETRIES": "many"})


def test_options_from_env_empty() -> None:
    assert options_from_env(environ={}) == []
