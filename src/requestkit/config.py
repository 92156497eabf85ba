"""Client configuration and the options that build it."""

from __future__ import annotations

import os
import ssl
from pathlib import Path
from typing import Any, Callable, Mapping

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError
from .security import build_ssl_context, validate_base_url, validate_header


DEFAULT_RETRIES = 3
DEFAULT_MIN_TLS_VERSION = ssl.TLSVersion.TLSv1_2


def _check_tls_floor(version: ssl.TLSVersion) -> None:
    if version is not ssl.TLSVersion.MAXIMUM_SUPPORTED and version < DEFAULT_MIN_TLS_VERSION:
        raise ValueError("TLS versions below 1.2 are not allowed")


class TransportSettings(BaseModel):
    """Connection reuse policy handed to the httpx connection pool."""

    model_config = ConfigDict(frozen=True)

    max_idle_connections: int = Field(default=100, ge=0)
    # httpx pools keep-alive connections globally; the per-host cap is kept for reference only.
    max_idle_connections_per_host: int = Field(default=100, ge=0)
    idle_timeout: float | None = Field(default=90.0, gt=0)

    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=None,
            max_keepalive_connections=self.max_idle_connections,
            keepalive_expiry=self.idle_timeout,
        )


class TLSMaterial(BaseModel):
    """Client certificate, private key and trusted roots, loaded eagerly."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    cert_file: Path
    key_file: Path
    ca_file: Path | None = None
    min_version: ssl.TLSVersion = DEFAULT_MIN_TLS_VERSION
    context: ssl.SSLContext = Field(repr=False, exclude=True)

    @field_validator("min_version")
    @classmethod
    def _modern_floor(cls, value: ssl.TLSVersion) -> ssl.TLSVersion:
        _check_tls_floor(value)
        return value

    @classmethod
    def load(
        cls,
        cert_file: str | Path,
        key_file: str | Path,
        ca_file: str | Path | None = None,
        *,
        min_version: ssl.TLSVersion = DEFAULT_MIN_TLS_VERSION,
    ) -> "TLSMaterial":
        try:
            _check_tls_floor(min_version)
        except ValueError as exc:
            raise ConfigurationError(str(exc), cause=exc) from exc
        try:
            context = build_ssl_context(cert_file, key_file, ca_file, min_version=min_version)
        except OSError as exc:
            raise ConfigurationError(f"failed to load TLS material: {exc}", cause=exc) from exc
        return cls(
            cert_file=Path(cert_file),
            key_file=Path(key_file),
            ca_file=Path(ca_file) if ca_file is not None else None,
            min_version=min_version,
            context=context,
        )


class ClientConfig(BaseModel):
    """Immutable client configuration; every option produces a new validated copy."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    timeout: float | None = Field(default=None, gt=0)
    retries: int = Field(default=DEFAULT_RETRIES, ge=0)
    retry_interval: float = Field(default=0.0, ge=0)
    base_url: str | None = None
    default_headers: dict[str, str] = Field(default_factory=dict)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    tls: TLSMaterial | None = None
    custom_transport: httpx.BaseTransport | httpx.AsyncBaseTransport | None = None

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str | None) -> str | None:
        if value:
            validate_base_url(value)
        return value or None

    @field_validator("default_headers")
    @classmethod
    def _check_headers(cls, value: dict[str, str]) -> dict[str, str]:
        for name, header_value in value.items():
            validate_header(name, header_value)
        return value

    def evolve(self, **changes: Any) -> "ClientConfig":
        """Return a re-validated copy with `changes` applied."""
        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(changes)
        try:
            return type(self)(**values)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid client configuration: {exc}", cause=exc) from exc


ClientOption = Callable[[ClientConfig], ClientConfig]


def with_timeout(timeout: float | None) -> ClientOption:
    """Bound each attempt's transport call; None disables the timeout."""

    def apply(config: ClientConfig) -> ClientConfig:
        return config.evolve(timeout=timeout)

    return apply


def with_retry(retries: int, interval: float = 0.0) -> ClientOption:
    """Set the retry count and the fixed interval (0 selects linear backoff)."""

    def apply(config: ClientConfig) -> ClientConfig:
        return config.evolve(retries=retries, retry_interval=interval)

    return apply


def with_transport(transport: TransportSettings | httpx.BaseTransport | httpx.AsyncBaseTransport) -> ClientOption:
    """Configure the connection pool, or replace the transport entirely.

    A transport instance supersedes pool settings and TLS material; pool
    settings drop a previously supplied transport instance.
    """

    def apply(config: ClientConfig) -> ClientConfig:
        if isinstance(transport, TransportSettings):
            return config.evolve(transport=transport, custom_transport=None)
        if isinstance(transport, (httpx.BaseTransport, httpx.AsyncBaseTransport)):
            return config.evolve(custom_transport=transport, tls=None)
        raise ConfigurationError(f"unsupported transport: {type(transport).__name__}")

    return apply


def with_base_url(base_url: str) -> ClientOption:
    def apply(config: ClientConfig) -> ClientConfig:
        return config.evolve(base_url=base_url)

    return apply


def with_default_headers(headers: Mapping[str, str]) -> ClientOption:
    """Merge `headers` into the defaults; later values win per key."""

    def apply(config: ClientConfig) -> ClientConfig:
        merged = dict(config.default_headers)
        merged.update(headers)
        return config.evolve(default_headers=merged)

    return apply


def with_tls_config(
    cert_file: str | Path,
    key_file: str | Path,
    ca_file: str | Path | None = None,
    *,
    min_version: ssl.TLSVersion = DEFAULT_MIN_TLS_VERSION,
) -> ClientOption:
    """Authenticate with a client certificate; material is read when the option is applied."""

    def apply(config: ClientConfig) -> ClientConfig:
        material = TLSMaterial.load(cert_file, key_file, ca_file, min_version=min_version)
        return config.evolve(tls=material, custom_transport=None)

    return apply


def build_config(*options: ClientOption, base: ClientConfig | None = None) -> ClientConfig:
    """Apply `options` in order to `base` (or the defaults).

    Any failing option aborts the build with `ConfigurationError`.
    """
    config = base or ClientConfig()
    for option in options:
        try:
            config = option(config)
        except ConfigurationError:
            raise
        except (ValueError, TypeError, OSError) as exc:
            raise ConfigurationError(f"client option failed: {exc}", cause=exc) from exc
    return config


def _env_number(environ: Mapping[str, str], name: str, kind: type) -> Any:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return kind(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", cause=exc) from exc


def options_from_env(prefix: str = "REQUESTKIT_", environ: Mapping[str, str] | None = None) -> list[ClientOption]:
    """Translate `<prefix>TIMEOUT`, `RETRIES`, `RETRY_INTERVAL` and `BASE_URL` into options."""
    environ = os.environ if environ is None else environ
    options: list[ClientOption] = []

    timeout = _env_number(environ, f"{prefix}TIMEOUT", float)
    if timeout is not None:
        options.append(with_timeout(timeout))

    retries = _env_number(environ, f"{prefix}RETRIES", int)
    interval = _env_number(environ, f"{prefix}RETRY_INTERVAL", float)
    if retries is not None or interval is not None:
        options.append(
            with_retry(
                DEFAULT_RETRIES if retries is None else retries,
                0.0 if interval is None else interval,
            )
        )

    base_url = environ.get(f"{prefix}BASE_URL")
    if base_url:
        options.append(with_base_url(base_url))
    return options
