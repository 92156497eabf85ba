"""Security helpers: URL and header validation, TLS contexts, credential encoding."""

from __future__ import annotations

import base64
import re
import ssl
from pathlib import Path
from typing import Mapping
from urllib.parse import urlparse


SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie", "x-api-key"})

_HEADER_NAME = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


def redact_headers(
    headers: Mapping[str, str],
    sensitive: frozenset[str] = SENSITIVE_HEADERS,
    mask: str = "***",
) -> dict[str, str]:
    """Copy `headers` for log output, masking values whose lowercased name is in `sensitive`."""
    return {key: mask if key.lower() in sensitive else value for key, value in headers.items()}


def validate_base_url(url: str) -> None:
    """Validate a base URL: http(s) scheme, a host, no control characters."""
    if "\x00" in url:
        raise ValueError("Invalid base_url")
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError("base_url must include scheme and host")
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"Unsupported base_url scheme: {parsed.scheme}")


def validate_header(name: str, value: str) -> None:
    """Reject header names that are not RFC 7230 tokens and values carrying CR, LF or NUL."""
    if not isinstance(name, str) or not _HEADER_NAME.match(name):
        raise ValueError(f"Invalid header name: {name!r}")
    if not isinstance(value, str):
        raise TypeError(f"Header value for {name} must be a string")
    if any(ch in value for ch in "\r\n\x00"):
        raise ValueError(f"Invalid characters in value of header {name}")


def basic_auth_header(username: str, password: str) -> str:
    """Encode credentials with the Basic scheme (RFC 7617)."""
    token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


def build_ssl_context(
    cert_file: str | Path,
    key_file: str | Path,
    ca_file: str | Path | None = None,
    *,
    min_version: ssl.TLSVersion = ssl.TLSVersion.TLSv1_2,
) -> ssl.SSLContext:
    """Load a client certificate, its key and an optional root bundle into a context.

    Without `ca_file` the system trust store is used. Raises `OSError` (and its
    subclass `ssl.SSLError`) when material cannot be read or parsed.
    """
    context = ssl.create_default_context(cafile=str(ca_file) if ca_file is not None else None)
    context.minimum_version = min_version
    context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
    return context
