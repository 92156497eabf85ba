from __future__ import annotations

import pytest

from requestkit.security import basic_auth_header, redact_headers, validate_base_url, validate_header


def test_redact_headers_masks_credentials() -> None:
    headers = {"Authorization": "Basic abc", "Cookie": "sid=1", "Accept": "text/plain"}
    assert redact_headers(headers) == {
        "Authorization": "***",
        "Cookie": "***",
        "Accept": "text/plain",
    }


def test_redact_headers_with_custom_table() -> None:
    headers = {"X-Session": "abc", "Authorization": "Basic abc"}
    assert redact_headers(headers, frozenset({"x-session"}), mask="-") == {
        "X-Session": "-",
        "Authorization": "Basic abc",
    }


def test_basic_auth_header() -> None:
    assert basic_auth_header("user", "password") == "Basic dXNlcjpwYXNzd29yZA=="
    assert basic_auth_header("", "") == "Basic Og=="


@pytest.mark.parametrize("url", ["https://api.test", "http://localhost:8080/v1"])
def test_validate_base_url_accepts_http_urls(url: str) -> None:
    validate_base_url(url)


@pytest.mark.parametrize("url", ["api.test", "ftp://api.test", "https://api.test/\x00"])
def test_validate_base_url_rejects(url: str) -> None:
    with pytest.raises(ValueError):
        validate_base_url(url)


@pytest.mark.parametrize(
    ("name", "value"),
    [("X Trace", "1"), ("", "1"), ("X-Trace", "a\nb"), ("X-Trace", "a\x00b")],
)
def test_validate_header_rejects(name: str, value: str) -> None:
    with pytest.raises(ValueError):
        validate_header(name, value)


def test_validate_header_requires_string_value() -> None:
    with pytest.raises(TypeError):
        validate_header("X-Count", 3)
