"""Per-request options applied to an outgoing request before it is sent."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import httpx

from .cancellation import CancellationToken
from .security import basic_auth_header, validate_header


@dataclass
class PreparedRequest:
    """Mutable state of one logical request; discarded once the call returns."""

    method: str
    url: httpx.URL
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: bytes | None = None
    cancellation: CancellationToken | None = None


RequestOption = Callable[[PreparedRequest], None]


def with_header(key: str, value: str) -> RequestOption:
    def apply(request: PreparedRequest) -> None:
        validate_header(key, value)
        request.headers[key] = value

    return apply


def with_query_param(key: str, value: str) -> RequestOption:
    """Append a query parameter; repeated keys accumulate values."""

    def apply(request: PreparedRequest) -> None:
        request.url = request.url.copy_add_param(key, value)

    return apply


def with_cancellation(token: CancellationToken) -> RequestOption:
    """Attach `token`, replacing any token set earlier."""

    def apply(request: PreparedRequest) -> None:
        if not isinstance(token, CancellationToken):
            raise TypeError(f"expected CancellationToken, got {type(token).__name__}")
        request.cancellation = token

    return apply


def with_basic_auth(username: str, password: str) -> RequestOption:
    def apply(request: PreparedRequest) -> None:
        request.headers["Authorization"] = basic_auth_header(username, password)

    return apply
