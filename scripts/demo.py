#!/usr/bin/env python3
"""Demo: GET with query parameters and POST with basic auth against a public JSON API."""

from __future__ import annotations

import logging
import sys

from requestkit import (
    CancellationToken,
    Client,
    RequestKitError,
    TransportSettings,
    read_body,
    with_base_url,
    with_basic_auth,
    with_cancellation,
    with_default_headers,
    with_header,
    with_query_param,
    with_retry,
    with_timeout,
    with_transport,
)

BASE_URL = "https://jsonplaceholder.typicode.com"


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    transport = TransportSettings(
        max_idle_connections=100,
        max_idle_connections_per_host=100,
        idle_timeout=90.0,
    )
    client = Client(
        with_timeout(10.0),
        with_retry(3, 1.0),
        with_transport(transport),
        with_base_url(BASE_URL),
        with_default_headers(
            {
                "User-Agent": "requestkit-demo/1.0",
                "Content-Type": "application/json",
            }
        ),
    )
    token = CancellationToken(timeout=5.0)

    with client:
        try:
            response = client.get(
                "/posts",
                with_cancellation(token),
                with_header("Accept", "application/json"),
                with_query_param("userId", "1"),
            )
        except RequestKitError as exc:
            print(f"GET request failed: {exc}")
            return 1
        print("GET Response:", read_body(response).decode())

        body = b'{"title":"foo","body":"bar","userId":1}'
        try:
            response = client.post(
                "/posts",
                body,
                with_cancellation(token),
                with_header("Content-Type", "application/json"),
                with_basic_auth("user", "password"),
            )
        except RequestKitError as exc:
            print(f"POST request failed: {exc}")
            return 1
        print("POST Response:", read_body(response).decode())

    # Mutual TLS needs real material, e.g.:
    #   Client.with_tls(10.0, 3, "path/to/cert.pem", "path/to/key.pem", "path/to/ca.pem")
    return 0


if __name__ == "__main__":
    sys.exit(main())
