"""Synchronous and asynchronous HTTP clients with bounded retries."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from .cancellation import CANCELLED, DEADLINE_EXCEEDED, CancellationToken
from .config import ClientConfig, ClientOption, build_config, with_retry, with_timeout, with_tls_config
from .exceptions import (
    CancellationError,
    ConfigurationError,
    RequestOptionError,
    TransportError,
)
from .request_options import PreparedRequest, RequestOption
from .security import redact_headers


_logger = logging.getLogger(__name__)


def read_body(response: httpx.Response) -> bytes:
    """Read the whole body and release the response."""
    try:
        return response.read()
    finally:
        response.close()


async def aread_body(response: httpx.Response) -> bytes:
    try:
        return await response.aread()
    finally:
        await response.aclose()


def _cancelled(token: CancellationToken) -> CancellationError:
    # A timed wait can wake a hair before the deadline is observable.
    reason = token.reason or (DEADLINE_EXCEEDED if token.deadline is not None else CANCELLED)
    return CancellationError(f"request {reason}", reason=reason)


class _Attempt:
    """One transport call on its own daemon thread, which the caller may walk away from."""

    def __init__(self, send: Callable[[httpx.Request], httpx.Response], request: httpx.Request) -> None:
        self.settled = threading.Event()
        self._lock = threading.Lock()
        self._abandoned = False
        self._response: httpx.Response | None = None
        self._error: Exception | None = None
        self._thread = threading.Thread(target=self._run, args=(send, request), name="requestkit-attempt", daemon=True)
        self._thread.start()

    def _run(self, send: Callable[[httpx.Request], httpx.Response], request: httpx.Request) -> None:
        try:
            response = send(request)
        except Exception as exc:
            with self._lock:
                self._error = exc
        else:
            with self._lock:
                if self._abandoned:
                    response.close()
                else:
                    self._response = response
        finally:
            self.settled.set()

    def outcome(self) -> httpx.Response | None:
        """Return the response or raise the call's error; None marks the call abandoned."""
        with self._lock:
            if self._error is not None:
                raise self._error
            if self._response is None:
                self._abandoned = True
            return self._response


class _BaseClient:
    retry_backoff_unit = 1.0

    def __init__(
        self,
        *options: ClientOption,
        config: ClientConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = build_config(*options, base=config)
        self._logger = logger or _logger

    def _url(self, path: str) -> str:
        if self.config.base_url:
            return self.config.base_url + path
        return path

    def _transport_kwargs(self) -> dict[str, Any]:
        verify = self.config.tls.context if self.config.tls is not None else True
        return {"verify": verify, "limits": self.config.transport.limits()}

    def _prepare(
        self,
        method: str,
        path: str,
        body: bytes | None,
        options: tuple[RequestOption, ...],
        cancellation: CancellationToken | None,
    ) -> PreparedRequest:
        try:
            url = httpx.URL(self._url(path))
        except httpx.InvalidURL as exc:
            raise RequestOptionError(f"invalid request URL: {exc}", cause=exc) from exc
        request = PreparedRequest(method=method.upper(), url=url, content=body, cancellation=cancellation)

        for option in options:
            try:
                option(request)
            except RequestOptionError:
                raise
            except (ValueError, TypeError, httpx.InvalidURL) as exc:
                raise RequestOptionError(f"request option failed: {exc}", cause=exc) from exc

        for key, value in self.config.default_headers.items():
            if key not in request.headers:
                request.headers[key] = value
        return request

    def _attempt_timeout(self, token: CancellationToken | None) -> float | None:
        timeout = self.config.timeout
        remaining = token.remaining() if token is not None else None
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def _retry_delay(self, attempt: int) -> float:
        if self.config.retry_interval > 0:
            return self.config.retry_interval
        return (attempt + 1) * self.retry_backoff_unit

    def _log_transport_failure(self, attempt: int, exc: Exception, final: bool) -> None:
        if final:
            self._logger.error("Attempt %d failed: %s", attempt + 1, exc)
        else:
            self._logger.warning("Attempt %d failed: %s", attempt + 1, exc)

    def _log_discarded(self, attempt: int, request: PreparedRequest, response: httpx.Response) -> None:
        self._logger.debug(
            "Attempt %d got %d from %s %s, retrying (headers=%s)",
            attempt + 1,
            response.status_code,
            request.method,
            request.url,
            redact_headers(request.headers),
        )

    def _exhausted(self, last_exc: BaseException | None) -> TransportError:
        retries = self.config.retries
        return TransportError(
            f"request failed after {retries} retries: {last_exc}",
            retries=retries,
            attempts=retries + 1,
            cause=last_exc,
        )


class Client(_BaseClient):
    """Synchronous client.

    Safe to share between threads; configuration is fixed at construction.
    Requests carrying a cancellation token run their transport call on a
    worker thread so the caller can return as soon as the token fires.
    """

    def __init__(
        self,
        *options: ClientOption,
        config: ClientConfig | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        super().__init__(*options, config=config, logger=logger)
        self._sleep = sleep or time.sleep
        self._sleep_hook = sleep
        transport = self.config.custom_transport
        if transport is None:
            transport = httpx.HTTPTransport(**self._transport_kwargs())
        elif not isinstance(transport, httpx.BaseTransport):
            raise ConfigurationError("Client requires a synchronous transport")
        self._httpx = httpx.Client(transport=transport, timeout=None, follow_redirects=True, trust_env=False)

    @classmethod
    def with_tls(
        cls,
        timeout: float | None,
        retries: int,
        cert_file: str | Path,
        key_file: str | Path,
        ca_file: str | Path | None = None,
        **kwargs: Any,
    ) -> "Client":
        return cls(with_timeout(timeout), with_retry(retries), with_tls_config(cert_file, key_file, ca_file), **kwargs)

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._httpx.close()

    def get(self, path: str, *options: RequestOption, cancellation: CancellationToken | None = None) -> httpx.Response:
        return self.request("GET", path, *options, cancellation=cancellation)

    def post(
        self,
        path: str,
        body: bytes | None,
        *options: RequestOption,
        cancellation: CancellationToken | None = None,
    ) -> httpx.Response:
        return self.request("POST", path, *options, body=body, cancellation=cancellation)

    def request(
        self,
        method: str,
        path: str,
        *options: RequestOption,
        body: bytes | None = None,
        cancellation: CancellationToken | None = None,
    ) -> httpx.Response:
        prepared = self._prepare(method, path, body, options, cancellation)
        return self._send(prepared, prepared.cancellation)

    def _send(self, prepared: PreparedRequest, token: CancellationToken | None) -> httpx.Response:
        retries = self.config.retries
        last_exc: httpx.TransportError | None = None
        for attempt in range(retries + 1):
            final = attempt == retries
            if token is not None:
                token.raise_if_cancelled()
            try:
                response = self._send_once(prepared, token)
            except httpx.TransportError as exc:
                if token is not None and token.cancelled:
                    raise _cancelled(token) from exc
                last_exc = exc
                self._log_transport_failure(attempt, exc, final)
            else:
                if response.status_code < 500 or final:
                    return response
                self._log_discarded(attempt, prepared, response)
                response.close()

            if final:
                break
            self._pause(self._retry_delay(attempt), token)
        raise self._exhausted(last_exc) from last_exc

    def _send_once(self, prepared: PreparedRequest, token: CancellationToken | None) -> httpx.Response:
        request = self._httpx.build_request(
            prepared.method,
            prepared.url,
            headers=prepared.headers,
            content=prepared.content,
            timeout=self._attempt_timeout(token),
        )
        if token is None:
            return self._httpx.send(request)

        attempt = _Attempt(self._httpx.send, request)
        unregister = token.add_callback(attempt.settled.set)
        try:
            attempt.settled.wait(token.remaining())
        finally:
            unregister()
        response = attempt.outcome()
        if response is None:
            raise _cancelled(token)
        return response

    def _pause(self, delay: float, token: CancellationToken | None) -> None:
        self._logger.debug("Sleeping %.2fs before next attempt", delay)
        if token is None:
            self._sleep(delay)
        elif self._sleep_hook is not None:
            self._sleep_hook(delay)
            if token.cancelled:
                raise _cancelled(token)
        elif token.wait(delay):
            raise _cancelled(token)


class AsyncClient(_BaseClient):
    """Asynchronous client; cancellation interrupts the in-flight call."""

    def __init__(
        self,
        *options: ClientOption,
        config: ClientConfig | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__(*options, config=config, logger=logger)
        self._sleep = sleep or asyncio.sleep
        transport = self.config.custom_transport
        if transport is None:
            transport = httpx.AsyncHTTPTransport(**self._transport_kwargs())
        elif not isinstance(transport, httpx.AsyncBaseTransport):
            raise ConfigurationError("AsyncClient requires an asynchronous transport")
        self._httpx = httpx.AsyncClient(transport=transport, timeout=None, follow_redirects=True, trust_env=False)

    @classmethod
    def with_tls(
        cls,
        timeout: float | None,
        retries: int,
        cert_file: str | Path,
        key_file: str | Path,
        ca_file: str | Path | None = None,
        **kwargs: Any,
    ) -> "AsyncClient":
        return cls(with_timeout(timeout), with_retry(retries), with_tls_config(cert_file, key_file, ca_file), **kwargs)

    async def __aenter__(self) -> "AsyncClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._httpx.aclose()

    async def get(
        self, path: str, *options: RequestOption, cancellation: CancellationToken | None = None
    ) -> httpx.Response:
        return await self.request("GET", path, *options, cancellation=cancellation)

    async def post(
        self,
        path: str,
        body: bytes | None,
        *options: RequestOption,
        cancellation: CancellationToken | None = None,
    ) -> httpx.Response:
        return await self.request("POST", path, *options, body=body, cancellation=cancellation)

    async def request(
        self,
        method: str,
        path: str,
        *options: RequestOption,
        body: bytes | None = None,
        cancellation: CancellationToken | None = None,
    ) -> httpx.Response:
        prepared = self._prepare(method, path, body, options, cancellation)
        return await self._send(prepared, prepared.cancellation)

    async def _send(self, prepared: PreparedRequest, token: CancellationToken | None) -> httpx.Response:
        retries = self.config.retries
        last_exc: httpx.TransportError | None = None
        for attempt in range(retries + 1):
            final = attempt == retries
            if token is not None:
                token.raise_if_cancelled()
            request = self._httpx.build_request(
                prepared.method,
                prepared.url,
                headers=prepared.headers,
                content=prepared.content,
                timeout=self._attempt_timeout(token),
            )
            try:
                response = await self._until_cancelled(self._httpx.send(request), token)
            except httpx.TransportError as exc:
                if token is not None and token.cancelled:
                    raise _cancelled(token) from exc
                last_exc = exc
                self._log_transport_failure(attempt, exc, final)
            else:
                if response.status_code < 500 or final:
                    return response
                self._log_discarded(attempt, prepared, response)
                await response.aclose()

            if final:
                break
            delay = self._retry_delay(attempt)
            self._logger.debug("Sleeping %.2fs before next attempt", delay)
            await self._until_cancelled(self._sleep(delay), token)
        raise self._exhausted(last_exc) from last_exc

    async def _until_cancelled(self, awaitable: Awaitable[Any], token: CancellationToken | None) -> Any:
        """Await `awaitable`, abandoning it as soon as `token` fires."""
        if token is None:
            return await awaitable
        task = asyncio.ensure_future(awaitable)

        loop = asyncio.get_running_loop()
        fired = loop.create_future()

        def wake() -> None:
            if not fired.done():
                fired.set_result(None)

        unregister = token.add_callback(lambda: loop.call_soon_threadsafe(wake))
        try:
            await asyncio.wait({task, fired}, timeout=token.remaining(), return_when=asyncio.FIRST_COMPLETED)
        finally:
            unregister()
            fired.cancel()
            if not task.done():
                task.cancel()
        if task.done():
            return task.result()
        raise _cancelled(token)
