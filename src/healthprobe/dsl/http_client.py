"""Instrumented HTTP client with auto-timing and metric emission."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import aiohttp

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


def _noop_callback(metric: RequestMetric) -> None:
    """Default no-op metric callback."""


@dataclass
class RequestMetric:
    """Raw metric emitted for every HTTP request.

    Attributes:
        timestamp: Monotonic timestamp when the request started.
        name: Logical name for metric grouping (e.g., "Readiness Check").
        method: HTTP method (GET, POST, etc.).
        url: Full request URL.
        status_code: HTTP response status code (0 if request failed).
        latency_ms: Time until the full body was read, in milliseconds.
        content_length: Response body size in bytes.
        error: Error message if the request failed, None otherwise.
        user_id: Virtual user that made the request.
    """

    timestamp: float
    name: str
    method: str
    url: str
    status_code: int
    latency_ms: float
    content_length: int
    error: str | None = None
    user_id: int = 0


class HttpClient:
    """Instrumented async HTTP client wrapping ``aiohttp.ClientSession``.

    Every request is timed until its body has been read and emits a
    ``RequestMetric`` via ``metric_callback``.  The returned response has
    its body cached, so ``await resp.text()`` and ``await resp.json()`` do
    not touch the network again.

    Attributes:
        base_url: Prefix for request paths.  When empty, paths must be
            absolute URLs.
        headers: Headers applied to every request; per-request headers
            override them key by key.
    """

    def __init__(
        self,
        base_url: str = "",
        headers: Mapping[str, str] | None = None,
        metric_callback: Callable[[RequestMetric], None] | None = None,
        user_id: int = 0,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Prefix for request paths.
            headers: Default headers applied to every request.
            metric_callback: Callback invoked with a ``RequestMetric``
                after each request. Defaults to a no-op.
            user_id: Virtual user identifier for metric tagging.
            timeout: Total per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = dict(headers or {})
        self._metric_callback = metric_callback or _noop_callback
        self._user_id = user_id
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpClient:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def get(
        self,
        path: str,
        *,
        name: str | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: object,
    ) -> aiohttp.ClientResponse:
        """Send a GET request.

        Args:
            path: URL path appended to base_url, or an absolute URL.
            name: Logical name for metric grouping. Defaults to the path.
            headers: Extra headers for this request only.
            **kwargs: Additional keyword arguments passed to aiohttp.

        Returns:
            The aiohttp response object, body already read.
        """
        return await self.request("GET", path, name=name, headers=headers, **kwargs)

    async def post(
        self,
        path: str,
        *,
        name: str | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: object,
    ) -> aiohttp.ClientResponse:
        """Send a POST request. See ``get`` for arguments."""
        return await self.request("POST", path, name=name, headers=headers, **kwargs)

    async def put(
        self,
        path: str,
        *,
        name: str | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: object,
    ) -> aiohttp.ClientResponse:
        """Send a PUT request. See ``get`` for arguments."""
        return await self.request("PUT", path, name=name, headers=headers, **kwargs)

    async def patch(
        self,
        path: str,
        *,
        name: str | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: object,
    ) -> aiohttp.ClientResponse:
        """Send a PATCH request. See ``get`` for arguments."""
        return await self.request("PATCH", path, name=name, headers=headers, **kwargs)

    async def delete(
        self,
        path: str,
        *,
        name: str | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: object,
    ) -> aiohttp.ClientResponse:
        """Send a DELETE request. See ``get`` for arguments."""
        return await self.request("DELETE", path, name=name, headers=headers, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        name: str | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: object,
    ) -> aiohttp.ClientResponse:
        """Send an HTTP request with auto-timing and metric emission.

        Transport errors (connection refused, timeouts, ...) are recorded as
        a metric with ``status_code=0`` and then re-raised.

        Args:
            method: HTTP method (GET, POST, etc.).
            path: URL path appended to base_url, or an absolute URL.
            name: Logical name for metric grouping. Defaults to the path.
            headers: Extra headers for this request only.
            **kwargs: Additional keyword arguments passed to aiohttp.

        Returns:
            The aiohttp response object, body already read.

        Raises:
            RuntimeError: If the client is used outside of an async context
                manager.
        """
        if self._session is None:
            msg = "HttpClient must be used as an async context manager"
            raise RuntimeError(msg)

        url = f"{self.base_url}{path}"
        merged_headers = {**self.headers, **(headers or {})}

        start = time.monotonic()
        status_code = 0
        content_length = 0
        error: str | None = None

        try:
            resp = await self._session.request(
                method,
                url,
                headers=merged_headers,
                **kwargs,  # type: ignore[arg-type]
            )
            status_code = resp.status
            body = await resp.read()
            content_length = len(body)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            raise
        finally:
            latency_ms = (time.monotonic() - start) * 1000
            self._metric_callback(
                RequestMetric(
                    timestamp=start,
                    name=name or path,
                    method=method,
                    url=url,
                    status_code=status_code,
                    latency_ms=latency_ms,
                    content_length=content_length,
                    error=error,
                    user_id=self._user_id,
                )
            )

        return resp
