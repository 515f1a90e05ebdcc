"""
Shared request handling for the remote HTTP APIs.

Every remote call goes through RemoteHTTPClient._request, which traces the
call, turns transport failures into RemoteConnectionError and unexpected
statuses into RemoteAPIError carrying the response body.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from types import TracebackType
from typing import Any

import httpx

from hostmigrate.exceptions import RemoteAPIError, RemoteConnectionError
from hostmigrate.observability import (
    ATTR_HTTP_METHOD,
    ATTR_HTTP_STATUS_CODE,
    ATTR_URL_PATH,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


class RemoteHTTPClient:
    """
    Base class for the remote API clients.

    Owns one httpx.AsyncClient. Instances are short-lived: build one per
    operation and close it (or use it as an async context manager).

    Args:
        base_url: Scheme and host of the API.
        headers: Headers sent with every request (authentication).
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, used to fake the API in tests.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable OpenTelemetry tracing.
    """

    _span_prefix = "hostmigrate.remote"

    def __init__(
        self,
        base_url: str,
        *,
        headers: Mapping[str, str],
        timeout: float | None,
        transport: httpx.AsyncBaseTransport | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=dict(headers),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> RemoteHTTPClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        expected: Collection[int] = (200,),
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send one request and check its status.

        Args:
            method: HTTP method.
            path: Path relative to the base URL.
            operation: Short description used in error messages.
            expected: Status codes treated as success.
            **kwargs: Passed through to httpx (json, content, files, ...).

        Raises:
            RemoteConnectionError: If the request could not be sent or timed out.
            RemoteAPIError: If the status is not one of the expected codes.
        """
        with self._tracer.span(
            f"{self._span_prefix}.{operation.replace(' ', '_')}",
            {ATTR_HTTP_METHOD: method, ATTR_URL_PATH: path},
        ) as span:
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                logger.warning("%s %s failed: %s", method, path, e)
                raise RemoteConnectionError(f"{operation}: {e}") from e

            if span is not None:
                span.set_attribute(ATTR_HTTP_STATUS_CODE, response.status_code)

        if response.status_code not in expected:
            logger.debug(
                "%s %s returned %d",
                method,
                path,
                response.status_code,
                extra={"operation": operation, "status_code": response.status_code},
            )
            raise RemoteAPIError(operation, response.status_code, response.text)
        return response


__all__ = ["RemoteHTTPClient"]
