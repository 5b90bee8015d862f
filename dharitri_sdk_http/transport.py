"""
Transport protocol for gateway HTTP calls.

Defines the seam where concrete HTTP implementations plug in. The proxy
client depends on this protocol, not on httpx directly, so the transport
can be swapped for a fake without editing client logic.

Concrete implementations:
    - HttpxTransport (default, owns a pooled httpx.AsyncClient)
    - FakeTransport (tests, returns canned responses)

One call, one attempt:
    ``execute()`` never retries and never raises for network trouble.
    Connection resets, DNS failures and timeouts all come back as a
    ``TransportFailure`` value; retry decisions belong to the caller.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = "dharitri-sdk-http/0.1"


# =========================================================================
# Outcome types
# =========================================================================


class FailureCause(StrEnum):
    """Why a request never produced an HTTP response."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class RawResponse:
    """An HTTP response as received, before any envelope decoding.

    Attributes:
        status_code: HTTP status code.
        content: Raw response body bytes.
        headers: Response headers (lower-cased names).
    """

    status_code: int
    content: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is empty or not valid JSON.
        """
        if not self.content:
            raise ValueError("empty response body")
        return json.loads(self.content)


@dataclass(frozen=True)
class TransportFailure:
    """A request that failed below HTTP.

    Attributes:
        cause: Coarse failure category.
        detail: Human-readable detail for diagnostics.
    """

    cause: FailureCause
    detail: str = ""


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class HttpTransport(Protocol):
    """Async single-attempt HTTP executor."""

    async def execute(
        self,
        method: str,
        url: str,
        *,
        body: bytes | None = None,
        timeout: float,
    ) -> RawResponse | TransportFailure:
        """Issue one HTTP request.

        Args:
            method: HTTP method ("GET" or "POST").
            url: Absolute request URL, query string included.
            body: Already-serialized JSON body, or None.
            timeout: Request timeout in seconds. Must be > 0.

        Returns:
            RawResponse for any HTTP status, TransportFailure when no
            response was received.
        """
        ...


def _check_timeout(timeout: float) -> None:
    if timeout <= 0:
        raise ValueError(f"timeout must be > 0, got: {timeout}")


# =========================================================================
# httpx implementation
# =========================================================================


class HttpxTransport:
    """Default transport backed by one pooled httpx.AsyncClient.

    Construct once and share by reference between proxy clients; the
    underlying connection pool is reused across calls. Close it with
    ``aclose()`` or use it as an async context manager.

    Args:
        timeout: Default timeout used when the caller passes none.
        user_agent: Value of the User-Agent header.
        max_connections: Connection pool size.
        client: Pre-built httpx.AsyncClient (tests pass one with a
            MockTransport). The transport does not take ownership of
            headers or limits of an injected client.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        max_connections: int = 16,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        _check_timeout(timeout)
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
            limits=httpx.Limits(max_connections=max_connections),
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    async def execute(
        self,
        method: str,
        url: str,
        *,
        body: bytes | None = None,
        timeout: float | None = None,
    ) -> RawResponse | TransportFailure:
        """Send one request and map every httpx failure to a value."""
        effective = self._timeout if timeout is None else timeout
        _check_timeout(effective)

        headers = {"Content-Type": "application/json"} if body is not None else None
        try:
            response = await self._client.request(
                method,
                url,
                content=body,
                headers=headers,
                timeout=effective,
            )
        except httpx.TimeoutException as exc:
            return _failure(FailureCause.TIMEOUT, method, url, exc)
        except httpx.UnsupportedProtocol as exc:
            return _failure(FailureCause.INVALID_REQUEST, method, url, exc)
        except httpx.TransportError as exc:
            return _failure(FailureCause.CONNECTION, method, url, exc)
        except httpx.InvalidURL as exc:
            return _failure(FailureCause.INVALID_REQUEST, method, url, exc)
        except httpx.HTTPError as exc:
            return _failure(FailureCause.PROTOCOL, method, url, exc)

        logger.debug("%s %s -> %d", method, url, response.status_code)
        return RawResponse(
            status_code=response.status_code,
            content=response.content,
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


def _failure(
    cause: FailureCause, method: str, url: str, exc: Exception
) -> TransportFailure:
    detail = str(exc) or type(exc).__name__
    logger.debug("%s %s failed (%s): %s", method, url, cause, detail)
    return TransportFailure(cause=cause, detail=detail)
