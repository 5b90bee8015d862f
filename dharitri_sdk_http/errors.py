"""
Gateway error taxonomy and classification.

Translates a failed or unexpected transport outcome into an ``ApiError``
whose ``kind`` drives every retry decision in the client. Keeping the
mapping in one place is what stops a malformed response from being
retried forever, and a load spike from being treated as permanent.

Classification rules (first match wins):
    - TransportFailure: timeout → TIMEOUT, connection/protocol →
      TRANSIENT, invalid request → FATAL.
    - HTTP 429, or a body signalling throttling → RATE_LIMITED.
    - HTTP 5xx → TRANSIENT.
    - HTTP 4xx → FATAL, carrying the node's ``error`` and ``code``.
    - HTTP 2xx envelope with a non-successful ``code`` and an ``error``
      message → FATAL.
    - Body that is not JSON, or JSON not shaped like an envelope → DECODE.

Gateway envelope:
    {"data": {...}, "error": "", "code": "successful"}

    Some gateway builds answer with the payload at the top level and no
    ``data`` key; both shapes are accepted by ``unwrap_envelope()``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from dharitri_sdk_http.transport import FailureCause, RawResponse, TransportFailure

logger = logging.getLogger(__name__)

SUCCESS_CODE = "successful"

_THROTTLE_CODES = frozenset({"too_many_requests", "throttled", "rate_limited"})
_THROTTLE_RE = re.compile(r"too many requests|rate limit|throttl", re.IGNORECASE)
_NOT_FOUND_RE = re.compile(r"not found", re.IGNORECASE)


# =========================================================================
# Error type
# =========================================================================


class ErrorKind(StrEnum):
    """Error taxonomy for gateway calls."""

    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    FATAL = "fatal"
    TIMEOUT = "timeout"
    DECODE = "decode"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.TRANSIENT, ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT)


@dataclass(eq=False)
class ApiError(Exception):
    """Typed failure of a gateway operation.

    Attributes:
        kind: Classification that decides whether a retry is allowed.
        message: Human-readable reason (node-provided when available).
        code: Node error code from the envelope, if any.
        http_status: HTTP status of the response, if one was received.
        retry_after: Seconds requested by a ``Retry-After`` header.
        attempts: Transport calls made by the operation that raised.
        last_error: For TIMED_OUT, the retryable error seen last.
        node_reported: The message came from the ``error`` field of a
            JSON gateway envelope, not from a status line or plain-text
            body.
    """

    kind: ErrorKind
    message: str
    code: str | None = None
    http_status: int | None = None
    retry_after: float | None = None
    attempts: int = 0
    last_error: ApiError | None = None
    node_reported: bool = False

    def __post_init__(self) -> None:
        super().__init__(self.kind, self.message)

    def __str__(self) -> str:
        parts = [f"{self.kind}: {self.message}"]
        if self.code:
            parts.append(f"code={self.code}")
        if self.http_status is not None:
            parts.append(f"status={self.http_status}")
        return ", ".join(parts)

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    @property
    def is_not_found(self) -> bool:
        """True when the node reported the resource as unknown.

        Freshly broadcast transactions are commonly "not found" until
        they propagate, so pollers treat this as pending. Only a gateway
        envelope saying so counts: a bare 404 from a router or proxy in
        front of the node (wrong base URL, unsupported path) is a plain
        FATAL rejection.
        """
        if self.kind is not ErrorKind.FATAL or not self.node_reported:
            return False
        return bool(_NOT_FOUND_RE.search(self.message))


# =========================================================================
# Classification
# =========================================================================


def classify(outcome: RawResponse | TransportFailure) -> ApiError:
    """Map a failed transport outcome to an ApiError.

    A 2xx RawResponse only reaches here when the caller could not use
    it, so it becomes FATAL (node error envelope) or DECODE (anything
    else).
    """
    if isinstance(outcome, TransportFailure):
        return _classify_failure(outcome)
    return _classify_response(outcome)


def _classify_failure(failure: TransportFailure) -> ApiError:
    if failure.cause is FailureCause.TIMEOUT:
        kind = ErrorKind.TIMEOUT
    elif failure.cause is FailureCause.INVALID_REQUEST:
        kind = ErrorKind.FATAL
    else:
        kind = ErrorKind.TRANSIENT
    return ApiError(kind=kind, message=failure.detail or str(failure.cause))


def _classify_response(response: RawResponse) -> ApiError:
    status = response.status_code
    body = _try_json(response)
    message, code = _error_fields(body)
    retry_after = _parse_retry_after(response.headers.get("retry-after"))

    if status == 429 or _signals_throttling(message, code):
        return ApiError(
            kind=ErrorKind.RATE_LIMITED,
            message=message or "rate limited",
            code=code,
            http_status=status,
            retry_after=retry_after,
        )

    if status >= 500:
        return ApiError(
            kind=ErrorKind.TRANSIENT,
            message=message or f"server error {status}",
            code=code,
            http_status=status,
            retry_after=retry_after,
        )

    if status >= 400:
        node_reported = bool(message)
        if not message and body is None:
            message = response.content.decode("utf-8", errors="replace").strip()
        return ApiError(
            kind=ErrorKind.FATAL,
            message=message or f"request rejected with status {status}",
            code=code,
            http_status=status,
            node_reported=node_reported,
        )

    if body is None:
        return ApiError(
            kind=ErrorKind.DECODE,
            message="response body is not valid JSON",
            http_status=status,
        )

    if not isinstance(body, dict):
        return ApiError(
            kind=ErrorKind.DECODE,
            message=f"expected a JSON object, got {type(body).__name__}",
            http_status=status,
        )

    if message and code != SUCCESS_CODE:
        return ApiError(
            kind=ErrorKind.FATAL,
            message=message,
            code=code,
            http_status=status,
            node_reported=True,
        )

    return ApiError(
        kind=ErrorKind.DECODE,
        message="response does not match the gateway envelope",
        code=code,
        http_status=status,
    )


# =========================================================================
# Envelope helpers
# =========================================================================


def unwrap_envelope(response: RawResponse) -> dict[str, Any]:
    """Return the ``data`` payload of a successful response.

    Raises:
        ApiError: Classified error if the response is not a successful
            envelope (non-2xx, node error, non-JSON, wrong shape).
    """
    if not response.ok:
        raise classify(response)

    body = _try_json(response)
    if not isinstance(body, dict):
        raise classify(response)

    message, code = _error_fields(body)
    if message and code != SUCCESS_CODE:
        raise classify(response)
    if _signals_throttling(message, code):
        raise classify(response)

    if "data" in body:
        data = body["data"]
        if not isinstance(data, dict):
            raise ApiError(
                kind=ErrorKind.DECODE,
                message="envelope data is not an object",
                code=code,
                http_status=response.status_code,
            )
        return data

    return {k: v for k, v in body.items() if k not in ("error", "code")}


def _try_json(response: RawResponse) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_fields(body: Any) -> tuple[str, str | None]:
    if not isinstance(body, dict):
        return "", None
    error = body.get("error")
    code = body.get("code")
    message = error if isinstance(error, str) else ""
    return message.strip(), code if isinstance(code, str) and code else None


def _signals_throttling(message: str, code: str | None) -> bool:
    if code is not None and code.lower() in _THROTTLE_CODES:
        return True
    return bool(message) and bool(_THROTTLE_RE.search(message))


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        logger.debug("ignoring non-numeric Retry-After header: %r", value)
        return None
    return seconds if seconds >= 0 else None
