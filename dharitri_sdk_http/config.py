"""
Client configuration.

``ProxyConfig`` is the whole configuration surface of the client: which
node to talk to, which path scheme it speaks, how long to wait, how to
retry, and whether the target is a chain simulator. It is immutable and
safe to share between clients.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from dharitri_sdk_http.endpoints import API_VERSIONS, DEFAULT_API_VERSION
from dharitri_sdk_http.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from dharitri_sdk_http.transport import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT

MAINNET_GATEWAY = "https://gateway.dharitri.org"
TESTNET_GATEWAY = "https://testnet-gateway.dharitri.org"
DEVNET_GATEWAY = "https://devnet-gateway.dharitri.org"
SIMULATOR_GATEWAY = "http://localhost:8085"

ENV_PREFIX = "DHARITRI_"

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration for a ProxyClient.

    Attributes:
        base_url: Gateway (or simulator) base URL, no trailing slash needed.
        api_version: Path scheme tag, a key of ``endpoints.API_VERSIONS``.
        timeout: Per-request timeout in seconds (> 0).
        retry: Default retry policy for idempotent calls.
        simulator: Target is a chain simulator. Required to build a
            SimulatorProxy; never set it for a real network.
        user_agent: User-Agent header of the default transport.
    """

    base_url: str = DEVNET_GATEWAY
    api_version: str = DEFAULT_API_VERSION
    timeout: float = DEFAULT_TIMEOUT
    retry: RetryPolicy = field(default=DEFAULT_RETRY_POLICY)
    simulator: bool = False
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must be non-empty")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got: {self.base_url!r}")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        if self.api_version not in API_VERSIONS:
            raise ValueError(
                f"api_version must be one of {sorted(API_VERSIONS)}, got: {self.api_version!r}"
            )
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got: {self.timeout}")

    @classmethod
    def for_simulator(cls, base_url: str = SIMULATOR_GATEWAY, **kwargs: object) -> ProxyConfig:
        return cls(base_url=base_url, simulator=True, **kwargs)  # type: ignore[arg-type]

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        environ: Mapping[str, str] | None = None,
    ) -> ProxyConfig:
        """Build a config from environment variables.

        Reads ``<prefix>GATEWAY_URL``, ``API_VERSION``, ``TIMEOUT``,
        ``MAX_ATTEMPTS``, ``BASE_DELAY`` and ``SIMULATOR``. Unset
        variables keep their defaults.

        Raises:
            ValueError: If a variable is set to an unparsable value.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(prefix + name)
            return value.strip() if value is not None else None

        kwargs: dict[str, object] = {}
        if (url := get("GATEWAY_URL")) is not None:
            kwargs["base_url"] = url
        if (version := get("API_VERSION")) is not None:
            kwargs["api_version"] = version
        if (timeout := get("TIMEOUT")) is not None:
            kwargs["timeout"] = _parse_float(prefix + "TIMEOUT", timeout)

        retry_overrides: dict[str, object] = {}
        if (attempts := get("MAX_ATTEMPTS")) is not None:
            retry_overrides["max_attempts"] = _parse_int(prefix + "MAX_ATTEMPTS", attempts)
        if (base_delay := get("BASE_DELAY")) is not None:
            retry_overrides["base_delay"] = _parse_float(prefix + "BASE_DELAY", base_delay)
        if retry_overrides:
            kwargs["retry"] = RetryPolicy(**retry_overrides)  # type: ignore[arg-type]

        if (simulator := get("SIMULATOR")) is not None:
            kwargs["simulator"] = _parse_bool(prefix + "SIMULATOR", simulator)

        return cls(**kwargs)  # type: ignore[arg-type]


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {value!r}") from None


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {value!r}") from None


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got: {value!r}")
